"""Hook invocation capture and audit.

Every hook firing is appended as one JSON line to a shared event log. Audit
views (session summaries, duplicate-output detection, live tail) are pure
projections computed from that log on demand.
"""

__version__ = "0.1.0"
