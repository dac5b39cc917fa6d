"""Error taxonomy for hookwatch.

A trailing record that is still being written is not an error; readers report
it as pending bytes and pick it up on the next read.
"""


class HookwatchError(Exception):
    """Base class for all hookwatch errors."""


class DecodeError(HookwatchError):
    """A single record or hook payload could not be decoded.

    Recoverable: callers skip the record and keep going.
    """


class StoreUnavailable(HookwatchError):
    """The event log could not be opened, locked, read or written."""


class ConfigInvalid(HookwatchError):
    """A configuration value is missing, unparsable or out of range."""
