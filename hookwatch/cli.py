"""Command-line interface: ingest, sessions, audit, tail, serve.

Exit codes: 0 success, 1 unknown session, 2 invalid configuration,
3 event log unavailable.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import threading
from pathlib import Path

from . import __version__, query
from .config import HookwatchConfig, load_config
from .errors import ConfigInvalid, StoreUnavailable
from .follower import LiveFollower
from .report import render_audit, render_event, render_sessions
from .store import EventStore

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_UNKNOWN_SESSION = 1
EXIT_CONFIG_INVALID = 2
EXIT_STORE_UNAVAILABLE = 3


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="hookwatch",
        description="Capture hook invocations and audit how often they fire and what they inject.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--store", type=Path, default=None, help="Event log path (overrides storePath).")
    parser.add_argument("--config", type=Path, default=None, help="JSON config file.")
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Enable verbose (DEBUG-level) logging.",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("ingest", help="Record one hook event read from stdin (use as the hook command).")

    sessions = sub.add_parser("sessions", help="List recorded sessions.")
    sessions.add_argument("--json", action="store_true", help="Emit JSON instead of a table.")

    audit = sub.add_parser("audit", help="Summarize a session and flag duplicate hook output.")
    audit.add_argument("session", nargs="?", default=query.LATEST, help="Session id, 'latest' or 'all'.")
    audit.add_argument("--min-fires", type=int, default=None, help="Minimum fires with output to flag.")
    audit.add_argument("--threshold", type=float, default=None, help="Duplicate ratio that flags a hook.")
    audit.add_argument("--json", action="store_true", help="Emit JSON.")

    tail = sub.add_parser("tail", help="Follow new hook events as they are recorded.")
    tail.add_argument(
        "--since-offset",
        type=int,
        default=None,
        help="Byte offset to start from (default: the checkpoint, else 0).",
    )
    tail.add_argument("--checkpoint", type=Path, default=None, help="Persist the read position in this file.")
    tail.add_argument("--session", default=None, help="Only show events of this session.")

    serve = sub.add_parser("serve", help="Serve the read-only HTTP audit API.")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8765)

    return parser.parse_args(argv)


def _setup_logging(verbose: bool, config: HookwatchConfig | None = None) -> None:
    level = logging.DEBUG if verbose else (config.log_level_number if config else logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        stream=sys.stderr,
    )


def _overrides(args: argparse.Namespace) -> dict:
    overrides: dict = {}
    if args.store is not None:
        overrides["storePath"] = str(args.store)
    if getattr(args, "min_fires", None) is not None:
        overrides["dedupMinFires"] = args.min_fires
    if getattr(args, "threshold", None) is not None:
        overrides["dedupThreshold"] = args.threshold
    return overrides


def cmd_sessions(args: argparse.Namespace, config: HookwatchConfig, store: EventStore) -> int:
    result = query.load_sessions(store, config.token_heuristic_divisor)
    if args.json:
        print(
            json.dumps(
                {
                    "sessions": [s.model_dump(by_alias=True, mode="json") for s in result.summaries.values()],
                    "latest": result.latest,
                    "skipped": result.skipped,
                },
                indent=2,
            )
        )
    else:
        print(render_sessions(result.summaries.values(), skipped=result.skipped))
    return EXIT_OK


def cmd_audit(args: argparse.Namespace, config: HookwatchConfig, store: EventStore) -> int:
    report = query.build_audit(store, args.session, config)
    if report is None:
        print(f"No such session: {args.session}", file=sys.stderr)
        return EXIT_UNKNOWN_SESSION
    if args.json:
        print(report.model_dump_json(by_alias=True, indent=2))
    else:
        print(render_audit(report))
    return EXIT_OK


def cmd_tail(args: argparse.Namespace, config: HookwatchConfig, store: EventStore) -> int:
    def sink(event) -> None:
        print(render_event(event), flush=True)

    follower = LiveFollower(
        store,
        sink,
        since_offset=args.since_offset,
        checkpoint=args.checkpoint,
        session_id=args.session,
        poll_interval=config.poll_interval,
    )
    cancel = threading.Event()
    try:
        follower.run(cancel)
    except KeyboardInterrupt:
        cancel.set()
    logger.debug("Tail stopped at byte %d after %d events", follower.offset, follower.delivered)
    return EXIT_OK


def cmd_serve(args: argparse.Namespace, config: HookwatchConfig, store: EventStore) -> int:
    import uvicorn

    from .api import create_app

    logger.info("Serving audit API for %s on %s:%d", store.path, args.host, args.port)
    uvicorn.run(create_app(config), host=args.host, port=args.port, log_level=config.log_level.lower())
    return EXIT_OK


COMMANDS = {
    "sessions": cmd_sessions,
    "audit": cmd_audit,
    "tail": cmd_tail,
    "serve": cmd_serve,
}


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    if args.command == "ingest":
        from .ingest import main as ingest_main

        return ingest_main(config_path=args.config, overrides=_overrides(args))

    try:
        config = load_config(args.config, overrides=_overrides(args))
    except ConfigInvalid as exc:
        _setup_logging(args.verbose)
        print(f"hookwatch: {exc}", file=sys.stderr)
        return EXIT_CONFIG_INVALID

    _setup_logging(args.verbose, config)
    store = EventStore.from_config(config)

    try:
        return COMMANDS[args.command](args, config, store)
    except StoreUnavailable as exc:
        print(f"hookwatch: event log unavailable: {exc}", file=sys.stderr)
        return EXIT_STORE_UNAVAILABLE


if __name__ == "__main__":
    sys.exit(main())
