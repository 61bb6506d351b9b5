"""
netguard CLI
~~~~~~~~~~~~

Command-line interface for netguard. Besides the operator commands,
this is what the detached watchdogs run: ``netguard watchdog`` for the
process backend and ``netguard expire`` for the systemd timer.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import time
from typing import Any

from netguard.exceptions import NetGuardError, RestoreFailureError

logger = logging.getLogger(__name__)

# Sleep in bounded slices so a wall-clock jump is noticed.
_WATCHDOG_SLICE = 30.0


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="netguard",
        description="netguard — Commit-confirm protection for router firewall changes",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=os.environ.get("NETGUARD_CONFIG"),
        help="Path to netguard.yaml (default: $NETGUARD_CONFIG)",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Show version and exit",
    )
    subparsers = parser.add_subparsers(dest="command")

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API server")
    serve_parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Bind address (default: server.host)",
    )
    serve_parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port number (default: server.port)",
    )

    # status command
    status_parser = subparsers.add_parser(
        "status", help="Show the pending change, expiring it if overdue"
    )
    status_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the status as JSON",
    )

    # confirm / revert / expire
    subparsers.add_parser("confirm", help="Keep the pending change")
    subparsers.add_parser("revert", help="Roll back the pending change now")
    subparsers.add_parser(
        "expire", help="Roll back the pending change if its deadline has passed"
    )

    # watchdog command
    watchdog_parser = subparsers.add_parser(
        "watchdog", help="Sleep until a deadline, then run the expiry check"
    )
    watchdog_parser.add_argument(
        "--deadline",
        type=float,
        required=True,
        help="Unix time at which to run the expiry check",
    )
    watchdog_parser.add_argument(
        "--transaction-id",
        type=str,
        default="",
        help="Transaction the watchdog was armed for (for logging)",
    )

    # history command
    history_parser = subparsers.add_parser("history", help="Show recent journal events")
    history_parser.add_argument(
        "--limit",
        type=int,
        default=20,
        help="Number of events to show (default: 20)",
    )

    # version command
    subparsers.add_parser("version", help="Show version")

    args = parser.parse_args(argv)

    if args.version or args.command == "version":
        from netguard import __version__

        print(f"netguard {__version__}")
        return

    handlers = {
        "serve": _run_serve,
        "status": _run_status,
        "confirm": _run_confirm,
        "revert": _run_revert,
        "expire": _run_expire,
        "watchdog": _run_watchdog,
        "history": _run_history,
    }
    handler = handlers.get(args.command)
    if handler is None:
        parser.print_help()
        sys.exit(1)

    try:
        handler(args)
    except RestoreFailureError as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(2)
    except NetGuardError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


def _make_guard(config_path: str | None) -> Any:
    """Create a NetGuard instance from config or defaults and set up logging."""
    from netguard.config.loader import load_config, load_config_from_dict
    from netguard.core.guard import NetGuard

    config = load_config(config_path) if config_path else load_config_from_dict({})
    logging.basicConfig(
        level=config.logging.level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return NetGuard(config, config_path=config_path)


def _run_serve(args: argparse.Namespace) -> None:
    """Start the HTTP API server."""
    guard = _make_guard(args.config)
    host = args.host or guard.config.server.host
    port = args.port or guard.config.server.port
    print(f"Starting netguard API on {host}:{port}")
    guard.serve(host=host, port=port)


def _run_status(args: argparse.Namespace) -> None:
    """Print the pending-change status."""
    guard = _make_guard(args.config)
    status = guard.pending()
    if args.json:
        print(json.dumps(status.to_dict()))
        return
    print(status.message)
    if status.transaction_id:
        print(f"Transaction: {status.transaction_id}")


def _run_confirm(args: argparse.Namespace) -> None:
    """Confirm the pending change."""
    guard = _make_guard(args.config)
    result = guard.confirm(actor="cli")
    print(result.message)
    if result.confirmed and not result.persisted:
        sys.exit(1)


def _run_revert(args: argparse.Namespace) -> None:
    """Revert the pending change."""
    guard = _make_guard(args.config)
    print(guard.revert(actor="cli").message)


def _run_expire(args: argparse.Namespace) -> None:
    """Run the expiry check once; this is what the systemd timer runs."""
    guard = _make_guard(args.config)
    if guard.expire(actor="watchdog"):
        print("Pending change expired and was reverted.")


def _run_watchdog(args: argparse.Namespace) -> None:
    """Sleep until the deadline, then run the expiry check once."""
    guard = _make_guard(args.config)
    logger.info(
        "Watchdog for transaction %s waiting until %.0f",
        args.transaction_id or "?",
        args.deadline,
    )
    while True:
        remaining = args.deadline - time.time()
        if remaining <= 0:
            break
        time.sleep(min(remaining, _WATCHDOG_SLICE))

    if guard.expire(actor="watchdog"):
        logger.info("Watchdog reverted transaction %s", args.transaction_id or "?")
    else:
        logger.debug("Watchdog for %s found nothing to expire", args.transaction_id or "?")


def _run_history(args: argparse.Namespace) -> None:
    """Print recent journal events, newest first."""
    guard = _make_guard(args.config)
    for event in guard.history(args.limit):
        detail = f"  {event.detail}" if event.detail else ""
        print(
            f"{event.timestamp.isoformat()}  {event.kind:<22} "
            f"{event.actor:<8} {event.transaction_id or '-'}{detail}"
        )


if __name__ == "__main__":
    main()
