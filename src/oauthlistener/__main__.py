"""
=============================================================================
OAUTHLISTENER CLI ENTRY POINT
=============================================================================

Command-line front end for scripts and non-Python desktop shells that want
the listener without embedding it.

=============================================================================
USAGE
=============================================================================

    # Listen on any free port, print captures as JSON lines
    python -m oauthlistener listen

    # Provider requires a fixed redirect URI: try these ports in order
    python -m oauthlistener listen -p 8765 -p 8766

    # Stop after the first capture
    python -m oauthlistener listen --once

    # Stop a listener from another process
    python -m oauthlistener cancel 8765

=============================================================================
OUTPUT PROTOCOL (stdout, one JSON object per line)
=============================================================================

    {"event": "oauth://listening", "port": 8765, "response": "<html>..."}
    {"event": "oauth://response", "payload": "http://127.0.0.1:8765/?code=..."}
    {"event": "oauth://stopped", "port": 8765}

"response" is the page the caller should show once the redirect arrives:
--response if given, otherwise the built-in default. The listener itself
only ever answers `true`.

Logs go to stderr so stdout stays machine-readable.

=============================================================================
"""

import argparse
import json
import sys
import threading

from . import __version__
from .access_log import setup_logging
from .config import OAuthConfig
from .errors import BindError, CancellationUnreachable
from .server import OAuthListener, cancel


def _emit(event: dict) -> None:
    print(json.dumps(event), flush=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="oauthlistener",
        description="Capture OAuth redirects on a loopback port",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m oauthlistener listen                  # Any free port
  python -m oauthlistener listen -p 8765 -p 8766  # Candidate ports, in order
  python -m oauthlistener listen --once           # Stop after first capture
  python -m oauthlistener cancel 8765             # Stop a running listener
        """
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # ─────────────────────────────────────────────────────────────────────
    # listen
    # ─────────────────────────────────────────────────────────────────────

    listen = subparsers.add_parser("listen", help="Start a listener and print captures")

    listen.add_argument(
        "--port", "-p",
        dest="ports",
        type=int,
        action="append",
        help="Candidate port, may be repeated (default: any free port)"
    )

    listen.add_argument(
        "--response",
        help="HTML page for the embedding app to show after the redirect"
    )

    listen.add_argument(
        "--read-timeout",
        type=float,
        help="Seconds to wait on a client read before dropping it (default: 30)"
    )

    listen.add_argument(
        "--once",
        action="store_true",
        help="Stop after the first captured submission"
    )

    listen.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO)"
    )

    listen.add_argument(
        "--log-format",
        choices=["text", "json"],
        help="Access log format (default: text)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # cancel
    # ─────────────────────────────────────────────────────────────────────

    cancel_cmd = subparsers.add_parser("cancel", help="Stop the listener on PORT")
    cancel_cmd.add_argument("port", type=int, help="Port the listener is bound to")

    return parser


def config_from_args(args: argparse.Namespace) -> OAuthConfig:
    """Environment first, then command-line overrides."""
    config = OAuthConfig.from_env()

    if args.ports:
        config.ports = args.ports
    if args.response is not None:
        config.response = args.response
    if args.read_timeout is not None:
        config.read_timeout = args.read_timeout
    if args.log_level:
        config.log_level = args.log_level
    if args.log_format:
        config.log_format = args.log_format

    return config


def run_listen(args: argparse.Namespace) -> int:
    try:
        config = config_from_args(args)
        config.validate()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    setup_logging(config.log_level, config.log_format)

    captured = threading.Event()

    def on_capture(content: str) -> None:
        _emit({"event": "oauth://response", "payload": content})
        captured.set()

    listener = OAuthListener(config, on_capture)
    try:
        port = listener.start()
    except BindError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    _emit({"event": "oauth://listening", "port": port, "response": listener.response_body})

    try:
        while not listener.wait(0.5):
            if args.once and captured.is_set():
                listener.shutdown()
    except KeyboardInterrupt:
        listener.shutdown()

    _emit({"event": "oauth://stopped", "port": port})
    return 0


def run_cancel(args: argparse.Namespace) -> int:
    try:
        cancel(args.port)
    except CancellationUnreachable as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "listen":
        return run_listen(args)
    return run_cancel(args)


if __name__ == "__main__":
    sys.exit(main())
