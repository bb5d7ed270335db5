"""Command-line interface for the inventory reconciliation worker.

``status`` and ``recover`` run in-process against the configured ledger.
``daemon`` runs scheduled passes, and ``serve`` adds the HTTP trigger
surface next to the same daemon loop.
"""

from __future__ import annotations

import argparse
import json
import signal
import sys
import threading
from contextlib import contextmanager
from typing import Any, Iterator

from nftrecon import __version__
from nftrecon.app.api import api_config, api_recover, api_status
from nftrecon.app.arg_utils import parse_interval_arg
from nftrecon.app.daemon import exit_code_for, run_daemon_forever, run_scheduled
from nftrecon.config.logging import configure_logging, logger
from nftrecon.config.settings import get_config


def _emit(message: object = "", *, file: Any | None = None) -> None:
    """Write one CLI output line to stdout or a provided file-like target."""
    target = file if file is not None else sys.stdout
    target.write(f"{message}\n")


def _emit_structured(*, title: str, payload: dict[str, Any], as_json: bool) -> None:
    """Emit a dict payload either as JSON or as key/value lines."""
    if as_json:
        _emit(json.dumps(payload, indent=2, ensure_ascii=True))
        return
    _emit(title)
    for key, value in payload.items():
        _emit(f"- {key}: {value}")


def _emit_run(result: dict[str, Any], *, as_json: bool) -> None:
    """Emit a serialized RunResult as JSON or as a readable step log."""
    if as_json:
        _emit(json.dumps(result, indent=2, ensure_ascii=True))
        return
    _emit(f"Run {result['run_id']} ({result['trigger']}):")
    for step in result.get("steps", []):
        _emit(f"  [{step['state']}] {step['message']}")
    _emit(f"- outcome: {result.get('outcome')}")
    if result.get("reason"):
        _emit(f"- reason: {result['reason']}")
    if result.get("final_inventory") is not None:
        _emit(f"- final_inventory: {result['final_inventory']}")


def _hoist_global_json_flag(raw: list[str]) -> list[str]:
    """Allow ``--json`` before or after subcommands by normalizing argv order."""
    if "--json" not in raw:
        return raw
    return ["--json"] + [item for item in raw if item != "--json"]


@contextmanager
def _stop_on_signals() -> Iterator[threading.Event]:
    """Yield an event that SIGINT/SIGTERM set instead of killing the process."""
    stop_event = threading.Event()

    def _handle(signum: int, frame: Any) -> None:
        logger.warning("received signal {}; stopping at next checkpoint", signum)
        stop_event.set()

    previous = {
        signum: signal.signal(signum, _handle)
        for signum in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        yield stop_event
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)


def _cmd_status(args: argparse.Namespace) -> int:
    """Print current custody counts without writing anything."""
    data = api_status()
    if args.json:
        _emit(json.dumps(data, indent=2, ensure_ascii=True))
    elif data["status"] != "ok":
        _emit(f"Status unavailable: {data['error']}", file=sys.stderr)
    else:
        _emit(f"{data['worker']} status:")
        _emit(f"- contract: {data['contract']}")
        _emit(f"- actual_balance: {data['actual_balance']}")
        _emit(f"- tracked_count: {data['tracked_count']}")
        _emit(f"- pending_counter: {data['pending_counter']}")
        _emit(f"- untracked: {data['untracked']}")
        _emit(f"- needs_recovery: {data['needs_recovery']}")
    return 0 if data["status"] == "ok" else 1


def _cmd_recover(args: argparse.Namespace) -> int:
    """Run one reconciliation pass now."""
    with _stop_on_signals() as stop_event:
        payload = api_recover(trigger="manual", cancel_event=stop_event)
    _emit_run(payload["result"], as_json=args.json)
    return int(payload["code"])


def _cmd_daemon(args: argparse.Namespace) -> int:
    """Handle daemon commands for one-shot or continuous execution."""
    with _stop_on_signals() as stop_event:
        if args.once:
            result = run_scheduled(cancel_event=stop_event)
            _emit_run(result.public_dict(), as_json=args.json)
            return exit_code_for(result)
        run_daemon_forever(poll_seconds=args.interval, stop_event=stop_event)
    return 0


def _cmd_serve(args: argparse.Namespace) -> int:
    """Start the HTTP trigger surface and the daemon loop in one process."""
    from nftrecon.app.server import ReconHandler, ReconServer

    config = get_config()
    host = args.host or config.server_host or "127.0.0.1"
    port = int(args.port or config.server_port or 8787)

    stop_event = threading.Event()
    httpd = ReconServer((host, port), ReconHandler, stop_event=stop_event)

    daemon_thread = None
    if not args.no_daemon:
        daemon_thread = threading.Thread(
            target=run_daemon_forever,
            kwargs={"poll_seconds": args.interval, "stop_event": stop_event},
            name="nftrecon-daemon",
            daemon=True,
        )
        daemon_thread.start()

    def _shutdown(signum: int, frame: Any) -> None:
        """Handle graceful shutdown on SIGTERM/SIGINT."""
        stop_event.set()
        threading.Thread(target=httpd.shutdown, daemon=True).start()

    signal.signal(signal.SIGTERM, _shutdown)
    signal.signal(signal.SIGINT, _shutdown)

    if not config.api_token:
        logger.warning("NFTRECON_API_TOKEN not set; POST /recover is disabled")
    logger.info("{} serving at http://{}:{}/", config.worker_name, host, port)
    httpd.serve_forever()
    httpd.server_close()
    stop_event.set()
    if daemon_thread is not None:
        daemon_thread.join(timeout=5)
    return 0


def _cmd_config(args: argparse.Namespace) -> int:
    """Print the effective configuration with secrets masked."""
    data = api_config()
    if args.json:
        _emit(json.dumps(data, indent=2, ensure_ascii=True))
        return 0
    _emit_structured(title="Effective config:", payload=data["config"], as_json=False)
    _emit("Sources:")
    for source in data["sources"]:
        _emit(f"- {source['source']}: {source['path']}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Construct the canonical nftrecon command-line parser."""
    _F = argparse.RawDescriptionHelpFormatter  # noqa: N806
    parser = argparse.ArgumentParser(
        prog="nftrecon",
        formatter_class=_F,
        description="nftrecon -- inventory reconciliation worker.\n"
        "Compares an asset manager contract's bookkeeping with on-chain custody\n"
        "and registers untracked assets with the contract owner's key.",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Emit structured JSON instead of human-readable text",
    )
    sub = parser.add_subparsers(dest="command")

    # ── status ───────────────────────────────────────────────────────
    status = sub.add_parser(
        "status",
        formatter_class=_F,
        help="Show custody counts (read-only)",
        description=(
            "Read the ledger balance, tracked count, and pending counter of\n"
            "the manager contract. Never authorizes or writes.\n\n"
            "Examples:\n"
            "  nftrecon status\n"
            "  nftrecon status --json"
        ),
    )
    status.set_defaults(func=_cmd_status)

    # ── recover ──────────────────────────────────────────────────────
    recover = sub.add_parser(
        "recover",
        formatter_class=_F,
        help="Run one reconciliation pass now",
        description=(
            "Read, detect, authorize, execute, and verify once.\n"
            "Exit code 0 on no_action/recovered, 3 on partial_failure, 1 on error.\n\n"
            "Examples:\n"
            "  nftrecon recover\n"
            "  nftrecon recover --json"
        ),
    )
    recover.set_defaults(func=_cmd_recover)

    # ── daemon ───────────────────────────────────────────────────────
    daemon = sub.add_parser(
        "daemon",
        formatter_class=_F,
        help="Run scheduled reconciliation passes",
        description=(
            "Run a pass every poll interval until interrupted. Runs never overlap.\n\n"
            "Examples:\n"
            "  nftrecon daemon\n"
            "  nftrecon daemon --interval 5m\n"
            "  nftrecon daemon --once"
        ),
    )
    daemon.add_argument(
        "--once", action="store_true", help="Run a single scheduled pass and exit."
    )
    daemon.add_argument(
        "--interval",
        type=parse_interval_arg,
        help="Poll interval such as 90s or 5m (default: from config, 60s).",
    )
    daemon.set_defaults(func=_cmd_daemon)

    # ── serve ────────────────────────────────────────────────────────
    serve = sub.add_parser(
        "serve",
        formatter_class=_F,
        help="Start HTTP trigger surface + daemon loop",
        description=(
            "GET / and /health report custody status. POST /recover runs a pass\n"
            "and requires 'Authorization: Bearer $NFTRECON_API_TOKEN'.\n\n"
            "Examples:\n"
            "  nftrecon serve\n"
            "  nftrecon serve --host 0.0.0.0 --port 8787 --no-daemon"
        ),
    )
    serve.add_argument("--host", help="Bind address (default: 127.0.0.1).")
    serve.add_argument("--port", type=int, help="Bind port (default: 8787).")
    serve.add_argument(
        "--interval", type=parse_interval_arg, help="Daemon poll interval."
    )
    serve.add_argument(
        "--no-daemon",
        action="store_true",
        help="Serve HTTP only; do not run scheduled passes.",
    )
    serve.set_defaults(func=_cmd_serve)

    # ── config ───────────────────────────────────────────────────────
    config = sub.add_parser(
        "config",
        formatter_class=_F,
        help="Show effective configuration (secrets masked)",
    )
    config.set_defaults(func=_cmd_config)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Entrypoint for CLI invocation with global flags and dispatch."""
    configure_logging()
    parser = build_parser()
    args = parser.parse_args(_hoist_global_json_flag(list(argv or sys.argv[1:])))

    if not getattr(args, "command", None):
        parser.print_help()
        return 0

    handler = getattr(args, "func", None)
    if handler is None:
        parser.print_help()
        return 2
    return int(handler(args))


if __name__ == "__main__":
    raise SystemExit(main())
