"""CLI entrypoint for flywheel operations."""

from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys

from flywheel.core.config import Settings, load_settings
from flywheel.core.errors import ConfigurationError
from flywheel.core.logging import configure_logging
from flywheel.runtime import FlywheelRuntime

_SECRET_FIELDS = {"executor_secret_key", "webhook_secret"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="flywheel", description="Fee-to-buyback flywheel engine")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("check-config", help="Validate configuration and print the effective settings")

    once = sub.add_parser("once", help="Run a single epoch and print its result")
    once.add_argument("--approve", action="store_true", help="Mark the epoch as manually approved")

    sub.add_parser("run", help="Run the epoch scheduler until interrupted")

    serve = sub.add_parser("serve", help="Serve the HTTP control plane")
    serve.add_argument("--host", default=None, help="Bind host (defaults to FLYWHEEL_WEBHOOK_HOST)")
    serve.add_argument("--port", type=int, default=None, help="Bind port (defaults to FLYWHEEL_WEBHOOK_PORT)")

    history = sub.add_parser("history", help="Print recent epoch outcomes")
    history.add_argument("--limit", type=int, default=20, help="Number of epochs to show")

    return parser


def _print_json(payload: object) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _redacted(settings: Settings) -> dict[str, object]:
    dumped = settings.model_dump()
    for name in _SECRET_FIELDS:
        if dumped.get(name):
            dumped[name] = "***"
    return dumped


async def _run_forever(runtime: FlywheelRuntime) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    runtime.start_scheduler()
    try:
        await stop.wait()
    finally:
        await runtime.stop_scheduler()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings()
        configure_logging(settings.log_level, json_output=settings.log_json)
        if args.command == "check-config":
            _print_json({"ok": True, "settings": _redacted(settings)})
            return 0
        runtime = FlywheelRuntime(settings)
    except ConfigurationError as exc:
        print(f"configuration error: {exc}", file=sys.stderr)
        return 2

    if args.command == "once":
        result = asyncio.run(runtime.run_epoch(manually_approved=args.approve))
        _print_json(result.to_dict())
        return 0 if result.success else 1

    if args.command == "run":
        asyncio.run(_run_forever(runtime))
        return 0

    if args.command == "serve":
        import uvicorn

        from flywheel_api.main import create_app

        uvicorn.run(
            create_app(runtime),
            host=args.host or settings.webhook_host,
            port=args.port or settings.webhook_port,
        )
        return 0

    if args.command == "history":
        _print_json({"epochs": runtime.store.recent_epochs(args.limit)})
        return 0

    return 1


if __name__ == "__main__":
    raise SystemExit(main())
