"""Command line entry point.

Run a script file and print the resulting run::

    python -m stepshot run script.json --backend simulated

or serve the HTTP API::

    python -m stepshot serve --port 5000
"""

from __future__ import annotations

import argparse
import json
import logging
import time
from pathlib import Path
from typing import Optional, Sequence

from stepshot.config import BACKEND_CHOICES, RunnerConfig, load_config
from stepshot.models import RunStatus, load_script
from stepshot.service import RunService

log = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="stepshot", description="Execute browser step scripts")
    parser.add_argument("--config", type=Path, default=None, help="Path to a stepshot.toml file")
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Execute a script file and print the run")
    run_parser.add_argument("script", type=Path, help="JSON script with a steps array")
    run_parser.add_argument("--backend", choices=BACKEND_CHOICES, default=None)
    run_parser.add_argument(
        "--continue-on-error",
        action="store_true",
        help="Keep executing after a failed step regardless of the script settings",
    )
    run_parser.add_argument("--poll", type=float, default=0.2, help="Polling interval in seconds")

    serve_parser = subparsers.add_parser("serve", help="Serve the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=5000)
    serve_parser.add_argument("--debug", action="store_true")
    return parser


def _configure(args: argparse.Namespace) -> RunnerConfig:
    config = load_config(args.config)
    if getattr(args, "backend", None):
        config.backend = args.backend
    if args.log_level:
        config.log_level = args.log_level.upper()
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return config


def _run_script(args: argparse.Namespace, config: RunnerConfig) -> int:
    try:
        content = args.script.read_text(encoding="utf-8")
    except OSError as exc:
        log.error("Cannot read %s: %s", args.script, exc)
        return 2

    document, reason = load_script(content)
    if args.continue_on_error:
        settings = document.settings.model_copy(update={"continue_on_error": True})
        document = document.model_copy(update={"settings": settings})

    service = RunService(config)
    try:
        note = f"Script content rejected: {reason}" if reason else None
        run_id = service.create_run(args.script.stem, document, note=note)
        run = service.get_run(run_id)
        while run is not None and not run.status.is_terminal:
            time.sleep(args.poll)
            run = service.get_run(run_id)
    finally:
        service.shutdown()

    if run is None:
        log.error("Run %s disappeared from the registry", run_id)
        return 1
    print(json.dumps(run.as_dict(), indent=2, ensure_ascii=False))
    return 0 if run.status is RunStatus.COMPLETED else 1


def _serve(args: argparse.Namespace, config: RunnerConfig) -> int:
    from web.app import create_app

    app = create_app(config=config)
    try:
        app.run(host=args.host, port=args.port, debug=args.debug, use_reloader=False)
    finally:
        app.extensions["stepshot"].shutdown()
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    config = _configure(args)
    if args.command == "run":
        return _run_script(args, config)
    return _serve(args, config)


if __name__ == "__main__":  # pragma: no cover - manual run helper
    raise SystemExit(main())
