"""Command-line entry point: run the service or the terminal client."""

import argparse
import locale
from pathlib import Path

import uvicorn

from proctl.api import create_app
from proctl.app import ProctlApp
from proctl.config import Config, parse_size
from proctl.logging_setup import get_logger, setup_logging

logger = get_logger("cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="proctl", description="List, start and stop processes")
    parser.add_argument("--config", type=Path, default=None, help="JSON config file")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="run the process control API")
    serve.add_argument("--host", default=None, help="bind host (default: from config)")
    serve.add_argument("--port", type=int, default=None, help="bind port (default: from config)")

    ui = sub.add_parser("ui", help="run the terminal client")
    ui.add_argument("--url", default=None, help="service URL (default: from config)")
    return parser


def serve(cfg: Config) -> None:
    setup_logging(
        cfg.logging.level,
        cfg.logging.file,
        max_bytes=parse_size(cfg.logging.max_size),
        backup_count=cfg.logging.backup_count,
    )
    uvicorn.run(
        create_app(config=cfg),
        host=cfg.server.host,
        port=cfg.server.port,
        log_level=cfg.logging.level.lower(),
    )


def run_ui(cfg: Config) -> None:
    # stdout belongs to the terminal UI
    setup_logging(
        cfg.logging.level,
        cfg.logging.file,
        console=False,
        max_bytes=parse_size(cfg.logging.max_size),
        backup_count=cfg.logging.backup_count,
    )
    try:
        locale.setlocale(locale.LC_COLLATE, "")
    except locale.Error as e:
        logger.warning(f"Falling back to default collation: {e}")
    ProctlApp(api_url=cfg.client.api_url, timeout=cfg.client.request_timeout).run()


def main(argv: list[str] | None = None) -> None:
    """Entry point for the proctl command."""
    args = build_parser().parse_args(argv)
    cfg = Config.load(args.config)

    if args.command == "serve":
        if args.host:
            cfg.server.host = args.host
        if args.port:
            cfg.server.port = args.port
        cfg.validate()
        serve(cfg)
    else:
        if args.url:
            cfg.client.api_url = args.url
        cfg.validate()
        run_ui(cfg)


if __name__ == "__main__":
    main()
