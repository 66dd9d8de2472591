"""Entrypoint for the quote duet server and its headless listener."""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Optional

import uvicorn

from .api import create_app
from .client import DEFAULT_URL, listen
from .config import Settings

LOGGER = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="ALVA and Bob quotation duet")
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Python logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Also write logs to this file",
    )
    subparsers = parser.add_subparsers(dest="command")

    serve = subparsers.add_parser("serve", help="Run the websocket/TTS server")
    serve.add_argument("--host", default=None, help="Bind address (default: QUOTE_DUET_HOST)")
    serve.add_argument("--port", type=int, default=None, help="Port (default: QUOTE_DUET_PORT)")

    listen_cmd = subparsers.add_parser("listen", help="Run one conversation without a browser")
    listen_cmd.add_argument("--url", default=DEFAULT_URL, help=f"Websocket URL (default: {DEFAULT_URL})")
    listen_cmd.add_argument(
        "--speed",
        type=float,
        default=1.0,
        help="Playback speed multiplier for the simulated audio",
    )
    listen_cmd.add_argument(
        "--max-messages",
        type=int,
        default=None,
        help="Send STOP_CONVERSATION after this many messages",
    )
    return parser.parse_args(argv)


def configure_logging(level: str, log_file: Optional[str] = None) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
    )


def main(argv: Optional[list[str]] = None) -> None:
    args = parse_args(argv)
    configure_logging(args.log_level, args.log_file)

    try:
        if args.command == "listen":
            lines = asyncio.run(
                listen(args.url, speed=args.speed, max_messages=args.max_messages)
            )
            LOGGER.info("Conversation finished after %d persona lines", lines)
            return

        settings = Settings.from_env()
        host = args.host if getattr(args, "host", None) else settings.host
        port = args.port if getattr(args, "port", None) else settings.port
        LOGGER.info("Starting quote duet server on ws://%s:%d/websocket", host, port)
        uvicorn.run(create_app(settings), host=host, port=port, log_level=args.log_level.lower())
    except KeyboardInterrupt:  # pragma: no cover - graceful shutdown
        LOGGER.info("Interrupted")


if __name__ == "__main__":
    main()
