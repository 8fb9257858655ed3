"""Entry point: load settings, configure logging, serve the MCP tools."""

import argparse
import logging
import sys

import structlog

from src.config.settings import Settings
from src.server import AssistantApp, create_server


def setup_logging(level: str = "INFO", debug: bool = False) -> None:
    """Configure structlog on top of stdlib logging (stderr only)."""
    log_level = logging.DEBUG if debug else getattr(logging, level.upper(), logging.INFO)

    # stdout belongs to the stdio transport
    logging.basicConfig(level=log_level, format="%(message)s", stream=sys.stderr)

    renderer = (
        structlog.dev.ConsoleRenderer()
        if debug
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Chat history to Google Sheets MCP server")
    parser.add_argument(
        "--transport",
        choices=["stdio", "streamable-http", "sse"],
        default="stdio",
        help="MCP transport to serve on",
    )
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    settings = Settings()  # type: ignore[call-arg]
    setup_logging(settings.log_level, debug=args.debug or settings.debug)

    logger = structlog.get_logger()
    logger.info(
        "Starting MCP server",
        transport=args.transport,
        sheet=settings.sheet_name,
        refresh_enabled=settings.refresh_enabled,
        autosave_every_turns=settings.autosave_every_turns,
        autosave_interval=settings.autosave_interval_seconds,
    )

    mcp = create_server(AssistantApp(settings))
    if args.transport == "stdio":
        mcp.run()
    else:
        mcp.run(transport=args.transport, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
