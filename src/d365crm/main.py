"""
D365 CRM Proxy

Main entry point: REST API (FastAPI/uvicorn) or MCP server over stdio.
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional
import structlog

from .config import get_settings, load_dotenv_if_exists


def configure_logging(level: str = "info", json_logs: bool = False) -> None:
    """Configure structlog on top of the stdlib logging module"""
    log_level = getattr(logging, level.upper())
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=log_level)
    logging.getLogger().setLevel(log_level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


logger = structlog.get_logger(__name__)


def main() -> Optional[int]:
    """Main entry point with command line argument parsing"""
    # Load environment variables
    load_dotenv_if_exists()

    parser = argparse.ArgumentParser(description="D365 CRM Proxy")
    parser.add_argument(
        "--mode",
        choices=["api", "mcp"],
        default="api",
        help="Run the REST API (default) or the MCP server over stdio",
    )
    parser.add_argument("--host", default=None, help="REST bind address (default: HOST or 0.0.0.0)")
    parser.add_argument("--port", type=int, default=None, help="REST port (default: PORT or 8000)")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["debug", "info", "warning", "error"],
        help="Log level (default: LOG_LEVEL or info)",
    )
    parser.add_argument(
        "--validate-config", action="store_true", help="Validate configuration and exit"
    )

    args = parser.parse_args()

    settings = get_settings()
    configure_logging(args.log_level or settings.log_level, json_logs=settings.is_production)

    # Imported after logging is configured so module loggers pick it up
    from .server_factory import ServerFactory, ServerValidator

    if args.validate_config:
        valid = asyncio.run(ServerValidator.validate_configuration(settings))
        return 0 if valid else 1

    if args.mode == "mcp":
        try:
            mcp = asyncio.run(ServerFactory.create_mcp_server())
        except Exception as e:
            logger.error("Failed to initialize server", error=str(e))
            return 1

        # Keep stdout clean for the stdio transport
        logging.disable(logging.CRITICAL)
        mcp.run(transport="stdio")
        return 0

    import uvicorn
    from .api import create_app

    host = args.host or settings.host
    port = args.port or settings.port
    logger.info("Starting REST API", host=host, port=port, app_env=settings.app_env)
    uvicorn.run(create_app(), host=host, port=port, log_level=(args.log_level or settings.log_level).lower())
    return 0


if __name__ == "__main__":
    exit_code = main()
    sys.exit(exit_code or 0)
