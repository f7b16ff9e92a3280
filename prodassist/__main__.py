"""
ProdAssist Main Entry Point

Run the ProdAssist API server.
"""

import argparse

from prodassist.core.config import get_settings
from prodassist.core.logging_config import LogLevel, get_logger, setup_logging


def main():
    """Main entry point for the ProdAssist service."""
    settings = get_settings()

    parser = argparse.ArgumentParser(
        description="ProdAssist - Arc pre-production planning service"
    )

    parser.add_argument(
        "--host",
        type=str,
        default=settings.host,
        help=f"Host for the API server (default: {settings.host})"
    )

    parser.add_argument(
        "--port",
        type=int,
        default=settings.port,
        help=f"Port for the API server (default: {settings.port})"
    )

    parser.add_argument(
        "--reload",
        action="store_true",
        help="Reload the server on code changes"
    )

    parser.add_argument(
        "--log-level",
        type=str.upper,
        default=settings.log_level.upper(),
        choices=[level.name for level in LogLevel],
        help="Minimum log level"
    )
    parser.add_argument(
        "--log-file",
        default=settings.log_file,
        help="Also write logs to this file"
    )

    args = parser.parse_args()

    setup_logging(LogLevel.from_name(args.log_level), log_file=args.log_file)
    logger = get_logger("main")
    logger.info(f"Starting ProdAssist on {args.host}:{args.port}")

    from prodassist.api.main import start_server
    start_server(host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
