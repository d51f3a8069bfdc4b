"""Main application entry point."""

import logging

import uvicorn
from dotenv import load_dotenv

from src.services.logging import setup_server_logging

# Load environment variables before settings are first read
load_dotenv()


def main():
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="School billing ledger API")
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    parser.add_argument("--log-file", default=None, help="Log file (default: LOG_FILE setting)")
    parser.add_argument("--log-level", default=None, help="Log level (default: LOG_LEVEL setting)")
    args = parser.parse_args()

    from src.services.config import get_settings

    settings = get_settings()
    level = setup_server_logging(args.log_file or settings.log_file, args.log_level)
    logger = logging.getLogger(__name__)

    from src.api.app import app

    logger.info("Starting Uvicorn server on %s:%s...", args.host, args.port)
    uvicorn.run(app, host=args.host, port=args.port, log_level=logging.getLevelName(level).lower())


if __name__ == "__main__":
    main()
