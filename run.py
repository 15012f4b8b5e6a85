"""
Run script for starting the hospital voice bridge server.

This script configures and starts the FastAPI server with WebSocket settings
suited to real-time audio streaming between Exotel and OpenAI.

Usage:
    python run.py [--port PORT] [--host HOST]
"""

import argparse
import sys

import uvicorn

from voicebridge.config import settings
from voicebridge.config.logging_config import configure_logging

# Configure logging
logger = configure_logging()


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Start the hospital voice bridge server")
    parser.add_argument(
        "--port",
        type=int,
        default=settings.PORT,
        help="Port to run the server on (default: 8000 or PORT env var)",
    )
    parser.add_argument(
        "--host",
        default=settings.HOST,
        help="Host to bind the server to (default: 0.0.0.0 or HOST env var)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Uvicorn logging level (default: INFO)",
    )
    return parser.parse_args(argv)


def main():
    """Main entry point for starting the server."""
    args = parse_args()

    if not settings.OPENAI_API_KEY:
        logger.error("OPENAI_API_KEY environment variable not set")
        print("Error: OPENAI_API_KEY environment variable is required")
        sys.exit(1)

    if not (settings.EXOTEL_SID and settings.EXOTEL_API_KEY and settings.EXOTEL_API_TOKEN):
        logger.warning("Exotel credentials not set; call transfers will be unavailable")

    logger.info(f"Starting server on http://{args.host}:{args.port}")
    logger.info(f"Realtime model: {settings.OPENAI_REALTIME_MODEL}")

    uvicorn.run(
        "voicebridge.main:app",
        host=args.host,
        port=args.port,
        log_level=args.log_level.lower(),
        # Use HTTP/1.1 for lower overhead than HTTP/2
        http="h11",
        # Disable access logs, we have our own logging
        access_log=False,
        reload=settings.ENV.lower() == "development",
    )


if __name__ == "__main__":
    main()
