"""Main application entry point: serves the rent invoice API and its scheduler."""

import argparse
import logging

import uvicorn
from dotenv import load_dotenv

from src.config.settings import settings
from src.services.logging import setup_server_logging

# Load environment variables
load_dotenv()

# Configure logging (with file logging)
setup_server_logging(settings.log_file, settings.log_level)
logger = logging.getLogger(__name__)


def run_server(host: str = "0.0.0.0", port: int = 8000) -> None:
    """Run the API server; the app lifespan starts the daily scheduler."""
    from src.api.app import app

    logger.info("Starting Uvicorn server on %s:%d...", host, port)
    logger.info(
        "Scheduler %s (daily at %02d:00 %s)",
        "enabled" if settings.scheduler_enabled else "disabled",
        settings.scheduler_run_hour,
        settings.scheduler_timezone,
    )
    uvicorn.run(app, host=host, port=port, log_level=settings.log_level.lower())


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Rent Invoice Service")
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to")

    args = parser.parse_args()
    run_server(args.host, args.port)


if __name__ == "__main__":
    main()
