"""Run the cache service with uvicorn."""

import os

import uvicorn
from dotenv import load_dotenv

from swr_cache.app import create_app
from swr_cache.config import get_settings

# Load environment variables
load_dotenv(os.path.expanduser("~/.env"))


def main() -> None:
    """Serve the cache on the configured host and port."""
    settings = get_settings()
    uvicorn.run(
        create_app(settings),
        host=settings.server.host,
        port=settings.server.port,
        log_level=settings.logging.level.lower(),
    )


if __name__ == "__main__":
    main()
