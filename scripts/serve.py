"""Run the HTTP API (and the weekly scheduler) under uvicorn.

Usage:
    python -m scripts.serve

uvicorn handles SIGINT/SIGTERM: it stops accepting connections, then the
application lifespan stops the scheduler and closes the database connection.
An unhandled exception in the event loop takes the same path.
"""

import logging

import uvicorn

from src.config import get_settings


def main() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger(__name__).info("Server running at http://localhost:%d", settings.port)
    uvicorn.run("src.api.main:app", host="0.0.0.0", port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
