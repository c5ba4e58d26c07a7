"""Entry point for the Segment API server.

Serves the FastAPI application with uvicorn on ``HOST``:``PORT``
(``0.0.0.0:80`` unless overridden).  The database location is read from
``DATABASE_URL`` once, when the application starts.

On SIGINT or SIGTERM uvicorn stops accepting connections, waits for
in-flight requests to finish and then runs the application's shutdown
hook, which disposes of the database pool.

Usage:
    python run.py
"""
import asyncio
import logging

from uvicorn import Config, Server

from segment_api.app.core.config import settings
from segment_api.app.core.logging_config import setup_logging
from segment_api.app.main import app


async def main() -> None:
    config = Config(
        app=app,
        host=settings.host,
        port=settings.port,
        reload=False,
        log_level=settings.log_level.lower(),
    )
    # Config re-applies uvicorn's own logging setup; restore our levels.
    setup_logging(settings.log_level, settings.log_file or None)
    server = Server(config)
    await server.serve()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        logging.getLogger("segment_api.run").info("shutting down")
