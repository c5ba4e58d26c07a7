"""
Main entrypoint for the Segment API.

This module assembles the FastAPI application.  ``create_app`` builds and
configures the app, which is then instantiated at module import time as
``app`` so it can be served directly, e.g.::

    uvicorn segment_api.app.main:app

Database resources are created on startup rather than at import: the
connection pool is opened, the schema is initialised and checked, and the
store and service are attached to ``app.state``.  The pool is disposed on
shutdown.
"""

import logging
from typing import Optional

from fastapi import FastAPI

from .api.errors import register_exception_handlers
from .api.router import router
from .core.config import Settings, settings
from .core.db import ConnectionPool, init_db
from .core.logging_config import setup_logging
from .services.segment_service import SegmentService
from .storage.segment_store import SegmentStore

logger = logging.getLogger(__name__)


def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    """Create and configure a FastAPI application.

    Parameters
    ----------
    app_settings : Optional[Settings]
        Settings to use instead of the ones read from the environment.

    Returns
    -------
    FastAPI
        A configured FastAPI application instance.
    """
    config = app_settings or settings
    setup_logging(config.log_level, config.log_file or None)

    app = FastAPI(title=config.project_name, version=config.api_version, debug=config.debug)
    app.state.settings = config

    app.include_router(router)
    register_exception_handlers(app)

    @app.on_event("startup")
    async def startup_event() -> None:
        pool = ConnectionPool(config.database_url, size=config.db_pool_size, timeout=config.db_timeout)
        try:
            init_db(pool)
            store = SegmentStore(pool)
            store.verify_constraints()
        except Exception:
            pool.dispose()
            raise
        app.state.pool = pool
        app.state.segment_store = store
        app.state.segment_service = SegmentService(store, timeout=config.db_timeout)
        logger.info("Segment API started with database %s", pool.database)

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        pool = getattr(app.state, "pool", None)
        if pool is not None:
            pool.dispose()
        logger.info("Segment API stopped")

    return app


# Create the application instance at import time so that tools such as
# uvicorn can discover it without calling create_app manually.
app = create_app()
