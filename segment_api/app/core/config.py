"""
Simple configuration management.

The ``Settings`` dataclass reads configuration directly from environment
variables; defaults are provided for all fields.  The database is a
single SQLite file whose location comes from ``DATABASE_URL``.  Relative
paths are resolved against the working directory by ``core.db``.
"""

import os
from dataclasses import dataclass


@dataclass
class Settings:
    """Application settings loaded from environment variables."""

    project_name: str = os.getenv("PROJECT_NAME", "Segment API")
    api_version: str = os.getenv("API_VERSION", "1.0.0")
    debug: bool = os.getenv("DEBUG", "false").lower() in {"1", "true", "yes"}
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    # Optional path of a log file in addition to the console handler.
    log_file: str = os.getenv("LOG_FILE", "")

    # Path to the SQLite database file.  Read once at startup.
    database_url: str = os.getenv("DATABASE_URL", "segments.db")

    # Number of pooled connections shared by all requests.
    db_pool_size: int = int(os.getenv("DB_POOL_SIZE", "5"))

    # Deadline, in seconds, for a single store operation including the
    # wait for a free connection.
    db_timeout: float = float(os.getenv("DB_TIMEOUT", "5"))

    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "80"))


# Instantiate settings once so other modules can import it without
# repeatedly reading environment variables.  Environment variables must be
# set before this module is imported.
settings = Settings()
