"""
Top-level API router.

The segment routes are exposed under ``/api``; liveness and readiness
checks live under ``/health``.
"""

from fastapi import APIRouter

from .endpoints import health, segments

router = APIRouter()

router.include_router(segments.router, prefix="/api", tags=["segments"])
router.include_router(health.router, prefix="/health", tags=["health"])
