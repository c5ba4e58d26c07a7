"""
Top-level package for the Segment API.

The HTTP application lives in ``segment_api.app``; ``segment_api.client``
is a small client for talking to a running instance.
"""

__all__ = []
