"""
HTTP layer: routers, endpoints and exception handlers.
"""
