"""
Pydantic schema definitions for API payloads.

Schemas are kept apart from the storage layer so that the wire format
can change without touching SQL.
"""
