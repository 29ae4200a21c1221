"""
Schema Exports

Centralized export of the Pydantic models used by the HTTP API.
"""

from app.schemas.auth import (
    AuthRequest,
    AuthResponse,
    ErrorResponse,
    SubjectDetails,
)

__all__ = [
    "AuthRequest",
    "AuthResponse",
    "ErrorResponse",
    "SubjectDetails",
]
