"""
Auth Schema Definitions

Pydantic models for the token exchange endpoint.
"""

from typing import Optional

from pydantic import BaseModel, Field


class AuthRequest(BaseModel):
    """Token exchange request body."""

    oidc_token: str = Field(..., description="GitHub Actions OIDC token (JWT)")


class SubjectDetails(BaseModel):
    """GitHub Actions context the access token was issued for."""

    provider: str
    repository: str
    ref: str
    workflow: str
    run_id: str
    actor: str


class AuthResponse(BaseModel):
    """Successful token exchange response."""

    access_token: str
    expires_in: int
    token_type: str
    issued_at: str = Field(..., description="RFC 3339 timestamp")
    subject: SubjectDetails


class ErrorResponse(BaseModel):
    """Error response with a machine readable error code."""

    error: str
    message: Optional[str] = None
