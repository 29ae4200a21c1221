"""
Pydantic models for verified identity claims and RoboHub access token claims.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class VerifiedClaims(BaseModel):
    """Provider-agnostic identity produced by a successful OIDC verification."""

    model_config = ConfigDict(frozen=True)

    repository: str = Field(..., min_length=1, description="'owner/repo' format")
    ref: str = Field(..., min_length=1, description="e.g. 'refs/heads/main' or 'refs/tags/v1'")
    actor: str = Field(..., min_length=1)
    run_id: str = Field(..., min_length=1)
    workflow: str = Field(..., min_length=1)
    issued_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None


class AccessTokenClaims(BaseModel):
    """Claims decoded from a RoboHub access token.

    Every field has a default so that a validator never fails on a claim it
    does not understand.
    """

    issuer: str = ""
    subject: str = ""
    audience: str = ""
    issued_at: int = 0
    expires_at: int = 0
    jti: str = ""
    repo: str = ""
    ref: str = ""
    actor: str = ""
    run_id: str = ""
    scopes: List[str] = Field(default_factory=list)
