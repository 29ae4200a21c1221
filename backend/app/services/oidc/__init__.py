"""
OIDC verification package.

Verifies identity tokens issued by GitHub Actions against the provider's
published signing keys.
"""

from app.services.oidc.fake import DEFAULT_FAKE_CLAIMS, FakeVerifier
from app.services.oidc.jwks import CachedKey, JWKSCache, parse_jwks
from app.services.oidc.verifier import GitHubVerifier, Verifier

__all__ = [
    "Verifier",
    "GitHubVerifier",
    "FakeVerifier",
    "DEFAULT_FAKE_CLAIMS",
    "JWKSCache",
    "CachedKey",
    "parse_jwks",
]
