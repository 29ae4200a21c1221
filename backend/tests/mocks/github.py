"""Reusable GitHub Actions OIDC mock objects and factory functions.

RSA keys are generated with `cryptography` and tokens are signed with
python-jose, so tests exercise real signatures end to end.
"""

import base64
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Optional

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jose import jwt

TEST_ISSUER = "https://token.actions.githubusercontent.com"
TEST_AUDIENCE = "robohub"
TEST_JWKS_URL = f"{TEST_ISSUER}/.well-known/jwks"
TEST_JWT_SECRET = "test-jwt-secret-for-unit-tests"

# Marker for make_oidc_claims(): drop the claim entirely
REMOVE = object()


def _b64url_uint(value: int) -> str:
    raw = value.to_bytes((value.bit_length() + 7) // 8, "big")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


@dataclass(frozen=True)
class SigningKey:
    kid: str
    private_pem: str
    public_jwk: Dict[str, str]


@lru_cache(maxsize=None)
def make_signing_key(kid: str = "test-key-1") -> SigningKey:
    """Create (once per kid) an RSA key pair with its public JWK."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")

    numbers = private_key.public_key().public_numbers()
    public_jwk = {
        "kty": "RSA",
        "kid": kid,
        "use": "sig",
        "alg": "RS256",
        "n": _b64url_uint(numbers.n),
        "e": _b64url_uint(numbers.e),
    }
    return SigningKey(kid=kid, private_pem=private_pem, public_jwk=public_jwk)


def make_jwks(*keys: SigningKey, extra_entries=None) -> Dict[str, Any]:
    """Build a JWKS document from signing keys (plus raw extra entries)."""
    entries = [dict(key.public_jwk) for key in keys]
    entries.extend(extra_entries or [])
    return {"keys": entries}


def make_oidc_claims(now: Optional[int] = None, **overrides) -> Dict[str, Any]:
    """Create GitHub Actions OIDC claims with sensible defaults.

    Pass `claim=REMOVE` to leave a claim out.
    """
    now = int(time.time()) if now is None else now
    claims = {
        "iss": TEST_ISSUER,
        "aud": TEST_AUDIENCE,
        "sub": "repo:owner/repo:ref:refs/heads/main",
        "iat": now,
        "nbf": now,
        "exp": now + 300,
        "repository": "owner/repo",
        "repository_owner": "owner",
        "ref": "refs/heads/main",
        "actor": "github-user",
        "run_id": "1234567890",
        "workflow_ref": "owner/repo/.github/workflows/build.yml@refs/heads/main",
        "job_workflow_ref": "owner/repo/.github/workflows/build.yml@refs/heads/main",
    }
    for name, value in overrides.items():
        if value is REMOVE:
            claims.pop(name, None)
        else:
            claims[name] = value
    return claims


def make_oidc_token(
    claims: Optional[Dict[str, Any]] = None,
    key: Optional[SigningKey] = None,
    algorithm: str = "RS256",
    headers: Optional[Dict[str, Any]] = None,
) -> str:
    """Sign OIDC claims with an RSA test key (kid taken from the key)."""
    key = key or make_signing_key()
    token_headers = {"kid": key.kid}
    token_headers.update(headers or {})
    return jwt.encode(claims or make_oidc_claims(), key.private_pem, algorithm=algorithm, headers=token_headers)


def make_hmac_token(claims: Dict[str, Any], secret: str, algorithm: str = "HS256", headers=None) -> str:
    """Sign claims with a shared secret (used for algorithm confusion tests)."""
    return jwt.encode(claims, secret, algorithm=algorithm, headers=headers)
