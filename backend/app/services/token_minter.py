import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List

from jose import jwt
from jose.exceptions import JWTError

from app.core.constants import (
    SUBJECT_PREFIX,
    TOKEN_ALGORITHM,
    TOKEN_AUDIENCE,
    TOKEN_HMAC_ALGORITHMS,
    TOKEN_ISSUER,
    TOKEN_SCOPES,
)
from app.core.exceptions import MintError, TokenValidationError
from app.models.claims import AccessTokenClaims, VerifiedClaims

logger = logging.getLogger(__name__)

# Signature and expiry are enforced; everything else is read leniently
_VALIDATE_OPTIONS = {
    "verify_signature": True,
    "verify_exp": True,
    "require_exp": True,
    "verify_aud": False,
    "verify_iat": False,
    "verify_nbf": False,
    "verify_iss": False,
    "verify_sub": False,
    "verify_jti": False,
    "verify_at_hash": False,
}


@dataclass(frozen=True)
class MintedToken:
    token: str
    issued_at: datetime
    expires_at: datetime

    @property
    def expires_in(self) -> int:
        return int((self.expires_at - self.issued_at).total_seconds())


def _string(claims: Dict[str, Any], name: str) -> str:
    value = claims.get(name)
    return value if isinstance(value, str) else ""


def _integer(claims: Dict[str, Any], name: str) -> int:
    value = claims.get(name)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return int(value)


def _string_list(claims: Dict[str, Any], name: str) -> List[str]:
    value = claims.get(name)
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


class TokenMinter:
    """
    Mints and validates RoboHub access tokens (HS256, shared secret).

    Tokens are not recorded anywhere; validation is purely signature based.
    """

    def __init__(self, secret: str, ttl_seconds: int):
        if not secret:
            raise ValueError("Token signing secret must not be empty")
        self._secret = secret
        self.ttl_seconds = ttl_seconds

    def mint(self, claims: VerifiedClaims) -> MintedToken:
        """
        Raises:
            MintError: The token could not be signed.
        """
        issued_at = int(time.time())
        expires_at = issued_at + self.ttl_seconds

        to_encode = {
            "iss": TOKEN_ISSUER,
            "sub": f"{SUBJECT_PREFIX}{claims.repository}",
            "aud": TOKEN_AUDIENCE,
            "iat": issued_at,
            "exp": expires_at,
            "jti": str(uuid.uuid4()),
            "repo": claims.repository,
            "ref": claims.ref,
            "actor": claims.actor,
            "run_id": claims.run_id,
            "scopes": list(TOKEN_SCOPES),
        }

        try:
            token = jwt.encode(to_encode, self._secret, algorithm=TOKEN_ALGORITHM)
        except JWTError as e:
            logger.error(f"Failed to sign access token for {claims.repository}: {e}")
            raise MintError(f"failed to sign token: {e}") from e

        return MintedToken(
            token=token,
            issued_at=datetime.fromtimestamp(issued_at, tz=timezone.utc),
            expires_at=datetime.fromtimestamp(expires_at, tz=timezone.utc),
        )

    def validate(self, token: str) -> AccessTokenClaims:
        """
        Verify a RoboHub access token and return its claims.

        Claims with an unexpected type fall back to their defaults. A bad
        signature, a non-HMAC algorithm or an expired token always fail.

        Raises:
            TokenValidationError: If the token is not valid.
        """
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as e:
            raise TokenValidationError(f"failed to parse token: {e}") from e

        algorithm = header.get("alg")
        if algorithm not in TOKEN_HMAC_ALGORITHMS:
            raise TokenValidationError(f"unexpected signing method: {algorithm!r}")

        try:
            claims = jwt.decode(token, self._secret, algorithms=[algorithm], options=_VALIDATE_OPTIONS)
        except JWTError as e:
            raise TokenValidationError(f"failed to parse token: {e}") from e

        return AccessTokenClaims(
            issuer=_string(claims, "iss"),
            subject=_string(claims, "sub"),
            audience=_string(claims, "aud"),
            issued_at=_integer(claims, "iat"),
            expires_at=_integer(claims, "exp"),
            jti=_string(claims, "jti"),
            repo=_string(claims, "repo"),
            ref=_string(claims, "ref"),
            actor=_string(claims, "actor"),
            run_id=_string(claims, "run_id"),
            scopes=_string_list(claims, "scopes"),
        )
