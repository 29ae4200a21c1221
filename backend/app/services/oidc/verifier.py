import logging
import math
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from jose import jwt
from jose.exceptions import JWTError

from app.core.constants import (
    JOB_WORKFLOW_REF_CLAIM,
    JWKS_FETCH_TIMEOUT_SECONDS,
    OIDC_ALLOWED_ALGORITHMS,
    WORKFLOW_REF_CLAIM,
)
from app.core.exceptions import (
    AudienceError,
    IssuerMismatchError,
    MalformedTokenError,
    MissingClaimError,
    SignatureError,
    TokenExpiredError,
    TokenNotYetValidError,
    UnsupportedAlgorithmError,
)
from app.models.claims import VerifiedClaims
from app.services.oidc.jwks import JWKSCache

logger = logging.getLogger(__name__)

# Signature only; every claim is checked explicitly below
_DECODE_OPTIONS = {
    "verify_signature": True,
    "verify_aud": False,
    "verify_iat": False,
    "verify_exp": False,
    "verify_nbf": False,
    "verify_iss": False,
    "verify_sub": False,
    "verify_jti": False,
    "verify_at_hash": False,
}


class Verifier(ABC):
    """Verifies an inbound OIDC token and returns its normalized claims."""

    @abstractmethod
    async def verify(self, token: str) -> VerifiedClaims:
        """
        Raises:
            VerificationError: (or a subclass) if the token is not acceptable.
        """


# =============================================================================
# Claim decoding
# =============================================================================


def extract_audience(value: Any) -> List[str]:
    """Normalize the 'aud' claim to a list of strings.

    Non-string items of a list are ignored. Any other type is rejected.
    """
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [item for item in value if isinstance(item, str)]
    raise AudienceError(f"invalid audience type: {type(value).__name__}", unsupported_type=True)


def extract_run_id(value: Any) -> Optional[str]:
    """Render the 'run_id' claim as a decimal string.

    Integers are rendered exactly. Floats lose their fractional part. Returns
    None for anything that is not a usable identifier.
    """
    # bool is an int subclass
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value or None
    if isinstance(value, int):
        return str(value) if value >= 0 else None
    if isinstance(value, float):
        if not math.isfinite(value) or value < 0:
            return None
        return str(int(value))
    return None


def extract_string(claims: Dict[str, Any], name: str) -> Optional[str]:
    value = claims.get(name)
    if isinstance(value, str) and value:
        return value
    return None


def extract_workflow(claims: Dict[str, Any]) -> Optional[str]:
    """Return 'workflow_ref', or 'job_workflow_ref' when the former is absent.

    A 'workflow_ref' that is present but empty is not replaced.
    """
    value = claims.get(WORKFLOW_REF_CLAIM)
    if isinstance(value, str):
        return value or None
    return extract_string(claims, JOB_WORKFLOW_REF_CLAIM)


def extract_numeric_date(claims: Dict[str, Any], name: str) -> Optional[float]:
    """Return a NumericDate claim, None if absent.

    Raises:
        MissingClaimError: The claim is present but not a finite number, or
            lies outside the range a datetime can represent.
    """
    if name not in claims:
        return None
    value = claims[name]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MissingClaimError(name)
    if isinstance(value, float) and not math.isfinite(value):
        raise MissingClaimError(name)
    try:
        to_datetime(value)
    except (OverflowError, OSError, ValueError) as e:
        raise MissingClaimError(name) from e
    return float(value)


def to_datetime(value: Optional[float]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


# =============================================================================
# GitHub Actions
# =============================================================================


class GitHubVerifier(Verifier):
    """
    Verifies GitHub Actions OIDC tokens.

    Validation order:
    1. Header algorithm must be RSA (before any key lookup)
    2. Signing key resolved by kid through the JWKS cache
    3. Signature
    4. Issuer, audience, expiry and not-before (with clock skew leeway)
    5. Required claims: repository, ref, actor, run_id, workflow
    """

    def __init__(
        self,
        issuer: str,
        audience: str,
        clock_skew_seconds: float,
        jwks_cache: JWKSCache,
        clock: Callable[[], float] = time.time,
    ):
        self.issuer = issuer
        self.audience = audience
        self.clock_skew = clock_skew_seconds
        self.jwks_cache = jwks_cache
        self._clock = clock

    @classmethod
    def create(
        cls,
        issuer: str,
        audience: str,
        clock_skew_seconds: float,
        jwks_ttl_seconds: float,
        fetch_timeout: float = JWKS_FETCH_TIMEOUT_SECONDS,
        jwks_url: Optional[str] = None,
    ) -> "GitHubVerifier":
        """Build a verifier with its own JWKS cache, by default at `<issuer>/.well-known/jwks`."""
        jwks_url = jwks_url or f"{issuer.rstrip('/')}/.well-known/jwks"
        return cls(
            issuer=issuer,
            audience=audience,
            clock_skew_seconds=clock_skew_seconds,
            jwks_cache=JWKSCache(jwks_url, jwks_ttl_seconds, timeout=fetch_timeout),
        )

    async def verify(self, token: str) -> VerifiedClaims:
        # 1. Unverified header
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as e:
            raise MalformedTokenError(f"malformed token header: {e}") from e

        algorithm = header.get("alg")
        if algorithm not in OIDC_ALLOWED_ALGORITHMS:
            raise UnsupportedAlgorithmError(algorithm)

        kid = header.get("kid")
        if not isinstance(kid, str) or not kid:
            raise MalformedTokenError("missing or invalid kid in token header")

        # 2. Signing key (KeyNotFoundError / JWKSFetchError propagate)
        cached_key = await self.jwks_cache.get_key(kid)

        # 3. Signature
        try:
            claims = jwt.decode(
                token,
                cached_key.key_for(algorithm),
                algorithms=[algorithm],
                options=_DECODE_OPTIONS,
            )
        except JWTError as e:
            raise SignatureError(f"failed to verify token signature: {e}") from e

        # 4. Issuer, audience, validity window
        issuer = claims.get("iss")
        if not isinstance(issuer, str) or issuer != self.issuer:
            raise IssuerMismatchError(f"invalid issuer: expected {self.issuer}, got {issuer!r}")

        audiences = extract_audience(claims.get("aud"))
        if self.audience not in audiences:
            raise AudienceError(f"audience does not match: expected {self.audience}")

        issued_at, expires_at = self._check_validity_window(claims)

        # 5. Required claims
        repository = extract_string(claims, "repository")
        if repository is None:
            raise MissingClaimError("repository")

        ref = extract_string(claims, "ref")
        if ref is None:
            raise MissingClaimError("ref")

        actor = extract_string(claims, "actor")
        if actor is None:
            raise MissingClaimError("actor")

        run_id = extract_run_id(claims.get("run_id"))
        if run_id is None:
            raise MissingClaimError("run_id")

        workflow = extract_workflow(claims)
        if workflow is None:
            raise MissingClaimError(WORKFLOW_REF_CLAIM)

        logger.debug(f"Verified OIDC token for {repository} signed with key {kid}")
        return VerifiedClaims(
            repository=repository,
            ref=ref,
            actor=actor,
            run_id=run_id,
            workflow=workflow,
            issued_at=to_datetime(issued_at),
            expires_at=to_datetime(expires_at),
        )

    def _check_validity_window(self, claims: Dict[str, Any]):
        now = self._clock()

        expires_at = extract_numeric_date(claims, "exp")
        if expires_at is None:
            raise MissingClaimError("exp")
        if now >= expires_at + self.clock_skew:
            raise TokenExpiredError("token is expired")

        not_before = extract_numeric_date(claims, "nbf")
        if not_before is not None and now < not_before - self.clock_skew:
            raise TokenNotYetValidError("token is not valid yet")

        # iat is informational only
        try:
            issued_at = extract_numeric_date(claims, "iat")
        except MissingClaimError:
            logger.debug(f"Ignoring unusable iat claim: {claims.get('iat')!r}")
            issued_at = None
        return issued_at, expires_at
