"""
Exceptions for the token exchange pipeline.

Every pipeline failure is a TokenExchangeError carrying the machine readable
error code and HTTP status the transport layer returns for it:

    InvalidRequestError   -> invalid_request  (400)
    VerificationError     -> invalid_token    (401)
    RateLimitedError      -> rate_limited     (429)
    PolicyViolationError  -> policy_violation (403)
    InternalError         -> internal_error   (500)

VerificationError subclasses name the specific check that failed. They are
logged for operators but never exposed to the caller.
"""

from typing import TYPE_CHECKING, Optional

from app.core.constants import (
    ERROR_INTERNAL,
    ERROR_INVALID_REQUEST,
    ERROR_INVALID_TOKEN,
    ERROR_POLICY_VIOLATION,
    ERROR_RATE_LIMITED,
)

if TYPE_CHECKING:
    from app.services.policy import PolicyDecision


class TokenExchangeError(Exception):
    """Base exception for all pipeline failures."""

    error_code: str = ERROR_INTERNAL
    status_code: int = 500
    public_message: str = "internal error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.public_message)
        self.message = message or self.public_message

    @property
    def client_message(self) -> str:
        """Message safe to return to the caller."""
        return self.public_message


# =============================================================================
# Request shape
# =============================================================================


class InvalidRequestError(TokenExchangeError):
    error_code = ERROR_INVALID_REQUEST
    status_code = 400
    public_message = "invalid request"

    @property
    def client_message(self) -> str:
        return self.message


# =============================================================================
# Verification
# =============================================================================


class VerificationError(TokenExchangeError):
    """The inbound OIDC token could not be verified."""

    error_code = ERROR_INVALID_TOKEN
    status_code = 401
    # Callers never learn which check failed
    public_message = "failed to verify OIDC token"


class MalformedTokenError(VerificationError):
    pass


class UnsupportedAlgorithmError(VerificationError):
    def __init__(self, algorithm: object):
        super().__init__(f"unexpected signing method: {algorithm!r}")
        self.algorithm = algorithm


class KeyNotFoundError(VerificationError):
    def __init__(self, kid: str):
        super().__init__(f"key with kid {kid} not found in JWKS")
        self.kid = kid


class JWKSFetchError(VerificationError):
    """The identity provider's key set could not be fetched.

    Returned to the caller as a plain verification failure, logged as an
    upstream dependency problem.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.upstream_status = status_code


class SignatureError(VerificationError):
    pass


class IssuerMismatchError(VerificationError):
    pass


class AudienceError(VerificationError):
    def __init__(self, message: str, unsupported_type: bool = False):
        super().__init__(message)
        self.unsupported_type = unsupported_type


class TokenExpiredError(VerificationError):
    pass


class TokenNotYetValidError(VerificationError):
    pass


class MissingClaimError(VerificationError):
    def __init__(self, claim: str):
        super().__init__(f"missing or invalid {claim} claim")
        self.claim = claim


# =============================================================================
# Rate limiting and policy
# =============================================================================


class RateLimitedError(TokenExchangeError):
    error_code = ERROR_RATE_LIMITED
    status_code = 429
    public_message = "rate limit exceeded for repository"

    def __init__(self, key: str):
        super().__init__(f"rate limit exceeded for {key}")
        self.key = key


class PolicyViolationError(TokenExchangeError):
    error_code = ERROR_POLICY_VIOLATION
    status_code = 403
    public_message = "denied by policy"

    def __init__(self, decision: "PolicyDecision"):
        super().__init__(decision.message)
        self.decision = decision

    @property
    def client_message(self) -> str:
        # Policy reasons are not sensitive
        return self.message


# =============================================================================
# Internal
# =============================================================================


class InternalError(TokenExchangeError):
    public_message = "internal error"


class MintError(InternalError):
    public_message = "failed to create access token"


class TokenValidationError(Exception):
    """A RoboHub access token failed validation."""
