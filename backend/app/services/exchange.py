"""
Token exchange pipeline.

Runs Verify -> RateLimit -> Policy -> Mint for one OIDC token. A stage is
never invoked once an earlier stage has failed. Every failure is raised as a
TokenExchangeError carrying the error code the transport layer returns.
"""

import logging
from dataclasses import dataclass

from app.core.exceptions import (
    InternalError,
    InvalidRequestError,
    JWKSFetchError,
    PolicyViolationError,
    RateLimitedError,
    TokenExchangeError,
    VerificationError,
)
from app.core.metrics import policy_denials_total, token_exchanges_total
from app.models.claims import VerifiedClaims
from app.services.oidc.verifier import Verifier
from app.services.policy import PolicyEnforcer
from app.services.ratelimit import RateLimiter
from app.services.token_minter import MintedToken, TokenMinter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExchangeResult:
    claims: VerifiedClaims
    minted: MintedToken


class TokenExchangeService:
    def __init__(
        self,
        verifier: Verifier,
        limiter: RateLimiter,
        policy: PolicyEnforcer,
        minter: TokenMinter,
    ):
        self.verifier = verifier
        self.limiter = limiter
        self.policy = policy
        self.minter = minter

    async def exchange(self, oidc_token: str) -> ExchangeResult:
        """
        Exchange a GitHub Actions OIDC token for a RoboHub access token.

        Raises:
            TokenExchangeError: (or a subclass) describing the failed stage.
        """
        try:
            result = await self._run(oidc_token)
        except TokenExchangeError as e:
            token_exchanges_total.labels(result=e.error_code).inc()
            raise
        except Exception as e:
            logger.exception(f"Unexpected error during token exchange: {e}")
            token_exchanges_total.labels(result=InternalError.error_code).inc()
            raise InternalError() from e

        token_exchanges_total.labels(result="issued").inc()
        return result

    async def _run(self, oidc_token: str) -> ExchangeResult:
        if not oidc_token:
            logger.warning("Missing oidc_token")
            raise InvalidRequestError("missing oidc_token field")

        # 1. Verify
        try:
            claims = await self.verifier.verify(oidc_token)
        except JWKSFetchError as e:
            # Upstream dependency failure, reported to the caller as a bad token
            logger.error(f"Failed to fetch JWKS while verifying OIDC token: {e}")
            raise
        except VerificationError as e:
            logger.warning(f"Failed to verify OIDC token ({type(e).__name__}): {e}")
            raise

        logger.info(
            f"Verified OIDC token: repository={claims.repository} ref={claims.ref} "
            f"actor={claims.actor} run_id={claims.run_id}"
        )

        # 2. Rate limit
        if not self.limiter.allow(claims.repository):
            logger.warning(f"Rate limit exceeded for {claims.repository}")
            raise RateLimitedError(claims.repository)

        # 3. Policy
        decision = self.policy.evaluate(claims.repository, claims.ref)
        if not decision.allowed:
            policy_denials_total.labels(reason=decision.reason.name.lower()).inc()
            logger.warning(f"Policy violation for {claims.repository} at {claims.ref}: {decision.message}")
            raise PolicyViolationError(decision)

        # 4. Mint (MintError is logged by the minter)
        minted = self.minter.mint(claims)

        logger.info(f"Issued access token for {claims.repository}, expires in {minted.expires_in}s")
        return ExchangeResult(claims=claims, minted=minted)
