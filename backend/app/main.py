import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI

from app.api import auth, health
from app.core.config import Settings, settings
from app.core.logging_config import setup_logging
from app.core.metrics import APP_VERSION, PrometheusMiddleware, metrics_endpoint
from app.services.exchange import TokenExchangeService
from app.services.oidc.verifier import GitHubVerifier, Verifier
from app.services.policy import PolicyEnforcer
from app.services.ratelimit import RateLimiter
from app.services.token_minter import TokenMinter

logger = logging.getLogger(__name__)


def build_exchange_service(app_settings: Settings, verifier: Optional[Verifier] = None) -> TokenExchangeService:
    if verifier is None:
        verifier = GitHubVerifier.create(
            issuer=app_settings.OIDC_ISSUER,
            audience=app_settings.OIDC_AUDIENCE,
            clock_skew_seconds=app_settings.CLOCK_SKEW_SECONDS,
            jwks_ttl_seconds=app_settings.JWKS_TTL_SECONDS,
            fetch_timeout=app_settings.JWKS_FETCH_TIMEOUT_SECONDS,
            jwks_url=app_settings.jwks_url,
        )

    return TokenExchangeService(
        verifier=verifier,
        limiter=RateLimiter(app_settings.RATE_LIMIT_RPS, app_settings.RATE_LIMIT_BURST),
        policy=PolicyEnforcer(
            default_branch_only=app_settings.DEFAULT_BRANCH_ONLY,
            default_branch=app_settings.DEFAULT_BRANCH,
            allow_list=app_settings.repo_allowlist,
            deny_list=app_settings.repo_denylist,
        ),
        minter=TokenMinter(app_settings.JWT_SECRET, app_settings.TOKEN_TTL_SECONDS),
    )


def create_app(app_settings: Optional[Settings] = None, verifier: Optional[Verifier] = None) -> FastAPI:
    """Build the application. `verifier` replaces the GitHub verifier (tests)."""
    app_settings = app_settings or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            f"Starting {app_settings.PROJECT_NAME} {APP_VERSION}: issuer={app_settings.OIDC_ISSUER} "
            f"audience={app_settings.OIDC_AUDIENCE} default_branch_only={app_settings.DEFAULT_BRANCH_ONLY} "
            f"default_branch={app_settings.DEFAULT_BRANCH} token_ttl={app_settings.TOKEN_TTL_SECONDS}s "
            f"rate_limit={app_settings.RATE_LIMIT_RPS}/s burst {app_settings.RATE_LIMIT_BURST}"
        )
        yield
        logger.info(f"{app_settings.PROJECT_NAME} stopped")

    app = FastAPI(
        title=app_settings.PROJECT_NAME,
        description="""
    Exchanges GitHub Actions OIDC tokens for short-lived RoboHub access tokens.

    ## Pipeline
    * **Verify**: signature against GitHub's published keys, issuer, audience and validity window.
    * **Rate limit**: token bucket per repository.
    * **Policy**: repository deny/allow lists and an optional default-branch-only rule.
    * **Mint**: HS256 access token scoped to build ingestion.
    """,
        version=APP_VERSION,
        lifespan=lifespan,
    )
    app.state.exchange_service = build_exchange_service(app_settings, verifier)

    app.add_middleware(PrometheusMiddleware)
    app.add_route("/metrics", metrics_endpoint, include_in_schema=False)

    app.include_router(health.router, tags=["health"])
    app.include_router(auth.router, prefix="/auth", tags=["auth"])

    return app


setup_logging(settings.LOG_LEVEL)
app = create_app()


def run() -> None:
    """Console entry point: serve `app` with uvicorn."""
    logger.info(f"Listening on {settings.HOST}:{settings.PORT}")
    uvicorn.run(
        app,
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
        timeout_graceful_shutdown=15,
    )


if __name__ == "__main__":
    run()
