"""
Shared test fixtures and configuration.

Environment variables are set BEFORE any app imports so the settings
singleton never depends on the developer's environment.
"""

import os
import sys

# Ensure the backend app is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

# Override settings before any app code imports the settings singleton
os.environ["ROBOHUB_JWT_SECRET"] = "test-jwt-secret-for-unit-tests"
os.environ["ROBOHUB_OIDC_ISSUER"] = "https://token.actions.githubusercontent.com"
os.environ["ROBOHUB_OIDC_AUDIENCE"] = "robohub"
os.environ["ROBOHUB_LOG_LEVEL"] = "WARNING"
os.environ.pop("ROBOHUB_REPO_ALLOWLIST", None)
os.environ.pop("ROBOHUB_REPO_DENYLIST", None)

import pytest  # noqa: E402

from app.services.oidc.jwks import JWKSCache  # noqa: E402
from app.services.oidc.verifier import GitHubVerifier  # noqa: E402
from tests.mocks.github import (  # noqa: E402
    TEST_AUDIENCE,
    TEST_ISSUER,
    TEST_JWKS_URL,
    make_jwks,
    make_signing_key,
)


@pytest.fixture
def signing_key():
    """Standard RSA signing key published in the test JWKS."""
    return make_signing_key("test-key-1")


@pytest.fixture
def other_signing_key():
    """A second key, not published unless a test adds it."""
    return make_signing_key("test-key-2")


@pytest.fixture
def jwks_document(signing_key):
    return make_jwks(signing_key)


@pytest.fixture
def jwks_cache():
    """Fresh cache per test (asyncio locks must not outlive their loop)."""
    return JWKSCache(TEST_JWKS_URL, ttl_seconds=3600)


@pytest.fixture
def verifier(jwks_cache):
    return GitHubVerifier(
        issuer=TEST_ISSUER,
        audience=TEST_AUDIENCE,
        clock_skew_seconds=60,
        jwks_cache=jwks_cache,
    )
