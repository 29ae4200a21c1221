"""Tests for RoboHub access token minting and validation."""

import time
from unittest.mock import patch

import pytest
from jose import jwt

from app.core.exceptions import MintError, TokenValidationError
from app.models.claims import VerifiedClaims
from app.services.token_minter import TokenMinter
from tests.mocks.github import TEST_JWT_SECRET, make_oidc_token, make_signing_key


def make_claims(**overrides):
    defaults = {
        "repository": "owner/repo",
        "ref": "refs/heads/main",
        "actor": "github-user",
        "run_id": "1234567890",
        "workflow": "owner/repo/.github/workflows/build.yml@refs/heads/main",
    }
    defaults.update(overrides)
    return VerifiedClaims(**defaults)


def sign(payload, secret=TEST_JWT_SECRET, algorithm="HS256"):
    return jwt.encode(payload, secret, algorithm=algorithm)


class TestTokenMinterMint:
    def test_round_trip(self):
        minter = TokenMinter(TEST_JWT_SECRET, ttl_seconds=600)
        minted = minter.mint(make_claims())
        parsed = minter.validate(minted.token)

        assert parsed.repo == "owner/repo"
        assert parsed.ref == "refs/heads/main"
        assert parsed.actor == "github-user"
        assert parsed.run_id == "1234567890"
        assert parsed.expires_at == parsed.issued_at + 600

    def test_fixed_claims(self):
        minter = TokenMinter(TEST_JWT_SECRET, ttl_seconds=600)
        parsed = minter.validate(minter.mint(make_claims()).token)

        assert parsed.issuer == "robohub-auth"
        assert parsed.subject == "repo:owner/repo"
        assert parsed.audience == "robohub-api"
        assert parsed.scopes == ["ingest:build"]

    def test_signed_with_hs256(self):
        minted = TokenMinter(TEST_JWT_SECRET, ttl_seconds=600).mint(make_claims())
        assert jwt.get_unverified_header(minted.token)["alg"] == "HS256"

    def test_expiry_is_issued_at_plus_ttl(self):
        minter = TokenMinter(TEST_JWT_SECRET, ttl_seconds=900)
        minted = minter.mint(make_claims())

        assert (minted.expires_at - minted.issued_at).total_seconds() == 900
        assert minted.expires_in == 900

    def test_expiry_ignores_inbound_token_expiry(self):
        minter = TokenMinter(TEST_JWT_SECRET, ttl_seconds=600)
        claims = make_claims(expires_at="2000-01-01T00:00:00Z")
        parsed = minter.validate(minter.mint(claims).token)
        assert parsed.expires_at == parsed.issued_at + 600

    def test_unique_jti(self):
        minter = TokenMinter(TEST_JWT_SECRET, ttl_seconds=600)
        jtis = {minter.validate(minter.mint(make_claims()).token).jti for _ in range(50)}
        assert len(jtis) == 50

    def test_empty_secret_rejected(self):
        with pytest.raises(ValueError):
            TokenMinter("", ttl_seconds=600)

    def test_signing_failure_raises_mint_error(self):
        from jose.exceptions import JWTError

        minter = TokenMinter(TEST_JWT_SECRET, ttl_seconds=600)
        with patch("app.services.token_minter.jwt.encode", side_effect=JWTError("boom")):
            with pytest.raises(MintError) as exc_info:
                minter.mint(make_claims())

        assert exc_info.value.error_code == "internal_error"
        assert exc_info.value.client_message == "failed to create access token"


class TestTokenMinterValidate:
    def test_wrong_secret(self):
        minted = TokenMinter("secret-a", ttl_seconds=600).mint(make_claims())
        with pytest.raises(TokenValidationError):
            TokenMinter("secret-b", ttl_seconds=600).validate(minted.token)

    def test_expired(self):
        now = int(time.time())
        token = sign({"iss": "robohub-auth", "iat": now - 1200, "exp": now - 600, "repo": "owner/repo"})
        with pytest.raises(TokenValidationError):
            TokenMinter(TEST_JWT_SECRET, ttl_seconds=600).validate(token)

    def test_missing_exp(self):
        token = sign({"iss": "robohub-auth", "repo": "owner/repo"})
        with pytest.raises(TokenValidationError):
            TokenMinter(TEST_JWT_SECRET, ttl_seconds=600).validate(token)

    def test_rsa_token_rejected(self):
        token = make_oidc_token(key=make_signing_key())
        with pytest.raises(TokenValidationError, match="unexpected signing method"):
            TokenMinter(TEST_JWT_SECRET, ttl_seconds=600).validate(token)

    @pytest.mark.parametrize("algorithm", ["HS384", "HS512"])
    def test_other_hmac_algorithms_accepted(self, algorithm):
        now = int(time.time())
        token = sign({"repo": "owner/repo", "iat": now, "exp": now + 60}, algorithm=algorithm)
        parsed = TokenMinter(TEST_JWT_SECRET, ttl_seconds=600).validate(token)
        assert parsed.repo == "owner/repo"

    def test_garbage(self):
        with pytest.raises(TokenValidationError):
            TokenMinter(TEST_JWT_SECRET, ttl_seconds=600).validate("not.a.token")

    def test_mistyped_claims_fall_back_to_defaults(self):
        now = int(time.time())
        token = sign(
            {
                "iss": 123,
                "sub": ["repo:owner/repo"],
                "aud": ["robohub-api"],
                "iat": "yesterday",
                "exp": now + 60,
                "jti": None,
                "repo": "owner/repo",
                "ref": 42,
                "actor": {"login": "user"},
                "run_id": 1234567890,
                "scopes": ["ingest:build", 7, None],
                "new_claim": "ignored",
            }
        )
        parsed = TokenMinter(TEST_JWT_SECRET, ttl_seconds=600).validate(token)

        assert parsed.issuer == ""
        assert parsed.subject == ""
        assert parsed.audience == ""
        assert parsed.issued_at == 0
        assert parsed.expires_at == now + 60
        assert parsed.jti == ""
        assert parsed.repo == "owner/repo"
        assert parsed.ref == ""
        assert parsed.actor == ""
        assert parsed.run_id == ""
        assert parsed.scopes == ["ingest:build"]
