"""
Shared Constants

Centralized constants used across the application to ensure consistency.
"""

from typing import FrozenSet, List

# =============================================================================
# Inbound OIDC tokens
# =============================================================================

# GitHub signs Actions OIDC tokens with RSA keys. Anything else is rejected
# before a key lookup happens.
OIDC_ALLOWED_ALGORITHMS: FrozenSet[str] = frozenset({"RS256", "RS384", "RS512"})

# Only RSA entries of the published key set are usable
JWKS_SUPPORTED_KEY_TYPE = "RSA"

# Fail fast if the identity provider is unreachable
JWKS_FETCH_TIMEOUT_SECONDS: float = 5.0

# Primary and fallback claim names for the workflow reference
WORKFLOW_REF_CLAIM = "workflow_ref"
JOB_WORKFLOW_REF_CLAIM = "job_workflow_ref"

# =============================================================================
# Outbound RoboHub access tokens
# =============================================================================

TOKEN_ISSUER = "robohub-auth"
TOKEN_AUDIENCE = "robohub-api"
TOKEN_ALGORITHM = "HS256"
TOKEN_HMAC_ALGORITHMS: FrozenSet[str] = frozenset({"HS256", "HS384", "HS512"})
TOKEN_SCOPES: List[str] = ["ingest:build"]
TOKEN_TYPE = "Bearer"
SUBJECT_PREFIX = "repo:"
SUBJECT_PROVIDER = "github_actions"

# =============================================================================
# Policy
# =============================================================================

BRANCH_REF_PREFIX = "refs/heads/"

# =============================================================================
# Transport error codes
# =============================================================================

ERROR_INVALID_REQUEST = "invalid_request"
ERROR_INVALID_TOKEN = "invalid_token"
ERROR_RATE_LIMITED = "rate_limited"
ERROR_POLICY_VIOLATION = "policy_violation"
ERROR_INTERNAL = "internal_error"
