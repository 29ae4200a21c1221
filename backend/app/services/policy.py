from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from app.core.constants import BRANCH_REF_PREFIX


class PolicyDenialReason(str, Enum):
    DENYLISTED = "denied by policy"
    NOT_ALLOWLISTED = "not in allowlist"
    BRANCH_NOT_PERMITTED = "only default branch permitted"


@dataclass(frozen=True)
class PolicyDecision:
    allowed: bool
    reason: Optional[PolicyDenialReason] = None
    message: str = ""

    @classmethod
    def allow(cls) -> "PolicyDecision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: PolicyDenialReason, message: str) -> "PolicyDecision":
        return cls(allowed=False, reason=reason, message=message)


def extract_branch(ref: str) -> str:
    """Strip the branch prefix from a ref; other refs (tags, PRs) are returned as-is."""
    if ref.startswith(BRANCH_REF_PREFIX):
        return ref[len(BRANCH_REF_PREFIX) :]
    return ref


class PolicyEnforcer:
    """
    Decides whether a verified repository/ref may receive an access token.

    Checks run in order and the first failure wins:
    1. Denylist (exact, case-sensitive match) - takes precedence over the allowlist
    2. Allowlist, if non-empty
    3. Default branch only, if enabled (exact ref comparison)
    """

    def __init__(
        self,
        default_branch_only: bool = False,
        default_branch: str = "main",
        allow_list: Optional[Iterable[str]] = None,
        deny_list: Optional[Iterable[str]] = None,
    ):
        self.default_branch_only = default_branch_only
        self.default_branch = default_branch
        self.allow_list = frozenset(allow_list or ())
        self.deny_list = frozenset(deny_list or ())

    @property
    def expected_ref(self) -> str:
        return f"{BRANCH_REF_PREFIX}{self.default_branch}"

    def evaluate(self, repository: str, ref: str) -> PolicyDecision:
        if repository in self.deny_list:
            return PolicyDecision.deny(
                PolicyDenialReason.DENYLISTED,
                f"repository {repository} is denied by policy",
            )

        if self.allow_list and repository not in self.allow_list:
            return PolicyDecision.deny(
                PolicyDenialReason.NOT_ALLOWLISTED,
                f"repository {repository} is not in allowlist",
            )

        if self.default_branch_only and ref != self.expected_ref:
            return PolicyDecision.deny(
                PolicyDenialReason.BRANCH_NOT_PERMITTED,
                f"only default branch {self.expected_ref} is permitted, got {ref}",
            )

        return PolicyDecision.allow()

    def is_default_branch(self, ref: str) -> bool:
        return ref == self.expected_ref
