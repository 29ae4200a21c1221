from typing import Awaitable, Callable, Optional

from app.models.claims import VerifiedClaims
from app.services.oidc.verifier import Verifier

DEFAULT_FAKE_CLAIMS = VerifiedClaims(
    repository="test/repo",
    ref="refs/heads/main",
    actor="testuser",
    run_id="123456789",
    workflow=".github/workflows/test.yml@refs/heads/main",
)


class FakeVerifier(Verifier):
    """
    Verifier for tests. Returns fixed claims, or delegates to `verify_func`
    when one is given (its result or exception is passed through unchanged).
    """

    def __init__(self, verify_func: Optional[Callable[[str], Awaitable[VerifiedClaims]]] = None):
        self.verify_func = verify_func
        self.calls = 0

    async def verify(self, token: str) -> VerifiedClaims:
        self.calls += 1
        if self.verify_func is not None:
            return await self.verify_func(token)
        return DEFAULT_FAKE_CLAIMS
