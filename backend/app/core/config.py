from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


def parse_comma_separated(value: str) -> List[str]:
    """Split a comma separated env value, dropping blanks."""
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


class Settings(BaseSettings):
    PROJECT_NAME: str = "RoboHub Auth"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8080
    LOG_LEVEL: str = "INFO"

    # Secret for signing RoboHub access tokens
    JWT_SECRET: str

    # OIDC
    OIDC_ISSUER: str = "https://token.actions.githubusercontent.com"
    OIDC_AUDIENCE: str = "robohub"
    CLOCK_SKEW_SECONDS: int = 60
    JWKS_TTL_SECONDS: int = 3600
    JWKS_FETCH_TIMEOUT_SECONDS: float = 5.0

    # Policy
    DEFAULT_BRANCH_ONLY: bool = False
    DEFAULT_BRANCH: str = "main"
    REPO_DENYLIST: str = ""
    REPO_ALLOWLIST: str = ""

    # Rate limiting (per repository)
    RATE_LIMIT_RPS: float = 1.0
    RATE_LIMIT_BURST: int = 5

    # Issued tokens
    TOKEN_TTL_SECONDS: int = 600

    model_config = SettingsConfigDict(
        env_prefix="ROBOHUB_",
        case_sensitive=True,
        env_file=".env",
        extra="ignore",
    )

    @property
    def repo_denylist(self) -> List[str]:
        return parse_comma_separated(self.REPO_DENYLIST)

    @property
    def repo_allowlist(self) -> List[str]:
        return parse_comma_separated(self.REPO_ALLOWLIST)

    @property
    def jwks_url(self) -> str:
        return f"{self.OIDC_ISSUER.rstrip('/')}/.well-known/jwks"


settings = Settings()
