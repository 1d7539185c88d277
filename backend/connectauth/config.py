"""Application configuration."""

import secrets
from functools import lru_cache
from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Environment
    environment: str = "development"  # development, staging, production

    # Development mode (generates a throwaway session secret) - MUST be False in production
    dev_mode: bool = False

    # Database
    database_url: str = "sqlite+aiosqlite:///./connectauth.db"

    # Sessions issued by the host password-auth subsystem
    session_secret_key: Optional[str] = None
    session_algorithm: str = "HS256"
    session_expiration_days: int = 7
    session_cookie_name: str = "session"

    # Cookie security
    cookie_secure: bool = False  # Set True in production with HTTPS
    cookie_domain: str | None = None

    # URLs
    frontend_url: str = "http://localhost:8910"
    api_url: str = "http://localhost:8911"
    oauth_path: str = "/auth/oauth"
    # Comma-separated origins a `state` return URL may point at (frontend origin always allowed)
    allowed_redirect_origins: str = ""

    # Providers
    enabled_providers: str = "apple,google,github"
    provider_timeout_seconds: float = 10.0

    google_client_id: str = ""
    google_client_secret: str = ""

    github_client_id: str = ""
    github_client_secret: str = ""
    github_scopes: str = "read:user,user:email"

    # Sign in with Apple authenticates with a signed client assertion, not a static secret
    apple_client_id: str = ""
    apple_team_id: str = ""
    apple_key_id: str = ""
    apple_private_key: str = ""  # PEM encoded ES256 key
    apple_response_mode: str = "query"  # query or form_post

    # User table layout of the host auth subsystem
    user_id_field: str = "id"
    user_username_field: str = "username"
    user_email_field: str = "email"
    user_has_email_field: bool = True
    user_password_field: str = "hashed_password"

    # Per-error message overrides, keyed by error code (JSON object in the environment)
    error_messages: dict[str, str] = {}

    # Rate limiting
    rate_limit_enabled: bool = True
    oauth_rate_limit: str = "30/minute"

    # Logging
    log_json: bool = False
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    @model_validator(mode="after")
    def _set_dev_defaults(self) -> "Settings":
        """Generate a random session secret in dev mode; require it otherwise."""
        if self.dev_mode:
            if not self.session_secret_key:
                self.session_secret_key = secrets.token_hex(32)
        elif not self.session_secret_key:
            raise ValueError("Missing required secret (set DEV_MODE=true for development): SESSION_SECRET_KEY")
        if self.apple_response_mode not in ("query", "form_post"):
            raise ValueError(f"APPLE_RESPONSE_MODE must be 'query' or 'form_post', got {self.apple_response_mode!r}")
        return self

    @property
    def oauth_url(self) -> str:
        """Absolute URL of the OAuth endpoint, used as the provider redirect URI base."""
        return f"{self.api_url.rstrip('/')}{self.oauth_path}"

    def enabled_provider_names(self) -> list[str]:
        return _split_list(self.enabled_providers)

    def github_scope_list(self) -> list[str]:
        return _split_list(self.github_scopes)

    def redirect_origins(self) -> list[str]:
        return [self.frontend_url.rstrip("/")] + [o.rstrip("/") for o in _split_list(self.allowed_redirect_origins)]


def _split_list(value: str) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
