"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the Portfolio API happen here. No module
should call os.getenv() or os.environ.get() directly -- import get_settings()
instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. access_token_secret -> ACCESS_TOKEN_SECRET).

  @model_validator(mode="after"): Cross-field validation of the two signing
      secrets. Dev mode generates missing secrets with a warning, production
      mode refuses to start without them.

Security notes:
  Access and refresh tokens are signed with two independent secrets so a
  leaked access secret cannot be used to forge refresh tokens. The validator
  rejects configurations where both secrets are equal.

  Secrets shorter than 32 chars are rejected outright.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("portfolio.config")

_MIN_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file, provided DEBUG=true.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    auth_db_url: str = "sqlite:///portfolio_auth.db"
    cors_origins: str = "*"

    # ------------------------------------------------------------------
    # Token signing
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured".
    access_token_secret: str = ""
    refresh_token_secret: str = ""

    access_token_expire_seconds: int = Field(default=3600, ge=1)
    refresh_token_expire_seconds: int = Field(default=7 * 24 * 60 * 60, ge=1)

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    refresh_sweep_interval_seconds: int = Field(default=60, ge=1)
    rotate_refresh_tokens: bool = False
    request_timeout_seconds: float = Field(default=5.0, gt=0)

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_signing_secrets(self) -> "Settings":
        """Enforce the signing secret policy.

        Dev mode (DEBUG=true): auto-generate any missing secret with a warning.
            Sessions will not survive restart.

        Production mode: refuse to start if either secret is missing.

        Both modes: reject secrets shorter than 32 characters and reject a
            configuration where the access and refresh secrets are equal.
        """
        for field_name in ("access_token_secret", "refresh_token_secret"):
            value = getattr(self, field_name)
            env_name = field_name.upper()
            if not value:
                if not self.debug:
                    raise ValueError(
                        f"{env_name} is required in production mode. "
                        "Set it in your environment or .env file. "
                        "To run in development mode, set DEBUG=true."
                    )
                setattr(self, field_name, secrets.token_hex(32))
                logger.warning("Using auto-generated %s. Sessions will not persist across restarts.", env_name)
            elif len(value) < _MIN_SECRET_LENGTH:
                raise ValueError(f"{env_name} must be at least {_MIN_SECRET_LENGTH} characters.")
        if self.access_token_secret == self.refresh_token_secret:
            raise ValueError("ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET must differ.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
