"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Hacka-Fi happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY, admin_addresses -> ADMIN_ADDRESSES).

  @model_validator(mode="after"): cross-field validation once every field is
      resolved. Dev mode generates a SECRET_KEY with a warning, production mode
      refuses to start without one.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. JWT signing relies on
  key entropy -- a short key makes forged tokens practical.

  ADMIN_ADDRESSES are normalized to lowercase so the admin check compares the
  same representation the auth layer stores.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or hackathons/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("hackafi.config")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.

    List-valued fields (admin_addresses, cors_origins, allowed_hosts) are read
    as comma-separated strings: ADMIN_ADDRESSES=0xabc...,0xdef...
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
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    database_url: str = ""  # empty -> SQLite file next to hackathons/store.py

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    # Same grammar as the JWT_EXPIRES_IN values operators already use: 30m, 12h, 1d.
    jwt_expires_in: str = "1d"
    nonce_ttl_seconds: int = 300
    admin_addresses: str = ""
    secure_cookies: bool = False

    # ------------------------------------------------------------------
    # HTTP surface
    # ------------------------------------------------------------------

    cors_origins: str = "http://localhost:3000"
    allowed_hosts: str = "*"

    # ------------------------------------------------------------------
    # Rate limiting (slowapi limit strings)
    # ------------------------------------------------------------------

    auth_rate_limit: str = "10/minute"
    vote_rate_limit: str = "30/minute"

    # ------------------------------------------------------------------
    # Background status checks
    # ------------------------------------------------------------------

    status_check_interval_seconds: int = 60

    # ------------------------------------------------------------------
    # Chain RPC (optional -- empty string disables the chain health check)
    # ------------------------------------------------------------------

    rpc_url: str = ""
    rpc_timeout_seconds: float = 5.0

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("admin_addresses")
    @classmethod
    def lowercase_admins(cls, value: str) -> str:
        return ",".join(a.strip().lower() for a in value.split(",") if a.strip())

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Issued tokens will not survive a restart -- acceptable for local dev.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("Using auto-generated SECRET_KEY. Tokens will not persist across restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def admin_address_set(self) -> frozenset[str]:
        return frozenset(a for a in self.admin_addresses.split(",") if a)

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def allowed_host_list(self) -> list[str]:
        return [h.strip() for h in self.allowed_hosts.split(",") if h.strip()]


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
