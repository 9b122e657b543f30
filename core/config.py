"""
core/config.py -- Sociosim settings, read from the environment and .env.

Every environment read goes through get_settings(); nothing else touches
os.environ. Field names map to upper-case variables (supabase_url ->
SUPABASE_URL, auth_sign_in_timeout_ms -> AUTH_SIGN_IN_TIMEOUT_MS).

get_settings() is cached, so the first call fixes the configuration for the
life of the process. Tests set variables before importing api/ and build
Settings(...) directly when they need other values.

Outside DEBUG mode a missing Supabase URL or anon key stops startup. Every
deadline must be a positive number of milliseconds.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("sociosim.config")


class Settings(BaseSettings):
    """Sociosim settings. Every field has a default, so Settings() works
    without a .env file; validate_supabase decides whether that is allowed.
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

    # ------------------------------------------------------------------
    # Supabase (auth provider)
    # ------------------------------------------------------------------

    supabase_url: str = ""
    supabase_anon_key: str = ""
    # Set when the server cannot reach the public URL (e.g. inside Docker,
    # where host.docker.internal replaces localhost).
    supabase_internal_url: str = ""

    # ------------------------------------------------------------------
    # Auth call deadlines (milliseconds)
    # ------------------------------------------------------------------

    auth_get_session_timeout_ms: int = 10000
    auth_sign_in_timeout_ms: int = 15000
    auth_sign_out_timeout_ms: int = 2000
    auth_set_session_timeout_ms: int = 8000
    auth_exchange_code_timeout_ms: int = 8000
    auth_update_user_timeout_ms: int = 10000
    auth_get_user_timeout_ms: int = 10000
    auth_reset_password_timeout_ms: int = 20000

    # ------------------------------------------------------------------
    # Cauldron (prompt validation service)
    # ------------------------------------------------------------------

    cauldron_base_url: str = "http://localhost:8088"
    cauldron_timeout_ms: int = 30000

    # ------------------------------------------------------------------
    # HTTP surface
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    reset_password_rate_limit: str = "5/minute"
    # Where password-recovery e-mails send the user back to.
    site_url: str = "http://localhost:3000"
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_supabase(self) -> "Settings":
        """Require the Supabase public configuration outside of dev mode.

        Dev mode (DEBUG=true): a missing URL or anon key only logs a warning.
            The app starts, and the first auth call fails at client creation.

        Production mode: refuse to start. An auth gateway with no provider
            would answer every login with a 500.
        """
        if not self.supabase_url or not self.supabase_anon_key:
            if self.debug:
                logger.warning("WARNING: SUPABASE_URL / SUPABASE_ANON_KEY not set. Auth calls will fail.")
            else:
                raise ValueError(
                    "SUPABASE_URL and SUPABASE_ANON_KEY are required in production mode. "
                    "Set them in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        for name in (
            "auth_get_session_timeout_ms",
            "auth_sign_in_timeout_ms",
            "auth_sign_out_timeout_ms",
            "auth_set_session_timeout_ms",
            "auth_exchange_code_timeout_ms",
            "auth_update_user_timeout_ms",
            "auth_get_user_timeout_ms",
            "auth_reset_password_timeout_ms",
            "cauldron_timeout_ms",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name.upper()} must be a positive number of milliseconds.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide Settings, built on first call."""
    return Settings()
