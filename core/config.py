"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for msgboard happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() or,
inside request handlers, read request.app.state.settings.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  Frozen settings: Settings is immutable after validation. create_app()
      receives one instance and hands it to every component, so a handler
      never observes configuration changing underneath it.

  @model_validator(mode="before"): DEBUG-conditional SECRET_KEY logic. Dev
      mode generates a key with a warning, production mode refuses to start
      without one.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. JWT signing relies
  on key entropy -- a short key weakens every issued session.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, or board/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("msgboard.config")

_ROOT = Path(__file__).resolve().parent.parent

# The frontend dev server. Always allowed alongside CORS_ORIGIN.
DEV_ORIGIN = "http://localhost:5173"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields except secret_key have defaults so Settings() can be built in
    test environments without a real .env file.

    Environment variable name mapping: field names are uppercased automatically.
    E.g. `secret_key` reads from SECRET_KEY, `cors_origin` from CORS_ORIGIN.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    database_url: str = f"sqlite:///{_ROOT / 'msgboard.db'}"

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    # Fixed session lifetime. Claims inside a token are a snapshot of the
    # user record at login and stay trusted for at most this long.
    token_expire_seconds: int = 3600
    # Per-IP limit on POST /api/login. Disabled in test suites that log in
    # many times from the same TestClient address.
    rate_limit_enabled: bool = True

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    cors_origin: str = ""

    # ------------------------------------------------------------------
    # Uploads
    # ------------------------------------------------------------------

    upload_dir: str = str(_ROOT / "public" / "uploads")
    max_upload_bytes: int = 2 * 1024 * 1024
    max_upload_files: int = 10

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="before")
    @classmethod
    def fill_secret_key(cls, data: dict) -> dict:
        """Enforce the SECRET_KEY policy before the model is frozen.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Tokens will not survive restart -- acceptable for local dev.

        Production mode: refuse to start if SECRET_KEY is missing.
        """
        if not isinstance(data, dict):
            return data
        debug = str(data.get("debug", "")).lower() in ("1", "true", "yes", "on")
        if not data.get("secret_key"):
            if debug:
                data = {**data, "secret_key": secrets.token_hex(32)}
                logger.warning("WARNING: Using auto-generated SECRET_KEY. Sessions will not persist across restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        return data

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    @property
    def allowed_origins(self) -> list[str]:
        origins = [DEV_ORIGIN]
        if self.cors_origin and self.cors_origin not in origins:
            origins.insert(0, self.cors_origin)
        return origins


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Called once at process start (asgi.py). In tests, build Settings(...)
    directly and pass it to create_app() instead.
    """
    return Settings()
