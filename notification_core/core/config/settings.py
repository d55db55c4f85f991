"""Application settings loaded from environment with safe fallbacks.

Environment precedence:
- Loads `.env` from the repo root before reading process env vars.
- Most values are pulled straight from env; booleans go through `_env_flag` so `"0"/"false"` work.
- Mail and Firebase credentials are optional; their absence turns the matching
  delivery channel into a logged no-op instead of failing startup.

Key expectations (defaults in parentheses):
- `APP_ENV` controls settings class selection (`production` default).
- Database: `DATABASE_URL` (local SQLite file), `TEST_DATABASE_URL` used when APP_ENV=test.
- Scheduler: `SCHEDULER_TIMEZONE` (`Europe/Istanbul`), `ENABLE_SCHEDULER` (true outside tests).
- Token hygiene: `TOKEN_STALE_DAYS` (30), `TOKEN_PURGE_DAYS` (30), `STALE_VERIFY_SAMPLE_SIZE` (50).
- Delivery: `CHANNEL_TIMEOUT_SECONDS` (10), `VERIFY_TIMEOUT_SECONDS` (5).
"""

import logging
import os
from pathlib import Path
from typing import ClassVar, Optional

from dotenv import load_dotenv
from fastapi_mail import ConnectionConfig
from pydantic import ConfigDict
from pydantic_settings import BaseSettings, SettingsConfigDict

# (__file__ is notification_core/core/config/settings.py, so the repo root is three levels up)
BASE_DIR = Path(__file__).resolve().parents[3]


load_dotenv(BASE_DIR / ".env")

# fastapi-mail treats presence of these flags as truthy; remove to rely on explicit config below.
os.environ.pop("MAIL_TLS", None)
os.environ.pop("MAIL_SSL", None)

logger = logging.getLogger(__name__)


def _env_flag(name: str, *, default: Optional[bool] = False) -> Optional[bool]:
    """
    Helper to parse boolean-like environment variables.
    """
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on"}


class CustomConnectionConfig(ConnectionConfig):
    """FastMail config that ignores extra fields to tolerate lenient env mapping."""

    model_config = ConfigDict(extra="ignore")


class Settings(BaseSettings):
    """Configuration for the notification core.

    Behavior highlights:
    - Loads `.env` at repo root, then lets process env override.
    - Test runs resolve the database from `TEST_DATABASE_URL` (SQLite by default).
    - Timing knobs for dispatch, token hygiene and maintenance live here so jobs
      and operators see the same numbers.
    """

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_file=str(BASE_DIR / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: str = os.getenv("APP_ENV", "production")
    app_name: str = "notification_core"

    database_url: Optional[str] = os.getenv("DATABASE_URL")
    test_database_url: str = os.getenv(
        "TEST_DATABASE_URL", "sqlite:///./tests/test.db"
    )

    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_dir: Optional[str] = os.getenv("LOG_DIR")
    log_json: bool = bool(_env_flag("LOG_JSON", default=False))

    enable_scheduler: bool = bool(_env_flag("ENABLE_SCHEDULER", default=True))
    scheduler_timezone: str = os.getenv("SCHEDULER_TIMEZONE", "Europe/Istanbul")
    quiet_hours_timezone: str = os.getenv("QUIET_HOURS_TIMEZONE", "Europe/Istanbul")
    job_misfire_grace_seconds: int = 300

    # Dispatch
    pending_batch_size: int = 100
    channel_timeout_seconds: float = 10.0
    notification_retention_days: int = 90
    in_flight_claim_ttl_seconds: int = 600

    # Device tokens
    token_stale_days: int = 30
    token_purge_days: int = 30
    stale_verify_sample_size: int = 50
    verify_timeout_seconds: float = 5.0

    # Achievements
    achievement_sweep_limit: int = 100
    weekly_achievement_sweep_limit: int = 500

    # Health score: active tokens needed for one bonus point
    health_token_bonus_scale: int = 100

    firebase_credentials_path: Optional[str] = os.getenv("FIREBASE_CREDENTIALS_PATH")
    firebase_project_id: Optional[str] = os.getenv("FIREBASE_PROJECT_ID")
    firebase_private_key: Optional[str] = os.getenv("FIREBASE_PRIVATE_KEY")
    firebase_client_email: Optional[str] = os.getenv("FIREBASE_CLIENT_EMAIL")

    mail_username: Optional[str] = os.getenv("MAIL_USERNAME")
    mail_password: Optional[str] = os.getenv("MAIL_PASSWORD")
    mail_from: Optional[str] = os.getenv("MAIL_FROM")
    mail_from_name: str = os.getenv("MAIL_FROM_NAME", "Study Notifications")
    mail_port: int = int(os.getenv("MAIL_PORT", 587))
    mail_server: Optional[str] = os.getenv("MAIL_SERVER")

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        env_override = os.getenv("APP_ENV")
        if env_override:
            object.__setattr__(self, "environment", env_override)
        if not self.database_url:
            logger.warning(
                "DATABASE_URL is not set, falling back to a local SQLite database."
            )

    def get_database_url(self, *, use_test: bool = False) -> str:
        """Resolve the SQLAlchemy database URL for runtime or tests.

        Test runs must point at a dedicated database: SQLite, or a DSN whose name
        contains `_test`.
        """
        if use_test:
            test_url = self.test_database_url
            if not test_url.startswith("sqlite") and "_test" not in test_url:
                raise ValueError(
                    "Test database URL must point to a dedicated test database (contains '_test')."
                )
            return test_url
        if self.database_url:
            return self.database_url
        return f"sqlite:///{BASE_DIR / 'notification_core.db'}"

    @property
    def mail_configured(self) -> bool:
        return bool(self.mail_username and self.mail_password and self.mail_server)

    @property
    def mail_config(self) -> ConnectionConfig:
        from_address = self.mail_from or "notifications@studyhub.io"
        config_data = {
            # FastMail requires string fields; fallback to empty strings in test/CI.
            "MAIL_USERNAME": self.mail_username or "",
            "MAIL_PASSWORD": self.mail_password or "",
            "MAIL_FROM": from_address,
            "MAIL_PORT": self.mail_port,
            "MAIL_SERVER": self.mail_server or "",
            "MAIL_FROM_NAME": self.mail_from_name,
            "MAIL_STARTTLS": True,
            "MAIL_SSL_TLS": False,
            "USE_CREDENTIALS": True,
        }
        return CustomConnectionConfig(**config_data)


__all__ = ["BASE_DIR", "CustomConnectionConfig", "Settings", "_env_flag"]
