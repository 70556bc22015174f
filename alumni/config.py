"""
Application Configuration.

Pydantic Settings model for the Alumni Office back office.
All configuration is loaded from environment variables and .env files.
Inject an AppConfig instance via dependency injection where needed.
"""

from __future__ import annotations

import logging
import threading
from decimal import Decimal
from pathlib import Path
from typing import Optional

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings


class AppConfig(BaseSettings):
    """Central configuration loaded from environment variables and defaults."""

    # --- Supabase ---
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: SecretStr = SecretStr("")

    # --- Local store ---
    SQLITE_PATH: str = "alumni_local.db"

    # --- Email / SMTP ---
    MAIL_SERVER: str = "smtp.gmail.com"
    MAIL_PORT: int = 587
    MAIL_USERNAME: str = ""
    MAIL_PASSWORD: SecretStr = SecretStr("")
    MAIL_FROM: str = "noreply@csediualumni.com"

    # --- Public URLs (payment redirects, email links) ---
    FRONTEND_URL: str = "http://localhost:4200"
    API_URL: str = "http://localhost:3000"

    # --- Payment gateway ---
    PAYMENT_GATEWAY: str = "sslcommerz"
    SSLCOMMERZ_STORE_ID: str = ""
    SSLCOMMERZ_STORE_PASSWORD: SecretStr = SecretStr("")
    SSLCOMMERZ_SANDBOX: bool = True
    PAYMENT_HTTP_TIMEOUT_S: float = 15.0

    # --- Workflow side effects (email, payment initiation) ---
    SIDE_EFFECT_TIMEOUT_S: float = 20.0

    # --- Membership fee fallback (used when the setting is absent) ---
    DEFAULT_CURRENCY: str = "BDT"
    DEFAULT_MEMBERSHIP_FEE: Decimal = Decimal("1000")

    # --- System admin bootstrap ---
    SYSTEM_ADMIN_EMAIL: str = "system-admin@csediualumni.com"
    SYSTEM_ADMIN_PASSWORD: SecretStr = SecretStr("")
    SYSTEM_ADMIN_FIRST_NAME: str = "System"
    SYSTEM_ADMIN_LAST_NAME: str = "Administrator"
    # New accounts with this email are provisioned as system admins.
    OFFICIAL_ADMIN_EMAIL: str = "csediualumni.official@gmail.com"

    # --- Logging ---
    LOG_FILE: str = "alumni_office.log"
    LOG_MAX_BYTES: int = 5_242_880  # 5 MB
    LOG_BACKUP_COUNT: int = 3

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @model_validator(mode="after")
    def _warn_missing_env(self) -> "AppConfig":
        """Emit a startup warning when critical configuration is empty.

        Pydantic silently falls back to defaults when ``.env`` is missing,
        so operators get a log line for every feature that is running on
        placeholder values.
        """
        _log = logging.getLogger("alumni.config")

        if not Path(".env").exists():
            _log.warning(
                "No .env file found; all configuration loaded from "
                "environment variables or defaults."
            )

        if not self.SUPABASE_URL:
            _log.warning(
                "SUPABASE_URL is empty; Supabase connectivity is disabled. "
                "The service will operate on the local store only."
            )

        if not self.MAIL_USERNAME:
            _log.warning(
                "MAIL_USERNAME is empty; email notifications are disabled."
            )

        if not self.SSLCOMMERZ_STORE_ID:
            _log.warning(
                "SSLCOMMERZ_STORE_ID is empty; payment sessions will be "
                "rejected by the gateway."
            )

        return self

    # --- Email Validation ---
    def validate_email_config(self) -> None:
        """Validate that email configuration is complete.

        Raises:
            ValueError: If required email settings are missing.
        """
        if not self.MAIL_USERNAME or not self.MAIL_PASSWORD.get_secret_value():
            raise ValueError("MAIL_USERNAME and MAIL_PASSWORD must be set")
        if not self.MAIL_SERVER:
            raise ValueError("MAIL_SERVER must be set")


# ---------------------------------------------------------------------------
# Module-level singleton factory
# ---------------------------------------------------------------------------

_config_instance: Optional[AppConfig] = None
_config_lock: threading.Lock = threading.Lock()


def get_config() -> AppConfig:
    """Return a cached ``AppConfig`` singleton.

    On first call, creates an ``AppConfig`` instance (reading from ``.env``).
    Subsequent calls return the same instance.  Uses a check-lock-check
    pattern so the fast path stays lock-free.

    Prefer direct constructor injection of ``AppConfig`` in new code;
    this factory exists for modules (the logger) that are created before
    the composition root runs.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = AppConfig()
    return _config_instance
