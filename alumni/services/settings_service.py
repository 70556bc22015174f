"""
Settings Service.

Administration of the ``settings`` key-value records plus typed getters
for the two records the workflow engine reads: the membership fee and
the feature flags.  Missing or inactive records fall back to built-in
defaults so the engine keeps working on a fresh database.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Optional

from alumni.config import AppConfig
from alumni.database import DatabaseManager
from alumni.exceptions import ConflictError, NotFoundError
from alumni.logger import StructuredLogger
from alumni.models.setting import (
    FEATURE_FLAGS_KEY,
    MEMBERSHIP_FEE_KEY,
    FeatureFlags,
    MembershipFee,
    Setting,
    SettingUpdate,
)
from alumni.repositories.settings_repository import SettingsRepository
from alumni.services.base_service import BaseService
from alumni.utils.audit import SYSTEM_ACTOR
from alumni.utils.string_helpers import JsonValue, normalize_keys, to_snake_case

_DEFAULT_FEATURE_FLAGS: dict[str, JsonValue] = {
    "enableMembershipPayment": True,
    "enableEmailNotifications": True,
    "enableAutoApproveIncome": True,
}


class SettingsService(BaseService):
    """Manages system settings and exposes typed views of them."""

    def __init__(
        self,
        repo: SettingsRepository,
        config: AppConfig,
        logger: StructuredLogger,
        db: Optional[DatabaseManager] = None,
    ) -> None:
        super().__init__(logger, db)
        self._repo = repo
        self._config = config

    # ------------------------------------------------------------------
    # Bootstrap
    # ------------------------------------------------------------------

    def _default_settings(self) -> list[Setting]:
        return [
            Setting(
                key=MEMBERSHIP_FEE_KEY,
                value={
                    "amount": int(self._config.DEFAULT_MEMBERSHIP_FEE),
                    "currency": self._config.DEFAULT_CURRENCY,
                },
                description="Membership fee configuration",
            ),
            Setting(
                key=FEATURE_FLAGS_KEY,
                value=dict(_DEFAULT_FEATURE_FLAGS),
                description="Feature flags for enabling/disabling system features",
            ),
        ]

    def initialize_defaults(self) -> list[str]:
        """Insert each default setting whose key is absent.

        Existing records are never overwritten.  Returns the keys created.
        """
        now = self._now()
        missing = [
            setting.model_copy(update={"created_at": now, "updated_at": now})
            for setting in self._default_settings()
            if self._repo.get(setting.key) is None
        ]
        self._repo.create_many(missing)
        created = [setting.key for setting in missing]
        if created:
            self._logger.info("Default settings created: %s", ", ".join(created))
        return created

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create_setting(self, setting: Setting, actor_id: str = SYSTEM_ACTOR) -> Setting:
        """Raises ``ConflictError`` when the key already exists."""
        if self._repo.get(setting.key) is not None:
            raise ConflictError(f"Setting with key '{setting.key}' already exists")
        now = self._now()
        created = self._repo.create(
            setting.model_copy(update={"created_at": now, "updated_at": now})
        )
        self._audit("SETTING_CREATE", "Setting", setting.key, actor_id)
        return created

    def update_setting(
        self, key: str, patch: SettingUpdate, actor_id: str = SYSTEM_ACTOR,
    ) -> Setting:
        """Merge only the fields set on *patch*."""
        setting = self.get_setting(key)
        changes = {
            name: getattr(patch, name)
            for name in patch.model_fields_set
            if getattr(patch, name) is not None
        }
        updated = self._repo.save(
            setting.model_copy(update={**changes, "updated_at": self._now()})
        )
        self._audit(
            "SETTING_UPDATE", "Setting", key, actor_id,
            details={"fields": ",".join(sorted(changes))},
        )
        return updated

    def get_setting(self, key: str) -> Setting:
        setting = self._repo.get(key)
        if setting is None:
            raise NotFoundError("Setting", key)
        return setting

    def get_setting_value(self, key: str) -> Optional[dict[str, JsonValue]]:
        """Value of an *active* setting, or ``None``."""
        setting = self._repo.get(key)
        if setting is None or not setting.is_active:
            return None
        return setting.value

    def list_settings(self) -> list[Setting]:
        return self._repo.get_all()

    def delete_setting(self, key: str, actor_id: str = SYSTEM_ACTOR) -> None:
        self.get_setting(key)
        self._repo.delete(key)
        self._audit("SETTING_DELETE", "Setting", key, actor_id)

    # ------------------------------------------------------------------
    # Typed views
    # ------------------------------------------------------------------

    def get_membership_fee(self) -> MembershipFee:
        """Configured fee, or the built-in ``1000 BDT`` fallback."""
        fallback = MembershipFee(
            amount=self._config.DEFAULT_MEMBERSHIP_FEE,
            currency=self._config.DEFAULT_CURRENCY,
        )
        value = self.get_setting_value(MEMBERSHIP_FEE_KEY)
        if not value:
            return fallback
        try:
            return MembershipFee(
                amount=Decimal(str(value.get("amount", fallback.amount))),
                currency=str(value.get("currency") or fallback.currency),
            )
        except (InvalidOperation, ValueError) as exc:
            self._logger.warning("Malformed membership_fee setting, using default: %s", exc)
            return fallback

    def get_feature_flags(self) -> FeatureFlags:
        """Stored flags; a flag missing from a stored record is off."""
        value = self.get_setting_value(FEATURE_FLAGS_KEY)
        if value is None:
            return FeatureFlags.model_validate(normalize_keys(_DEFAULT_FEATURE_FLAGS))
        disabled = {name: False for name in FeatureFlags.model_fields}
        return FeatureFlags.model_validate({**disabled, **normalize_keys(value)})

    def is_feature_enabled(self, name: str) -> bool:
        """Accepts ``enableEmailNotifications`` or ``enable_email_notifications``.

        Unknown flags are disabled.
        """
        flags = self.get_feature_flags()
        field = to_snake_case(name)
        if field not in FeatureFlags.model_fields:
            return False
        return bool(getattr(flags, field))
