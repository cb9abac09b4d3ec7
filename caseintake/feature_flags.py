from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum

from caseintake.db_models import UserRole
from caseintake.schemas import Identity


class FeatureFlag(StrEnum):
    ADVANCED_VALIDATION = "advanced_validation"
    BULK_OPERATIONS = "bulk_operations"
    AI_SUGGESTIONS = "ai_suggestions"
    REAL_TIME_NOTIFICATIONS = "real_time_notifications"
    EXPORT_ANALYTICS = "export_analytics"


@dataclass(frozen=True)
class FlagConfig:
    enabled: bool
    enabled_for_roles: frozenset[str] | None = None
    enabled_for_users: frozenset[str] | None = None
    rollout_percentage: int | None = None


FeatureFlagSet = Mapping[FeatureFlag, FlagConfig]


def default_feature_flags() -> dict[FeatureFlag, FlagConfig]:
    admin_only = frozenset({UserRole.ADMIN.value})
    return {
        FeatureFlag.ADVANCED_VALIDATION: FlagConfig(enabled=True, enabled_for_roles=admin_only),
        FeatureFlag.BULK_OPERATIONS: FlagConfig(enabled=True, enabled_for_roles=admin_only),
        FeatureFlag.AI_SUGGESTIONS: FlagConfig(enabled=False, rollout_percentage=10),
        FeatureFlag.REAL_TIME_NOTIFICATIONS: FlagConfig(enabled=True),
        FeatureFlag.EXPORT_ANALYTICS: FlagConfig(enabled=True, enabled_for_roles=admin_only),
    }


def rollout_bucket(user_id: str) -> int:
    # 32-bit rolling hash so a user lands in the same bucket on every process.
    value = 0
    for char in user_id:
        value = ((value << 5) - value + ord(char)) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return abs(value) % 100


def is_enabled(flags: FeatureFlagSet, flag: FeatureFlag, context: Identity | None = None) -> bool:
    config = flags.get(flag)
    if config is None or not config.enabled:
        return False

    if config.enabled_for_roles is not None and context is not None:
        if context.role not in config.enabled_for_roles:
            return False

    if config.enabled_for_users is not None and context is not None:
        if context.user_id not in config.enabled_for_users:
            return False

    if config.rollout_percentage is not None and context is not None:
        return rollout_bucket(context.user_id) < config.rollout_percentage

    return True


def all_flags(flags: FeatureFlagSet, context: Identity | None = None) -> dict[str, bool]:
    return {flag.value: is_enabled(flags, flag, context) for flag in flags}
