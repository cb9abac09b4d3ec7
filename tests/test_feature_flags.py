from caseintake.feature_flags import (
    FeatureFlag,
    FlagConfig,
    all_flags,
    default_feature_flags,
    is_enabled,
    rollout_bucket,
)
from caseintake.schemas import Identity


ADMIN = Identity(user_id="admin-1", role="ADMIN")
OPERATOR = Identity(user_id="operator-1", role="OPERATOR")


def test_role_restricted_flags() -> None:
    flags = default_feature_flags()

    assert is_enabled(flags, FeatureFlag.ADVANCED_VALIDATION, ADMIN) is True
    assert is_enabled(flags, FeatureFlag.ADVANCED_VALIDATION, OPERATOR) is False
    assert is_enabled(flags, FeatureFlag.REAL_TIME_NOTIFICATIONS, OPERATOR) is True


def test_disabled_and_unknown_flags_are_off() -> None:
    flags = {FeatureFlag.AI_SUGGESTIONS: FlagConfig(enabled=False)}

    assert is_enabled(flags, FeatureFlag.AI_SUGGESTIONS, ADMIN) is False
    assert is_enabled(flags, FeatureFlag.EXPORT_ANALYTICS, ADMIN) is False


def test_user_allow_list() -> None:
    flags = {FeatureFlag.BULK_OPERATIONS: FlagConfig(enabled=True, enabled_for_users=frozenset({"admin-1"}))}

    assert is_enabled(flags, FeatureFlag.BULK_OPERATIONS, ADMIN) is True
    assert is_enabled(flags, FeatureFlag.BULK_OPERATIONS, OPERATOR) is False


def test_rollout_percentage_uses_stable_bucket() -> None:
    bucket = rollout_bucket("operator-1")
    below = {FeatureFlag.AI_SUGGESTIONS: FlagConfig(enabled=True, rollout_percentage=bucket + 1)}
    at = {FeatureFlag.AI_SUGGESTIONS: FlagConfig(enabled=True, rollout_percentage=bucket)}

    assert 0 <= bucket < 100
    assert rollout_bucket("operator-1") == bucket
    assert is_enabled(below, FeatureFlag.AI_SUGGESTIONS, OPERATOR) is True
    assert is_enabled(at, FeatureFlag.AI_SUGGESTIONS, OPERATOR) is False


def test_rollout_bucket_matches_known_values() -> None:
    assert rollout_bucket("") == 0
    assert rollout_bucket("a") == 97


def test_without_context_only_global_switch_applies() -> None:
    flags = default_feature_flags()

    assert is_enabled(flags, FeatureFlag.EXPORT_ANALYTICS) is True
    assert is_enabled(flags, FeatureFlag.AI_SUGGESTIONS) is False


def test_all_flags_evaluates_every_flag() -> None:
    evaluated = all_flags(default_feature_flags(), OPERATOR)

    assert evaluated == {
        "advanced_validation": False,
        "bulk_operations": False,
        "ai_suggestions": False,
        "real_time_notifications": True,
        "export_analytics": False,
    }
