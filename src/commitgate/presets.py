"""Built-in configuration presets.

- strict: only notes, high thresholds, critique required
- balanced: the default
- permissive: lower thresholds, higher limits, quiet UI
- custom: a copy of balanced meant to be edited
"""

from dataclasses import replace

from commitgate.config import AutonomousConfig, Limits, Scope, Thresholds, UIFlags
from commitgate.errors import CommitGateError, ErrorCode

STRICT = AutonomousConfig(
    enabled=True,
    thresholds=Thresholds(
        auto_accept_entity=0.95,
        auto_accept_connection=0.92,
        auto_reject_below=0.40,
    ),
    limits=Limits(
        max_auto_commits_per_hour=50,
        max_auto_commits_per_day=200,
        max_pending_review=20,
        cooldown_minutes=30,
    ),
    scope=Scope(
        allowed_entity_types=("note",),
        blocked_entity_types=("person", "organization"),
        require_validation=True,
        require_critique=True,
    ),
    preset="strict",
)

BALANCED = AutonomousConfig(
    enabled=True,
    thresholds=Thresholds(
        auto_accept_entity=0.90,
        auto_accept_connection=0.85,
        auto_reject_below=0.30,
    ),
    limits=Limits(
        max_auto_commits_per_hour=100,
        max_auto_commits_per_day=500,
        max_pending_review=50,
        cooldown_minutes=15,
    ),
    scope=Scope(
        allowed_entity_types=("*",),
        blocked_entity_types=(),
        require_validation=True,
        require_critique=False,
    ),
    preset="balanced",
)

PERMISSIVE = AutonomousConfig(
    enabled=True,
    thresholds=Thresholds(
        auto_accept_entity=0.80,
        auto_accept_connection=0.75,
        auto_reject_below=0.20,
    ),
    limits=Limits(
        max_auto_commits_per_hour=200,
        max_auto_commits_per_day=1000,
        max_pending_review=100,
        cooldown_minutes=5,
    ),
    scope=Scope(
        allowed_entity_types=("*",),
        blocked_entity_types=(),
        require_validation=True,
        require_critique=False,
    ),
    ui=UIFlags(show_auto_commits_in_chat=False),
    preset="permissive",
)

PRESETS: dict[str, AutonomousConfig] = {
    "strict": STRICT,
    "balanced": BALANCED,
    "permissive": PERMISSIVE,
}

PRESET_NAMES = (*PRESETS, "custom")


def get_preset_config(name: str) -> AutonomousConfig:
    """Get a fresh copy of the configuration for a preset.

    The copy has its own weight, floor and override dicts, so mutating them
    leaves the preset untouched.

    Raises:
        CommitGateError: If the preset name is unknown.
    """
    if name == "custom":
        return _copy(BALANCED, preset="custom")
    try:
        preset = PRESETS[name]
    except KeyError:
        raise CommitGateError(
            ErrorCode.CONFIG_UNKNOWN_PRESET,
            {"preset": name, "choices": ", ".join(PRESET_NAMES)},
        ) from None
    return _copy(preset)


def _copy(config: AutonomousConfig, **changes) -> AutonomousConfig:
    c = config.confidence
    confidence = replace(
        c,
        weights=dict(c.weights),
        floors=dict(c.floors),
        source_trust=replace(
            c.source_trust, user_overrides=dict(c.source_trust.user_overrides)
        ),
    )
    return replace(config, confidence=confidence, **changes)
