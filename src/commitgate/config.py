"""Configuration for autonomous commit decisions.

Loads configuration from pyproject.toml or commitgate.yaml. A ``preset`` key
picks one of the built-in presets. Any other key overrides that preset and
marks the result as ``custom``.
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

from commitgate.confidence.types import (
    DEFAULT_FLOORS,
    DEFAULT_WEIGHTS,
    FACTOR_NAMES,
    BaseThresholds,
)
from commitgate.errors import CommitGateError, ErrorCode, config_error

logger = logging.getLogger(__name__)

CALCULATORS = ("simple", "multi_factor")
COHERENCE_STRATEGIES = ("neighborhood",)
THRESHOLD_STRATEGIES = ("static", "global_ratio")


@dataclass(frozen=True, slots=True)
class Thresholds:
    """Confidence thresholds for the decision gates."""

    auto_accept_entity: float = 0.90
    """Minimum score to auto-commit a batch containing entities."""

    auto_accept_connection: float = 0.85
    """Minimum score to auto-commit a connection-only batch."""

    auto_reject_below: float = 0.30
    """Scores strictly below this are rejected outright."""

    def as_base(self) -> BaseThresholds:
        return BaseThresholds(
            auto_accept_entity=self.auto_accept_entity,
            auto_accept_connection=self.auto_accept_connection,
            auto_reject_below=self.auto_reject_below,
        )


@dataclass(frozen=True, slots=True)
class Limits:
    """Rate and queue-depth limits."""

    max_auto_commits_per_hour: int = 100
    max_auto_commits_per_day: int = 500
    max_pending_review: int = 50
    """Auto-commits stop once this many items wait for review."""

    cooldown_minutes: int = 15
    """Carried for callers. The rate limiter does not enforce it."""


@dataclass(frozen=True, slots=True)
class Scope:
    """Which proposals may be auto-committed at all."""

    allowed_entity_types: tuple[str, ...] = ("*",)
    """Entity types eligible for auto-commit. ``*`` allows any type."""

    blocked_entity_types: tuple[str, ...] = ()
    """Entity types that always go to review."""

    require_validation: bool = True
    require_critique: bool = False


@dataclass(frozen=True, slots=True)
class UIFlags:
    """Presentation flags. Not read by the decision engine."""

    show_notifications: bool = True
    show_auto_commits_in_chat: bool = True
    highlight_cyan: bool = True


@dataclass(frozen=True, slots=True)
class SourceTrustConfig:
    """Domain trust scores for the source-quality factor."""

    trusted_domains: tuple[str, ...] = (".edu", ".gov", "arxiv.org", "doi.org")
    untrusted_domains: tuple[str, ...] = ()
    user_overrides: dict[str, str] = field(default_factory=dict)
    """Domain (or ``.suffix``) to trust level: trusted, neutral or untrusted.
    Overrides win over both domain lists."""

    user_content_score: float = 0.8
    trusted_score: float = 0.9
    neutral_score: float = 0.6
    untrusted_score: float = 0.3


@dataclass(frozen=True, slots=True)
class DynamicAdjustmentConfig:
    """Settings for the global_ratio threshold adjuster."""

    enabled: bool = False
    window_size: int = 20
    """Number of recent decisions to inspect."""

    tighten_above: float = 0.3
    loosen_below: float = 0.1
    adjustment_step: float = 0.02
    min_threshold: float = 0.6
    max_threshold: float = 0.99


@dataclass(frozen=True, slots=True)
class ConfidenceConfig:
    """How confidence is computed."""

    calculator: str = "simple"
    """``simple`` (four-factor) or ``multi_factor``."""

    weights: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))
    floors: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_FLOORS))
    coherence_strategy: str = "neighborhood"
    threshold_strategy: str = "static"
    evaluator_timeout_seconds: float = 5.0
    """Evaluators slower than this yield an absent factor."""

    source_trust: SourceTrustConfig = field(default_factory=SourceTrustConfig)
    dynamic_adjustment: DynamicAdjustmentConfig = field(
        default_factory=DynamicAdjustmentConfig
    )


@dataclass(frozen=True, slots=True)
class AutonomousConfig:
    """Complete configuration for the autonomous commit engine.

    Can be loaded from:
    - pyproject.toml [tool.commitgate]
    - commitgate.yaml
    - Programmatic configuration (see commitgate.presets)
    """

    enabled: bool = False
    """Master switch. When off every evaluation returns ``disabled``."""

    thresholds: Thresholds = field(default_factory=Thresholds)
    limits: Limits = field(default_factory=Limits)
    scope: Scope = field(default_factory=Scope)
    ui: UIFlags = field(default_factory=UIFlags)
    confidence: ConfidenceConfig = field(default_factory=ConfidenceConfig)
    preset: str = "balanced"
    """Name of the preset this config came from, or ``custom``."""

    def validate(self) -> AutonomousConfig:
        """Check cross-field constraints. Returns self for chaining."""
        t = self.thresholds
        for name in ("auto_accept_entity", "auto_accept_connection", "auto_reject_below"):
            value = getattr(t, name)
            if not 0.0 <= value <= 1.0:
                raise config_error(f"thresholds.{name}", f"{value} is outside [0, 1]")
        if t.auto_reject_below >= min(t.auto_accept_entity, t.auto_accept_connection):
            raise config_error(
                "thresholds.auto_reject_below",
                "must be below both auto-accept thresholds",
            )

        c = self.confidence
        if c.calculator not in CALCULATORS:
            raise CommitGateError(
                ErrorCode.CONFIG_UNKNOWN_STRATEGY,
                {"kind": "calculator", "strategy": c.calculator},
            )
        if c.coherence_strategy not in COHERENCE_STRATEGIES:
            raise CommitGateError(
                ErrorCode.CONFIG_UNKNOWN_STRATEGY,
                {"kind": "coherence", "strategy": c.coherence_strategy},
            )
        if c.threshold_strategy not in THRESHOLD_STRATEGIES:
            raise CommitGateError(
                ErrorCode.CONFIG_UNKNOWN_STRATEGY,
                {"kind": "threshold", "strategy": c.threshold_strategy},
            )
        for key in (*c.weights, *c.floors):
            if key not in FACTOR_NAMES:
                raise config_error("confidence", f"unknown factor '{key}'")
        if any(w < 0 for w in c.weights.values()):
            raise config_error("confidence.weights", "weights must be non-negative")
        return self

    def snapshot(self) -> dict[str, Any]:
        """The slice of configuration stored with each audit record."""
        return {"preset": self.preset, "thresholds": asdict(self.thresholds)}

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        # tuples -> lists so YAML stays plain
        data["scope"]["allowed_entity_types"] = list(self.scope.allowed_entity_types)
        data["scope"]["blocked_entity_types"] = list(self.scope.blocked_entity_types)
        trust = data["confidence"]["source_trust"]
        trust["trusted_domains"] = list(self.confidence.source_trust.trusted_domains)
        trust["untrusted_domains"] = list(self.confidence.source_trust.untrusted_domains)
        return data


def load_config(project_root: Path | None = None) -> AutonomousConfig:
    """Load configuration from project files.

    Looks for configuration in order:
    1. pyproject.toml [tool.commitgate]
    2. commitgate.yaml
    3. The ``balanced`` preset

    Args:
        project_root: Project root directory (defaults to cwd)

    Returns:
        AutonomousConfig instance

    Raises:
        CommitGateError: If a config file exists but cannot be parsed or
            contains invalid values.
    """
    if project_root is None:
        project_root = Path.cwd()

    pyproject_path = project_root / "pyproject.toml"
    if pyproject_path.exists():
        config = _load_from_pyproject(pyproject_path)
        if config:
            return config

    yaml_path = project_root / "commitgate.yaml"
    if yaml_path.exists():
        config = _load_from_yaml(yaml_path)
        if config:
            return config

    from commitgate.presets import get_preset_config

    return get_preset_config("balanced")


def _load_from_pyproject(path: Path) -> AutonomousConfig | None:
    """Load config from pyproject.toml."""
    try:
        data = tomllib.loads(path.read_text())
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise CommitGateError(
            ErrorCode.CONFIG_PARSE_FAILED, {"path": str(path), "detail": str(e)}, cause=e
        ) from e

    section = data.get("tool", {}).get("commitgate", {})
    if not section:
        return None
    logger.debug("Loaded commitgate config from %s", path)
    return parse_config(section)


def _load_from_yaml(path: Path) -> AutonomousConfig | None:
    """Load config from commitgate.yaml."""
    try:
        data = yaml.safe_load(path.read_text())
    except (OSError, yaml.YAMLError) as e:
        raise CommitGateError(
            ErrorCode.CONFIG_PARSE_FAILED, {"path": str(path), "detail": str(e)}, cause=e
        ) from e

    if not data:
        return None
    if not isinstance(data, dict):
        raise CommitGateError(
            ErrorCode.CONFIG_PARSE_FAILED,
            {"path": str(path), "detail": "top level must be a mapping"},
        )
    logger.debug("Loaded commitgate config from %s", path)
    return parse_config(data)


def parse_config(data: dict[str, Any]) -> AutonomousConfig:
    """Parse a configuration mapping into AutonomousConfig."""
    from commitgate.presets import get_preset_config

    preset_name = data.get("preset", "balanced")
    config = get_preset_config(preset_name)

    overrides = {k: v for k, v in data.items() if k != "preset"}
    if not overrides:
        return config

    changes: dict[str, Any] = {}
    if "enabled" in overrides:
        changes["enabled"] = bool(overrides.pop("enabled"))
    for section in ("thresholds", "limits", "scope", "ui"):
        if section in overrides:
            changes[section] = _merge(getattr(config, section), overrides.pop(section), section)
    if "confidence" in overrides:
        changes["confidence"] = _parse_confidence(config.confidence, overrides.pop("confidence"))
    if overrides:
        raise config_error(", ".join(sorted(overrides)), "unknown configuration key")

    if preset_name != "custom" and _differs(config, changes):
        logger.info("Configuration overrides preset '%s'; using custom", preset_name)
        changes["preset"] = "custom"

    return replace(config, **changes).validate()


def _parse_confidence(base: ConfidenceConfig, data: dict[str, Any]) -> ConfidenceConfig:
    data = dict(data)
    changes: dict[str, Any] = {}
    if "source_trust" in data:
        changes["source_trust"] = _merge(base.source_trust, data.pop("source_trust"), "source_trust")
    if "dynamic_adjustment" in data:
        changes["dynamic_adjustment"] = _merge(
            base.dynamic_adjustment, data.pop("dynamic_adjustment"), "dynamic_adjustment"
        )
    # Weights and floors replace the defaults wholesale so a factor can be dropped
    for key in ("weights", "floors"):
        if key in data:
            changes[key] = {str(k): float(v) for k, v in data.pop(key).items()}
    merged = _merge(base, data, "confidence")
    return replace(merged, **changes)


def _merge(base: Any, data: dict[str, Any], section: str) -> Any:
    """Return ``base`` with the keys of ``data`` replaced."""
    if not isinstance(data, dict):
        raise config_error(section, "expected a mapping")
    known = {f.name: f for f in fields(base)}
    changes: dict[str, Any] = {}
    for key, value in data.items():
        if key not in known:
            raise config_error(f"{section}.{key}", "unknown configuration key")
        current = getattr(base, key)
        if isinstance(current, tuple):
            value = tuple(value or ())
        changes[key] = value
    return replace(base, **changes)


def _differs(config: AutonomousConfig, changes: dict[str, Any]) -> bool:
    return any(getattr(config, k) != v for k, v in changes.items())


def save_config(config: AutonomousConfig, path: Path) -> None:
    """Save configuration to a YAML file.

    Args:
        config: Configuration to save
        path: Path to save to (commitgate.yaml)
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.safe_dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)
