"""Pydantic settings loaded from YAML configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from src.core.types import AlertType, NoiseStrategy, PlaybookOptions

_settings: Settings | None = None

_DEFAULT_CONFIG_PATH = Path("config/settings.yaml")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"
    file: str | None = None
    quiet_loggers: list[str] = Field(default_factory=lambda: ["asyncio"])


class SeverityBands(BaseModel):
    """Ratio-based severity thresholds, compared against ``|1 - ratio|``.

    For quality-score alerts the same bands hold score ceilings instead.
    """

    critical: float | None = None
    high: float | None = None
    medium: float | None = None


class NoiseControlConfig(BaseModel):
    """Debounce policy for a detector."""

    strategy: NoiseStrategy = NoiseStrategy.CONSECUTIVE
    consecutive_checks: int = 2
    cooldown_hours: float = 24.0


class PageHealthLimits(BaseModel):
    """Landing-page health limits: absolute ceilings and baseline degradation."""

    max_response_ms: float = 5000.0
    max_error_rate: float = 0.10
    max_bounce_rate: float = 0.80
    critical_status_codes: list[int] = Field(default_factory=lambda: [500, 503])
    response_increase: float = 0.5
    error_rate_factor: float = 2.0
    min_error_rate: float = 0.01
    bounce_increase: float = 0.2


class AlertThresholds(BaseModel):
    """Per-alert-type thresholds."""

    baseline_days: int = 14
    current_days: int = 3
    min_volume: float | None = None
    change_factor: float | None = None
    min_absolute_increase: float | None = None
    score_threshold: float | None = None
    severity_bands: SeverityBands | None = None
    max_redirects: int = 1
    health: PageHealthLimits | None = None


class AlertTypeConfig(AlertThresholds):
    """Thresholds plus an optional noise-control override, as written in YAML."""

    enabled: bool = True
    noise_control: NoiseControlConfig | None = None


class AlertConfig(BaseModel):
    """Resolved, static configuration for one detector instance."""

    type: AlertType
    enabled: bool = True
    thresholds: AlertThresholds = Field(default_factory=AlertThresholds)
    noise_control: NoiseControlConfig = Field(default_factory=NoiseControlConfig)


_RATIO_BANDS = SeverityBands(critical=0.5, high=0.3, medium=0.2)


def _default_alerts() -> dict[str, AlertTypeConfig]:
    return {
        AlertType.SPEND_SPIKE: AlertTypeConfig(
            change_factor=2.0,
            min_absolute_increase=50.0,
            min_volume=30,
            severity_bands=_RATIO_BANDS,
        ),
        AlertType.SPEND_DROP: AlertTypeConfig(
            change_factor=0.5,
            min_volume=1000,
            severity_bands=_RATIO_BANDS,
        ),
        AlertType.CTR_DROP: AlertTypeConfig(
            change_factor=0.7,
            min_volume=1000,
            severity_bands=_RATIO_BANDS,
        ),
        AlertType.CPC_JUMP: AlertTypeConfig(
            change_factor=1.5,
            min_volume=50,
            severity_bands=_RATIO_BANDS,
        ),
        AlertType.CONVERSION_DROP: AlertTypeConfig(
            change_factor=0.6,
            min_volume=100,
            severity_bands=_RATIO_BANDS,
        ),
        AlertType.QUALITY_SCORE: AlertTypeConfig(
            baseline_days=7,
            current_days=1,
            score_threshold=5.0,
            min_volume=100,
            severity_bands=SeverityBands(critical=3, high=4, medium=5),
        ),
        AlertType.LP_REGRESSION: AlertTypeConfig(
            baseline_days=1,
            current_days=1,
            noise_control=NoiseControlConfig(
                strategy=NoiseStrategy.CONSECUTIVE,
                consecutive_checks=1,
                cooldown_hours=1.0,
            ),
        ),
        AlertType.LP_HEALTH: AlertTypeConfig(
            baseline_days=7,
            current_days=1,
            health=PageHealthLimits(),
        ),
    }


class DetectionConfig(BaseModel):
    """Batch detection configuration."""

    baseline_days: int = 14
    current_days: int = 3
    max_concurrency: int = 8
    new_alert_hours: float = 24.0


class GuardrailConfig(BaseModel):
    """Safety limits applied to remediation steps."""

    max_cost_usd: float = 100.0
    cost_capped_actions: list[str] = [
        "reduce_bids",
        "adjust_bids",
        "adjust_bid",
        "adjust_bids_for_ai",
        "set_budget_cap",
        "increase_budget",
    ]
    max_bid_change_pct: float = 0.20
    max_budget_increase_pct: float = 0.10
    approval_required_actions: list[str] = [
        "pause_campaign",
        "pause_ad_group",
        "remove_keyword",
    ]
    trademark_terms: list[str] = ["Google", "Microsoft", "Amazon", "Apple", "Facebook"]
    prohibited_terms: list[str] = ["guaranteed", "100%", "risk-free", "no risk"]


class RemediationConfig(BaseModel):
    """Defaults for remediation runs that pass no options of their own."""

    dry_run_default: bool = True
    allow_bid_changes: bool = False
    max_budget_impact: float | None = None
    require_approval: bool = False

    def playbook_options(self) -> PlaybookOptions:
        return PlaybookOptions(
            dry_run=self.dry_run_default,
            allow_bid_changes=self.allow_bid_changes,
            max_budget_impact=self.max_budget_impact,
            require_approval=self.require_approval,
        )


class StoreConfig(BaseModel):
    """Alert store backend."""

    backend: str = "memory"
    sqlite_path: str = "data/alerts.db"


class Settings(BaseModel):
    """Root settings container."""

    logging: LoggingConfig = LoggingConfig()
    detection: DetectionConfig = DetectionConfig()
    noise_control: NoiseControlConfig = NoiseControlConfig()
    alerts: dict[str, AlertTypeConfig] = Field(default_factory=_default_alerts)
    guardrails: GuardrailConfig = GuardrailConfig()
    remediation: RemediationConfig = RemediationConfig()
    store: StoreConfig = StoreConfig()

    def alert_config(self, alert_type: AlertType | str) -> AlertConfig:
        """Resolve the static config for one detector.

        Per-type YAML overrides are merged over the built-in defaults; the
        global noise-control block applies unless the type overrides it.
        """
        key = AlertType(alert_type)
        data = _default_alerts().get(key, AlertTypeConfig()).model_dump(exclude_none=True)
        override = self.alerts.get(key.value)
        if override is not None:
            data.update(override.model_dump(exclude_unset=True))
        merged = AlertTypeConfig(**data)
        thresholds = AlertThresholds(
            **merged.model_dump(include=set(AlertThresholds.model_fields)),
        )
        return AlertConfig(
            type=key,
            enabled=merged.enabled,
            thresholds=thresholds,
            noise_control=merged.noise_control or self.noise_control,
        )


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a YAML file and cache globally.

    Args:
        path: Path to YAML config. Defaults to config/settings.yaml.

    Returns:
        Parsed Settings instance.
    """
    global _settings  # noqa: PLW0603

    config_path = Path(path) if path else _DEFAULT_CONFIG_PATH

    data: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f)
            if isinstance(raw, dict):
                data = raw

    _settings = Settings(**data)
    return _settings


def get_settings() -> Settings:
    """Return the cached settings, loading defaults if not yet loaded."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Reset the cached settings (useful for testing)."""
    global _settings  # noqa: PLW0603
    _settings = None
