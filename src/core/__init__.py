"""Core module — config, types, logging."""

from src.core.config import (
    AlertConfig,
    AlertThresholds,
    NoiseControlConfig,
    Settings,
    SeverityBands,
    get_settings,
    load_settings,
    reset_settings,
)
from src.core.logging import alert_context, batch_context, entity_context, setup_logging
from src.core.types import (
    Alert,
    AlertBatch,
    AlertState,
    AlertStatus,
    AlertType,
    BaselineData,
    CurrentData,
    DetectionResult,
    Entity,
    EntityType,
    NoiseStrategy,
    Remediation,
    RemediationStep,
    Severity,
    StepStatus,
    TimeWindow,
)

__all__ = [
    "Alert",
    "AlertBatch",
    "AlertConfig",
    "AlertState",
    "AlertStatus",
    "AlertThresholds",
    "AlertType",
    "BaselineData",
    "CurrentData",
    "DetectionResult",
    "Entity",
    "EntityType",
    "NoiseControlConfig",
    "NoiseStrategy",
    "Remediation",
    "RemediationStep",
    "Settings",
    "Severity",
    "SeverityBands",
    "StepStatus",
    "TimeWindow",
    "alert_context",
    "batch_context",
    "entity_context",
    "get_settings",
    "load_settings",
    "reset_settings",
    "setup_logging",
]
