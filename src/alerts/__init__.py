"""Alerts module — identity, noise control, lifecycle, storage and batch runs."""

from src.alerts.exceptions import (
    AlertError,
    AlertNotFoundError,
    AlertStoreError,
    InvalidTransitionError,
)
from src.alerts.identity import alert_id, alert_key
from src.alerts.lifecycle import LifecycleAction, transition
from src.alerts.manager import AlertCallback, AlertManager, dedupe
from src.alerts.noise import NoiseController, NoiseDecision, should_surface
from src.alerts.pipeline import AlertPipeline
from src.alerts.store import (
    AlertStore,
    InMemoryAlertStore,
    SqliteAlertStore,
    create_store,
)

__all__ = [
    "AlertCallback",
    "AlertError",
    "AlertManager",
    "AlertNotFoundError",
    "AlertPipeline",
    "AlertStore",
    "AlertStoreError",
    "InMemoryAlertStore",
    "InvalidTransitionError",
    "LifecycleAction",
    "NoiseController",
    "NoiseDecision",
    "SqliteAlertStore",
    "alert_id",
    "alert_key",
    "create_store",
    "dedupe",
    "should_surface",
    "transition",
]
