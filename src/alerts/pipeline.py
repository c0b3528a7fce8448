"""Shared post-detection path: identity → noise control → alert → history."""

from __future__ import annotations

from collections.abc import Callable

import structlog

from src.alerts.identity import alert_id as make_alert_id
from src.alerts.noise import NoiseController
from src.alerts.store import AlertStore, Clock
from src.core.config import NoiseControlConfig
from src.core.types import Alert, AlertType, DetectionInfo, DetectionResult, Entity, Severity

logger = structlog.stdlib.get_logger()

AlertBuilder = Callable[[str, DetectionInfo], Alert]


class AlertPipeline:
    """Turns a candidate detection into a surfaced alert or a suppression.

    Detectors compute *what* deviated; this decides *whether* it is shown
    and persists the outcome.
    """

    def __init__(self, store: AlertStore, clock: Clock | None = None) -> None:
        self._store = store
        self._noise = NoiseController(store, clock=clock)

    @property
    def store(self) -> AlertStore:
        return self._store

    @property
    def noise(self) -> NoiseController:
        return self._noise

    async def surface(
        self,
        alert_type: AlertType,
        entity: Entity,
        severity: Severity,
        policy: NoiseControlConfig,
        build: AlertBuilder,
    ) -> DetectionResult:
        alert_id = make_alert_id(alert_type, entity)
        decision = await self._noise.evaluate(alert_id, severity, policy)
        if not decision.surface:
            return DetectionResult(triggered=False, reason=decision.reason)

        state = decision.state
        alert = build(alert_id, DetectionInfo(
            first_seen=state.first_seen,
            last_seen=state.last_seen,
            occurrences=state.consecutive_occurrences,
            consecutive_occurrences=state.consecutive_occurrences,
        ))
        await self._store.append_history(alert_id, alert.model_dump(mode="json"))
        logger.info(
            "alert_surfaced",
            alert_id=alert_id,
            alert_type=alert_type.value,
            severity=alert.severity.value,
            entity_id=entity.id,
        )
        return DetectionResult(triggered=True, alert=alert)
