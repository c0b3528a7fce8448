"""AlertManager — batch detection runs plus user-driven lifecycle operations."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable, Sequence
from datetime import datetime, timedelta
from pathlib import Path
from typing import Protocol

import structlog

from src.alerts.exceptions import AlertNotFoundError
from src.alerts.lifecycle import LifecycleAction, transition
from src.alerts.store import AlertStore, Clock, utcnow
from src.core.config import DetectionConfig
from src.core.logging import batch_context
from src.core.types import (
    Alert,
    AlertBatch,
    AlertState,
    AlertStatus,
    AlertSummary,
    AlertType,
    DetectionResult,
    Entity,
    TimeWindow,
)

logger = structlog.stdlib.get_logger()

AlertCallback = Callable[[Alert], Awaitable[None] | None]


class SupportsDetect(Protocol):
    alert_type: AlertType

    @property
    def enabled(self) -> bool: ...

    async def detect(self, entity: Entity, window: TimeWindow | None = None) -> DetectionResult: ...


def dedupe(alerts: Iterable[Alert]) -> list[Alert]:
    """One alert per id, keeping the most severe; sorted critical first."""
    best: dict[str, Alert] = {}
    for alert in alerts:
        kept = best.get(alert.id)
        if kept is None or alert.severity.rank > kept.severity.rank:
            best[alert.id] = alert
    return sorted(best.values(), key=lambda a: (-a.severity.rank, a.type.value, a.id))


class AlertManager:
    """Runs every enabled detector over a set of entities and manages alert state.

    Usage::

        manager = AlertManager(store, registry)
        batch = await manager.run_batch("acme", entities)
        await manager.acknowledge(batch.alerts[0].id, notes="on it")
    """

    def __init__(
        self,
        store: AlertStore,
        detectors: Iterable[SupportsDetect],
        config: DetectionConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        if config is None:
            from src.core.config import get_settings

            config = get_settings().detection
        self._store = store
        self._detectors = list(detectors)
        self._config = config
        self._clock = clock or utcnow
        self._callbacks: list[AlertCallback] = []

    @property
    def store(self) -> AlertStore:
        return self._store

    def on_alert(self, callback: AlertCallback) -> None:
        """Register a callback invoked for every alert surfaced by a batch."""
        self._callbacks.append(callback)

    async def _emit(self, alert: Alert) -> None:
        for cb in self._callbacks:
            try:
                result = cb(alert)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception("alert_callback_error", alert_id=alert.id)

    # ── Batch detection ─────────────────────────────────────────

    async def _detect_entity(
        self,
        entity: Entity,
        window: TimeWindow | None,
        semaphore: asyncio.Semaphore,
    ) -> list[Alert]:
        alerts: list[Alert] = []
        async with semaphore:
            for detector in self._detectors:
                if not detector.enabled:
                    continue
                try:
                    result = await detector.detect(entity, window)
                except Exception:
                    logger.exception(
                        "detector_crashed",
                        alert_type=str(detector.alert_type),
                        entity_id=entity.id,
                    )
                    continue
                if result.triggered and result.alert is not None:
                    alerts.append(result.alert)
        return alerts

    async def run_batch(
        self,
        product: str,
        entities: Sequence[Entity],
        window: TimeWindow | None = None,
    ) -> AlertBatch:
        """Run all enabled detectors over *entities* and summarize the surfaced alerts.

        Entities are processed concurrently, bounded by ``max_concurrency``.
        One failing detector never aborts the batch.
        """
        with batch_context(product, entities=len(entities)):
            logger.info("batch_started", detectors=len(self._detectors))
            semaphore = asyncio.Semaphore(max(self._config.max_concurrency, 1))
            per_entity = await asyncio.gather(
                *(self._detect_entity(e, window, semaphore) for e in entities),
            )
            alerts = dedupe(a for batch in per_entity for a in batch)
            summary = await self._summarize(alerts)

            for alert in alerts:
                await self._emit(alert)

            logger.info(
                "batch_completed",
                total=summary.total,
                critical=summary.critical,
                new=summary.new,
            )
            return AlertBatch(
                generated_at=self._clock(),
                product=product,
                summary=summary,
                alerts=alerts,
            )

    async def _is_new(self, alert: Alert, cutoff: datetime) -> bool:
        """New when the alert has no surfaced history before *cutoff*."""
        history = await self._store.get_history(alert.id)
        return not any(entry.seen_at < cutoff for entry in history)

    async def _summarize(self, alerts: list[Alert]) -> AlertSummary:
        summary = AlertSummary(total=len(alerts))
        cutoff = self._clock() - timedelta(hours=self._config.new_alert_hours)
        for alert in alerts:
            field = alert.severity.value
            setattr(summary, field, getattr(summary, field) + 1)
            if await self._is_new(alert, cutoff):
                summary.new += 1
            else:
                summary.persistent += 1
        return summary

    @staticmethod
    def write_batch_json(batch: AlertBatch, path: str | Path) -> Path:
        """Write *batch* as indented JSON, creating parent directories."""
        out = Path(path)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(batch.to_json())
        logger.info("batch_written", path=str(out), alerts=len(batch.alerts))
        return out

    # ── Lifecycle ───────────────────────────────────────────────

    async def get_state(self, alert_id: str) -> AlertState:
        state = await self._store.get_state(alert_id)
        if state is None:
            raise AlertNotFoundError(f"Unknown alert id: {alert_id}")
        return state

    async def _transition(
        self,
        alert_id: str,
        action: LifecycleAction,
        *,
        until: datetime | None = None,
        notes: str | None = None,
    ) -> AlertState:
        now = self._clock()

        def _apply(state: AlertState | None) -> AlertState:
            if state is None:
                raise AlertNotFoundError(f"Unknown alert id: {alert_id}")
            return transition(state, action, now, until=until, notes=notes)

        state = await self._store.update_state(alert_id, _apply)
        logger.info(
            "alert_transitioned",
            alert_id=alert_id,
            action=action.value,
            status=state.status.value,
        )
        return state

    async def acknowledge(self, alert_id: str, notes: str | None = None) -> AlertState:
        return await self._transition(alert_id, LifecycleAction.ACKNOWLEDGE, notes=notes)

    async def snooze(
        self,
        alert_id: str,
        until: datetime | None = None,
        hours: float | None = None,
        notes: str | None = None,
    ) -> AlertState:
        """Snooze until *until*, or for *hours* from now."""
        if until is None and hours is not None:
            until = self._clock() + timedelta(hours=hours)
        return await self._transition(alert_id, LifecycleAction.SNOOZE, until=until, notes=notes)

    async def close(self, alert_id: str, notes: str | None = None) -> AlertState:
        return await self._transition(alert_id, LifecycleAction.CLOSE, notes=notes)

    async def reopen(self, alert_id: str, notes: str | None = None) -> AlertState:
        return await self._transition(alert_id, LifecycleAction.REOPEN, notes=notes)

    async def list_alerts(
        self,
        status: AlertStatus | None = None,
        product: str | None = None,
    ) -> list[tuple[AlertState, Alert | None]]:
        """States with their latest surfaced payload, most recently seen first.

        Snoozes that are still running are hidden unless *status* asks for them.
        """
        now = self._clock()
        rows: list[tuple[AlertState, Alert | None]] = []
        for state in await self._store.list_states(status):
            if (
                status is None
                and state.status == AlertStatus.SNOOZED
                and state.snooze_until is not None
                and state.snooze_until > now
            ):
                continue
            history = await self._store.get_history(state.alert_id)
            latest = Alert.model_validate(history[-1].payload) if history else None
            if product is not None and (latest is None or latest.entity.product != product):
                continue
            rows.append((state, latest))
        return rows
