"""Detector base class and the time-series window reader shared by detectors."""

from __future__ import annotations

import abc
from collections.abc import Callable
from datetime import date, datetime
from typing import Any, ClassVar

import structlog

from src.alerts.pipeline import AlertPipeline
from src.alerts.store import utcnow
from src.core.config import AlertConfig, AlertThresholds
from src.core.logging import entity_context
from src.core.types import (
    Alert,
    AlertMetrics,
    AlertType,
    BaselineData,
    CurrentData,
    DetectionInfo,
    DetectionResult,
    Entity,
    Period,
    Severity,
    SuggestedAction,
    TimeWindow,
)
from src.detectors.exceptions import MetricSourceError
from src.detectors.sources import MetricSource
from src.detectors.stats import (
    baseline_period,
    change_percentage,
    compute_baseline,
    compute_current,
    current_period,
    z_score,
)

logger = structlog.stdlib.get_logger()

Clock = Callable[[], datetime]

DETECTION_ERROR_PREFIX = "Detection error"


class SeriesReader:
    """Reads baseline / current statistics for one metric from a MetricSource."""

    def __init__(self, source: MetricSource, clock: Clock) -> None:
        self._source = source
        self._clock = clock

    def today(self) -> date:
        return self._clock().date()

    async def _fetch(self, entity: Entity, metric: str, period: Period) -> list[float]:
        try:
            return await self._source.fetch_metrics(entity, metric, period.start, period.end)
        except MetricSourceError:
            raise
        except Exception as exc:
            raise MetricSourceError(f"Failed to fetch {metric} for {entity.id}: {exc}") from exc

    async def baseline(self, entity: Entity, metric: str, window: TimeWindow) -> BaselineData:
        period = baseline_period(self.today(), window)
        return compute_baseline(await self._fetch(entity, metric, period), period)

    async def current(self, entity: Entity, metric: str, window: TimeWindow) -> CurrentData:
        period = current_period(self.today(), window)
        return compute_current(await self._fetch(entity, metric, period), period)

    async def total(self, entity: Entity, metric: str, period: Period) -> float:
        """Sum of *metric* over *period*, used for minimum-volume gates."""
        return float(sum(await self._fetch(entity, metric, period)))


class Detector(abc.ABC):
    """One alert type. ``detect`` never raises.

    Subclasses implement ``_evaluate``; any exception it raises becomes a
    non-triggered result whose reason starts with "Detection error".
    """

    alert_type: ClassVar[AlertType]

    def __init__(
        self,
        config: AlertConfig,
        pipeline: AlertPipeline,
        clock: Clock | None = None,
    ) -> None:
        self._config = config
        self._pipeline = pipeline
        self._clock = clock or utcnow

    @property
    def config(self) -> AlertConfig:
        return self._config

    @property
    def thresholds(self) -> AlertThresholds:
        return self._config.thresholds

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    def default_window(self) -> TimeWindow:
        return TimeWindow(
            baseline_days=self.thresholds.baseline_days,
            current_days=self.thresholds.current_days,
        )

    async def detect(self, entity: Entity, window: TimeWindow | None = None) -> DetectionResult:
        """Evaluate *entity* over *window* (defaults to the configured window)."""
        window = window or self.default_window()
        with entity_context(entity):
            try:
                return await self._evaluate(entity, window)
            except Exception as exc:
                logger.exception("detection_error", alert_type=self.alert_type.value)
                return DetectionResult(
                    triggered=False,
                    reason=f"{DETECTION_ERROR_PREFIX}: {exc}",
                )

    @abc.abstractmethod
    async def _evaluate(self, entity: Entity, window: TimeWindow) -> DetectionResult:
        """Compute the deviation and hand candidates to ``_surface``."""

    # ── Helpers ─────────────────────────────────────────────────

    @staticmethod
    def _not_triggered(reason: str) -> DetectionResult:
        return DetectionResult(triggered=False, reason=reason)

    async def _surface(
        self,
        entity: Entity,
        window: TimeWindow,
        severity: Severity,
        baseline: BaselineData,
        current: CurrentData,
        why: str,
        *,
        additional: dict[str, Any] | None = None,
        suggested_actions: list[SuggestedAction] | None = None,
    ) -> DetectionResult:
        """Run a candidate through noise control and build the alert if it surfaces."""
        metrics = AlertMetrics(
            baseline=baseline,
            current=current,
            change_percentage=change_percentage(current.value, baseline.mean),
            change_absolute=current.value - baseline.mean,
            z_score=z_score(current.value, baseline),
            additional=additional or {},
        )

        def _build(alert_id: str, detection: DetectionInfo) -> Alert:
            return Alert(
                id=alert_id,
                type=self.alert_type,
                severity=severity,
                entity=entity,
                window=window,
                metrics=metrics,
                why=why,
                playbook=f"pb_{self.alert_type.value}",
                suggested_actions=suggested_actions or [],
                detection=detection,
            )

        return await self._pipeline.surface(
            self.alert_type, entity, severity, self._config.noise_control, _build,
        )
