"""CTR drop detector."""

from __future__ import annotations

from src.alerts.pipeline import AlertPipeline
from src.core.config import AlertConfig
from src.core.types import (
    ActionPriority,
    AlertType,
    DetectionResult,
    Entity,
    SuggestedAction,
    TimeWindow,
)
from src.detectors.base import Clock, Detector, SeriesReader
from src.detectors.sources import MetricSource
from src.detectors.stats import change_ratio, classify_severity, z_score


class CtrDropDetector(Detector):
    """CTR at or below ``change_factor`` of its baseline on enough impressions."""

    alert_type = AlertType.CTR_DROP

    def __init__(
        self,
        config: AlertConfig,
        source: MetricSource,
        pipeline: AlertPipeline,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(config, pipeline, clock)
        self._reader = SeriesReader(source, self._clock)

    async def _evaluate(self, entity: Entity, window: TimeWindow) -> DetectionResult:
        t = self.thresholds
        baseline = await self._reader.baseline(entity, "ctr", window)
        current = await self._reader.current(entity, "ctr", window)

        impressions = await self._reader.total(entity, "impressions", current.period)
        min_impressions = t.min_volume or 0
        if impressions < min_impressions:
            return self._not_triggered(
                f"Insufficient impressions: {impressions:g} < {min_impressions:g}"
            )

        ratio = change_ratio(current.value, baseline.mean)
        factor = t.change_factor if t.change_factor is not None else 0.7
        if ratio > factor:
            return self._not_triggered(f"CTR ratio {ratio:.2f} above threshold {factor}")

        severity = classify_severity(z_score(current.value, baseline), ratio, t.severity_bands)
        why = f"CTR fell {abs(ratio - 1) * 100:.1f}% on {impressions:,.0f} impressions"
        return await self._surface(
            entity, window, severity, baseline, current, why,
            additional={
                "ctr_baseline": baseline.mean,
                "ctr_current": current.value,
                "impressions": impressions,
            },
            suggested_actions=[
                SuggestedAction(
                    action="generate_rsa_variants",
                    params={"variants": ["benefit", "proof"], "count": 3},
                    priority=ActionPriority.HIGH,
                ),
                SuggestedAction(
                    action="add_sitelinks",
                    params={"items": ["top_features", "pricing"]},
                    priority=ActionPriority.MEDIUM,
                ),
            ],
        )
