"""CPC jump detector."""

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


class CpcJumpDetector(Detector):
    """CPC at or above ``change_factor``× its baseline on enough clicks."""

    alert_type = AlertType.CPC_JUMP

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
        baseline = await self._reader.baseline(entity, "cpc", window)
        current = await self._reader.current(entity, "cpc", window)

        clicks = await self._reader.total(entity, "clicks", current.period)
        min_clicks = t.min_volume or 0
        if clicks < min_clicks:
            return self._not_triggered(f"Insufficient clicks: {clicks:g} < {min_clicks:g}")

        ratio = change_ratio(current.value, baseline.mean)
        factor = t.change_factor if t.change_factor is not None else 1.5
        if ratio < factor:
            return self._not_triggered(f"CPC ratio {ratio:.2f} below threshold {factor}")

        severity = classify_severity(z_score(current.value, baseline), ratio, t.severity_bands)
        why = f"CPC increased {(ratio - 1) * 100:.1f}% on {clicks:g} clicks"
        return await self._surface(
            entity, window, severity, baseline, current, why,
            additional={
                "cpc_baseline": baseline.mean,
                "cpc_current": current.value,
                "clicks": clicks,
                "cost_impact": (current.value - baseline.mean) * clicks,
            },
            suggested_actions=[
                SuggestedAction(
                    action="identify_waste_ngrams",
                    params={"min_cost": 10, "min_clicks": 5, "zero_conversion": True},
                    priority=ActionPriority.HIGH,
                ),
                SuggestedAction(
                    action="reduce_bids",
                    params={"reduction": 0.1, "apply_cap": True},
                    priority=ActionPriority.MEDIUM,
                ),
                SuggestedAction(
                    action="review_competitor_density",
                    dry_run=False,
                    priority=ActionPriority.MEDIUM,
                ),
            ],
        )
