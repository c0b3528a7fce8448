"""Spend spike / drop detectors."""

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

# Ratio reported when spend appears from a zero baseline.
ZERO_BASELINE_RATIO = 999.0


class SpendSpikeDetector(Detector):
    """Spend up by ``change_factor``× or by ``min_absolute_increase`` dollars."""

    alert_type = AlertType.SPEND_SPIKE

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
        baseline = await self._reader.baseline(entity, "spend", window)
        current = await self._reader.current(entity, "spend", window)

        clicks = await self._reader.total(entity, "clicks", current.period)
        min_clicks = t.min_volume or 0
        if clicks < min_clicks:
            return self._not_triggered(f"Insufficient clicks: {clicks:g} < {min_clicks:g}")

        factor_exceeded = (
            t.change_factor is not None
            and baseline.mean > 0
            and current.value >= baseline.mean * t.change_factor
        )
        absolute_exceeded = (
            t.min_absolute_increase is not None
            and current.value >= baseline.mean + t.min_absolute_increase
        )
        ratio = change_ratio(current.value, baseline.mean, default=ZERO_BASELINE_RATIO)
        if not (factor_exceeded or absolute_exceeded):
            return self._not_triggered(f"Spend ratio {ratio:.2f} below thresholds")

        severity = classify_severity(z_score(current.value, baseline), ratio, t.severity_bands)
        delta = current.value - baseline.mean
        why = f"Spend increased {(ratio - 1) * 100:.1f}% (+${delta:.2f}) with {clicks:g} clicks"
        return await self._surface(
            entity, window, severity, baseline, current, why,
            additional={
                "spend_baseline": baseline.mean,
                "spend_current": current.value,
                "clicks": clicks,
                "change_dollar": round(delta, 2),
            },
            suggested_actions=[
                SuggestedAction(
                    action="review_search_terms",
                    params={"sort_by": "cost", "limit": 20},
                    priority=ActionPriority.IMMEDIATE,
                ),
                SuggestedAction(
                    action="adjust_bids",
                    params={"change": -0.1, "target": "high_cost_keywords"},
                    priority=ActionPriority.HIGH,
                ),
            ],
        )


class SpendDropDetector(Detector):
    """Spend down to ``change_factor`` of baseline despite steady impressions."""

    alert_type = AlertType.SPEND_DROP

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
        baseline = await self._reader.baseline(entity, "spend", window)
        current = await self._reader.current(entity, "spend", window)

        impressions = await self._reader.total(entity, "impressions", current.period)
        min_impressions = t.min_volume or 0
        if impressions < min_impressions:
            return self._not_triggered(
                f"Insufficient impressions: {impressions:g} < {min_impressions:g}"
            )

        ratio = change_ratio(current.value, baseline.mean)
        factor = t.change_factor if t.change_factor is not None else 0.5
        if ratio > factor:
            return self._not_triggered(f"Spend ratio {ratio:.2f} above threshold {factor}")

        severity = classify_severity(z_score(current.value, baseline), ratio, t.severity_bands)
        why = (
            f"Spend dropped {abs(ratio - 1) * 100:.1f}% despite "
            f"{impressions:,.0f} impressions"
        )
        return await self._surface(
            entity, window, severity, baseline, current, why,
            additional={
                "spend_baseline": baseline.mean,
                "spend_current": current.value,
                "impressions": impressions,
            },
            suggested_actions=[
                SuggestedAction(
                    action="check_budget_limits",
                    dry_run=False,
                    priority=ActionPriority.IMMEDIATE,
                ),
                SuggestedAction(action="review_bid_strategy", priority=ActionPriority.HIGH),
            ],
        )
