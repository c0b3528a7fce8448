"""Conversion-rate drop detector."""

from __future__ import annotations

from src.alerts.pipeline import AlertPipeline
from src.core.config import AlertConfig
from src.core.types import (
    ActionPriority,
    AlertType,
    DetectionResult,
    Entity,
    EntityType,
    SuggestedAction,
    TimeWindow,
)
from src.detectors.base import Clock, Detector, SeriesReader
from src.detectors.sources import MetricSource
from src.detectors.stats import change_ratio, classify_severity, z_score


def _suggested_actions(entity: Entity) -> list[SuggestedAction]:
    if entity.type == EntityType.URL:
        return [
            SuggestedAction(
                action="check_page_health",
                params={
                    "url": entity.url,
                    "checks": ["loading_speed", "mobile_friendly", "form_errors"],
                },
                priority=ActionPriority.CRITICAL,
            ),
            SuggestedAction(
                action="analyze_user_flow",
                params={
                    "landing_page": entity.url,
                    "funnel_steps": ["landing", "form", "thank_you"],
                },
                priority=ActionPriority.HIGH,
            ),
        ]
    return [
        SuggestedAction(
            action="analyze_search_terms",
            params={"sort_by": "cost", "filter": "zero_conversions", "period": "last_7_days"},
            priority=ActionPriority.HIGH,
        ),
        SuggestedAction(
            action="review_landing_pages",
            params={"entity_type": entity.type.value, "entity_id": entity.id},
            priority=ActionPriority.HIGH,
        ),
        SuggestedAction(
            action="check_conversion_tracking",
            params={"verify_gtag": True, "check_goals": True},
            priority=ActionPriority.MEDIUM,
        ),
    ]


class ConversionDropDetector(Detector):
    """Conversion rate at or below ``change_factor`` of its baseline."""

    alert_type = AlertType.CONVERSION_DROP

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
        baseline = await self._reader.baseline(entity, "conversion_rate", window)
        current = await self._reader.current(entity, "conversion_rate", window)

        clicks = await self._reader.total(entity, "clicks", current.period)
        min_clicks = t.min_volume or 0
        if clicks < min_clicks:
            return self._not_triggered(f"Insufficient clicks: {clicks:g} < {min_clicks:g}")

        ratio = change_ratio(current.value, baseline.mean)
        factor = t.change_factor if t.change_factor is not None else 0.6
        if ratio > factor:
            return self._not_triggered(f"Conversion ratio {ratio:.2f} above threshold {factor}")

        severity = classify_severity(z_score(current.value, baseline), ratio, t.severity_bands)
        why = (
            f"Conversion rate fell {abs(ratio - 1) * 100:.1f}% from "
            f"{baseline.mean * 100:.2f}% to {current.value * 100:.2f}%"
        )
        return await self._surface(
            entity, window, severity, baseline, current, why,
            additional={
                "conversion_rate_baseline": baseline.mean,
                "conversion_rate_current": current.value,
                "clicks": clicks,
                "absolute_conversions": round(current.value * clicks),
            },
            suggested_actions=_suggested_actions(entity),
        )
