"""Quality-score detector.

Looks at the latest keyword quality scores rather than a trend; the worst
low-scoring keyword sets the severity.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from src.alerts.pipeline import AlertPipeline
from src.core.config import AlertConfig
from src.core.types import (
    ActionPriority,
    AlertType,
    DetectionResult,
    Entity,
    KeywordQuality,
    SuggestedAction,
    TimeWindow,
)
from src.detectors.base import Clock, Detector
from src.detectors.sources import QualityScoreSource
from src.detectors.stats import (
    baseline_period,
    classify_score,
    compute_baseline,
    compute_current,
    current_period,
)

BELOW_AVERAGE = "Below average"

# Keywords at or under this score with meaningful spend are pause candidates.
PAUSE_SCORE = 3
PAUSE_MIN_COST = 50.0


class QualityIssue(BaseModel):
    keyword: str
    quality_score: float
    component_issues: list[str] = Field(default_factory=list)
    impressions: int = 0
    cost: float = 0.0


def find_issues(
    rows: list[KeywordQuality],
    threshold: float,
    min_impressions: float,
) -> list[QualityIssue]:
    """Keywords scoring below *threshold* with at least *min_impressions*."""
    issues: list[QualityIssue] = []
    for row in rows:
        if row.quality_score >= threshold or row.impressions < min_impressions:
            continue
        components = [
            name
            for name, rating in (
                ("ad_relevance", row.ad_relevance),
                ("expected_ctr", row.expected_ctr),
                ("landing_page_experience", row.landing_page_experience),
            )
            if rating == BELOW_AVERAGE
        ]
        issues.append(QualityIssue(
            keyword=row.keyword,
            quality_score=row.quality_score,
            component_issues=components,
            impressions=row.impressions,
            cost=row.cost,
        ))
    return issues


def _suggested_actions(issues: list[QualityIssue]) -> list[SuggestedAction]:
    by_component: dict[str, list[str]] = {}
    for issue in issues:
        for component in issue.component_issues:
            by_component.setdefault(component, []).append(issue.keyword)

    actions: list[SuggestedAction] = []
    if "ad_relevance" in by_component:
        actions.append(SuggestedAction(
            action="improve_ad_relevance",
            params={"keywords": by_component["ad_relevance"]},
            priority=ActionPriority.HIGH,
        ))
    if "expected_ctr" in by_component:
        actions.append(SuggestedAction(
            action="improve_expected_ctr",
            params={"keywords": by_component["expected_ctr"]},
            priority=ActionPriority.HIGH,
        ))
    if "landing_page_experience" in by_component:
        actions.append(SuggestedAction(
            action="improve_landing_page_experience",
            params={"keywords": by_component["landing_page_experience"]},
            priority=ActionPriority.MEDIUM,
        ))
    actions.append(SuggestedAction(
        action="pause_low_quality_keywords",
        params={
            "quality_threshold": PAUSE_SCORE,
            "cost_threshold": PAUSE_MIN_COST,
            "affected_keywords": [
                i.keyword for i in issues
                if i.quality_score <= PAUSE_SCORE and i.cost > PAUSE_MIN_COST
            ],
        },
        priority=ActionPriority.MEDIUM,
    ))
    return actions


class QualityScoreDetector(Detector):
    alert_type = AlertType.QUALITY_SCORE

    def __init__(
        self,
        config: AlertConfig,
        source: QualityScoreSource,
        pipeline: AlertPipeline,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(config, pipeline, clock)
        self._source = source

    async def _evaluate(self, entity: Entity, window: TimeWindow) -> DetectionResult:
        t = self.thresholds
        rows = await self._source.fetch_quality_scores(entity)
        if not rows:
            return self._not_triggered("No quality score data available")

        threshold = t.score_threshold if t.score_threshold is not None else 5.0
        issues = find_issues(rows, threshold, t.min_volume or 0)
        if not issues:
            return self._not_triggered("All quality scores above threshold")

        worst = min(i.quality_score for i in issues)
        severity = classify_score(worst, t.severity_bands)

        today = self._clock().date()
        baseline = compute_baseline([r.quality_score for r in rows], baseline_period(today, window))
        current = compute_current([i.quality_score for i in issues], current_period(today, window))

        total_cost = sum(i.cost for i in issues)
        why = (
            f"{len(issues)} keywords with quality score below {threshold:g} "
            f"(avg: {current.value:.1f}, spending ${total_cost:.2f})"
        )
        return await self._surface(
            entity, window, severity, baseline, current, why,
            additional={
                "worst_score": worst,
                "affected_keywords": len(issues),
                "total_cost": total_cost,
                "issues": [i.model_dump() for i in issues],
            },
            suggested_actions=_suggested_actions(issues),
        )
