"""Landing-page health detector.

Tracks response time, error rate and bounce rate for the page an entity
sends traffic to, plus the status code last reported by the URL health
monitor. Breaching any hard limit is critical; otherwise severity grows with
the number of metrics that degraded against the baseline.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel

from src.alerts.pipeline import AlertPipeline
from src.core.config import AlertConfig, PageHealthLimits
from src.core.types import (
    ActionPriority,
    AlertType,
    BaselineData,
    CurrentData,
    DetectionResult,
    Entity,
    EntityType,
    Severity,
    SuggestedAction,
    TimeWindow,
)
from src.detectors.base import Clock, Detector, SeriesReader
from src.detectors.sources import MetricSource, UrlHealthSource

RESPONSE_TIME = "response_time_ms"
ERROR_RATE = "error_rate"
BOUNCE_RATE = "bounce_rate"


class HealthIssueType(StrEnum):
    SLOW_RESPONSE = "slow_response"
    HIGH_ERROR_RATE = "high_error_rate"
    CRITICAL_STATUS = "critical_status"
    HIGH_BOUNCE_RATE = "high_bounce_rate"
    RESPONSE_DEGRADED = "response_degraded"
    ERROR_RATE_DEGRADED = "error_rate_degraded"
    BOUNCE_DEGRADED = "bounce_degraded"


_RESPONSE_ISSUES = {HealthIssueType.SLOW_RESPONSE, HealthIssueType.RESPONSE_DEGRADED}
_ERROR_ISSUES = {
    HealthIssueType.HIGH_ERROR_RATE,
    HealthIssueType.CRITICAL_STATUS,
    HealthIssueType.ERROR_RATE_DEGRADED,
}
_BOUNCE_ISSUES = {HealthIssueType.HIGH_BOUNCE_RATE, HealthIssueType.BOUNCE_DEGRADED}


class HealthIssue(BaseModel):
    type: HealthIssueType
    description: str
    critical: bool = False


class PageVitals(BaseModel):
    """Window averages for one page; ``None`` where no samples exist."""

    response_time_ms: float | None = None
    error_rate: float | None = None
    bounce_rate: float | None = None
    status_code: int | None = None

    def is_empty(self) -> bool:
        return all(v is None for v in self.model_dump().values())


def critical_issues(vitals: PageVitals, limits: PageHealthLimits) -> list[HealthIssue]:
    """Hard-limit breaches, each one critical on its own."""
    issues: list[HealthIssue] = []
    if vitals.response_time_ms is not None and vitals.response_time_ms > limits.max_response_ms:
        issues.append(HealthIssue(
            type=HealthIssueType.SLOW_RESPONSE,
            description=f"Response time critically high: {vitals.response_time_ms:.0f}ms",
            critical=True,
        ))
    if vitals.error_rate is not None and vitals.error_rate > limits.max_error_rate:
        issues.append(HealthIssue(
            type=HealthIssueType.HIGH_ERROR_RATE,
            description=f"Error rate critically high: {vitals.error_rate:.1%}",
            critical=True,
        ))
    if vitals.status_code in limits.critical_status_codes:
        issues.append(HealthIssue(
            type=HealthIssueType.CRITICAL_STATUS,
            description=f"Critical HTTP status: {vitals.status_code}",
            critical=True,
        ))
    if vitals.bounce_rate is not None and vitals.bounce_rate > limits.max_bounce_rate:
        issues.append(HealthIssue(
            type=HealthIssueType.HIGH_BOUNCE_RATE,
            description=f"Bounce rate critically high: {vitals.bounce_rate:.1%}",
            critical=True,
        ))
    return issues


def degradation_issues(
    current: PageVitals,
    baseline: PageVitals,
    limits: PageHealthLimits,
) -> list[HealthIssue]:
    """Metrics that got worse relative to the baseline window."""
    issues: list[HealthIssue] = []
    if current.response_time_ms is not None and baseline.response_time_ms:
        increase = (current.response_time_ms - baseline.response_time_ms) / baseline.response_time_ms
        if increase > limits.response_increase:
            issues.append(HealthIssue(
                type=HealthIssueType.RESPONSE_DEGRADED,
                description=f"Response time increased {increase:.0%}",
            ))
    if (
        current.error_rate is not None
        and current.error_rate > (baseline.error_rate or 0.0) * limits.error_rate_factor
        and current.error_rate > limits.min_error_rate
    ):
        issues.append(HealthIssue(
            type=HealthIssueType.ERROR_RATE_DEGRADED,
            description="Error rate doubled from baseline",
        ))
    if current.bounce_rate and baseline.bounce_rate:
        increase = (current.bounce_rate - baseline.bounce_rate) / baseline.bounce_rate
        if increase > limits.bounce_increase:
            issues.append(HealthIssue(
                type=HealthIssueType.BOUNCE_DEGRADED,
                description=f"Bounce rate increased {increase:.0%}",
            ))
    return issues


def health_severity(issues: list[HealthIssue]) -> Severity:
    if any(i.critical for i in issues):
        return Severity.CRITICAL
    if len(issues) >= 3:
        return Severity.HIGH
    if len(issues) == 2:
        return Severity.MEDIUM
    return Severity.LOW


def _suggested_actions(
    url: str,
    issues: list[HealthIssue],
    status_code: int | None,
) -> list[SuggestedAction]:
    kinds = {i.type for i in issues}
    actions: list[SuggestedAction] = []
    if kinds & _RESPONSE_ISSUES:
        actions.append(SuggestedAction(
            action="optimize_page_speed",
            params={"urls": [url], "focus": ["images", "scripts", "cdn"]},
            priority=ActionPriority.HIGH,
        ))
    if kinds & _ERROR_ISSUES:
        actions.append(SuggestedAction(
            action="check_server_logs",
            params={"urls": [url]},
            priority=ActionPriority.CRITICAL,
        ))
    if kinds & _BOUNCE_ISSUES:
        actions.extend([
            SuggestedAction(
                action="review_page_content",
                params={"urls": [url]},
                priority=ActionPriority.MEDIUM,
            ),
            SuggestedAction(
                action="check_ad_relevance",
                params={"urls": [url]},
                priority=ActionPriority.MEDIUM,
            ),
        ])
    if status_code is not None and status_code >= 500:
        actions.append(SuggestedAction(
            action="escalate_server_error",
            params={"urls": [url], "status_code": status_code},
            priority=ActionPriority.IMMEDIATE,
        ))
    if status_code == 404:
        actions.append(SuggestedAction(
            action="update_destination_urls",
            params={"urls": [url]},
            priority=ActionPriority.IMMEDIATE,
        ))
    return actions


def _mean(data: BaselineData | CurrentData) -> float | None:
    if not data.count:
        return None
    return data.mean if isinstance(data, BaselineData) else data.value


class LpHealthDetector(Detector):
    alert_type = AlertType.LP_HEALTH

    def __init__(
        self,
        config: AlertConfig,
        metrics: MetricSource,
        pipeline: AlertPipeline,
        health: UrlHealthSource | None = None,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(config, pipeline, clock)
        self._reader = SeriesReader(metrics, self._clock)
        self._health = health

    @property
    def limits(self) -> PageHealthLimits:
        return self.thresholds.health or PageHealthLimits()

    async def _evaluate(self, entity: Entity, window: TimeWindow) -> DetectionResult:
        if not entity.url and entity.type != EntityType.URL:
            return self._not_triggered("Entity has no URL to monitor")
        url = entity.url or entity.id

        baselines = {
            m: await self._reader.baseline(entity, m, window)
            for m in (RESPONSE_TIME, ERROR_RATE, BOUNCE_RATE)
        }
        currents = {
            m: await self._reader.current(entity, m, window)
            for m in (RESPONSE_TIME, ERROR_RATE, BOUNCE_RATE)
        }
        snapshot = await self._health.fetch_url_health(url) if self._health else None

        current = PageVitals(
            response_time_ms=_mean(currents[RESPONSE_TIME]),
            error_rate=_mean(currents[ERROR_RATE]),
            bounce_rate=_mean(currents[BOUNCE_RATE]),
            status_code=snapshot.status_code if snapshot else None,
        )
        if current.is_empty():
            return self._not_triggered("No health metrics available")
        baseline = PageVitals(
            response_time_ms=_mean(baselines[RESPONSE_TIME]),
            error_rate=_mean(baselines[ERROR_RATE]),
            bounce_rate=_mean(baselines[BOUNCE_RATE]),
        )

        limits = self.limits
        issues = critical_issues(current, limits) or degradation_issues(current, baseline, limits)
        if not issues:
            return self._not_triggered("Landing page health is normal")

        why = "Landing page health issues detected: " + ", ".join(i.description for i in issues)
        return await self._surface(
            entity,
            window,
            health_severity(issues),
            baselines[RESPONSE_TIME],
            currents[RESPONSE_TIME],
            why,
            additional={
                "url": url,
                "issues": [i.model_dump(mode="json") for i in issues],
                "current_metrics": current.model_dump(exclude_none=True),
                "baseline_metrics": baseline.model_dump(exclude_none=True),
            },
            suggested_actions=_suggested_actions(url, issues, current.status_code),
        )
