"""Landing-page regression detector.

Any broken page served by an entity's ads is critical. The detector's
default noise policy surfaces on the first detection.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel

from src.alerts.pipeline import AlertPipeline
from src.core.config import AlertConfig
from src.core.types import (
    ActionPriority,
    AlertType,
    DetectionResult,
    Entity,
    LandingPage,
    Severity,
    SuggestedAction,
    TimeWindow,
    UrlHealth,
)
from src.detectors.base import Clock, Detector
from src.detectors.sources import LandingPageSource, UrlHealthSource
from src.detectors.stats import baseline_period, compute_baseline, compute_current, current_period


class PageIssueType(StrEnum):
    STATUS_404 = "status_404"
    STATUS_5XX = "status_5xx"
    NOINDEX = "noindex"
    CANONICAL = "canonical_issue"
    REDIRECT_CHAIN = "redirect_chain"
    SOFT_404 = "soft_404"
    NO_HEALTH_DATA = "no_health_data"


class PageIssue(BaseModel):
    url: str
    type: PageIssueType
    description: str
    impressions_at_risk: int = 0


def page_issues(
    page: LandingPage,
    health: UrlHealth | None,
    max_redirects: int,
) -> list[PageIssue]:
    """Every health problem found for one landing page."""
    if health is None:
        return [PageIssue(
            url=page.url,
            type=PageIssueType.NO_HEALTH_DATA,
            description="No health monitoring data available",
            impressions_at_risk=page.impressions,
        )]

    found: list[tuple[PageIssueType, str]] = []
    if health.status_code == 404:
        found.append((PageIssueType.STATUS_404, "Page returns 404 Not Found"))
    if health.status_code >= 500:
        found.append((PageIssueType.STATUS_5XX, f"Server error: {health.status_code}"))
    if health.is_noindex:
        found.append((PageIssueType.NOINDEX, "Page has noindex directive"))
    if not health.canonical_ok:
        found.append((PageIssueType.CANONICAL, "Canonical URL issue detected"))
    if health.redirect_chain > max_redirects:
        found.append((
            PageIssueType.REDIRECT_CHAIN,
            f"Long redirect chain: {health.redirect_chain} redirects",
        ))
    if health.is_soft_404:
        found.append((PageIssueType.SOFT_404, "Page appears to be a soft 404"))

    return [
        PageIssue(url=page.url, type=t, description=d, impressions_at_risk=page.impressions)
        for t, d in found
    ]


def _suggested_actions(issues: list[PageIssue]) -> list[SuggestedAction]:
    def urls(*types: PageIssueType) -> list[str]:
        return sorted({i.url for i in issues if i.type in types})

    kinds = {i.type for i in issues}
    actions = [SuggestedAction(
        action="block_applies",
        params={"urls": urls(*PageIssueType)},
        priority=ActionPriority.IMMEDIATE,
    )]
    if kinds & {PageIssueType.STATUS_404, PageIssueType.STATUS_5XX, PageIssueType.SOFT_404}:
        actions.append(SuggestedAction(
            action="fix_server_errors",
            params={"urls": urls(
                PageIssueType.STATUS_404, PageIssueType.STATUS_5XX, PageIssueType.SOFT_404,
            )},
            priority=ActionPriority.CRITICAL,
        ))
    if PageIssueType.NOINDEX in kinds:
        actions.append(SuggestedAction(
            action="remove_noindex",
            params={"urls": urls(PageIssueType.NOINDEX)},
            priority=ActionPriority.CRITICAL,
        ))
    if PageIssueType.CANONICAL in kinds:
        actions.append(SuggestedAction(
            action="fix_canonical_issues",
            params={"urls": urls(PageIssueType.CANONICAL), "audit_canonical_tags": True},
            priority=ActionPriority.HIGH,
        ))
    if PageIssueType.REDIRECT_CHAIN in kinds:
        actions.append(SuggestedAction(
            action="optimize_redirects",
            params={"urls": urls(PageIssueType.REDIRECT_CHAIN), "max_redirect_length": 1},
            priority=ActionPriority.HIGH,
        ))
    actions.append(SuggestedAction(
        action="enhance_health_monitoring",
        params={"urls": urls(*PageIssueType)},
        priority=ActionPriority.MEDIUM,
    ))
    return actions


class LpRegressionDetector(Detector):
    alert_type = AlertType.LP_REGRESSION

    def __init__(
        self,
        config: AlertConfig,
        pages: LandingPageSource,
        health: UrlHealthSource,
        pipeline: AlertPipeline,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(config, pipeline, clock)
        self._pages = pages
        self._health = health

    async def _evaluate(self, entity: Entity, window: TimeWindow) -> DetectionResult:
        pages = await self._pages.fetch_landing_pages(entity)
        if not pages:
            return self._not_triggered("No landing pages for entity")

        issues: list[PageIssue] = []
        for page in pages:
            health = await self._health.fetch_url_health(page.url)
            issues.extend(page_issues(page, health, self.thresholds.max_redirects))

        if not issues:
            return self._not_triggered("All landing pages healthy")

        broken = sorted({i.url for i in issues})
        today = self._clock().date()
        baseline = compute_baseline([float(len(pages))], baseline_period(today, window))
        current = compute_current([float(len(broken))], current_period(today, window))
        at_risk = sum({i.url: i.impressions_at_risk for i in issues}.values())

        why = (
            f"{len(broken)} of {len(pages)} landing pages unhealthy: "
            + "; ".join(sorted({i.description for i in issues}))
        )
        return await self._surface(
            entity, window, Severity.CRITICAL, baseline, current, why,
            additional={
                "affected_urls": broken,
                "impressions_at_risk": at_risk,
                "issues": [i.model_dump(mode="json") for i in issues],
            },
            suggested_actions=_suggested_actions(issues),
        )
