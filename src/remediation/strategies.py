"""Concrete playbooks, one per alert family."""

from __future__ import annotations

import math

from src.core.types import (
    Alert,
    AlertType,
    EstimatedImpact,
    PlaybookOptions,
    Remediation,
    RemediationStep,
    Severity,
    StepStatus,
)
from src.remediation.playbooks import Playbook, PlaybookRegistry


class CtrDropPlaybook(Playbook):
    id = "pb_ctr_drop"
    alert_type = AlertType.CTR_DROP
    description = "Improve CTR through ad copy, assets and negatives"

    async def execute(self, alert: Alert, options: PlaybookOptions) -> Remediation:
        status = self.immediate(options)
        steps = [
            RemediationStep(
                action="create_rsa_variants",
                params={"strategy": "keyword_insertion", "count": 3, "testing_budget": 50},
                output="ads-editor.csv",
                status=status,
            ),
            RemediationStep(
                action="add_assets",
                params={
                    "types": ["sitelinks", "structured_snippets"],
                    "source": "product_features",
                },
                output="assets.csv",
                status=status,
            ),
        ]
        if options.allow_bid_changes:
            steps.append(RemediationStep(
                action="adjust_bid",
                params={"change": -0.1},
                status=status,
                reason="Reduce bid to improve efficiency",
            ))
        steps.append(RemediationStep(
            action="add_negatives",
            params={"level": "ad_group", "match_type": "phrase"},
            output="negatives.csv",
            status=status,
        ))

        current = alert.metrics.current
        impressions = alert.metrics.additional.get("impressions", current.count)
        return self.remediation(alert, steps, EstimatedImpact(
            clicks=math.floor(current.value * 1.3 * float(impressions)),
            cost=0.0,
        ))


class CpcJumpPlaybook(Playbook):
    id = "pb_cpc_jump"
    alert_type = AlertType.CPC_JUMP
    description = "Reduce CPC through bid optimization and negatives"

    async def execute(self, alert: Alert, options: PlaybookOptions) -> Remediation:
        status = self.immediate(options)
        steps = [RemediationStep(
            action="identify_waste_ngrams",
            params={"min_cost": 10, "min_clicks": 5, "zero_conversion": True},
            output="waste-analysis.csv",
            status=status,
        )]
        if options.allow_bid_changes:
            steps.append(RemediationStep(
                action="reduce_bids",
                params={
                    "reduction": 0.1,
                    "apply_cap": True,
                    "target_cpc": alert.metrics.baseline.mean,
                },
                status=status,
            ))
        steps.extend([
            RemediationStep(
                action="add_negatives_from_waste",
                params={"source": "high_cost_zero_conversion", "match_type": "phrase"},
                output="negatives.csv",
                status=status,
            ),
            RemediationStep(
                action="analyze_auction_insights",
                params={"check_overlap": True, "check_position": True},
            ),
        ])
        clicks = alert.metrics.additional.get("clicks", 0)
        return self.remediation(alert, steps, EstimatedImpact(
            cost=-alert.metrics.change_absolute * float(clicks),
        ))


class SpendPlaybook(Playbook):
    """Handles both spend spikes and spend drops."""

    id = "pb_spend_spike"
    alert_type = AlertType.SPEND_SPIKE
    description = "Control spend through budget and bid adjustments"

    async def execute(self, alert: Alert, options: PlaybookOptions) -> Remediation:
        status = self.immediate(options)
        if alert.type != AlertType.SPEND_SPIKE:
            steps = [
                RemediationStep(action="check_budget_limits", params={"verify_settings": True}),
                RemediationStep(
                    action="review_bid_strategy",
                    params={"check_competitiveness": True},
                ),
                RemediationStep(action="check_ad_disapprovals"),
            ]
            return self.remediation(alert, steps, EstimatedImpact(cost=0.0))

        steps = [RemediationStep(
            action="review_search_terms",
            params={
                "sort_by": "cost",
                "limit": 20,
                "period": f"last_{alert.window.current_days}_days",
            },
            output="high-cost-terms.csv",
        )]
        if options.allow_bid_changes:
            steps.append(RemediationStep(
                action="adjust_bids",
                params={"change": -0.1, "target": "high_cost_keywords"},
                status=status,
            ))
        steps.append(RemediationStep(
            action="set_budget_cap",
            params={"daily_limit": round(alert.metrics.baseline.mean * 1.2, 2)},
            status=status,
        ))
        return self.remediation(alert, steps, EstimatedImpact(
            cost=-alert.metrics.change_absolute,
        ))


class ConversionDropPlaybook(Playbook):
    id = "pb_conversion_drop"
    alert_type = AlertType.CONVERSION_DROP
    description = "Recover conversion rate through landing page and query hygiene"

    async def execute(self, alert: Alert, options: PlaybookOptions) -> Remediation:
        status = self.immediate(options)
        entity = alert.entity
        steps = [
            RemediationStep(
                action="analyze_landing_pages",
                params={"entity_type": entity.type.value, "entity_id": entity.id},
                output="landing-page-analysis.md",
            ),
            RemediationStep(
                action="analyze_conversion_funnel",
                params={"funnel_steps": ["landing", "form", "thank_you"]},
            ),
        ]
        if options.allow_bid_changes:
            steps.append(RemediationStep(
                action="create_landing_page_variants",
                params={"variants": ["social_proof", "simplified_form"], "traffic_split": 0.5},
                status=status,
            ))
        steps.extend([
            RemediationStep(
                action="analyze_low_converting_terms",
                params={"min_clicks": 20, "max_conversion_rate": alert.metrics.current.value},
            ),
            RemediationStep(
                action="add_negative_keywords",
                params={"source": "zero_conversion_terms", "match_type": "phrase"},
                output="negatives.csv",
                status=status,
            ),
        ])
        clicks = float(alert.metrics.additional.get("clicks", alert.metrics.current.count))
        wasted = float(alert.metrics.additional.get("wasted_spend", 0.0))
        return self.remediation(alert, steps, EstimatedImpact(
            conversions=round(clicks * alert.metrics.baseline.mean * 0.3),
            cost=-wasted * 0.5,
        ))


class QualityScorePlaybook(Playbook):
    id = "pb_quality_score"
    alert_type = AlertType.QUALITY_SCORE
    description = "Lift quality scores by fixing the weakest components"

    async def execute(self, alert: Alert, options: PlaybookOptions) -> Remediation:
        status = self.immediate(options)
        issues = alert.metrics.additional.get("issues", [])

        def keywords_with(component: str) -> list[str]:
            return [i["keyword"] for i in issues if component in i.get("component_issues", [])]

        steps: list[RemediationStep] = []
        if relevance := keywords_with("ad_relevance"):
            steps.append(RemediationStep(
                action="improve_ad_relevance",
                params={"keywords": relevance, "approach": "tighter_ad_groups"},
            ))
        if ctr := keywords_with("expected_ctr"):
            steps.append(RemediationStep(
                action="improve_expected_ctr",
                params={"keywords": ctr},
                status=status,
            ))
            if options.allow_bid_changes:
                steps.append(RemediationStep(
                    action="create_ad_copy_variants",
                    params={"keywords": ctr, "count": 3},
                    status=status,
                ))
        if landing := keywords_with("landing_page_experience"):
            steps.extend([
                RemediationStep(
                    action="improve_landing_page_experience",
                    params={"keywords": landing},
                ),
                RemediationStep(action="optimize_page_speed", params={"target_lcp_seconds": 2.5}),
            ])
        low = [i["keyword"] for i in issues if i.get("quality_score", 10) <= 4]
        if low:
            steps.append(RemediationStep(
                action="manage_low_quality_keywords",
                params={"keywords": low, "pause_at_or_below": 2, "optimize_at_or_below": 4},
                status=status,
            ))
        steps.extend([
            RemediationStep(
                action="optimize_ad_extensions",
                params={"types": ["sitelinks", "callouts", "structured_snippets"]},
                status=status,
            ),
            RemediationStep(
                action="setup_quality_score_monitoring",
                params={"frequency": "weekly"},
                status=StepStatus.PENDING,
            ),
        ])

        total_cost = float(alert.metrics.additional.get("total_cost", 0.0))
        affected = len(issues)
        return self.remediation(alert, steps, EstimatedImpact(
            cost=-total_cost * 0.3,
            clicks=affected * 0.2,
            conversions=round(affected * 0.15),
        ))


class LpRegressionPlaybook(Playbook):
    """Broken landing pages block every other change until fixed."""

    id = "pb_lp_regression"
    alert_type = AlertType.LP_REGRESSION
    description = "Stop traffic to broken landing pages and queue fixes"

    _FIXES: dict[str, list[str]] = {
        "noindex": ["Remove noindex meta tag", "Check robots.txt"],
        "status_404": ["Fix 404 error", "Restore page or redirect to working page"],
        "status_5xx": ["Fix server error", "Restore page or redirect to working page"],
        "soft_404": ["Add substantial content", "Fix thin content issues"],
        "redirect_chain": ["Reduce redirect chain to single hop", "Update ads to final URL"],
        "canonical_issue": ["Point canonical tag at the served URL"],
        "no_health_data": ["Add the URL to health monitoring"],
    }

    async def execute(self, alert: Alert, options: PlaybookOptions) -> Remediation:
        status = self.immediate(options)
        issues = alert.metrics.additional.get("issues", [])
        urls = alert.metrics.additional.get("affected_urls") or (
            [alert.entity.url] if alert.entity.url else []
        )
        kinds = sorted({i.get("type", "unknown") for i in issues}) or ["unknown"]
        fixes = [fix for kind in kinds for fix in self._FIXES.get(kind, [])]

        steps = [
            RemediationStep(
                action="block_applies",
                params={"urls": urls, "issues": kinds},
                status=status,
                reason="Landing page health check failed",
            ),
            RemediationStep(
                action="generate_fix_list",
                artifacts={"fixes": fixes},
                output="lp-fixes.md",
                status=status,
            ),
            RemediationStep(
                action="pause_affected_ads",
                params={"urls": urls, "reason": f"LP issue: {', '.join(kinds)}"},
                status=status,
            ),
            RemediationStep(
                action="schedule_revalidation",
                params={"urls": urls, "check_after": "24_hours"},
            ),
        ]
        return self.remediation(
            alert,
            steps,
            EstimatedImpact(clicks=0.0, cost=0.0),
            blockers=[f"Landing page {', '.join(kinds)} - all changes blocked until fixed"],
        )


class LpHealthPlaybook(Playbook):
    """Slow or failing pages get fixes queued; critical ones hold spend changes."""

    id = "pb_lp_health"
    alert_type = AlertType.LP_HEALTH
    description = "Restore landing page speed, availability and engagement"

    async def execute(self, alert: Alert, options: PlaybookOptions) -> Remediation:
        status = self.immediate(options)
        additional = alert.metrics.additional
        url = additional.get("url") or alert.entity.url or alert.entity.id
        kinds = {i.get("type") for i in additional.get("issues", [])}
        vitals = additional.get("current_metrics", {})
        critical = alert.severity == Severity.CRITICAL

        steps: list[RemediationStep] = []
        if kinds & {"slow_response", "response_degraded"}:
            steps.append(RemediationStep(
                action="optimize_page_speed",
                params={"urls": [url], "target_lcp_seconds": 2.5},
                output="page-speed-audit.md",
            ))
        if kinds & {"high_error_rate", "critical_status", "error_rate_degraded"}:
            steps.append(RemediationStep(
                action="check_server_logs",
                params={"urls": [url], "status_code": vitals.get("status_code")},
                status=status,
                reason="Server errors on landing page",
            ))
        if kinds & {"high_bounce_rate", "bounce_degraded"}:
            steps.extend([
                RemediationStep(action="review_page_content", params={"urls": [url]}),
                RemediationStep(
                    action="check_ad_relevance",
                    params={"urls": [url], "compare": ["ad_copy", "keywords"]},
                ),
            ])
        if critical:
            steps.append(RemediationStep(
                action="pause_affected_ads",
                params={"urls": [url], "reason": "LP health critical"},
                status=status,
            ))
        steps.append(RemediationStep(
            action="schedule_revalidation",
            params={"urls": [url], "check_after": "24_hours"},
        ))

        blockers = (
            [f"Landing page {url} failing health checks - spend changes blocked until fixed"]
            if critical else []
        )
        return self.remediation(alert, steps, EstimatedImpact(clicks=0.0, cost=0.0), blockers)


def build_default_playbooks() -> PlaybookRegistry:
    """Registry with every built-in playbook; spend drops share the spend playbook."""
    registry = PlaybookRegistry()
    spend = SpendPlaybook()
    for playbook in (
        CtrDropPlaybook(),
        CpcJumpPlaybook(),
        spend,
        ConversionDropPlaybook(),
        QualityScorePlaybook(),
        LpRegressionPlaybook(),
        LpHealthPlaybook(),
    ):
        registry.register(playbook)
    registry.register(spend, key="pb_spend_drop")
    return registry
