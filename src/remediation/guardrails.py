"""Guardrails — safety policies checked against every remediation step.

The ``check_*`` functions are pure and return a GuardrailResult. Guardrail
objects bind one of them to a name, a threshold and the action types it
covers, and the evaluator runs them in order over a Remediation.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

import structlog

from src.core.config import GuardrailConfig
from src.core.types import (
    Entity,
    GuardrailAction,
    GuardrailResult,
    GuardrailType,
    Remediation,
    StepStatus,
    UrlHealth,
)
from src.detectors.sources import UrlHealthSource
from src.remediation.exceptions import GuardrailError

logger = structlog.stdlib.get_logger()

PASSED = GuardrailResult(passed=True)


# ── Pure checks ─────────────────────────────────────────────────


def check_cost_cap(action: GuardrailAction, threshold: float) -> GuardrailResult:
    """Block when the magnitude of the estimated cost exceeds *threshold*."""
    if action.estimated_cost is None:
        return PASSED
    cost = abs(action.estimated_cost)
    if cost > threshold:
        return GuardrailResult(
            passed=False,
            blocker=True,
            reason=f"Estimated cost ${cost:.2f} exceeds ${threshold:.2f} cap",
            suggestions=[f"Split the change so each step stays under ${threshold:.2f}"],
        )
    return PASSED


def check_bid_change(action: GuardrailAction, max_change: float) -> GuardrailResult:
    """Warn above *max_change*; block above twice that."""
    raw = action.params.get("change", action.params.get("reduction"))
    if raw is None:
        return PASSED
    change = abs(float(raw))
    if change > max_change * 2:
        return GuardrailResult(
            passed=False,
            blocker=True,
            reason=f"Bid change {change:.0%} exceeds hard limit {max_change * 2:.0%}",
            suggestions=["Apply change in smaller increments"],
        )
    if change > max_change:
        return GuardrailResult(
            passed=False,
            blocker=False,
            reason=f"Bid change {change:.0%} exceeds {max_change:.0%} limit",
            suggestions=["Apply change in smaller increments"],
        )
    return PASSED


def check_budget_increase(action: GuardrailAction, max_increase: float) -> GuardrailResult:
    """Block budget increases above *max_increase* of the current daily budget."""
    budget = action.params.get("current_budget")
    if action.estimated_cost is None or budget is None:
        return PASSED
    allowed = float(budget) * max_increase
    if action.estimated_cost > allowed:
        return GuardrailResult(
            passed=False,
            blocker=True,
            reason=f"Budget increase exceeds {max_increase:.0%} limit (${allowed:.2f})",
            suggestions=[f"Reduce increase to ${allowed:.2f} or less"],
        )
    return PASSED


def check_approval(action: GuardrailAction) -> GuardrailResult:
    if action.params.get("approved"):
        return PASSED
    return GuardrailResult(
        passed=False,
        blocker=True,
        reason=f"Action '{action.type}' requires manual approval",
        suggestions=["Review performance data before applying"],
    )


def check_landing_page(health: UrlHealth | None, max_redirects: int = 1) -> GuardrailResult:
    if health is None:
        return GuardrailResult(passed=True, reason="No health data available for URL")
    if health.status_code != 200:
        return GuardrailResult(
            passed=False,
            blocker=True,
            reason=f"Landing page returns status {health.status_code}",
            suggestions=["Fix landing page before applying changes"],
        )
    if health.is_noindex:
        return GuardrailResult(
            passed=False,
            blocker=True,
            reason="Landing page has noindex directive",
            suggestions=["Remove noindex from landing page"],
        )
    if health.is_soft_404:
        return GuardrailResult(
            passed=False,
            blocker=True,
            reason="Landing page is a soft 404",
            suggestions=["Fix landing page content"],
        )
    if health.redirect_chain > max_redirects:
        return GuardrailResult(
            passed=False,
            blocker=False,
            reason=f"Landing page has {health.redirect_chain} redirects",
            suggestions=["Reduce redirect chain"],
        )
    return PASSED


def check_compliance(
    action: GuardrailAction,
    trademark_terms: Iterable[str],
    prohibited_terms: Iterable[str],
) -> GuardrailResult:
    """Trademarks in headlines warn; prohibited claims in text block."""
    for headline in action.params.get("headlines") or []:
        lowered = str(headline).lower()
        for term in trademark_terms:
            if term.lower() in lowered:
                return GuardrailResult(
                    passed=False,
                    blocker=False,
                    reason=f'Potential trademark issue with "{term}" in ad copy',
                    suggestions=["Review trademark policies", "Use generic terms"],
                )

    text = str(action.params.get("text") or "").lower()
    for term in prohibited_terms:
        if term.lower() in text:
            return GuardrailResult(
                passed=False,
                blocker=True,
                reason=f'Prohibited term "{term}" in content',
                suggestions=["Remove absolute claims", "Use compliant language"],
            )
    return PASSED


# ── Guardrail policies ──────────────────────────────────────────

CheckFn = Callable[[GuardrailAction], Awaitable[GuardrailResult] | GuardrailResult]


class Guardrail:
    """A named safety policy.

    ``critical`` guardrails block on any failure; others block only when the
    result itself is flagged ``blocker``. ``actions`` limits the step types
    the policy looks at (None means every step).
    """

    def __init__(
        self,
        name: str,
        check: CheckFn | None = None,
        *,
        type: GuardrailType = GuardrailType.CUSTOM,  # noqa: A002
        threshold: float | None = None,
        critical: bool = False,
        message: str = "",
        actions: Iterable[str] | None = None,
    ) -> None:
        self.name = name
        self.type = type
        self.threshold = threshold
        self.critical = critical
        self.message = message
        self.actions = frozenset(actions) if actions is not None else None
        self._check = check

    def applies_to(self, action_type: str) -> bool:
        return self.actions is None or action_type in self.actions

    async def check(self, action: GuardrailAction) -> GuardrailResult:
        if not self.applies_to(action.type):
            return PASSED
        result = await self._evaluate(action)
        if not result.passed and self.message and not result.reason:
            result = result.model_copy(update={"reason": self.message})
        return result

    async def _evaluate(self, action: GuardrailAction) -> GuardrailResult:
        if self._check is None:
            if self.threshold is not None:
                return check_cost_cap(action, self.threshold)
            return PASSED
        result = self._check(action)
        if asyncio.iscoroutine(result):
            result = await result
        return result

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, critical={self.critical})"


class CostCapGuardrail(Guardrail):
    def __init__(
        self,
        threshold: float,
        actions: Iterable[str] | None = None,
        name: str = "Cost Cap",
        critical: bool = True,
    ) -> None:
        super().__init__(
            name,
            type=GuardrailType.COST_CAP,
            threshold=threshold,
            critical=critical,
            actions=actions,
        )

    async def _evaluate(self, action: GuardrailAction) -> GuardrailResult:
        return check_cost_cap(action, self.threshold or 0.0)


class BidChangeGuardrail(Guardrail):
    def __init__(self, threshold: float = 0.2, name: str = "Bid Change Limit") -> None:
        super().__init__(
            name,
            type=GuardrailType.BID_CHANGE,
            threshold=threshold,
            critical=False,
            actions={"reduce_bids", "adjust_bids", "adjust_bid", "bid_change"},
        )

    async def _evaluate(self, action: GuardrailAction) -> GuardrailResult:
        return check_bid_change(action, self.threshold or 0.0)


class BudgetIncreaseGuardrail(Guardrail):
    def __init__(self, threshold: float = 0.1, name: str = "Budget Protection") -> None:
        super().__init__(
            name,
            type=GuardrailType.BUDGET_INCREASE,
            threshold=threshold,
            critical=True,
            actions={"increase_budget"},
        )

    async def _evaluate(self, action: GuardrailAction) -> GuardrailResult:
        return check_budget_increase(action, self.threshold or 0.0)


class ApprovalGuardrail(Guardrail):
    def __init__(self, actions: Iterable[str], name: str = "Manual Approval") -> None:
        super().__init__(name, type=GuardrailType.APPROVAL, critical=False, actions=actions)

    async def _evaluate(self, action: GuardrailAction) -> GuardrailResult:
        return check_approval(action)


class LandingPageHealthGuardrail(Guardrail):
    """Blocks steps that target a URL whose latest crawl is unhealthy."""

    def __init__(
        self,
        source: UrlHealthSource,
        max_redirects: int = 1,
        name: str = "Landing Page Health",
    ) -> None:
        super().__init__(name, type=GuardrailType.LANDING_PAGE, critical=True)
        self._source = source
        self._max_redirects = max_redirects

    async def _evaluate(self, action: GuardrailAction) -> GuardrailResult:
        if not action.target_url:
            return PASSED
        health = await self._source.fetch_url_health(action.target_url)
        return check_landing_page(health, self._max_redirects)


class ComplianceGuardrail(Guardrail):
    def __init__(
        self,
        trademark_terms: Iterable[str],
        prohibited_terms: Iterable[str],
        name: str = "Compliance",
    ) -> None:
        super().__init__(name, type=GuardrailType.COMPLIANCE, critical=False)
        self._trademarks = list(trademark_terms)
        self._prohibited = list(prohibited_terms)

    async def _evaluate(self, action: GuardrailAction) -> GuardrailResult:
        return check_compliance(action, self._trademarks, self._prohibited)


def default_guardrails(
    config: GuardrailConfig | None = None,
    url_health: UrlHealthSource | None = None,
) -> list[Guardrail]:
    """The standard policy set; landing-page health needs a URL health source."""
    if config is None:
        from src.core.config import get_settings

        config = get_settings().guardrails

    guardrails: list[Guardrail] = [
        CostCapGuardrail(config.max_cost_usd, actions=config.cost_capped_actions),
        BidChangeGuardrail(config.max_bid_change_pct),
        BudgetIncreaseGuardrail(config.max_budget_increase_pct),
        ApprovalGuardrail(config.approval_required_actions),
    ]
    if url_health is not None:
        guardrails.append(LandingPageHealthGuardrail(url_health))
    guardrails.append(ComplianceGuardrail(config.trademark_terms, config.prohibited_terms))
    return guardrails


# ── Evaluator ───────────────────────────────────────────────────


def _step_action(
    params: dict[str, Any],
    action: str,
    remediation: Remediation,
    entity: Entity | None,
) -> GuardrailAction:
    cost = params.get("estimated_cost")
    if cost is None and remediation.estimated_impact is not None:
        cost = remediation.estimated_impact.cost
    return GuardrailAction(
        type=action,
        params=params,
        estimated_cost=cost,
        entity=entity,
        target_url=params.get("url") or params.get("target_url"),
    )


class GuardrailEvaluator:
    """Runs every guardrail over every step, in the playbook's declared order."""

    def __init__(self, guardrails: Iterable[Guardrail] | None = None) -> None:
        self._guardrails: list[Guardrail] = list(guardrails or [])

    @property
    def guardrails(self) -> list[Guardrail]:
        return list(self._guardrails)

    def add(self, guardrail: Guardrail) -> None:
        self._guardrails.append(guardrail)

    async def evaluate(
        self,
        remediation: Remediation,
        entity: Entity | None = None,
    ) -> list[str]:
        """Mark blocked steps skipped and return the blocker messages.

        A step can be blocked by several guardrails; every message is kept
        and the step's reason lists them all.
        """
        blockers: list[str] = []
        for step in remediation.steps:
            action = _step_action(step.params, step.action, remediation, entity)
            reasons: list[str] = []
            for guardrail in self._guardrails:
                try:
                    result = await guardrail.check(action)
                except Exception as exc:
                    raise GuardrailError(
                        f"{guardrail.name} failed on {step.action}: {exc}"
                    ) from exc
                if result.passed:
                    continue
                if guardrail.critical or result.blocker:
                    blockers.append(f"{guardrail.name}: {result.reason}")
                    reasons.append(result.reason)
                else:
                    logger.warning(
                        "guardrail_warning",
                        guardrail=guardrail.name,
                        action=step.action,
                        reason=result.reason,
                    )
            if reasons:
                step.status = StepStatus.SKIPPED
                step.reason = "; ".join(reasons)
        return blockers
