"""RemediationOrchestrator — playbook lookup, guardrails and the remediation log."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog

from src.alerts.store import AlertStore, Clock, utcnow
from src.core.logging import alert_context
from src.core.types import (
    Alert,
    PlaybookOptions,
    Remediation,
    RemediationRecord,
    StepStatus,
)
from src.remediation.guardrails import GuardrailEvaluator
from src.remediation.playbooks import PlaybookRegistry

logger = structlog.stdlib.get_logger()

RemediationCallback = Callable[[Remediation], Awaitable[None] | None]


def playbook_key(alert: Alert) -> str:
    return alert.playbook or f"pb_{alert.type.value}"


class RemediationOrchestrator:
    """Maps a surfaced alert to a checked, ordered set of remediation steps.

    ``remediate`` never raises: a missing playbook, a guardrail block or a
    playbook crash all come back as a Remediation with blockers.

    Usage::

        orchestrator = RemediationOrchestrator(
            build_default_playbooks(),
            GuardrailEvaluator(default_guardrails(settings.guardrails)),
            store,
            defaults=settings.remediation.playbook_options(),
        )
        result = await orchestrator.remediate(alert, PlaybookOptions(dry_run=False))

    Runs without options use *defaults*. A live run that passes guardrails
    with ``require_approval`` set keeps its steps pending and is not logged.
    """

    def __init__(
        self,
        playbooks: PlaybookRegistry,
        guardrails: GuardrailEvaluator | None = None,
        log: AlertStore | None = None,
        clock: Clock | None = None,
        defaults: PlaybookOptions | None = None,
    ) -> None:
        self._playbooks = playbooks
        self._defaults = defaults or PlaybookOptions()
        self._guardrails = guardrails or GuardrailEvaluator()
        self._log = log
        self._clock = clock or utcnow
        self._callbacks: list[RemediationCallback] = []
        self._runs = 0
        self._blocked = 0
        self._applied = 0

    @property
    def playbooks(self) -> PlaybookRegistry:
        return self._playbooks

    @property
    def guardrails(self) -> GuardrailEvaluator:
        return self._guardrails

    def on_remediation(self, callback: RemediationCallback) -> None:
        """Register a callback invoked with every remediation result."""
        self._callbacks.append(callback)

    async def _emit(self, remediation: Remediation) -> None:
        for cb in self._callbacks:
            try:
                result = cb(remediation)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception(
                    "remediation_callback_error",
                    alert_id=remediation.alert_id,
                )

    async def remediate(
        self,
        alert: Alert,
        options: PlaybookOptions | None = None,
    ) -> Remediation:
        """Run the alert's playbook, apply guardrails and log live runs that pass."""
        options = options or self._defaults
        self._runs += 1
        with alert_context(alert.id):
            result = await self._remediate(alert, options)
            if not result.guardrails_passed:
                self._blocked += 1
            await self._emit(result)
            return result

    async def _remediate(self, alert: Alert, options: PlaybookOptions) -> Remediation:
        key = playbook_key(alert)
        playbook = self._playbooks.get(key)
        if playbook is None:
            logger.warning("playbook_missing", playbook=key, alert_type=alert.type.value)
            return Remediation(
                alert_id=alert.id,
                playbook=key,
                steps=[],
                guardrails_passed=False,
                blockers=[f"No playbook '{key}' available for {alert.type.value}"],
            )

        logger.info(
            "remediation_started",
            playbook=key,
            severity=alert.severity.value,
            dry_run=options.dry_run,
        )
        remediation: Remediation | None = None
        try:
            remediation = await playbook.execute(alert, options)
            remediation.playbook = key
            blockers = await self._guardrails.evaluate(remediation, entity=alert.entity)
            if (over := budget_blocker(remediation, options.max_budget_impact)) is not None:
                blockers.append(over)
            remediation.blockers = [*remediation.blockers, *blockers]
            remediation.guardrails_passed = not remediation.blockers
        except Exception as exc:
            logger.exception("remediation_failed", playbook=key)
            return Remediation(
                alert_id=alert.id,
                playbook=key,
                steps=remediation.steps if remediation is not None else [],
                guardrails_passed=False,
                blockers=[f"Execution error: {exc}"],
            )

        if remediation.blockers:
            logger.warning("remediation_blocked", playbook=key, blockers=remediation.blockers)

        if not options.dry_run and remediation.guardrails_passed:
            if options.require_approval:
                held = hold_for_approval(remediation)
                logger.info("remediation_awaiting_approval", playbook=key, steps=held)
            else:
                remediation.applied_at = self._clock()
                await self._record(remediation)

        return remediation

    async def _record(self, remediation: Remediation) -> None:
        self._applied += 1
        if self._log is None:
            return
        record = RemediationRecord(
            alert_id=remediation.alert_id,
            playbook=remediation.playbook,
            actions=remediation.steps,
            dry_run=False,
            applied_at=remediation.applied_at or self._clock(),
            result={
                "guardrailsPassed": remediation.guardrails_passed,
                "blockers": remediation.blockers,
                "estimatedImpact": (
                    remediation.estimated_impact.model_dump()
                    if remediation.estimated_impact is not None
                    else None
                ),
            },
        )
        try:
            await self._log.append_remediation(record)
        except Exception:
            logger.exception("remediation_log_error", playbook=remediation.playbook)

    def snapshot(self) -> dict[str, object]:
        """Counters since start-up."""
        return {
            "runs": self._runs,
            "blocked": self._blocked,
            "applied": self._applied,
            "playbooks": self._playbooks.ids,
            "guardrails": [g.name for g in self._guardrails.guardrails],
        }


def budget_blocker(remediation: Remediation, limit: float | None) -> str | None:
    """Blocker text when the estimated cost change exceeds *limit* in either direction."""
    impact = remediation.estimated_impact
    if limit is None or impact is None or impact.cost is None:
        return None
    if abs(impact.cost) <= limit:
        return None
    return f"Estimated budget impact ${abs(impact.cost):.2f} exceeds limit ${limit:.2f}"


def hold_for_approval(remediation: Remediation) -> list[str]:
    """Turn every applied step back to pending; returns the held actions."""
    held = []
    for step in remediation.steps:
        if step.status == StepStatus.APPLIED:
            step.status = StepStatus.PENDING
            step.reason = step.reason or "Awaiting approval"
            held.append(step.action)
    return held


def applied_steps(remediation: Remediation) -> list[str]:
    return [s.action for s in remediation.steps if s.status == StepStatus.APPLIED]
