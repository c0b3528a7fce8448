"""Tests for RemediationOrchestrator: lookup, guardrails, logging, failure paths."""

from __future__ import annotations

from datetime import UTC, date, datetime
from typing import Any

from src.alerts.store import InMemoryAlertStore
from src.core.config import GuardrailConfig, Settings
from src.core.types import (
    Alert,
    AlertMetrics,
    AlertType,
    BaselineData,
    CurrentData,
    DetectionInfo,
    Entity,
    EntityType,
    GuardrailAction,
    GuardrailResult,
    Period,
    PlaybookOptions,
    Remediation,
    RemediationRecord,
    Severity,
    StepStatus,
    TimeWindow,
)
from src.remediation.guardrails import (
    CostCapGuardrail,
    Guardrail,
    GuardrailEvaluator,
    default_guardrails,
)
from src.remediation.orchestrator import RemediationOrchestrator, applied_steps, playbook_key
from src.remediation.playbooks import Playbook, PlaybookRegistry
from src.remediation.strategies import build_default_playbooks

# ── Helpers ─────────────────────────────────────────────────────

_NOW = datetime(2026, 3, 15, 12, 0, tzinfo=UTC)
_PERIOD = Period(start=date(2026, 3, 13), end=date(2026, 3, 15))


def _clock() -> datetime:
    return _NOW


def _alert(
    alert_type: AlertType = AlertType.CPC_JUMP,
    playbook: str | None = None,
    change_absolute: float = 0.5,
    additional: dict[str, Any] | None = None,
) -> Alert:
    return Alert(
        id="a1",
        type=alert_type,
        severity=Severity.HIGH,
        entity=Entity(id="kw1", type=EntityType.KEYWORD, product="shoes", keyword="red shoes"),
        window=TimeWindow(),
        metrics=AlertMetrics(
            baseline=BaselineData(mean=1.0, count=14, period=_PERIOD),
            current=CurrentData(value=1.0 + change_absolute, count=10, period=_PERIOD),
            change_absolute=change_absolute,
            additional=additional or {},
        ),
        why="test",
        playbook=playbook,
        detection=DetectionInfo(first_seen=_NOW, last_seen=_NOW),
    )


class _BrokenPlaybook(Playbook):
    id = "pb_cpc_jump"
    alert_type = AlertType.CPC_JUMP

    async def execute(self, alert: Alert, options: PlaybookOptions) -> Remediation:
        raise RuntimeError("playbook exploded")


class _FailingLog(InMemoryAlertStore):
    async def append_remediation(self, record: RemediationRecord) -> None:
        raise OSError("disk full")


def _orchestrator(
    guardrails: list[Guardrail] | None = None,
    log: InMemoryAlertStore | None = None,
) -> RemediationOrchestrator:
    return RemediationOrchestrator(
        build_default_playbooks(),
        GuardrailEvaluator(guardrails or []),
        log,
        clock=_clock,
    )


_LIVE = PlaybookOptions(dry_run=False, allow_bid_changes=True)


# ── Lookup ──────────────────────────────────────────────────────


class TestPlaybookLookup:
    def test_key_prefers_alert_playbook(self) -> None:
        assert playbook_key(_alert(playbook="pb_custom")) == "pb_custom"
        assert playbook_key(_alert()) == "pb_cpc_jump"

    async def test_missing_playbook(self) -> None:
        result = await _orchestrator().remediate(_alert(playbook="pb_unknown"), PlaybookOptions())

        assert not result.guardrails_passed
        assert result.steps == []
        assert result.blockers == ["No playbook 'pb_unknown' available for cpc_jump"]

    async def test_spend_drop_uses_shared_playbook(self) -> None:
        result = await _orchestrator().remediate(
            _alert(AlertType.SPEND_DROP, playbook="pb_spend_drop"), _LIVE,
        )
        assert result.playbook == "pb_spend_drop"
        assert [s.action for s in result.steps][0] == "check_budget_limits"


# ── Guardrails ──────────────────────────────────────────────────


class TestGuardrailOutcome:
    async def test_cost_cap_skips_bid_step_only(self) -> None:
        log = InMemoryAlertStore(clock=_clock)
        orchestrator = _orchestrator([CostCapGuardrail(100, actions={"reduce_bids"})], log)
        alert = _alert(change_absolute=5.0, additional={"clicks": 100})

        result = await orchestrator.remediate(alert, _LIVE)

        steps = {s.action: s for s in result.steps}
        assert steps["reduce_bids"].status == StepStatus.SKIPPED
        assert steps["reduce_bids"].reason
        assert steps["identify_waste_ngrams"].status == StepStatus.APPLIED
        assert steps["add_negatives_from_waste"].status == StepStatus.APPLIED
        assert not result.guardrails_passed
        assert result.applied_at is None
        assert await log.list_remediations() == []

    async def test_default_guardrails_pass_ctr_playbook(self) -> None:
        log = InMemoryAlertStore(clock=_clock)
        orchestrator = _orchestrator(default_guardrails(GuardrailConfig()), log)

        result = await orchestrator.remediate(_alert(AlertType.CTR_DROP), _LIVE)

        assert result.guardrails_passed
        assert result.blockers == []
        assert result.applied_at == _NOW
        records = await log.list_remediations("a1")
        assert len(records) == 1
        assert records[0].playbook == "pb_ctr_drop"
        assert records[0].result["guardrailsPassed"] is True
        assert records[0].dry_run is False

    async def test_playbook_blockers_merged(self) -> None:
        alert = _alert(
            AlertType.LP_REGRESSION,
            additional={"affected_urls": ["https://x.test/a"], "issues": [{"type": "status_404"}]},
        )
        result = await _orchestrator([CostCapGuardrail(100)]).remediate(alert, _LIVE)

        assert not result.guardrails_passed
        assert any("all changes blocked" in b for b in result.blockers)


# ── Runs ────────────────────────────────────────────────────────


class TestRuns:
    async def test_dry_run_never_logged(self) -> None:
        log = InMemoryAlertStore(clock=_clock)
        result = await _orchestrator([], log).remediate(_alert(), PlaybookOptions())

        assert result.guardrails_passed
        assert result.applied_at is None
        assert all(s.status == StepStatus.PENDING for s in result.steps)
        assert await log.list_remediations() == []

    async def test_bid_steps_need_permission(self) -> None:
        result = await _orchestrator().remediate(_alert(), PlaybookOptions(dry_run=False))
        assert "reduce_bids" not in [s.action for s in result.steps]

    async def test_execution_error(self) -> None:
        registry = PlaybookRegistry()
        registry.register(_BrokenPlaybook())
        orchestrator = RemediationOrchestrator(registry, clock=_clock)

        result = await orchestrator.remediate(_alert(), _LIVE)

        assert not result.guardrails_passed
        assert result.steps == []
        assert result.blockers == ["Execution error: playbook exploded"]

    async def test_guardrail_crash_keeps_partial_steps(self) -> None:
        def _crash(action: GuardrailAction) -> GuardrailResult:
            raise ValueError("bad policy")

        result = await _orchestrator([Guardrail("Broken", _crash)]).remediate(_alert(), _LIVE)

        assert not result.guardrails_passed
        assert result.steps
        assert result.blockers[0].startswith("Execution error:")

    async def test_log_failure_does_not_raise(self) -> None:
        orchestrator = _orchestrator([], _FailingLog(clock=_clock))
        result = await orchestrator.remediate(_alert(AlertType.CTR_DROP), _LIVE)
        assert result.guardrails_passed
        assert result.applied_at == _NOW

    async def test_callbacks_and_snapshot(self) -> None:
        orchestrator = _orchestrator([CostCapGuardrail(100, actions={"reduce_bids"})])
        seen: list[bool] = []
        orchestrator.on_remediation(lambda r: seen.append(r.guardrails_passed))

        await orchestrator.remediate(_alert(AlertType.CTR_DROP), _LIVE)
        await orchestrator.remediate(
            _alert(change_absolute=5.0, additional={"clicks": 100}), _LIVE,
        )
        await orchestrator.remediate(_alert(playbook="pb_unknown"), _LIVE)

        assert seen == [True, False, False]
        snap = orchestrator.snapshot()
        assert snap["runs"] == 3
        assert snap["blocked"] == 2
        assert snap["applied"] == 1
        assert "pb_spend_drop" in snap["playbooks"]  # type: ignore[operator]

    async def test_applied_steps(self) -> None:
        result = await _orchestrator().remediate(_alert(AlertType.CTR_DROP), _LIVE)
        assert applied_steps(result) == [
            "create_rsa_variants",
            "add_assets",
            "adjust_bid",
            "add_negatives",
        ]


# ── Run options ─────────────────────────────────────────────────


class TestRunOptions:
    async def test_settings_defaults_used_without_options(self) -> None:
        log = InMemoryAlertStore(clock=_clock)
        settings = Settings(remediation={"dry_run_default": False})
        orchestrator = RemediationOrchestrator(
            build_default_playbooks(),
            GuardrailEvaluator([]),
            log,
            clock=_clock,
            defaults=settings.remediation.playbook_options(),
        )

        result = await orchestrator.remediate(_alert(AlertType.CTR_DROP))

        assert result.applied_at == _NOW
        assert "adjust_bid" not in [s.action for s in result.steps]
        assert len(await log.list_remediations()) == 1

    async def test_budget_impact_over_limit_blocks(self) -> None:
        log = InMemoryAlertStore(clock=_clock)
        alert = _alert(change_absolute=0.5, additional={"clicks": 1000})
        options = PlaybookOptions(dry_run=False, max_budget_impact=100)

        result = await _orchestrator([], log).remediate(alert, options)

        assert not result.guardrails_passed
        assert result.blockers == ["Estimated budget impact $500.00 exceeds limit $100.00"]
        assert result.applied_at is None
        assert await log.list_remediations() == []

    async def test_budget_impact_within_limit(self) -> None:
        alert = _alert(change_absolute=0.5, additional={"clicks": 1000})
        options = PlaybookOptions(dry_run=False, max_budget_impact=500)

        result = await _orchestrator().remediate(alert, options)

        assert result.guardrails_passed
        assert result.applied_at == _NOW

    async def test_require_approval_holds_steps(self) -> None:
        log = InMemoryAlertStore(clock=_clock)
        options = PlaybookOptions(dry_run=False, require_approval=True)

        result = await _orchestrator([], log).remediate(_alert(AlertType.CTR_DROP), options)

        assert result.guardrails_passed
        assert result.applied_at is None
        assert applied_steps(result) == []
        assert result.steps[0].reason == "Awaiting approval"
        assert await log.list_remediations() == []
