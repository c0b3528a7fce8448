"""Remediation module — playbooks, guardrails, orchestration and reports."""

from src.remediation.exceptions import (
    GuardrailError,
    PlaybookNotFoundError,
    RemediationError,
)
from src.remediation.guardrails import (
    ApprovalGuardrail,
    BidChangeGuardrail,
    BudgetIncreaseGuardrail,
    ComplianceGuardrail,
    CostCapGuardrail,
    Guardrail,
    GuardrailEvaluator,
    LandingPageHealthGuardrail,
    default_guardrails,
)
from src.remediation.orchestrator import (
    RemediationCallback,
    RemediationOrchestrator,
    applied_steps,
    budget_blocker,
    hold_for_approval,
    playbook_key,
)
from src.remediation.playbooks import Playbook, PlaybookRegistry
from src.remediation.report import format_batch_summary, format_remediation
from src.remediation.strategies import (
    ConversionDropPlaybook,
    CpcJumpPlaybook,
    CtrDropPlaybook,
    LpHealthPlaybook,
    LpRegressionPlaybook,
    QualityScorePlaybook,
    SpendPlaybook,
    build_default_playbooks,
)

__all__ = [
    "ApprovalGuardrail",
    "BidChangeGuardrail",
    "BudgetIncreaseGuardrail",
    "ComplianceGuardrail",
    "ConversionDropPlaybook",
    "CostCapGuardrail",
    "CpcJumpPlaybook",
    "CtrDropPlaybook",
    "Guardrail",
    "GuardrailError",
    "GuardrailEvaluator",
    "LandingPageHealthGuardrail",
    "LpHealthPlaybook",
    "LpRegressionPlaybook",
    "Playbook",
    "PlaybookNotFoundError",
    "PlaybookRegistry",
    "QualityScorePlaybook",
    "RemediationCallback",
    "RemediationError",
    "RemediationOrchestrator",
    "SpendPlaybook",
    "applied_steps",
    "budget_blocker",
    "build_default_playbooks",
    "default_guardrails",
    "format_batch_summary",
    "format_remediation",
    "hold_for_approval",
    "playbook_key",
]
