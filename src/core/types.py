"""Pydantic domain types for detection, alert state and remediation."""

from __future__ import annotations

from datetime import date, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class EntityType(StrEnum):
    """Kind of monitored unit."""

    CAMPAIGN = "campaign"
    AD_GROUP = "ad_group"
    KEYWORD = "keyword"
    URL = "url"
    CLUSTER = "cluster"


class AlertType(StrEnum):
    """Alert families, one detector per type."""

    SPEND_SPIKE = "spend_spike"
    SPEND_DROP = "spend_drop"
    CTR_DROP = "ctr_drop"
    CPC_JUMP = "cpc_jump"
    CONVERSION_DROP = "conversion_drop"
    QUALITY_SCORE = "quality_score"
    LP_REGRESSION = "lp_regression"
    LP_HEALTH = "lp_health"


class Severity(StrEnum):
    """Ordinal alert severity."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK: dict[Severity, int] = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


class AlertStatus(StrEnum):
    """Lifecycle status of a persisted alert."""

    OPEN = "open"
    ACK = "ack"
    SNOOZED = "snoozed"
    CLOSED = "closed"


class NoiseStrategy(StrEnum):
    """Debounce policy applied before an alert is surfaced."""

    CONSECUTIVE = "consecutive"
    COOLDOWN = "cooldown"
    BOTH = "both"


class ActionPriority(StrEnum):
    """Priority hint for a suggested action."""

    IMMEDIATE = "immediate"
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# ── Entity / Window ─────────────────────────────────────────────


class Entity(BaseModel):
    """The thing a detection runs against."""

    model_config = ConfigDict(frozen=True)

    id: str
    type: EntityType
    product: str
    market: str | None = None
    campaign: str | None = None
    ad_group: str | None = None
    keyword: str | None = None
    url: str | None = None


class TimeWindow(BaseModel):
    """Baseline / current window sizes in days."""

    baseline_days: int = 14
    current_days: int = 3


class Period(BaseModel):
    """Inclusive date range."""

    start: date
    end: date


class BaselineData(BaseModel):
    """Robust summary statistics over the baseline window."""

    model_config = ConfigDict(populate_by_name=True)

    mean: float = 0.0
    std_dev: float = Field(default=0.0, alias="stdDev")
    median: float = 0.0
    count: int = 0
    min: float = 0.0
    max: float = 0.0
    period: Period


class CurrentData(BaseModel):
    """Mean and sample count over the current window."""

    value: float = 0.0
    count: int = 0
    period: Period


# ── Alerts ──────────────────────────────────────────────────────


class AlertMetrics(BaseModel):
    """Numbers backing an alert."""

    baseline: BaselineData
    current: CurrentData
    change_percentage: float = 0.0
    change_absolute: float = 0.0
    z_score: float = 0.0
    additional: dict[str, Any] = Field(default_factory=dict)


class SuggestedAction(BaseModel):
    """A follow-up the detector recommends alongside the alert."""

    action: str
    params: dict[str, Any] = Field(default_factory=dict)
    dry_run: bool = True
    priority: ActionPriority | None = None
    estimated_impact: str = ""


class DetectionInfo(BaseModel):
    """When and how often an alert has been seen."""

    first_seen: datetime
    last_seen: datetime
    occurrences: int = 1
    consecutive_occurrences: int | None = None


class Alert(BaseModel):
    """A surfaced deviation. ``id`` is deterministic per (type, entity)."""

    id: str
    type: AlertType
    severity: Severity
    entity: Entity
    window: TimeWindow
    metrics: AlertMetrics
    why: str
    playbook: str | None = None
    suggested_actions: list[SuggestedAction] = Field(default_factory=list)
    detection: DetectionInfo


class AlertState(BaseModel):
    """Persisted per-alert state, keyed by ``alert_id``."""

    alert_id: str
    status: AlertStatus = AlertStatus.OPEN
    severity: Severity = Severity.LOW
    first_seen: datetime
    last_seen: datetime
    consecutive_occurrences: int = 0
    snooze_until: datetime | None = None
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class HistoryEntry(BaseModel):
    """Append-only record of a surfaced alert payload."""

    alert_id: str
    seen_at: datetime
    payload: dict[str, Any] = Field(default_factory=dict)


class DetectionResult(BaseModel):
    """Outcome of a single ``detect()`` call."""

    triggered: bool = False
    alert: Alert | None = None
    reason: str = ""


class AlertSummary(BaseModel):
    """Counts per severity plus new vs persistent."""

    total: int = 0
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    new: int = 0
    persistent: int = 0


class AlertBatch(BaseModel):
    """Batch output consumed by the report layer."""

    generated_at: datetime
    product: str
    summary: AlertSummary = Field(default_factory=AlertSummary)
    alerts: list[Alert] = Field(default_factory=list)

    def to_json(self, indent: int | None = 2) -> str:
        return self.model_dump_json(indent=indent, by_alias=True)


# ── Detector inputs (non time-series) ──────────────────────────


class KeywordQuality(BaseModel):
    """Quality score row for a keyword."""

    keyword: str
    quality_score: float
    ad_relevance: str = "Average"
    expected_ctr: str = "Average"
    landing_page_experience: str = "Average"
    impressions: int = 0
    clicks: int = 0
    cost: float = 0.0


class LandingPage(BaseModel):
    """A landing page served by an entity's ads."""

    url: str
    product: str = ""
    impressions: int = 0


class UrlHealth(BaseModel):
    """Latest crawl health snapshot for a URL."""

    url: str
    status_code: int = 200
    is_noindex: bool = False
    canonical_ok: bool = True
    redirect_chain: int = 0
    is_soft_404: bool = False
    checked_at: datetime | None = None


# ── Remediation ─────────────────────────────────────────────────


class StepStatus(StrEnum):
    """Status of a remediation step."""

    PENDING = "pending"
    APPLIED = "applied"
    SKIPPED = "skipped"
    FAILED = "failed"


class GuardrailType(StrEnum):
    """Kind of guardrail policy."""

    COST_CAP = "cost_cap"
    BID_CHANGE = "bid_change"
    BUDGET_INCREASE = "budget_increase"
    APPROVAL = "approval"
    LANDING_PAGE = "landing_page"
    COMPLIANCE = "compliance"
    CUSTOM = "custom"


class RemediationStep(BaseModel):
    """One ordered action proposed by a playbook."""

    action: str
    params: dict[str, Any] = Field(default_factory=dict)
    artifacts: dict[str, Any] = Field(default_factory=dict)
    output: str | None = None
    status: StepStatus = StepStatus.PENDING
    reason: str | None = None


class EstimatedImpact(BaseModel):
    """Rough expected effect of a remediation."""

    cost: float | None = None
    impressions: float | None = None
    clicks: float | None = None
    conversions: float | None = None


class Remediation(BaseModel):
    """Result of ``remediate()`` — never raised, always returned."""

    model_config = ConfigDict(populate_by_name=True)

    alert_id: str = Field(alias="alertId")
    playbook: str
    steps: list[RemediationStep] = Field(default_factory=list)
    guardrails_passed: bool = Field(default=False, alias="guardrailsPassed")
    blockers: list[str] = Field(default_factory=list)
    estimated_impact: EstimatedImpact | None = Field(default=None, alias="estimatedImpact")
    applied_at: datetime | None = Field(default=None, alias="appliedAt")


class PlaybookOptions(BaseModel):
    """Caller options for a remediation run."""

    dry_run: bool = True
    allow_bid_changes: bool = False
    max_budget_impact: float | None = None
    require_approval: bool = False


class GuardrailAction(BaseModel):
    """What a guardrail inspects: a step projected into a checkable action."""

    type: str
    params: dict[str, Any] = Field(default_factory=dict)
    estimated_cost: float | None = None
    entity: Entity | None = None
    target_url: str | None = None


class GuardrailResult(BaseModel):
    """Verdict of a single guardrail check."""

    passed: bool = True
    blocker: bool = False
    reason: str = ""
    suggestions: list[str] = Field(default_factory=list)


class RemediationRecord(BaseModel):
    """Append-only log entry for an applied remediation."""

    alert_id: str
    playbook: str
    actions: list[RemediationStep] = Field(default_factory=list)
    dry_run: bool = False
    applied_at: datetime
    result: dict[str, Any] = Field(default_factory=dict)
