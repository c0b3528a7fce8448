"""Pure functions that render remediation results and alert batches as plain text."""

from __future__ import annotations

import json

from src.core.types import AlertBatch, Remediation, Severity, StepStatus

# ── Markers ─────────────────────────────────────────────────────

_STEP_MARKER: dict[StepStatus, str] = {
    StepStatus.APPLIED: "[applied]",
    StepStatus.PENDING: "[pending]",
    StepStatus.SKIPPED: "[skipped]",
    StepStatus.FAILED: "[failed]",
}

_SEVERITY_ORDER = (Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM, Severity.LOW)

_RULE = "=" * 50


# ── Formatters ──────────────────────────────────────────────────


def format_remediation(remediation: Remediation) -> str:
    """Render a remediation as a readable report."""
    lines = [
        "Remediation Report",
        _RULE,
        f"Alert ID: {remediation.alert_id}",
        f"Playbook: {remediation.playbook}",
        f"Guardrails: {'PASSED' if remediation.guardrails_passed else 'FAILED'}",
    ]
    if remediation.applied_at is not None:
        lines.append(f"Applied at: {remediation.applied_at.isoformat()}")

    if remediation.blockers:
        lines.append("")
        lines.append("Blockers:")
        lines.extend(f"  - {b}" for b in remediation.blockers)

    lines.append("")
    lines.append("Steps:")
    for i, step in enumerate(remediation.steps, start=1):
        lines.append(f"{i}. {_STEP_MARKER[step.status]} {step.action}")
        for key, value in step.params.items():
            lines.append(f"     {key}: {json.dumps(value, default=str)}")
        if step.output:
            lines.append(f"     output: {step.output}")
        if step.reason:
            lines.append(f"     Reason: {step.reason}")

    impact = remediation.estimated_impact
    if impact is not None:
        lines.append("")
        lines.append("Estimated Impact:")
        if impact.cost is not None:
            lines.append(f"  Cost: ${impact.cost:,.2f}")
        if impact.impressions is not None:
            lines.append(f"  Impressions: {impact.impressions:,.0f}")
        if impact.clicks is not None:
            lines.append(f"  Clicks: {impact.clicks:,.0f}")
        if impact.conversions is not None:
            lines.append(f"  Conversions: {impact.conversions:g}")

    return "\n".join(lines)


def format_batch_summary(batch: AlertBatch) -> str:
    """One header line plus one line per alert, most severe first."""
    s = batch.summary
    lines = [
        f"{batch.product}: {s.total} alerts "
        f"({s.critical} critical, {s.high} high, {s.medium} medium, {s.low} low; "
        f"{s.new} new, {s.persistent} persistent) at {batch.generated_at.isoformat()}",
    ]
    for severity in _SEVERITY_ORDER:
        for alert in batch.alerts:
            if alert.severity != severity:
                continue
            lines.append(
                f"  [{severity.value.upper()}] {alert.type.value} "
                f"{alert.entity.type.value}:{alert.entity.id} ({alert.id}) - {alert.why}"
            )
    return "\n".join(lines)
