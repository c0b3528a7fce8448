"""Noise control — debounce candidate detections before they surface.

A candidate that surfaces, or that is held back waiting for consecutive
occurrences, counts as one occurrence and refreshes ``last_seen``. A candidate
held back by cooldown or an active snooze leaves the stored state untouched,
so cooldown is measured from the last recorded occurrence.

The decision and the state write happen inside a single
``AlertStore.update_state`` call so concurrent detections of the same alert
cannot double count.
"""

from __future__ import annotations

from datetime import datetime, timedelta

import structlog
from pydantic import BaseModel

from src.alerts.store import AlertStore, Clock, utcnow
from src.core.config import NoiseControlConfig
from src.core.types import AlertState, AlertStatus, NoiseStrategy, Severity

logger = structlog.stdlib.get_logger()

SUPPRESSED_PREFIX = "Noise control"


class NoiseDecision(BaseModel):
    """Whether a candidate detection surfaces, plus the state after recording it."""

    surface: bool
    reason: str = ""
    state: AlertState


def cooldown_until(state: AlertState, policy: NoiseControlConfig) -> datetime:
    return state.last_seen + timedelta(hours=policy.cooldown_hours)


def awaiting_consecutive(state: AlertState | None, policy: NoiseControlConfig) -> bool:
    """True while the consecutive debounce still holds this candidate back."""
    if policy.strategy not in (NoiseStrategy.CONSECUTIVE, NoiseStrategy.BOTH):
        return False
    count = (state.consecutive_occurrences if state is not None else 0) + 1
    return count < policy.consecutive_checks


def should_surface(
    state: AlertState | None,
    policy: NoiseControlConfig,
    now: datetime,
) -> tuple[bool, str]:
    """Pure surfacing decision for one candidate detection.

    *state* is the stored state before this detection is recorded. Under
    ``both`` the consecutive check runs first, then the cooldown.
    """
    if awaiting_consecutive(state, policy):
        count = (state.consecutive_occurrences if state is not None else 0) + 1
        return False, (
            f"{SUPPRESSED_PREFIX}: waiting for consecutive occurrences "
            f"({count}/{policy.consecutive_checks})"
        )

    if policy.strategy in (NoiseStrategy.COOLDOWN, NoiseStrategy.BOTH) and state is not None:
        until = cooldown_until(state, policy)
        if now < until:
            return False, f"{SUPPRESSED_PREFIX}: in cooldown until {until.isoformat()}"

    if (
        state is not None
        and state.status == AlertStatus.SNOOZED
        and state.snooze_until is not None
        and now < state.snooze_until
    ):
        return False, f"{SUPPRESSED_PREFIX}: snoozed until {state.snooze_until.isoformat()}"

    return True, ""


def record_detection(
    alert_id: str,
    state: AlertState | None,
    severity: Severity,
    now: datetime,
    surfaced: bool,
) -> AlertState:
    """State after one candidate detection.

    A missing row is created as ``open``. Surfacing also takes the latest
    severity and reopens closed alerts and expired snoozes.
    """
    if state is None:
        return AlertState(
            alert_id=alert_id,
            status=AlertStatus.OPEN,
            severity=severity,
            first_seen=now,
            last_seen=now,
            consecutive_occurrences=1,
            created_at=now,
            updated_at=now,
        )

    updated = state.model_copy(update={
        "last_seen": now,
        "updated_at": now,
        "consecutive_occurrences": state.consecutive_occurrences + 1,
    })
    if surfaced:
        updated.severity = severity
        if updated.status in (AlertStatus.CLOSED, AlertStatus.SNOOZED):
            updated.status = AlertStatus.OPEN
            updated.snooze_until = None
    return updated


class NoiseController:
    """Applies a detector's noise-control policy against the alert store."""

    def __init__(self, store: AlertStore, clock: Clock | None = None) -> None:
        self._store = store
        self._clock = clock or utcnow

    @property
    def store(self) -> AlertStore:
        return self._store

    async def evaluate(
        self,
        alert_id: str,
        severity: Severity,
        policy: NoiseControlConfig,
    ) -> NoiseDecision:
        """Record one candidate detection and decide whether it surfaces."""
        now = self._clock()
        verdict: tuple[bool, str] = (False, "")

        def _step(state: AlertState | None) -> AlertState:
            nonlocal verdict
            verdict = should_surface(state, policy, now)
            if state is not None and not verdict[0] and not awaiting_consecutive(state, policy):
                return state
            return record_detection(alert_id, state, severity, now, surfaced=verdict[0])

        state = await self._store.update_state(alert_id, _step)
        surface, reason = verdict
        if not surface:
            logger.debug(
                "alert_suppressed",
                alert_id=alert_id,
                reason=reason,
                consecutive=state.consecutive_occurrences,
            )
        return NoiseDecision(surface=surface, reason=reason, state=state)
