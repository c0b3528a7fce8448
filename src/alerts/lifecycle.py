"""Alert lifecycle transitions driven by users.

open ⇄ ack, open/ack → snoozed, anything → closed, and reopen back to open.
Detections reopen closed alerts on their own (see ``noise.record_detection``).
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from src.alerts.exceptions import InvalidTransitionError
from src.core.types import AlertState, AlertStatus


class LifecycleAction(StrEnum):
    ACKNOWLEDGE = "acknowledge"
    SNOOZE = "snooze"
    CLOSE = "close"
    REOPEN = "reopen"


_ALLOWED_FROM: dict[LifecycleAction, frozenset[AlertStatus]] = {
    LifecycleAction.ACKNOWLEDGE: frozenset({AlertStatus.OPEN, AlertStatus.ACK}),
    LifecycleAction.SNOOZE: frozenset({AlertStatus.OPEN, AlertStatus.ACK, AlertStatus.SNOOZED}),
    LifecycleAction.CLOSE: frozenset(AlertStatus),
    LifecycleAction.REOPEN: frozenset(AlertStatus),
}

_TARGET: dict[LifecycleAction, AlertStatus] = {
    LifecycleAction.ACKNOWLEDGE: AlertStatus.ACK,
    LifecycleAction.SNOOZE: AlertStatus.SNOOZED,
    LifecycleAction.CLOSE: AlertStatus.CLOSED,
    LifecycleAction.REOPEN: AlertStatus.OPEN,
}


def transition(
    state: AlertState,
    action: LifecycleAction,
    now: datetime,
    *,
    until: datetime | None = None,
    notes: str | None = None,
) -> AlertState:
    """Apply *action* to *state* and return the new state.

    Raises:
        InvalidTransitionError: If *action* is not allowed from the current
            status, or a snooze has no future ``until``.
    """
    if state.status not in _ALLOWED_FROM[action]:
        raise InvalidTransitionError(
            f"Cannot {action.value} alert {state.alert_id} in status {state.status.value}"
        )

    update: dict[str, object] = {"status": _TARGET[action], "updated_at": now}
    if action == LifecycleAction.SNOOZE:
        if until is None or until <= now:
            raise InvalidTransitionError("Snooze requires an 'until' in the future")
        update["snooze_until"] = until
    else:
        update["snooze_until"] = None
    if notes is not None:
        update["notes"] = notes
    return state.model_copy(update=update)
