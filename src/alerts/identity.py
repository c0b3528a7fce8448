"""Deterministic alert identity."""

from __future__ import annotations

import hashlib

from src.core.types import AlertType, Entity

ALERT_ID_LENGTH = 16


def alert_key(alert_type: AlertType | str, entity: Entity) -> str:
    """Colon-joined identity fields. Absent fields stay as empty segments."""
    leaf = entity.keyword if entity.keyword is not None else entity.url
    return ":".join([
        str(alert_type),
        str(entity.type),
        entity.product,
        entity.market or "",
        entity.campaign or "",
        entity.ad_group or "",
        leaf or "",
    ])


def alert_id(alert_type: AlertType | str, entity: Entity) -> str:
    """First 16 hex chars of the MD5 of :func:`alert_key`.

    Stable across runs and processes; it is the primary key for alert state.
    """
    digest = hashlib.md5(alert_key(alert_type, entity).encode("utf-8"), usedforsecurity=False)
    return digest.hexdigest()[:ALERT_ID_LENGTH]
