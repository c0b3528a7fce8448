"""Alert store — per-alert state, surfaced-alert history and the remediation log.

Every write to a given ``alert_id`` is serialized, so concurrent detections
of the same alert never lose an update.
"""

from __future__ import annotations

import abc
import asyncio
import contextlib
import json
import sqlite3
from collections import defaultdict
from collections.abc import AsyncIterator, Callable, Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, TypeVar

import structlog

from src.alerts.exceptions import AlertStoreError
from src.core.types import AlertState, AlertStatus, HistoryEntry, RemediationRecord

logger = structlog.stdlib.get_logger()

Clock = Callable[[], datetime]
StateUpdate = Callable[[AlertState | None], AlertState]

_T = TypeVar("_T")


def utcnow() -> datetime:
    return datetime.now(UTC)


def _merge(
    alert_id: str,
    existing: AlertState | None,
    patch: Mapping[str, Any],
    now: datetime,
) -> AlertState:
    if existing is None:
        data: dict[str, Any] = {"first_seen": now, "last_seen": now, "created_at": now}
    else:
        data = existing.model_dump()
    data.update(patch)
    data["alert_id"] = alert_id
    merged = AlertState.model_validate(data)
    # Re-applying an identical patch leaves the row untouched.
    if existing is not None and merged == existing:
        return existing
    if "updated_at" not in patch:
        merged.updated_at = now
    return merged


class AlertStore(abc.ABC):
    """Persistence contract for alert state, history and the remediation log."""

    clock: Clock = staticmethod(utcnow)

    @abc.abstractmethod
    async def get_state(self, alert_id: str) -> AlertState | None:
        """Return the state for *alert_id*, or None if never seen."""

    @abc.abstractmethod
    async def update_state(self, alert_id: str, fn: StateUpdate) -> AlertState:
        """Atomically read-modify-write one alert's state.

        *fn* receives the current state (None if absent) and returns the new
        state, which is written and returned. Exceptions from *fn* abort the
        write and propagate.
        """

    async def upsert_state(self, alert_id: str, patch: Mapping[str, Any]) -> AlertState:
        """Create the row if missing, else apply *patch* over it (last write wins)."""
        now = self.clock()
        return await self.update_state(
            alert_id, lambda existing: _merge(alert_id, existing, patch, now),
        )

    @abc.abstractmethod
    async def list_states(self, status: AlertStatus | None = None) -> list[AlertState]:
        """All states, optionally filtered by status, most recently seen first."""

    @abc.abstractmethod
    async def append_history(self, alert_id: str, payload: Mapping[str, Any]) -> HistoryEntry:
        """Append a surfaced-alert payload."""

    @abc.abstractmethod
    async def get_history(self, alert_id: str) -> list[HistoryEntry]:
        """History for *alert_id*, oldest first."""

    @abc.abstractmethod
    async def append_remediation(self, record: RemediationRecord) -> None:
        """Append an applied remediation to the log."""

    @abc.abstractmethod
    async def list_remediations(self, alert_id: str | None = None) -> list[RemediationRecord]:
        """Remediation log entries, oldest first."""

    async def close(self) -> None:
        """Release any underlying resources."""


# ── In-memory ───────────────────────────────────────────────────


class InMemoryAlertStore(AlertStore):
    """Dict-backed store with one ``asyncio.Lock`` per alert id.

    A lock lives only while some update holds or awaits it.
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self.clock: Clock = clock or utcnow
        self._states: dict[str, AlertState] = {}
        self._history: dict[str, list[HistoryEntry]] = defaultdict(list)
        self._remediations: list[RemediationRecord] = []
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    async def get_state(self, alert_id: str) -> AlertState | None:
        state = self._states.get(alert_id)
        return state.model_copy(deep=True) if state is not None else None

    @contextlib.asynccontextmanager
    async def _locked(self, alert_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(alert_id, asyncio.Lock())
        self._lock_users[alert_id] = self._lock_users.get(alert_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[alert_id] -= 1
            if not self._lock_users[alert_id]:
                del self._lock_users[alert_id]
                del self._locks[alert_id]

    async def update_state(self, alert_id: str, fn: StateUpdate) -> AlertState:
        async with self._locked(alert_id):
            current = self._states.get(alert_id)
            updated = fn(current.model_copy(deep=True) if current is not None else None)
            self._states[alert_id] = updated.model_copy(deep=True)
            return updated

    async def list_states(self, status: AlertStatus | None = None) -> list[AlertState]:
        states = [
            s.model_copy(deep=True)
            for s in self._states.values()
            if status is None or s.status == status
        ]
        return sorted(states, key=lambda s: s.last_seen, reverse=True)

    async def append_history(self, alert_id: str, payload: Mapping[str, Any]) -> HistoryEntry:
        entry = HistoryEntry(alert_id=alert_id, seen_at=self.clock(), payload=dict(payload))
        self._history[alert_id].append(entry)
        return entry

    async def get_history(self, alert_id: str) -> list[HistoryEntry]:
        return list(self._history.get(alert_id, []))

    async def append_remediation(self, record: RemediationRecord) -> None:
        self._remediations.append(record)

    async def list_remediations(self, alert_id: str | None = None) -> list[RemediationRecord]:
        return [r for r in self._remediations if alert_id is None or r.alert_id == alert_id]


# ── SQLite ──────────────────────────────────────────────────────

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS alerts_state (
        alert_id TEXT PRIMARY KEY,
        status TEXT NOT NULL DEFAULT 'open',
        severity TEXT NOT NULL,
        first_seen TEXT NOT NULL,
        last_seen TEXT NOT NULL,
        consecutive_occurrences INTEGER NOT NULL DEFAULT 0,
        snooze_until TEXT,
        notes TEXT,
        created_at TEXT,
        updated_at TEXT
    );

    CREATE INDEX IF NOT EXISTS idx_alerts_state_status
        ON alerts_state(status);

    CREATE TABLE IF NOT EXISTS alerts_history (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        alert_id TEXT NOT NULL,
        seen_at TEXT NOT NULL,
        payload TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_alerts_history_alert
        ON alerts_history(alert_id, seen_at);

    CREATE TABLE IF NOT EXISTS remediation_log (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        alert_id TEXT NOT NULL,
        playbook_id TEXT NOT NULL,
        actions TEXT NOT NULL,
        dry_run INTEGER NOT NULL DEFAULT 0,
        applied_at TEXT NOT NULL,
        result TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_remediation_alert
        ON remediation_log(alert_id);
"""

_STATE_COLUMNS = (
    "alert_id",
    "status",
    "severity",
    "first_seen",
    "last_seen",
    "consecutive_occurrences",
    "snooze_until",
    "notes",
    "created_at",
    "updated_at",
)

_UPSERT_STATE = (
    f"INSERT INTO alerts_state ({', '.join(_STATE_COLUMNS)}) "
    f"VALUES ({', '.join('?' for _ in _STATE_COLUMNS)}) "
    "ON CONFLICT(alert_id) DO UPDATE SET "
    + ", ".join(f"{c} = excluded.{c}" for c in _STATE_COLUMNS[1:])
)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


class SqliteAlertStore(AlertStore):
    """SQLite-backed store.

    Every statement runs in a worker thread via ``asyncio.to_thread`` while
    an ``asyncio.Lock`` keeps the shared connection to one caller at a time.
    The connection runs in autocommit mode; each state update is wrapped in
    ``BEGIN IMMEDIATE`` so other processes sharing the file also serialize.
    """

    def __init__(self, db_path: str | Path = "data/alerts.db", clock: Clock | None = None) -> None:
        self.db_path = str(db_path)
        self.clock: Clock = clock or utcnow
        self._lock = asyncio.Lock()
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA)
        logger.debug("alert_store_opened", path=self.db_path)

    async def _run(self, fn: Callable[..., _T], *args: Any) -> _T:
        async with self._lock:
            return await asyncio.to_thread(fn, *args)

    async def close(self) -> None:
        await self._run(self._conn.close)

    # --- State ---

    def _read_state(self, alert_id: str) -> AlertState | None:
        row = self._conn.execute(
            "SELECT * FROM alerts_state WHERE alert_id = ?", (alert_id,),
        ).fetchone()
        return AlertState.model_validate(dict(row)) if row is not None else None

    def _update_state(self, alert_id: str, fn: StateUpdate) -> AlertState:
        self._conn.execute("BEGIN IMMEDIATE")
        try:
            updated = fn(self._read_state(alert_id))
            self._conn.execute(_UPSERT_STATE, (
                alert_id,
                updated.status.value,
                updated.severity.value,
                _iso(updated.first_seen),
                _iso(updated.last_seen),
                updated.consecutive_occurrences,
                _iso(updated.snooze_until),
                updated.notes,
                _iso(updated.created_at),
                _iso(updated.updated_at),
            ))
        except Exception:
            self._conn.execute("ROLLBACK")
            raise
        self._conn.execute("COMMIT")
        return updated

    def _list_states(self, status: AlertStatus | None) -> list[AlertState]:
        if status is None:
            rows = self._conn.execute(
                "SELECT * FROM alerts_state ORDER BY last_seen DESC",
            ).fetchall()
        else:
            rows = self._conn.execute(
                "SELECT * FROM alerts_state WHERE status = ? ORDER BY last_seen DESC",
                (status.value,),
            ).fetchall()
        return [AlertState.model_validate(dict(r)) for r in rows]

    async def get_state(self, alert_id: str) -> AlertState | None:
        return await self._run(self._read_state, alert_id)

    async def update_state(self, alert_id: str, fn: StateUpdate) -> AlertState:
        return await self._run(self._update_state, alert_id, fn)

    async def list_states(self, status: AlertStatus | None = None) -> list[AlertState]:
        return await self._run(self._list_states, status)

    # --- History ---

    def _insert_history(self, entry: HistoryEntry) -> None:
        self._conn.execute(
            "INSERT INTO alerts_history (alert_id, seen_at, payload) VALUES (?, ?, ?)",
            (entry.alert_id, entry.seen_at.isoformat(), json.dumps(entry.payload, default=str)),
        )

    def _read_history(self, alert_id: str) -> list[HistoryEntry]:
        rows = self._conn.execute(
            "SELECT alert_id, seen_at, payload FROM alerts_history "
            "WHERE alert_id = ? ORDER BY id",
            (alert_id,),
        ).fetchall()
        return [
            HistoryEntry(
                alert_id=r["alert_id"],
                seen_at=datetime.fromisoformat(r["seen_at"]),
                payload=json.loads(r["payload"]),
            )
            for r in rows
        ]

    async def append_history(self, alert_id: str, payload: Mapping[str, Any]) -> HistoryEntry:
        entry = HistoryEntry(alert_id=alert_id, seen_at=self.clock(), payload=dict(payload))
        await self._run(self._insert_history, entry)
        return entry

    async def get_history(self, alert_id: str) -> list[HistoryEntry]:
        return await self._run(self._read_history, alert_id)

    # --- Remediation log ---

    def _insert_remediation(self, record: RemediationRecord, actions: str, result: str) -> None:
        self._conn.execute(
            "INSERT INTO remediation_log "
            "(alert_id, playbook_id, actions, dry_run, applied_at, result) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                record.alert_id,
                record.playbook,
                actions,
                int(record.dry_run),
                record.applied_at.isoformat(),
                result,
            ),
        )

    def _read_remediations(self, alert_id: str | None) -> list[RemediationRecord]:
        query = "SELECT * FROM remediation_log"
        params: tuple[str, ...] = ()
        if alert_id is not None:
            query += " WHERE alert_id = ?"
            params = (alert_id,)
        rows = self._conn.execute(query + " ORDER BY id", params).fetchall()
        return [
            RemediationRecord(
                alert_id=r["alert_id"],
                playbook=r["playbook_id"],
                actions=json.loads(r["actions"]),
                dry_run=bool(r["dry_run"]),
                applied_at=datetime.fromisoformat(r["applied_at"]),
                result=json.loads(r["result"]),
            )
            for r in rows
        ]

    async def append_remediation(self, record: RemediationRecord) -> None:
        try:
            actions = json.dumps([s.model_dump(mode="json") for s in record.actions])
            result = json.dumps(record.result, default=str)
        except (TypeError, ValueError) as exc:
            raise AlertStoreError(f"Unserializable remediation record: {exc}") from exc
        await self._run(self._insert_remediation, record, actions, result)

    async def list_remediations(self, alert_id: str | None = None) -> list[RemediationRecord]:
        return await self._run(self._read_remediations, alert_id)


def create_store(
    backend: str = "memory",
    sqlite_path: str | Path = "data/alerts.db",
    clock: Clock | None = None,
) -> AlertStore:
    """Build the store named by ``StoreConfig.backend``."""
    if backend == "memory":
        return InMemoryAlertStore(clock=clock)
    if backend == "sqlite":
        return SqliteAlertStore(sqlite_path, clock=clock)
    raise AlertStoreError(f"Unknown store backend: {backend!r}")
