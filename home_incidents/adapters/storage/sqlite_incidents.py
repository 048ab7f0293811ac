"""
SQLite-based incident store for home incidents.

This module implements the incident repository port on SQLite.
Concurrency invariants are enforced by the schema rather than in
process:

* a partial unique index allows one open incident per
  (property_id, fingerprint);
* a partial unique index allows one action per (incident_id, action_key).
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import aiosqlite

from home_incidents.common.clock import to_epoch, utcnow
from home_incidents.core.errors import IncidentValidationError, NotFoundError, StateConflictError
from home_incidents.core.models import (
    OPEN_STATUSES,
    Incident,
    IncidentAcknowledgement,
    IncidentAction,
    IncidentEvent,
    IncidentScoreSnapshot,
    IncidentSignal,
    IncidentSuppressionRule,
)
from home_incidents.observability.logging_setup import get_logger
from .rows import check_columns, insert_sql, model_to_row, row_to_model, to_db

log = get_logger("incidents.store")

_OPEN = ", ".join(f"'{s}'" for s in OPEN_STATUSES)

# SQLite 스키마
SCHEMA = f"""
PRAGMA journal_mode = WAL;

CREATE TABLE IF NOT EXISTS incidents (
    id TEXT PRIMARY KEY,
    property_id TEXT NOT NULL,
    user_id TEXT,
    source_type TEXT NOT NULL,
    type_key TEXT NOT NULL,
    category TEXT,
    title TEXT NOT NULL,
    summary TEXT,
    details TEXT,
    severity TEXT,
    severity_score INTEGER,
    confidence INTEGER,
    score_breakdown TEXT,
    fingerprint TEXT NOT NULL,
    recurrence_key TEXT,
    dedupe_window_mins INTEGER,
    status TEXT NOT NULL,
    opened_at REAL NOT NULL,
    activated_at REAL,
    mitigated_at REAL,
    resolved_at REAL,
    expired_at REAL,
    suppressed_at REAL,
    is_suppressed INTEGER NOT NULL DEFAULT 0,
    suppression_reason TEXT,
    suppression_rule_id TEXT,
    created_at REAL NOT NULL,
    updated_at REAL NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS ux_incidents_open_fingerprint
    ON incidents(property_id, fingerprint) WHERE status IN ({_OPEN});
CREATE INDEX IF NOT EXISTS idx_incidents_property_created
    ON incidents(property_id, created_at);

CREATE TABLE IF NOT EXISTS incident_signals (
    id TEXT PRIMARY KEY,
    incident_id TEXT NOT NULL REFERENCES incidents(id),
    signal_type TEXT NOT NULL,
    external_ref TEXT,
    observed_at REAL NOT NULL,
    payload TEXT NOT NULL,
    score_hint REAL,
    confidence INTEGER,
    created_at REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_signals_incident ON incident_signals(incident_id, observed_at);

CREATE TABLE IF NOT EXISTS incident_score_snapshots (
    id TEXT PRIMARY KEY,
    incident_id TEXT NOT NULL REFERENCES incidents(id),
    severity TEXT NOT NULL,
    severity_score INTEGER NOT NULL,
    confidence INTEGER NOT NULL,
    breakdown TEXT NOT NULL,
    model_version TEXT NOT NULL,
    created_at REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_snapshots_incident ON incident_score_snapshots(incident_id, created_at);

CREATE TABLE IF NOT EXISTS incident_actions (
    id TEXT PRIMARY KEY,
    incident_id TEXT NOT NULL REFERENCES incidents(id),
    type TEXT NOT NULL,
    status TEXT NOT NULL,
    action_key TEXT,
    payload TEXT,
    entity_type TEXT,
    entity_id TEXT,
    cta_label TEXT,
    cta_url TEXT,
    created_at REAL NOT NULL,
    updated_at REAL NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS ux_actions_incident_key
    ON incident_actions(incident_id, action_key) WHERE action_key IS NOT NULL;

CREATE TABLE IF NOT EXISTS incident_acknowledgements (
    id TEXT PRIMARY KEY,
    incident_id TEXT NOT NULL REFERENCES incidents(id),
    user_id TEXT NOT NULL,
    type TEXT NOT NULL,
    note TEXT,
    snooze_until REAL,
    created_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS incident_suppression_rules (
    id TEXT PRIMARY KEY,
    scope TEXT NOT NULL,
    property_id TEXT,
    user_id TEXT,
    type_key TEXT,
    reason TEXT NOT NULL,
    params TEXT,
    suppress_until REAL,
    is_enabled INTEGER NOT NULL DEFAULT 1,
    created_at REAL NOT NULL,
    updated_at REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_rules_scope ON incident_suppression_rules(scope, property_id, user_id);

CREATE TABLE IF NOT EXISTS incident_events (
    id TEXT PRIMARY KEY,
    incident_id TEXT NOT NULL,
    property_id TEXT NOT NULL,
    user_id TEXT,
    type TEXT NOT NULL,
    message TEXT,
    payload TEXT,
    created_at REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_events_incident ON incident_events(incident_id, created_at);
"""


class SQLiteIncidentStore:
    """SQLite 기반 인시던트 저장소"""

    def __init__(self, path: str, clock=utcnow):
        """
        초기화합니다.

        Args:
            path: SQLite 데이터베이스 파일 경로
            clock: 현재 시각 공급자 (updated_at 기록용)
        """
        self.path = path
        self.clock = clock
        log.info("SQLiteIncidentStore 초기화", path=path)

    @asynccontextmanager
    async def _connect(self):
        async with aiosqlite.connect(self.path) as db:
            db.row_factory = aiosqlite.Row
            await db.execute("PRAGMA foreign_keys = ON")
            yield db

    async def init(self) -> None:
        """데이터베이스를 초기화합니다."""
        async with self._connect() as db:
            await db.executescript(SCHEMA)
            await db.commit()
        log.info("SQLiteIncidentStore 스키마 초기화 완료", path=self.path)

    async def ping(self) -> bool:
        try:
            async with self._connect() as db:
                await db.execute("SELECT 1")
            return True
        except aiosqlite.Error as e:
            log.error("SQLiteIncidentStore ping 실패", error=str(e))
            return False

    async def _fetch_one(self, cls, sql: str, params: Sequence[Any]):
        async with self._connect() as db:
            cursor = await db.execute(sql, params)
            row = await cursor.fetchone()
        return row_to_model(cls, row) if row else None

    async def _fetch_all(self, cls, sql: str, params: Sequence[Any]) -> list:
        async with self._connect() as db:
            cursor = await db.execute(sql, params)
            rows = await cursor.fetchall()
        return [row_to_model(cls, r) for r in rows]

    async def _insert(self, table: str, model) -> None:
        row = model_to_row(model)
        async with self._connect() as db:
            await db.execute(insert_sql(table, row), tuple(row.values()))
            await db.commit()

    @staticmethod
    def _limit(sql: str, params: List[Any], limit: Optional[int]) -> str:
        if limit is not None:
            params.append(limit)
            return sql + " LIMIT ?"
        return sql

    # ---- incidents ----

    async def get_incident(self, incident_id: str) -> Optional[Incident]:
        return await self._fetch_one(Incident, "SELECT * FROM incidents WHERE id = ?", (incident_id,))

    async def find_open_incident(self, property_id: str, fingerprint: str) -> Optional[Incident]:
        return await self._fetch_one(
            Incident,
            f"SELECT * FROM incidents WHERE property_id = ? AND fingerprint = ? "
            f"AND status IN ({_OPEN}) ORDER BY created_at DESC LIMIT 1",
            (property_id, fingerprint),
        )

    async def insert_incident(self, incident: Incident) -> bool:
        row = model_to_row(incident)
        try:
            async with self._connect() as db:
                await db.execute(insert_sql("incidents", row), tuple(row.values()))
                await db.commit()
                return True
        except aiosqlite.IntegrityError:
            # 같은 (property_id, fingerprint)의 열린 인시던트가 이미 존재함
            log.debug("열린 인시던트 중복으로 추가 생략",
                      property_id=incident.property_id, fingerprint=incident.fingerprint)
            return False

    async def update_incident(self, incident_id: str, patch: Dict[str, Any]) -> Incident:
        patch = {**patch, "updated_at": self.clock()}
        check_columns(Incident, patch)
        assignments = ", ".join(f"{k} = ?" for k in patch)
        params = [to_db(v) for v in patch.values()] + [incident_id]

        try:
            async with self._connect() as db:
                cursor = await db.execute(f"UPDATE incidents SET {assignments} WHERE id = ?", params)
                if cursor.rowcount == 0:
                    raise NotFoundError(f"Incident not found: {incident_id}")
                cursor = await db.execute("SELECT * FROM incidents WHERE id = ?", (incident_id,))
                row = await cursor.fetchone()
                await db.commit()
        except aiosqlite.IntegrityError as e:
            raise StateConflictError(
                "Another open incident already exists for this fingerprint",
                details={"incident_id": incident_id},
            ) from e
        return row_to_model(Incident, row)

    async def list_incidents(self, property_id: str, *, status: Optional[str] = None,
                             include_suppressed: bool = False, limit: int = 30,
                             cursor: Optional[str] = None) -> List[Incident]:
        where = ["property_id = ?"]
        params: List[Any] = [property_id]
        if status:
            where.append("status = ?")
            params.append(status)
        if not include_suppressed:
            where.append("is_suppressed = 0")

        if cursor:
            # 저장된 epoch 값을 그대로 비교해야 float 왕복 오차가 없음
            async with self._connect() as db:
                c = await db.execute(
                    "SELECT created_at FROM incidents WHERE id = ? AND property_id = ?",
                    (cursor, property_id),
                )
                anchor = await c.fetchone()
            if anchor is None:
                raise IncidentValidationError(f"Invalid cursor: {cursor}")
            ts = anchor["created_at"]
            where.append("(created_at < ? OR (created_at = ? AND id < ?))")
            params.extend([ts, ts, cursor])

        sql = f"SELECT * FROM incidents WHERE {' AND '.join(where)} ORDER BY created_at DESC, id DESC"
        sql = self._limit(sql, params, limit)
        return await self._fetch_all(Incident, sql, params)

    # ---- signals / snapshots ----

    async def add_signals(self, signals: Sequence[IncidentSignal]) -> None:
        if not signals:
            return
        rows = [model_to_row(s) for s in signals]
        async with self._connect() as db:
            await db.executemany(insert_sql("incident_signals", rows[0]), [tuple(r.values()) for r in rows])
            await db.commit()

    async def list_signals(self, incident_id: str, limit: Optional[int] = None) -> List[IncidentSignal]:
        params: List[Any] = [incident_id]
        sql = self._limit(
            "SELECT * FROM incident_signals WHERE incident_id = ? "
            "ORDER BY observed_at DESC, created_at DESC, id DESC",
            params, limit,
        )
        return await self._fetch_all(IncidentSignal, sql, params)

    async def add_score_snapshot(self, snapshot: IncidentScoreSnapshot) -> None:
        await self._insert("incident_score_snapshots", snapshot)

    async def list_score_snapshots(self, incident_id: str) -> List[IncidentScoreSnapshot]:
        return await self._fetch_all(
            IncidentScoreSnapshot,
            "SELECT * FROM incident_score_snapshots WHERE incident_id = ? ORDER BY created_at DESC, id DESC",
            (incident_id,),
        )

    # ---- actions ----

    async def get_action(self, action_id: str) -> Optional[IncidentAction]:
        return await self._fetch_one(IncidentAction, "SELECT * FROM incident_actions WHERE id = ?", (action_id,))

    async def list_actions(self, incident_id: str, limit: Optional[int] = None) -> List[IncidentAction]:
        params: List[Any] = [incident_id]
        sql = self._limit(
            "SELECT * FROM incident_actions WHERE incident_id = ? ORDER BY created_at DESC, id DESC",
            params, limit,
        )
        return await self._fetch_all(IncidentAction, sql, params)

    async def create_actions(self, actions: Sequence[IncidentAction]) -> List[IncidentAction]:
        created: List[IncidentAction] = []
        async with self._connect() as db:
            for action in actions:
                row = model_to_row(action)
                cursor = await db.execute(insert_sql("incident_actions", row, or_ignore=True), tuple(row.values()))
                if cursor.rowcount == 1:
                    created.append(action)
                else:
                    log.debug("중복 actionKey 액션 추가 생략",
                              incident_id=action.incident_id, action_key=action.action_key)
            await db.commit()
        return created

    async def update_action(self, action_id: str, patch: Dict[str, Any],
                            expected_status: Optional[str] = None) -> Optional[IncidentAction]:
        patch = {**patch, "updated_at": self.clock()}
        check_columns(IncidentAction, patch)
        assignments = ", ".join(f"{k} = ?" for k in patch)
        params = [to_db(v) for v in patch.values()] + [action_id]
        where = "id = ?"
        if expected_status is not None:
            where += " AND status = ?"
            params.append(expected_status)
        async with self._connect() as db:
            cursor = await db.execute(f"UPDATE incident_actions SET {assignments} WHERE {where}", params)
            updated = cursor.rowcount
            cursor = await db.execute("SELECT * FROM incident_actions WHERE id = ?", (action_id,))
            row = await cursor.fetchone()
            await db.commit()
        if row is None:
            raise NotFoundError(f"Incident action not found: {action_id}")
        if updated == 0:
            log.debug("액션 상태 불일치로 갱신 건너뜀", action_id=action_id, expected=expected_status)
            return None
        return row_to_model(IncidentAction, row)

    # ---- acknowledgements ----

    async def add_acknowledgement(self, ack: IncidentAcknowledgement) -> None:
        await self._insert("incident_acknowledgements", ack)

    async def list_acknowledgements(self, incident_id: str,
                                    limit: Optional[int] = None) -> List[IncidentAcknowledgement]:
        params: List[Any] = [incident_id]
        sql = self._limit(
            "SELECT * FROM incident_acknowledgements WHERE incident_id = ? ORDER BY created_at DESC, id DESC",
            params, limit,
        )
        return await self._fetch_all(IncidentAcknowledgement, sql, params)

    # ---- suppression rules ----

    async def create_suppression_rule(self, rule: IncidentSuppressionRule) -> IncidentSuppressionRule:
        await self._insert("incident_suppression_rules", rule)
        return rule

    async def find_active_suppression_rules(self, *, property_id: str, user_id: Optional[str],
                                            type_key: str, now: datetime,
                                            limit: int = 20) -> List[IncidentSuppressionRule]:
        return await self._fetch_all(
            IncidentSuppressionRule,
            """
            SELECT * FROM incident_suppression_rules
            WHERE is_enabled = 1
              AND (type_key = ? OR type_key IS NULL)
              AND (suppress_until IS NULL OR suppress_until > ?)
              AND (
                    (scope = 'PROPERTY' AND property_id = ?)
                 OR (scope = 'USER' AND ? IS NOT NULL AND user_id = ?)
                 OR scope = 'GLOBAL'
              )
            ORDER BY updated_at DESC, created_at DESC, id DESC
            LIMIT ?
            """,
            (type_key, to_epoch(now), property_id, user_id, user_id, limit),
        )

    # ---- events ----

    async def append_event(self, event: IncidentEvent) -> None:
        await self._insert("incident_events", event)

    async def list_events(self, incident_id: str, *, limit: Optional[int] = None,
                          event_type: Optional[str] = None) -> List[IncidentEvent]:
        params: List[Any] = [incident_id]
        sql = "SELECT * FROM incident_events WHERE incident_id = ?"
        if event_type:
            sql += " AND type = ?"
            params.append(event_type)
        sql = self._limit(sql + " ORDER BY created_at DESC, id DESC", params, limit)
        return await self._fetch_all(IncidentEvent, sql, params)
