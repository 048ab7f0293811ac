"""
SQLite-based maintenance task store for home incidents.

This module implements the task materializer port. A task is keyed by
(property_id, action_key) with a unique constraint, so a retried
execution always lands on the same row.
"""

import json

import aiosqlite

from home_incidents.common.clock import to_epoch, utcnow
from home_incidents.core.models import MaterializedEntity, new_id
from home_incidents.observability.logging_setup import get_logger
from home_incidents.ports.tasks import TaskSpec

log = get_logger("incidents.tasks")

ENTITY_TYPE = "PropertyMaintenanceTask"

# SQLite 스키마
SCHEMA = """
CREATE TABLE IF NOT EXISTS maintenance_tasks (
    id TEXT PRIMARY KEY,
    property_id TEXT NOT NULL,
    action_key TEXT NOT NULL,
    incident_id TEXT NOT NULL,
    action_id TEXT NOT NULL,
    action_type TEXT NOT NULL,
    user_id TEXT,
    title TEXT NOT NULL,
    description TEXT,
    priority TEXT,
    risk_level TEXT,
    category TEXT,
    service_category TEXT,
    source TEXT,
    extra TEXT,
    status TEXT NOT NULL DEFAULT 'PENDING',
    created_at REAL NOT NULL,
    UNIQUE (property_id, action_key)
);
"""


class SQLiteTaskStore:
    """SQLite 기반 유지보수 작업 저장소"""

    def __init__(self, path: str, deep_link_base: str = "/dashboard/properties", clock=utcnow):
        """
        초기화합니다.

        Args:
            path: SQLite 데이터베이스 파일 경로
            deep_link_base: 작업 딥링크 접두사
            clock: 현재 시각 공급자
        """
        self.path = path
        self.deep_link_base = deep_link_base.rstrip("/")
        self.clock = clock
        log.info("SQLiteTaskStore 초기화", path=path)

    async def init(self) -> None:
        """데이터베이스를 초기화합니다."""
        async with aiosqlite.connect(self.path) as db:
            await db.executescript(SCHEMA)
            await db.commit()
        log.info("SQLiteTaskStore 스키마 초기화 완료", path=self.path)

    def task_url(self, property_id: str, task_id: str) -> str:
        return f"{self.deep_link_base}/{property_id}/maintenance/tasks/{task_id}"

    def _entity(self, property_id: str, task_id: str, created: bool) -> MaterializedEntity:
        return MaterializedEntity(
            entity_type=ENTITY_TYPE,
            entity_id=task_id,
            action_url=self.task_url(property_id, task_id),
            created=created,
        )

    async def find_or_create(self, spec: TaskSpec) -> MaterializedEntity:
        """
        (property_id, action_key)로 작업을 찾거나 생성합니다.

        INSERT OR IGNORE 후 키로 다시 조회하므로 동시 호출도 같은 행으로 수렴합니다.

        Args:
            spec: 작업 명세

        Returns:
            구체화된 엔티티 참조
        """
        task_id = new_id()
        async with aiosqlite.connect(self.path) as db:
            cursor = await db.execute(
                """
                INSERT OR IGNORE INTO maintenance_tasks (
                    id, property_id, action_key, incident_id, action_id, action_type,
                    user_id, title, description, priority, risk_level, category,
                    service_category, source, extra, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    task_id, spec.property_id, spec.action_key, spec.incident_id,
                    spec.action_id, spec.action_type, spec.user_id, spec.title,
                    spec.description, spec.priority, spec.risk_level, spec.category,
                    spec.service_category, spec.source,
                    json.dumps(spec.extra, ensure_ascii=False, default=str),
                    to_epoch(self.clock()),
                ),
            )
            created = cursor.rowcount == 1
            if not created:
                cursor = await db.execute(
                    "SELECT id FROM maintenance_tasks WHERE property_id = ? AND action_key = ?",
                    (spec.property_id, spec.action_key),
                )
                row = await cursor.fetchone()
                task_id = row[0]
            await db.commit()

        if created:
            log.info("유지보수 작업 생성", property_id=spec.property_id,
                     action_key=spec.action_key, task_id=task_id)
        else:
            log.info("기존 유지보수 작업 재사용", property_id=spec.property_id,
                     action_key=spec.action_key, task_id=task_id)
        return self._entity(spec.property_id, task_id, created)

    async def get_count(self) -> int:
        """
        현재 저장된 작업 수를 반환합니다.

        Returns:
            작업 수
        """
        async with aiosqlite.connect(self.path) as db:
            cursor = await db.execute("SELECT COUNT(*) FROM maintenance_tasks")
            result = await cursor.fetchone()
            return result[0] if result else 0
