"""
SQLite-based notification store for home incidents.

Stores user notifications and their per-channel delivery records.
The dispatcher deduplicates by looking back over recent notifications
for the same user, type and entity.
"""

from datetime import datetime
from typing import List, Optional

import aiosqlite

from home_incidents.common.clock import to_epoch
from home_incidents.core.models import Notification, NotificationDelivery
from home_incidents.observability.logging_setup import get_logger
from .rows import insert_sql, model_to_row, row_to_model

log = get_logger("incidents.notification_store")

# SQLite 스키마
SCHEMA = """
CREATE TABLE IF NOT EXISTS notifications (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    type TEXT NOT NULL,
    title TEXT NOT NULL,
    message TEXT NOT NULL,
    action_url TEXT,
    entity_type TEXT,
    entity_id TEXT,
    metadata TEXT,
    created_at REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_notifications_lookup
    ON notifications(user_id, type, entity_type, entity_id, created_at);

CREATE TABLE IF NOT EXISTS notification_deliveries (
    id TEXT PRIMARY KEY,
    notification_id TEXT NOT NULL REFERENCES notifications(id),
    channel TEXT NOT NULL,
    status TEXT NOT NULL,
    error TEXT,
    created_at REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_deliveries_notification ON notification_deliveries(notification_id);
"""


class SQLiteNotificationStore:
    """SQLite 기반 알림 저장소"""

    def __init__(self, path: str):
        """
        초기화합니다.

        Args:
            path: SQLite 데이터베이스 파일 경로
        """
        self.path = path
        log.info("SQLiteNotificationStore 초기화", path=path)

    async def init(self) -> None:
        """데이터베이스를 초기화합니다."""
        async with aiosqlite.connect(self.path) as db:
            await db.executescript(SCHEMA)
            await db.commit()
        log.info("SQLiteNotificationStore 스키마 초기화 완료", path=self.path)

    async def create_notification(self, notification: Notification) -> Notification:
        row = model_to_row(notification)
        async with aiosqlite.connect(self.path) as db:
            await db.execute(insert_sql("notifications", row), tuple(row.values()))
            await db.commit()
        return notification

    async def record_delivery(self, delivery: NotificationDelivery) -> None:
        row = model_to_row(delivery)
        async with aiosqlite.connect(self.path) as db:
            await db.execute(insert_sql("notification_deliveries", row), tuple(row.values()))
            await db.commit()

    async def find_recent(self, *, user_id: str, type: str, entity_type: Optional[str],
                          entity_id: Optional[str], since: datetime,
                          limit: int = 25) -> List[Notification]:
        async with aiosqlite.connect(self.path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                """
                SELECT * FROM notifications
                WHERE user_id = ? AND type = ?
                  AND entity_type IS ? AND entity_id IS ?
                  AND created_at >= ?
                ORDER BY created_at DESC, id DESC
                LIMIT ?
                """,
                (user_id, type, entity_type, entity_id, to_epoch(since), limit),
            )
            rows = await cursor.fetchall()
        return [row_to_model(Notification, r) for r in rows]

    async def list_deliveries(self, notification_id: str) -> List[NotificationDelivery]:
        async with aiosqlite.connect(self.path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM notification_deliveries WHERE notification_id = ? ORDER BY created_at, id",
                (notification_id,),
            )
            rows = await cursor.fetchall()
        return [row_to_model(NotificationDelivery, r) for r in rows]
