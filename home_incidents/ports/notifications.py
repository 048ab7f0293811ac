"""
Notification port interfaces.

This module defines the protocols for the notification store (records
and deduplication lookups) and for a delivery channel sender.
"""

from datetime import datetime
from typing import List, Optional, Protocol

from home_incidents.core.models import Notification, NotificationDelivery


class NotificationStorePort(Protocol):
    """알림 저장소 포트 인터페이스"""

    async def create_notification(self, notification: Notification) -> Notification:
        ...

    async def record_delivery(self, delivery: NotificationDelivery) -> None:
        ...

    async def find_recent(self, *, user_id: str, type: str, entity_type: Optional[str],
                          entity_id: Optional[str], since: datetime,
                          limit: int = 25) -> List[Notification]:
        """
        since 이후 생성된 알림을 최신순으로 조회합니다.

        Args:
            user_id: 수신자
            type: 알림 타입
            entity_type: 연결 엔티티 타입
            entity_id: 연결 엔티티 ID
            since: 조회 시작 시각
            limit: 최대 개수

        Returns:
            알림 목록
        """
        ...

    async def list_deliveries(self, notification_id: str) -> List[NotificationDelivery]:
        ...


class NotificationChannelPort(Protocol):
    """알림 채널 발송 포트 인터페이스"""

    async def send(self, notification: Notification) -> None:
        """
        알림을 채널로 발송합니다.

        Raises:
            발송 실패 시 예외 (디스패처가 FAILED로 기록)
        """
        ...
