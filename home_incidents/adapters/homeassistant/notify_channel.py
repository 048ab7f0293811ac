"""
Notification channel senders for home incidents.

``LogChannel`` is the in-app channel: the stored notification row is the
delivery, so sending only logs it. ``HomeAssistantNotifyChannel`` pushes
email-class notifications through a Home Assistant ``notify`` service.
"""

from typing import Any, Dict, Optional

import aiohttp

from home_incidents.common.retry import retry_with_backoff
from home_incidents.core.models import Notification
from home_incidents.observability.logging_setup import get_logger

log = get_logger("incidents.channels")


class LogChannel:
    """인앱 알림 채널 (저장된 알림 행 자체가 전달)"""

    name = "IN_APP"

    async def send(self, notification: Notification) -> None:
        log.info("인앱 알림 기록", notification_id=notification.id,
                 user_id=notification.user_id, type=notification.type)


class HomeAssistantNotifyChannel:
    """Home Assistant notify 서비스 기반 알림 채널"""

    name = "EMAIL"

    def __init__(self,
                 base_url: str,
                 token: str,
                 service: str = "notify",
                 timeout: float = 10.0,
                 max_retries: int = 3):
        """
        초기화합니다.

        Args:
            base_url: Home Assistant API 기본 URL
            token: Home Assistant 장기 토큰
            service: notify 도메인의 서비스 이름 (예: "mobile_app_phone")
            timeout: 요청 타임아웃 (초)
            max_retries: 최대 재시도 횟수
        """
        self.base_url = base_url.rstrip('/')
        self.token = token
        self.service = service
        self.timeout = timeout
        self.max_retries = max_retries
        self._session: Optional[aiohttp.ClientSession] = None

        log.info("Home Assistant notify 채널 초기화됨", service=service)

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if not self._session or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={
                    "Authorization": f"Bearer {self.token}",
                    "Content-Type": "application/json",
                },
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    def build_payload(self, notification: Notification) -> Dict[str, Any]:
        """
        notify 서비스 요청 본문을 만듭니다.

        Args:
            notification: 발송할 알림

        Returns:
            notify 서비스 페이로드
        """
        payload: Dict[str, Any] = {
            "title": notification.title,
            "message": notification.message,
            "data": {"tag": notification.metadata.get("dedupeKey", notification.id)},
        }
        if notification.action_url:
            payload["data"]["url"] = notification.action_url
            payload["data"]["clickAction"] = notification.action_url
        return payload

    async def _post(self, endpoint: str, payload: Dict[str, Any]) -> None:
        session = await self._ensure_session()
        async with session.post(f"{self.base_url}{endpoint}", json=payload) as response:
            response.raise_for_status()

    async def send(self, notification: Notification) -> None:
        """
        알림을 Home Assistant notify 서비스로 발송합니다.

        Raises:
            aiohttp.ClientError: 재시도 후에도 발송 실패
        """
        endpoint = f"/api/services/notify/{self.service}"
        payload = self.build_payload(notification)

        try:
            await retry_with_backoff(
                lambda: self._post(endpoint, payload),
                max_retries=self.max_retries,
                retry_on=(aiohttp.ClientError, TimeoutError),
            )
        except (aiohttp.ClientError, TimeoutError) as e:
            log.error("notify 발송 실패", service=self.service,
                      notification_id=notification.id, error=str(e))
            raise
        log.info("notify 발송 성공", service=self.service, notification_id=notification.id)
