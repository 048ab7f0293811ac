"""
Incident notification dispatcher.

Two triggers produce user-facing notifications: incident activation and
action execution. Each notification carries a dedupe key
``type|incident_id|discriminator`` in its metadata; a prior notification
with the same key inside the lookback window suppresses the new one.
Dispatch is best effort and never raises.
"""

from datetime import timedelta
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from home_incidents.common.clock import Clock, utcnow
from home_incidents.core.models import (
    Incident,
    IncidentAction,
    Notification,
    NotificationDelivery,
    Severity,
)
from home_incidents.observability import metrics
from home_incidents.observability.logging_setup import get_logger
from home_incidents.ports.notifications import NotificationChannelPort, NotificationStorePort

log = get_logger("incidents.notifications")

INCIDENT_ACTIVATED = "INCIDENT_ACTIVATED"
INCIDENT_ACTION_CREATED = "INCIDENT_ACTION_CREATED"

CHANNEL_IN_APP = "IN_APP"
CHANNEL_EMAIL = "EMAIL"

DEFAULT_LOOKBACK_HOURS = 72
RECENT_SCAN_LIMIT = 25

# (알림 타입) → 심각도별 발송 채널
CHANNEL_POLICY: Dict[str, Dict[str, Tuple[str, ...]]] = {
    INCIDENT_ACTIVATED: {
        "INFO": (CHANNEL_IN_APP,),
        "WARNING": (CHANNEL_IN_APP, CHANNEL_EMAIL),
        "CRITICAL": (CHANNEL_IN_APP, CHANNEL_EMAIL),
    },
    INCIDENT_ACTION_CREATED: {
        "INFO": (CHANNEL_IN_APP,),
        "WARNING": (CHANNEL_IN_APP,),
        "CRITICAL": (CHANNEL_IN_APP, CHANNEL_EMAIL),
    },
}


def build_dedupe_key(*parts: str) -> str:
    return "|".join(parts)


def channels_for(notification_type: str, severity: Optional[Severity]) -> Tuple[str, ...]:
    """알림 타입과 심각도에 대한 발송 채널 목록을 반환합니다."""
    return CHANNEL_POLICY.get(notification_type, {}).get(severity or "INFO", (CHANNEL_IN_APP,))


class DispatchResult(BaseModel):
    """알림 발송 결과 (호출자는 결과를 의도적으로 무시함)"""
    sent: bool = False
    notification_id: Optional[str] = None
    skipped_reason: Optional[str] = None
    deliveries: List[NotificationDelivery] = Field(default_factory=list)


class NotificationDispatcher:
    """중복 제거된 인시던트 알림 발송기"""

    def __init__(self,
                 store: NotificationStorePort,
                 channels: Optional[Dict[str, NotificationChannelPort]] = None,
                 clock: Clock = utcnow,
                 lookback_hours: int = DEFAULT_LOOKBACK_HOURS,
                 deep_link_base: str = "/dashboard/properties"):
        """
        초기화합니다.

        Args:
            store: 알림 저장소
            channels: 채널 이름 → 발송기 (등록되지 않은 채널은 PENDING으로 기록)
            clock: 현재 시각 공급자
            lookback_hours: 중복 판정 조회 기간 (시간)
            deep_link_base: 딥링크 접두사
        """
        self.store = store
        self.channels = channels or {}
        self.clock = clock
        self.lookback_hours = lookback_hours
        self.deep_link_base = deep_link_base.rstrip("/")

    async def notify_incident_activated(self, incident: Incident,
                                        fallback_user_id: Optional[str] = None) -> DispatchResult:
        """인시던트 활성화 알림을 발송합니다 (심각도별 1회)."""
        severity = incident.severity or "INFO"
        return await self._dispatch(
            incident=incident,
            recipient=incident.user_id or fallback_user_id,
            type=INCIDENT_ACTIVATED,
            discriminator=severity,
            severity=severity,
            title=incident.title,
            message=incident.summary or "New incident detected.",
            action_url=f"{self.deep_link_base}/{incident.property_id}/incidents/{incident.id}",
            metadata={
                "severity": severity,
                "incidentId": incident.id,
                "propertyId": incident.property_id,
                "typeKey": incident.type_key,
            },
        )

    async def notify_action_executed(self, incident: Incident, action: IncidentAction,
                                     user_id: Optional[str] = None) -> DispatchResult:
        """액션 실행 알림을 발송합니다 (액션별 1회)."""
        severity = incident.severity or "INFO"
        return await self._dispatch(
            incident=incident,
            recipient=incident.user_id or user_id,
            type=INCIDENT_ACTION_CREATED,
            discriminator=action.id,
            severity=severity,
            title="Action created",
            message="We created a maintenance task to address this incident.",
            action_url=action.cta_url,
            metadata={
                "severity": severity,
                "incidentId": incident.id,
                "actionId": action.id,
                "linkedEntityType": action.entity_type,
                "linkedEntityId": action.entity_id,
            },
        )

    async def _already_sent(self, *, user_id: str, type: str, entity_id: str, dedupe_key: str) -> bool:
        since = self.clock() - timedelta(hours=self.lookback_hours)
        recent = await self.store.find_recent(
            user_id=user_id,
            type=type,
            entity_type="Incident",
            entity_id=entity_id,
            since=since,
            limit=RECENT_SCAN_LIMIT,
        )
        return any(n.metadata.get("dedupeKey") == dedupe_key for n in recent)

    async def _dispatch(self, *, incident: Incident, recipient: Optional[str], type: str,
                        discriminator: str, severity: Severity, title: str, message: str,
                        action_url: Optional[str], metadata: dict) -> DispatchResult:
        if not recipient:
            metrics.notifications.labels(type=type, outcome="no_recipient").inc()
            log.info("수신자 없음, 알림 생략", incident_id=incident.id, type=type)
            return DispatchResult(skipped_reason="NO_RECIPIENT")

        dedupe_key = build_dedupe_key(type, incident.id, discriminator)
        try:
            if await self._already_sent(user_id=recipient, type=type,
                                        entity_id=incident.id, dedupe_key=dedupe_key):
                metrics.notifications.labels(type=type, outcome="duplicate").inc()
                log.info("중복 알림 생략", incident_id=incident.id, dedupe_key=dedupe_key)
                return DispatchResult(skipped_reason="DUPLICATE")

            notification = await self.store.create_notification(Notification(
                user_id=recipient,
                type=type,
                title=title,
                message=message,
                action_url=action_url,
                entity_type="Incident",
                entity_id=incident.id,
                metadata={"dedupeKey": dedupe_key, **metadata},
                created_at=self.clock(),
            ))
        except Exception as e:
            metrics.notifications.labels(type=type, outcome="error").inc()
            log.warning("알림 생성 실패", incident_id=incident.id, type=type, error=str(e))
            return DispatchResult(skipped_reason="ERROR")

        deliveries = []
        for channel in channels_for(type, severity):
            delivery = await self._deliver(notification, channel)
            deliveries.append(delivery)

        metrics.notifications.labels(type=type, outcome="sent").inc()
        log.info("알림 발송", incident_id=incident.id, type=type,
                 notification_id=notification.id, channels=[d.channel for d in deliveries])
        return DispatchResult(sent=True, notification_id=notification.id, deliveries=deliveries)

    async def _deliver(self, notification: Notification, channel: str) -> NotificationDelivery:
        sender = self.channels.get(channel)
        status, error = "PENDING", None
        if sender is not None:
            try:
                await sender.send(notification)
                status = "SENT"
            except Exception as e:
                status, error = "FAILED", str(e)
                log.warning("채널 발송 실패", channel=channel,
                            notification_id=notification.id, error=str(e))

        delivery = NotificationDelivery(
            notification_id=notification.id,
            channel=channel,
            status=status,
            error=error,
            created_at=self.clock(),
        )
        try:
            await self.store.record_delivery(delivery)
        except Exception as e:
            log.warning("전달 기록 실패", channel=channel,
                        notification_id=notification.id, error=str(e))
        return delivery
