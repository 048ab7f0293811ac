"""
Append-only incident event log.

Every lifecycle transition writes one event. Writing is best effort:
``record`` returns an ``EventLogResult`` and never raises, so a failed
audit write cannot undo the transition that triggered it.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from home_incidents.common.clock import Clock, utcnow
from home_incidents.core.models import EventType, Incident, IncidentEvent
from home_incidents.observability import metrics
from home_incidents.observability.logging_setup import get_logger
from home_incidents.ports.repository import IncidentRepositoryPort

log = get_logger("incidents.events")


class EventLogResult(BaseModel):
    """이벤트 기록 결과 (호출자는 결과를 의도적으로 무시함)"""
    ok: bool
    event_id: Optional[str] = None
    error: Optional[str] = None


class EventLog:
    """인시던트 감사 로그"""

    def __init__(self, repo: IncidentRepositoryPort, clock: Clock = utcnow):
        self.repo = repo
        self.clock = clock

    async def record(self, incident: Incident, type: EventType, *,
                     message: Optional[str] = None,
                     payload: Optional[Dict[str, Any]] = None,
                     user_id: Optional[str] = None) -> EventLogResult:
        """
        이벤트를 기록합니다.

        Args:
            incident: 대상 인시던트
            type: 이벤트 타입
            message: 사람이 읽는 메시지
            payload: 구조화된 부가 정보
            user_id: 행위자 (없으면 인시던트 소유자)

        Returns:
            기록 결과 (실패 시 ok=False)
        """
        try:
            event = IncidentEvent(
                incident_id=incident.id,
                property_id=incident.property_id,
                user_id=user_id or incident.user_id,
                type=type,
                message=message,
                payload=payload,
                created_at=self.clock(),
            )
            await self.repo.append_event(event)
        except Exception as e:
            metrics.event_log_failures.inc()
            log.warning("이벤트 기록 실패", incident_id=incident.id, type=type, error=str(e))
            return EventLogResult(ok=False, error=str(e))

        log.debug("이벤트 기록", incident_id=incident.id, type=type, event_id=event.id)
        return EventLogResult(ok=True, event_id=event.id)

    async def list_events(self, incident_id: str, limit: Optional[int] = 100) -> List[IncidentEvent]:
        """인시던트의 이벤트를 최신순으로 반환합니다."""
        return await self.repo.list_events(incident_id, limit=limit)

    async def latest_event(self, incident_id: str, type: EventType) -> Optional[IncidentEvent]:
        """지정한 타입의 가장 최근 이벤트를 반환합니다."""
        events = await self.repo.list_events(incident_id, limit=1, event_type=type)
        return events[0] if events else None
