"""
Incident repository port interface.

This module defines the protocol for the persistent incident store.
Correctness under concurrent invocation is delegated to the store:
implementations must guarantee at most one open incident per
(property_id, fingerprint) and at most one action per
(incident_id, action_key).
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Sequence

from home_incidents.core.models import (
    Incident,
    IncidentAcknowledgement,
    IncidentAction,
    IncidentEvent,
    IncidentScoreSnapshot,
    IncidentSignal,
    IncidentSuppressionRule,
)


class IncidentRepositoryPort(Protocol):
    """인시던트 저장소 포트 인터페이스"""

    async def init(self) -> None:
        """저장소를 초기화합니다 (스키마 생성 등)."""
        ...

    async def ping(self) -> bool:
        """저장소 접근 가능 여부를 확인합니다."""
        ...

    # ---- incidents ----
    async def get_incident(self, incident_id: str) -> Optional[Incident]:
        ...

    async def find_open_incident(self, property_id: str, fingerprint: str) -> Optional[Incident]:
        """(property_id, fingerprint)의 열린 인시던트를 조회합니다."""
        ...

    async def insert_incident(self, incident: Incident) -> bool:
        """
        인시던트를 추가합니다.

        Returns:
            추가 성공 여부 (같은 fingerprint의 열린 인시던트가 있으면 False)
        """
        ...

    async def update_incident(self, incident_id: str, patch: Dict[str, Any]) -> Incident:
        """
        인시던트 필드를 갱신합니다 (updated_at 자동 갱신).

        Raises:
            NotFoundError: 인시던트 없음
            StateConflictError: 열린 인시던트 유일성 위반
        """
        ...

    async def list_incidents(self, property_id: str, *, status: Optional[str] = None,
                             include_suppressed: bool = False, limit: int = 30,
                             cursor: Optional[str] = None) -> List[Incident]:
        """최신순으로 인시던트를 조회합니다 (cursor 다음 항목부터)."""
        ...

    # ---- signals / snapshots ----
    async def add_signals(self, signals: Sequence[IncidentSignal]) -> None:
        ...

    async def list_signals(self, incident_id: str, limit: Optional[int] = None) -> List[IncidentSignal]:
        """observed_at 내림차순으로 시그널을 조회합니다."""
        ...

    async def add_score_snapshot(self, snapshot: IncidentScoreSnapshot) -> None:
        ...

    async def list_score_snapshots(self, incident_id: str) -> List[IncidentScoreSnapshot]:
        ...

    # ---- actions ----
    async def get_action(self, action_id: str) -> Optional[IncidentAction]:
        ...

    async def list_actions(self, incident_id: str, limit: Optional[int] = None) -> List[IncidentAction]:
        """created_at 내림차순으로 액션을 조회합니다."""
        ...

    async def create_actions(self, actions: Sequence[IncidentAction]) -> List[IncidentAction]:
        """
        액션을 일괄 추가합니다.

        Returns:
            실제로 추가된 액션 ((incident_id, action_key) 중복은 건너뜀)
        """
        ...

    async def update_action(self, action_id: str, patch: Dict[str, Any],
                            expected_status: Optional[str] = None) -> Optional[IncidentAction]:
        """
        액션을 갱신합니다.

        expected_status가 주어지면 현재 상태가 일치할 때만 갱신하고,
        일치하지 않으면 None을 반환합니다 (compare-and-set).

        Raises:
            NotFoundError: 액션 없음
        """
        ...

    # ---- acknowledgements ----
    async def add_acknowledgement(self, ack: IncidentAcknowledgement) -> None:
        ...

    async def list_acknowledgements(self, incident_id: str, limit: Optional[int] = None) -> List[IncidentAcknowledgement]:
        ...

    # ---- suppression rules ----
    async def create_suppression_rule(self, rule: IncidentSuppressionRule) -> IncidentSuppressionRule:
        ...

    async def find_active_suppression_rules(self, *, property_id: str, user_id: Optional[str],
                                            type_key: str, now: datetime,
                                            limit: int = 20) -> List[IncidentSuppressionRule]:
        """
        적용 가능한 활성 억제 규칙을 updated_at 내림차순으로 조회합니다.

        PROPERTY(해당 프로퍼티), USER(해당 사용자, user_id가 있을 때만),
        GLOBAL 범위 중 type_key가 일치하거나 와일드카드이고
        suppress_until이 없거나 미래인 규칙.
        """
        ...

    # ---- events ----
    async def append_event(self, event: IncidentEvent) -> None:
        ...

    async def list_events(self, incident_id: str, *, limit: Optional[int] = None,
                          event_type: Optional[str] = None) -> List[IncidentEvent]:
        """created_at 내림차순으로 이벤트를 조회합니다."""
        ...
