"""
Task materialization port interface.

This module defines the protocol for the maintenance-task store the
executor materializes actions into.
"""

from typing import Any, Dict, Optional, Protocol

from pydantic import BaseModel, Field

from home_incidents.core.models import MaterializedEntity


class TaskSpec(BaseModel):
    """액션 payload에서 만든 작업 명세"""
    property_id: str
    action_key: str
    incident_id: str
    action_id: str
    action_type: str
    user_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    priority: Optional[str] = None
    risk_level: Optional[str] = None
    category: Optional[str] = None
    service_category: Optional[str] = None
    source: Optional[str] = None
    extra: Dict[str, Any] = Field(default_factory=dict)


class TaskMaterializerPort(Protocol):
    """작업 구체화 포트 인터페이스"""

    async def find_or_create(self, spec: TaskSpec) -> MaterializedEntity:
        """
        (property_id, action_key)로 작업을 찾거나 생성합니다.

        같은 키로 재시도하면 항상 같은 엔티티를 반환해야 합니다.

        Args:
            spec: 작업 명세

        Returns:
            구체화된 엔티티 참조 (created=True면 이번 호출에서 생성됨)
        """
        ...
