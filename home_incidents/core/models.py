"""
Core domain models for home incidents.

This module defines the incident aggregate (incident, signals, score
snapshots, actions, acknowledgements, audit events), suppression rules
and the notification records, using Pydantic v2 for validation.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from home_incidents.common.clock import ensure_utc

# 심각도 / 상태 타입 정의
Severity = Literal["INFO", "WARNING", "CRITICAL"]

IncidentStatus = Literal[
    "DETECTED", "EVALUATED", "ACTIVE", "ACTIONED",
    "MITIGATED", "RESOLVED", "EXPIRED", "SUPPRESSED",
]

ActionStatus = Literal["PROPOSED", "CREATED", "CANCELLED"]

SuppressionScope = Literal["PROPERTY", "USER", "GLOBAL"]

AcknowledgementType = Literal["ACKNOWLEDGED", "DISMISSED", "SNOOZED"]

MitigationLevel = Literal["ACTIVE_PROTECTION", "SCHEDULED", "CONFIRMED", "PARTIAL", "NONE"]

CoverageClarity = Literal["CLEAR", "UNCLEAR", "UNKNOWN"]

EventType = Literal[
    "CREATED", "STATUS_CHANGED", "SEVERITY_COMPUTED", "SIGNAL_ADDED",
    "ACTION_PROPOSED", "ACTION_CREATED", "ACTION_CONFIRMED",
    "ACKNOWLEDGED", "DISMISSED", "SNOOZED", "SUPPRESSED",
]

INCIDENT_STATUSES = (
    "DETECTED", "EVALUATED", "ACTIVE", "ACTIONED",
    "MITIGATED", "RESOLVED", "EXPIRED", "SUPPRESSED",
)

# 동일 fingerprint로 새 인시던트 생성을 막는 "열린" 상태
OPEN_STATUSES = ("DETECTED", "EVALUATED", "ACTIVE", "ACTIONED", "MITIGATED", "SUPPRESSED")

CLOSED_STATUSES = ("RESOLVED", "EXPIRED")


def new_id() -> str:
    """새 식별자를 생성합니다."""
    return uuid.uuid4().hex


class _Record(BaseModel):
    """저장소 레코드 공통 베이스 (datetime은 항상 UTC)"""

    @field_validator("*", mode="after")
    @classmethod
    def _utc(cls, v):
        if isinstance(v, datetime):
            return ensure_utc(v)
        return v


class Incident(_Record):
    """프로퍼티 하나에 대해 감지된 위험 상태"""
    id: str = Field(default_factory=new_id)
    property_id: str
    user_id: Optional[str] = None

    source_type: str
    type_key: str
    category: Optional[str] = None

    title: str
    summary: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    severity: Optional[Severity] = None
    severity_score: Optional[int] = None
    confidence: Optional[int] = None
    score_breakdown: Optional[Dict[str, Any]] = None

    fingerprint: str
    recurrence_key: Optional[str] = None
    dedupe_window_mins: Optional[int] = None

    status: IncidentStatus = "DETECTED"
    opened_at: datetime
    activated_at: Optional[datetime] = None
    mitigated_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    expired_at: Optional[datetime] = None
    suppressed_at: Optional[datetime] = None

    is_suppressed: bool = False
    suppression_reason: Optional[str] = None
    suppression_rule_id: Optional[str] = None

    created_at: datetime
    updated_at: datetime

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES


class IncidentSignal(_Record):
    """인시던트에 첨부된 증거 (생성 후 불변)"""
    id: str = Field(default_factory=new_id)
    incident_id: str
    signal_type: str
    external_ref: Optional[str] = None
    observed_at: datetime
    payload: Dict[str, Any] = Field(default_factory=dict)
    score_hint: Optional[float] = None
    confidence: Optional[int] = None
    created_at: datetime


class IncidentScoreSnapshot(_Record):
    """스코어링 1회의 불변 기록"""
    id: str = Field(default_factory=new_id)
    incident_id: str
    severity: Severity
    severity_score: int
    confidence: int
    breakdown: Dict[str, Any]
    model_version: str
    created_at: datetime


class IncidentAction(_Record):
    """제안되었거나 실행된 조치"""
    id: str = Field(default_factory=new_id)
    incident_id: str
    type: str
    status: ActionStatus = "PROPOSED"
    # payload["actionKey"]의 비정규화 사본 (저장소 유니크 제약용)
    action_key: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    cta_label: Optional[str] = None
    cta_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class IncidentSuppressionRule(_Record):
    """알림 억제 규칙 (type_key None = 와일드카드, suppress_until None = 무기한)"""
    id: str = Field(default_factory=new_id)
    scope: SuppressionScope
    property_id: Optional[str] = None
    user_id: Optional[str] = None
    type_key: Optional[str] = None
    reason: str
    params: Optional[Dict[str, Any]] = None
    suppress_until: Optional[datetime] = None
    is_enabled: bool = True
    created_at: datetime
    updated_at: datetime

    def is_active_at(self, now: datetime) -> bool:
        return self.is_enabled and (self.suppress_until is None or self.suppress_until > now)


class IncidentAcknowledgement(_Record):
    """사용자 응답"""
    id: str = Field(default_factory=new_id)
    incident_id: str
    user_id: str
    type: AcknowledgementType
    note: Optional[str] = None
    snooze_until: Optional[datetime] = None
    created_at: datetime


class IncidentEvent(_Record):
    """추가 전용 감사 로그 항목"""
    id: str = Field(default_factory=new_id)
    incident_id: str
    property_id: str
    user_id: Optional[str] = None
    type: EventType
    message: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None
    created_at: datetime


class Notification(_Record):
    """사용자 알림 레코드 (metadata.dedupeKey로 중복 판정)"""
    id: str = Field(default_factory=new_id)
    user_id: str
    type: str
    title: str
    message: str
    action_url: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class NotificationDelivery(_Record):
    """채널별 전달 기록"""
    id: str = Field(default_factory=new_id)
    notification_id: str
    channel: str
    status: Literal["SENT", "PENDING", "FAILED"]
    error: Optional[str] = None
    created_at: datetime


class MaterializedEntity(BaseModel):
    """실행기가 만든 (또는 찾은) 외부 엔티티 참조"""
    entity_type: str
    entity_id: str
    action_url: Optional[str] = None
    created: bool = False


class IncidentDetail(BaseModel):
    """하이드레이트된 인시던트 (시그널/액션/응답 포함)"""
    incident: Incident
    signals: List[IncidentSignal] = Field(default_factory=list)
    actions: List[IncidentAction] = Field(default_factory=list)
    acknowledgements: List[IncidentAcknowledgement] = Field(default_factory=list)
    decision_trace: Optional[Dict[str, Any]] = None


class IncidentPage(BaseModel):
    """커서 기반 목록 페이지"""
    items: List[Incident]
    next_cursor: Optional[str] = None
