"""
Input models for incident operations.

These are the boundary shapes accepted by the incident service
(upsert, signals, acknowledgements, manual actions, suppression rules,
listing). Date strings are parsed by pydantic and normalized to UTC.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from home_incidents.common.clock import ensure_utc
from .errors import IncidentValidationError
from .models import (
    AcknowledgementType,
    ActionStatus,
    IncidentStatus,
    Severity,
    SuppressionScope,
)


class _Input(BaseModel):
    @field_validator("*", mode="after")
    @classmethod
    def _utc(cls, v):
        if isinstance(v, datetime):
            return ensure_utc(v)
        return v


class SignalInput(_Input):
    """시그널 첨부 입력"""
    signal_type: str = Field(min_length=1)
    external_ref: Optional[str] = None
    observed_at: Optional[datetime] = None
    payload: Dict[str, Any] = Field(default_factory=dict)
    score_hint: Optional[float] = Field(default=None, allow_inf_nan=False)
    confidence: Optional[float] = None


class IncidentInput(_Input):
    """인시던트 upsert 입력 (분류 + 서술 + 선택 점수 + fingerprint)"""
    property_id: str = Field(min_length=1)
    user_id: Optional[str] = None

    source_type: str = Field(min_length=1)
    type_key: str = Field(min_length=1)
    category: Optional[str] = None

    title: str = Field(min_length=1)
    summary: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    severity: Optional[Severity] = None
    severity_score: Optional[float] = None
    score_breakdown: Optional[Dict[str, Any]] = None
    confidence: Optional[float] = None

    fingerprint: str = Field(min_length=1)
    recurrence_key: Optional[str] = None
    dedupe_window_mins: Optional[int] = None

    status: Optional[IncidentStatus] = None


class AcknowledgeInput(_Input):
    """사용자 응답 입력"""
    type: AcknowledgementType
    note: Optional[str] = None
    snooze_until: Optional[datetime] = None


class ActionInput(_Input):
    """수동 액션 생성 입력"""
    type: str = Field(min_length=1)
    status: ActionStatus = "PROPOSED"
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    cta_label: Optional[str] = None
    cta_url: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None


class SuppressionRuleInput(_Input):
    """억제 규칙 생성 입력"""
    scope: SuppressionScope = "PROPERTY"
    property_id: Optional[str] = None
    user_id: Optional[str] = None
    type_key: Optional[str] = None
    reason: str = Field(min_length=1)
    params: Optional[Dict[str, Any]] = None
    suppress_until: Optional[datetime] = None
    is_enabled: bool = True


class ListIncidentsQuery(BaseModel):
    """인시던트 목록 조회 조건"""
    property_id: str
    status: Optional[IncidentStatus] = None
    include_suppressed: bool = False
    limit: Optional[int] = None
    cursor: Optional[str] = None


def parse_input(cls, data):
    """
    입력을 모델로 변환합니다 (이미 모델이면 그대로 반환).

    Raises:
        IncidentValidationError: 필드 누락, 잘못된 값 또는 날짜 형식
    """
    if isinstance(data, cls):
        return data
    try:
        return cls.model_validate(data)
    except PydanticValidationError as e:
        errors = [
            {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        raise IncidentValidationError(f"Invalid {cls.__name__}", details={"errors": errors}) from e
