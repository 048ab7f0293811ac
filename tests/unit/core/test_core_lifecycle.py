"""
인시던트 생명주기 규칙 및 입력/오류 모델 테스트
"""

from datetime import datetime, timezone

import pytest

from home_incidents.core.errors import (
    IncidentValidationError,
    NotFoundError,
    StateConflictError,
    UnsupportedOperationError,
)
from home_incidents.core.inputs import AcknowledgeInput, IncidentInput, parse_input
from home_incidents.core.lifecycle import clamp_int, should_auto_activate, status_patch

NOW = datetime(2025, 1, 10, 12, 0, tzinfo=timezone.utc)


class TestClampInt:
    """정수 제한 테스트"""

    def test_none_passes_through(self):
        assert clamp_int(None) is None

    def test_bounds(self):
        """범위 밖 값은 경계로"""
        assert clamp_int(150.4) == 100
        assert clamp_int(-3) == 0
        assert clamp_int(44.6) == 45

    def test_non_finite(self):
        """무한대는 경계로, NaN은 None"""
        assert clamp_int(float("inf")) == 100
        assert clamp_int(float("-inf")) == 0
        assert clamp_int(float("nan")) is None


class TestStatusPatch:
    """수동 상태 변경 패치 테스트"""

    def test_unknown_status(self):
        """알 수 없는 상태는 검증 오류"""
        with pytest.raises(IncidentValidationError):
            status_patch("CLOSED", NOW)

    @pytest.mark.parametrize("status,field", [
        ("ACTIVE", "activated_at"),
        ("MITIGATED", "mitigated_at"),
        ("RESOLVED", "resolved_at"),
        ("EXPIRED", "expired_at"),
        ("SUPPRESSED", "suppressed_at"),
    ])
    def test_lifecycle_timestamp(self, status, field):
        """대상 상태의 타임스탬프 기록"""
        patch = status_patch(status, NOW)

        assert patch["status"] == status
        assert patch[field] == NOW

    def test_suppressed_sets_flag(self):
        assert status_patch("SUPPRESSED", NOW)["is_suppressed"] is True

    def test_active_clears_suppression(self):
        """ACTIVE는 억제 필드 해제"""
        patch = status_patch("ACTIVE", NOW)

        assert patch["is_suppressed"] is False
        assert patch["suppressed_at"] is None
        assert patch["suppression_reason"] is None
        assert patch["suppression_rule_id"] is None

    def test_evaluated_only_status(self):
        assert status_patch("EVALUATED", NOW) == {"status": "EVALUATED"}


class TestAutoActivation:
    """자동 활성화 판정 테스트"""

    def test_gate(self):
        """신뢰도 임계값 경계"""
        assert should_auto_activate(status="EVALUATED", is_suppressed=False,
                                    severity="WARNING", confidence=45)
        assert not should_auto_activate(status="EVALUATED", is_suppressed=False,
                                        severity="CRITICAL", confidence=44)

    def test_info_never_activates(self):
        assert not should_auto_activate(status="EVALUATED", is_suppressed=False,
                                        severity="INFO", confidence=100)

    def test_suppressed_never_activates(self):
        assert not should_auto_activate(status="DETECTED", is_suppressed=True,
                                        severity="CRITICAL", confidence=100)

    @pytest.mark.parametrize("status", ["ACTIVE", "ACTIONED"])
    def test_already_active(self, status):
        """이미 활성/조치된 인시던트는 다시 활성화하지 않음"""
        assert not should_auto_activate(status=status, is_suppressed=False,
                                        severity="CRITICAL", confidence=100)

    def test_custom_threshold(self):
        assert not should_auto_activate(status="DETECTED", is_suppressed=False,
                                        severity="CRITICAL", confidence=80, min_confidence=90)


class TestParseInput:
    """입력 파싱 테스트"""

    def test_model_instance_passes_through(self):
        inp = AcknowledgeInput(type="ACKNOWLEDGED")

        assert parse_input(AcknowledgeInput, inp) is inp

    def test_missing_fields(self):
        """필수 필드 누락은 필드별 오류 목록"""
        with pytest.raises(IncidentValidationError) as exc_info:
            parse_input(IncidentInput, {"property_id": "prop-1", "source_type": "WEATHER",
                                        "type_key": "FREEZE_RISK", "fingerprint": "fp"})

        fields = [e["field"] for e in exc_info.value.details["errors"]]
        assert "title" in fields

    def test_bad_date(self):
        """잘못된 날짜 문자열"""
        with pytest.raises(IncidentValidationError):
            parse_input(AcknowledgeInput, {"type": "SNOOZED", "snooze_until": "not-a-date"})

    def test_naive_date_is_utc(self):
        """타임존 없는 날짜는 UTC로 간주"""
        inp = parse_input(AcknowledgeInput, {"type": "SNOOZED", "snooze_until": "2025-01-11T00:00:00"})

        assert inp.snooze_until == datetime(2025, 1, 11, tzinfo=timezone.utc)

    def test_unknown_ack_type(self):
        with pytest.raises(IncidentValidationError):
            parse_input(AcknowledgeInput, {"type": "IGNORED"})


class TestErrors:
    """오류 타입 테스트"""

    @pytest.mark.parametrize("cls,status,code", [
        (NotFoundError, 404, "NOT_FOUND"),
        (IncidentValidationError, 400, "VALIDATION_ERROR"),
        (StateConflictError, 409, "STATE_CONFLICT"),
        (UnsupportedOperationError, 422, "UNSUPPORTED_OPERATION"),
    ])
    def test_http_mapping(self, cls, status, code):
        """오류 클래스별 HTTP 상태와 코드"""
        err = cls("boom", details={"x": 1})

        assert err.http_status == status
        assert err.to_dict() == {"error": code, "message": "boom", "details": {"x": 1}}
