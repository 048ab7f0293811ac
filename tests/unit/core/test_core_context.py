"""
스코어링 컨텍스트 도출 테스트
"""

from datetime import datetime, timezone

import pytest

from home_incidents.core.context import build_scoring_context, is_authoritative, resolve_field
from home_incidents.core.models import Incident, IncidentSignal

NOW = datetime(2025, 1, 10, 12, 0, tzinfo=timezone.utc)


def _incident(details=None, type_key="FREEZE_RISK"):
    return Incident(
        property_id="prop-1",
        source_type="WEATHER",
        type_key=type_key,
        title="Freeze risk",
        fingerprint="fp-1",
        details=details,
        opened_at=NOW,
        created_at=NOW,
        updated_at=NOW,
    )


def _signal(payload, signal_type="WEATHER_FORECAST"):
    return IncidentSignal(
        incident_id="inc-1",
        signal_type=signal_type,
        observed_at=NOW,
        payload=payload,
        created_at=NOW,
    )


class TestBuildScoringContext:
    """컨텍스트 도출 테스트"""

    def test_details_take_precedence(self):
        """details 값이 시그널 값보다 우선"""
        ctx = build_scoring_context(_incident({"exposureUsd": 100}), _signal({"exposureUsd": 9000}))

        assert ctx.exposure_usd == 100

    def test_falls_back_to_latest_signal(self):
        """details에 없으면 최신 시그널 payload 사용"""
        ctx = build_scoring_context(_incident({}), _signal({"probabilityPct": 70, "isCovered": True}))

        assert ctx.probability_pct == 70
        assert ctx.is_covered is True

    def test_wrong_type_falls_through(self):
        """타입이 맞지 않는 값은 무시하고 다음 소스로"""
        ctx = build_scoring_context(
            _incident({"probabilityPct": "high", "exposureUsd": True}),
            _signal({"probabilityPct": 65}),
        )

        assert ctx.probability_pct == 65
        assert ctx.exposure_usd is None

    def test_defaults(self):
        """값이 없을 때 기본값"""
        ctx = build_scoring_context(_incident(None), None)

        assert ctx.type_key == "FREEZE_RISK"
        assert ctx.exposure_usd is None
        assert ctx.coverage_clarity == "UNKNOWN"
        assert ctx.mitigation_level == "NONE"

    def test_unknown_enum_value_is_ignored(self):
        """허용되지 않은 열거값은 무시"""
        ctx = build_scoring_context(_incident({"coverageClarity": "MAYBE"}), None)

        assert ctx.coverage_clarity == "UNKNOWN"

    @pytest.mark.parametrize("level", [None, "NONE"])
    def test_existing_actions_imply_scheduled(self, level):
        """조치가 있고 완화 수준이 없으면 SCHEDULED"""
        details = {} if level is None else {"mitigationLevel": level}

        ctx = build_scoring_context(_incident(details), None, has_actions=True)

        assert ctx.mitigation_level == "SCHEDULED"

    def test_explicit_mitigation_is_kept(self):
        """명시된 완화 수준은 조치 여부와 무관하게 유지"""
        ctx = build_scoring_context(_incident({"mitigationLevel": "PARTIAL"}), None, has_actions=True)

        assert ctx.mitigation_level == "PARTIAL"

    def test_resolve_field_order(self):
        """조회 순서대로 첫 유효 값"""
        sources = {"a": {"k": None}, "b": {"k": 3}}

        assert resolve_field("k", lambda v: v, ("a", "b"), sources) == 3
        assert resolve_field("missing", lambda v: v, ("a", "b"), sources, default=7) == 7


class TestAuthoritativeSignal:
    """권위 시그널 판정 테스트"""

    def test_authoritative_types(self):
        """기상 예보와 보험 조회는 권위 시그널"""
        assert is_authoritative(_signal({}, "WEATHER_FORECAST"))
        assert is_authoritative(_signal({}, "COVERAGE_CHECK"))

    def test_other_types(self):
        """그 외 시그널과 None"""
        assert not is_authoritative(_signal({}, "USER_REPORT"))
        assert not is_authoritative(None)
