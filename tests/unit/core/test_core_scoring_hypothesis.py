"""
hypothesis를 활용한 scoring 모듈 테스트

이 모듈은 심각도/신뢰도 계산의 버킷 경계와
전체 입력 공간에 대한 속성을 테스트합니다.
"""

import math

import pytest
from hypothesis import given, strategies as st

from home_incidents.core.scoring import (
    CRITICAL_MIN_TOTAL,
    WARNING_MIN_TOTAL,
    ScoringContext,
    bucket_coverage_penalty,
    bucket_impact,
    bucket_likelihood,
    bucket_mitigation,
    bucket_time_sensitivity,
    compute_confidence,
    compute_severity,
    round_half_up,
    severity_for_total,
)

maybe_number = st.one_of(st.none(), st.floats(allow_nan=True, allow_infinity=True))
maybe_bool = st.one_of(st.none(), st.booleans())


class TestBuckets:
    """요인별 버킷 테스트"""

    @pytest.mark.parametrize("exposure,expected", [
        (None, 5), (0, 5), (250, 5), (250.01, 15), (1500, 15),
        (1500.5, 20), (5000, 20), (15000, 25), (15001, 30),
    ])
    def test_impact_by_exposure(self, exposure, expected):
        """노출 금액 구간별 영향 점수"""
        assert bucket_impact(exposure, None) == expected

    def test_safety_critical_overrides_exposure(self):
        """안전 위험이면 금액과 무관하게 최대 점수"""
        assert bucket_impact(0, True) == 30
        assert bucket_impact(100, False) == 5

    @pytest.mark.parametrize("probability,expected", [
        (None, 5), (0, 5), (34.9, 5), (35, 10), (59.9, 10), (60, 18), (84.9, 18), (85, 25), (100, 25),
    ])
    def test_likelihood(self, probability, expected):
        """확률 구간별 가능성 점수"""
        assert bucket_likelihood(probability) == expected

    @pytest.mark.parametrize("hours,expected", [
        (None, 5), (0, 20), (168, 20), (169, 15), (720, 15), (721, 10), (2160, 10), (2161, 5),
    ])
    def test_time_sensitivity(self, hours, expected):
        """발현까지 남은 시간 구간별 점수"""
        assert bucket_time_sensitivity(hours) == expected

    def test_coverage_penalty(self):
        """보장 여부별 감점"""
        assert bucket_coverage_penalty(True) == 0
        assert bucket_coverage_penalty(False) == 15
        assert bucket_coverage_penalty(None) == 10
        assert bucket_coverage_penalty(None, "CLEAR") == 10

    @pytest.mark.parametrize("level,expected", [
        ("ACTIVE_PROTECTION", -20), ("SCHEDULED", -15), ("CONFIRMED", -10),
        ("PARTIAL", -5), ("NONE", 0), (None, 0),
    ])
    def test_mitigation(self, level, expected):
        """완화 수준별 감점"""
        assert bucket_mitigation(level) == expected

    def test_nan_is_treated_as_missing(self):
        """NaN 입력은 값 없음과 동일"""
        assert bucket_impact(math.nan, None) == bucket_impact(None, None)
        assert bucket_likelihood(math.nan) == bucket_likelihood(None)
        assert bucket_time_sensitivity(math.nan) == bucket_time_sensitivity(None)


class TestSeverity:
    """심각도 계산 테스트"""

    @pytest.mark.parametrize("total,expected", [
        (0, "INFO"), (24, "INFO"), (25, "WARNING"), (59, "WARNING"), (60, "CRITICAL"), (100, "CRITICAL"),
    ])
    def test_threshold_boundaries(self, total, expected):
        """경계값 포함 임계값"""
        assert severity_for_total(total) == expected

    def test_freeze_scenario_is_critical(self):
        """동파 위험 시나리오 점수"""
        result = compute_severity(ScoringContext(
            type_key="FREEZE_RISK",
            exposure_usd=5000,
            probability_pct=80,
            time_window_hours=36,
            is_covered=False,
        ))

        assert result.severity == "CRITICAL"
        assert result.breakdown.total == 73
        assert result.breakdown.impact == 20
        assert result.breakdown.likelihood == 18
        assert result.breakdown.time_sensitivity == 20
        assert result.breakdown.coverage_penalty == 15
        assert result.breakdown.mitigation == 0

    def test_empty_context(self):
        """입력이 전혀 없어도 결과를 반환"""
        result = compute_severity(ScoringContext())

        assert result.breakdown.total == 25
        assert result.severity == "WARNING"

    def test_total_is_clamped_at_zero(self):
        """완화 감점으로 음수가 되면 0으로 제한"""
        result = compute_severity(ScoringContext(
            exposure_usd=0,
            probability_pct=0,
            is_covered=True,
            mitigation_level="ACTIVE_PROTECTION",
        ))

        assert result.breakdown.mitigation == -20
        assert result.breakdown.total == 0
        assert result.severity == "INFO"

    def test_breakdown_payload_uses_camel_case(self):
        """직렬화된 내역 키"""
        payload = compute_severity(ScoringContext()).breakdown.to_payload()

        assert set(payload) == {"impact", "likelihood", "timeSensitivity",
                                "coveragePenalty", "mitigation", "total"}

    @given(
        exposure=maybe_number,
        safety=maybe_bool,
        hours=maybe_number,
        probability=maybe_number,
        covered=maybe_bool,
        clarity=st.sampled_from([None, "CLEAR", "UNCLEAR", "UNKNOWN"]),
        mitigation=st.sampled_from([None, "ACTIVE_PROTECTION", "SCHEDULED", "CONFIRMED", "PARTIAL", "NONE"]),
    )
    def test_total_is_bounded_and_consistent(self, exposure, safety, hours, probability,
                                             covered, clarity, mitigation):
        """모든 입력 조합에서 총점 범위와 라벨 일관성"""
        result = compute_severity(ScoringContext(
            exposure_usd=exposure,
            safety_critical=safety,
            time_window_hours=hours,
            probability_pct=probability,
            is_covered=covered,
            coverage_clarity=clarity,
            mitigation_level=mitigation,
        ))
        b = result.breakdown

        assert 0 <= b.total <= 100
        assert 0 <= b.impact <= 30
        assert 0 <= b.likelihood <= 25
        assert 0 <= b.time_sensitivity <= 20
        assert 0 <= b.coverage_penalty <= 15
        assert -20 <= b.mitigation <= 0
        assert b.total == max(0, min(100, b.impact + b.likelihood + b.time_sensitivity
                                     + b.coverage_penalty + b.mitigation))

        if b.total >= CRITICAL_MIN_TOTAL:
            assert result.severity == "CRITICAL"
        elif b.total >= WARNING_MIN_TOTAL:
            assert result.severity == "WARNING"
        else:
            assert result.severity == "INFO"


class TestConfidence:
    """신뢰도 계산 테스트"""

    def test_no_evidence(self):
        """증거가 없으면 기본값에서 오래된 시그널 감점"""
        assert compute_confidence() == 25

    def test_fresh_authoritative_signal(self):
        """최신 권위 시그널"""
        assert compute_confidence(80, has_external_authoritative_signal=True, signal_age_minutes=0) == 82

    def test_activation_gate_values(self):
        """자동 활성화 경계 근처 값"""
        assert compute_confidence(47.5) == 44
        assert compute_confidence(50) == 45

    def test_multiple_signals_bonus(self):
        """시그널 2개 이상 가점"""
        assert compute_confidence(0, has_multiple_signals=True) == compute_confidence(0) + 10

    @pytest.mark.parametrize("age,delta", [(0, 10), (60, 10), (61, 5), (1440, 5), (1441, -5), (None, -5)])
    def test_signal_age(self, age, delta):
        """시그널 경과 시간별 가감점"""
        assert compute_confidence(0, signal_age_minutes=age) == 30 + delta

    def test_round_half_up(self):
        """0.5는 올림"""
        assert round_half_up(18.5) == 19
        assert round_half_up(18.49) == 18
        assert round_half_up(0.5) == 1

    @given(
        probability=maybe_number,
        multiple=st.booleans(),
        authoritative=st.booleans(),
        age=maybe_number,
    )
    def test_confidence_is_bounded(self, probability, multiple, authoritative, age):
        """모든 입력 조합에서 0..100"""
        score = compute_confidence(probability, multiple, authoritative, age)

        assert isinstance(score, int)
        assert 0 <= score <= 100
