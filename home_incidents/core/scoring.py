"""
Severity and confidence scoring for home incidents.

Pure, deterministic rule buckets with no I/O. Five independent factors
are bucketed into fixed point ranges and summed into a 0..100 total:

    impact           0..30   safety-critical or estimated exposure (USD)
    likelihood       0..25   model probability (%)
    time sensitivity 0..20   hours until the condition may manifest
    coverage penalty 0..15   insurance coverage known / not covered / unknown
    mitigation     -20..0    protection already in place

Both entry points are total: any combination of missing or out-of-range
inputs yields a result.
"""

import math
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .models import CoverageClarity, MitigationLevel, Severity

SEVERITY_MODEL_VERSION = "severity-v1"

CRITICAL_MIN_TOTAL = 60
WARNING_MIN_TOTAL = 25

# 완화 수준별 감점
MITIGATION_POINTS = {
    "ACTIVE_PROTECTION": -20,
    "SCHEDULED": -15,
    "CONFIRMED": -10,
    "PARTIAL": -5,
    "NONE": 0,
}


class ScoringContext(BaseModel):
    """스코어링 입력 (정규화된 값, 누락 허용)"""
    type_key: str = ""
    exposure_usd: Optional[float] = None
    safety_critical: Optional[bool] = None
    time_window_hours: Optional[float] = None
    probability_pct: Optional[float] = None
    is_covered: Optional[bool] = None
    coverage_clarity: Optional[CoverageClarity] = "UNKNOWN"
    mitigation_level: Optional[MitigationLevel] = "NONE"


class SeverityBreakdown(BaseModel):
    """요인별 점수 내역 (직렬화 시 camelCase)"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    impact: int
    likelihood: int
    time_sensitivity: int
    coverage_penalty: int
    mitigation: int
    total: int

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True)


class SeverityResult(BaseModel):
    """심각도 계산 결과"""
    severity: Severity
    breakdown: SeverityBreakdown


def clamp(n: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, n))


def _finite(x: Optional[float]) -> Optional[float]:
    # NaN은 "값 없음"으로 취급
    if x is None or (isinstance(x, float) and math.isnan(x)):
        return None
    return x


def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def bucket_impact(exposure_usd: Optional[float], safety_critical: Optional[bool]) -> int:
    if safety_critical:
        return 30
    x = _finite(exposure_usd)
    x = 0 if x is None else x
    if x <= 250:
        return 5
    if x <= 1500:
        return 15
    if x <= 5000:
        return 20
    if x <= 15000:
        return 25
    return 30


def bucket_likelihood(probability_pct: Optional[float]) -> int:
    p = _finite(probability_pct)
    p = 0 if p is None else p
    if p >= 85:
        return 25
    if p >= 60:
        return 18
    if p >= 35:
        return 10
    return 5


def bucket_time_sensitivity(time_window_hours: Optional[float]) -> int:
    h = _finite(time_window_hours)
    h = 9999 if h is None else h
    if h <= 24 * 7:
        return 20
    if h <= 24 * 30:
        return 15
    if h <= 24 * 90:
        return 10
    return 5


def bucket_coverage_penalty(is_covered: Optional[bool], clarity: Optional[str] = "UNKNOWN") -> int:
    if is_covered is True:
        return 0
    if is_covered is False:
        return 15
    # 보장 여부 불명 (clarity와 무관하게 동일 감점)
    return 10


def bucket_mitigation(mitigation_level: Optional[str]) -> int:
    return MITIGATION_POINTS.get(mitigation_level or "NONE", 0)


def severity_for_total(total: int) -> Severity:
    """총점을 심각도 라벨로 변환합니다 (경계값 포함)."""
    if total >= CRITICAL_MIN_TOTAL:
        return "CRITICAL"
    if total >= WARNING_MIN_TOTAL:
        return "WARNING"
    return "INFO"


def compute_severity(ctx: ScoringContext) -> SeverityResult:
    """
    스코어링 컨텍스트로 심각도를 계산합니다.

    Args:
        ctx: 스코어링 컨텍스트

    Returns:
        심각도 라벨과 요인별 점수 내역
    """
    impact = bucket_impact(ctx.exposure_usd, ctx.safety_critical)
    likelihood = bucket_likelihood(ctx.probability_pct)
    time_sensitivity = bucket_time_sensitivity(ctx.time_window_hours)
    coverage_penalty = bucket_coverage_penalty(ctx.is_covered, ctx.coverage_clarity or "UNKNOWN")
    mitigation = bucket_mitigation(ctx.mitigation_level)

    total = int(clamp(impact + likelihood + time_sensitivity + coverage_penalty + mitigation, 0, 100))

    return SeverityResult(
        severity=severity_for_total(total),
        breakdown=SeverityBreakdown(
            impact=impact,
            likelihood=likelihood,
            time_sensitivity=time_sensitivity,
            coverage_penalty=coverage_penalty,
            mitigation=mitigation,
            total=total,
        ),
    )


def compute_confidence(
    probability_pct: Optional[float] = None,
    has_multiple_signals: bool = False,
    has_external_authoritative_signal: bool = False,
    signal_age_minutes: Optional[float] = None,
) -> int:
    """
    증거 신뢰도(0..100)를 계산합니다.

    Args:
        probability_pct: 모델 확률 (0..100)
        has_multiple_signals: 시그널 2개 이상 여부
        has_external_authoritative_signal: 권위 있는 외부 시그널 여부 (기상 예보, 보험 조회)
        signal_age_minutes: 최신 시그널 경과 시간 (분), None이면 오래된 것으로 간주

    Returns:
        신뢰도 점수
    """
    p = _finite(probability_pct)
    p = 0 if p is None else p
    score = 30

    # 확률 영향 (+0..40)
    score += round_half_up(clamp(p, 0, 100) / 100 * 40)

    if has_multiple_signals:
        score += 10
    if has_external_authoritative_signal:
        score += 10

    age = _finite(signal_age_minutes)
    age = 999999 if age is None else age
    if age <= 60:
        score += 10
    elif age <= 24 * 60:
        score += 5
    else:
        score -= 5

    return int(clamp(score, 0, 100))
