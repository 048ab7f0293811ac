"""
Scoring context derivation for home incidents.

The evaluator derives its scoring inputs from the incident's ``details``
document, falling back to the newest signal's payload. The fallback
order and default for every field is declared once in
``CONTEXT_FIELD_SOURCES``.
"""

import math
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .models import Incident, IncidentSignal
from .scoring import ScoringContext

# 외부 권위 시그널 (기상 예보, 보험 조회)
AUTHORITATIVE_SIGNAL_TYPES = frozenset({"WEATHER_FORECAST", "COVERAGE_CHECK"})

SOURCE_DETAILS = "details"
SOURCE_LATEST_SIGNAL = "latest_signal"

COVERAGE_CLARITY_VALUES = ("CLEAR", "UNCLEAR", "UNKNOWN")
MITIGATION_LEVEL_VALUES = ("ACTIVE_PROTECTION", "SCHEDULED", "CONFIRMED", "PARTIAL", "NONE")


def _as_number(v: Any) -> Optional[float]:
    if isinstance(v, bool):
        return None
    if isinstance(v, (int, float)):
        return None if isinstance(v, float) and math.isnan(v) else float(v)
    return None


def _as_bool(v: Any) -> Optional[bool]:
    return v if isinstance(v, bool) else None


def _as_enum(values: Sequence[str]) -> Callable[[Any], Optional[str]]:
    def coerce(v: Any) -> Optional[str]:
        return v if isinstance(v, str) and v in values else None
    return coerce


# (문서 키, 컨텍스트 필드, 변환기, 조회 순서, 기본값)
CONTEXT_FIELD_SOURCES: List[Tuple[str, str, Callable[[Any], Any], Tuple[str, ...], Any]] = [
    ("exposureUsd", "exposure_usd", _as_number, (SOURCE_DETAILS, SOURCE_LATEST_SIGNAL), None),
    ("safetyCritical", "safety_critical", _as_bool, (SOURCE_DETAILS, SOURCE_LATEST_SIGNAL), None),
    ("timeWindowHours", "time_window_hours", _as_number, (SOURCE_DETAILS, SOURCE_LATEST_SIGNAL), None),
    ("probabilityPct", "probability_pct", _as_number, (SOURCE_DETAILS, SOURCE_LATEST_SIGNAL), None),
    ("isCovered", "is_covered", _as_bool, (SOURCE_DETAILS, SOURCE_LATEST_SIGNAL), None),
    ("coverageClarity", "coverage_clarity", _as_enum(COVERAGE_CLARITY_VALUES),
     (SOURCE_DETAILS, SOURCE_LATEST_SIGNAL), "UNKNOWN"),
    ("mitigationLevel", "mitigation_level", _as_enum(MITIGATION_LEVEL_VALUES),
     (SOURCE_DETAILS, SOURCE_LATEST_SIGNAL), None),
]


def resolve_field(key: str, coerce: Callable[[Any], Any], order: Sequence[str],
                  sources: Dict[str, Dict[str, Any]], default: Any = None) -> Any:
    """
    조회 순서대로 첫 번째 유효한 값을 반환합니다.

    Args:
        key: 문서 키 (camelCase)
        coerce: 값 변환기 (유효하지 않으면 None 반환)
        order: 소스 조회 순서
        sources: 소스 이름 → 문서
        default: 모든 소스에 값이 없을 때의 기본값

    Returns:
        해석된 값
    """
    for name in order:
        doc = sources.get(name) or {}
        if key in doc:
            value = coerce(doc[key])
            if value is not None:
                return value
    return default


def build_scoring_context(incident: Incident,
                          latest_signal: Optional[IncidentSignal],
                          has_actions: bool = False) -> ScoringContext:
    """
    인시던트와 최신 시그널로 스코어링 컨텍스트를 만듭니다.

    조치가 하나라도 있고 완화 수준이 없거나 NONE이면 SCHEDULED로 간주합니다.
    """
    sources = {
        SOURCE_DETAILS: incident.details or {},
        SOURCE_LATEST_SIGNAL: latest_signal.payload if latest_signal else {},
    }
    values = {
        field: resolve_field(key, coerce, order, sources, default)
        for key, field, coerce, order, default in CONTEXT_FIELD_SOURCES
    }

    # 명시적 NONE도 "완화 없음"이므로 동일하게 취급
    if values["mitigation_level"] in (None, "NONE"):
        values["mitigation_level"] = "SCHEDULED" if has_actions else "NONE"

    return ScoringContext(type_key=incident.type_key, **values)


def is_authoritative(signal: Optional[IncidentSignal]) -> bool:
    return signal is not None and signal.signal_type in AUTHORITATIVE_SIGNAL_TYPES
