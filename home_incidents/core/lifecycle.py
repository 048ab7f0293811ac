"""
Incident lifecycle rules.

Pure helpers for status transitions: lifecycle timestamps, the manual
status patch, the auto-activation gate and input clamping.
"""

import math
from datetime import datetime
from typing import Any, Dict, Optional

from .errors import IncidentValidationError
from .models import INCIDENT_STATUSES, Severity

AUTO_ACTIVATE_MIN_CONFIDENCE = 45
AUTO_ACTIVATE_SEVERITIES = ("WARNING", "CRITICAL")

# 상태 → 기록할 생명주기 타임스탬프 필드
STATUS_TIMESTAMP_FIELDS = {
    "ACTIVE": "activated_at",
    "MITIGATED": "mitigated_at",
    "RESOLVED": "resolved_at",
    "EXPIRED": "expired_at",
    "SUPPRESSED": "suppressed_at",
}


def clamp_int(n: Optional[float], lo: int = 0, hi: int = 100) -> Optional[int]:
    """숫자를 반올림 후 [lo, hi] 범위로 제한합니다 (None과 NaN은 None, ±inf는 경계값)."""
    if n is None or math.isnan(n):
        return None
    if math.isinf(n):
        return hi if n > 0 else lo
    return int(max(lo, min(hi, round(n))))


def status_patch(status: str, now: datetime) -> Dict[str, Any]:
    """
    수동 상태 변경 시 적용할 필드 패치를 만듭니다.

    Args:
        status: 목표 상태
        now: 현재 시각

    Returns:
        인시던트 업데이트 패치

    Raises:
        IncidentValidationError: 알 수 없는 상태
    """
    if status not in INCIDENT_STATUSES:
        raise IncidentValidationError(f"Unknown incident status: {status!r}",
                                      details={"allowed": list(INCIDENT_STATUSES)})

    patch: Dict[str, Any] = {"status": status}
    field = STATUS_TIMESTAMP_FIELDS.get(status)
    if field:
        patch[field] = now

    # 억제 플래그를 상태와 일관되게 유지
    if status == "SUPPRESSED":
        patch["is_suppressed"] = True
    if status == "ACTIVE":
        patch.update({
            "is_suppressed": False,
            "suppressed_at": None,
            "suppression_reason": None,
            "suppression_rule_id": None,
        })
    return patch


def should_auto_activate(*, status: str, is_suppressed: bool, severity: Optional[Severity],
                         confidence: int, min_confidence: int = AUTO_ACTIVATE_MIN_CONFIDENCE) -> bool:
    """
    평가 직후 자동 활성화 여부를 판정합니다.

    억제되지 않았고, 신뢰도가 임계값 이상이며, 심각도가 WARNING/CRITICAL이고,
    이미 ACTIVE/ACTIONED가 아닐 때만 활성화합니다.
    """
    if is_suppressed:
        return False
    if confidence < min_confidence:
        return False
    if severity not in AUTO_ACTIVATE_SEVERITIES:
        return False
    return status not in ("ACTIVE", "ACTIONED")
