"""
Remediation recommendation table for home incidents.

This is the only per-type business logic of the action orchestrator.
Each recommender maps an incident severity to zero or more candidate
actions; every candidate carries a stable ``actionKey`` derived from the
rule itself, which anchors action idempotency. New incident types are
added with ``register_recommender`` without touching the orchestrator.
"""

from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from .models import Severity

ACTION_CENTER_SOURCE = "ACTION_CENTER"


class ActionRecommendation(BaseModel):
    """제안 후보 액션"""
    type: str
    action_key: str = Field(min_length=1)
    cta_label: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        # actionKey는 항상 payload에 포함 (실행기의 멱등 키)
        return {**self.payload, "actionKey": self.action_key}


Recommender = Callable[[Optional[Severity]], List[ActionRecommendation]]

RECOMMENDERS: Dict[str, Recommender] = {}


def register_recommender(type_key: str) -> Callable[[Recommender], Recommender]:
    """타입 키에 대한 추천 함수를 등록하는 데코레이터"""
    def decorator(fn: Recommender) -> Recommender:
        RECOMMENDERS[type_key] = fn
        return fn
    return decorator


def recommend_actions(type_key: str, severity: Optional[Severity] = None,
                      table: Optional[Dict[str, Recommender]] = None) -> List[ActionRecommendation]:
    """
    타입 키와 심각도로 후보 액션을 조회합니다.

    Args:
        type_key: 인시던트 타입 키
        severity: 현재 심각도
        table: 추천 테이블 (None이면 기본 레지스트리)

    Returns:
        후보 액션 목록 (알 수 없는 타입이면 빈 목록)
    """
    recommender = (table if table is not None else RECOMMENDERS).get(type_key)
    if recommender is None:
        return []
    return recommender(severity)


@register_recommender("FREEZE_RISK")
def _freeze_risk(severity: Optional[Severity]) -> List[ActionRecommendation]:
    critical = severity == "CRITICAL"
    common = {
        "source": ACTION_CENTER_SOURCE,
        "status": "PENDING",
        "priority": "URGENT" if critical else "HIGH",
        "riskLevel": "CRITICAL" if critical else "HIGH",
        "category": "PLUMBING",
        "serviceCategory": "PLUMBING",
    }
    return [
        ActionRecommendation(
            type="TASK",
            action_key="FREEZE_RISK:WINTERIZE",
            cta_label="Create urgent winterization task" if critical else "Add winterization task",
            payload={
                **common,
                "title": "Winterize exposed plumbing",
                "description": "Protect exposed pipes, outdoor faucets, and shutoff valves "
                               "before freezing temperatures.",
            },
        ),
        ActionRecommendation(
            type="BOOKING",
            action_key="FREEZE_RISK:PLUMBER_BOOKING",
            cta_label="Schedule a plumber",
            payload={
                **common,
                "title": "Book plumber for freeze protection",
                "description": "Schedule a plumber to winterize and inspect for "
                               "freeze-related vulnerabilities.",
            },
        ),
    ]


@register_recommender("COVERAGE_LAPSE")
def _coverage_lapse(severity: Optional[Severity]) -> List[ActionRecommendation]:
    return [
        ActionRecommendation(
            type="TASK",
            action_key="COVERAGE_LAPSE:RENEW",
            cta_label="Create renewal task",
            payload={
                "source": ACTION_CENTER_SOURCE,
                "status": "PENDING",
                "title": "Renew coverage",
                "description": "Renew homeowner coverage to avoid a lapse.",
                "priority": "URGENT",
                "riskLevel": "HIGH",
                "category": "INSURANCE",
            },
        ),
    ]
