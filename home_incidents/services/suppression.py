"""
Suppression matcher for home incidents.

Looks up the active suppression rules that cover a property, user and
incident type and reports the most recently updated one.
"""

from typing import Optional

from pydantic import BaseModel

from home_incidents.common.clock import Clock, utcnow
from home_incidents.observability.logging_setup import get_logger
from home_incidents.ports.repository import IncidentRepositoryPort

log = get_logger("incidents.suppression")


class SuppressionDecision(BaseModel):
    """억제 판정 결과"""
    suppressed: bool = False
    rule_id: Optional[str] = None
    reason: Optional[str] = None


NOT_SUPPRESSED = SuppressionDecision()


class SuppressionMatcher:
    """활성 억제 규칙 매처"""

    def __init__(self, repo: IncidentRepositoryPort, clock: Clock = utcnow):
        self.repo = repo
        self.clock = clock

    async def check(self, property_id: str, user_id: Optional[str], type_key: str) -> SuppressionDecision:
        """
        프로퍼티/사용자/타입에 적용되는 억제 규칙을 확인합니다.

        PROPERTY(해당 프로퍼티), USER(해당 사용자), GLOBAL 범위에서 타입이
        일치하거나 와일드카드인, 활성화되어 있고 만료되지 않은 규칙 중
        가장 최근에 갱신된 규칙을 사용합니다. 저장소 오류는 억제되지 않음으로
        처리합니다.

        Args:
            property_id: 프로퍼티 ID
            user_id: 소유자 ID (없으면 USER 규칙은 고려하지 않음)
            type_key: 인시던트 타입 키

        Returns:
            억제 판정
        """
        try:
            rules = await self.repo.find_active_suppression_rules(
                property_id=property_id,
                user_id=user_id,
                type_key=type_key,
                now=self.clock(),
            )
        except Exception as e:
            log.error("억제 규칙 조회 실패, 억제되지 않음으로 처리",
                      property_id=property_id, type_key=type_key, error=str(e))
            return NOT_SUPPRESSED

        if not rules:
            return NOT_SUPPRESSED

        top = rules[0]
        log.debug("억제 규칙 일치", property_id=property_id, type_key=type_key,
                  rule_id=top.id, scope=top.scope, reason=top.reason)
        return SuppressionDecision(suppressed=True, rule_id=top.id, reason=top.reason)
