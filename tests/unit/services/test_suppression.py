"""
억제 규칙 매처 테스트
"""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from home_incidents.core.models import IncidentSuppressionRule
from home_incidents.services.suppression import SuppressionMatcher


@pytest.fixture
def matcher(repo, clock):
    return SuppressionMatcher(repo, clock=clock)


@pytest.fixture
def add_rule(repo, clock):
    """억제 규칙 추가 헬퍼"""
    async def _add(**fields):
        now = clock()
        rule = IncidentSuppressionRule(**{
            "scope": "PROPERTY",
            "reason": "MANUAL",
            "created_at": now,
            "updated_at": now,
            **fields,
        })
        return await repo.create_suppression_rule(rule)
    return _add


class TestSuppressionMatcher:
    """억제 판정 테스트"""

    @pytest.mark.asyncio
    async def test_no_rules(self, matcher):
        decision = await matcher.check("prop-1", "user-1", "FREEZE_RISK")

        assert decision.suppressed is False
        assert decision.rule_id is None

    @pytest.mark.asyncio
    async def test_property_scope(self, matcher, add_rule):
        """PROPERTY 규칙은 해당 프로퍼티에만 적용"""
        rule = await add_rule(property_id="prop-1", type_key="FREEZE_RISK", reason="TASK_EXISTS")

        hit = await matcher.check("prop-1", None, "FREEZE_RISK")
        miss = await matcher.check("prop-2", None, "FREEZE_RISK")

        assert hit.suppressed and hit.rule_id == rule.id and hit.reason == "TASK_EXISTS"
        assert not miss.suppressed

    @pytest.mark.asyncio
    async def test_user_scope_requires_user(self, matcher, add_rule):
        """USER 규칙은 소유자가 같을 때만 적용"""
        await add_rule(scope="USER", user_id="user-1", type_key="FREEZE_RISK", reason="SNOOZED")

        assert (await matcher.check("prop-9", "user-1", "FREEZE_RISK")).suppressed
        assert not (await matcher.check("prop-9", "user-2", "FREEZE_RISK")).suppressed
        assert not (await matcher.check("prop-9", None, "FREEZE_RISK")).suppressed

    @pytest.mark.asyncio
    async def test_global_scope(self, matcher, add_rule):
        await add_rule(scope="GLOBAL", type_key="FREEZE_RISK")

        assert (await matcher.check("any-prop", None, "FREEZE_RISK")).suppressed

    @pytest.mark.asyncio
    async def test_wildcard_type(self, matcher, add_rule):
        """type_key가 없으면 모든 타입에 적용"""
        await add_rule(property_id="prop-1", type_key=None)

        assert (await matcher.check("prop-1", None, "ROOF_LEAK")).suppressed
        assert (await matcher.check("prop-1", None, "FREEZE_RISK")).suppressed

    @pytest.mark.asyncio
    async def test_type_mismatch(self, matcher, add_rule):
        await add_rule(property_id="prop-1", type_key="COVERAGE_LAPSE")

        assert not (await matcher.check("prop-1", None, "FREEZE_RISK")).suppressed

    @pytest.mark.asyncio
    async def test_expiry(self, matcher, add_rule, clock):
        """만료 시각이 지나면 적용되지 않음 (만료 시각 당일 포함)"""
        await add_rule(property_id="prop-1", suppress_until=clock() + timedelta(hours=1))

        assert (await matcher.check("prop-1", None, "FREEZE_RISK")).suppressed
        clock.advance(hours=1)
        assert not (await matcher.check("prop-1", None, "FREEZE_RISK")).suppressed

    @pytest.mark.asyncio
    async def test_disabled_rule(self, matcher, add_rule):
        await add_rule(property_id="prop-1", is_enabled=False)

        assert not (await matcher.check("prop-1", None, "FREEZE_RISK")).suppressed

    @pytest.mark.asyncio
    async def test_most_recently_updated_wins(self, matcher, add_rule, clock):
        """여러 규칙이 일치하면 가장 최근 갱신된 규칙"""
        await add_rule(property_id="prop-1", reason="OLD")
        clock.advance(minutes=5)
        newer = await add_rule(property_id="prop-1", reason="NEW")

        decision = await matcher.check("prop-1", None, "FREEZE_RISK")

        assert decision.rule_id == newer.id
        assert decision.reason == "NEW"

    @pytest.mark.asyncio
    async def test_store_failure_is_not_suppressed(self, matcher, repo):
        """저장소 오류는 억제되지 않음으로 처리"""
        repo.find_active_suppression_rules = AsyncMock(side_effect=RuntimeError("db down"))

        decision = await matcher.check("prop-1", "user-1", "FREEZE_RISK")

        assert decision.suppressed is False
