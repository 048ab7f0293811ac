"""
SQLite 저장소 기반 인시던트 흐름 통합 테스트

수집 → 평가 → 액션 제안 → 실행 → 쿨다운 억제까지 한 DB 파일에서 검증합니다.
"""

import asyncio

import pytest
import pytest_asyncio

from home_incidents.main import build_container
from home_incidents.services.executor import Executor
from home_incidents.settings import Settings


@pytest_asyncio.fixture
async def sqlite_container(temp_db_path, channels, clock):
    s = Settings()
    s.storage.db_path = temp_db_path
    container = build_container(s, channels=channels, clock=clock)
    await container.init()
    yield container
    await container.close()


class TestIncidentFlowSQLite:
    """SQLite 흐름 테스트"""

    @pytest.mark.asyncio
    async def test_ingest_evaluate_propose(self, sqlite_container, channels, make_incident, make_signal):
        """수집 후 자동 활성화와 액션 제안"""
        service = sqlite_container.service

        detail = await service.upsert_incident(make_incident(), [make_signal()])

        assert detail.incident.status == "ACTIVE"
        assert detail.incident.severity == "CRITICAL"
        assert detail.incident.severity_score == 73
        assert detail.incident.confidence == 82
        assert sorted(a.type for a in detail.actions) == ["BOOKING", "TASK"]
        assert len(detail.signals) == 1
        assert detail.decision_trace["outcome"] == "PROPOSED"
        assert len(channels["IN_APP"].sent) == 1

        snapshots = await sqlite_container.repo.list_score_snapshots(detail.incident.id)
        assert len(snapshots) == 1

    @pytest.mark.asyncio
    async def test_dedup_on_reingest(self, sqlite_container, clock, make_incident):
        service = sqlite_container.service
        first = await service.upsert_incident(make_incident())
        clock.advance(minutes=5)

        second = await service.upsert_incident(make_incident(title="Freeze risk update"))

        assert second.incident.id == first.incident.id
        assert second.incident.title == "Freeze risk update"
        assert second.incident.opened_at == first.incident.opened_at
        assert len(second.actions) == 2

    @pytest.mark.asyncio
    async def test_execute_then_cooldown(self, sqlite_container, clock, make_incident, make_signal):
        """실행 후 쿨다운 동안 재수집은 억제"""
        service = sqlite_container.service
        detail = await service.upsert_incident(make_incident(), [make_signal()])
        incident_id = detail.incident.id
        task = next(a for a in detail.actions if a.type == "TASK")

        first = await service.execute_action(incident_id, task.id, "user-1")
        replay = await service.execute_action(incident_id, task.id, "user-1")

        assert first.did_create is True
        assert first.incident.status == "SUPPRESSED"
        assert first.incident.suppression_reason == "TASK_EXISTS"
        assert replay.did_create is False
        assert replay.entity.entity_id == first.entity.entity_id
        assert await sqlite_container.tasks.get_count() == 1

        clock.advance(hours=1)
        again = await service.upsert_incident(make_incident(), [make_signal(external_ref="nws:forecast:2")])

        assert again.incident.id == incident_id
        assert again.incident.is_suppressed is True
        assert len(again.signals) == 2

        events = await service.list_events(incident_id)
        types = {e.type for e in events}
        assert {"CREATED", "SEVERITY_COMPUTED", "ACTION_PROPOSED", "ACTION_CREATED", "SUPPRESSED"} <= types

    @pytest.mark.asyncio
    async def test_concurrent_execute(self, sqlite_container, clock, make_incident, make_signal):
        """같은 액션 동시 실행: 생성 보고, 작업, 쿨다운 규칙, 감사 이벤트 모두 1건"""
        service = sqlite_container.service
        detail = await service.upsert_incident(make_incident(), [make_signal()])
        incident_id = detail.incident.id
        task = next(a for a in detail.actions if a.type == "TASK")

        results = await asyncio.gather(*[
            service.execute_action(incident_id, task.id, "user-1") for _ in range(3)
        ])

        assert [r.did_create for r in results].count(True) == 1
        assert await sqlite_container.tasks.get_count() == 1
        rules = await sqlite_container.repo.find_active_suppression_rules(
            property_id="prop-1", user_id=None, type_key="FREEZE_RISK", now=clock())
        assert len(rules) == 1
        events = await service.list_events(incident_id)
        assert [e.type for e in events].count("ACTION_CREATED") == 1

    @pytest.mark.asyncio
    async def test_concurrent_execute_across_executors(self, sqlite_container, clock,
                                                       make_incident, make_signal):
        """잠금을 공유하지 않는 실행기 사이에서도 CREATED 전환은 한 번"""
        c = sqlite_container
        detail = await c.service.upsert_incident(make_incident(), [make_signal()])
        task = next(a for a in detail.actions if a.type == "TASK")
        other = Executor(c.repo, c.tasks, c.events, c.notifier, clock=clock)

        results = await asyncio.gather(
            c.executor.execute_action(detail.incident.id, task.id, "user-1"),
            other.execute_action(detail.incident.id, task.id, "user-1"),
        )

        assert sorted(r.did_create for r in results) == [False, True]
        assert results[0].entity.entity_id == results[1].entity.entity_id
        events = await c.service.list_events(detail.incident.id)
        assert [e.type for e in events].count("ACTION_CREATED") == 1
