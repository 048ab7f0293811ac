"""
인시던트 수집 (fingerprint upsert) 테스트

중복 제거, 억제 우선순위, 생성 경쟁, 전체 평가/제안 파이프라인을 검증합니다.
"""

from datetime import timedelta

import pytest

from home_incidents.core.errors import IncidentValidationError
from home_incidents.core.models import IncidentSuppressionRule


class TestUpsertPipeline:
    """수집 후 평가/제안 파이프라인 테스트"""

    @pytest.mark.asyncio
    async def test_freeze_scenario(self, service, repo, channels, clock, make_incident, make_signal):
        """CRITICAL 동파 위험은 자동 활성화되고 두 조치가 제안됨"""
        detail = await service.upsert_incident(make_incident(), [make_signal()])
        incident = detail.incident

        assert incident.status == "ACTIVE"
        assert incident.severity == "CRITICAL"
        assert incident.severity_score == 73
        assert incident.confidence == 82
        assert incident.activated_at == clock()
        assert incident.opened_at == clock()
        assert incident.score_breakdown["total"] == 73

        assert len(detail.signals) == 1
        assert detail.signals[0].observed_at == clock()
        assert sorted(a.action_key for a in detail.actions) == [
            "FREEZE_RISK:PLUMBER_BOOKING", "FREEZE_RISK:WINTERIZE",
        ]
        assert all(a.status == "PROPOSED" for a in detail.actions)
        assert detail.decision_trace["outcome"] == "PROPOSED"

        assert len(repo.snapshots) == 1
        assert len(channels["IN_APP"].sent) == 1
        assert len(channels["EMAIL"].sent) == 1

        types = {e.type for e in repo.events}
        assert {"CREATED", "SEVERITY_COMPUTED", "STATUS_CHANGED", "ACTION_PROPOSED"} <= types

    @pytest.mark.asyncio
    async def test_info_incident_stays_evaluated(self, service, channels, make_incident):
        """INFO 인시던트는 EVALUATED에 머묾"""
        detail = await service.upsert_incident(make_incident(
            type_key="ROOF_LEAK",
            fingerprint="prop-1:ROOF_LEAK",
            details={"exposureUsd": 100, "isCovered": True, "probabilityPct": 10,
                     "mitigationLevel": "ACTIVE_PROTECTION"},
        ))

        assert detail.incident.status == "EVALUATED"
        assert detail.incident.severity == "INFO"
        assert detail.actions == []
        assert channels["IN_APP"].sent == []

    @pytest.mark.asyncio
    async def test_signal_confidence_is_clamped(self, service, make_incident, make_signal):
        detail = await service.upsert_incident(make_incident(), [make_signal(confidence=150)])

        assert detail.signals[0].confidence == 100

    @pytest.mark.asyncio
    async def test_non_finite_scores_are_clamped(self, service, make_incident, make_signal):
        """무한대/NaN 점수 입력은 오류 없이 제한"""
        detail = await service.upsert_incident(
            make_incident(severity_score=float("inf"), confidence=float("nan")),
            [make_signal(confidence=float("-inf"))],
        )

        assert detail.signals[0].confidence == 0
        assert 0 <= detail.incident.severity_score <= 100
        assert 0 <= detail.incident.confidence <= 100


class TestDeduplication:
    """fingerprint 중복 제거 테스트"""

    @pytest.mark.asyncio
    async def test_second_upsert_updates_in_place(self, service, repo, clock, make_incident, make_signal):
        """같은 fingerprint는 같은 인시던트를 갱신하고 opened_at 유지"""
        first = await service.upsert_incident(make_incident(), [make_signal()])
        opened = first.incident.opened_at
        clock.advance(hours=1)

        second = await service.upsert_incident(make_incident(title="Freeze risk, updated"))

        assert second.incident.id == first.incident.id
        assert second.incident.opened_at == opened
        assert second.incident.created_at == opened
        assert second.incident.title == "Freeze risk, updated"
        assert second.incident.activated_at == opened
        assert len(repo.incidents) == 1
        assert len(second.actions) == 2

        messages = [e.message for e in repo.events if e.type in ("CREATED", "STATUS_CHANGED")]
        assert "Incident created" in messages
        assert "Incident updated" in messages

    @pytest.mark.asyncio
    async def test_closed_incident_does_not_block(self, service, repo, clock, make_incident):
        """해결된 인시던트는 새 인시던트 생성을 막지 않음"""
        first = await service.upsert_incident(make_incident())
        await service.set_status(first.incident.id, "RESOLVED")
        clock.advance(hours=2)

        second = await service.upsert_incident(make_incident())

        assert second.incident.id != first.incident.id
        assert second.incident.opened_at == clock()
        assert len(repo.incidents) == 2

    @pytest.mark.asyncio
    async def test_losing_insert_race_updates_winner(self, service, repo, make_incident):
        """동시 생성 경쟁에서 지면 승자를 갱신"""
        original_insert = repo.insert_incident
        raced = []

        async def racing_insert(incident):
            if not raced:
                raced.append(True)
                rival = incident.model_copy(update={"id": "rival", "title": "Rival"})
                await original_insert(rival)
            return await original_insert(incident)

        repo.insert_incident = racing_insert

        detail = await service.upsert_incident(make_incident())

        assert detail.incident.id == "rival"
        assert detail.incident.title == "Freeze risk tonight"
        assert list(repo.incidents) == ["rival"]
        assert not any(e.type == "CREATED" for e in repo.events)

    @pytest.mark.asyncio
    async def test_other_property_is_separate(self, service, repo, make_incident):
        await service.upsert_incident(make_incident())
        await service.upsert_incident(make_incident(property_id="prop-2"))

        assert len(repo.incidents) == 2


class TestSuppressionOnIngest:
    """수집 시 억제 테스트"""

    @pytest.mark.asyncio
    async def test_rule_overrides_requested_status(self, service, repo, channels, clock, make_incident):
        """억제 규칙이 일치하면 요청 상태와 무관하게 SUPPRESSED"""
        now = clock()
        rule = await repo.create_suppression_rule(IncidentSuppressionRule(
            scope="PROPERTY",
            property_id="prop-1",
            type_key="FREEZE_RISK",
            reason="MANUAL_MUTE",
            suppress_until=now + timedelta(days=1),
            created_at=now,
            updated_at=now,
        ))

        detail = await service.upsert_incident(make_incident(status="ACTIVE"))
        incident = detail.incident

        assert incident.status == "SUPPRESSED"
        assert incident.is_suppressed is True
        assert incident.suppression_rule_id == rule.id
        assert incident.suppression_reason == "MANUAL_MUTE"
        assert incident.suppressed_at == now
        assert detail.actions == []
        assert detail.decision_trace is None
        assert channels["IN_APP"].sent == []

    @pytest.mark.asyncio
    async def test_suppressed_at_is_kept_while_suppressed(self, service, repo, clock, make_incident):
        now = clock()
        await repo.create_suppression_rule(IncidentSuppressionRule(
            scope="GLOBAL", reason="MAINTENANCE", created_at=now, updated_at=now,
        ))
        await service.upsert_incident(make_incident())
        clock.advance(minutes=30)

        detail = await service.upsert_incident(make_incident())

        assert detail.incident.suppressed_at == now


class TestIngestValidation:
    """수집 입력 검증 테스트"""

    @pytest.mark.asyncio
    async def test_invalid_details(self, service, repo, make_incident):
        with pytest.raises(IncidentValidationError):
            await service.upsert_incident(make_incident(details={"probabilityPct": 101}))

        assert repo.incidents == {}

    @pytest.mark.asyncio
    async def test_invalid_signal_payload(self, service, repo, make_incident, make_signal):
        with pytest.raises(IncidentValidationError):
            await service.upsert_incident(make_incident(), [make_signal(payload={"forecastHours": "soon"})])

        assert repo.incidents == {}

    @pytest.mark.asyncio
    async def test_non_finite_document_values(self, service, repo, make_incident, make_signal):
        """문서 안의 무한대 값과 무한대 score_hint는 검증 오류"""
        with pytest.raises(IncidentValidationError):
            await service.upsert_incident(make_incident(details={"minF": float("-inf")}))
        with pytest.raises(IncidentValidationError):
            await service.upsert_incident(make_incident(score_breakdown={"total": float("nan")}))
        with pytest.raises(IncidentValidationError):
            await service.upsert_incident(make_incident(), [make_signal(score_hint=float("inf"))])

        assert repo.incidents == {}

    @pytest.mark.asyncio
    async def test_missing_fingerprint(self, service, make_incident):
        data = make_incident()
        del data["fingerprint"]

        with pytest.raises(IncidentValidationError):
            await service.upsert_incident(data)
