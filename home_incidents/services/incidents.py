"""
Incident service for home incidents.

Ingestion (fingerprint dedup upsert) and the user/automation operations
on existing incidents: signals, listing, detail view, status changes,
acknowledgements, manual actions, confirmations, suppression rules and
manual re-evaluation.

Upsert is the only way an incident comes into existence. At most one
open incident exists per (property_id, fingerprint); repeated ingestion
updates it in place and preserves ``opened_at``.
"""

from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import BaseModel

from home_incidents.common.clock import Clock, utcnow
from home_incidents.core.errors import IncidentValidationError, NotFoundError, StateConflictError
from home_incidents.core.inputs import (
    AcknowledgeInput,
    ActionInput,
    IncidentInput,
    ListIncidentsQuery,
    SignalInput,
    SuppressionRuleInput,
    parse_input,
)
from home_incidents.core.lifecycle import clamp_int, status_patch
from home_incidents.core.models import (
    Incident,
    IncidentAcknowledgement,
    IncidentAction,
    IncidentDetail,
    IncidentEvent,
    IncidentPage,
    IncidentSignal,
    IncidentSuppressionRule,
)
from home_incidents.core.payloads import ensure_finite, validate_details, validate_signal_payload
from home_incidents.observability import metrics
from home_incidents.observability.logging_setup import get_logger
from home_incidents.orchestrators.action_orchestrator import ActionOrchestrator, OrchestrationResult
from home_incidents.ports.repository import IncidentRepositoryPort
from .evaluator import Evaluator
from .events import EventLog
from .executor import ExecutionResult, Executor
from .suppression import SuppressionMatcher

log = get_logger("incidents.service")

DEFAULT_PAGE_SIZE = 30
MAX_PAGE_SIZE = 100
DETAIL_SIGNALS = 50
DETAIL_ACKNOWLEDGEMENTS = 20

ACK_EVENT_TYPES = {
    "ACKNOWLEDGED": "ACKNOWLEDGED",
    "DISMISSED": "DISMISSED",
    "SNOOZED": "SNOOZED",
}


class ReevaluationResult(BaseModel):
    """재평가 결과 (평가 + 오케스트레이션)"""
    incident: Incident
    orchestration: OrchestrationResult


class IncidentService:
    """인시던트 서비스"""

    def __init__(self,
                 repo: IncidentRepositoryPort,
                 matcher: SuppressionMatcher,
                 events: EventLog,
                 evaluator: Evaluator,
                 orchestrator: ActionOrchestrator,
                 executor: Executor,
                 clock: Clock = utcnow):
        """
        초기화합니다.

        Args:
            repo: 인시던트 저장소
            matcher: 억제 규칙 매처
            events: 이벤트 로그
            evaluator: 평가기
            orchestrator: 액션 오케스트레이터
            executor: 액션 실행기
            clock: 현재 시각 공급자
        """
        self.repo = repo
        self.matcher = matcher
        self.events = events
        self.evaluator = evaluator
        self.orchestrator = orchestrator
        self.executor = executor
        self.clock = clock

    # ---- ingestion ----

    async def upsert_incident(self,
                              data: Union[IncidentInput, Dict[str, Any]],
                              signals: Optional[Sequence[Union[SignalInput, Dict[str, Any]]]] = None) -> IncidentDetail:
        """
        fingerprint 기준으로 인시던트를 생성하거나 갱신합니다.

        억제 규칙이 일치하면 호출자가 지정한 상태와 관계없이 SUPPRESSED로
        저장합니다. 이후 평가기와 오케스트레이터를 순서대로 실행합니다.

        Args:
            data: 인시던트 입력
            signals: 함께 첨부할 시그널 목록

        Returns:
            하이드레이트된 인시던트

        Raises:
            IncidentValidationError: 입력 또는 페이로드 스키마 위반
        """
        with metrics.upsert_seconds.time():
            return await self._upsert(data, signals or [])

    async def _upsert(self, data, raw_signals) -> IncidentDetail:
        inp = parse_input(IncidentInput, data)
        signal_inputs = [parse_input(SignalInput, s) for s in raw_signals]
        validate_details(inp.type_key, inp.details)
        ensure_finite(inp.score_breakdown, "score_breakdown")
        for s in signal_inputs:
            validate_signal_payload(s.signal_type, s.payload)

        now = self.clock()
        sup = await self.matcher.check(inp.property_id, inp.user_id, inp.type_key)

        fields: Dict[str, Any] = {
            "property_id": inp.property_id,
            "user_id": inp.user_id,
            "source_type": inp.source_type,
            "type_key": inp.type_key,
            "category": inp.category,
            "title": inp.title,
            "summary": inp.summary,
            "details": inp.details,
            "severity": inp.severity,
            "severity_score": clamp_int(inp.severity_score),
            "score_breakdown": inp.score_breakdown,
            "confidence": clamp_int(inp.confidence),
            "fingerprint": inp.fingerprint,
            "recurrence_key": inp.recurrence_key,
            "dedupe_window_mins": inp.dedupe_window_mins,
            "status": "SUPPRESSED" if sup.suppressed else (inp.status or "DETECTED"),
            "is_suppressed": sup.suppressed,
            "suppression_rule_id": sup.rule_id if sup.suppressed else None,
            "suppression_reason": (sup.reason or "UNKNOWN") if sup.suppressed else None,
        }

        incident, created = await self._write_incident(fields, now)

        if signal_inputs:
            await self.repo.add_signals([self._signal(incident.id, s, now) for s in signal_inputs])

        outcome = "created" if created else "updated"
        metrics.incidents_ingested.labels(type_key=inp.type_key, outcome=outcome).inc()
        if sup.suppressed:
            metrics.incidents_suppressed_on_ingest.labels(type_key=inp.type_key).inc()
        log.info("인시던트 upsert", incident_id=incident.id, property_id=incident.property_id,
                 type_key=incident.type_key, outcome=outcome, status=incident.status,
                 suppressed=incident.is_suppressed, signals=len(signal_inputs))

        await self.events.record(
            incident, "CREATED" if created else "STATUS_CHANGED",
            message="Incident created" if created else "Incident updated",
            payload={"typeKey": incident.type_key, "status": incident.status,
                     "suppressed": incident.is_suppressed},
        )

        await self.evaluator.evaluate(incident.id)
        await self.orchestrator.orchestrate(incident.id)
        return await self.get_incident(incident.id)

    async def _write_incident(self, fields: Dict[str, Any], now) -> "tuple[Incident, bool]":
        for _ in range(2):
            existing = await self.repo.find_open_incident(fields["property_id"], fields["fingerprint"])
            if existing is not None:
                fields = {**fields, "suppressed_at": self._suppressed_at(existing, fields, now)}
                return await self.repo.update_incident(existing.id, fields), False

            incident = Incident(
                **fields,
                suppressed_at=now if fields["is_suppressed"] else None,
                opened_at=now,
                created_at=now,
                updated_at=now,
            )
            if await self.repo.insert_incident(incident):
                return incident, True
            # 동시 생성 경쟁에서 짐: 승자를 다시 조회하여 갱신
            log.info("동시 생성 감지, 기존 인시던트 갱신으로 전환",
                     property_id=fields["property_id"], fingerprint=fields["fingerprint"])

        raise StateConflictError("Could not create or update incident for fingerprint",
                                 details={"fingerprint": fields["fingerprint"]})

    @staticmethod
    def _suppressed_at(existing: Incident, fields: Dict[str, Any], now):
        if not fields["is_suppressed"]:
            return None
        return existing.suppressed_at if existing.is_suppressed and existing.suppressed_at else now

    def _signal(self, incident_id: str, s: SignalInput, now) -> IncidentSignal:
        return IncidentSignal(
            incident_id=incident_id,
            signal_type=s.signal_type,
            external_ref=s.external_ref,
            observed_at=s.observed_at or now,
            payload=s.payload,
            score_hint=s.score_hint,
            confidence=clamp_int(s.confidence),
            created_at=now,
        )

    # ---- reads ----

    async def _require(self, incident_id: str) -> Incident:
        incident = await self.repo.get_incident(incident_id)
        if incident is None:
            raise NotFoundError(f"Incident not found: {incident_id}")
        return incident

    async def get_incident(self, incident_id: str) -> IncidentDetail:
        """
        인시던트를 시그널/액션/응답과 함께 조회합니다.

        Raises:
            NotFoundError: 인시던트 없음
        """
        incident = await self._require(incident_id)
        proposed = await self.events.latest_event(incident_id, "ACTION_PROPOSED")
        trace = (proposed.payload or {}).get("decisionTrace") if proposed else None
        return IncidentDetail(
            incident=incident,
            signals=await self.repo.list_signals(incident_id, limit=DETAIL_SIGNALS),
            actions=await self.repo.list_actions(incident_id),
            acknowledgements=await self.repo.list_acknowledgements(incident_id, limit=DETAIL_ACKNOWLEDGEMENTS),
            decision_trace=trace,
        )

    async def get_incident_in_property(self, property_id: str, incident_id: str) -> IncidentDetail:
        """프로퍼티 소속을 확인하여 인시던트를 조회합니다 (다른 프로퍼티면 NotFound)."""
        await self.require_in_property(property_id, incident_id)
        return await self.get_incident(incident_id)

    async def require_in_property(self, property_id: str, incident_id: str) -> Incident:
        incident = await self.repo.get_incident(incident_id)
        if incident is None or incident.property_id != property_id:
            raise NotFoundError(f"Incident not found: {incident_id}",
                                details={"property_id": property_id})
        return incident

    async def list_incidents(self, query: Union[ListIncidentsQuery, Dict[str, Any]]) -> IncidentPage:
        """
        프로퍼티의 인시던트를 최신순으로 페이지 조회합니다.

        Args:
            query: 조회 조건 (limit은 1..100으로 제한, 기본 30)

        Returns:
            인시던트 페이지 (다음 페이지가 있으면 next_cursor)
        """
        q = parse_input(ListIncidentsQuery, query)
        limit = min(max(q.limit if q.limit is not None else DEFAULT_PAGE_SIZE, 1), MAX_PAGE_SIZE)
        items = await self.repo.list_incidents(
            q.property_id,
            status=q.status,
            include_suppressed=q.include_suppressed,
            limit=limit + 1,
            cursor=q.cursor,
        )
        has_more = len(items) > limit
        items = items[:limit]
        return IncidentPage(items=items, next_cursor=items[-1].id if has_more else None)

    async def list_events(self, incident_id: str, limit: Optional[int] = 100) -> List[IncidentEvent]:
        await self._require(incident_id)
        return await self.events.list_events(incident_id, limit=limit)

    # ---- mutations ----

    async def add_signal(self, incident_id: str,
                         data: Union[SignalInput, Dict[str, Any]]) -> IncidentSignal:
        """
        기존 인시던트에 시그널을 추가합니다.

        Raises:
            NotFoundError: 인시던트 없음
            IncidentValidationError: 입력 또는 페이로드 스키마 위반
        """
        s = parse_input(SignalInput, data)
        validate_signal_payload(s.signal_type, s.payload)
        incident = await self._require(incident_id)

        signal = self._signal(incident_id, s, self.clock())
        await self.repo.add_signals([signal])
        await self.events.record(
            incident, "SIGNAL_ADDED",
            message=f"Signal added: {signal.signal_type}",
            payload={"signalId": signal.id, "signalType": signal.signal_type,
                     "externalRef": signal.external_ref},
        )
        return signal

    async def set_status(self, incident_id: str, status: str, user_id: Optional[str] = None) -> Incident:
        """
        인시던트 상태를 수동으로 변경합니다.

        대상 상태의 생명주기 타임스탬프를 기록하고, SUPPRESSED는 억제 플래그를
        설정하며 ACTIVE는 억제 필드를 해제합니다.

        Raises:
            IncidentValidationError: 알 수 없는 상태
            NotFoundError: 인시던트 없음
        """
        patch = status_patch(status, self.clock())
        before = await self._require(incident_id)
        updated = await self.repo.update_incident(incident_id, patch)
        await self.events.record(
            updated, "STATUS_CHANGED",
            message=f"Status changed to {status}",
            payload={"from": before.status, "to": status},
            user_id=user_id,
        )
        return updated

    async def acknowledge(self, incident_id: str, user_id: str,
                          data: Union[AcknowledgeInput, Dict[str, Any]]) -> IncidentAcknowledgement:
        """
        사용자 응답을 기록합니다.

        SNOOZED는 snooze_until까지 해당 사용자/타입의 USER 억제 규칙을 만들고
        인시던트를 SUPPRESSED로 전환합니다.

        Args:
            incident_id: 인시던트 ID
            user_id: 응답한 사용자
            data: 응답 입력

        Returns:
            응답 레코드

        Raises:
            IncidentValidationError: 잘못된 입력 (SNOOZED에 snooze_until 누락 포함)
            NotFoundError: 인시던트 없음
        """
        inp = parse_input(AcknowledgeInput, data)
        if inp.type == "SNOOZED" and inp.snooze_until is None:
            raise IncidentValidationError("snooze_until is required for SNOOZED",
                                          details={"field": "snooze_until"})
        incident = await self._require(incident_id)
        now = self.clock()

        # 억제 규칙/인시던트 전환을 응답 기록보다 먼저 수행 (실패 시 응답이 남지 않음)
        rule = suppressed = None
        if inp.type == "SNOOZED":
            rule = await self._snooze_rule(incident, user_id, inp.snooze_until, now)
            suppressed = await self.repo.update_incident(incident_id, {
                "status": "SUPPRESSED",
                "is_suppressed": True,
                "suppressed_at": now,
                "suppression_reason": "SNOOZED",
                "suppression_rule_id": rule.id,
            })

        ack = IncidentAcknowledgement(
            incident_id=incident_id,
            user_id=user_id,
            type=inp.type,
            note=inp.note,
            snooze_until=inp.snooze_until,
            created_at=now,
        )
        await self.repo.add_acknowledgement(ack)
        await self.events.record(
            incident, ACK_EVENT_TYPES[inp.type],
            message=f"User {inp.type.lower()}",
            payload={"note": inp.note,
                     "snoozeUntil": inp.snooze_until.isoformat() if inp.snooze_until else None},
            user_id=user_id,
        )

        if suppressed is not None:
            await self.events.record(
                suppressed, "SUPPRESSED",
                message="Incident suppressed due to snooze",
                payload={"suppressUntil": inp.snooze_until.isoformat(), "ruleId": rule.id},
                user_id=user_id,
            )
            log.info("인시던트 스누즈", incident_id=incident_id, user_id=user_id,
                     until=inp.snooze_until.isoformat())

        return ack

    async def _snooze_rule(self, incident: Incident, user_id: str,
                           until, now) -> IncidentSuppressionRule:
        """같은 인시던트/기한의 스누즈 규칙이 이미 있으면 재사용합니다."""
        active = await self.repo.find_active_suppression_rules(
            property_id=incident.property_id,
            user_id=user_id,
            type_key=incident.type_key,
            now=now,
        )
        for rule in active:
            if (rule.scope == "USER" and rule.suppress_until == until
                    and (rule.params or {}).get("incidentId") == incident.id):
                return rule

        return await self.repo.create_suppression_rule(IncidentSuppressionRule(
            scope="USER",
            user_id=user_id,
            type_key=incident.type_key,
            reason="SNOOZED",
            params={"from": "incident_ack", "incidentId": incident.id},
            suppress_until=until,
            is_enabled=True,
            created_at=now,
            updated_at=now,
        ))

    async def create_action(self, incident_id: str,
                            data: Union[ActionInput, Dict[str, Any]]) -> IncidentAction:
        """
        수동 경로로 액션을 생성하고 인시던트를 ACTIONED로 전환합니다.

        Raises:
            NotFoundError: 인시던트 없음
            StateConflictError: 같은 actionKey의 액션이 이미 존재
        """
        inp = parse_input(ActionInput, data)
        ensure_finite(inp.payload, "action payload")
        incident = await self._require(incident_id)
        now = self.clock()

        action_key = (inp.payload or {}).get("actionKey") or None
        action = IncidentAction(
            incident_id=incident_id,
            type=inp.type,
            status=inp.status,
            action_key=action_key,
            payload=inp.payload,
            entity_type=inp.entity_type,
            entity_id=inp.entity_id,
            cta_label=inp.cta_label,
            cta_url=inp.cta_url,
            created_at=now,
            updated_at=now,
        )
        created = await self.repo.create_actions([action])
        if not created:
            raise StateConflictError(f"Action with actionKey {action_key!r} already exists",
                                     details={"incident_id": incident_id, "action_key": action_key})

        updated = await self.repo.update_incident(incident_id, {"status": "ACTIONED"})
        if incident.status != "ACTIONED":
            await self.events.record(
                updated, "STATUS_CHANGED",
                message="Incident actioned",
                payload={"from": incident.status, "to": "ACTIONED", "actionId": action.id},
            )
        return created[0]

    async def confirm_action(self, incident_id: str, action_id: str,
                             entity_type: Optional[str], entity_id: Optional[str],
                             user_id: Optional[str] = None) -> IncidentAction:
        """
        외부에서 생성된 엔티티를 액션에 연결합니다.

        Raises:
            IncidentValidationError: entity_type/entity_id 누락
            NotFoundError: 인시던트 또는 액션 없음
        """
        if not entity_type or not entity_id:
            raise IncidentValidationError("entity_type and entity_id are required",
                                          details={"fields": ["entity_type", "entity_id"]})
        await self._require(incident_id)
        action = await self.repo.get_action(action_id)
        if action is None or action.incident_id != incident_id:
            raise NotFoundError(f"Incident action not found: {action_id}",
                                details={"incident_id": incident_id})

        confirmed = await self.repo.update_action(action_id, {
            "status": "CREATED",
            "entity_type": entity_type,
            "entity_id": entity_id,
        })
        incident = await self.repo.update_incident(incident_id, {"status": "ACTIONED"})
        await self.events.record(
            incident, "ACTION_CONFIRMED",
            message=f"Action confirmed -> {entity_type}:{entity_id}",
            payload={"actionId": action_id, "entityType": entity_type, "entityId": entity_id},
            user_id=user_id,
        )
        return confirmed

    async def create_suppression_rule(self,
                                      data: Union[SuppressionRuleInput, Dict[str, Any]]) -> IncidentSuppressionRule:
        """
        억제 규칙을 생성합니다.

        Raises:
            IncidentValidationError: 범위에 필요한 대상 ID 누락
        """
        inp = parse_input(SuppressionRuleInput, data)
        if inp.scope == "PROPERTY" and not inp.property_id:
            raise IncidentValidationError("property_id is required for PROPERTY scope")
        if inp.scope == "USER" and not inp.user_id:
            raise IncidentValidationError("user_id is required for USER scope")

        now = self.clock()
        rule = await self.repo.create_suppression_rule(IncidentSuppressionRule(
            **inp.model_dump(),
            created_at=now,
            updated_at=now,
        ))
        log.info("억제 규칙 생성", rule_id=rule.id, scope=rule.scope,
                 type_key=rule.type_key, reason=rule.reason)
        return rule

    # ---- delegation ----

    async def execute_action(self, incident_id: str, action_id: str,
                             user_id: Optional[str]) -> ExecutionResult:
        return await self.executor.execute_action(incident_id, action_id, user_id)

    async def evaluate(self, incident_id: str) -> Incident:
        incident = await self.evaluator.evaluate(incident_id)
        if incident is None:
            raise NotFoundError(f"Incident not found: {incident_id}")
        return incident

    async def orchestrate(self, incident_id: str) -> OrchestrationResult:
        result = await self.orchestrator.orchestrate(incident_id)
        if result.incident is None:
            raise NotFoundError(f"Incident not found: {incident_id}")
        return result

    async def reevaluate(self, incident_id: str) -> ReevaluationResult:
        """평가 후 오케스트레이션을 수동으로 다시 실행합니다."""
        incident = await self.evaluate(incident_id)
        orchestration = await self.orchestrate(incident_id)
        return ReevaluationResult(incident=orchestration.incident or incident, orchestration=orchestration)
