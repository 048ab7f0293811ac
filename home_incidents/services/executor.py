"""
Action executor for home incidents.

Turns a PROPOSED action into a real maintenance task, marks the action
CREATED, moves the incident through ACTIONED into SUPPRESSED and
installs a property-scoped cooldown rule so the same condition stops
alerting.

Materialization is keyed by (property_id, action_key) and is idempotent,
so a retried call after a partial failure converges on the same task.
An action that is already CREATED is replayed: remaining steps are
completed and the existing link is returned. The PROPOSED → CREATED
flip is a conditional update, so of several concurrent executions only
one reports a creation; the others replay.
"""

import asyncio
import weakref
from datetime import timedelta
from typing import Any, Dict, Optional

from pydantic import BaseModel

from home_incidents.common.clock import Clock, utcnow
from home_incidents.core.errors import (
    IncidentValidationError,
    NotFoundError,
    StateConflictError,
    UnsupportedOperationError,
)
from home_incidents.core.models import (
    Incident,
    IncidentAction,
    IncidentSuppressionRule,
    MaterializedEntity,
)
from home_incidents.observability import metrics
from home_incidents.observability.logging_setup import get_logger
from home_incidents.ports.repository import IncidentRepositoryPort
from home_incidents.ports.tasks import TaskMaterializerPort, TaskSpec
from .events import EventLog
from .notifications import NotificationDispatcher

log = get_logger("incidents.executor")

SUPPORTED_ACTION_TYPES = ("TASK", "BOOKING")
DEFAULT_COOLDOWN_HOURS = 72

# 액션 타입 → 쿨다운 억제 사유
COOLDOWN_REASONS = {
    "TASK": "TASK_EXISTS",
    "BOOKING": "BOOKING_EXISTS",
}


class ExecutionResult(BaseModel):
    """액션 실행 결과"""
    incident: Incident
    action: IncidentAction
    entity: Optional[MaterializedEntity] = None
    did_create: bool = False


class Executor:
    """액션 실행기"""

    def __init__(self,
                 repo: IncidentRepositoryPort,
                 tasks: TaskMaterializerPort,
                 events: EventLog,
                 notifier: NotificationDispatcher,
                 clock: Clock = utcnow,
                 cooldown_hours: int = DEFAULT_COOLDOWN_HOURS):
        """
        초기화합니다.

        Args:
            repo: 인시던트 저장소
            tasks: 작업 구체화 어댑터
            events: 이벤트 로그
            notifier: 알림 발송기
            clock: 현재 시각 공급자
            cooldown_hours: 실행 후 억제 기간 (시간)
        """
        self.repo = repo
        self.tasks = tasks
        self.events = events
        self.notifier = notifier
        self.clock = clock
        self.cooldown_hours = cooldown_hours
        # 같은 인시던트의 실행은 프로세스 내에서 직렬화
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    async def execute_action(self, incident_id: str, action_id: str, user_id: Optional[str]) -> ExecutionResult:
        """
        제안된 액션을 실행합니다.

        Args:
            incident_id: 인시던트 ID
            action_id: 액션 ID
            user_id: 실행한 사용자

        Returns:
            실행 결과

        Raises:
            NotFoundError: 인시던트 또는 액션 없음
            StateConflictError: 액션이 PROPOSED가 아니거나 인시던트가 억제됨
            UnsupportedOperationError: 지원하지 않는 액션 타입
            IncidentValidationError: payload에 actionKey 없음
        """
        async with self._lock_for(incident_id):
            return await self._execute(incident_id, action_id, user_id)

    def _lock_for(self, incident_id: str) -> asyncio.Lock:
        lock = self._locks.get(incident_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[incident_id] = lock
        return lock

    async def _execute(self, incident_id: str, action_id: str, user_id: Optional[str]) -> ExecutionResult:
        incident = await self.repo.get_incident(incident_id)
        if incident is None:
            raise NotFoundError(f"Incident not found: {incident_id}")

        action = await self.repo.get_action(action_id)
        if action is None or action.incident_id != incident_id:
            raise NotFoundError(f"Incident action not found: {action_id}",
                                details={"incident_id": incident_id})

        if action.status == "CREATED":
            return await self._replay(incident, action, user_id)

        if action.status != "PROPOSED":
            raise StateConflictError(
                f"Action must be PROPOSED to execute. Current status: {action.status}",
                details={"action_id": action_id, "status": action.status},
            )
        if incident.is_suppressed:
            raise StateConflictError("Incident is suppressed; cannot execute actions",
                                     details={"incident_id": incident_id})
        if action.type not in SUPPORTED_ACTION_TYPES:
            metrics.actions_executed.labels(action_type=action.type, outcome="unsupported").inc()
            raise UnsupportedOperationError(
                f"Unsupported action type: {action.type}",
                details={"supported": list(SUPPORTED_ACTION_TYPES)},
            )

        payload = action.payload or {}
        action_key = payload.get("actionKey") or action.action_key
        if not action_key:
            raise IncidentValidationError("Missing actionKey on action payload",
                                          details={"action_id": action_id})

        entity = await self.tasks.find_or_create(self._task_spec(incident, action, action_key, user_id))

        claimed = await self.repo.update_action(action.id, {
            "status": "CREATED",
            "entity_type": entity.entity_type,
            "entity_id": entity.entity_id,
            "cta_url": entity.action_url or action.cta_url,
        }, expected_status="PROPOSED")
        if claimed is None:
            # 다른 실행이 먼저 CREATED로 전환함
            return await self._replay(await self.repo.get_incident(incident_id),
                                      await self.repo.get_action(action_id), user_id)
        action = claimed
        incident = await self.repo.update_incident(incident.id, {"status": "ACTIONED"})
        await self.events.record(
            incident, "ACTION_CREATED",
            message=f"Action executed -> {entity.entity_type}:{entity.entity_id}",
            payload={"actionId": action.id, "actionKey": action_key, "entity": entity.model_dump()},
            user_id=user_id,
        )

        incident = await self._cooldown(incident, action, entity, user_id)
        metrics.actions_executed.labels(action_type=action.type, outcome="created").inc()
        log.info("액션 실행 완료", incident_id=incident.id, action_id=action.id,
                 action_key=action_key, entity_id=entity.entity_id, entity_created=entity.created)

        await self.notifier.notify_action_executed(incident, action, user_id)
        return ExecutionResult(incident=incident, action=action, entity=entity, did_create=True)

    async def _replay(self, incident: Incident, action: IncidentAction,
                      user_id: Optional[str]) -> ExecutionResult:
        entity = None
        if action.entity_id:
            entity = MaterializedEntity(entity_type=action.entity_type or "",
                                        entity_id=action.entity_id,
                                        action_url=action.cta_url)

        if not incident.is_suppressed:
            # 이전 실행이 구체화 이후 중단됨: 남은 단계를 완료
            if incident.status != "ACTIONED":
                incident = await self.repo.update_incident(incident.id, {"status": "ACTIONED"})
            incident = await self._cooldown(incident, action, entity, user_id)
            await self.notifier.notify_action_executed(incident, action, user_id)

        metrics.actions_executed.labels(action_type=action.type, outcome="replayed").inc()
        log.info("이미 실행된 액션 재요청", incident_id=incident.id, action_id=action.id)
        return ExecutionResult(incident=incident, action=action, entity=entity, did_create=False)

    def _task_spec(self, incident: Incident, action: IncidentAction,
                   action_key: str, user_id: Optional[str]) -> TaskSpec:
        payload = action.payload or {}
        return TaskSpec(
            property_id=incident.property_id,
            action_key=action_key,
            incident_id=incident.id,
            action_id=action.id,
            action_type=action.type,
            user_id=user_id or incident.user_id,
            title=payload.get("title") or incident.title,
            description=payload.get("description") or incident.summary,
            priority=payload.get("priority"),
            risk_level=payload.get("riskLevel"),
            category=payload.get("category") or incident.category,
            service_category=payload.get("serviceCategory"),
            source=payload.get("source"),
            extra={"typeKey": incident.type_key},
        )

    async def _cooldown(self, incident: Incident, action: IncidentAction,
                        entity: Optional[MaterializedEntity], user_id: Optional[str]) -> Incident:
        """쿨다운 억제 규칙을 설치하고 인시던트를 SUPPRESSED로 전환합니다."""
        now = self.clock()
        reason = COOLDOWN_REASONS.get(action.type, "TASK_EXISTS")
        rule = await self._ensure_cooldown_rule(incident, action, entity, reason)

        suppressed = await self.repo.update_incident(incident.id, {
            "status": "SUPPRESSED",
            "is_suppressed": True,
            "suppressed_at": now,
            "suppression_reason": reason,
            "suppression_rule_id": rule.id,
        })
        await self.events.record(
            suppressed, "SUPPRESSED",
            message="Incident suppressed after creating maintenance task",
            payload={"reason": reason, "ruleId": rule.id, "suppressUntil": rule.suppress_until.isoformat()},
            user_id=user_id,
        )
        return suppressed

    async def _ensure_cooldown_rule(self, incident: Incident, action: IncidentAction,
                                    entity: Optional[MaterializedEntity],
                                    reason: str) -> IncidentSuppressionRule:
        now = self.clock()
        active = await self.repo.find_active_suppression_rules(
            property_id=incident.property_id,
            user_id=None,
            type_key=incident.type_key,
            now=now,
        )
        for rule in active:
            if rule.scope == "PROPERTY" and (rule.params or {}).get("actionId") == action.id:
                return rule

        params: Dict[str, Any] = {
            "from": "incident_action_execute",
            "actionId": action.id,
            "actionType": action.type,
        }
        if entity is not None:
            params["entity"] = entity.model_dump()

        rule = await self.repo.create_suppression_rule(IncidentSuppressionRule(
            scope="PROPERTY",
            property_id=incident.property_id,
            type_key=incident.type_key,
            reason=reason,
            params=params,
            suppress_until=now + timedelta(hours=self.cooldown_hours),
            is_enabled=True,
            created_at=now,
            updated_at=now,
        ))
        log.info("쿨다운 억제 규칙 설치", incident_id=incident.id, rule_id=rule.id,
                 reason=reason, hours=self.cooldown_hours)
        return rule
