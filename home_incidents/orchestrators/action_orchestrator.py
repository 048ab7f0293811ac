"""
Action orchestrator for home incidents.

Proposes remediation actions for user-relevant incidents (ACTIVE or
ACTIONED, not suppressed). Candidates come from the recommendation
table; any whose ``actionKey`` is already present on the incident are
skipped. Every run records a decision trace.

The orchestrator never moves an incident to ACTIONED: that transition
belongs to the executor, so ACTIONED always means a real entity exists.
"""

import asyncio
import weakref
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from home_incidents.common.clock import Clock, utcnow
from home_incidents.core.models import Incident, IncidentAction
from home_incidents.core.recommendations import Recommender, recommend_actions
from home_incidents.observability import metrics
from home_incidents.observability.logging_setup import get_logger
from home_incidents.ports.repository import IncidentRepositoryPort
from home_incidents.services.events import EventLog

log = get_logger("incidents.orchestrator")

ORCHESTRATED_STATUSES = ("ACTIVE", "ACTIONED")


class OrchestrationResult(BaseModel):
    """오케스트레이션 결과"""
    incident: Optional[Incident] = None
    actions: List[IncidentAction] = Field(default_factory=list)
    proposed: List[IncidentAction] = Field(default_factory=list)
    trace: Dict[str, Any] = Field(default_factory=dict)


class ActionOrchestrator:
    """멱등 액션 제안 오케스트레이터"""

    def __init__(self,
                 repo: IncidentRepositoryPort,
                 events: EventLog,
                 clock: Clock = utcnow,
                 recommenders: Optional[Dict[str, Recommender]] = None):
        """
        초기화합니다.

        Args:
            repo: 인시던트 저장소
            events: 이벤트 로그
            clock: 현재 시각 공급자
            recommenders: 추천 테이블 (None이면 기본 레지스트리)
        """
        self.repo = repo
        self.events = events
        self.clock = clock
        self.recommenders = recommenders
        # 인시던트별 직렬화 (저장소 유니크 제약과 함께 사용)
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, incident_id: str) -> asyncio.Lock:
        lock = self._locks.get(incident_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[incident_id] = lock
        return lock

    async def orchestrate(self, incident_id: str) -> OrchestrationResult:
        """
        인시던트에 대한 조치를 제안합니다.

        Args:
            incident_id: 인시던트 ID

        Returns:
            오케스트레이션 결과 (인시던트가 없으면 incident=None)
        """
        lock = self._lock_for(incident_id)
        async with lock:
            return await self._orchestrate(incident_id)

    async def _orchestrate(self, incident_id: str) -> OrchestrationResult:
        incident = await self.repo.get_incident(incident_id)
        if incident is None:
            return OrchestrationResult()

        existing = await self.repo.list_actions(incident_id)
        trace: Dict[str, Any] = {
            "typeKey": incident.type_key,
            "severity": incident.severity,
            "status": incident.status,
            "isSuppressed": incident.is_suppressed,
            "existingActionKeys": sorted({a.action_key for a in existing if a.action_key}),
            "considered": [],
            "skipped": [],
            "proposed": [],
        }

        if incident.is_suppressed:
            trace["outcome"] = "SKIPPED_SUPPRESSED"
            return self._noop(incident, existing, trace)
        if incident.status not in ORCHESTRATED_STATUSES:
            trace["outcome"] = "SKIPPED_STATUS"
            return self._noop(incident, existing, trace)

        candidates = recommend_actions(incident.type_key, incident.severity, self.recommenders)
        present = set(trace["existingActionKeys"])
        now = self.clock()

        fresh: List[IncidentAction] = []
        for rec in candidates:
            trace["considered"].append({"actionKey": rec.action_key, "type": rec.type})
            if rec.action_key in present:
                trace["skipped"].append({"actionKey": rec.action_key, "reason": "ALREADY_PROPOSED"})
                continue
            present.add(rec.action_key)
            fresh.append(IncidentAction(
                incident_id=incident.id,
                type=rec.type,
                status="PROPOSED",
                action_key=rec.action_key,
                payload=rec.to_payload(),
                cta_label=rec.cta_label,
                created_at=now,
                updated_at=now,
            ))

        if not fresh:
            trace["outcome"] = "NO_CANDIDATES" if not candidates else "ALL_ALREADY_PROPOSED"
            return self._noop(incident, existing, trace)

        created = await self.repo.create_actions(fresh)
        created_keys = {a.action_key for a in created}
        for action in fresh:
            if action.action_key not in created_keys:
                # 동시 실행에서 다른 호출이 먼저 생성함
                trace["skipped"].append({"actionKey": action.action_key, "reason": "CONCURRENTLY_PROPOSED"})
        trace["proposed"] = [{"actionKey": a.action_key, "actionId": a.id, "type": a.type} for a in created]

        if not created:
            trace["outcome"] = "ALL_ALREADY_PROPOSED"
            return self._noop(incident, await self.repo.list_actions(incident_id), trace)

        trace["outcome"] = "PROPOSED"
        metrics.actions_proposed.labels(type_key=incident.type_key).inc(len(created))
        log.info("액션 제안", incident_id=incident.id, type_key=incident.type_key,
                 proposed=[a.action_key for a in created],
                 skipped=[s["actionKey"] for s in trace["skipped"]])

        await self.events.record(
            incident, "ACTION_PROPOSED",
            message=f"Proposed {len(created)} actions",
            payload={"count": len(created), "typeKey": incident.type_key, "decisionTrace": trace},
        )

        return OrchestrationResult(
            incident=incident,
            actions=await self.repo.list_actions(incident_id),
            proposed=created,
            trace=trace,
        )

    def _noop(self, incident: Incident, actions: List[IncidentAction],
              trace: Dict[str, Any]) -> OrchestrationResult:
        log.info("액션 제안 없음", incident_id=incident.id, outcome=trace["outcome"],
                 skipped=[s["actionKey"] for s in trace["skipped"]])
        return OrchestrationResult(incident=incident, actions=actions, trace=trace)
