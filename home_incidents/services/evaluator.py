"""
Incident evaluator.

Recomputes the score of an existing incident, stores an immutable score
snapshot, advances DETECTED to EVALUATED and applies the auto-activation
rule. Re-running it without new evidence yields the same score and no
further transition.
"""

from typing import Optional

from home_incidents.common.clock import Clock, utcnow
from home_incidents.core.context import build_scoring_context, is_authoritative
from home_incidents.core.lifecycle import AUTO_ACTIVATE_MIN_CONFIDENCE, should_auto_activate
from home_incidents.core.models import Incident, IncidentScoreSnapshot
from home_incidents.core.scoring import (
    SEVERITY_MODEL_VERSION,
    compute_confidence,
    compute_severity,
    round_half_up,
)
from home_incidents.observability import metrics
from home_incidents.observability.logging_setup import get_logger
from home_incidents.ports.repository import IncidentRepositoryPort
from .events import EventLog
from .notifications import NotificationDispatcher

log = get_logger("incidents.evaluator")

RECENT_SIGNALS = 10
RECENT_ACTIONS = 10


class Evaluator:
    """인시던트 평가기"""

    def __init__(self,
                 repo: IncidentRepositoryPort,
                 events: EventLog,
                 notifier: NotificationDispatcher,
                 clock: Clock = utcnow,
                 min_confidence: int = AUTO_ACTIVATE_MIN_CONFIDENCE,
                 model_version: str = SEVERITY_MODEL_VERSION):
        """
        초기화합니다.

        Args:
            repo: 인시던트 저장소
            events: 이벤트 로그
            notifier: 알림 발송기
            clock: 현재 시각 공급자
            min_confidence: 자동 활성화 최소 신뢰도
            model_version: 스냅샷에 기록할 모델 버전
        """
        self.repo = repo
        self.events = events
        self.notifier = notifier
        self.clock = clock
        self.min_confidence = min_confidence
        self.model_version = model_version

    async def evaluate(self, incident_id: str) -> Optional[Incident]:
        """
        인시던트를 평가합니다.

        Args:
            incident_id: 인시던트 ID

        Returns:
            평가 후 인시던트 (없으면 None)
        """
        with metrics.evaluation_seconds.time():
            return await self._evaluate(incident_id)

    async def _evaluate(self, incident_id: str) -> Optional[Incident]:
        incident = await self.repo.get_incident(incident_id)
        if incident is None:
            log.debug("평가 대상 인시던트 없음", incident_id=incident_id)
            return None

        signals = await self.repo.list_signals(incident_id, limit=RECENT_SIGNALS)
        actions = await self.repo.list_actions(incident_id, limit=RECENT_ACTIONS)
        latest = signals[0] if signals else None
        now = self.clock()

        age_minutes = None
        if latest is not None:
            age_minutes = max(0, round_half_up((now - latest.observed_at).total_seconds() / 60))

        ctx = build_scoring_context(incident, latest, has_actions=bool(actions))
        result = compute_severity(ctx)
        breakdown = result.breakdown.to_payload()
        confidence = compute_confidence(
            probability_pct=ctx.probability_pct,
            has_multiple_signals=len(signals) >= 2,
            has_external_authoritative_signal=is_authoritative(latest),
            signal_age_minutes=age_minutes,
        )

        await self.repo.add_score_snapshot(IncidentScoreSnapshot(
            incident_id=incident.id,
            severity=result.severity,
            severity_score=result.breakdown.total,
            confidence=confidence,
            breakdown=breakdown,
            model_version=self.model_version,
            created_at=now,
        ))

        updated = await self.repo.update_incident(incident.id, {
            "severity": result.severity,
            "severity_score": result.breakdown.total,
            "confidence": confidence,
            "score_breakdown": breakdown,
            # 평가는 DETECTED만 전진시키고 이후 상태는 되돌리지 않음
            "status": "EVALUATED" if incident.status == "DETECTED" else incident.status,
        })
        metrics.severity_computed.labels(severity=result.severity).inc()

        await self.events.record(
            updated, "SEVERITY_COMPUTED",
            message=f"Severity computed: {result.severity} ({result.breakdown.total})",
            payload={"breakdown": breakdown, "confidence": confidence, "modelVersion": self.model_version},
        )

        if not should_auto_activate(status=incident.status, is_suppressed=incident.is_suppressed,
                                    severity=result.severity, confidence=confidence,
                                    min_confidence=self.min_confidence):
            log.debug("평가 완료", incident_id=incident.id, severity=result.severity,
                      confidence=confidence, status=updated.status)
            return await self.repo.get_incident(incident.id)

        activated = await self.repo.update_incident(incident.id, {
            "status": "ACTIVE",
            "activated_at": incident.activated_at or now,
        })
        metrics.incidents_activated.labels(severity=result.severity).inc()
        log.info("인시던트 자동 활성화", incident_id=incident.id,
                 severity=result.severity, confidence=confidence)

        await self.notifier.notify_incident_activated(activated)
        await self.events.record(
            activated, "STATUS_CHANGED",
            message="Incident activated",
            payload={"from": incident.status, "to": "ACTIVE"},
        )
        return activated
