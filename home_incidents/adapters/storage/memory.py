"""
In-memory adapters for home incidents.

Dictionary-backed implementations of the repository, task and
notification ports. They keep the same uniqueness and ordering rules
as the SQLite adapters, so services can be exercised without a
database. Records are copied on the way in and out.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from home_incidents.common.clock import utcnow
from home_incidents.core.errors import IncidentValidationError, NotFoundError, StateConflictError
from home_incidents.core.models import (
    Incident,
    IncidentAcknowledgement,
    IncidentAction,
    IncidentEvent,
    IncidentScoreSnapshot,
    IncidentSignal,
    IncidentSuppressionRule,
    MaterializedEntity,
    Notification,
    NotificationDelivery,
    new_id,
)
from home_incidents.ports.tasks import TaskSpec
from .rows import check_columns


def _copy(model):
    return model.model_copy(deep=True)


def _newest_first(items: list, *keys: str) -> list:
    return sorted(items, key=lambda m: tuple(getattr(m, k) for k in keys) + (m.id,), reverse=True)


def _take(items: list, limit: Optional[int]) -> list:
    return items if limit is None else items[:limit]


class InMemoryIncidentStore:
    """메모리 기반 인시던트 저장소"""

    def __init__(self, clock=utcnow):
        self.clock = clock
        self.incidents: Dict[str, Incident] = {}
        self.signals: List[IncidentSignal] = []
        self.snapshots: List[IncidentScoreSnapshot] = []
        self.actions: Dict[str, IncidentAction] = {}
        self.acknowledgements: List[IncidentAcknowledgement] = []
        self.rules: List[IncidentSuppressionRule] = []
        self.events: List[IncidentEvent] = []

    async def init(self) -> None:
        return None

    async def ping(self) -> bool:
        return True

    # ---- incidents ----

    def _open_conflict(self, property_id: str, fingerprint: str, exclude_id: Optional[str] = None) -> bool:
        return any(
            i.property_id == property_id and i.fingerprint == fingerprint
            and i.is_open and i.id != exclude_id
            for i in self.incidents.values()
        )

    async def get_incident(self, incident_id: str) -> Optional[Incident]:
        incident = self.incidents.get(incident_id)
        return _copy(incident) if incident else None

    async def find_open_incident(self, property_id: str, fingerprint: str) -> Optional[Incident]:
        matches = [
            i for i in self.incidents.values()
            if i.property_id == property_id and i.fingerprint == fingerprint and i.is_open
        ]
        if not matches:
            return None
        return _copy(_newest_first(matches, "created_at")[0])

    async def insert_incident(self, incident: Incident) -> bool:
        if incident.is_open and self._open_conflict(incident.property_id, incident.fingerprint):
            return False
        self.incidents[incident.id] = _copy(incident)
        return True

    async def update_incident(self, incident_id: str, patch: Dict[str, Any]) -> Incident:
        current = self.incidents.get(incident_id)
        if current is None:
            raise NotFoundError(f"Incident not found: {incident_id}")
        patch = {**patch, "updated_at": self.clock()}
        check_columns(Incident, patch)

        updated = Incident.model_validate({**current.model_dump(), **patch})
        if updated.is_open and self._open_conflict(updated.property_id, updated.fingerprint, exclude_id=incident_id):
            raise StateConflictError(
                "Another open incident already exists for this fingerprint",
                details={"incident_id": incident_id},
            )
        self.incidents[incident_id] = updated
        return _copy(updated)

    async def list_incidents(self, property_id: str, *, status: Optional[str] = None,
                             include_suppressed: bool = False, limit: int = 30,
                             cursor: Optional[str] = None) -> List[Incident]:
        rows = [
            i for i in self.incidents.values()
            if i.property_id == property_id
            and (not status or i.status == status)
            and (include_suppressed or not i.is_suppressed)
        ]
        rows = _newest_first(rows, "created_at")

        if cursor:
            anchor = self.incidents.get(cursor)
            if anchor is None or anchor.property_id != property_id:
                raise IncidentValidationError(f"Invalid cursor: {cursor}")
            key = (anchor.created_at, anchor.id)
            rows = [i for i in rows if (i.created_at, i.id) < key]

        return [_copy(i) for i in _take(rows, limit)]

    # ---- signals / snapshots ----

    async def add_signals(self, signals: Sequence[IncidentSignal]) -> None:
        for s in signals:
            if s.incident_id not in self.incidents:
                raise NotFoundError(f"Incident not found: {s.incident_id}")
        self.signals.extend(_copy(s) for s in signals)

    async def list_signals(self, incident_id: str, limit: Optional[int] = None) -> List[IncidentSignal]:
        rows = [s for s in self.signals if s.incident_id == incident_id]
        return [_copy(s) for s in _take(_newest_first(rows, "observed_at", "created_at"), limit)]

    async def add_score_snapshot(self, snapshot: IncidentScoreSnapshot) -> None:
        self.snapshots.append(_copy(snapshot))

    async def list_score_snapshots(self, incident_id: str) -> List[IncidentScoreSnapshot]:
        rows = [s for s in self.snapshots if s.incident_id == incident_id]
        return [_copy(s) for s in _newest_first(rows, "created_at")]

    # ---- actions ----

    async def get_action(self, action_id: str) -> Optional[IncidentAction]:
        action = self.actions.get(action_id)
        return _copy(action) if action else None

    async def list_actions(self, incident_id: str, limit: Optional[int] = None) -> List[IncidentAction]:
        rows = [a for a in self.actions.values() if a.incident_id == incident_id]
        return [_copy(a) for a in _take(_newest_first(rows, "created_at"), limit)]

    async def create_actions(self, actions: Sequence[IncidentAction]) -> List[IncidentAction]:
        created = []
        for action in actions:
            if action.action_key is not None and any(
                a.incident_id == action.incident_id and a.action_key == action.action_key
                for a in self.actions.values()
            ):
                continue
            self.actions[action.id] = _copy(action)
            created.append(_copy(action))
        return created

    async def update_action(self, action_id: str, patch: Dict[str, Any],
                            expected_status: Optional[str] = None) -> Optional[IncidentAction]:
        current = self.actions.get(action_id)
        if current is None:
            raise NotFoundError(f"Incident action not found: {action_id}")
        if expected_status is not None and current.status != expected_status:
            return None
        patch = {**patch, "updated_at": self.clock()}
        check_columns(IncidentAction, patch)
        updated = IncidentAction.model_validate({**current.model_dump(), **patch})
        self.actions[action_id] = updated
        return _copy(updated)

    # ---- acknowledgements ----

    async def add_acknowledgement(self, ack: IncidentAcknowledgement) -> None:
        self.acknowledgements.append(_copy(ack))

    async def list_acknowledgements(self, incident_id: str,
                                    limit: Optional[int] = None) -> List[IncidentAcknowledgement]:
        rows = [a for a in self.acknowledgements if a.incident_id == incident_id]
        return [_copy(a) for a in _take(_newest_first(rows, "created_at"), limit)]

    # ---- suppression rules ----

    async def create_suppression_rule(self, rule: IncidentSuppressionRule) -> IncidentSuppressionRule:
        self.rules.append(_copy(rule))
        return _copy(rule)

    async def find_active_suppression_rules(self, *, property_id: str, user_id: Optional[str],
                                            type_key: str, now: datetime,
                                            limit: int = 20) -> List[IncidentSuppressionRule]:
        def in_scope(r: IncidentSuppressionRule) -> bool:
            if r.scope == "PROPERTY":
                return r.property_id == property_id
            if r.scope == "USER":
                return user_id is not None and r.user_id == user_id
            return r.scope == "GLOBAL"

        rows = [
            r for r in self.rules
            if r.is_active_at(now) and r.type_key in (None, type_key) and in_scope(r)
        ]
        return [_copy(r) for r in _newest_first(rows, "updated_at", "created_at")[:limit]]

    # ---- events ----

    async def append_event(self, event: IncidentEvent) -> None:
        self.events.append(_copy(event))

    async def list_events(self, incident_id: str, *, limit: Optional[int] = None,
                          event_type: Optional[str] = None) -> List[IncidentEvent]:
        rows = [
            e for e in self.events
            if e.incident_id == incident_id and (not event_type or e.type == event_type)
        ]
        return [_copy(e) for e in _take(_newest_first(rows, "created_at"), limit)]


class InMemoryTaskStore:
    """메모리 기반 유지보수 작업 저장소 ((property_id, action_key) 유일)"""

    ENTITY_TYPE = "PropertyMaintenanceTask"

    def __init__(self, deep_link_base: str = "/dashboard/properties"):
        self.deep_link_base = deep_link_base.rstrip("/")
        self.tasks: Dict[tuple, Dict[str, Any]] = {}
        self.create_calls = 0

    def _link(self, property_id: str, task_id: str) -> str:
        return f"{self.deep_link_base}/{property_id}/maintenance/tasks/{task_id}"

    async def find_or_create(self, spec: TaskSpec) -> MaterializedEntity:
        self.create_calls += 1
        key = (spec.property_id, spec.action_key)
        existing = self.tasks.get(key)
        if existing is not None:
            return MaterializedEntity(entity_type=self.ENTITY_TYPE, entity_id=existing["id"],
                                      action_url=self._link(spec.property_id, existing["id"]),
                                      created=False)
        task_id = new_id()
        self.tasks[key] = {"id": task_id, **spec.model_dump()}
        return MaterializedEntity(entity_type=self.ENTITY_TYPE, entity_id=task_id,
                                  action_url=self._link(spec.property_id, task_id), created=True)


class InMemoryNotificationStore:
    """메모리 기반 알림 저장소"""

    def __init__(self):
        self.notifications: List[Notification] = []
        self.deliveries: List[NotificationDelivery] = []

    async def create_notification(self, notification: Notification) -> Notification:
        self.notifications.append(_copy(notification))
        return _copy(notification)

    async def record_delivery(self, delivery: NotificationDelivery) -> None:
        self.deliveries.append(_copy(delivery))

    async def find_recent(self, *, user_id: str, type: str, entity_type: Optional[str],
                          entity_id: Optional[str], since: datetime,
                          limit: int = 25) -> List[Notification]:
        rows = [
            n for n in self.notifications
            if n.user_id == user_id and n.type == type
            and n.entity_type == entity_type and n.entity_id == entity_id
            and n.created_at >= since
        ]
        return [_copy(n) for n in _newest_first(rows, "created_at")[:limit]]

    async def list_deliveries(self, notification_id: str) -> List[NotificationDelivery]:
        return [_copy(d) for d in self.deliveries if d.notification_id == notification_id]
