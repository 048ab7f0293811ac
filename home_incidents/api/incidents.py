"""
HTTP routes for home incidents.

Exposes the incident operations under ``/properties/{property_id}``.
Every incident-scoped route checks that the incident belongs to the
property in the path. The acting user is taken from the ``X-User-Id``
header. Typed incident errors map to their HTTP status through one
exception handler.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, FastAPI, Header, Query, Request
from fastapi.responses import JSONResponse

from home_incidents.core.errors import IncidentError, IncidentValidationError
from home_incidents.observability.logging_setup import get_logger
from home_incidents.services.incidents import IncidentService

log = get_logger("incidents.api")


def register_error_handlers(app: FastAPI) -> None:
    """인시던트 오류를 HTTP 응답으로 변환하는 핸들러를 등록합니다."""

    @app.exception_handler(IncidentError)
    async def incident_error_handler(request: Request, exc: IncidentError):
        log.info("요청 실패", path=request.url.path, code=exc.code, status=exc.http_status)
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        log.opt(exception=exc).error("처리되지 않은 오류", path=request.url.path)
        return JSONResponse(status_code=500, content={"error": "INTERNAL_ERROR", "message": "Internal server error"})


def create_incident_router(service: IncidentService) -> APIRouter:
    """인시던트 API 라우터를 생성합니다."""
    router = APIRouter(prefix="/properties/{property_id}", tags=["incidents"])

    def _user(header_user: Optional[str], body: Dict[str, Any]) -> Optional[str]:
        return body.get("user_id") or header_user

    def _require_user(header_user: Optional[str]) -> str:
        if not header_user:
            raise IncidentValidationError("X-User-Id header is required")
        return header_user

    @router.post("/incidents")
    async def upsert_incident(property_id: str,
                              payload: Dict[str, Any] = Body(default={}),
                              x_user_id: Optional[str] = Header(default=None)):
        """인시던트 upsert (본문의 signals 목록을 함께 첨부)"""
        body = dict(payload)
        signals = body.pop("signals", None) or []
        body["property_id"] = property_id
        body["user_id"] = _user(x_user_id, body)
        return await service.upsert_incident(body, signals)

    @router.get("/incidents")
    async def list_incidents(property_id: str,
                             status: Optional[str] = Query(default=None),
                             include_suppressed: bool = Query(default=False),
                             limit: Optional[int] = Query(default=None),
                             cursor: Optional[str] = Query(default=None)):
        return await service.list_incidents({
            "property_id": property_id,
            "status": status,
            "include_suppressed": include_suppressed,
            "limit": limit,
            "cursor": cursor,
        })

    @router.get("/incidents/{incident_id}")
    async def get_incident(property_id: str, incident_id: str):
        return await service.get_incident_in_property(property_id, incident_id)

    @router.get("/incidents/{incident_id}/events")
    async def list_events(property_id: str, incident_id: str,
                          limit: int = Query(default=100, ge=1, le=500)):
        await service.require_in_property(property_id, incident_id)
        return await service.list_events(incident_id, limit=limit)

    @router.post("/incidents/{incident_id}/signals")
    async def add_signal(property_id: str, incident_id: str,
                         payload: Dict[str, Any] = Body(default={})):
        await service.require_in_property(property_id, incident_id)
        return await service.add_signal(incident_id, payload)

    @router.post("/incidents/{incident_id}/status")
    async def set_status(property_id: str, incident_id: str,
                         payload: Dict[str, Any] = Body(default={}),
                         x_user_id: Optional[str] = Header(default=None)):
        await service.require_in_property(property_id, incident_id)
        status = payload.get("status")
        if not isinstance(status, str):
            raise IncidentValidationError("status is required")
        return await service.set_status(incident_id, status, user_id=x_user_id)

    @router.post("/incidents/{incident_id}/acknowledge")
    async def acknowledge(property_id: str, incident_id: str,
                          payload: Dict[str, Any] = Body(default={}),
                          x_user_id: Optional[str] = Header(default=None)):
        user_id = _require_user(x_user_id)
        await service.require_in_property(property_id, incident_id)
        return await service.acknowledge(incident_id, user_id, payload)

    @router.post("/incidents/{incident_id}/actions")
    async def create_action(property_id: str, incident_id: str,
                            payload: Dict[str, Any] = Body(default={})):
        await service.require_in_property(property_id, incident_id)
        return await service.create_action(incident_id, payload)

    @router.post("/incidents/{incident_id}/actions/{action_id}/execute")
    async def execute_action(property_id: str, incident_id: str, action_id: str,
                             x_user_id: Optional[str] = Header(default=None)):
        await service.require_in_property(property_id, incident_id)
        return await service.execute_action(incident_id, action_id, x_user_id)

    @router.post("/incidents/{incident_id}/actions/{action_id}/confirm")
    async def confirm_action(property_id: str, incident_id: str, action_id: str,
                             payload: Dict[str, Any] = Body(default={}),
                             x_user_id: Optional[str] = Header(default=None)):
        await service.require_in_property(property_id, incident_id)
        return await service.confirm_action(incident_id, action_id,
                                            payload.get("entity_type"), payload.get("entity_id"),
                                            user_id=x_user_id)

    @router.post("/incidents/{incident_id}/evaluate")
    async def evaluate(property_id: str, incident_id: str):
        await service.require_in_property(property_id, incident_id)
        return await service.evaluate(incident_id)

    @router.post("/incidents/{incident_id}/orchestrate")
    async def orchestrate(property_id: str, incident_id: str):
        await service.require_in_property(property_id, incident_id)
        return await service.orchestrate(incident_id)

    @router.post("/incidents/{incident_id}/reevaluate")
    async def reevaluate(property_id: str, incident_id: str):
        await service.require_in_property(property_id, incident_id)
        return await service.reevaluate(incident_id)

    @router.post("/suppression-rules")
    async def create_suppression_rule(property_id: str,
                                      payload: Dict[str, Any] = Body(default={}),
                                      x_user_id: Optional[str] = Header(default=None)):
        body = dict(payload)
        scope = body.get("scope", "PROPERTY")
        if scope == "PROPERTY":
            body["property_id"] = property_id
        elif scope == "USER":
            body.setdefault("user_id", x_user_id)
        return await service.create_suppression_rule(body)

    return router
