"""
Typed failures for incident operations.

Each error carries the HTTP status class the boundary translates it to.
The score engine and suppression matcher never raise; event logging and
notifications are best effort and never surface errors to callers.
"""

from typing import Any, Dict, Optional


class IncidentError(Exception):
    """인시던트 처리 오류 베이스"""
    code = "INCIDENT_ERROR"
    http_status = 500

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message, "details": self.details}


class NotFoundError(IncidentError):
    """인시던트 또는 액션이 존재하지 않음"""
    code = "NOT_FOUND"
    http_status = 404


class IncidentValidationError(IncidentError):
    """잘못된 입력 (상태 값, 필수 필드, 날짜 형식, 페이로드 스키마)"""
    code = "VALIDATION_ERROR"
    http_status = 400


class StateConflictError(IncidentError):
    """현재 상태에서 허용되지 않는 전이"""
    code = "STATE_CONFLICT"
    http_status = 409


class UnsupportedOperationError(IncidentError):
    """실행기가 구체화할 수 없는 액션 타입"""
    code = "UNSUPPORTED_OPERATION"
    http_status = 422
