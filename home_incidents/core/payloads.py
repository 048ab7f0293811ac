"""
Payload validation for home incidents.

Incident ``details`` and signal ``payload`` documents remain structured
dicts, but they are validated at the ingestion boundary against a tagged
schema table: a base schema for the scoring fields shared by every type,
plus optional per-type-key and per-signal-type schemas. Unknown keys fall
back to the base schema.
"""

import json
import math
from pathlib import Path
from typing import Any, Dict, Optional

from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError

from .errors import IncidentValidationError

SCHEMAS = json.loads((Path(__file__).parent / "payload_schemas.json").read_text(encoding="utf-8"))


def _validator_for(tagged: Dict[str, Any], tag: Optional[str]) -> Draft202012Validator:
    parts = [SCHEMAS["base"]]
    if tag and tag in tagged:
        parts.append(tagged[tag])
    return Draft202012Validator({"allOf": parts})


def _non_finite_path(value: Any, path: str) -> Optional[str]:
    if isinstance(value, float) and not math.isfinite(value):
        return path or "<root>"
    if isinstance(value, dict):
        items = ((f"{path}.{k}" if path else str(k), v) for k, v in value.items())
    elif isinstance(value, list):
        items = ((f"{path}.{i}" if path else str(i), v) for i, v in enumerate(value))
    else:
        return None
    for child_path, child in items:
        found = _non_finite_path(child, child_path)
        if found:
            return found
    return None


def ensure_finite(doc: Optional[Dict[str, Any]], what: str) -> None:
    """
    문서 안의 NaN/Infinity 값을 거부합니다 (JSON 응답으로 직렬화할 수 없음).

    Raises:
        IncidentValidationError: 유한하지 않은 숫자 포함
    """
    if doc is None:
        return
    path = _non_finite_path(doc, "")
    if path is not None:
        raise IncidentValidationError(f"Invalid {what}: non-finite number", details={"path": path})


def _validate(doc: Optional[Dict[str, Any]], validator: Draft202012Validator, what: str) -> None:
    if doc is None:
        return
    ensure_finite(doc, what)
    try:
        validator.validate(doc)
    except ValidationError as e:
        path = ".".join(str(p) for p in e.absolute_path) or "<root>"
        raise IncidentValidationError(
            f"Invalid {what}: {e.message}",
            details={"path": path},
        ) from e


def validate_details(type_key: str, details: Optional[Dict[str, Any]]) -> None:
    """
    인시던트 details 문서를 검증합니다.

    Args:
        type_key: 인시던트 타입 키 (타입별 스키마 선택)
        details: 검증할 문서

    Raises:
        IncidentValidationError: 스키마 위반
    """
    _validate(details, _validator_for(SCHEMAS["types"], type_key), f"details for {type_key}")


def validate_signal_payload(signal_type: str, payload: Optional[Dict[str, Any]]) -> None:
    """
    시그널 payload를 검증합니다 (평가기가 payload에서 점수 필드를 읽으므로 base 스키마 포함).

    Raises:
        IncidentValidationError: 스키마 위반
    """
    _validate(payload, _validator_for(SCHEMAS["signals"], signal_type), f"payload for signal {signal_type}")
