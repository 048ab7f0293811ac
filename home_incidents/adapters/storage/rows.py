"""
Row mapping helpers for the SQLite adapters.

Datetimes are stored as epoch seconds (REAL), structured documents as
JSON text and booleans as 0/1 integers. Reading back relies on pydantic
to turn epoch numbers into UTC datetimes and 0/1 into booleans.
"""

import json
from datetime import datetime
from typing import Any, Dict, Iterable, Type, TypeVar

from pydantic import BaseModel

from home_incidents.common.clock import to_epoch

M = TypeVar("M", bound=BaseModel)

JSON_FIELDS = frozenset({"details", "score_breakdown", "payload", "breakdown", "params", "metadata", "extra"})


def to_db(value: Any) -> Any:
    """파이썬 값을 SQLite 컬럼 값으로 변환합니다."""
    if isinstance(value, datetime):
        return to_epoch(value)
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return value


def model_to_row(model: BaseModel) -> Dict[str, Any]:
    """모델을 컬럼 딕셔너리로 변환합니다."""
    return {k: to_db(v) for k, v in model.model_dump().items()}


def row_to_model(cls: Type[M], row: Any) -> M:
    """SQLite 행을 모델로 변환합니다."""
    data = dict(row)
    for key in JSON_FIELDS.intersection(data):
        if isinstance(data[key], str):
            data[key] = json.loads(data[key])
    return cls.model_validate(data)


def insert_sql(table: str, row: Dict[str, Any], *, or_ignore: bool = False) -> str:
    cols = ", ".join(row)
    marks = ", ".join("?" for _ in row)
    verb = "INSERT OR IGNORE" if or_ignore else "INSERT"
    return f"{verb} INTO {table} ({cols}) VALUES ({marks})"


def check_columns(cls: Type[BaseModel], keys: Iterable[str]) -> None:
    """패치 키가 모델 필드인지 확인합니다 (SQL 컬럼명으로 사용되므로)."""
    unknown = set(keys) - set(cls.model_fields)
    if unknown:
        raise ValueError(f"Unknown {cls.__name__} fields: {sorted(unknown)}")
