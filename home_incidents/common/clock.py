"""
Time utilities for home incidents.

All timestamps handled by the core are timezone-aware UTC datetimes.
"""

from datetime import datetime, timezone
from typing import Callable, Optional

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """현재 UTC 시각을 반환합니다."""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    naive datetime을 UTC로 간주하여 aware datetime으로 변환합니다.

    Args:
        value: 변환할 datetime (None 허용)

    Returns:
        UTC aware datetime 또는 None
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_epoch(value: Optional[datetime]) -> Optional[float]:
    """datetime을 SQLite 저장용 epoch 초로 변환합니다."""
    if value is None:
        return None
    return ensure_utc(value).timestamp()


def from_epoch(value: Optional[float]) -> Optional[datetime]:
    """epoch 초를 UTC datetime으로 변환합니다."""
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)
