"""
테스트 설정 및 픽스처

이 모듈은 pytest 설정과 공통 픽스처를 제공합니다.
"""

import os
import tempfile
from datetime import datetime, timedelta, timezone

import pytest

from home_incidents.adapters.storage.memory import (
    InMemoryIncidentStore,
    InMemoryNotificationStore,
    InMemoryTaskStore,
)
from home_incidents.main import build_container
from home_incidents.settings import Settings


class FrozenClock:
    """테스트용 고정 시계 (advance로만 진행)"""

    def __init__(self, start: datetime = datetime(2025, 1, 10, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingChannel:
    """발송된 알림을 기록하는 채널"""

    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    async def send(self, notification) -> None:
        if self.fail:
            raise RuntimeError("channel down")
        self.sent.append(notification)


@pytest.fixture
def clock():
    """테스트용 고정 시계"""
    return FrozenClock()


@pytest.fixture
def repo(clock):
    """메모리 인시던트 저장소"""
    return InMemoryIncidentStore(clock=clock)


@pytest.fixture
def task_store():
    """메모리 작업 저장소"""
    return InMemoryTaskStore()


@pytest.fixture
def notification_store():
    """메모리 알림 저장소"""
    return InMemoryNotificationStore()


@pytest.fixture
def channels():
    """채널 이름 → 기록용 채널"""
    return {"IN_APP": RecordingChannel(), "EMAIL": RecordingChannel()}


@pytest.fixture
def sample_settings():
    """테스트용 설정"""
    settings = Settings()
    settings.observability.service_name = "test-service"
    settings.observability.build_version = "1.0.0"
    settings.observability.log_level = "INFO"
    return settings


@pytest.fixture
def container(sample_settings, repo, task_store, notification_store, channels, clock):
    """메모리 저장소로 구성된 컨테이너"""
    return build_container(
        sample_settings,
        repo=repo,
        tasks=task_store,
        notification_store=notification_store,
        channels=channels,
        clock=clock,
    )


@pytest.fixture
def service(container):
    """인시던트 서비스"""
    return container.service


@pytest.fixture
def temp_db_path():
    """임시 데이터베이스 파일 경로"""
    with tempfile.NamedTemporaryFile(suffix='.db', delete=False) as f:
        temp_path = f.name
    yield temp_path
    # 테스트 후 파일 정리
    for suffix in ("", "-wal", "-shm"):
        if os.path.exists(temp_path + suffix):
            os.unlink(temp_path + suffix)


def freeze_risk_input(**overrides):
    """CRITICAL로 평가되는 동파 위험 인시던트 입력"""
    data = {
        "property_id": "prop-1",
        "user_id": "user-1",
        "source_type": "WEATHER",
        "type_key": "FREEZE_RISK",
        "category": "PLUMBING",
        "title": "Freeze risk tonight",
        "summary": "Temperatures drop below 20F",
        "details": {
            "exposureUsd": 5000,
            "safetyCritical": False,
            "probabilityPct": 80,
            "timeWindowHours": 36,
            "isCovered": False,
            "minF": 18,
        },
        "fingerprint": "prop-1:FREEZE_RISK:2025-01-10",
    }
    data.update(overrides)
    return data


def forecast_signal(**overrides):
    """기상 예보 시그널 입력"""
    data = {
        "signal_type": "WEATHER_FORECAST",
        "external_ref": "nws:forecast:1",
        "payload": {"minF": 18, "forecastHours": 36, "provider": "nws"},
    }
    data.update(overrides)
    return data


# pytest 설정
def pytest_configure(config):
    """pytest 설정"""
    config.addinivalue_line(
        "markers", "slow: 느린 테스트 마커"
    )
    config.addinivalue_line(
        "markers", "integration: 통합 테스트 마커"
    )


def pytest_collection_modifyitems(config, items):
    """테스트 아이템 수정"""
    for item in items:
        # 통합 테스트 마커 추가
        if "integration" in item.name:
            item.add_marker(pytest.mark.integration)


@pytest.fixture
def make_incident():
    """인시던트 입력 생성기"""
    return freeze_risk_input


@pytest.fixture
def make_signal():
    """시그널 입력 생성기"""
    return forecast_signal
