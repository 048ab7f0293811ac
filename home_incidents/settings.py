# home_incidents/settings.py
from __future__ import annotations
from pydantic import BaseModel, Field

class StorageConfig(BaseModel):
    db_path: str = "/data/incidents.db"

class ScoringConfig(BaseModel):
    auto_activate_min_confidence: int = 45
    model_version: str = "severity-v1"

class ExecutionConfig(BaseModel):
    cooldown_hours: int = 72
    deep_link_base: str = "/dashboard/properties"

class NotificationConfig(BaseModel):
    lookback_hours: int = 72
    email_enabled: bool = False               # HA notify 서비스로 EMAIL 채널 발송
    ha_notify_service: str = "notify"         # 예: mobile_app_phone

class HAConfig(BaseModel):
    base_url: str = "http://supervisor/core"
    token: str = ""
    timeout_sec: int = 10

class Observability(BaseModel):
    http_port: int = 8099
    metrics_enabled: bool = True
    service_name: str = "home-incidents"
    build_version: str = "0.1.0"
    build_date: str = "2026-01-01"
    log_level: str = "INFO"

class Settings(BaseModel):
    # 하위 섹션 (기본값/팩토리로 누락 방지)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    ha: HAConfig = Field(default_factory=HAConfig)
    observability: Observability = Field(default_factory=Observability)
