# home_incidents/main.py
import os, asyncio, signal
from dataclasses import dataclass, field
from typing import Dict, List, Optional
import uvicorn
from home_incidents.settings import Settings
from home_incidents.common.clock import Clock, utcnow
from home_incidents.observability.health import create_app
from home_incidents.observability.logging_setup import setup_logging_dev, get_logger
from home_incidents.adapters.storage import SQLiteIncidentStore, SQLiteTaskStore, SQLiteNotificationStore
from home_incidents.adapters.homeassistant import HomeAssistantNotifyChannel, LogChannel
from home_incidents.orchestrators import ActionOrchestrator
from home_incidents.ports import IncidentRepositoryPort, NotificationChannelPort, NotificationStorePort, TaskMaterializerPort
from home_incidents.services import EventLog, Evaluator, Executor, NotificationDispatcher, SuppressionMatcher
from home_incidents.services.incidents import IncidentService

def _b(name, default=False): return os.getenv(name, str(default)).lower() in ("1","true","yes","on")

def build_settings() -> Settings:
    s = Settings()
    # 저장소
    s.storage.db_path = os.getenv("DB_PATH", s.storage.db_path)

    # 스코어링 / 실행
    s.scoring.auto_activate_min_confidence = int(os.getenv("AUTO_ACTIVATE_MIN_CONFIDENCE", s.scoring.auto_activate_min_confidence))
    s.execution.cooldown_hours = int(os.getenv("COOLDOWN_HOURS", s.execution.cooldown_hours))
    s.execution.deep_link_base = os.getenv("DEEP_LINK_BASE", s.execution.deep_link_base)

    # 알림
    s.notifications.lookback_hours = int(os.getenv("NOTIFY_LOOKBACK_HOURS", s.notifications.lookback_hours))
    s.notifications.email_enabled = _b("EMAIL_ENABLED", s.notifications.email_enabled)
    s.notifications.ha_notify_service = os.getenv("HA_NOTIFY_SERVICE", s.notifications.ha_notify_service)

    # HA
    s.ha.base_url = os.getenv("HA_BASE_URL", s.ha.base_url)
    s.ha.token = os.getenv("HA_TOKEN", s.ha.token)

    # 관측성
    s.observability.metrics_enabled = _b("METRICS_ENABLED", s.observability.metrics_enabled)
    s.observability.http_port = int(os.getenv("HTTP_PORT", s.observability.http_port))
    s.observability.log_level = os.getenv("LOG_LEVEL", s.observability.log_level)

    return s

@dataclass
class Container:
    """프로세스 시작 시 한 번 구성되는 컴포넌트 묶음"""
    settings: Settings
    repo: IncidentRepositoryPort
    tasks: TaskMaterializerPort
    notification_store: NotificationStorePort
    channels: Dict[str, NotificationChannelPort]
    events: EventLog
    notifier: NotificationDispatcher
    matcher: SuppressionMatcher
    evaluator: Evaluator
    orchestrator: ActionOrchestrator
    executor: Executor
    service: IncidentService
    closers: List = field(default_factory=list)

    async def init(self) -> None:
        for store in (self.repo, self.tasks, self.notification_store):
            init = getattr(store, "init", None)
            if init is not None:
                await init()

    async def close(self) -> None:
        for close in self.closers:
            await close()

def build_container(s: Settings, *,
                    repo: Optional[IncidentRepositoryPort] = None,
                    tasks: Optional[TaskMaterializerPort] = None,
                    notification_store: Optional[NotificationStorePort] = None,
                    channels: Optional[Dict[str, NotificationChannelPort]] = None,
                    clock: Clock = utcnow) -> Container:
    """설정으로 저장소/서비스를 구성합니다 (테스트는 저장소를 주입)."""
    repo = repo or SQLiteIncidentStore(s.storage.db_path, clock=clock)
    tasks = tasks or SQLiteTaskStore(s.storage.db_path, s.execution.deep_link_base, clock=clock)
    notification_store = notification_store or SQLiteNotificationStore(s.storage.db_path)

    closers = []
    if channels is None:
        channels = {"IN_APP": LogChannel()}
        if s.notifications.email_enabled and s.ha.token:
            ha = HomeAssistantNotifyChannel(s.ha.base_url, s.ha.token,
                                            service=s.notifications.ha_notify_service,
                                            timeout=s.ha.timeout_sec)
            channels["EMAIL"] = ha
            closers.append(ha.close)

    events = EventLog(repo, clock=clock)
    notifier = NotificationDispatcher(notification_store, channels, clock=clock,
                                      lookback_hours=s.notifications.lookback_hours,
                                      deep_link_base=s.execution.deep_link_base)
    matcher = SuppressionMatcher(repo, clock=clock)
    evaluator = Evaluator(repo, events, notifier, clock=clock,
                          min_confidence=s.scoring.auto_activate_min_confidence,
                          model_version=s.scoring.model_version)
    orchestrator = ActionOrchestrator(repo, events, clock=clock)
    executor = Executor(repo, tasks, events, notifier, clock=clock,
                        cooldown_hours=s.execution.cooldown_hours)
    service = IncidentService(repo, matcher, events, evaluator, orchestrator, executor, clock=clock)

    return Container(settings=s, repo=repo, tasks=tasks, notification_store=notification_store,
                     channels=channels, events=events, notifier=notifier, matcher=matcher,
                     evaluator=evaluator, orchestrator=orchestrator, executor=executor,
                     service=service, closers=closers)

async def start_http(settings: Settings, container: Container) -> asyncio.Task:
    app = create_app(settings, container)
    return asyncio.create_task(uvicorn.Server(
        uvicorn.Config(app, host="0.0.0.0", port=settings.observability.http_port, log_level="info")
    ).serve())

async def main():
    s = build_settings()
    setup_logging_dev(s.observability.log_level)
    log = get_logger("incidents.main")
    log.info("설정 로드 완료", db_path=s.storage.db_path, http_port=s.observability.http_port)

    container = build_container(s)
    await container.init()
    log.info("저장소 초기화 완료")

    http_task = await start_http(s, container)
    log.info("HTTP 서버 시작됨")

    stop = asyncio.Future()
    try:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try: loop.add_signal_handler(sig, lambda: (not stop.done()) and stop.set_result(True))
            except NotImplementedError: pass
    except RuntimeError: pass

    await asyncio.wait([stop, http_task], return_when=asyncio.FIRST_COMPLETED)
    http_task.cancel()
    await container.close()
    log.info("종료")

def run():
    asyncio.run(main())

if __name__ == "__main__":
    run()
