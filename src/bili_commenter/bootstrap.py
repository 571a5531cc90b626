from __future__ import annotations

from loguru import logger

from bili_commenter.application.batch import BatchCommentOrchestrator
from bili_commenter.application.login import LoginSession
from bili_commenter.application.login_polling import LoginPollDriver
from bili_commenter.application.operations import RemoteOperations
from bili_commenter.application.scheduling import AsyncioScheduler, Scheduler
from bili_commenter.application.search import SearchController
from bili_commenter.application.templates import TemplateRegistry
from bili_commenter.domain.gateway import Gateway
from bili_commenter.domain.message_bus import MessageBus
from bili_commenter.infrastructure.config import Settings
from bili_commenter.infrastructure.gateway import HttpGateway
from bili_commenter.infrastructure.message_bus import InMemoryMessageBus


class Application:
    """애플리케이션의 핵심 컴포넌트들을 관리하는 클래스"""

    def __init__(
        self,
        settings: Settings,
        gateway: Gateway,
        bus: MessageBus,
        login: LoginSession,
        login_poller: LoginPollDriver,
        comments: BatchCommentOrchestrator,
        search: SearchController,
        templates: TemplateRegistry,
    ):
        self.settings = settings
        self.gateway = gateway
        self.bus = bus
        self.login = login
        self.login_poller = login_poller
        self.comments = comments
        self.search = search
        self.templates = templates

    async def shutdown(self) -> None:
        """타이머를 모두 멈추고 게이트웨이를 닫습니다."""
        logger.info("Shutting down application components...")
        self.login_poller.stop()
        self.comments.stop_polling()
        self.search.cancel_debounce()
        await self.gateway.aclose()


def bootstrap(
    settings: Settings,
    gateway: Gateway | None = None,
    bus: MessageBus | None = None,
    scheduler: Scheduler | None = None,
) -> Application:
    """애플리케이션을 초기화하고 모든 컴포넌트를 설정합니다.

    Args:
        settings: 애플리케이션 설정
        gateway: 원격 작업 게이트웨이 (기본값: settings 기반 HttpGateway)
        bus: 메시지 버스 (기본값: InMemoryMessageBus)
        scheduler: 타이머 스케줄러 (기본값: AsyncioScheduler)

    Returns:
        초기화된 Application 객체
    """
    logger.info("애플리케이션 bootstrap 시작")

    # 1. 게이트웨이 및 메시지 버스 생성
    if gateway is None:
        gateway = HttpGateway(settings.backend_url, timeout=settings.request_timeout)
    bus = bus or InMemoryMessageBus()
    scheduler = scheduler or AsyncioScheduler()
    operations = RemoteOperations(gateway)
    logger.debug("Gateway 및 MessageBus 생성 완료")

    # 2. 컨트롤러 생성
    login = LoginSession(operations, bus)
    login_poller = LoginPollDriver(
        login, scheduler, interval=settings.login_poll_interval
    )
    comments = BatchCommentOrchestrator(
        operations,
        bus,
        scheduler,
        poll_interval=settings.batch_poll_interval,
        max_poll_failures=settings.batch_max_poll_failures,
    )
    search = SearchController(
        operations,
        bus,
        scheduler,
        page_size=settings.search_page_size,
        debounce_delay=settings.search_debounce,
    )
    templates = TemplateRegistry(operations, bus)
    logger.debug("컨트롤러 생성 완료")

    logger.info("애플리케이션 bootstrap 완료")

    return Application(
        settings=settings,
        gateway=gateway,
        bus=bus,
        login=login,
        login_poller=login_poller,
        comments=comments,
        search=search,
        templates=templates,
    )
