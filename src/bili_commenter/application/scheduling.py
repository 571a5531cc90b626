"""타이머 기반 재스케줄링 유틸리티.

폴링과 디바운스는 모두 "한 번에 하나의 대기 중인 타이머"를 소유하는
`SingleShotTimer` 위에서 동작합니다. 실제 시간 흐름은 `Scheduler`가 담당하므로
테스트에서는 수동으로 진행시키는 스케줄러로 바꿔 끼울 수 있습니다.
"""
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Protocol, override

from loguru import logger

AsyncCallback = Callable[[], Awaitable[None]]


class Cancellable(Protocol):
    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    """지연 후 비동기 콜백을 실행하는 스케줄러의 추상 인터페이스"""

    def call_later(self, delay: float, callback: AsyncCallback) -> Cancellable:
        ...


class AsyncioScheduler(Scheduler):
    """이벤트 루프의 `call_later`를 사용하는 스케줄러.

    핸들을 취소하면 아직 시작되지 않은 콜백만 취소됩니다.
    이미 실행 중인 콜백(진행 중인 원격 호출 포함)은 끝까지 실행됩니다.
    """

    def __init__(self) -> None:
        self._running: set[asyncio.Task[None]] = set()

    @override
    def call_later(self, delay: float, callback: AsyncCallback) -> Cancellable:
        loop = asyncio.get_running_loop()
        return loop.call_later(delay, self._spawn, callback)

    def _spawn(self, callback: AsyncCallback) -> None:
        task = asyncio.ensure_future(callback())
        self._running.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task[None]) -> None:
        self._running.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.opt(exception=exc).error("Scheduled callback raised an exception.")

    async def drain(self) -> None:
        """실행 중인 콜백이 모두 끝날 때까지 기다립니다."""
        if self._running:
            await asyncio.gather(*self._running, return_exceptions=True)


class SingleShotTimer:
    """최대 하나의 대기 타이머만 소유하는 타이머"""

    def __init__(self, scheduler: Scheduler, name: str):
        self._scheduler = scheduler
        self.name = name
        self._handle: Cancellable | None = None
        self._generation = 0

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def start(self, delay: float, callback: AsyncCallback) -> None:
        """기존 타이머를 취소하고 새 타이머를 등록합니다."""
        self.cancel()
        self._generation += 1
        generation = self._generation

        async def fire() -> None:
            if generation == self._generation:
                self._handle = None
            await callback()

        self._handle = self._scheduler.call_later(delay, fire)
        logger.trace(f"Timer '{self.name}' scheduled in {delay:.3f}s")

    def cancel(self) -> None:
        if self._handle is None:
            return
        self._handle.cancel()
        self._handle = None
        logger.trace(f"Timer '{self.name}' cancelled")
