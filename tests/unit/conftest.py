from __future__ import annotations

import inspect
from collections import defaultdict
from typing import Any, override

import pytest

from bili_commenter.application.operations import RemoteOperations
from bili_commenter.application.scheduling import AsyncCallback, Scheduler
from bili_commenter.domain.events import Event
from bili_commenter.domain.gateway import Gateway
from bili_commenter.infrastructure.message_bus import InMemoryMessageBus

# Fakes


class FakeGateway(Gateway):
    """작업별로 미리 정해 둔 응답을 순서대로 돌려주는 게이트웨이.

    마지막 응답은 계속 반복됩니다. 응답이 예외면 던지고, 호출 가능하면
    params로 호출한 결과(awaitable이면 await한 결과)를 돌려줍니다.
    """

    def __init__(self) -> None:
        self.responses: defaultdict[str, list[Any]] = defaultdict(list)
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.closed = False

    def script(self, operation: str, *results: Any) -> None:
        self.responses[operation].extend(results)

    def calls_to(self, operation: str) -> list[dict[str, Any]]:
        return [params for op, params in self.calls if op == operation]

    @override
    async def call(self, operation: str, params: dict[str, Any] | None = None) -> Any:
        self.calls.append((operation, params or {}))
        queue = self.responses.get(operation)
        if not queue:
            raise AssertionError(f"Unexpected gateway call: {operation}")
        result = queue.pop(0) if len(queue) > 1 else queue[0]

        if isinstance(result, Exception):
            raise result
        if callable(result):
            result = result(params or {})
            if inspect.isawaitable(result):
                result = await result
        return result

    @override
    async def aclose(self) -> None:
        self.closed = True


class ManualHandle:
    def __init__(self, delay: float, callback: AsyncCallback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler(Scheduler):
    """테스트가 직접 타이머를 하나씩 실행시키는 스케줄러"""

    def __init__(self) -> None:
        self.handles: list[ManualHandle] = []

    @override
    def call_later(self, delay: float, callback: AsyncCallback) -> ManualHandle:
        handle = ManualHandle(delay, callback)
        self.handles.append(handle)
        return handle

    @property
    def pending(self) -> list[ManualHandle]:
        return [h for h in self.handles if not h.cancelled and not h.fired]

    async def run_next(self) -> None:
        pending = self.pending
        assert pending, "No pending timer to run"
        handle = pending[0]
        handle.fired = True
        await handle.callback()


class RecordingBus(InMemoryMessageBus):
    """발행된 이벤트를 기록하는 메시지 버스"""

    def __init__(self) -> None:
        super().__init__()
        self.events: list[Event] = []

    @override
    async def handle(self, event: Event) -> None:
        self.events.append(event)
        await super().handle(event)

    def of_type[E: Event](self, event_type: type[E]) -> list[E]:
        return [e for e in self.events if isinstance(e, event_type)]


# Fixtures


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def operations(gateway: FakeGateway) -> RemoteOperations:
    return RemoteOperations(gateway)


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def bus() -> RecordingBus:
    return RecordingBus()
