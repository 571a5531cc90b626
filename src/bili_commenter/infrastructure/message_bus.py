from __future__ import annotations

import inspect
from collections import defaultdict
from typing import Awaitable, Callable, override

from loguru import logger

from bili_commenter.domain.events import Event
from bili_commenter.domain.message_bus import Handler, MessageBus


class FunctionHandler(Handler):
    """함수를 핸들러 프로토콜에 맞게 감싸는 어댑터"""

    def __init__(self, handler_func: Callable[[Event], Awaitable[None] | None]):
        self._handler_func = handler_func

    @override
    async def handle(self, event: Event) -> None:
        result = self._handler_func(event)
        if inspect.isawaitable(result):
            await result


class InMemoryMessageBus(MessageBus):
    """인메모리 메시지 버스 구현체"""

    def __init__(self):
        self._event_handlers: defaultdict[type[Event], list[Handler]] = defaultdict(
            list
        )

    @override
    def subscribe_to_event(self, event: type[Event], handler: Handler) -> None:
        self._event_handlers[event].append(handler)

    @override
    async def handle(self, event: Event) -> None:
        if not isinstance(event, Event):
            raise TypeError(f"Message must be an Event, not {type(event).__name__}")
        handlers = self._event_handlers[type(event)]
        if not handlers:
            logger.trace(f"No subscriber for {type(event).__name__}")
        for handler in handlers:
            await handler.handle(event)
