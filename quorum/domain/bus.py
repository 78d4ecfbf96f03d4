"""In-process event bus with optional background dispatch."""

from __future__ import annotations

from collections import defaultdict
from concurrent.futures import Executor, Future
from typing import Any, Callable

from quorum.observability import get_logger

logger = get_logger(__name__)


class EventBus:
    """Publish/subscribe bus for domain events.

    Without an executor, handlers run synchronously in registration order.
    With one, each handler is submitted to it and ``publish`` returns
    immediately. Handler failures are logged and never reach the publisher.
    """

    def __init__(self, executor: Executor | None = None) -> None:
        self._subscribers: dict[type, list[Callable]] = defaultdict(list)
        self._executor = executor

    def subscribe(self, event_type: type, handler: Callable) -> None:
        self._subscribers[event_type].append(handler)

    def publish(self, event: Any) -> list[Future]:
        futures: list[Future] = []
        for handler in self._subscribers.get(type(event), []):
            if self._executor is None:
                self._run(handler, event)
            else:
                futures.append(self._executor.submit(self._run, handler, event))
        return futures

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)

    @staticmethod
    def _run(handler: Callable, event: Any) -> None:
        try:
            handler(event)
        except Exception:
            logger.exception(
                "event_handler_failed",
                handler=getattr(handler, "__qualname__", repr(handler)),
                event_type=type(event).__name__,
            )
