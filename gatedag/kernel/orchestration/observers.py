"""Local observer manager.

Observers receive lifecycle events for reporting and auditing. They are
isolated from the pipeline: a failing or slow observer is logged and never
changes a stage or run outcome.
"""

from __future__ import annotations

import asyncio
import inspect
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

from gatedag.kernel.logging import get_logger
from gatedag.kernel.orchestration.events import Event

logger = get_logger(__name__)

ObserverFunc = Callable[[Event], None] | Callable[[Event], Awaitable[None]]

DEFAULT_OBSERVER_TIMEOUT = 5.0


class LocalObserverManager:
    """In-process observer registry with event-type filtering.

    Examples
    --------
    Example usage::

        manager = LocalObserverManager()
        manager.register(lambda e: print(e.log_message()), event_types=[StageCompleted])
        scheduler = StageScheduler(observer_manager=manager)
    """

    def __init__(self, observer_timeout: float = DEFAULT_OBSERVER_TIMEOUT) -> None:
        self._timeout = observer_timeout
        self._handlers: dict[str, ObserverFunc] = {}
        self._event_filters: dict[str, tuple[type[Event], ...] | None] = {}

    def register(
        self,
        handler: ObserverFunc,
        event_types: list[type[Event]] | None = None,
        observer_id: str | None = None,
    ) -> str:
        """Register *handler*; returns its id."""
        observer_id = observer_id or str(uuid.uuid4())
        self._handlers[observer_id] = handler
        self._event_filters[observer_id] = tuple(event_types) if event_types else None
        return observer_id

    def unregister(self, observer_id: str) -> bool:
        self._event_filters.pop(observer_id, None)
        return self._handlers.pop(observer_id, None) is not None

    def __len__(self) -> int:
        return len(self._handlers)

    async def anotify(self, event: Event) -> None:
        """Deliver *event* to every interested observer, in registration order."""
        for observer_id, handler in list(self._handlers.items()):
            wanted = self._event_filters.get(observer_id)
            if wanted is not None and not isinstance(event, wanted):
                continue
            try:
                async with asyncio.timeout(self._timeout):
                    await self._call(handler, event)
            except TimeoutError:
                logger.warning(
                    "Observer {observer} timed out on {event}",
                    observer=getattr(handler, "__name__", observer_id),
                    event=type(event).__name__,
                )
            except Exception as e:
                logger.warning(
                    "Observer {observer} failed on {event}: {error}",
                    observer=getattr(handler, "__name__", observer_id),
                    event=type(event).__name__,
                    error=e,
                )

    @staticmethod
    async def _call(handler: ObserverFunc, event: Event) -> Any:
        if inspect.iscoroutinefunction(handler):
            return await handler(event)
        result = handler(event)
        if inspect.isawaitable(result):
            return await result
        return result
