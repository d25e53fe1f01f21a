"""In-process domain event bus"""

import logging
from collections import defaultdict
from typing import Callable, Dict, Iterable, List, Optional, Type

from lendsave.domain.events import DomainEvent
from lendsave.infrastructure.observability.metrics import event_handler_failure_counter

EventHandler = Callable[[DomainEvent], None]


class EventBus:
    """
    Synchronous publish/subscribe for committed domain events.

    Handlers run in registration order: type-specific handlers first, then
    catch-all handlers. A failing handler is logged and counted and does not
    stop the others; events are only published after their transaction
    committed, so there is nothing left to roll back.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self._handlers: Dict[str, List[EventHandler]] = defaultdict(list)
        self._catch_all: List[EventHandler] = []

    def subscribe(self, event_type: Type[DomainEvent], handler: EventHandler) -> None:
        self._handlers[event_type.event_type].append(handler)

    def subscribe_all(self, handler: EventHandler) -> None:
        self._catch_all.append(handler)

    def publish(self, events: Iterable[DomainEvent]) -> None:
        for event in events:
            for handler in [*self._handlers.get(event.event_type, []), *self._catch_all]:
                self._dispatch(handler, event)

    def _dispatch(self, handler: EventHandler, event: DomainEvent) -> None:
        try:
            handler(event)
        except Exception:
            handler_name = getattr(handler, "__qualname__", repr(handler))
            event_handler_failure_counter.labels(event_type=event.event_type).inc()
            self.logger.exception(
                "Event handler failed",
                extra={
                    "event_type": event.event_type,
                    "event_id": event.event_id,
                    "handler": handler_name,
                },
            )

    def clear(self) -> None:
        self._handlers.clear()
        self._catch_all.clear()
