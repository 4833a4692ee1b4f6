"""
Event Emitter (outbound)

Called once per accepted transition. Delivery, retries and fan-out to
email/push belong to the notification subsystem; the core's obligation
ends when emit() returns.
"""
import logging
from typing import Callable, List

from ...models.domain import TransitionEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[TransitionEvent], None]


def log_event(event: TransitionEvent) -> None:
    """Default subscriber - writes every transition to the log."""
    from_status = event.from_status.value if event.from_status else "-"
    logger.info(
        f"Complaint {event.complaint_id} {event.event.value}: "
        f"{from_status} -> {event.to_status.value} by {event.actor_role.value} {event.actor_id}"
    )


class EventEmitter:
    """
    Synchronous in-process fan-out to subscribers.

    A failing subscriber is logged and skipped. The transition it
    reports has already been committed and stays successful.
    """

    def __init__(self, handlers: List[EventHandler] = None):
        self._handlers: List[EventHandler] = list(handlers) if handlers else [log_event]
        self.failures = 0

    def subscribe(self, handler: EventHandler) -> None:
        self._handlers.append(handler)

    def unsubscribe(self, handler: EventHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    def emit(self, event: TransitionEvent) -> None:
        for handler in list(self._handlers):
            try:
                handler(event)
            except Exception:
                self.failures += 1
                logger.exception(
                    f"Event handler {getattr(handler, '__name__', handler)!r} failed "
                    f"for complaint {event.complaint_id} ({event.event.value})"
                )


# Process-wide emitter used by the HTTP layer
default_emitter = EventEmitter()
