"""
Event bus for domain events.

In-process pub/sub. Events are published only after the primary operation
(DB transaction + audit) has committed. With an executor, handlers run on its
worker threads and publish() returns immediately; without one they run in
the publisher's thread. Handler errors are logged but never propagate.
"""

import logging
from concurrent.futures import Executor
from typing import Callable, Dict, List

from core.events import CaseDeskEvent

logger = logging.getLogger(__name__)


class EventBus:
    """
    In-process event bus.

    Subscribe by event class name (string), publish by event instance.
    Handlers are dispatched in subscription order.
    """

    def __init__(self, executor: Executor | None = None):
        self._subscribers: Dict[str, List[Callable]] = {}
        self._executor = executor

    def subscribe(self, event_type: str, callback: Callable):
        """
        Subscribe to events of a specific type.

        Args:
            event_type: Name of event class to subscribe to (e.g. 'PaymentReceived')
            callback: Function to call when event is published
        """
        self._subscribers.setdefault(event_type, []).append(callback)

    def publish(self, event: CaseDeskEvent):
        """
        Publish an event to all subscribers of that type.

        A failing handler does not stop the remaining handlers.
        """
        event_type = event.__class__.__name__

        for callback in self._subscribers.get(event_type, []):
            if self._executor is None:
                self._dispatch(callback, event)
            else:
                self._executor.submit(self._dispatch, callback, event)

    @staticmethod
    def _dispatch(callback: Callable, event: CaseDeskEvent) -> None:
        try:
            callback(event)
        except Exception:
            logger.exception(
                "Handler %s failed for %s (event_id=%s)",
                getattr(callback, "__name__", repr(callback)),
                event.__class__.__name__,
                event.event_id,
            )
