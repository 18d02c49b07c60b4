# SPDX-License-Identifier: Apache-2.0

"""
In-process domain event bus.

Components publish events after committing their state change; publishing
only enqueues. ``flush`` (or the optional background worker) delivers queued
events in FIFO order to subscribers registered for the event type or for
every event (``"*"``). Handlers may publish further events, which are
delivered in the same flush. Services call ``settle`` after publishing, which
leaves delivery to the worker whenever it is running.
"""

import logging
import threading
from collections import defaultdict, deque
from typing import Callable, Deque, Dict, Iterable, List, Optional, Type, Union

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from ..models.events import DomainEvent

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

EventHandler = Callable[[DomainEvent], None]
WILDCARD = "*"


class EventBus:
    """FIFO event queue with type-based subscriptions."""

    def __init__(self):
        self._queue: Deque[DomainEvent] = deque()
        self._queue_lock = threading.Lock()
        self._subscribers: Dict[str, List[EventHandler]] = defaultdict(list)
        self._subscribers_lock = threading.Lock()
        self._delivery_lock = threading.Lock()
        self._local = threading.local()
        self._wakeup = threading.Event()
        self._stop = threading.Event()
        self._worker: Optional[threading.Thread] = None

    def subscribe(self, event_type: Union[str, Type[DomainEvent]], handler: EventHandler) -> None:
        """Register handler for an event type (class or routing key) or ``"*"``."""
        key = event_type if isinstance(event_type, str) else event_type.event_type
        with self._subscribers_lock:
            self._subscribers[key].append(handler)

    def unsubscribe(self, event_type: Union[str, Type[DomainEvent]], handler: EventHandler) -> None:
        key = event_type if isinstance(event_type, str) else event_type.event_type
        with self._subscribers_lock:
            if handler in self._subscribers.get(key, []):
                self._subscribers[key].remove(handler)

    def publish(self, event: DomainEvent) -> None:
        """Enqueue an event for delivery."""
        with self._queue_lock:
            self._queue.append(event)
        self._wakeup.set()
        logger.debug(
            f"Event queued: {event.event_type}",
            extra={"extra_fields": {
                "event_type": event.event_type,
                "event_id": event.event_id,
                "aggregate_id": event.aggregate_id()
            }}
        )

    def publish_all(self, events: Iterable[DomainEvent]) -> None:
        for event in events:
            self.publish(event)

    def pending(self) -> int:
        with self._queue_lock:
            return len(self._queue)

    def flush(self) -> int:
        """
        Deliver queued events until the queue is empty.

        Only one thread delivers at a time. A call made while another thread
        is delivering returns immediately: that thread keeps draining, so it
        also delivers whatever the caller queued. Calls made from inside a
        handler return immediately for the same reason.

        Returns:
            Number of events delivered by this call
        """
        if getattr(self._local, "delivering", False):
            return 0

        delivered = 0
        while self._delivery_lock.acquire(blocking=False):
            self._local.delivering = True
            try:
                while True:
                    with self._queue_lock:
                        if not self._queue:
                            break
                        event = self._queue.popleft()
                    self._deliver(event)
                    delivered += 1
            finally:
                self._local.delivering = False
                self._delivery_lock.release()

            # An event queued by a caller that found the lock taken just
            # before the release must not be stranded.
            if not self.pending():
                break
        return delivered

    def settle(self) -> int:
        """
        Deliver queued events inline unless the background worker is running.

        Services call this after publishing. With the worker running,
        publishing only enqueues and callers never run subscriber code.
        """
        if self.worker_running:
            return 0
        return self.flush()

    @property
    def worker_running(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    def _handlers_for(self, event: DomainEvent) -> List[EventHandler]:
        with self._subscribers_lock:
            return list(self._subscribers.get(event.event_type, [])) + list(self._subscribers.get(WILDCARD, []))

    def _deliver(self, event: DomainEvent) -> None:
        with tracer.start_as_current_span("events.deliver") as span:
            handlers = self._handlers_for(event)
            span.set_attributes({
                "event.type": event.event_type,
                "event.id": event.event_id,
                "event.handlers": len(handlers)
            })

            for handler in handlers:
                try:
                    handler(event)
                except Exception as e:
                    span.record_exception(e)
                    span.set_status(Status(StatusCode.ERROR, str(e)))
                    logger.error(
                        "Event handler failed",
                        extra={"extra_fields": {
                            "event_type": event.event_type,
                            "event_id": event.event_id,
                            "handler": getattr(handler, "__qualname__", repr(handler)),
                            "error": str(e)
                        }},
                        exc_info=True
                    )

    def start_worker(self, poll_interval: float = 0.5) -> None:
        """Deliver events continuously on a daemon thread."""
        if self._worker is not None and self._worker.is_alive():
            return

        self._stop.clear()

        def run():
            while not self._stop.is_set():
                self._wakeup.wait(poll_interval)
                self._wakeup.clear()
                self.flush()
            self.flush()

        self._worker = threading.Thread(target=run, name="relief-event-bus", daemon=True)
        self._worker.start()
        logger.info("Event bus worker started")

    def stop_worker(self, timeout: float = 5.0) -> None:
        """Stop the worker after delivering what is queued."""
        if self._worker is None:
            return
        self._stop.set()
        self._wakeup.set()
        self._worker.join(timeout)
        self._worker = None
        logger.info("Event bus worker stopped")


class EventRecorder:
    """Subscriber keeping every delivered event, for audits and tests."""

    def __init__(self):
        self.events: List[DomainEvent] = []
        self._lock = threading.Lock()

    def __call__(self, event: DomainEvent) -> None:
        with self._lock:
            self.events.append(event)

    def of_type(self, event_class: Type[DomainEvent]) -> List[DomainEvent]:
        with self._lock:
            return [event for event in self.events if isinstance(event, event_class)]

    def clear(self) -> None:
        with self._lock:
            self.events.clear()
