"""In-process event bus for domain events."""

import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DomainEvent:
    """Something that happened: a reconciliation, a transition, a drift run."""

    type: str
    actor: str = "cli"
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


Subscriber = Callable[[DomainEvent], object]


class EventBus:
    """Synchronous publish/subscribe with a bounded replay buffer.

    Subscriber failures are logged and never reach the publisher.
    """

    def __init__(self, buffer_size: int = 256):
        if buffer_size <= 0:
            raise ValueError("buffer_size must be > 0")
        self._buffer: deque[DomainEvent] = deque(maxlen=buffer_size)
        self._subscriptions: dict[int, tuple[Optional[str], Subscriber]] = {}
        self._next_token = 1

    def subscribe(self, event_type: Optional[str], callback: Subscriber) -> int:
        """Subscribe to one event type, or all events when ``event_type`` is None.

        Returns:
            Token for ``unsubscribe``
        """
        if not callable(callback):
            raise ValueError("callback must be callable")
        token = self._next_token
        self._next_token += 1
        self._subscriptions[token] = (event_type, callback)
        return token

    def unsubscribe(self, token: int) -> bool:
        return self._subscriptions.pop(token, None) is not None

    def publish(self, event: DomainEvent) -> None:
        self._buffer.append(event)
        for event_type, callback in list(self._subscriptions.values()):
            if event_type is not None and event_type != event.type:
                continue
            try:
                callback(event)
            except Exception as e:
                logger.warning(f"Subscriber failed for {event.type}: {e}")

    def emit(self, event_type: str, actor: str = "cli", **data: Any) -> DomainEvent:
        """Build and publish an event."""
        event = DomainEvent(type=event_type, actor=actor, data=data)
        self.publish(event)
        return event

    def replay(self, event_type: Optional[str] = None) -> list[DomainEvent]:
        """Buffered events, oldest first."""
        return [e for e in self._buffer if event_type is None or e.type == event_type]


def log_event(event: DomainEvent) -> None:
    """Subscriber that writes events to the log."""
    details = " ".join(f"{k}={v}" for k, v in sorted(event.data.items()))
    logger.info(f"[{event.type}] actor={event.actor} {details}".rstrip())
