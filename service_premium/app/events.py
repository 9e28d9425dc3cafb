"""
Premium domain events and in-process notification.

Events are immutable records of premium state changes. The engine owns an
``EventNotifier`` and publishes to it after each successful mutation.
Delivery is sequential in registration order and completes before the
triggering operation returns. A listener that raises is logged and skipped;
it never aborts the operation or the remaining listeners.
"""

import inspect
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, ClassVar, Dict, List, Optional, Type, Union

from shared.logging import get_logger
from shared.metrics import MetricsCollector
from .models import utcnow


@dataclass(frozen=True, kw_only=True)
class PremiumEvent:
    """Base class for all premium events."""

    event_type: ClassVar[str] = "premiumEvent"
    occurred_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to a JSON-friendly dictionary."""
        data = {"event_type": self.event_type}
        for key, value in asdict(self).items():
            data[key] = value.isoformat() if isinstance(value, datetime) else value
        return data


@dataclass(frozen=True, kw_only=True)
class PremiumAdded(PremiumEvent):
    event_type: ClassVar[str] = "premiumAdded"
    entity_id: str
    expires_at: datetime
    activated_by: str


@dataclass(frozen=True, kw_only=True)
class PremiumRemoved(PremiumEvent):
    event_type: ClassVar[str] = "premiumRemoved"
    entity_id: str


@dataclass(frozen=True, kw_only=True)
class PremiumCodeCreated(PremiumEvent):
    event_type: ClassVar[str] = "premiumCodeCreated"
    code: str
    duration: int
    created_by: str


@dataclass(frozen=True, kw_only=True)
class PremiumCodeRedeemed(PremiumEvent):
    event_type: ClassVar[str] = "premiumCodeRedeemed"
    entity_id: str
    code: str
    redeemed_by: str


@dataclass(frozen=True, kw_only=True)
class PremiumExtended(PremiumEvent):
    event_type: ClassVar[str] = "premiumExtended"
    entity_id: str
    new_expires_at: datetime


EVENT_TYPES = (PremiumAdded, PremiumRemoved, PremiumCodeCreated, PremiumCodeRedeemed, PremiumExtended)

Listener = Callable[[Any], Union[None, Awaitable[None]]]


class EventNotifier:
    """Typed publish/subscribe for premium events."""

    def __init__(self, metrics: Optional[MetricsCollector] = None):
        self.logger = get_logger("premium.events")
        self.metrics = metrics
        self._listeners: Dict[Type[PremiumEvent], List[Listener]] = {}

    def subscribe(self, event_type: Type[PremiumEvent], listener: Listener) -> Listener:
        """
        Register ``listener`` for ``event_type``.

        Args:
            event_type: One of the premium event classes
            listener: Callable or coroutine function taking the event

        Returns:
            The listener, so this can be used as a decorator
        """
        if event_type not in EVENT_TYPES:
            raise TypeError(f"Unknown premium event type: {event_type!r}")
        self._listeners.setdefault(event_type, []).append(listener)
        self.logger.debug("Listener subscribed", event_type=event_type.event_type)
        return listener

    def unsubscribe(self, event_type: Type[PremiumEvent], listener: Listener) -> bool:
        """Remove a previously registered listener."""
        listeners = self._listeners.get(event_type, [])
        if listener in listeners:
            listeners.remove(listener)
            return True
        return False

    def listener_count(self, event_type: Type[PremiumEvent]) -> int:
        return len(self._listeners.get(event_type, []))

    async def publish(self, event: PremiumEvent) -> None:
        """Deliver ``event`` to its listeners in registration order."""
        if self.metrics:
            self.metrics.increment_counter("premium_events_total", event_type=event.event_type)

        # Copy so listeners may unsubscribe during delivery
        for listener in list(self._listeners.get(type(event), [])):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                self.logger.error(
                    "Event listener failed",
                    event_type=event.event_type,
                    listener=getattr(listener, "__qualname__", repr(listener)),
                    error=str(e),
                    exc_info=True,
                )
                if self.metrics:
                    self.metrics.increment_counter("premium_listener_errors_total", event_type=event.event_type)
