"""Event channel for engine notifications.

Components publish ExperimentEvent objects on an EventBus; subscribers are
delivered events in subscription order. A failing subscriber is logged and
does not affect the publisher or the other subscribers.
"""

import inspect
from collections import deque
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, Union

from pydantic import Field

from liftforge.experiments.enums import EventType
from liftforge.experiments.models import CamelModel, new_id, utcnow
from liftforge.observability.logging import get_logger

logger = get_logger(__name__)

EventHandler = Callable[["ExperimentEvent"], Union[None, Awaitable[None]]]


class ExperimentEvent(CamelModel):
    """A notification emitted by the engine.

    Attributes:
        id: Unique event identifier
        type: What happened
        experiment_id: Experiment the event concerns, if any
        payload: Event-specific data
        timestamp: When the event was published
    """

    id: str = Field(default_factory=lambda: new_id("evt"))
    type: EventType
    experiment_id: Optional[str] = None
    payload: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)


class EventBus:
    """In-process publish/subscribe channel.

    Example:
        >>> bus = EventBus()
        >>> bus.subscribe(lambda event: print(event.type), EventType.EARLY_WINNER_DETECTED)
        >>> await bus.publish(ExperimentEvent(type=EventType.EARLY_WINNER_DETECTED))
    """

    def __init__(self) -> None:
        """Initialize an empty bus."""
        self._subscribers: list[tuple[Optional[frozenset[EventType]], EventHandler]] = []

    def subscribe(self, handler: EventHandler, *event_types: EventType) -> None:
        """Register a handler.

        Args:
            handler: Sync or async callable receiving the event
            event_types: Types to receive; all types when omitted
        """
        types = frozenset(event_types) if event_types else None
        self._subscribers.append((types, handler))

    def unsubscribe(self, handler: EventHandler) -> None:
        """Remove every registration of a handler."""
        self._subscribers = [(t, h) for t, h in self._subscribers if h is not handler]

    async def publish(self, event: ExperimentEvent) -> None:
        """Deliver an event to every matching subscriber in order.

        Args:
            event: The event to deliver
        """
        logger.info(
            "event_published",
            event_type=event.type.value,
            experiment_id=event.experiment_id,
        )
        for types, handler in list(self._subscribers):
            if types is not None and event.type not in types:
                continue
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "event_handler_failed",
                    event_type=event.type.value,
                    handler=getattr(handler, "__name__", repr(handler)),
                )

    async def emit(
        self,
        event_type: EventType,
        experiment_id: Optional[str] = None,
        **payload: Any,
    ) -> ExperimentEvent:
        """Build and publish an event in one call."""
        event = ExperimentEvent(type=event_type, experiment_id=experiment_id, payload=payload)
        await self.publish(event)
        return event


class RecentEventLog:
    """Subscriber keeping the most recent events in memory."""

    def __init__(self, limit: int = 500) -> None:
        self._events: deque[ExperimentEvent] = deque(maxlen=limit)

    def __call__(self, event: ExperimentEvent) -> None:
        self._events.append(event)

    def recent(
        self,
        limit: Optional[int] = None,
        event_type: Optional[EventType] = None,
        experiment_id: Optional[str] = None,
    ) -> list[ExperimentEvent]:
        """Most recent events first, optionally filtered."""
        events = [
            e
            for e in reversed(self._events)
            if (event_type is None or e.type == event_type)
            and (experiment_id is None or e.experiment_id == experiment_id)
        ]
        return events[:limit] if limit is not None else events
