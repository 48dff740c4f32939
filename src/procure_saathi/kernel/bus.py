"""
In-process Event Bus

Simple synchronous pub/sub for fanning appended events out to projections.

Fun fact: This is the "observer" pattern - in production it could be
replaced with Kafka or NATS without changing the projections at all.
"""

from collections import defaultdict
from typing import Callable

from procure_saathi.kernel.events import Event
from procure_saathi.kernel.logging import get_logger

logger = get_logger(__name__)


EventHandler = Callable[[Event], None]


class InProcessBus:
    """
    Simple synchronous in-process bus

    Handlers subscribe by event type (or by stream type, for projections
    that care about a whole aggregate). Suitable for single-instance
    deployments.
    """

    def __init__(self) -> None:
        self._event_handlers: defaultdict[str, list[EventHandler]] = defaultdict(list)
        self._stream_handlers: defaultdict[str, list[EventHandler]] = defaultdict(list)

    def register_event_handler(self, event_type: str, handler: EventHandler) -> None:
        """
        Register an event handler (can have multiple per event type)

        Args:
            event_type: Type of event to handle (e.g., "BidSubmitted")
            handler: Function that processes event (typically updates a projection)
        """
        self._event_handlers[event_type].append(handler)
        logger.debug(
            "Event handler registered",
            event_type=event_type,
            total_handlers=len(self._event_handlers[event_type]),
        )

    def register_stream_handler(self, stream_type: str, handler: EventHandler) -> None:
        """Register a handler for every event of a stream type (e.g., "Requirement")"""
        self._stream_handlers[stream_type].append(handler)
        logger.debug("Stream handler registered", stream_type=stream_type)

    def publish_event(self, event: Event) -> None:
        """
        Publish an event to all registered handlers

        Handler errors propagate: a projection that cannot apply an
        event is a bug, not something to paper over.
        """
        handlers = (
            self._stream_handlers.get(event.stream_type, [])
            + self._event_handlers.get(event.event_type, [])
        )
        for handler in handlers:
            handler(event)

    def publish_events(self, events: list[Event]) -> None:
        """Publish multiple events in order"""
        for event in events:
            self.publish_event(event)
