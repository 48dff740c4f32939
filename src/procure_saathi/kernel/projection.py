"""
Projection base - in-memory read models folded from the event log

Projections are the "present" computed from the "history". Each one tracks
the last version it applied per stream, so replaying an event it has
already seen is a no-op. That lets the façade re-synchronise a stream from
the store at any time without double counting.
"""

import threading
from typing import Callable

from procure_saathi.kernel.events import Event


class StreamProjection:
    """
    Base class for projections

    Subclasses map event types to apply methods in ``handlers()``. All
    reads and writes go through ``self._lock`` so request threads never
    see a half-applied multi-event batch.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self.stream_versions: dict[str, int] = {}

    def handlers(self) -> dict[str, Callable[[Event], None]]:
        raise NotImplementedError

    def apply_event(self, event: Event) -> bool:
        """
        Apply event to update projection

        Returns:
            True if applied, False if the event was already seen or is not
            one this projection cares about
        """
        handler = self.handlers().get(event.event_type)
        if handler is None:
            return False

        with self._lock:
            if event.version <= self.stream_versions.get(event.stream_id, 0):
                return False
            handler(event)
            self.stream_versions[event.stream_id] = event.version
            return True

    def apply_events(self, events: list[Event]) -> None:
        with self._lock:
            for event in events:
                self.apply_event(event)

    def stream_version(self, stream_id: str) -> int:
        """Last applied version for a stream (0 if never seen)"""
        with self._lock:
            return self.stream_versions.get(stream_id, 0)
