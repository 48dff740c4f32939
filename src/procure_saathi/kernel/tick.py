"""
TickEngine - Periodic housekeeping orchestrator

The tick closes requirements whose bidding deadline has passed and reaps
expired role sessions. It is called periodically (or on demand from the CLI).

Fun fact: This is the "heartbeat" of the marketplace - nothing in it is
urgent, but everything drifts without it.
"""

from datetime import datetime
from typing import Callable

from procure_saathi.kernel.events import Event
from procure_saathi.kernel.ids import generate_id
from procure_saathi.kernel.logging import LogOperation, get_logger
from procure_saathi.kernel.time import TimeProvider

logger = get_logger(__name__)


class TickResult:
    """
    Result of a tick evaluation

    Contains all events the tick produced.
    """

    def __init__(self, tick_id: str, tick_at: datetime, triggered_events: list[Event]):
        self.tick_id = tick_id
        self.tick_at = tick_at
        self.triggered_events = triggered_events

    @property
    def closed_requirement_ids(self) -> list[str]:
        return [
            e.payload["requirement_id"]
            for e in self.triggered_events
            if e.event_type == "RequirementClosed"
        ]

    @property
    def expired_sessions(self) -> int:
        return sum(1 for e in self.triggered_events if e.event_type == "RoleSessionExpired")

    def summary(self) -> str:
        """Human-readable summary of tick result"""
        return " | ".join(
            [
                f"Tick {self.tick_id} at {self.tick_at.isoformat()}",
                f"Requirements closed: {len(self.closed_requirement_ids)}",
                f"Sessions expired: {self.expired_sessions}",
            ]
        )


class TickEngine:
    """
    Orchestrates periodic housekeeping

    The engine owns no state; the jobs it runs are callables that decide,
    append and publish their own events.
    """

    def __init__(
        self,
        time_provider: TimeProvider,
        jobs: list[tuple[str, Callable[[], list[Event]]]],
    ):
        self.time_provider = time_provider
        self.jobs = jobs

    def tick(self) -> TickResult:
        now = self.time_provider.now()
        tick_id = generate_id()
        triggered: list[Event] = []

        with LogOperation(logger, "tick_evaluation", tick_id=tick_id):
            for name, job in self.jobs:
                produced = job()
                logger.debug(
                    "Tick job finished",
                    tick_id=tick_id,
                    job=name,
                    events_count=len(produced),
                )
                triggered.extend(produced)

        result = TickResult(tick_id, now, triggered)
        logger.info(
            "Tick evaluation completed",
            tick_id=tick_id,
            closed_requirements=len(result.closed_requirement_ids),
            expired_sessions=result.expired_sessions,
        )
        return result
