"""
Tests for the projection base class, the in-process bus and the policy

Projections must tolerate replays: the façade re-synchronises a stream from
the store whenever it loses a race, so the same event can arrive twice.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError

from procure_saathi.kernel.bus import InProcessBus
from procure_saathi.kernel.events import Event
from procure_saathi.kernel.ids import SequentialIdFactory, generate_id
from procure_saathi.kernel.policy import MarketplacePolicy
from procure_saathi.kernel.projection import StreamProjection


class CountingProjection(StreamProjection):
    def __init__(self) -> None:
        super().__init__()
        self.seen: list[int] = []

    def handlers(self):
        return {"Counted": self._apply_counted}

    def _apply_counted(self, event: Event) -> None:
        self.seen.append(event.payload["n"])


def counted(stream_id: str, version: int, n: int, stream_type: str = "Counter") -> Event:
    return Event(
        event_id=generate_id(),
        stream_id=stream_id,
        stream_type=stream_type,
        event_type="Counted",
        occurred_at=datetime(2025, 1, 15, tzinfo=timezone.utc),
        command_id=generate_id(),
        payload={"n": n},
        version=version,
    )


def test_projection_skips_already_applied_versions() -> None:
    projection = CountingProjection()

    assert projection.apply_event(counted("s1", 1, 10)) is True
    assert projection.apply_event(counted("s1", 1, 10)) is False
    assert projection.apply_event(counted("s1", 2, 20)) is True

    assert projection.seen == [10, 20]
    assert projection.stream_version("s1") == 2
    assert projection.stream_version("unknown") == 0


def test_projection_tracks_streams_independently() -> None:
    projection = CountingProjection()
    projection.apply_events([counted("s1", 1, 1), counted("s2", 1, 2), counted("s1", 2, 3)])

    assert projection.seen == [1, 2, 3]
    assert projection.stream_version("s1") == 2
    assert projection.stream_version("s2") == 1


def test_projection_ignores_unknown_event_types() -> None:
    projection = CountingProjection()
    event = counted("s1", 1, 1).model_copy(update={"event_type": "Other"})

    assert projection.apply_event(event) is False
    assert projection.stream_version("s1") == 0


def test_bus_routes_by_stream_type() -> None:
    bus = InProcessBus()
    counters = CountingProjection()
    others = CountingProjection()
    bus.register_stream_handler("Counter", counters.apply_event)
    bus.register_stream_handler("Other", others.apply_event)

    bus.publish_events([counted("s1", 1, 5), counted("o1", 1, 7, stream_type="Other")])

    assert counters.seen == [5]
    assert others.seen == [7]


def test_bus_event_type_handlers() -> None:
    bus = InProcessBus()
    received: list[str] = []
    bus.register_event_handler("Counted", lambda e: received.append(e.stream_id))

    bus.publish_event(counted("s9", 1, 1))

    assert received == ["s9"]


def test_sequential_id_factory() -> None:
    factory = SequentialIdFactory("bid")
    assert [factory.generate() for _ in range(3)] == ["bid-0001", "bid-0002", "bid-0003"]


def test_generate_id_is_time_ordered() -> None:
    ids = [generate_id() for _ in range(5)]
    assert len(set(ids)) == 5
    assert all(len(i) == 36 for i in ids)


class TestMarketplacePolicy:
    def test_defaults(self) -> None:
        policy = MarketplacePolicy()
        assert policy.max_active_affiliates == 50
        assert policy.role_verification_ttl_minutes == 15
        assert policy.reveal_fee == Decimal("499")
        assert policy.domestic_service_fee_rate == Decimal("0.005")
        assert policy.cross_border_service_fee_rate == Decimal("0.01")
        assert (policy.pin_min_length, policy.pin_max_length) == (4, 8)

    def test_pin_bounds_must_be_ordered(self) -> None:
        with pytest.raises(ValidationError):
            MarketplacePolicy(pin_min_length=8, pin_max_length=6)

    def test_cap_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            MarketplacePolicy(max_active_affiliates=0)
