"""
Tests for the affiliate FIFO queue

The roster never holds more than max_active_affiliates ACTIVE records,
positions stay dense from 1, and FIFO activation is the only way in.

Fun fact: Indian Railways' Tatkal quota opens at 10:00 sharp, and the
first-come-first-served rule there is enforced by a single queue too.
"""

import threading

import pytest

from procure_saathi.affiliates import (
    ROSTER_STREAM,
    ActivateFifo,
    ActivationOutcome,
    AffiliateCommandHandlers,
    AffiliateRoster,
    AffiliateStatus,
    JoinAffiliate,
    StaticAdminDirectory,
    UpdateAffiliateStatus,
)
from procure_saathi.kernel.errors import Conflict, Forbidden, InvalidState, NotFound
from procure_saathi.kernel.ids import generate_id
from procure_saathi.kernel.policy import MarketplacePolicy
from procure_saathi.kernel.time import TestTimeProvider
from procure_saathi.marketplace import ProcureSaathi
from tests.helpers import fill_active_affiliates, join_affiliates


def assert_dense(market: ProcureSaathi) -> None:
    positions = [r.queue_position for r in market.list_affiliates(AffiliateStatus.ACTIVE)]
    assert positions == list(range(1, len(positions) + 1))


class TestHandlers:
    """Handler-level decisions against a hand-fed roster"""

    def join(self, handlers: AffiliateCommandHandlers, roster: AffiliateRoster, user_id: str):
        events = handlers.handle_join(JoinAffiliate(user_id=user_id), generate_id(), user_id, roster)
        roster.apply_events(events)
        return roster.get_by_user(user_id)

    def test_join_assigns_sequence_and_referral_code(
        self, affiliate_handlers: AffiliateCommandHandlers, affiliate_roster: AffiliateRoster
    ) -> None:
        first = self.join(affiliate_handlers, affiliate_roster, "u1")
        second = self.join(affiliate_handlers, affiliate_roster, "u2")

        assert first.status == AffiliateStatus.PENDING
        assert (first.join_sequence, second.join_sequence) == (1, 2)
        assert first.referral_code.startswith("PSAFF")
        assert first.queue_position is None

    def test_refusal_event_when_cap_reached(
        self, test_time: TestTimeProvider, affiliate_roster: AffiliateRoster
    ) -> None:
        handlers = AffiliateCommandHandlers(test_time, MarketplacePolicy(max_active_affiliates=1))
        first = self.join(handlers, affiliate_roster, "u1")
        second = self.join(handlers, affiliate_roster, "u2")
        affiliate_roster.apply_events(
            handlers.handle_activate_fifo(
                ActivateFifo(affiliate_id=first.affiliate_id), generate_id(), None, affiliate_roster
            )
        )

        events = handlers.handle_activate_fifo(
            ActivateFifo(affiliate_id=second.affiliate_id), generate_id(), None, affiliate_roster
        )

        assert [e.event_type for e in events] == ["AffiliateActivationRefused"]
        assert events[0].payload["active_count"] == 1
        assert events[0].version == affiliate_roster.version + 1

    def test_active_target_refused_before_lookup(
        self, affiliate_handlers: AffiliateCommandHandlers, affiliate_roster: AffiliateRoster
    ) -> None:
        command = UpdateAffiliateStatus(
            affiliate_id="whoever", new_status=AffiliateStatus.ACTIVE, acting_admin_id="admin-1"
        )
        with pytest.raises(Forbidden):
            affiliate_handlers.handle_update_status(command, generate_id(), "admin-1", affiliate_roster)

    def test_activate_next_on_empty_queue(
        self, affiliate_handlers: AffiliateCommandHandlers, affiliate_roster: AffiliateRoster
    ) -> None:
        assert affiliate_handlers.handle_activate_next(generate_id(), None, affiliate_roster) == (
            None,
            [],
        )


class TestJoin:
    def test_one_record_per_user(self, market: ProcureSaathi) -> None:
        market.join_affiliate("user-001", referral_code="FRIEND10")
        with pytest.raises(InvalidState, match="already has an affiliate record"):
            market.join_affiliate("user-001")
        assert market.affiliate_stats().counts[AffiliateStatus.PENDING] == 1

    def test_referral_code_is_kept(self, market: ProcureSaathi) -> None:
        record = market.join_affiliate("user-001", referral_code="FRIEND10")
        assert record.referral_code == "FRIEND10"


class TestFifoActivation:
    def test_activation_assigns_dense_positions(self, market: ProcureSaathi) -> None:
        records = fill_active_affiliates(market, 3)

        assert [r.status for r in records] == [AffiliateStatus.ACTIVE] * 3
        assert [r.queue_position for r in records] == [1, 2, 3]

    def test_only_head_of_queue_may_activate(self, market: ProcureSaathi) -> None:
        first, second = join_affiliates(market, 2)

        with pytest.raises(InvalidState, match="earlier applicants"):
            market.activate_fifo(second.affiliate_id)

        result = market.activate_fifo(first.affiliate_id)
        assert result.status == ActivationOutcome.ACTIVE
        assert result.queue_position == 1

    def test_activating_an_active_affiliate_is_a_no_op(self, market: ProcureSaathi) -> None:
        (record,) = fill_active_affiliates(market, 1)
        events_before = market.event_store.count_events()

        result = market.activate_fifo(record.affiliate_id)

        assert result.status == ActivationOutcome.ACTIVE
        assert result.queue_position == 1
        assert market.event_store.count_events() == events_before

    def test_fifty_first_activation_hits_the_cap(self, market: ProcureSaathi) -> None:
        fill_active_affiliates(market, 50)
        late = market.join_affiliate("late-comer")

        result = market.activate_fifo(late.affiliate_id)

        assert result.status == ActivationOutcome.LIMIT_REACHED
        assert result.to_dict() == {"status": "LIMIT_REACHED"}
        assert market.get_affiliate(late.affiliate_id) == late
        assert market.affiliate_stats().remaining_slots == 0
        assert_dense(market)

    def test_freed_slot_goes_to_head_of_queue(self, market: ProcureSaathi) -> None:
        active = fill_active_affiliates(market, 50)
        waiting = join_affiliates(market, 2, prefix="wait")

        market.suspend_affiliate(active[9].affiliate_id, "admin-1", "fraudulent clicks")
        result = market.activate_next()

        assert result.affiliate_id == waiting[0].affiliate_id
        assert result.to_dict() == {"status": "ACTIVE", "queuePosition": 50}
        assert market.affiliate_roster.active_count() == 50
        assert_dense(market)

    def test_activate_next_with_empty_queue(self, market: ProcureSaathi) -> None:
        assert market.activate_next() is None

    def test_suspended_affiliate_cannot_be_reactivated(self, market: ProcureSaathi) -> None:
        (record,) = fill_active_affiliates(market, 1)
        market.suspend_affiliate(record.affiliate_id, "admin-1")

        with pytest.raises(InvalidState, match="SUSPENDED"):
            market.activate_fifo(record.affiliate_id)

    def test_unknown_affiliate(self, market: ProcureSaathi) -> None:
        with pytest.raises(NotFound):
            market.activate_fifo("nope")
        with pytest.raises(NotFound):
            market.get_affiliate("nope")


class TestAdministrativeStatus:
    def test_direct_active_write_is_forbidden(self, market: ProcureSaathi) -> None:
        (record,) = join_affiliates(market, 1)

        with pytest.raises(Forbidden):
            market.update_affiliate_status(record.affiliate_id, "ACTIVE", "admin-1")
        assert market.get_affiliate(record.affiliate_id).status == AffiliateStatus.PENDING

    def test_pending_is_never_a_target(self, market: ProcureSaathi) -> None:
        (record,) = join_affiliates(market, 1)
        market.update_affiliate_status(record.affiliate_id, "WAITLISTED", "admin-1")

        with pytest.raises(InvalidState, match="PENDING"):
            market.update_affiliate_status(record.affiliate_id, "PENDING", "admin-1")

    def test_rejected_is_terminal(self, market: ProcureSaathi) -> None:
        (record,) = join_affiliates(market, 1)
        market.reject_affiliate(record.affiliate_id, "admin-1", "duplicate account")

        with pytest.raises(InvalidState):
            market.suspend_affiliate(record.affiliate_id, "admin-1")

    def test_waitlisted_keeps_its_place_in_line(self, market: ProcureSaathi) -> None:
        first, second = join_affiliates(market, 2)
        market.update_affiliate_status(first.affiliate_id, "WAITLISTED", "admin-1")

        result = market.activate_next()
        assert result.affiliate_id == first.affiliate_id

    def test_suspension_compacts_positions(self, market: ProcureSaathi) -> None:
        records = fill_active_affiliates(market, 5)

        suspended = market.suspend_affiliate(records[1].affiliate_id, "admin-1", "policy breach")

        assert suspended.status == AffiliateStatus.SUSPENDED
        assert suspended.queue_position is None
        assert suspended.deactivation_reason == "policy breach"
        assert_dense(market)
        assert [r.affiliate_id for r in market.list_affiliates("ACTIVE")] == [
            records[i].affiliate_id for i in (0, 2, 3, 4)
        ]

    def test_same_status_is_a_no_op(self, market: ProcureSaathi) -> None:
        (record,) = join_affiliates(market, 1)
        market.update_affiliate_status(record.affiliate_id, "WAITLISTED", "admin-1")
        events_before = market.event_store.count_events()

        market.update_affiliate_status(record.affiliate_id, "WAITLISTED", "admin-1")
        assert market.event_store.count_events() == events_before


class TestAdminAuthorization:
    def test_non_admin_cannot_change_status(self, market: ProcureSaathi) -> None:
        (record,) = fill_active_affiliates(market, 1)
        events_before = market.event_store.count_events()

        with pytest.raises(Forbidden) as excinfo:
            market.suspend_affiliate(record.affiliate_id, "user-001", "self-service")

        assert excinfo.value.actor_id == "user-001"
        assert market.get_affiliate(record.affiliate_id).status == AffiliateStatus.ACTIVE
        assert market.event_store.count_events() == events_before

    def test_non_admin_cannot_reject_or_waitlist(self, market: ProcureSaathi) -> None:
        (record,) = join_affiliates(market, 1)

        with pytest.raises(Forbidden):
            market.reject_affiliate(record.affiliate_id, "user-001")
        with pytest.raises(Forbidden):
            market.update_affiliate_status(record.affiliate_id, "WAITLISTED", "user-001")
        assert market.get_affiliate(record.affiliate_id).status == AffiliateStatus.PENDING

    def test_named_actor_must_be_admin_to_activate(self, market: ProcureSaathi) -> None:
        (record,) = join_affiliates(market, 1)

        with pytest.raises(Forbidden):
            market.activate_fifo(record.affiliate_id, "user-001")
        with pytest.raises(Forbidden):
            market.activate_next("user-001")
        assert market.affiliate_roster.active_count() == 0

        result = market.activate_fifo(record.affiliate_id, "admin-1")
        assert result.status == ActivationOutcome.ACTIVE

    def test_empty_directory_has_no_admins(self, temp_db, policy, test_time) -> None:
        market = ProcureSaathi(temp_db, policy=policy, time_provider=test_time)
        (record,) = join_affiliates(market, 1)

        with pytest.raises(Forbidden):
            market.suspend_affiliate(record.affiliate_id, "admin-1")

        # In-process callers without an actor are not asked
        assert market.activate_next().status == ActivationOutcome.ACTIVE

    def test_directory_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PROCURE_ADMIN_IDS", " ops-1, ,ops-2 ")
        directory = StaticAdminDirectory.from_env()

        assert len(directory) == 2
        assert directory.is_admin("ops-2")
        assert not directory.is_admin("")


class TestInterleavedWriters:
    """
    Another write lands between the façade's sync and the handler's read

    The roster version is pinned before the handler reads anything, so the
    stale decision fails its append and is made again on fresh state.
    """

    def roster_event_types(self, market: ProcureSaathi) -> list[str]:
        return [e.event_type for e in market.event_store.load_stream(ROSTER_STREAM)]

    def test_activation_racing_itself_activates_once(
        self, market: ProcureSaathi, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        (record,) = join_affiliates(market, 1)
        roster = market.affiliate_roster
        original_get = roster.get
        interleaved = []

        def get_then_interleave(affiliate_id):
            stale = original_get(affiliate_id)
            if not interleaved:
                interleaved.append(affiliate_id)
                market.activate_fifo(affiliate_id)
            return stale

        monkeypatch.setattr(roster, "get", get_then_interleave)

        result = market.activate_fifo(record.affiliate_id)

        assert interleaved == [record.affiliate_id]
        assert result.status == ActivationOutcome.ACTIVE
        assert result.queue_position == 1
        assert self.roster_event_types(market).count("AffiliateActivated") == 1
        assert_dense(market)

    def test_activate_next_sees_head_taken(
        self, market: ProcureSaathi, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        first, second = join_affiliates(market, 2)
        roster = market.affiliate_roster
        original_head = roster.queue_head
        interleaved = []

        def head_then_interleave():
            stale = original_head()
            if not interleaved:
                interleaved.append(stale.affiliate_id)
                market.activate_fifo(stale.affiliate_id)
            return stale

        monkeypatch.setattr(roster, "queue_head", head_then_interleave)

        result = market.activate_next()

        assert interleaved == [first.affiliate_id]
        assert result.affiliate_id == second.affiliate_id
        assert result.queue_position == 2
        assert self.roster_event_types(market).count("AffiliateActivated") == 2
        assert_dense(market)

    def test_join_racing_itself_creates_one_record(
        self, market: ProcureSaathi, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        roster = market.affiliate_roster
        original_get_by_user = roster.get_by_user
        interleaved = []

        def lookup_then_interleave(user_id):
            stale = original_get_by_user(user_id)
            if not interleaved:
                interleaved.append(user_id)
                market.join_affiliate(user_id)
            return stale

        monkeypatch.setattr(roster, "get_by_user", lookup_then_interleave)

        with pytest.raises(InvalidState, match="already has an affiliate record"):
            market.join_affiliate("user-001")

        assert self.roster_event_types(market).count("AffiliateJoined") == 1

    def test_suspension_decided_on_fresh_positions(
        self, market: ProcureSaathi, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        records = fill_active_affiliates(market, 3)
        roster = market.affiliate_roster
        original_get = roster.get
        interleaved = []

        def get_then_interleave(affiliate_id):
            stale = original_get(affiliate_id)
            if not interleaved:
                interleaved.append(affiliate_id)
                market.suspend_affiliate(records[0].affiliate_id, "admin-1")
            return stale

        monkeypatch.setattr(roster, "get", get_then_interleave)

        market.suspend_affiliate(records[2].affiliate_id, "admin-1")

        assert [r.affiliate_id for r in market.list_affiliates("ACTIVE")] == [
            records[1].affiliate_id
        ]
        assert_dense(market)


class TestStatsAndRestart:
    def test_stats(self, market: ProcureSaathi) -> None:
        fill_active_affiliates(market, 3)
        join_affiliates(market, 2)

        stats = market.affiliate_stats()
        assert stats.counts[AffiliateStatus.ACTIVE] == 3
        assert stats.counts[AffiliateStatus.PENDING] == 2
        assert stats.max_active == 50
        assert stats.remaining_slots == 47

    def test_roster_rebuilds_from_events(
        self, market: ProcureSaathi, temp_db, policy, test_time
    ) -> None:
        records = fill_active_affiliates(market, 4)
        market.suspend_affiliate(records[0].affiliate_id, "admin-1")

        reopened = ProcureSaathi(temp_db, policy=policy, time_provider=test_time)

        assert [r.queue_position for r in reopened.list_affiliates("ACTIVE")] == [1, 2, 3]
        assert reopened.get_affiliate(records[0].affiliate_id).status == AffiliateStatus.SUSPENDED


def test_concurrent_activations_never_exceed_cap(temp_db, test_time: TestTimeProvider) -> None:
    """Eight callers race for three slots"""
    policy = MarketplacePolicy(max_active_affiliates=3, version_conflict_retries=40)
    market = ProcureSaathi(temp_db, policy=policy, time_provider=test_time)
    join_affiliates(market, 8)

    barrier = threading.Barrier(8)
    outcomes: list[str] = []
    lock = threading.Lock()

    def activate() -> None:
        barrier.wait()
        try:
            result = market.activate_next()
            outcome = result.status.value if result else "EMPTY"
        except Conflict:
            outcome = "CONFLICT"
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=activate) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    active = market.list_affiliates(AffiliateStatus.ACTIVE)
    assert len(outcomes) == 8
    assert outcomes.count("ACTIVE") == len(active)
    assert len(active) <= 3
    assert [r.queue_position for r in active] == list(range(1, len(active) + 1))
    # Strict FIFO: whoever is active joined before everyone still waiting
    assert [r.user_id for r in active] == [f"user-{i:03d}" for i in range(1, len(active) + 1)]

    # A fresh instance sees the same roster
    fresh = ProcureSaathi(temp_db, policy=policy, time_provider=test_time)
    assert fresh.affiliate_roster.active_count() == len(active)
