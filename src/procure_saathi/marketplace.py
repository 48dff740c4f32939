"""
ProcureSaathi - Main façade class

This is the primary interface for the marketplace core. It hides the event
store, projections and command handlers behind a plain method API.

Every write follows the same shape: re-synchronise the target stream from
the store, let a handler decide against the projection, append at the
version the handler saw, publish. If another writer got there first the
store refuses the append and the whole decision is re-run against the
fresh state, a bounded number of times.

Example:
    >>> from procure_saathi import ProcureSaathi
    >>> market = ProcureSaathi("marketplace.db")
    >>> rfq = market.create_requirement("buyer-1", "Steel rods", "metals", 500, "kg",
    ...                                 "Pune", deadline)
    >>> market.submit_bid(rfq.requirement_id, "supplier-a", 1000, 7)
    >>> market.list_bids(rfq.requirement_id)
    >>> market.accept_bid(rfq.requirement_id, bid_id, "buyer-1")
"""

import threading
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Callable

from pydantic import ValidationError

from procure_saathi.affiliates import (
    ROSTER_STREAM,
    ActivateFifo,
    ActivationOutcome,
    ActivationResult,
    AdminDirectory,
    AffiliateCommandHandlers,
    AffiliateRecord,
    AffiliateRoster,
    AffiliateStats,
    AffiliateStatus,
    JoinAffiliate,
    StaticAdminDirectory,
    UpdateAffiliateStatus,
)
from procure_saathi.kernel.bus import InProcessBus
from procure_saathi.kernel.errors import (
    Conflict,
    Forbidden,
    NotFound,
    StreamVersionConflict,
    VerificationFailed,
)
from procure_saathi.kernel.event_store import SQLiteEventStore
from procure_saathi.kernel.events import Event
from procure_saathi.kernel.ids import IdFactory, default_id_factory, generate_id
from procure_saathi.kernel.logging import LogOperation, get_logger
from procure_saathi.kernel.metrics import (
    active_affiliates,
    affiliate_activations_total,
    bid_acceptance_total,
    bids_submitted_total,
    reveal_payment_failures_total,
    reveal_transitions_total,
    role_sessions_expired_total,
    role_verification_attempts_total,
    track_command,
)
from procure_saathi.kernel.policy import MarketplacePolicy
from procure_saathi.kernel.retry import retry_on_version_conflict
from procure_saathi.kernel.tick import TickEngine, TickResult
from procure_saathi.kernel.time import RealTimeProvider, TimeProvider
from procure_saathi.requirements import (
    AcceptBid,
    AwardResult,
    Bid,
    BidOrder,
    BidView,
    CancelRequirement,
    CloseRequirement,
    CreateRequirement,
    Requirement,
    RequirementBook,
    RequirementCommandHandlers,
    RequirementStatus,
    ReviseBid,
    SubmitBid,
    TradeType,
    requirement_stream,
)
from procure_saathi.reveal import (
    ConfirmReveal,
    ConfirmRevealPayment,
    RecordRevealPaymentFailure,
    RequestReveal,
    RevealCommandHandlers,
    RevealGate,
    RevealRequest,
    RevealStatus,
    reveal_stream,
)
from procure_saathi.roles import (
    ManagementRole,
    PasswordVerifier,
    RoleCommandHandlers,
    RoleSecurityRegistry,
    RoleSessionManager,
    SessionReaper,
    SetRolePin,
    VerificationMethod,
    VerificationState,
    VerifyRole,
    role_security_stream,
)
from procure_saathi.roles.events import RoleVerificationFailed, RoleVerificationSucceeded
from procure_saathi.suppliers import (
    RegisterSupplier,
    RevealedContact,
    SupplierCommandHandlers,
    SupplierDirectory,
    SupplierProfile,
    supplier_stream,
    to_bid_view,
)

logger = get_logger(__name__)


class ProcureSaathi:
    """
    ProcureSaathi marketplace façade

    Provides a unified API for:
    - Requirements and sealed bids (submit, revise, list, accept, close)
    - The supplier directory and the reveal gate
    - The 50-slot affiliate FIFO queue
    - 15-minute role verification sessions
    - Periodic housekeeping (tick)
    """

    def __init__(
        self,
        sqlite_path: str | Path,
        policy: MarketplacePolicy | None = None,
        time_provider: TimeProvider | None = None,
        id_factory: IdFactory | None = None,
        password_verifier: PasswordVerifier | None = None,
        admin_directory: AdminDirectory | None = None,
    ) -> None:
        """
        Initialize the marketplace

        Args:
            sqlite_path: Path to SQLite database
            policy: Marketplace policy (uses defaults if None)
            time_provider: Time provider (uses real time if None)
            id_factory: Id generation strategy for requirements, bids, affiliates
            password_verifier: Re-authentication backend for password verification
            admin_directory: Who may change affiliate status (nobody if None)
        """
        self.sqlite_path = Path(sqlite_path)
        self.policy = policy or MarketplacePolicy()
        self.time_provider = time_provider or RealTimeProvider()
        self.id_factory = id_factory or default_id_factory
        self.password_verifier = password_verifier
        self.admin_directory = admin_directory or StaticAdminDirectory()

        # Infrastructure
        self.event_store = SQLiteEventStore(self.sqlite_path)
        self.bus = InProcessBus()

        # Handlers
        self.requirement_handlers = RequirementCommandHandlers(
            self.time_provider, self.policy, self.id_factory
        )
        self.supplier_handlers = SupplierCommandHandlers(self.time_provider)
        self.reveal_handlers = RevealCommandHandlers(self.time_provider, self.policy)
        self.affiliate_handlers = AffiliateCommandHandlers(
            self.time_provider, self.policy, self.id_factory
        )
        self.role_handlers = RoleCommandHandlers(self.time_provider, self.policy)

        # Projections
        self.requirement_book = RequirementBook()
        self.supplier_directory = SupplierDirectory()
        self.reveal_gate = RevealGate()
        self.affiliate_roster = AffiliateRoster()
        self.role_security = RoleSecurityRegistry()

        self.bus.register_stream_handler("Requirement", self.requirement_book.apply_event)
        self.bus.register_stream_handler("Supplier", self.supplier_directory.apply_event)
        self.bus.register_stream_handler("RevealRequest", self.reveal_gate.apply_event)
        self.bus.register_stream_handler("AffiliateRoster", self.affiliate_roster.apply_event)
        self.bus.register_stream_handler("RoleSecurity", self.role_security.apply_event)

        # In-memory role sessions
        self.sessions = RoleSessionManager(
            self.time_provider, self.policy.role_verification_ttl_minutes
        )
        self.session_reaper = SessionReaper(
            self.reap_expired_sessions, self.policy.session_sweep_interval_seconds
        )

        self.tick_engine = TickEngine(
            self.time_provider,
            [
                ("close_expired_requirements", self._close_expired_requirements),
                ("reap_role_sessions", self.reap_expired_sessions),
            ],
        )

        self._published: dict[str, int] = {}
        self._publish_lock = threading.RLock()

        self._rebuild_projections()

    # ------------------------------------------------------------------
    # Event plumbing
    # ------------------------------------------------------------------

    def _rebuild_projections(self) -> None:
        """Rebuild all projections from event store"""
        with LogOperation(logger, "rebuild_projections", db=str(self.sqlite_path)):
            self._publish(self.event_store.load_all_events())
        active_affiliates.set(self.affiliate_roster.active_count())

    def _publish(self, events: list[Event]) -> None:
        """Fan events out to projections, skipping anything already published"""
        with self._publish_lock:
            for event in events:
                if event.version <= self._published.get(event.stream_id, 0):
                    continue
                self.bus.publish_event(event)
                self._published[event.stream_id] = event.version

    def _sync_stream(self, stream_id: str) -> None:
        """Pull events another writer appended to this stream"""
        with self._publish_lock:
            since = self._published.get(stream_id, 0)
            self._publish(self.event_store.load_stream(stream_id, from_version=since))

    def _execute(self, stream_id: str, decide: Callable[[], list[Event]]) -> list[Event]:
        """
        Decide-append-publish with optimistic concurrency

        ``decide`` runs against freshly synchronised projections on every
        attempt. Losing every attempt surfaces as Conflict.
        """

        @retry_on_version_conflict(max_attempts=self.policy.version_conflict_retries)
        def attempt() -> list[Event]:
            self._sync_stream(stream_id)
            events = decide()
            if not events:
                return []
            appended = self.event_store.append(stream_id, events[0].version - 1, events)
            self._publish(appended)
            return appended

        try:
            return attempt()
        except StreamVersionConflict as e:
            raise Conflict(
                "This record was changed by someone else at the same time, please retry",
                entity_id=stream_id,
            ) from e

    # ------------------------------------------------------------------
    # Requirements & bids
    # ------------------------------------------------------------------

    @track_command("create_requirement")
    def create_requirement(
        self,
        buyer_id: str,
        title: str,
        category: str,
        quantity: Decimal | int | str,
        unit: str,
        delivery_location: str,
        deadline: datetime,
        trade_type: TradeType | str = TradeType.DOMESTIC_INDIA,
        description: str | None = None,
    ) -> Requirement:
        """
        Post a new requirement (RFQ)

        Returns:
            The ACTIVE requirement
        """
        command = CreateRequirement(
            buyer_id=buyer_id,
            title=title,
            category=category,
            quantity=quantity,
            unit=unit,
            delivery_location=delivery_location,
            deadline=deadline,
            trade_type=trade_type,
            description=description,
        )
        with LogOperation(logger, "create_requirement", buyer_id=buyer_id):
            events = self.requirement_handlers.handle_create_requirement(
                command, generate_id(), buyer_id
            )
            appended = self.event_store.append(events[0].stream_id, 0, events)
            self._publish(appended)
        return self.requirement_book.get(appended[0].payload["requirement_id"])

    @track_command("submit_bid")
    def submit_bid(
        self,
        requirement_id: str,
        supplier_id: str,
        bid_amount: Decimal | int | str,
        delivery_days: int,
        terms: str | None = None,
    ) -> Bid:
        """
        Submit a sealed bid (requirement must be ACTIVE)

        Raises:
            NotFound: unknown requirement
            InvalidState: requirement not active, deadline passed, or the
                supplier already bid
        """
        command = SubmitBid(
            requirement_id=requirement_id,
            supplier_id=supplier_id,
            bid_amount=bid_amount,
            delivery_days=delivery_days,
            terms=terms,
        )
        command_id = generate_id()
        with LogOperation(
            logger, "submit_bid", requirement_id=requirement_id, supplier_id=supplier_id
        ):
            events = self._execute(
                requirement_stream(requirement_id),
                lambda: self.requirement_handlers.handle_submit_bid(
                    command, command_id, supplier_id, self.requirement_book
                ),
            )
        requirement = self.requirement_book.get(requirement_id)
        bids_submitted_total.labels(trade_type=requirement.trade_type.value).inc()
        return self.requirement_book.get_bid(events[0].payload["bid_id"])

    @track_command("revise_bid")
    def revise_bid(
        self,
        requirement_id: str,
        bid_id: str,
        supplier_id: str,
        bid_amount: Decimal | int | str,
        delivery_days: int,
        terms: str | None = None,
    ) -> Bid:
        """Owning supplier revises a pending bid; fee and total are recomputed"""
        command = ReviseBid(
            requirement_id=requirement_id,
            bid_id=bid_id,
            supplier_id=supplier_id,
            bid_amount=bid_amount,
            delivery_days=delivery_days,
            terms=terms,
        )
        command_id = generate_id()
        with LogOperation(logger, "revise_bid", requirement_id=requirement_id, bid_id=bid_id):
            self._execute(
                requirement_stream(requirement_id),
                lambda: self.requirement_handlers.handle_revise_bid(
                    command, command_id, supplier_id, self.requirement_book
                ),
            )
        return self.requirement_book.get_bid(bid_id)

    def list_bids(
        self, requirement_id: str, order: BidOrder | str = BidOrder.AMOUNT_ASC
    ) -> list[BidView]:
        """
        Anonymized bids for comparison, lowest total first by default

        Read-only. Views carry a supplier code and city, never contact fields.
        """
        if self.requirement_book.get(requirement_id) is None:
            raise NotFound("Requirement", requirement_id)
        bids = self.requirement_book.sorted_bids(requirement_id, BidOrder(order))
        return [
            to_bid_view(bid, self.supplier_directory.get(bid.supplier_id), self.policy)
            for bid in bids
        ]

    @track_command("accept_bid")
    def accept_bid(self, requirement_id: str, bid_id: str, acting_buyer_id: str) -> AwardResult:
        """
        Accept a bid: target → accepted, pending siblings → rejected,
        requirement → awarded, as one atomic append

        Raises:
            NotFound: requirement/bid missing or mismatched
            Forbidden: acting buyer does not own the requirement
            Conflict: the requirement was already awarded or closed
        """
        command = AcceptBid(
            requirement_id=requirement_id, bid_id=bid_id, acting_buyer_id=acting_buyer_id
        )
        command_id = generate_id()
        with LogOperation(
            logger,
            "accept_bid",
            requirement_id=requirement_id,
            bid_id=bid_id,
            actor_id=acting_buyer_id,
        ):
            try:
                events = self._execute(
                    requirement_stream(requirement_id),
                    lambda: self.requirement_handlers.handle_accept_bid(
                        command, command_id, acting_buyer_id, self.requirement_book
                    ),
                )
            except Conflict:
                bid_acceptance_total.labels(outcome="conflict").inc()
                raise

        bid_acceptance_total.labels(outcome="awarded").inc()
        rejected_ids = [
            e.payload["bid_id"] for e in events if e.event_type == "BidRejected"
        ]
        return AwardResult(
            requirement=self.requirement_book.get(requirement_id),
            accepted_bid=self.requirement_book.get_bid(bid_id),
            rejected_bids=[self.requirement_book.get_bid(b) for b in rejected_ids],
        )

    @track_command("close_requirement")
    def close_requirement(
        self, requirement_id: str, acting_buyer_id: str, reason: str = "closed_by_buyer"
    ) -> Requirement:
        """Owner closes an ACTIVE requirement without award"""
        command = CloseRequirement(
            requirement_id=requirement_id, acting_buyer_id=acting_buyer_id, reason=reason
        )
        command_id = generate_id()
        with LogOperation(logger, "close_requirement", requirement_id=requirement_id):
            self._execute(
                requirement_stream(requirement_id),
                lambda: self.requirement_handlers.handle_close_requirement(
                    command, command_id, acting_buyer_id, self.requirement_book
                ),
            )
        return self.requirement_book.get(requirement_id)

    @track_command("cancel_requirement")
    def cancel_requirement(
        self, requirement_id: str, acting_buyer_id: str, reason: str = "cancelled_by_buyer"
    ) -> Requirement:
        """Owner cancels an ACTIVE requirement"""
        command = CancelRequirement(
            requirement_id=requirement_id, acting_buyer_id=acting_buyer_id, reason=reason
        )
        command_id = generate_id()
        with LogOperation(logger, "cancel_requirement", requirement_id=requirement_id):
            self._execute(
                requirement_stream(requirement_id),
                lambda: self.requirement_handlers.handle_cancel_requirement(
                    command, command_id, acting_buyer_id, self.requirement_book
                ),
            )
        return self.requirement_book.get(requirement_id)

    def get_requirement(self, requirement_id: str) -> Requirement:
        requirement = self.requirement_book.get(requirement_id)
        if requirement is None:
            raise NotFound("Requirement", requirement_id)
        return requirement

    def get_bid(self, bid_id: str) -> Bid:
        bid = self.requirement_book.get_bid(bid_id)
        if bid is None:
            raise NotFound("Bid", bid_id)
        return bid

    def list_requirements(
        self,
        status: RequirementStatus | str | None = None,
        buyer_id: str | None = None,
    ) -> list[Requirement]:
        """Requirements, newest first"""
        return self.requirement_book.list_requirements(
            RequirementStatus(status) if status else None, buyer_id
        )

    def list_supplier_bids(self, supplier_id: str) -> list[Bid]:
        """A supplier's own bids ("my bids"), newest first"""
        return self.requirement_book.list_supplier_bids(supplier_id)

    # ------------------------------------------------------------------
    # Supplier directory
    # ------------------------------------------------------------------

    @track_command("register_supplier")
    def register_supplier(
        self,
        supplier_id: str,
        name: str,
        company: str,
        phone: str,
        email: str,
        address: str | None = None,
        city: str | None = None,
        gstin: str | None = None,
        categories: list[str] | None = None,
    ) -> SupplierProfile:
        """Store a supplier's private contact profile"""
        command = RegisterSupplier(
            supplier_id=supplier_id,
            name=name,
            company=company,
            phone=phone,
            email=email,
            address=address,
            city=city,
            gstin=gstin,
            categories=categories or [],
        )
        command_id = generate_id()
        with LogOperation(logger, "register_supplier", supplier_id=supplier_id):
            self._execute(
                supplier_stream(supplier_id),
                lambda: self.supplier_handlers.handle_register_supplier(
                    command, command_id, supplier_id, self.supplier_directory
                ),
            )
        return self.supplier_directory.get(supplier_id)

    # ------------------------------------------------------------------
    # Reveal gate
    # ------------------------------------------------------------------

    @track_command("request_reveal")
    def request_reveal(
        self, requirement_id: str, supplier_id: str, bid_id: str, acting_buyer_id: str
    ) -> RevealRequest:
        """
        Create-or-fetch the reveal request (locked → requested)

        Replaying after the request has advanced returns its current state.
        """
        command = RequestReveal(
            requirement_id=requirement_id,
            supplier_id=supplier_id,
            bid_id=bid_id,
            acting_buyer_id=acting_buyer_id,
        )
        command_id = generate_id()
        with LogOperation(
            logger, "request_reveal", requirement_id=requirement_id, supplier_id=supplier_id
        ):
            events = self._execute(
                reveal_stream(requirement_id, supplier_id),
                lambda: self.reveal_handlers.handle_request_reveal(
                    command,
                    command_id,
                    acting_buyer_id,
                    self.requirement_book,
                    self.reveal_gate,
                ),
            )
        if events:
            reveal_transitions_total.labels(to_status=RevealStatus.REQUESTED.value).inc()
        return self.reveal_gate.get(requirement_id, supplier_id)

    @track_command("confirm_reveal_payment")
    def confirm_reveal_payment(
        self,
        requirement_id: str,
        supplier_id: str,
        acting_buyer_id: str,
        payment_reference: str,
    ) -> RevealRequest:
        """requested → paid (no-op once paid)"""
        command = ConfirmRevealPayment(
            requirement_id=requirement_id,
            supplier_id=supplier_id,
            acting_buyer_id=acting_buyer_id,
            payment_reference=payment_reference,
        )
        command_id = generate_id()
        with LogOperation(
            logger,
            "confirm_reveal_payment",
            requirement_id=requirement_id,
            supplier_id=supplier_id,
            payment_reference=payment_reference,
        ):
            events = self._execute(
                reveal_stream(requirement_id, supplier_id),
                lambda: self.reveal_handlers.handle_confirm_payment(
                    command, command_id, acting_buyer_id, self.reveal_gate
                ),
            )
        if events:
            reveal_transitions_total.labels(to_status=RevealStatus.PAID.value).inc()
        return self.reveal_gate.get(requirement_id, supplier_id)

    @track_command("record_reveal_payment_failure")
    def record_reveal_payment_failure(
        self,
        requirement_id: str,
        supplier_id: str,
        acting_buyer_id: str,
        reason: str = "payment_failed",
    ) -> RevealRequest:
        """Payment failed: status stays requested so the buyer can retry"""
        command = RecordRevealPaymentFailure(
            requirement_id=requirement_id,
            supplier_id=supplier_id,
            acting_buyer_id=acting_buyer_id,
            reason=reason,
        )
        command_id = generate_id()
        with LogOperation(
            logger,
            "record_reveal_payment_failure",
            requirement_id=requirement_id,
            supplier_id=supplier_id,
        ):
            events = self._execute(
                reveal_stream(requirement_id, supplier_id),
                lambda: self.reveal_handlers.handle_payment_failure(
                    command, command_id, acting_buyer_id, self.reveal_gate
                ),
            )
        if events:
            reveal_payment_failures_total.inc()
            logger.warning(
                "Reveal payment failed",
                requirement_id=requirement_id,
                supplier_id=supplier_id,
                actor_id=acting_buyer_id,
                reason=reason,
            )
        return self.reveal_gate.get(requirement_id, supplier_id)

    @track_command("confirm_reveal")
    def confirm_reveal(
        self, requirement_id: str, supplier_id: str, acting_buyer_id: str
    ) -> RevealRequest:
        """paid → revealed (no-op once revealed)"""
        command = ConfirmReveal(
            requirement_id=requirement_id,
            supplier_id=supplier_id,
            acting_buyer_id=acting_buyer_id,
        )
        command_id = generate_id()
        with LogOperation(
            logger, "confirm_reveal", requirement_id=requirement_id, supplier_id=supplier_id
        ):
            events = self._execute(
                reveal_stream(requirement_id, supplier_id),
                lambda: self.reveal_handlers.handle_confirm_reveal(
                    command, command_id, acting_buyer_id, self.reveal_gate
                ),
            )
        if events:
            reveal_transitions_total.labels(to_status=RevealStatus.REVEALED.value).inc()
        return self.reveal_gate.get(requirement_id, supplier_id)

    def get_reveal_status(self, requirement_id: str, supplier_id: str) -> str | None:
        """Current reveal status, or None if nothing was requested"""
        request = self.reveal_gate.get(requirement_id, supplier_id)
        return request.status.value if request else None

    def list_reveal_requests(self, buyer_id: str) -> list[RevealRequest]:
        """The buyer's reveal requests, oldest first"""
        return self.reveal_gate.list_for_buyer(buyer_id)

    def get_revealed_contact(
        self, requirement_id: str, supplier_id: str, acting_buyer_id: str
    ) -> RevealedContact | None:
        """
        The only path by which supplier contact details leave the system

        Returns contact fields iff the reveal for this exact
        (requirement, supplier) pair is REVEALED and the caller is the buyer
        who requested it. Any other status returns None.

        Raises:
            Forbidden: the caller is not the requesting (or owning) buyer
        """
        request = self.reveal_gate.get(requirement_id, supplier_id)
        if request is None:
            requirement = self.requirement_book.get(requirement_id)
            if requirement is None or requirement.buyer_id != acting_buyer_id:
                logger.warning(
                    "Contact access denied",
                    requirement_id=requirement_id,
                    supplier_id=supplier_id,
                    actor_id=acting_buyer_id,
                )
                raise Forbidden("no reveal request for caller", actor_id=acting_buyer_id)
            return None

        if request.buyer_id != acting_buyer_id:
            logger.warning(
                "Contact access denied",
                requirement_id=requirement_id,
                supplier_id=supplier_id,
                actor_id=acting_buyer_id,
            )
            raise Forbidden("caller did not request this reveal", actor_id=acting_buyer_id)

        if request.status != RevealStatus.REVEALED:
            return None

        profile = self.supplier_directory.get(supplier_id)
        if profile is None:
            logger.error(
                "Revealed supplier has no contact profile",
                requirement_id=requirement_id,
                supplier_id=supplier_id,
            )
            return None
        try:
            return RevealedContact(
                supplier_id=supplier_id,
                supplier_name=profile.name,
                company=profile.company,
                phone=profile.phone,
                email=profile.email,
                address=profile.address,
                gstin=profile.gstin,
                revealed_at=request.revealed_at,
            )
        except ValidationError as e:
            logger.error(
                "Revealed contact could not be assembled",
                requirement_id=requirement_id,
                supplier_id=supplier_id,
                error_count=e.error_count(),
            )
            return None

    # ------------------------------------------------------------------
    # Affiliate FIFO queue
    # ------------------------------------------------------------------

    @track_command("join_affiliate")
    def join_affiliate(self, user_id: str, referral_code: str | None = None) -> AffiliateRecord:
        """Sign up for the affiliate programme (PENDING, back of the queue)"""
        command = JoinAffiliate(user_id=user_id, referral_code=referral_code)
        command_id = generate_id()
        with LogOperation(logger, "join_affiliate", user_id=user_id):
            self._execute(
                ROSTER_STREAM,
                lambda: self.affiliate_handlers.handle_join(
                    command, command_id, user_id, self.affiliate_roster
                ),
            )
        return self.affiliate_roster.get_by_user(user_id)

    def _require_admin(
        self, actor_id: str, action: str, affiliate_id: str | None = None, reason: str = ""
    ) -> None:
        if self.admin_directory.is_admin(actor_id):
            return
        logger.warning(
            "Administrative action refused",
            action=action,
            affiliate_id=affiliate_id,
            actor_id=actor_id,
            reason=reason,
        )
        raise Forbidden(f"{action} requires an administrator", actor_id=actor_id)

    def _activation_result(self, affiliate_id: str, events: list[Event]) -> ActivationResult:
        active_affiliates.set(self.affiliate_roster.active_count())
        if events and events[-1].event_type == "AffiliateActivationRefused":
            affiliate_activations_total.labels(outcome="LIMIT_REACHED").inc()
            return ActivationResult(
                affiliate_id=affiliate_id, status=ActivationOutcome.LIMIT_REACHED
            )
        record = self.affiliate_roster.get(affiliate_id)
        if events:
            affiliate_activations_total.labels(outcome="ACTIVE").inc()
        return ActivationResult(
            affiliate_id=affiliate_id,
            status=ActivationOutcome.ACTIVE,
            queue_position=record.queue_position,
        )

    @track_command("activate_fifo")
    def activate_fifo(self, affiliate_id: str, actor_id: str | None = None) -> ActivationResult:
        """
        FIFO activation: ACTIVE at the next dense position, or LIMIT_REACHED

        ``actor_id`` None is an in-process caller (CLI, housekeeping); a named
        actor must be an administrator.

        Raises:
            NotFound: unknown affiliate
            InvalidState: affiliate is SUSPENDED/REJECTED or not at the head
                of the queue
        """
        if actor_id is not None:
            self._require_admin(actor_id, "activate_fifo", affiliate_id)
        command = ActivateFifo(affiliate_id=affiliate_id)
        command_id = generate_id()
        with LogOperation(logger, "activate_fifo", affiliate_id=affiliate_id):
            events = self._execute(
                ROSTER_STREAM,
                lambda: self.affiliate_handlers.handle_activate_fifo(
                    command, command_id, actor_id, self.affiliate_roster
                ),
            )
        return self._activation_result(affiliate_id, events)

    @track_command("activate_next")
    def activate_next(self, actor_id: str | None = None) -> ActivationResult | None:
        """Activate whoever is at the head of the queue; None if nobody waits"""
        if actor_id is not None:
            self._require_admin(actor_id, "activate_next")
        command_id = generate_id()
        chosen: dict[str, str | None] = {"affiliate_id": None}

        def decide() -> list[Event]:
            affiliate_id, events = self.affiliate_handlers.handle_activate_next(
                command_id, actor_id, self.affiliate_roster
            )
            chosen["affiliate_id"] = affiliate_id
            return events

        with LogOperation(logger, "activate_next"):
            events = self._execute(ROSTER_STREAM, decide)
        if chosen["affiliate_id"] is None:
            return None
        return self._activation_result(chosen["affiliate_id"], events)

    @track_command("update_affiliate_status")
    def update_affiliate_status(
        self,
        affiliate_id: str,
        new_status: AffiliateStatus | str,
        acting_admin_id: str,
        reason: str = "",
    ) -> AffiliateRecord:
        """
        Generic administrative status change (WAITLISTED, SUSPENDED, REJECTED)

        Raises:
            Forbidden: target is ACTIVE - refused and logged for audit
            Forbidden: the acting admin is not an administrator
            InvalidState: target is PENDING or the transition is not allowed
        """
        self._require_admin(
            acting_admin_id, "update_affiliate_status", affiliate_id, reason
        )
        command = UpdateAffiliateStatus(
            affiliate_id=affiliate_id,
            new_status=new_status,
            reason=reason,
            acting_admin_id=acting_admin_id,
        )
        command_id = generate_id()
        try:
            with LogOperation(
                logger,
                "update_affiliate_status",
                affiliate_id=affiliate_id,
                new_status=command.new_status.value,
            ):
                self._execute(
                    ROSTER_STREAM,
                    lambda: self.affiliate_handlers.handle_update_status(
                        command, command_id, acting_admin_id, self.affiliate_roster
                    ),
                )
        except Forbidden:
            logger.warning(
                "Direct ACTIVE status write refused",
                affiliate_id=affiliate_id,
                actor_id=acting_admin_id,
                reason=reason,
            )
            raise
        active_affiliates.set(self.affiliate_roster.active_count())
        return self.affiliate_roster.get(affiliate_id)

    def suspend_affiliate(
        self, affiliate_id: str, acting_admin_id: str, reason: str = ""
    ) -> AffiliateRecord:
        return self.update_affiliate_status(
            affiliate_id, AffiliateStatus.SUSPENDED, acting_admin_id, reason
        )

    def reject_affiliate(
        self, affiliate_id: str, acting_admin_id: str, reason: str = ""
    ) -> AffiliateRecord:
        return self.update_affiliate_status(
            affiliate_id, AffiliateStatus.REJECTED, acting_admin_id, reason
        )

    def get_affiliate(self, affiliate_id: str) -> AffiliateRecord:
        record = self.affiliate_roster.get(affiliate_id)
        if record is None:
            raise NotFound("Affiliate", affiliate_id)
        return record

    def list_affiliates(
        self, status: AffiliateStatus | str | None = None
    ) -> list[AffiliateRecord]:
        """Affiliates by queue position, then join order"""
        return self.affiliate_roster.list_records(AffiliateStatus(status) if status else None)

    def affiliate_stats(self) -> AffiliateStats:
        counts = self.affiliate_roster.counts()
        cap = self.policy.max_active_affiliates
        return AffiliateStats(
            counts=counts,
            max_active=cap,
            remaining_slots=max(cap - counts[AffiliateStatus.ACTIVE], 0),
        )

    # ------------------------------------------------------------------
    # Role verification
    # ------------------------------------------------------------------

    @track_command("set_role_pin")
    def set_role_pin(self, user_id: str, role: ManagementRole | str, pin: str) -> None:
        """Configure the PIN for a management role (4-8 digits by default)"""
        command = SetRolePin.model_validate(
            {"user_id": user_id, "role": role, "pin": pin},
            context={"policy": self.policy},
        )
        command_id = generate_id()
        with LogOperation(logger, "set_role_pin", user_id=user_id, role=command.role.value):
            self._execute(
                role_security_stream(user_id),
                lambda: self.role_handlers.handle_set_pin(
                    command, command_id, user_id, self.role_security
                ),
            )

    def has_pin_configured(self, user_id: str, role: ManagementRole | str) -> bool:
        return self.role_security.has_pin(user_id, ManagementRole.parse(role))

    def verify_with_pin(
        self, user_id: str, role: ManagementRole | str, pin: str
    ) -> VerificationState:
        """Open a verified window for the role; VerificationFailed on a bad PIN"""
        return self._verify(user_id, role, VerificationMethod.PIN, pin)

    def verify_with_password(
        self, user_id: str, role: ManagementRole | str, password: str
    ) -> VerificationState:
        """Open a verified window for the role after password re-authentication"""
        return self._verify(user_id, role, VerificationMethod.PASSWORD, password)

    @track_command("verify_role")
    def _verify(
        self,
        user_id: str,
        role: ManagementRole | str,
        method: VerificationMethod,
        credential: str,
    ) -> VerificationState:
        command = VerifyRole(user_id=user_id, role=role, method=method, credential=credential)
        command_id = generate_id()
        events = self._execute(
            role_security_stream(user_id),
            lambda: self.role_handlers.handle_verify(
                command, command_id, user_id, self.role_security, self.password_verifier
            ),
        )
        event = events[0]

        if event.event_type == "RoleVerificationFailed":
            failed = RoleVerificationFailed.model_validate(event.payload)
            role_verification_attempts_total.labels(
                method=method.value, outcome="failure"
            ).inc()
            logger.warning(
                "Role verification failed",
                user_id=user_id,
                role=command.role.security_tag,
                method=method.value,
                reason=failed.reason,
            )
            raise VerificationFailed(command.role.value, failed.reason)

        succeeded = RoleVerificationSucceeded.model_validate(event.payload)
        state = self.sessions.grant(
            user_id,
            command.role,
            method,
            succeeded.verified_at,
            succeeded.expires_at,
        )
        role_verification_attempts_total.labels(method=method.value, outcome="success").inc()
        logger.info(
            "Role verified",
            user_id=user_id,
            role=command.role.security_tag,
            method=method.value,
            expires_at=state.expires_at.isoformat(),
        )
        return state

    def is_verified(self, user_id: str, role: ManagementRole | str) -> bool:
        """True iff a session exists and now < expires_at"""
        return self.sessions.is_verified(user_id, ManagementRole.parse(role))

    def get_verification(
        self, user_id: str, role: ManagementRole | str
    ) -> VerificationState | None:
        return self.sessions.get_state(user_id, ManagementRole.parse(role))

    def clear_verification(
        self, user_id: str, role: ManagementRole | str | None = None
    ) -> list[ManagementRole]:
        """Revoke one role's session, or all of the user's sessions when role is None"""
        parsed = ManagementRole.parse(role) if role is not None else None
        cleared = self.sessions.clear(user_id, parsed)
        self._record_cleared(user_id, cleared, "cleared")
        return cleared

    def sign_out(self, user_id: str) -> list[ManagementRole]:
        """Drop every verified role for the user"""
        cleared = self.sessions.sign_out(user_id)
        self._record_cleared(user_id, cleared, "sign_out")
        return cleared

    def _record_cleared(self, user_id: str, roles: list[ManagementRole], reason: str) -> None:
        if not roles:
            return
        command_id = generate_id()
        self._execute(
            role_security_stream(user_id),
            lambda: self.role_handlers.handle_session_cleared(
                user_id, roles, reason, command_id, user_id, self.role_security
            ),
        )

    def reap_expired_sessions(self) -> list[Event]:
        """Sweep expired role sessions and record each expiry"""
        recorded: list[Event] = []
        for user_id, state in self.sessions.sweep():
            command_id = generate_id()
            recorded.extend(
                self._execute(
                    role_security_stream(user_id),
                    lambda: self.role_handlers.handle_session_expired(
                        user_id, state.role, state.expires_at, command_id, self.role_security
                    ),
                )
            )
            role_sessions_expired_total.inc()
            logger.info(
                "Role session expired", user_id=user_id, role=state.role.security_tag
            )
        return recorded

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def _close_expired_requirements(self) -> list[Event]:
        closed: list[Event] = []
        now = self.time_provider.now()
        for requirement in self.requirement_book.list_expired_active(now):
            command_id = generate_id()
            try:
                closed.extend(
                    self._execute(
                        requirement_stream(requirement.requirement_id),
                        lambda: self.requirement_handlers.handle_close_expired(
                            requirement.requirement_id, command_id, self.requirement_book
                        ),
                    )
                )
            except Conflict as e:
                logger.warning(
                    "Deadline close skipped",
                    requirement_id=requirement.requirement_id,
                    error=str(e),
                )
        return closed

    def tick(self) -> TickResult:
        """
        Run housekeeping: close requirements past their deadline and reap
        expired role sessions
        """
        return self.tick_engine.tick()

    def start_background_tasks(self) -> None:
        """Start the role-session reaper thread"""
        self.session_reaper.start()

    def close(self) -> None:
        self.session_reaper.stop()

    def __enter__(self) -> "ProcureSaathi":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def health(self) -> dict:
        """Readiness snapshot used by the health endpoint"""
        return {
            "events": self.event_store.count_events(),
            "streams": self.event_store.count_streams(),
            "requirements": len(self.requirement_book.requirements),
            "active_affiliates": self.affiliate_roster.active_count(),
            "role_sessions": self.sessions.session_count(),
        }
