"""
ProcureSaathi CLI

Command-line interface for the sealed-bid marketplace core.
Provides commands for requirements, bids, reveals, affiliates and housekeeping.

Usage:
    procure init --db market.db
    procure requirement create --buyer b1 --title "Steel rods" --category metals ...
    procure bid submit --requirement <id> --supplier s1 --amount 1000 --days 7
    procure bid list --requirement <id> --order amount_asc
    procure bid accept --requirement <id> --bid <bid_id> --buyer b1
    procure affiliate activate-next
    procure tick
"""

import json
import os
from contextlib import contextmanager
from datetime import timedelta
from pathlib import Path
from typing import Iterator, Optional

import typer
from typing_extensions import Annotated

from procure_saathi.affiliates import StaticAdminDirectory
from procure_saathi.kernel.errors import ProcureError
from procure_saathi.kernel.logging import configure_from_env
from procure_saathi.marketplace import ProcureSaathi

# Logs go to stderr so JSON output on stdout stays clean
configure_from_env()

app = typer.Typer(
    name="procure",
    help="ProcureSaathi - sealed-bid procurement marketplace core",
    add_completion=False,
)

# Sub-apps
requirement_app = typer.Typer(help="Requirement (RFQ) commands")
bid_app = typer.Typer(help="Sealed bid commands")
supplier_app = typer.Typer(help="Supplier directory commands")
reveal_app = typer.Typer(help="Supplier reveal commands")
affiliate_app = typer.Typer(help="Affiliate FIFO queue commands")
role_app = typer.Typer(help="Management role verification commands")

app.add_typer(requirement_app, name="requirement")
app.add_typer(bid_app, name="bid")
app.add_typer(supplier_app, name="supplier")
app.add_typer(reveal_app, name="reveal")
app.add_typer(affiliate_app, name="affiliate")
app.add_typer(role_app, name="role")

# Global state
DEFAULT_DB = Path(os.getenv("PROCURE_DB", ".procure.db"))

DbOption = Annotated[Optional[Path], typer.Option("--db", help="Database path")]
JsonOption = Annotated[bool, typer.Option("--json", help="Output as JSON")]


def get_market(db_path: Optional[Path] = None) -> ProcureSaathi:
    """Get marketplace instance"""
    db = db_path or DEFAULT_DB
    if not db.exists():
        typer.echo(f"Error: Database not found: {db}", err=True)
        typer.echo(f"Run 'procure init --db {db}' to initialize", err=True)
        raise typer.Exit(1)
    return ProcureSaathi(str(db), admin_directory=StaticAdminDirectory.from_env())


@contextmanager
def reporting_errors() -> Iterator[None]:
    """Turn refused operations into a one-line error and exit code 1"""
    try:
        yield
    except (ProcureError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


def _dump(model) -> str:
    return json.dumps(model.model_dump(mode="json"), indent=2)


# Initialization command


@app.command()
def init(
    db: Annotated[
        Path,
        typer.Option(help="Database path"),
    ] = DEFAULT_DB,
) -> None:
    """Initialize a new marketplace database"""
    if db.exists():
        typer.echo(f"Error: Database already exists: {db}", err=True)
        raise typer.Exit(1)

    ProcureSaathi(str(db))
    typer.echo(f"✓ Initialized marketplace database: {db}")


# Requirement commands


@requirement_app.command("create")
def requirement_create(
    buyer: Annotated[str, typer.Option("--buyer", help="Buyer ID")],
    title: Annotated[str, typer.Option("--title", help="Requirement title")],
    category: Annotated[str, typer.Option("--category", help="Product category")],
    quantity: Annotated[str, typer.Option("--quantity", help="Quantity")],
    unit: Annotated[str, typer.Option("--unit", help="Unit of measure")],
    location: Annotated[str, typer.Option("--location", help="Delivery location")],
    deadline_days: Annotated[
        int,
        typer.Option("--deadline-days", help="Days until bidding closes"),
    ] = 7,
    trade_type: Annotated[
        str,
        typer.Option("--trade-type", help="domestic_india, import or export"),
    ] = "domestic_india",
    description: Annotated[
        Optional[str],
        typer.Option("--description", help="Free-text description"),
    ] = None,
    db: DbOption = None,
) -> None:
    """Post a new requirement"""
    market = get_market(db)

    with reporting_errors():
        deadline = market.time_provider.now() + timedelta(days=deadline_days)
        requirement = market.create_requirement(
            buyer_id=buyer,
            title=title,
            category=category,
            quantity=quantity,
            unit=unit,
            delivery_location=location,
            deadline=deadline,
            trade_type=trade_type,
            description=description,
        )

    typer.echo(f"✓ Created requirement: {requirement.requirement_id}")
    typer.echo(f"  Title: {requirement.title}")
    typer.echo(f"  Deadline: {requirement.deadline.isoformat()}")


@requirement_app.command("list")
def requirement_list(
    status: Annotated[
        Optional[str],
        typer.Option("--status", help="Filter by status"),
    ] = None,
    buyer: Annotated[
        Optional[str],
        typer.Option("--buyer", help="Filter by buyer"),
    ] = None,
    db: DbOption = None,
) -> None:
    """List requirements, newest first"""
    market = get_market(db)

    with reporting_errors():
        requirements = market.list_requirements(status=status, buyer_id=buyer)

    if not requirements:
        typer.echo("No requirements")
        return

    typer.echo(f"Requirements ({len(requirements)}):")
    for r in requirements:
        typer.echo(f"  {r.requirement_id}: {r.title} [{r.status.value}]")


@requirement_app.command("close")
def requirement_close(
    requirement_id: Annotated[str, typer.Option("--id", help="Requirement ID")],
    buyer: Annotated[str, typer.Option("--buyer", help="Owning buyer ID")],
    reason: Annotated[str, typer.Option("--reason", help="Close reason")] = "closed_by_buyer",
    db: DbOption = None,
) -> None:
    """Close a requirement without award"""
    market = get_market(db)
    with reporting_errors():
        requirement = market.close_requirement(requirement_id, buyer, reason)
    typer.echo(f"✓ Requirement {requirement.requirement_id} is {requirement.status.value}")


@requirement_app.command("cancel")
def requirement_cancel(
    requirement_id: Annotated[str, typer.Option("--id", help="Requirement ID")],
    buyer: Annotated[str, typer.Option("--buyer", help="Owning buyer ID")],
    reason: Annotated[str, typer.Option("--reason", help="Cancel reason")] = "cancelled_by_buyer",
    db: DbOption = None,
) -> None:
    """Cancel a requirement"""
    market = get_market(db)
    with reporting_errors():
        requirement = market.cancel_requirement(requirement_id, buyer, reason)
    typer.echo(f"✓ Requirement {requirement.requirement_id} is {requirement.status.value}")


# Bid commands


@bid_app.command("submit")
def bid_submit(
    requirement_id: Annotated[str, typer.Option("--requirement", help="Requirement ID")],
    supplier: Annotated[str, typer.Option("--supplier", help="Supplier ID")],
    amount: Annotated[str, typer.Option("--amount", help="Bid amount")],
    days: Annotated[int, typer.Option("--days", help="Delivery days")],
    terms: Annotated[Optional[str], typer.Option("--terms", help="Terms")] = None,
    db: DbOption = None,
) -> None:
    """Submit a sealed bid"""
    market = get_market(db)

    with reporting_errors():
        bid = market.submit_bid(requirement_id, supplier, amount, days, terms)

    typer.echo(f"✓ Submitted bid: {bid.bid_id}")
    typer.echo(f"  Amount: {bid.bid_amount}  Fee: {bid.service_fee}  Total: {bid.total_amount}")


@bid_app.command("list")
def bid_list(
    requirement_id: Annotated[str, typer.Option("--requirement", help="Requirement ID")],
    order: Annotated[
        str,
        typer.Option("--order", help="amount_asc, amount_desc, delivery_asc or newest"),
    ] = "amount_asc",
    json_output: JsonOption = False,
    db: DbOption = None,
) -> None:
    """List anonymized bids for comparison"""
    market = get_market(db)

    with reporting_errors():
        views = market.list_bids(requirement_id, order)

    if json_output:
        typer.echo(json.dumps([v.model_dump(mode="json") for v in views], indent=2))
        return

    typer.echo(f"Bids for {requirement_id}: {len(views)}")
    for v in views:
        typer.echo(
            f"  {v.bid_id}: {v.supplier_code} total {v.total_amount} "
            f"in {v.delivery_days}d [{v.status.value}]"
        )


@bid_app.command("accept")
def bid_accept(
    requirement_id: Annotated[str, typer.Option("--requirement", help="Requirement ID")],
    bid_id: Annotated[str, typer.Option("--bid", help="Bid ID")],
    buyer: Annotated[str, typer.Option("--buyer", help="Owning buyer ID")],
    db: DbOption = None,
) -> None:
    """Accept a bid and award the requirement"""
    market = get_market(db)

    with reporting_errors():
        result = market.accept_bid(requirement_id, bid_id, buyer)

    typer.echo(f"✓ Requirement {requirement_id} awarded to bid {result.accepted_bid.bid_id}")
    typer.echo(f"  Rejected bids: {len(result.rejected_bids)}")


# Supplier commands


@supplier_app.command("register")
def supplier_register(
    supplier_id: Annotated[str, typer.Option("--id", help="Supplier ID")],
    name: Annotated[str, typer.Option("--name", help="Contact name")],
    company: Annotated[str, typer.Option("--company", help="Company name")],
    phone: Annotated[str, typer.Option("--phone", help="Phone")],
    email: Annotated[str, typer.Option("--email", help="Email")],
    city: Annotated[Optional[str], typer.Option("--city", help="City")] = None,
    gstin: Annotated[Optional[str], typer.Option("--gstin", help="GSTIN")] = None,
    db: DbOption = None,
) -> None:
    """Register a supplier's private contact profile"""
    market = get_market(db)
    with reporting_errors():
        profile = market.register_supplier(
            supplier_id, name, company, phone, email, city=city, gstin=gstin
        )
    typer.echo(f"✓ Registered supplier: {profile.supplier_id}")


# Reveal commands


@reveal_app.command("request")
def reveal_request(
    requirement_id: Annotated[str, typer.Option("--requirement", help="Requirement ID")],
    supplier: Annotated[str, typer.Option("--supplier", help="Supplier ID")],
    bid_id: Annotated[str, typer.Option("--bid", help="Bid ID")],
    buyer: Annotated[str, typer.Option("--buyer", help="Buyer ID")],
    db: DbOption = None,
) -> None:
    """Request a supplier reveal"""
    market = get_market(db)
    with reporting_errors():
        reveal = market.request_reveal(requirement_id, supplier, bid_id, buyer)
    typer.echo(f"✓ Reveal {reveal.status.value} (fee {reveal.reveal_fee})")


@reveal_app.command("pay")
def reveal_pay(
    requirement_id: Annotated[str, typer.Option("--requirement", help="Requirement ID")],
    supplier: Annotated[str, typer.Option("--supplier", help="Supplier ID")],
    buyer: Annotated[str, typer.Option("--buyer", help="Buyer ID")],
    reference: Annotated[str, typer.Option("--reference", help="Payment reference")],
    db: DbOption = None,
) -> None:
    """Confirm the reveal fee payment"""
    market = get_market(db)
    with reporting_errors():
        reveal = market.confirm_reveal_payment(requirement_id, supplier, buyer, reference)
    typer.echo(f"✓ Reveal {reveal.status.value}")


@reveal_app.command("confirm")
def reveal_confirm(
    requirement_id: Annotated[str, typer.Option("--requirement", help="Requirement ID")],
    supplier: Annotated[str, typer.Option("--supplier", help="Supplier ID")],
    buyer: Annotated[str, typer.Option("--buyer", help="Buyer ID")],
    db: DbOption = None,
) -> None:
    """Complete a paid reveal"""
    market = get_market(db)
    with reporting_errors():
        reveal = market.confirm_reveal(requirement_id, supplier, buyer)
    typer.echo(f"✓ Reveal {reveal.status.value}")


@reveal_app.command("contact")
def reveal_contact(
    requirement_id: Annotated[str, typer.Option("--requirement", help="Requirement ID")],
    supplier: Annotated[str, typer.Option("--supplier", help="Supplier ID")],
    buyer: Annotated[str, typer.Option("--buyer", help="Buyer ID")],
    db: DbOption = None,
) -> None:
    """Show revealed supplier contact details"""
    market = get_market(db)
    with reporting_errors():
        contact = market.get_revealed_contact(requirement_id, supplier, buyer)

    if contact is None:
        typer.echo("Contact not revealed yet")
        return
    typer.echo(_dump(contact))


# Affiliate commands


@affiliate_app.command("join")
def affiliate_join(
    user: Annotated[str, typer.Option("--user", help="User ID")],
    db: DbOption = None,
) -> None:
    """Join the affiliate programme"""
    market = get_market(db)
    with reporting_errors():
        record = market.join_affiliate(user)
    typer.echo(f"✓ Affiliate {record.affiliate_id} is {record.status.value}")
    typer.echo(f"  Referral code: {record.referral_code}")


@affiliate_app.command("activate")
def affiliate_activate(
    affiliate_id: Annotated[str, typer.Option("--id", help="Affiliate ID")],
    db: DbOption = None,
) -> None:
    """FIFO-activate an affiliate"""
    market = get_market(db)
    with reporting_errors():
        result = market.activate_fifo(affiliate_id)
    typer.echo(json.dumps(result.to_dict()))


@affiliate_app.command("activate-next")
def affiliate_activate_next(db: DbOption = None) -> None:
    """Activate whoever is at the head of the queue"""
    market = get_market(db)
    with reporting_errors():
        result = market.activate_next()
    if result is None:
        typer.echo("Queue is empty")
        return
    typer.echo(f"{result.affiliate_id}: {json.dumps(result.to_dict())}")


@affiliate_app.command("status")
def affiliate_status(
    affiliate_id: Annotated[str, typer.Option("--id", help="Affiliate ID")],
    status: Annotated[str, typer.Option("--status", help="WAITLISTED, SUSPENDED or REJECTED")],
    admin: Annotated[str, typer.Option("--admin", help="Acting admin ID (listed in PROCURE_ADMIN_IDS)")],
    reason: Annotated[str, typer.Option("--reason", help="Reason")] = "",
    db: DbOption = None,
) -> None:
    """Change an affiliate's status administratively"""
    market = get_market(db)
    with reporting_errors():
        record = market.update_affiliate_status(affiliate_id, status, admin, reason)
    typer.echo(f"✓ Affiliate {record.affiliate_id} is {record.status.value}")


@affiliate_app.command("stats")
def affiliate_stats(json_output: JsonOption = False, db: DbOption = None) -> None:
    """Show affiliate counts and remaining slots"""
    market = get_market(db)
    stats = market.affiliate_stats()

    if json_output:
        typer.echo(_dump(stats))
        return

    for status, count in stats.counts.items():
        typer.echo(f"  {status.value}: {count}")
    typer.echo(f"  Remaining slots: {stats.remaining_slots}/{stats.max_active}")


# Role commands


@role_app.command("set-pin")
def role_set_pin(
    user: Annotated[str, typer.Option("--user", help="User ID")],
    role: Annotated[str, typer.Option("--role", help="cfo, ceo, hr or manager")],
    pin: Annotated[str, typer.Option("--pin", prompt=True, hide_input=True, help="PIN")],
    db: DbOption = None,
) -> None:
    """Configure the verification PIN for a management role"""
    market = get_market(db)
    with reporting_errors():
        market.set_role_pin(user, role, pin)
    typer.echo(f"✓ PIN configured for {user} ({role})")


# Housekeeping


@app.command()
def tick(db: DbOption = None) -> None:
    """Close requirements past their deadline and reap expired sessions"""
    market = get_market(db)

    result = market.tick()

    typer.echo(f"✓ Tick completed: {result.tick_id}")
    typer.echo(f"  Requirements closed: {len(result.closed_requirement_ids)}")
    typer.echo(f"  Sessions expired: {result.expired_sessions}")


@app.command()
def health(db: DbOption = None) -> None:
    """Show event store counts"""
    market = get_market(db)
    typer.echo(json.dumps(market.health(), indent=2))


@app.command()
def serve(
    port: Annotated[int, typer.Option("--port", help="Port to listen on")] = 8080,
    metrics_port: Annotated[
        Optional[int],
        typer.Option("--metrics-port", help="Also expose Prometheus metrics on this port"),
    ] = None,
    db: DbOption = None,
) -> None:
    """Run the HTTP API"""
    from procure_saathi.api_server import initialize_api_server, run_api_server
    from procure_saathi.kernel.metrics import start_metrics_server

    market = get_market(db)
    if metrics_port:
        start_metrics_server(port=metrics_port)
    initialize_api_server(market)
    market.start_background_tasks()
    try:
        run_api_server(port=port)
    finally:
        market.close()


def main() -> None:
    """Main entry point"""
    app()


if __name__ == "__main__":
    main()
