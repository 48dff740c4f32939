"""
Marketplace Policy - tunable parameters for the marketplace core

The MarketplacePolicy holds the numbers the fairness and privacy guarantees
are built on: the affiliate cap, the verification window, the reveal fee
and the service fee schedule.

Fun fact: The "first come, first served" rule was codified in English common
law for patent priority long before anyone built a queue data structure.
"""

from decimal import Decimal

from pydantic import BaseModel, Field, model_validator


class MarketplacePolicy(BaseModel):
    """
    Marketplace tunables

    Defaults match the production marketplace: 50 affiliate slots,
    15-minute role verification windows, a 499 reveal fee and a
    0.5% / 1% service fee split between domestic and cross-border trade.
    """

    policy_version: str = Field(
        default="1.0",
        description="Policy version for tracking changes over time",
    )

    # Affiliate FIFO queue
    max_active_affiliates: int = Field(
        default=50,
        ge=1,
        description="Hard cap on concurrently ACTIVE affiliates",
    )

    # Role verification
    role_verification_ttl_minutes: int = Field(
        default=15,
        ge=1,
        le=240,
        description="Lifetime of an elevated role session",
    )

    pin_min_length: int = Field(default=4, ge=4, description="Minimum PIN digits")
    pin_max_length: int = Field(default=8, le=12, description="Maximum PIN digits")

    session_sweep_interval_seconds: float = Field(
        default=30.0,
        gt=0,
        description="How often the background reaper sweeps expired role sessions",
    )

    # Reveal gate
    reveal_fee: Decimal = Field(
        default=Decimal("499"),
        ge=0,
        description="Fee charged to a buyer to unlock one supplier's contact",
    )

    # Pricing
    domestic_service_fee_rate: Decimal = Field(
        default=Decimal("0.005"),
        ge=0,
        lt=1,
        description="Service fee rate for domestic_india trade",
    )

    cross_border_service_fee_rate: Decimal = Field(
        default=Decimal("0.01"),
        ge=0,
        lt=1,
        description="Service fee rate for import/export trade",
    )

    # Anonymization
    supplier_code_prefix: str = Field(
        default="PS-",
        min_length=1,
        description="Prefix of the pseudonymous supplier code shown on bids",
    )

    # Concurrency
    version_conflict_retries: int = Field(
        default=5,
        ge=1,
        description="Attempts for an operation that loses an optimistic-lock race",
    )

    @model_validator(mode="after")
    def _check_pin_bounds(self) -> "MarketplacePolicy":
        if self.pin_min_length > self.pin_max_length:
            raise ValueError("pin_min_length must not exceed pin_max_length")
        return self


# Default global policy instance
default_policy = MarketplacePolicy()
