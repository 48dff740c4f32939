"""
Prometheus metrics collection for ProcureSaathi.

Provides observability into bidding, reveals, the affiliate queue and
role verification.
"""

import time
from collections.abc import Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from prometheus_client import Counter, Gauge, Histogram, start_http_server

# ============================================================================
# Event Store Metrics
# ============================================================================

events_appended_total = Counter(
    "procure_events_appended_total",
    "Total number of events appended to the event store",
    ["stream_type", "event_type"],
)

stream_version_conflicts_total = Counter(
    "procure_stream_version_conflicts_total",
    "Total number of optimistic locking version conflicts",
    ["stream_type"],
)

# ============================================================================
# Command Processing Metrics
# ============================================================================

command_duration_seconds = Histogram(
    "procure_command_duration_seconds",
    "Duration of command processing in seconds",
    ["command_type"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

commands_processed_total = Counter(
    "procure_commands_processed_total",
    "Total number of commands processed",
    ["command_type", "status"],  # status: success, refused, failure
)

# ============================================================================
# Bid Ledger Metrics
# ============================================================================

bids_submitted_total = Counter(
    "procure_bids_submitted_total",
    "Total number of bids submitted",
    ["trade_type"],
)

bid_acceptance_total = Counter(
    "procure_bid_acceptance_total",
    "Accept-bid outcomes",
    ["outcome"],  # awarded, conflict
)

# ============================================================================
# Reveal Gate Metrics
# ============================================================================

reveal_transitions_total = Counter(
    "procure_reveal_transitions_total",
    "Reveal request status transitions",
    ["to_status"],
)

reveal_payment_failures_total = Counter(
    "procure_reveal_payment_failures_total",
    "Failed reveal payments (request stays retryable)",
)

# ============================================================================
# Affiliate Queue Metrics
# ============================================================================

affiliate_activations_total = Counter(
    "procure_affiliate_activations_total",
    "FIFO activation outcomes",
    ["outcome"],  # ACTIVE, LIMIT_REACHED
)

active_affiliates = Gauge(
    "procure_active_affiliates",
    "Number of ACTIVE affiliates",
)

# ============================================================================
# Role Verification Metrics
# ============================================================================

role_verification_attempts_total = Counter(
    "procure_role_verification_attempts_total",
    "Role verification attempts",
    ["method", "outcome"],
)

role_sessions_expired_total = Counter(
    "procure_role_sessions_expired_total",
    "Role sessions removed by the expiry sweep",
)

# ============================================================================
# Helper Functions
# ============================================================================

P = ParamSpec("P")
R = TypeVar("R")


def track_command(command_type: str) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Decorator to track command duration and outcome.

    Domain refusals (ProcureError) are counted as "refused", anything
    else as "failure".
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            from procure_saathi.kernel.errors import ProcureError

            start = time.perf_counter()
            status = "success"
            try:
                return func(*args, **kwargs)
            except ProcureError:
                status = "refused"
                raise
            except Exception:
                status = "failure"
                raise
            finally:
                command_duration_seconds.labels(command_type=command_type).observe(
                    time.perf_counter() - start
                )
                commands_processed_total.labels(
                    command_type=command_type, status=status
                ).inc()

        return wrapper

    return decorator


def start_metrics_server(port: int = 9090) -> None:
    """Start Prometheus metrics HTTP server."""
    start_http_server(port)
