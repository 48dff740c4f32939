"""
Custom exceptions for ProcureSaathi

A small, explicit error taxonomy. Lifecycle violations, lost races and
authorization failures are all recoverable, user-facing outcomes: every error
carries a plain-language message and the structured attributes a caller needs
to render it.

Fun fact: HTTP 409 Conflict was defined in 1999 (RFC 2616) for exactly the
situation a losing accept-bid finds itself in - someone else got there first.
"""


class ProcureError(Exception):
    """Base exception for all ProcureSaathi errors"""

    pass


# Event store errors


class EventStoreError(ProcureError):
    """Base class for event store errors"""

    pass


class StreamVersionConflict(EventStoreError):
    """
    Raised when stream version doesn't match expected (optimistic locking)

    Indicates concurrent modification - caller should reload and retry.
    """

    def __init__(
        self, stream_id: str, expected_version: int, actual_version: int
    ) -> None:
        self.stream_id = stream_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Stream {stream_id} version mismatch: "
            f"expected {expected_version}, got {actual_version}"
        )


# Domain taxonomy


class InvalidState(ProcureError):
    """
    Raised when an operation targets an entity not in the required lifecycle state

    Example: bidding on a closed requirement.
    """

    def __init__(
        self,
        message: str,
        *,
        entity_id: str | None = None,
        current_state: str | None = None,
    ) -> None:
        self.entity_id = entity_id
        self.current_state = current_state
        super().__init__(message)


class Conflict(ProcureError):
    """
    Raised when a concurrent mutation raced and this call lost

    An expected, named outcome - concurrent callers are anticipated.
    """

    def __init__(
        self,
        message: str,
        *,
        entity_id: str | None = None,
        current_state: str | None = None,
    ) -> None:
        self.entity_id = entity_id
        self.current_state = current_state
        super().__init__(message)


class Forbidden(ProcureError):
    """
    Raised when the caller lacks authorization for the entity or operation

    The message is deliberately generic so that it never leaks whether
    the entity exists. The reason is kept on the instance for audit logs.
    """

    def __init__(self, reason: str = "", *, actor_id: str | None = None) -> None:
        self.reason = reason
        self.actor_id = actor_id
        super().__init__("Access denied")


class NotFound(ProcureError):
    """Raised when a referenced entity does not exist (or parent/child ids mismatch)"""

    def __init__(self, entity_type: str, entity_id: str) -> None:
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} not found")


class VerificationFailed(ProcureError):
    """Raised when a PIN or password check fails - no session state is created"""

    def __init__(self, role: str, reason: str) -> None:
        self.role = role
        self.reason = reason
        super().__init__(f"Verification failed for role '{role}': {reason}")
