"""
Role verification sessions

Sessions are per-process memory: an explicit context object per user,
created on sign-in, dropped on sign-out. Expiry is enforced twice. Every
read compares ``now < expires_at`` live, and a background SessionReaper
sweeps expired entries out on a fixed interval, so there are no per-entry
timers to leak.
"""

import threading
from datetime import datetime, timedelta
from typing import Callable

from procure_saathi.kernel.logging import get_logger
from procure_saathi.kernel.time import TimeProvider
from procure_saathi.roles.models import ManagementRole, VerificationMethod, VerificationState

logger = get_logger(__name__)


class RoleVerificationContext:
    """One user's verified roles"""

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        self._states: dict[ManagementRole, VerificationState] = {}

    def grant(self, state: VerificationState) -> None:
        self._states[state.role] = state

    def get(self, role: ManagementRole, now: datetime) -> VerificationState | None:
        state = self._states.get(role)
        if state is None or not state.is_valid(now):
            return None
        return state

    def clear(self, role: ManagementRole | None = None) -> list[ManagementRole]:
        """Drop one role, or every role when role is None"""
        if role is None:
            cleared = list(self._states)
            self._states.clear()
            return cleared
        return [role] if self._states.pop(role, None) is not None else []

    def pop_expired(self, now: datetime) -> list[VerificationState]:
        expired = [s for s in self._states.values() if not s.is_valid(now)]
        for state in expired:
            del self._states[state.role]
        return expired

    def __len__(self) -> int:
        return len(self._states)


class RoleSessionManager:
    """
    Thread-safe registry of per-user verification contexts

    Example:
        >>> manager = RoleSessionManager(time_provider, ttl_minutes=15)
        >>> manager.grant("u1", ManagementRole.CFO, VerificationMethod.PIN, now, now + ttl)
        >>> manager.is_verified("u1", ManagementRole.CFO)
        True
    """

    def __init__(self, time_provider: TimeProvider, ttl_minutes: int = 15) -> None:
        self.time_provider = time_provider
        self.ttl = timedelta(minutes=ttl_minutes)
        self._contexts: dict[str, RoleVerificationContext] = {}
        self._lock = threading.Lock()

    def grant(
        self,
        user_id: str,
        role: ManagementRole,
        method: VerificationMethod,
        verified_at: datetime,
        expires_at: datetime | None = None,
    ) -> VerificationState:
        state = VerificationState(
            role=role,
            method=method,
            verified_at=verified_at,
            expires_at=expires_at or verified_at + self.ttl,
        )
        with self._lock:
            context = self._contexts.setdefault(user_id, RoleVerificationContext(user_id))
            context.grant(state)
        return state

    def get_state(self, user_id: str, role: ManagementRole) -> VerificationState | None:
        now = self.time_provider.now()
        with self._lock:
            context = self._contexts.get(user_id)
            return context.get(role, now) if context else None

    def is_verified(self, user_id: str, role: ManagementRole) -> bool:
        """True strictly before expires_at, False at and after it"""
        return self.get_state(user_id, role) is not None

    def clear(self, user_id: str, role: ManagementRole | None = None) -> list[ManagementRole]:
        with self._lock:
            context = self._contexts.get(user_id)
            if context is None:
                return []
            cleared = context.clear(role)
            if not len(context):
                del self._contexts[user_id]
            return cleared

    def sign_out(self, user_id: str) -> list[ManagementRole]:
        """Drop the user's whole context"""
        with self._lock:
            context = self._contexts.pop(user_id, None)
        return context.clear() if context else []

    def sweep(self) -> list[tuple[str, VerificationState]]:
        """Remove expired sessions; returns (user_id, state) for each"""
        now = self.time_provider.now()
        removed: list[tuple[str, VerificationState]] = []
        with self._lock:
            for user_id, context in list(self._contexts.items()):
                removed.extend((user_id, state) for state in context.pop_expired(now))
                if not len(context):
                    del self._contexts[user_id]
        return removed

    def session_count(self) -> int:
        with self._lock:
            return sum(len(c) for c in self._contexts.values())


class SessionReaper:
    """
    Background sweep of expired role sessions

    Runs ``sweep`` every ``interval_seconds`` on a daemon thread until
    stopped. Errors in a sweep are logged and the loop carries on.
    """

    def __init__(self, sweep: Callable[[], object], interval_seconds: float = 30.0) -> None:
        self._sweep = sweep
        self.interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name="role-session-reaper", daemon=True
        )
        self._thread.start()
        logger.info("Session reaper started", interval_seconds=self.interval_seconds)

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Session reaper stopped")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                self._sweep()
            except Exception as e:
                logger.error("Session sweep failed", error=str(e), exc_info=True)
