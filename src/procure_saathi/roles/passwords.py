"""
Password re-authentication

Checking a password belongs to the authentication system, which is not
part of this service. The marketplace takes any PasswordVerifier.
"""

import threading
from typing import Protocol

from procure_saathi.roles.pins import hash_secret, verify_secret


class PasswordVerifier(Protocol):
    """Re-authenticates a user with their account password"""

    def verify(self, user_id: str, password: str) -> bool:
        ...


class InMemoryPasswordVerifier:
    """
    Password verifier backed by an in-memory table of salted hashes

    Used by the CLI and tests; a deployment plugs in its auth provider.
    """

    def __init__(self, passwords: dict[str, str] | None = None) -> None:
        self._lock = threading.Lock()
        self._hashes: dict[str, str] = {}
        for user_id, password in (passwords or {}).items():
            self.set_password(user_id, password)

    def set_password(self, user_id: str, password: str) -> None:
        with self._lock:
            self._hashes[user_id] = hash_secret(password, iterations=10_000)

    def verify(self, user_id: str, password: str) -> bool:
        with self._lock:
            encoded = self._hashes.get(user_id)
        return encoded is not None and verify_secret(password, encoded)
