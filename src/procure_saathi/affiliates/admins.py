"""
Administrator lookup

Who counts as an administrator is decided by the account system, not by
this service. Roster status changes and FIFO activation requested by a
named actor ask an AdminDirectory first.
"""

import os
from typing import Iterable, Protocol


class AdminDirectory(Protocol):
    """Answers whether an actor holds the administrator role"""

    def is_admin(self, actor_id: str) -> bool:
        ...


class StaticAdminDirectory:
    """
    Fixed set of administrator ids

    Used by the CLI, the API server and tests; a deployment plugs in its
    account system.
    """

    def __init__(self, admin_ids: Iterable[str] = ()) -> None:
        self._admin_ids = frozenset(a.strip() for a in admin_ids if a.strip())

    @classmethod
    def from_env(cls, variable: str = "PROCURE_ADMIN_IDS") -> "StaticAdminDirectory":
        """Comma-separated ids, e.g. PROCURE_ADMIN_IDS=ops-1,ops-2"""
        return cls(os.getenv(variable, "").split(","))

    def is_admin(self, actor_id: str) -> bool:
        return actor_id in self._admin_ids

    def __len__(self) -> int:
        return len(self._admin_ids)
