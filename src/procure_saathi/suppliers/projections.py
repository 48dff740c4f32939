"""Supplier Directory Projection"""

from typing import Callable

from procure_saathi.kernel.events import Event
from procure_saathi.kernel.projection import StreamProjection
from procure_saathi.suppliers import events
from procure_saathi.suppliers.models import SupplierProfile


class SupplierDirectory(StreamProjection):
    """Private supplier profiles keyed by supplier id"""

    def __init__(self) -> None:
        super().__init__()
        self.profiles: dict[str, SupplierProfile] = {}

    def handlers(self) -> dict[str, Callable[[Event], None]]:
        return {"SupplierProfileRegistered": self._apply_profile_registered}

    def _apply_profile_registered(self, event: Event) -> None:
        payload = events.SupplierProfileRegistered.model_validate(event.payload)
        self.profiles[payload.supplier_id] = SupplierProfile(**payload.model_dump())

    def get(self, supplier_id: str) -> SupplierProfile | None:
        with self._lock:
            return self.profiles.get(supplier_id)
