"""Supplier Directory Command Handlers"""

from procure_saathi.kernel.errors import InvalidState
from procure_saathi.kernel.events import Event, EventBatch
from procure_saathi.kernel.time import TimeProvider
from procure_saathi.suppliers import commands, events
from procure_saathi.suppliers.projections import SupplierDirectory

STREAM_TYPE = "Supplier"


def supplier_stream(supplier_id: str) -> str:
    return f"supplier:{supplier_id}"


class SupplierCommandHandlers:
    """Stateless handlers for the supplier directory"""

    def __init__(self, time_provider: TimeProvider) -> None:
        self.time_provider = time_provider

    def handle_register_supplier(
        self,
        command: commands.RegisterSupplier,
        command_id: str,
        actor_id: str,
        directory: SupplierDirectory,
    ) -> list[Event]:
        """
        Register a supplier profile (once per supplier id)

        Raises:
            InvalidState: if the supplier already has a profile
        """
        if directory.get(command.supplier_id) is not None:
            raise InvalidState(
                "Cannot register supplier: a profile already exists for this supplier",
                entity_id=command.supplier_id,
                current_state="registered",
            )

        now = self.time_provider.now()
        batch = EventBatch(
            stream_id=supplier_stream(command.supplier_id),
            stream_type=STREAM_TYPE,
            expected_version=0,
            command_id=command_id,
            actor_id=actor_id,
            occurred_at=now,
        )
        batch.add(
            "SupplierProfileRegistered",
            events.SupplierProfileRegistered(
                **command.model_dump(), registered_at=now
            ).model_dump(mode="json"),
        )
        return batch.events
