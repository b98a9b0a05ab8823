"""
Storage interface the rules engine depends on.

The engine never talks to a database directly; it is handed something
that satisfies this protocol (the PostgreSQL Database in production, an
in-memory fake in tests).
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol

from lifeflow.core.models import Event, Invoice, Order, Package, ProcessedMessageRecord, Task

if TYPE_CHECKING:
    from lifeflow.rules.models import Rule


class Storage(Protocol):
    """Persistence operations used by the batch processor and action handlers."""

    # Owners and rules

    def owner_exists(self, owner_id: str) -> bool:
        ...

    def get_active_rules(self, owner_id: str) -> list[Rule]:
        """Active rules for the owner, parsed, in ascending priority order."""
        ...

    def record_rule_execution(self, rule_id: str, executed_at: datetime) -> None:
        """Bump a rule's execution_count and last_executed_at."""
        ...

    # Processed messages

    def find_processed_message(
        self, owner_id: str, external_id: str
    ) -> ProcessedMessageRecord | None:
        ...

    def save_processed_message(self, record: ProcessedMessageRecord) -> str:
        """Insert a record; (owner_id, external_id) is unique."""
        ...

    def list_processed_messages(
        self, owner_id: str, since: datetime | None = None
    ) -> list[ProcessedMessageRecord]:
        ...

    # Domain records

    def create_task(self, task: Task) -> str:
        ...

    def create_event(self, event: Event) -> str:
        ...

    def create_invoice(self, invoice: Invoice) -> str:
        ...

    def create_package(self, package: Package) -> str:
        ...

    def find_package_by_tracking(self, owner_id: str, tracking_number: str) -> Package | None:
        ...

    def update_package(self, package_id: str, changes: dict[str, Any]) -> None:
        ...

    def create_order(self, order: Order) -> str:
        """Insert an order; (owner_id, shop_name, order_number) is unique."""
        ...

    def find_order(self, owner_id: str, shop_name: str, order_number: str) -> Order | None:
        ...

    def update_order(self, order_id: str, changes: dict[str, Any]) -> None:
        ...

    def list_orders_needing_reminder(self, owner_id: str, ordered_before: datetime) -> list[Order]:
        """Orders still ORDERED or AWAITING_PAYMENT, placed before the cutoff, with no reminder sent."""
        ...

    def mark_reminders_sent(self, order_ids: list[str]) -> None:
        ...
