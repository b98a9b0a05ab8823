"""
Shared pytest fixtures for lifeflow tests.
"""

import itertools
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from lifeflow.config import Settings
from lifeflow.core.models import (
    Attachment,
    OrderStatus,
    ProcessedMessageRecord,
    RawMessage,
)
from lifeflow.rules.models import parse_rule

NOW = datetime(2026, 3, 10, 9, 30, tzinfo=timezone.utc)  # a Tuesday


class InMemoryStorage:
    """Storage protocol backed by dicts, for tests."""

    def __init__(self, owners=("owner-1",)):
        self.owners = set(owners)
        self.rules = []
        self.rule_stats = {}
        self.processed = {}
        self.tasks = {}
        self.events = {}
        self.invoices = {}
        self.packages = {}
        self.orders = {}
        self._ids = itertools.count(1)

    def _next_id(self, prefix):
        return f"{prefix}-{next(self._ids)}"

    def owner_exists(self, owner_id):
        return owner_id in self.owners

    def get_active_rules(self, owner_id):
        active = [r for r in self.rules if r.owner_id == owner_id and r.is_active]
        return sorted(active, key=lambda r: r.priority)

    def record_rule_execution(self, rule_id, executed_at):
        count, _ = self.rule_stats.get(rule_id, (0, None))
        self.rule_stats[rule_id] = (count + 1, executed_at)

    def find_processed_message(self, owner_id, external_id):
        return self.processed.get((owner_id, external_id))

    def save_processed_message(self, record):
        key = (record.owner_id, record.external_id)
        if key in self.processed:
            raise ValueError(f"duplicate processed message {key}")
        record = replace(record, id=self._next_id("processed"))
        self.processed[key] = record
        return record.id

    def list_processed_messages(self, owner_id, since=None):
        records = [
            r for (owner, _), r in self.processed.items()
            if owner == owner_id and (since is None or r.processed_at >= since)
        ]
        return sorted(records, key=lambda r: r.processed_at, reverse=True)

    def _create(self, table, prefix, record):
        record = replace(record, id=self._next_id(prefix))
        table[record.id] = record
        return record.id

    def create_task(self, task):
        return self._create(self.tasks, "task", task)

    def create_event(self, event):
        return self._create(self.events, "event", event)

    def create_invoice(self, invoice):
        return self._create(self.invoices, "invoice", invoice)

    def create_package(self, package):
        return self._create(self.packages, "package", package)

    def find_package_by_tracking(self, owner_id, tracking_number):
        for package in self.packages.values():
            if package.owner_id == owner_id and package.tracking_number == tracking_number:
                return replace(package)
        return None

    def update_package(self, package_id, changes):
        self.packages[package_id] = replace(self.packages[package_id], **changes)

    def create_order(self, order):
        if self.find_order(order.owner_id, order.shop_name, order.order_number) and order.order_number:
            raise ValueError("duplicate order")
        return self._create(self.orders, "order", order)

    def find_order(self, owner_id, shop_name, order_number):
        for order in self.orders.values():
            if (order.owner_id, order.shop_name, order.order_number) == (owner_id, shop_name, order_number):
                return replace(order)
        return None

    def update_order(self, order_id, changes):
        self.orders[order_id] = replace(self.orders[order_id], **changes)

    def list_orders_needing_reminder(self, owner_id, ordered_before):
        return [
            replace(o) for o in self.orders.values()
            if o.owner_id == owner_id
            and o.status in (OrderStatus.ORDERED, OrderStatus.AWAITING_PAYMENT)
            and o.order_date < ordered_before
            and not o.reminder_sent
        ]

    def mark_reminders_sent(self, order_ids):
        for order_id in order_ids:
            self.orders[order_id] = replace(self.orders[order_id], reminder_sent=True)

    def record_count(self):
        return sum(len(t) for t in (self.tasks, self.events, self.invoices, self.packages, self.orders))


@pytest.fixture
def settings() -> Settings:
    """Settings with no inference endpoint and no .env file."""
    return Settings(
        _env_file=None,
        inference_url="",
        inference_api_key="",
        use_remote_classifier=False,
        since_hours=0,
        database_password="test-db-password",
    )


@pytest.fixture
def remote_settings() -> Settings:
    """Settings pointing at a fake inference endpoint."""
    return Settings(
        _env_file=None,
        inference_url="https://inference.test/api",
        inference_api_key="test-api-key",
        inference_timeout=2.0,
    )


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def make_message():
    """Factory for RawMessage with sensible defaults."""
    counter = itertools.count(1)

    def _make(
        subject="Hello",
        body="",
        sender="Someone <someone@example.com>",
        id=None,
        received_at=NOW,
        attachments=(),
        recipients=("me@lifeflow.test",),
    ) -> RawMessage:
        return RawMessage(
            id=id or f"msg-{next(counter)}",
            thread_id="thread-1",
            sender=sender,
            recipients=tuple(recipients),
            subject=subject,
            body=body,
            received_at=received_at,
            attachments=tuple(attachments),
        )

    return _make


@pytest.fixture
def make_rule(storage):
    """Factory that parses a rule document and adds it to the storage."""
    counter = itertools.count(1)

    def _make(trigger=None, action=None, owner_id="owner-1", add=True, **extra):
        rule_id = extra.pop("id", f"rule-{next(counter)}")
        rule = parse_rule({
            "id": rule_id,
            "owner_id": owner_id,
            "name": extra.pop("name", f"Rule {rule_id}"),
            "trigger": trigger or {},
            "action": action or {"type": "send_notification"},
            **extra,
        })
        if add:
            storage.rules.append(rule)
        return rule

    return _make


@pytest.fixture
def postnl_message(make_message) -> RawMessage:
    """Delivery notice from PostNL (scenario A)."""
    return make_message(
        id="postnl-1",
        sender="PostNL <noreply@postnl.nl>",
        subject="Uw pakket is onderweg",
        body=(
            "Beste klant,\n\n"
            "Goed nieuws! Uw pakket is onderweg en wordt morgen bezorgd.\n"
            "Track & Trace code: 3SABCD1234567890\n\n"
            "Met vriendelijke groet,\nPostNL"
        ),
    )


@pytest.fixture
def invoice_message(make_message) -> RawMessage:
    """Invoice with an amount (scenario B)."""
    return make_message(
        id="invoice-1",
        sender="Vattenfall <facturen@vattenfall.nl>",
        subject="Uw factuur van maart",
        body=(
            "Beste klant,\n\n"
            "Hierbij ontvangt u uw factuur. Factuurnummer: 2026-0042\n"
            "Het bedrag van € 84,50 wordt op 25-03-2026 afgeschreven.\n"
        ),
        attachments=[Attachment("factuur.pdf", "application/pdf", 20480)],
    )


@pytest.fixture
def order_messages(make_message) -> list[RawMessage]:
    """Order confirmation followed by a shipment notice for the same order (scenario C)."""
    return [
        make_message(
            id="ali-1",
            sender="AliExpress <transaction@notice.aliexpress.com>",
            subject="Order confirmation: order 8123456789012345",
            body=(
                "Thank you for your order!\n"
                "Order number: 8123456789012345\n"
                "Total: € 23,99\n"
            ),
        ),
        make_message(
            id="ali-2",
            sender="AliExpress <transaction@notice.aliexpress.com>",
            subject="Your order 8123456789012345 has been shipped",
            body=(
                "Good news, your package is on its way.\n"
                "Order number: 8123456789012345\n"
                "Tracking number: LP00123456789CN\n"
            ),
            received_at=NOW + timedelta(days=3),
        ),
    ]


@pytest.fixture
def processed_record():
    """Factory for ProcessedMessageRecord."""

    def _make(external_id, category, processed_at=NOW, results=None, owner_id="owner-1", **kwargs):
        return ProcessedMessageRecord(
            owner_id=owner_id,
            external_id=external_id,
            category=category,
            confidence=0.9,
            results=results or [],
            processed_at=processed_at,
            **kwargs,
        )

    return _make
