"""
PostgreSQL storage for the rules engine.

Implements the Storage protocol on psycopg 3. Rules are parsed into
typed models as they are read; a rule whose trigger cannot be parsed is
skipped with a warning.
"""

from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from typing import Any, Generator

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Json

from lifeflow.config import Settings
from lifeflow.core.exceptions import RuleParseError
from lifeflow.core.logging import get_logger
from lifeflow.core.models import (
    Category,
    ClassificationSource,
    Event,
    Invoice,
    InvoiceStatus,
    Order,
    OrderStatus,
    Package,
    PackageStatus,
    ProcessedMessageRecord,
    Task,
    TaskPriority,
)
from lifeflow.rules.models import Rule, parse_rule

log = get_logger(__name__)

SCHEMA_SQL = """
-- owners: account owners a batch can run for
CREATE TABLE IF NOT EXISTS owners (
    id TEXT PRIMARY KEY,
    email VARCHAR(255),
    created_at TIMESTAMPTZ DEFAULT NOW()
);

-- rules: user-authored automation rules (trigger/action are JSON documents)
CREATE TABLE IF NOT EXISTS rules (
    id TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
    owner_id TEXT NOT NULL REFERENCES owners(id) ON DELETE CASCADE,
    name VARCHAR(255) NOT NULL,
    description TEXT,
    trigger JSONB NOT NULL,
    action JSONB NOT NULL,
    is_active BOOLEAN DEFAULT TRUE,
    priority INTEGER DEFAULT 100,
    execution_count INTEGER DEFAULT 0,
    last_executed_at TIMESTAMPTZ,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_rules_owner_active ON rules(owner_id, is_active, priority);

-- processed_messages: one row per (owner, message); its existence is the dedup guard
CREATE TABLE IF NOT EXISTS processed_messages (
    id TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
    owner_id TEXT NOT NULL REFERENCES owners(id) ON DELETE CASCADE,
    external_id VARCHAR(255) NOT NULL,
    category VARCHAR(50) NOT NULL,
    confidence REAL NOT NULL,
    classification_source VARCHAR(20),
    results JSONB,
    processed_at TIMESTAMPTZ DEFAULT NOW(),
    UNIQUE (owner_id, external_id)
);

CREATE INDEX IF NOT EXISTS idx_processed_owner_date ON processed_messages(owner_id, processed_at DESC);

CREATE TABLE IF NOT EXISTS tasks (
    id TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
    owner_id TEXT NOT NULL REFERENCES owners(id) ON DELETE CASCADE,
    title TEXT NOT NULL,
    description TEXT,
    priority VARCHAR(20) DEFAULT 'medium',
    status VARCHAR(20) DEFAULT 'pending',
    due_date TIMESTAMPTZ,
    source_message_id VARCHAR(255),
    created_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS events (
    id TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
    owner_id TEXT NOT NULL REFERENCES owners(id) ON DELETE CASCADE,
    title TEXT NOT NULL,
    description TEXT,
    start_time TIMESTAMPTZ NOT NULL,
    end_time TIMESTAMPTZ,
    location TEXT,
    event_type VARCHAR(50) DEFAULT 'email',
    source_message_id VARCHAR(255),
    created_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS invoices (
    id TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
    owner_id TEXT NOT NULL REFERENCES owners(id) ON DELETE CASCADE,
    description TEXT,
    amount NUMERIC(12, 2) DEFAULT 0,
    currency VARCHAR(3) DEFAULT 'EUR',
    status VARCHAR(20) DEFAULT 'pending',
    invoice_type VARCHAR(20) DEFAULT 'payable',
    due_date TIMESTAMPTZ,
    invoice_number VARCHAR(100),
    sender TEXT,
    source_message_id VARCHAR(255),
    created_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS packages (
    id TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
    owner_id TEXT NOT NULL REFERENCES owners(id) ON DELETE CASCADE,
    carrier VARCHAR(100),
    tracking_number VARCHAR(100) NOT NULL,
    description TEXT,
    status VARCHAR(30) DEFAULT 'pending',
    expected_delivery TIMESTAMPTZ,
    source_message_id VARCHAR(255),
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_packages_tracking ON packages(owner_id, tracking_number);

CREATE TABLE IF NOT EXISTS orders (
    id TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
    owner_id TEXT NOT NULL REFERENCES owners(id) ON DELETE CASCADE,
    shop_name VARCHAR(255) NOT NULL,
    order_number VARCHAR(100),
    status VARCHAR(30) DEFAULT 'ORDERED',
    order_date TIMESTAMPTZ DEFAULT NOW(),
    product_name TEXT,
    amount NUMERIC(12, 2),
    currency VARCHAR(3) DEFAULT 'EUR',
    is_paid BOOLEAN DEFAULT FALSE,
    shipped_date TIMESTAMPTZ,
    delivered_date TIMESTAMPTZ,
    tracking_number VARCHAR(100),
    package_id TEXT REFERENCES packages(id) ON DELETE SET NULL,
    reminder_sent BOOLEAN DEFAULT FALSE,
    source_message_id VARCHAR(255),
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW(),
    UNIQUE (owner_id, shop_name, order_number)
);

CREATE INDEX IF NOT EXISTS idx_orders_status ON orders(owner_id, status, order_date);
"""

_PACKAGE_COLUMNS = {"carrier", "tracking_number", "description", "status", "expected_delivery"}
_ORDER_COLUMNS = {
    "status",
    "product_name",
    "amount",
    "currency",
    "is_paid",
    "shipped_date",
    "delivered_date",
    "tracking_number",
    "package_id",
    "reminder_sent",
}


def _db_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _order_from_row(row: dict[str, Any]) -> Order:
    return Order(
        id=row["id"],
        owner_id=row["owner_id"],
        shop_name=row["shop_name"],
        order_number=row["order_number"],
        status=OrderStatus(row["status"]),
        order_date=row["order_date"],
        product_name=row["product_name"],
        amount=float(row["amount"]) if row["amount"] is not None else None,
        currency=row["currency"] or "EUR",
        is_paid=row["is_paid"] or False,
        shipped_date=row["shipped_date"],
        delivered_date=row["delivered_date"],
        tracking_number=row["tracking_number"],
        package_id=row["package_id"],
        reminder_sent=row["reminder_sent"] or False,
        source_message_id=row["source_message_id"],
    )


def _package_from_row(row: dict[str, Any]) -> Package:
    return Package(
        id=row["id"],
        owner_id=row["owner_id"],
        carrier=row["carrier"] or "",
        tracking_number=row["tracking_number"],
        description=row["description"] or "",
        status=PackageStatus(row["status"]),
        expected_delivery=row["expected_delivery"],
        source_message_id=row["source_message_id"],
    )


def _processed_from_row(row: dict[str, Any]) -> ProcessedMessageRecord:
    return ProcessedMessageRecord(
        id=row["id"],
        owner_id=row["owner_id"],
        external_id=row["external_id"],
        category=Category(row["category"]),
        confidence=row["confidence"],
        classification_source=ClassificationSource(row["classification_source"] or "local"),
        results=row["results"] or [],
        processed_at=row["processed_at"],
    )


class Database:
    """PostgreSQL operations behind the Storage protocol."""

    def __init__(self, settings: Settings | None = None, connection_string: str | None = None):
        """
        Initialize database access.

        Args:
            settings: Application settings providing database_url
            connection_string: PostgreSQL connection URL, overrides settings
        """
        if connection_string is None:
            if settings is None:
                raise ValueError("Database needs settings or a connection string")
            connection_string = settings.database_url
        self.connection_string = connection_string

    @contextmanager
    def get_connection(self) -> Generator[psycopg.Connection, None, None]:
        """Get a database connection as a context manager."""
        conn = psycopg.connect(self.connection_string, row_factory=dict_row)
        try:
            yield conn
        finally:
            conn.close()

    def init_schema(self) -> None:
        """Initialize database schema (create tables if not exist)."""
        with self.get_connection() as conn:
            conn.execute(SCHEMA_SQL)
            conn.commit()
            log.info("database_schema_initialized")

    def _insert(self, statement: str, params: dict[str, Any]) -> str:
        with self.get_connection() as conn:
            row = conn.execute(statement, params).fetchone()
            conn.commit()
            if not row:
                raise RuntimeError("Insert returned no id")
            return str(row["id"])

    def _update(self, table: str, allowed: set[str], record_id: str, changes: dict[str, Any]) -> None:
        unknown = set(changes) - allowed
        if unknown:
            raise ValueError(f"Cannot update {table} columns: {sorted(unknown)}")
        if not changes:
            return

        assignments = [
            sql.SQL("{} = {}").format(sql.Identifier(column), sql.Placeholder(column))
            for column in changes
        ]
        assignments.append(sql.SQL("updated_at = NOW()"))
        statement = sql.SQL("UPDATE {} SET {} WHERE id = {}").format(
            sql.Identifier(table),
            sql.SQL(", ").join(assignments),
            sql.Placeholder("record_id"),
        )
        params = {column: _db_value(value) for column, value in changes.items()}
        params["record_id"] = record_id

        with self.get_connection() as conn:
            conn.execute(statement, params)
            conn.commit()

    # Owners and rules

    def owner_exists(self, owner_id: str) -> bool:
        """Check if an owner exists."""
        with self.get_connection() as conn:
            result = conn.execute(
                "SELECT 1 FROM owners WHERE id = %s LIMIT 1",
                (owner_id,)
            ).fetchone()
            return result is not None

    def get_active_rules(self, owner_id: str) -> list[Rule]:
        """Fetch and parse the owner's active rules, lowest priority value first."""
        statement = """
        SELECT id, owner_id, name, description, trigger, action, is_active, priority
        FROM rules
        WHERE owner_id = %s AND is_active = TRUE
        ORDER BY priority ASC, created_at ASC
        """

        with self.get_connection() as conn:
            rows = conn.execute(statement, (owner_id,)).fetchall()

        rules = []
        for row in rows:
            try:
                rules.append(parse_rule(row))
            except RuleParseError as e:
                log.warning("rule_skipped_invalid", rule_id=e.rule_id, reason=e.reason)

        log.info("fetched_active_rules", owner_id=owner_id, count=len(rules))
        return rules

    def record_rule_execution(self, rule_id: str, executed_at: datetime) -> None:
        """Increment a rule's execution counter."""
        statement = """
        UPDATE rules
        SET execution_count = COALESCE(execution_count, 0) + 1,
            last_executed_at = %s
        WHERE id = %s
        """

        with self.get_connection() as conn:
            conn.execute(statement, (executed_at, rule_id))
            conn.commit()

    # Processed messages

    def find_processed_message(
        self, owner_id: str, external_id: str
    ) -> ProcessedMessageRecord | None:
        """Fetch the processed-message record for (owner, external id)."""
        statement = """
        SELECT id, owner_id, external_id, category, confidence,
               classification_source, results, processed_at
        FROM processed_messages
        WHERE owner_id = %s AND external_id = %s
        """

        with self.get_connection() as conn:
            row = conn.execute(statement, (owner_id, external_id)).fetchone()
            return _processed_from_row(row) if row else None

    def save_processed_message(self, record: ProcessedMessageRecord) -> str:
        """Insert a processed-message record, returning its id."""
        statement = """
        INSERT INTO processed_messages (
            owner_id, external_id, category, confidence,
            classification_source, results, processed_at
        ) VALUES (
            %(owner_id)s, %(external_id)s, %(category)s, %(confidence)s,
            %(classification_source)s, %(results)s, %(processed_at)s
        )
        ON CONFLICT (owner_id, external_id) DO UPDATE
            SET external_id = EXCLUDED.external_id
        RETURNING id
        """

        record_id = self._insert(statement, {
            "owner_id": record.owner_id,
            "external_id": record.external_id,
            "category": record.category.value,
            "confidence": record.confidence,
            "classification_source": record.classification_source.value,
            "results": Json(record.results),
            "processed_at": record.processed_at,
        })
        log.debug("processed_message_saved", record_id=record_id, external_id=record.external_id)
        return record_id

    def list_processed_messages(
        self, owner_id: str, since: datetime | None = None
    ) -> list[ProcessedMessageRecord]:
        """Fetch the owner's processed-message records, newest first."""
        if since:
            statement = """
            SELECT id, owner_id, external_id, category, confidence,
                   classification_source, results, processed_at
            FROM processed_messages
            WHERE owner_id = %s AND processed_at >= %s
            ORDER BY processed_at DESC
            """
            params: tuple = (owner_id, since)
        else:
            statement = """
            SELECT id, owner_id, external_id, category, confidence,
                   classification_source, results, processed_at
            FROM processed_messages
            WHERE owner_id = %s
            ORDER BY processed_at DESC
            """
            params = (owner_id,)

        with self.get_connection() as conn:
            rows = conn.execute(statement, params).fetchall()
            return [_processed_from_row(row) for row in rows]

    # Domain records

    def create_task(self, task: Task) -> str:
        statement = """
        INSERT INTO tasks (owner_id, title, description, priority, status, due_date, source_message_id)
        VALUES (%(owner_id)s, %(title)s, %(description)s, %(priority)s, %(status)s,
                %(due_date)s, %(source_message_id)s)
        RETURNING id
        """
        return self._insert(statement, {
            "owner_id": task.owner_id,
            "title": task.title,
            "description": task.description,
            "priority": TaskPriority(task.priority).value,
            "status": task.status,
            "due_date": task.due_date,
            "source_message_id": task.source_message_id,
        })

    def create_event(self, event: Event) -> str:
        statement = """
        INSERT INTO events (owner_id, title, description, start_time, end_time, location,
                            event_type, source_message_id)
        VALUES (%(owner_id)s, %(title)s, %(description)s, %(start_time)s, %(end_time)s,
                %(location)s, %(event_type)s, %(source_message_id)s)
        RETURNING id
        """
        return self._insert(statement, {
            "owner_id": event.owner_id,
            "title": event.title,
            "description": event.description,
            "start_time": event.start_time,
            "end_time": event.end_time,
            "location": event.location,
            "event_type": event.event_type,
            "source_message_id": event.source_message_id,
        })

    def create_invoice(self, invoice: Invoice) -> str:
        statement = """
        INSERT INTO invoices (owner_id, description, amount, currency, status, invoice_type,
                              due_date, invoice_number, sender, source_message_id)
        VALUES (%(owner_id)s, %(description)s, %(amount)s, %(currency)s, %(status)s,
                %(invoice_type)s, %(due_date)s, %(invoice_number)s, %(sender)s,
                %(source_message_id)s)
        RETURNING id
        """
        return self._insert(statement, {
            "owner_id": invoice.owner_id,
            "description": invoice.description,
            "amount": invoice.amount,
            "currency": invoice.currency,
            "status": InvoiceStatus(invoice.status).value,
            "invoice_type": invoice.invoice_type,
            "due_date": invoice.due_date,
            "invoice_number": invoice.invoice_number,
            "sender": invoice.sender,
            "source_message_id": invoice.source_message_id,
        })

    def create_package(self, package: Package) -> str:
        statement = """
        INSERT INTO packages (owner_id, carrier, tracking_number, description, status,
                              expected_delivery, source_message_id)
        VALUES (%(owner_id)s, %(carrier)s, %(tracking_number)s, %(description)s, %(status)s,
                %(expected_delivery)s, %(source_message_id)s)
        RETURNING id
        """
        return self._insert(statement, {
            "owner_id": package.owner_id,
            "carrier": package.carrier,
            "tracking_number": package.tracking_number,
            "description": package.description,
            "status": PackageStatus(package.status).value,
            "expected_delivery": package.expected_delivery,
            "source_message_id": package.source_message_id,
        })

    def find_package_by_tracking(self, owner_id: str, tracking_number: str) -> Package | None:
        statement = """
        SELECT id, owner_id, carrier, tracking_number, description, status,
               expected_delivery, source_message_id
        FROM packages
        WHERE owner_id = %s AND tracking_number = %s
        ORDER BY created_at ASC
        LIMIT 1
        """

        with self.get_connection() as conn:
            row = conn.execute(statement, (owner_id, tracking_number)).fetchone()
            return _package_from_row(row) if row else None

    def update_package(self, package_id: str, changes: dict[str, Any]) -> None:
        self._update("packages", _PACKAGE_COLUMNS, package_id, changes)

    def create_order(self, order: Order) -> str:
        statement = """
        INSERT INTO orders (owner_id, shop_name, order_number, status, order_date, product_name,
                            amount, currency, is_paid, shipped_date, delivered_date,
                            tracking_number, package_id, source_message_id)
        VALUES (%(owner_id)s, %(shop_name)s, %(order_number)s, %(status)s, %(order_date)s,
                %(product_name)s, %(amount)s, %(currency)s, %(is_paid)s, %(shipped_date)s,
                %(delivered_date)s, %(tracking_number)s, %(package_id)s, %(source_message_id)s)
        RETURNING id
        """
        return self._insert(statement, {
            "owner_id": order.owner_id,
            "shop_name": order.shop_name,
            "order_number": order.order_number,
            "status": OrderStatus(order.status).value,
            "order_date": order.order_date,
            "product_name": order.product_name,
            "amount": order.amount,
            "currency": order.currency,
            "is_paid": order.is_paid,
            "shipped_date": order.shipped_date,
            "delivered_date": order.delivered_date,
            "tracking_number": order.tracking_number,
            "package_id": order.package_id,
            "source_message_id": order.source_message_id,
        })

    def find_order(self, owner_id: str, shop_name: str, order_number: str) -> Order | None:
        statement = """
        SELECT * FROM orders
        WHERE owner_id = %s AND shop_name = %s AND order_number = %s
        """

        with self.get_connection() as conn:
            row = conn.execute(statement, (owner_id, shop_name, order_number)).fetchone()
            return _order_from_row(row) if row else None

    def update_order(self, order_id: str, changes: dict[str, Any]) -> None:
        self._update("orders", _ORDER_COLUMNS, order_id, changes)

    def list_orders_needing_reminder(self, owner_id: str, ordered_before: datetime) -> list[Order]:
        statement = """
        SELECT * FROM orders
        WHERE owner_id = %s
          AND status IN ('ORDERED', 'AWAITING_PAYMENT')
          AND order_date < %s
          AND reminder_sent = FALSE
        ORDER BY order_date ASC
        """

        with self.get_connection() as conn:
            rows = conn.execute(statement, (owner_id, ordered_before)).fetchall()
            return [_order_from_row(row) for row in rows]

    def mark_reminders_sent(self, order_ids: list[str]) -> None:
        if not order_ids:
            return
        with self.get_connection() as conn:
            conn.execute(
                "UPDATE orders SET reminder_sent = TRUE, updated_at = NOW() WHERE id = ANY(%s)",
                (order_ids,)
            )
            conn.commit()
            log.info("order_reminders_marked", count=len(order_ids))

