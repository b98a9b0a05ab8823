"""
Data models for the rules engine.

Uses dataclasses for clean, typed data structures. Rules live in
lifeflow.rules.models because they are parsed from stored JSON.
"""

from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so they compare with aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Category(str, Enum):
    """Message categories, in tie-break order (first declared wins a tie)."""

    INVOICE = "invoice"
    DELIVERY = "delivery"
    ORDER = "order"
    EVENT = "event"
    TASK = "task"
    NEWSLETTER = "newsletter"
    SPAM = "spam"
    PERSONAL = "personal"
    UNKNOWN = "unknown"


class ClassificationSource(str, Enum):
    """Which classifier produced a classification."""

    REMOTE = "remote"
    LOCAL = "local"


class RecordKind(str, Enum):
    """Domain record types an action can produce."""

    TASK = "task"
    EVENT = "event"
    INVOICE = "invoice"
    PACKAGE = "package"
    ORDER = "order"

    @property
    def reference_key(self) -> str:
        """Key of the tagged reference, e.g. 'taskId'."""
        return f"{self.value}Id"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class InvoiceStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"


class PackageStatus(str, Enum):
    PENDING = "pending"
    IN_TRANSIT = "in_transit"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"


class OrderStatus(str, Enum):
    """Order lifecycle. Later messages overwrite freely, there is no terminal lock."""

    ORDERED = "ORDERED"
    AWAITING_PAYMENT = "AWAITING_PAYMENT"
    PAID = "PAID"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    RETURNED = "RETURNED"


# Messages


@dataclass(frozen=True)
class Attachment:
    """Attachment metadata (content is never loaded)."""

    filename: str
    mime_type: str
    size_bytes: int = 0


@dataclass(frozen=True)
class RawMessage:
    """Inbound email as supplied by the message source."""

    id: str
    thread_id: str = ""
    sender: str = ""
    recipients: tuple[str, ...] = ()
    subject: str = ""
    body: str = ""
    received_at: datetime = field(default_factory=utcnow)
    attachments: tuple[Attachment, ...] = ()
    labels: tuple[str, ...] = ()

    @property
    def text(self) -> str:
        """Subject and body joined, for local scans."""
        return f"{self.subject}\n{self.body}"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RawMessage":
        """Build a message from the message source's JSON shape."""
        received = data.get("receivedAt") or data.get("date")
        if isinstance(received, str):
            received_at = datetime.fromisoformat(received.replace("Z", "+00:00"))
        elif isinstance(received, datetime):
            received_at = received
        else:
            received_at = utcnow()

        recipients = data.get("recipients", data.get("to", []))
        if isinstance(recipients, str):
            recipients = [recipients]

        return cls(
            id=str(data["id"]),
            thread_id=str(data.get("threadId", "")),
            sender=data.get("sender", data.get("from", "")) or "",
            recipients=tuple(recipients),
            subject=data.get("subject", "") or "",
            body=data.get("body", "") or "",
            received_at=received_at,
            attachments=tuple(
                Attachment(
                    filename=a.get("filename", ""),
                    mime_type=a.get("mimeType", "application/octet-stream"),
                    size_bytes=a.get("size", 0),
                )
                for a in data.get("attachments", [])
            ),
            labels=tuple(data.get("labels", [])),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the message source's JSON shape."""
        return {
            "id": self.id,
            "threadId": self.thread_id,
            "sender": self.sender,
            "recipients": list(self.recipients),
            "subject": self.subject,
            "body": self.body,
            "receivedAt": self.received_at.isoformat(),
            "attachments": [
                {"filename": a.filename, "mimeType": a.mime_type, "size": a.size_bytes}
                for a in self.attachments
            ],
            "labels": list(self.labels),
        }


@dataclass(frozen=True)
class TemporalFeatures:
    """Receipt time features. day_of_week follows datetime.weekday() (Monday=0)."""

    day_of_week: int
    hour_of_day: int
    is_weekend: bool


@dataclass(frozen=True)
class AnonymizedMessage:
    """PII-free view of a message: domain, category tokens and metadata only."""

    id: str
    sender_domain: str
    subject_tokens: tuple[str, ...]
    body_tokens: tuple[str, ...]
    has_attachments: bool
    attachment_types: tuple[str, ...]
    temporal: TemporalFeatures

    @property
    def tokens(self) -> list[str]:
        return [*self.subject_tokens, *self.body_tokens]

    def to_payload(self) -> dict[str, Any]:
        """Wire shape sent to the inference endpoint."""
        return {
            "id": self.id,
            "fromDomain": self.sender_domain,
            "subjectTokens": list(self.subject_tokens),
            "bodyTokens": list(self.body_tokens),
            "hasAttachments": self.has_attachments,
            "attachmentTypes": list(self.attachment_types),
            "dateInfo": {
                "dayOfWeek": self.temporal.day_of_week,
                "hourOfDay": self.temporal.hour_of_day,
                "isWeekend": self.temporal.is_weekend,
            },
        }


# Classification


# Wire names used by the inference endpoint for ExtractedData fields
_EXTRACTED_WIRE_NAMES = {
    "amount": "amount",
    "currency": "currency",
    "due_date": "dueDate",
    "invoice_number": "invoiceNumber",
    "tracking_number": "trackingNumber",
    "carrier": "carrier",
    "expected_delivery": "expectedDelivery",
    "event_title": "eventTitle",
    "event_date": "eventDate",
    "event_time": "eventTime",
    "event_location": "eventLocation",
    "task_title": "taskTitle",
    "task_priority": "taskPriority",
    "task_due_date": "taskDueDate",
    "sender_name": "senderName",
    "company_name": "companyName",
    "shop_name": "shopName",
    "order_number": "orderNumber",
}


@dataclass
class ExtractedData:
    """Optional category-specific fields attached to a classification."""

    amount: float | None = None
    currency: str | None = None
    due_date: str | None = None
    invoice_number: str | None = None
    tracking_number: str | None = None
    carrier: str | None = None
    expected_delivery: str | None = None
    event_title: str | None = None
    event_date: str | None = None
    event_time: str | None = None
    event_location: str | None = None
    task_title: str | None = None
    task_priority: str | None = None
    task_due_date: str | None = None
    sender_name: str | None = None
    company_name: str | None = None
    shop_name: str | None = None
    order_number: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ExtractedData":
        """Create from the endpoint's camelCase dict, ignoring unknown keys."""
        if not data:
            return cls()
        values = {}
        for attr, wire in _EXTRACTED_WIRE_NAMES.items():
            value = data.get(wire, data.get(attr))
            if value is not None:
                values[attr] = value
        if "amount" in values:
            try:
                values["amount"] = float(values["amount"])
            except (TypeError, ValueError):
                del values["amount"]
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        """Convert to camelCase dict, dropping empty fields."""
        return {
            wire: getattr(self, attr)
            for attr, wire in _EXTRACTED_WIRE_NAMES.items()
            if getattr(self, attr) is not None
        }

    def merged_with(self, fallback: "ExtractedData") -> "ExtractedData":
        """Return a copy where empty fields are filled from fallback."""
        gaps = {
            f.name: getattr(fallback, f.name)
            for f in fields(self)
            if getattr(self, f.name) is None and getattr(fallback, f.name) is not None
        }
        return replace(self, **gaps)


@dataclass
class Classification:
    """Result from message classification."""

    category: Category
    confidence: float
    extracted_data: ExtractedData = field(default_factory=ExtractedData)
    reasoning: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for JSON storage."""
        return {
            "category": self.category.value,
            "confidence": self.confidence,
            "extractedData": self.extracted_data.to_dict(),
            "reasoning": self.reasoning,
        }


@dataclass
class ClassificationOutcome:
    """A classification together with where it came from."""

    classification: Classification
    source: ClassificationSource
    fallback_reason: str | None = None  # set when the remote path was abandoned

    @property
    def used_fallback(self) -> bool:
        return self.fallback_reason is not None


# Rule execution


@dataclass(frozen=True)
class RecordReference:
    """Tagged reference to a domain record (taskId, eventId, ...)."""

    kind: RecordKind
    id: str

    def to_dict(self) -> dict[str, str]:
        return {self.kind.reference_key: self.id}


@dataclass
class ExecutionResult:
    """Outcome of evaluating one rule against one message."""

    rule_id: str
    rule_name: str
    triggered: bool
    action_executed: bool
    action_type: str | None = None
    result: RecordReference | None = None
    created: list[RecordReference] = field(default_factory=list)
    detail: str | None = None
    error: str | None = None
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ruleId": self.rule_id,
            "ruleName": self.rule_name,
            "triggered": self.triggered,
            "actionExecuted": self.action_executed,
            "actionType": self.action_type,
            "result": self.result.to_dict() if self.result else None,
            "created": [ref.to_dict() for ref in self.created],
            "detail": self.detail,
            "error": self.error,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class ProcessedMessageRecord:
    """Marks a message as processed for an owner. Its existence is the dedup guard."""

    owner_id: str
    external_id: str
    category: Category
    confidence: float
    classification_source: ClassificationSource = ClassificationSource.LOCAL
    results: list[dict[str, Any]] = field(default_factory=list)
    processed_at: datetime = field(default_factory=utcnow)
    id: str | None = None

    @property
    def rules_triggered(self) -> int:
        return sum(1 for r in self.results if r.get("triggered"))


# Domain records


@dataclass
class Task:
    owner_id: str
    title: str
    description: str = ""
    priority: TaskPriority = TaskPriority.MEDIUM
    status: str = "pending"
    due_date: datetime | None = None
    source_message_id: str | None = None
    id: str | None = None


@dataclass
class Event:
    owner_id: str
    title: str
    start_time: datetime
    end_time: datetime | None = None
    description: str = ""
    location: str | None = None
    event_type: str = "email"
    source_message_id: str | None = None
    id: str | None = None


@dataclass
class Invoice:
    owner_id: str
    description: str
    amount: float = 0.0
    currency: str = "EUR"
    status: InvoiceStatus = InvoiceStatus.PENDING
    invoice_type: str = "payable"
    due_date: datetime | None = None
    invoice_number: str | None = None
    sender: str | None = None
    source_message_id: str | None = None
    id: str | None = None


@dataclass
class Package:
    owner_id: str
    carrier: str
    tracking_number: str
    description: str = ""
    status: PackageStatus = PackageStatus.PENDING
    expected_delivery: datetime | None = None
    source_message_id: str | None = None
    id: str | None = None


@dataclass
class Order:
    owner_id: str
    shop_name: str
    order_number: str | None
    status: OrderStatus = OrderStatus.ORDERED
    order_date: datetime = field(default_factory=utcnow)
    product_name: str | None = None
    amount: float | None = None
    currency: str = "EUR"
    is_paid: bool = False
    shipped_date: datetime | None = None
    delivered_date: datetime | None = None
    tracking_number: str | None = None
    package_id: str | None = None
    reminder_sent: bool = False
    source_message_id: str | None = None
    id: str | None = None


# Batch processing


@dataclass
class MessageResult:
    """Result from processing one message."""

    message_id: str
    classification: Classification | None = None
    classification_source: ClassificationSource | None = None
    rules_executed: list[ExecutionResult] = field(default_factory=list)
    skipped: bool = False
    error: str | None = None

    @property
    def rules_triggered(self) -> int:
        return sum(1 for r in self.rules_executed if r.triggered)

    def to_dict(self) -> dict[str, Any]:
        return {
            "messageId": self.message_id,
            "category": self.classification.category.value if self.classification else None,
            "confidence": self.classification.confidence if self.classification else None,
            "source": self.classification_source.value if self.classification_source else None,
            "rulesTriggered": self.rules_triggered,
            "rulesExecuted": [r.to_dict() for r in self.rules_executed],
            "skipped": self.skipped,
            "error": self.error,
        }


@dataclass
class BatchResult:
    """Aggregate result of one batch run for one owner."""

    owner_id: str
    started_at: datetime = field(default_factory=utcnow)
    finished_at: datetime | None = None
    processed: int = 0
    succeeded: int = 0
    errors: int = 0
    skipped: int = 0
    created: dict[RecordKind, int] = field(
        default_factory=lambda: {kind: 0 for kind in RecordKind}
    )
    results: list[MessageResult] = field(default_factory=list)

    @property
    def duration_ms(self) -> int:
        if self.finished_at is None:
            return 0
        return int((self.finished_at - self.started_at).total_seconds() * 1000)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ownerId": self.owner_id,
            "processed": self.processed,
            "success": self.succeeded,
            "errors": self.errors,
            "skipped": self.skipped,
            "duration": self.duration_ms,
            "createdRecords": {f"{kind.value}s": count for kind, count in self.created.items()},
            "startTime": self.started_at.isoformat(),
            "endTime": self.finished_at.isoformat() if self.finished_at else None,
            "details": [r.to_dict() for r in self.results],
        }
