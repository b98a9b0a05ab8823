"""
Abstract base class for action handlers.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Any, ClassVar

import httpx

from lifeflow.anonymizer import extract_domain, extract_sender_name
from lifeflow.config import Settings
from lifeflow.core.logging import get_logger
from lifeflow.core.models import Classification, ExtractedData, RawMessage, RecordReference
from lifeflow.core.storage import Storage
from lifeflow.rules.models import ActionKind, Rule

log = get_logger(__name__)

TEMPLATE_RE = re.compile(r"\{\{\s*(\w+)\s*\}\}")


@dataclass
class ActionContext:
    """Everything a handler may read while executing one rule for one message."""

    owner_id: str
    rule: Rule
    message: RawMessage
    classification: Classification
    extracted: ExtractedData
    now: datetime

    @property
    def sender_name(self) -> str:
        return extract_sender_name(self.message.sender)

    @property
    def sender_domain(self) -> str:
        return extract_domain(self.message.sender)

    def render(self, template: str) -> str:
        """Fill {{sender}}, {{subject}} and {{category}}; unknown names stay as written."""
        values = {
            "sender": self.sender_name,
            "subject": self.message.subject,
            "category": self.classification.category.value,
        }
        return TEMPLATE_RE.sub(lambda m: values.get(m.group(1), m.group(0)), template)


@dataclass
class ActionOutcome:
    """What a handler did: the primary record plus any records it created."""

    success: bool
    result: RecordReference | None = None
    created: list[RecordReference] = field(default_factory=list)
    detail: str | None = None
    error: str | None = None

    @classmethod
    def failed(cls, error: str) -> "ActionOutcome":
        return cls(success=False, error=error)


def parse_date(value: str | None, at: str | None = None) -> datetime | None:
    """
    Parse an ISO date (and optional HH:MM time) into an aware UTC datetime.

    Returns None when value is empty or not a date.
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        try:
            parsed = datetime.combine(date.fromisoformat(value[:10]), time())
        except ValueError:
            return None

    if at:
        try:
            hour, minute = (int(part) for part in at.split(":")[:2])
            parsed = parsed.replace(hour=hour, minute=minute)
        except ValueError:
            pass

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class BaseActionHandler(ABC):
    """Abstract handler interface for one action kind."""

    kind: ClassVar[ActionKind]

    def __init__(self, storage: Storage, settings: Settings, http_client: httpx.Client | None = None):
        self.storage = storage
        self.settings = settings
        self.http_client = http_client

    @abstractmethod
    def handle(self, ctx: ActionContext, params: Any) -> ActionOutcome:
        """
        Perform the action.

        Args:
            ctx: Message, classification and extracted data for this rule
            params: The rule's typed action params

        Returns:
            ActionOutcome describing the record touched
        """
        pass

    def run(self, ctx: ActionContext) -> ActionOutcome:
        """Run handle(), turning any exception into a failed outcome."""
        try:
            return self.handle(ctx, ctx.rule.action.params)
        except Exception as e:
            log.error(
                "action_failed",
                action=self.kind.value,
                rule_id=ctx.rule.id,
                message_id=ctx.message.id,
                error=str(e),
            )
            return ActionOutcome.failed(str(e))
