"""
Typed rule models.

Rules are stored as loose JSON (trigger and action documents). They are
parsed here once, at the storage boundary, into pydantic models; the
matcher and executor only ever see the typed form.
"""

import json
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from lifeflow.core.exceptions import RuleParseError
from lifeflow.core.models import Category, TaskPriority


class ActionKind(str, Enum):
    """Closed set of actions a rule can perform."""

    CREATE_TASK = "create_task"
    CREATE_EVENT = "create_event"
    RECORD_INVOICE = "record_invoice"
    TRACK_PACKAGE = "track_package"
    TRACK_ORDER = "track_order"
    SEND_NOTIFICATION = "send_notification"
    WEBHOOK = "webhook"


class ConditionField(str, Enum):
    SENDER = "sender"
    RECIPIENT = "recipient"
    SUBJECT = "subject"
    BODY = "body"
    CATEGORY = "category"
    SENDER_DOMAIN = "senderDomain"


class ConditionOperator(str, Enum):
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    EQUALS = "equals"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    REGEX = "regex"


# Older rule documents use the raw header names
_LEGACY_FIELDS = {
    "from": "sender",
    "to": "recipient",
    "sender_domain": "senderDomain",
}


class _RuleModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


# Trigger


class TriggerCondition(_RuleModel):
    field: ConditionField
    operator: ConditionOperator
    value: str
    case_sensitive: bool = Field(default=False, alias="caseSensitive")

    @field_validator("field", mode="before")
    @classmethod
    def _map_legacy_field(cls, value: Any) -> Any:
        if isinstance(value, str):
            return _LEGACY_FIELDS.get(value, value)
        return value


class RuleTrigger(_RuleModel):
    """Optional category plus conditions that must all hold."""

    type: str = "email"
    category: Category | None = None
    conditions: tuple[TriggerCondition, ...] = ()


# Actions


class CreateTaskParams(_RuleModel):
    title: str | None = None  # may use {{sender}}, {{subject}}, {{category}}
    priority: TaskPriority | None = None
    due_in_days: int | None = Field(default=None, ge=0, alias="dueInDays")


class CreateEventParams(_RuleModel):
    duration_minutes: int = Field(default=60, gt=0, alias="durationMinutes")
    location: str | None = None


class RecordInvoiceParams(_RuleModel):
    auto_approve: bool = Field(default=False, alias="autoApprove")
    invoice_type: Literal["payable", "receivable"] = Field(default="payable", alias="invoiceType")


class TrackPackageParams(_RuleModel):
    carrier: str | None = None


class TrackOrderParams(_RuleModel):
    create_package: bool = Field(default=True, alias="createPackage")


class SendNotificationParams(_RuleModel):
    channel: Literal["push", "email", "sms"] = "push"
    message: str | None = None


class WebhookParams(_RuleModel):
    url: str = Field(min_length=1)
    headers: dict[str, str] = Field(default_factory=dict)

    @field_validator("url")
    @classmethod
    def _http_url(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError("webhook url must be http(s)")
        return value


class _Action(_RuleModel):
    notify_user: bool = Field(default=False, alias="notifyUser")

    @property
    def kind(self) -> ActionKind:
        return ActionKind(self.type)


class CreateTaskAction(_Action):
    type: Literal["create_task"]
    params: CreateTaskParams = Field(default_factory=CreateTaskParams)


class CreateEventAction(_Action):
    type: Literal["create_event"]
    params: CreateEventParams = Field(default_factory=CreateEventParams)


class RecordInvoiceAction(_Action):
    type: Literal["record_invoice"]
    params: RecordInvoiceParams = Field(default_factory=RecordInvoiceParams)


class TrackPackageAction(_Action):
    type: Literal["track_package"]
    params: TrackPackageParams = Field(default_factory=TrackPackageParams)


class TrackOrderAction(_Action):
    type: Literal["track_order"]
    params: TrackOrderParams = Field(default_factory=TrackOrderParams)


class SendNotificationAction(_Action):
    type: Literal["send_notification"]
    params: SendNotificationParams = Field(default_factory=SendNotificationParams)


class WebhookAction(_Action):
    type: Literal["webhook"]
    params: WebhookParams


RuleAction = Annotated[
    Union[
        CreateTaskAction,
        CreateEventAction,
        RecordInvoiceAction,
        TrackPackageAction,
        TrackOrderAction,
        SendNotificationAction,
        WebhookAction,
    ],
    Field(discriminator="type"),
]

_action_adapter = TypeAdapter(RuleAction)


class UnsupportedAction(_RuleModel):
    """An action document that did not parse; executing it always fails."""

    type: str
    params: dict[str, Any] = Field(default_factory=dict)
    reason: str

    @property
    def kind(self) -> None:
        return None


# Rule


class Rule(_RuleModel):
    id: str
    owner_id: str = Field(validation_alias=AliasChoices("owner_id", "ownerId", "userId"))
    name: str
    description: str | None = None
    trigger: RuleTrigger
    action: Union[RuleAction, UnsupportedAction]
    is_active: bool = Field(default=True, validation_alias=AliasChoices("is_active", "isActive"))
    priority: int = 100


def _as_document(value: Any) -> Any:
    if isinstance(value, (str, bytes)):
        return json.loads(value)
    return value


def parse_action(document: Any) -> RuleAction | UnsupportedAction:
    """
    Parse an action document.

    Never raises: unknown kinds and invalid params come back as
    UnsupportedAction with the reason.
    """
    try:
        document = _as_document(document)
    except ValueError as e:
        return UnsupportedAction(type="unknown", reason=f"action is not valid JSON: {e}")

    if not isinstance(document, dict):
        return UnsupportedAction(type="unknown", reason="action must be an object")

    action_type = str(document.get("type") or "unknown")
    params = document.get("params") if isinstance(document.get("params"), dict) else {}
    if action_type not in {kind.value for kind in ActionKind}:
        return UnsupportedAction(
            type=action_type, params=params, reason=f"Unknown action type: {action_type}"
        )

    try:
        return _action_adapter.validate_python(document)
    except ValidationError as e:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        return UnsupportedAction(
            type=action_type, params=params, reason=f"Invalid {action_type} params: {errors}"
        )


def parse_trigger(document: Any) -> RuleTrigger:
    """Parse a trigger document, raising ValueError when it is invalid."""
    document = _as_document(document)
    if document is None:
        return RuleTrigger()
    return RuleTrigger.model_validate(document)


def parse_rule(record: dict[str, Any]) -> Rule:
    """
    Parse a stored rule row into a Rule.

    Raises:
        RuleParseError: if the trigger or the rule fields are invalid.
            Invalid actions do not raise, see parse_action.
    """
    rule_id = str(record.get("id", "?"))
    try:
        trigger = parse_trigger(record.get("trigger"))
        data = dict(record)
        data["id"] = rule_id
        data["trigger"] = trigger
        data["action"] = parse_action(record.get("action"))
        return Rule.model_validate(data)
    except (ValidationError, ValueError) as e:
        raise RuleParseError(rule_id, str(e)) from e
