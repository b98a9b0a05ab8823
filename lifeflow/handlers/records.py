"""
Handlers that create a single record per message: tasks, events, invoices.
"""

import re
from datetime import timedelta

from lifeflow.core.logging import get_logger
from lifeflow.core.models import (
    Event,
    Invoice,
    InvoiceStatus,
    RecordKind,
    RecordReference,
    Task,
    TaskPriority,
)
from lifeflow.handlers.base import ActionContext, ActionOutcome, BaseActionHandler, parse_date
from lifeflow.handlers.registry import register_handler
from lifeflow.rules.models import ActionKind, CreateEventParams, CreateTaskParams, RecordInvoiceParams

log = get_logger(__name__)

URGENT_RE = re.compile(
    r"\b(?:dringend|urgent|asap|spoed|spoedgeval|belangrijk|important|deadline)\b",
    re.IGNORECASE,
)


def determine_priority(text: str) -> TaskPriority:
    """High when the text contains an urgency keyword, else medium."""
    return TaskPriority.HIGH if URGENT_RE.search(text) else TaskPriority.MEDIUM


@register_handler
class CreateTaskHandler(BaseActionHandler):
    """Creates a task from the message."""

    kind = ActionKind.CREATE_TASK

    def handle(self, ctx: ActionContext, params: CreateTaskParams) -> ActionOutcome:
        message = ctx.message

        if params.title:
            title = ctx.render(params.title)
        else:
            title = ctx.extracted.task_title or f"[Email] {message.subject[:100]}"

        priority = params.priority
        if priority is None and ctx.extracted.task_priority in {p.value for p in TaskPriority}:
            priority = TaskPriority(ctx.extracted.task_priority)
        if priority is None:
            priority = determine_priority(message.text)

        if params.due_in_days is not None:
            due_date = ctx.now + timedelta(days=params.due_in_days)
        else:
            due_date = parse_date(ctx.extracted.task_due_date)

        task_id = self.storage.create_task(Task(
            owner_id=ctx.owner_id,
            title=title[:200],
            description=(
                f"Action required for message from {ctx.sender_name}.\n\n"
                f"Original subject: {message.subject}"
            ),
            priority=priority,
            due_date=due_date,
            source_message_id=message.id,
        ))
        ref = RecordReference(RecordKind.TASK, task_id)
        log.info("task_created", task_id=task_id, priority=priority.value)
        return ActionOutcome(success=True, result=ref, created=[ref])


@register_handler
class CreateEventHandler(BaseActionHandler):
    """Creates a calendar event; starts now when no date can be found."""

    kind = ActionKind.CREATE_EVENT

    def handle(self, ctx: ActionContext, params: CreateEventParams) -> ActionOutcome:
        extracted = ctx.extracted
        start = parse_date(extracted.event_date, extracted.event_time) or ctx.now

        event_id = self.storage.create_event(Event(
            owner_id=ctx.owner_id,
            title=(extracted.event_title or ctx.message.subject or "Event")[:200],
            start_time=start,
            end_time=start + timedelta(minutes=params.duration_minutes),
            description=f"Appointment from message by {ctx.sender_name}",
            location=params.location or extracted.event_location,
            source_message_id=ctx.message.id,
        ))
        ref = RecordReference(RecordKind.EVENT, event_id)
        log.info("event_created", event_id=event_id, start_time=start.isoformat())
        return ActionOutcome(success=True, result=ref, created=[ref])


@register_handler
class RecordInvoiceHandler(BaseActionHandler):
    """Records a payable (or receivable) invoice."""

    kind = ActionKind.RECORD_INVOICE

    def handle(self, ctx: ActionContext, params: RecordInvoiceParams) -> ActionOutcome:
        extracted = ctx.extracted
        status = InvoiceStatus.APPROVED if params.auto_approve else InvoiceStatus.PENDING

        invoice_id = self.storage.create_invoice(Invoice(
            owner_id=ctx.owner_id,
            description=f"Invoice from {ctx.sender_name}: {ctx.message.subject[:100]}",
            amount=extracted.amount or 0.0,
            currency=extracted.currency or self.settings.default_currency,
            status=status,
            invoice_type=params.invoice_type,
            due_date=parse_date(extracted.due_date),
            invoice_number=extracted.invoice_number,
            sender=ctx.message.sender,
            source_message_id=ctx.message.id,
        ))
        ref = RecordReference(RecordKind.INVOICE, invoice_id)
        log.info("invoice_recorded", invoice_id=invoice_id, status=status.value)
        return ActionOutcome(success=True, result=ref, created=[ref])
