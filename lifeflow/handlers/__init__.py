"""Action handlers."""

from .base import ActionContext, ActionOutcome, BaseActionHandler
from .registry import get_handler, missing_handlers, register_handler

# Import handlers to trigger registration via @register_handler decorator
from .records import CreateEventHandler, CreateTaskHandler, RecordInvoiceHandler
from .tracking import TrackOrderHandler, TrackPackageHandler
from .outbound import SendNotificationHandler, WebhookHandler

from .executor import ActionExecutor

__all__ = [
    "ActionContext",
    "ActionExecutor",
    "ActionOutcome",
    "BaseActionHandler",
    "CreateEventHandler",
    "CreateTaskHandler",
    "RecordInvoiceHandler",
    "SendNotificationHandler",
    "TrackOrderHandler",
    "TrackPackageHandler",
    "WebhookHandler",
    "get_handler",
    "missing_handlers",
    "register_handler",
]
