"""Core modules: models, logging, errors and storage."""

from .exceptions import LifeflowError, OwnerNotFoundError, RuleParseError
from .logging import bind_context, clear_context, configure_logging, get_logger
from .models import (
    AnonymizedMessage,
    BatchResult,
    Category,
    Classification,
    ClassificationOutcome,
    ClassificationSource,
    ExecutionResult,
    ExtractedData,
    MessageResult,
    RawMessage,
    RecordKind,
)
from .storage import Storage

__all__ = [
    "LifeflowError",
    "OwnerNotFoundError",
    "RuleParseError",
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_logger",
    "AnonymizedMessage",
    "BatchResult",
    "Category",
    "Classification",
    "ClassificationOutcome",
    "ClassificationSource",
    "ExecutionResult",
    "ExtractedData",
    "MessageResult",
    "RawMessage",
    "RecordKind",
    "Storage",
]
