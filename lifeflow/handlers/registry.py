"""
Handler registry: one handler class per action kind.
"""

from typing import Type

from lifeflow.core.logging import get_logger
from lifeflow.handlers.base import BaseActionHandler
from lifeflow.rules.models import ActionKind

log = get_logger(__name__)

# Global handler registry
_handlers: dict[ActionKind, Type[BaseActionHandler]] = {}


def register_handler(handler_class: Type[BaseActionHandler]) -> Type[BaseActionHandler]:
    """
    Decorator to register a handler class for its action kind.

    Usage:
        @register_handler
        class CreateTaskHandler(BaseActionHandler):
            kind = ActionKind.CREATE_TASK
            ...
    """
    kind = handler_class.kind
    existing = _handlers.get(kind)
    if existing is not None and existing is not handler_class:
        raise ValueError(
            f"Action {kind.value} already handled by {existing.__name__}"
        )
    _handlers[kind] = handler_class
    log.debug("handler_registered", handler=handler_class.__name__, action=kind.value)
    return handler_class


def get_handler(kind: ActionKind) -> Type[BaseActionHandler] | None:
    """Get the handler class registered for an action kind, or None."""
    return _handlers.get(kind)


def get_all_handlers() -> dict[ActionKind, Type[BaseActionHandler]]:
    """Get all registered handler classes."""
    return dict(_handlers)


def missing_handlers() -> list[ActionKind]:
    """Action kinds with no registered handler, in declaration order."""
    return [kind for kind in ActionKind if kind not in _handlers]
