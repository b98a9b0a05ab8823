"""
Abstract base class for message processors.
"""

from abc import ABC, abstractmethod
from typing import Iterable

from lifeflow.core.models import BatchResult, RawMessage


class BaseProcessor(ABC):
    """Abstract processor interface for message processing pipelines."""

    @abstractmethod
    def process(self, owner_id: str, messages: Iterable[RawMessage], options=None) -> BatchResult:
        """
        Process messages for one owner.

        Args:
            owner_id: Account owner the messages belong to
            messages: Messages in the order they should be handled
            options: Processor-specific options

        Returns:
            BatchResult with counts and per-message results
        """
        pass
