"""Message processors."""

from .base import BaseProcessor
from .batch import BatchOptions, BatchProcessor

__all__ = ["BaseProcessor", "BatchOptions", "BatchProcessor"]
