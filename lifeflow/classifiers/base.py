"""
Abstract base class for message classifiers.
"""

from abc import ABC, abstractmethod

from lifeflow.core.models import AnonymizedMessage, ClassificationOutcome


class BaseClassifier(ABC):
    """Abstract classifier interface."""

    @abstractmethod
    def classify(self, message: AnonymizedMessage) -> ClassificationOutcome:
        """
        Classify an anonymized message.

        Args:
            message: PII-free view of the message

        Returns:
            ClassificationOutcome with the classification and its source
        """
        pass

    def close(self):
        """Release client resources; local classifiers hold none."""
        pass
