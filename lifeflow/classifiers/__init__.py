"""
Message classifiers.

The remote classifier is used when configured and enabled; it falls back
to local keyword scoring on its own, so callers never see a failure.
"""

from lifeflow.classifiers.base import BaseClassifier
from lifeflow.classifiers.local import LocalClassifier, classify_locally
from lifeflow.classifiers.remote import RemoteClassifier
from lifeflow.config import Settings


def get_classifier(settings: Settings, local_only: bool = False) -> BaseClassifier:
    """
    Get the classifier for the given settings.

    Returns a LocalClassifier when local_only is set or remote
    classification is disabled, otherwise a RemoteClassifier.
    """
    if local_only or not settings.use_remote_classifier:
        return LocalClassifier()
    return RemoteClassifier(settings)


__all__ = [
    "BaseClassifier",
    "LocalClassifier",
    "RemoteClassifier",
    "classify_locally",
    "get_classifier",
]
