"""
Remote classifier client for the inference endpoint.

Sends only the anonymized payload. Every failure (missing configuration,
timeout, network error, non-2xx status, malformed body) falls back to the
local classifier and is reported through ClassificationOutcome rather than
raised.
"""

from typing import Any

import httpx
from pydantic import BaseModel, Field, ValidationError

from lifeflow.classifiers.base import BaseClassifier
from lifeflow.classifiers.local import LocalClassifier
from lifeflow.config import Settings
from lifeflow.core.logging import get_logger
from lifeflow.core.models import (
    AnonymizedMessage,
    Category,
    Classification,
    ClassificationOutcome,
    ClassificationSource,
    ExtractedData,
)

log = get_logger(__name__)

FALLBACK_NOT_CONFIGURED = "not_configured"
FALLBACK_TIMEOUT = "timeout"
FALLBACK_REQUEST_ERROR = "request_error"
FALLBACK_HTTP_STATUS = "http_status"
FALLBACK_MALFORMED = "malformed_response"


class RemoteClassification(BaseModel):
    """Classification body returned by the inference endpoint."""

    category: Category
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str = ""
    extracted_data: dict[str, Any] | None = Field(default=None, alias="extractedData")

    def to_classification(self) -> Classification:
        return Classification(
            category=self.category,
            confidence=self.confidence,
            extracted_data=ExtractedData.from_dict(self.extracted_data),
            reasoning=self.reasoning,
        )


class MalformedResponse(ValueError):
    """The endpoint answered 2xx with a body we cannot use."""


def parse_response(data: Any) -> Classification:
    """
    Parse an endpoint response.

    Accepts the wrapped form {"success": true, "classification": {...}}
    and the bare {category, confidence, reasoning} form.
    """
    if not isinstance(data, dict):
        raise MalformedResponse("response is not an object")
    if "classification" in data:
        if data.get("success") is False:
            raise MalformedResponse(data.get("error") or "endpoint reported failure")
        data = data["classification"]
    try:
        return RemoteClassification.model_validate(data).to_classification()
    except ValidationError as e:
        raise MalformedResponse(str(e)) from e


class RemoteClassifier(BaseClassifier):
    """HTTP client for the inference endpoint with local fallback."""

    def __init__(
        self,
        settings: Settings,
        local: BaseClassifier | None = None,
        http_client: httpx.Client | None = None,
    ):
        self.settings = settings
        self.base_url = settings.inference_url.rstrip("/")
        self.local = local or LocalClassifier()
        self._client = http_client or httpx.Client(timeout=settings.inference_timeout)

    def classify(self, message: AnonymizedMessage) -> ClassificationOutcome:
        """
        Classify via the endpoint, falling back to local scoring on any failure.

        Args:
            message: Anonymized message; nothing else leaves the process

        Returns:
            ClassificationOutcome with source REMOTE, or LOCAL plus a fallback_reason
        """
        if not self.settings.inference_configured:
            return self._fallback(message, FALLBACK_NOT_CONFIGURED)

        payload = {
            "action": "classify_email",
            "data": message.to_payload(),
            "options": {
                "includeReasoning": True,
                "minConfidence": self.settings.min_confidence,
            },
        }

        try:
            response = self._client.post(
                f"{self.base_url}/classify",
                json=payload,
                headers={"Authorization": f"Bearer {self.settings.inference_api_key}"},
                timeout=self.settings.inference_timeout,
            )
            response.raise_for_status()
            classification = parse_response(response.json())

        except httpx.TimeoutException as e:
            return self._fallback(message, FALLBACK_TIMEOUT, error=str(e))

        except httpx.HTTPStatusError as e:
            return self._fallback(
                message, FALLBACK_HTTP_STATUS, error=f"status {e.response.status_code}"
            )

        except httpx.RequestError as e:
            return self._fallback(message, FALLBACK_REQUEST_ERROR, error=str(e))

        except (MalformedResponse, ValueError) as e:
            # ValueError covers bodies that are not JSON at all
            return self._fallback(message, FALLBACK_MALFORMED, error=str(e))

        except Exception as e:
            # e.g. httpx.InvalidURL for a misconfigured endpoint
            return self._fallback(message, FALLBACK_REQUEST_ERROR, error=str(e))

        log.info(
            "message_classified",
            message_id=message.id,
            category=classification.category.value,
            confidence=classification.confidence,
            source=ClassificationSource.REMOTE.value,
        )
        return ClassificationOutcome(
            classification=classification,
            source=ClassificationSource.REMOTE,
        )

    def _fallback(
        self, message: AnonymizedMessage, reason: str, error: str | None = None
    ) -> ClassificationOutcome:
        if reason == FALLBACK_NOT_CONFIGURED:
            log.debug("remote_classifier_not_configured", message_id=message.id)
        else:
            log.warning(
                "remote_classifier_fallback",
                message_id=message.id,
                reason=reason,
                error=error,
            )
        outcome = self.local.classify(message)
        return ClassificationOutcome(
            classification=outcome.classification,
            source=ClassificationSource.LOCAL,
            fallback_reason=reason,
        )

    def health_check(self) -> bool:
        """Check if the inference endpoint is healthy."""
        if not self.settings.inference_configured:
            return False
        try:
            response = self._client.get(
                f"{self.base_url}/health",
                headers={"Authorization": f"Bearer {self.settings.inference_api_key}"},
            )
            response.raise_for_status()
            return response.json().get("status") in ("healthy", "ok")
        except Exception as e:
            log.warning("remote_classifier_health_check_failed", error=str(e))
            return False

    def close(self):
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
