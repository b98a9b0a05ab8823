"""Unit tests for the local and remote classifiers."""

import json

import httpx
import pytest

from lifeflow.anonymizer import anonymize
from lifeflow.classifiers import LocalClassifier, RemoteClassifier, classify_locally, get_classifier
from lifeflow.classifiers.domains import lookup_domain, MERCHANT_DOMAINS, shop_name_from_domain
from lifeflow.classifiers.local import score_message
from lifeflow.core.models import (
    AnonymizedMessage,
    Category,
    ClassificationSource,
    TemporalFeatures,
)


def anonymized(tokens=(), domain="example.com", attachment_types=()):
    return AnonymizedMessage(
        id="anon-1",
        sender_domain=domain,
        subject_tokens=tuple(tokens),
        body_tokens=(),
        has_attachments=bool(attachment_types),
        attachment_types=tuple(attachment_types),
        temporal=TemporalFeatures(day_of_week=1, hour_of_day=9, is_weekend=False),
    )


class TestLocalClassifier:
    """Tests for keyword and domain scoring."""

    def test_delivery_scenario(self, postnl_message):
        """Test a PostNL parcel notice classifies as delivery."""
        classification = classify_locally(anonymize(postnl_message))

        assert classification.category == Category.DELIVERY
        assert classification.confidence >= 0.6
        assert classification.extracted_data.carrier == "PostNL"

    def test_invoice_scenario(self, invoice_message):
        classification = classify_locally(anonymize(invoice_message))

        assert classification.category == Category.INVOICE
        assert classification.confidence >= 0.6

    def test_order_scenario(self, order_messages):
        """Test both AliExpress messages stay in the order category."""
        for message in order_messages:
            classification = classify_locally(anonymize(message))

            assert classification.category == Category.ORDER
            assert classification.confidence >= 0.6
            assert classification.extracted_data.shop_name == "AliExpress"

    def test_classification_is_pure(self, invoice_message):
        """Test the same input always gives the same output."""
        message = anonymize(invoice_message)
        assert classify_locally(message) == classify_locally(message)

    def test_no_signal_is_unknown(self):
        classification = classify_locally(anonymized())

        assert classification.category == Category.UNKNOWN
        assert classification.confidence == 0.5

    def test_tie_goes_to_first_declared_category(self):
        """Test equal scores resolve by Category declaration order."""
        for tokens in (
            ["invoice:factuur", "order:orderbevestiging"],
            ["order:orderbevestiging", "invoice:factuur"],
        ):
            classification = classify_locally(anonymized(tokens))

            assert classification.category == Category.INVOICE
            assert classification.confidence == 0.8

    def test_tie_between_delivery_and_order(self):
        """Test delivery beats order on a tie when no disambiguation applies."""
        scores = score_message(anonymized(["order:order", "delivery:pakket"]))

        assert scores[Category.ORDER] == scores[Category.DELIVERY] == 5
        assert classify_locally(anonymized(["order:order", "delivery:pakket"])).category == Category.DELIVERY

    def test_disambiguation_favours_shipment(self):
        scores = score_message(anonymized(["order:order", "delivery:shipped"]))

        assert scores[Category.ORDER] == 5
        assert scores[Category.DELIVERY] == 6 + 10

    def test_disambiguation_favours_order(self):
        scores = score_message(anonymized(["order:orderbevestiging", "delivery:pakket"]))

        assert scores[Category.ORDER] == 8 + 10
        assert scores[Category.DELIVERY] == 5

    def test_domain_registry_bonus(self):
        scores = score_message(anonymized(domain="mail.postnl.nl"))
        assert scores[Category.DELIVERY] == 30

    def test_merchant_domain_bonus(self):
        classification = classify_locally(anonymized(domain="notice.aliexpress.com"))

        assert classification.category == Category.ORDER
        assert classification.confidence == 0.95

    def test_pdf_attachment_bonus(self):
        scores = score_message(anonymized(attachment_types=["application/pdf"]))
        assert scores[Category.INVOICE] == 2

    def test_confidence_bounds(self, postnl_message, invoice_message, order_messages, make_message):
        messages = [postnl_message, invoice_message, *order_messages, make_message(subject="hoi")]
        for message in messages:
            classification = classify_locally(anonymize(message))

            assert 0.0 <= classification.confidence <= 1.0
            assert classification.category in set(Category)

    def test_local_classifier_outcome(self, postnl_message):
        outcome = LocalClassifier().classify(anonymize(postnl_message))

        assert outcome.source == ClassificationSource.LOCAL
        assert outcome.used_fallback is False


class TestDomains:
    """Tests for domain registries."""

    def test_lookup_matches_parent_domain(self):
        assert lookup_domain("mail.aliexpress.com", MERCHANT_DOMAINS) == "AliExpress"
        assert lookup_domain("aliexpress.com.evil.org", MERCHANT_DOMAINS) is None
        assert lookup_domain("unknown", MERCHANT_DOMAINS) is None

    def test_shop_name_fallback(self):
        assert shop_name_from_domain("shop.example.nl") == "Example"
        assert shop_name_from_domain("unknown") == "Unknown"


def remote_with(settings, handler):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return RemoteClassifier(settings, http_client=client)


class TestRemoteClassifier:
    """Tests for the inference endpoint client and its fallback."""

    def test_remote_success(self, remote_settings, postnl_message):
        """Test a valid endpoint answer is used as-is."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "success": True,
                "classification": {
                    "category": "delivery",
                    "confidence": 0.91,
                    "reasoning": "carrier domain",
                    "extractedData": {"carrier": "PostNL"},
                },
            })

        outcome = remote_with(remote_settings, handler).classify(anonymize(postnl_message))

        assert outcome.source == ClassificationSource.REMOTE
        assert outcome.fallback_reason is None
        assert outcome.classification.category == Category.DELIVERY
        assert outcome.classification.confidence == 0.91
        assert outcome.classification.extracted_data.carrier == "PostNL"
        assert seen["url"] == "https://inference.test/api/classify"
        assert seen["auth"] == "Bearer test-api-key"
        assert seen["body"]["action"] == "classify_email"
        assert seen["body"]["options"]["minConfidence"] == 0.6

    def test_only_anonymized_payload_is_sent(self, remote_settings, postnl_message):
        """Test the request carries no subject, body or sender address."""
        sent = []

        def handler(request):
            sent.append(request.content.decode())
            return httpx.Response(200, json={"category": "delivery", "confidence": 0.8, "reasoning": ""})

        remote_with(remote_settings, handler).classify(anonymize(postnl_message))

        body = json.loads(sent[0])
        assert set(body["data"]) == {
            "id", "fromDomain", "subjectTokens", "bodyTokens",
            "hasAttachments", "attachmentTypes", "dateInfo",
        }
        assert "noreply@postnl.nl" not in sent[0]
        assert "3SABCD1234567890" not in sent[0]
        assert "Uw pakket is onderweg" not in sent[0]

    def test_bare_response_shape(self, remote_settings, invoice_message):
        def handler(request):
            return httpx.Response(200, json={"category": "invoice", "confidence": 0.7, "reasoning": "ok"})

        outcome = remote_with(remote_settings, handler).classify(anonymize(invoice_message))

        assert outcome.source == ClassificationSource.REMOTE
        assert outcome.classification.category == Category.INVOICE

    def test_not_configured_falls_back_without_request(self, settings, postnl_message):
        def handler(request):
            raise AssertionError("endpoint must not be called")

        outcome = remote_with(settings, handler).classify(anonymize(postnl_message))

        assert outcome.source == ClassificationSource.LOCAL
        assert outcome.fallback_reason == "not_configured"
        assert outcome.classification.category == Category.DELIVERY

    @pytest.mark.parametrize(
        "handler,reason",
        [
            (lambda request: httpx.Response(500, json={"error": "boom"}), "http_status"),
            (lambda request: httpx.Response(401), "http_status"),
            (lambda request: httpx.Response(200, text="<html>not json</html>"), "malformed_response"),
            (lambda request: httpx.Response(200, json={"category": "bogus", "confidence": 0.9}), "malformed_response"),
            (lambda request: httpx.Response(200, json={"category": "invoice", "confidence": 1.5}), "malformed_response"),
            (lambda request: httpx.Response(200, json={"success": False, "classification": None}), "malformed_response"),
            (lambda request: httpx.Response(200, json=["invoice"]), "malformed_response"),
        ],
    )
    def test_failures_fall_back_to_local(self, remote_settings, postnl_message, handler, reason):
        """Test every endpoint failure degrades to the local result."""
        outcome = remote_with(remote_settings, handler).classify(anonymize(postnl_message))

        assert outcome.source == ClassificationSource.LOCAL
        assert outcome.fallback_reason == reason
        assert outcome.used_fallback is True
        assert outcome.classification == classify_locally(anonymize(postnl_message))

    def test_timeout_falls_back(self, remote_settings, postnl_message):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        outcome = remote_with(remote_settings, handler).classify(anonymize(postnl_message))

        assert outcome.fallback_reason == "timeout"
        assert outcome.classification.category == Category.DELIVERY

    def test_network_error_falls_back(self, remote_settings, postnl_message):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        outcome = remote_with(remote_settings, handler).classify(anonymize(postnl_message))

        assert outcome.fallback_reason == "request_error"
        assert outcome.source == ClassificationSource.LOCAL

    def test_health_check(self, remote_settings):
        def healthy(request):
            assert request.url.path == "/api/health"
            return httpx.Response(200, json={"status": "healthy"})

        def broken(request):
            return httpx.Response(503)

        assert remote_with(remote_settings, healthy).health_check() is True
        assert remote_with(remote_settings, broken).health_check() is False

    def test_health_check_not_configured(self, settings):
        assert RemoteClassifier(settings).health_check() is False


class TestGetClassifier:
    """Tests for classifier selection."""

    def test_local_when_disabled(self, settings):
        assert isinstance(get_classifier(settings), LocalClassifier)

    def test_remote_when_enabled(self, remote_settings):
        classifier = get_classifier(remote_settings)
        assert isinstance(classifier, RemoteClassifier)
        classifier.close()

    def test_local_only_overrides(self, remote_settings):
        assert isinstance(get_classifier(remote_settings, local_only=True), LocalClassifier)
