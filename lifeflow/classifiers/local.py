"""
Deterministic keyword and domain scoring.

Works on the anonymized view only, so it can run anywhere the remote
endpoint would. Same input always gives the same Classification.
"""

from lifeflow.anonymizer.vocabulary import (
    AMOUNT_TOKEN,
    DATE_TOKEN,
    KEYWORDS,
    ORDER_ONLY_KEYWORDS,
    SHIPMENT_ONLY_KEYWORDS,
    TRACKING_CODE_TOKEN,
)
from lifeflow.classifiers.base import BaseClassifier
from lifeflow.classifiers.domains import DOMAIN_CATEGORIES, carrier_for, lookup_domain, merchant_for
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

DOMAIN_BONUS = 30
MERCHANT_BONUS = 25
CARRIER_TOKEN_WEIGHT = 6
MERCHANT_TOKEN_WEIGHT = 4
AMOUNT_WEIGHT = 3
TRACKING_CODE_WEIGHT = 3
DATE_WEIGHT = 1
PDF_BONUS = 2
DISAMBIGUATION_BONUS = 10

CONFIDENCE_OFFSET = 0.3
MAX_CONFIDENCE = 0.95
DEFAULT_CONFIDENCE = 0.5


def score_message(message: AnonymizedMessage) -> dict[Category, int]:
    """
    Score every category for an anonymized message.

    The returned dict iterates in Category declaration order.
    """
    scores = {category: 0 for category in Category}

    domain_category = lookup_domain(message.sender_domain, DOMAIN_CATEGORIES)
    if domain_category is not None:
        scores[domain_category] += DOMAIN_BONUS
    elif merchant_for(message.sender_domain):
        scores[Category.ORDER] += MERCHANT_BONUS

    keywords_seen = set()
    for token in message.tokens:
        prefix, _, value = token.partition(":")
        if prefix == "carrier":
            scores[Category.DELIVERY] += CARRIER_TOKEN_WEIGHT
        elif prefix == "merchant":
            scores[Category.ORDER] += MERCHANT_TOKEN_WEIGHT
        elif token == AMOUNT_TOKEN:
            scores[Category.INVOICE] += AMOUNT_WEIGHT
        elif token == TRACKING_CODE_TOKEN:
            scores[Category.DELIVERY] += TRACKING_CODE_WEIGHT
        elif token == DATE_TOKEN:
            scores[Category.EVENT] += DATE_WEIGHT
            scores[Category.TASK] += DATE_WEIGHT
        else:
            try:
                category = Category(prefix)
            except ValueError:
                continue
            weight = KEYWORDS.get(category, {}).get(value)
            if weight:
                scores[category] += weight
                keywords_seen.add(value)

    if any("pdf" in mime.lower() for mime in message.attachment_types):
        scores[Category.INVOICE] += PDF_BONUS

    if scores[Category.ORDER] > 0 and scores[Category.DELIVERY] > 0:
        shipped = bool(keywords_seen & SHIPMENT_ONLY_KEYWORDS)
        ordered = bool(keywords_seen & ORDER_ONLY_KEYWORDS)
        if shipped and not ordered:
            scores[Category.DELIVERY] += DISAMBIGUATION_BONUS
        elif ordered and not shipped:
            scores[Category.ORDER] += DISAMBIGUATION_BONUS

    return scores


def pick_category(scores: dict[Category, int]) -> tuple[Category, float]:
    """
    Highest score wins; equal scores go to the category declared first.

    Returns the category and its confidence.
    """
    total = sum(scores.values())
    if total <= 0:
        return Category.UNKNOWN, DEFAULT_CONFIDENCE

    best, best_score = Category.UNKNOWN, 0
    for category in Category:
        if scores[category] > best_score:
            best, best_score = category, scores[category]

    confidence = min(best_score / total + CONFIDENCE_OFFSET, MAX_CONFIDENCE)
    return best, round(confidence, 4)


def _token_data(message: AnonymizedMessage) -> ExtractedData:
    carrier = next(
        (t.split(":", 1)[1] for t in message.tokens if t.startswith("carrier:")),
        None,
    )
    return ExtractedData(
        carrier=carrier or carrier_for(message.sender_domain),
        shop_name=merchant_for(message.sender_domain),
    )


def classify_locally(message: AnonymizedMessage) -> Classification:
    """Classify an anonymized message with keyword and domain scoring."""
    scores = score_message(message)
    category, confidence = pick_category(scores)
    return Classification(
        category=category,
        confidence=confidence,
        extracted_data=_token_data(message),
        reasoning=(
            f"Local classification based on {len(message.tokens)} tokens, "
            f"domain: {message.sender_domain}"
        ),
    )


class LocalClassifier(BaseClassifier):
    """Classifier that never leaves the process."""

    def classify(self, message: AnonymizedMessage) -> ClassificationOutcome:
        classification = classify_locally(message)
        log.debug(
            "message_classified",
            message_id=message.id,
            category=classification.category.value,
            confidence=classification.confidence,
            source=ClassificationSource.LOCAL.value,
        )
        return ClassificationOutcome(
            classification=classification,
            source=ClassificationSource.LOCAL,
        )
