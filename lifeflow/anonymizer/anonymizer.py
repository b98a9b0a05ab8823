"""
Message anonymizer.

Turns a RawMessage into an AnonymizedMessage: sender domain, category
tokens and structural metadata. PII is redacted before tokenization and
matched values (amounts, codes, dates) are reduced to presence flags.
"""

import re
from datetime import datetime
from email.utils import parseaddr
from functools import lru_cache

from lifeflow.core.logging import get_logger
from lifeflow.core.models import AnonymizedMessage, RawMessage, TemporalFeatures
from lifeflow.anonymizer.patterns import redact_pii
from lifeflow.anonymizer.vocabulary import (
    AMOUNT_TOKEN,
    CARRIERS,
    DATE_TOKEN,
    KEYWORDS,
    MERCHANTS,
    TRACKING_CODE_TOKEN,
)

log = get_logger(__name__)

DOMAIN_RE = re.compile(r"^[a-z0-9](?:[a-z0-9-]*[a-z0-9])?(?:\.[a-z0-9](?:[a-z0-9-]*[a-z0-9])?)*\.[a-z]{2,}$")

AMOUNT_RE = re.compile(
    r"(?:€|EUR|USD|GBP|\$|£)\s?\d+(?:[.,]\d+)*"
    r"|\d+(?:[.,]\d+)*\s?(?:€|EUR|euro|USD|GBP)\b",
    re.IGNORECASE,
)

# Upper-case alphanumerics with at least one digit, e.g. 3SABCD1234567
TRACKING_SHAPE_RE = re.compile(r"\b(?=[A-Z]*\d)[A-Z0-9]{10,30}\b")

DATE_SHAPE_RE = re.compile(
    r"\b\d{1,2}[-/.]\d{1,2}[-/.]\d{2,4}\b"
    r"|\b\d{4}-\d{1,2}-\d{1,2}\b"
    r"|\b\d{1,2}\s+(?:jan|feb|mrt|maart|mar|apr|mei|may|jun|jul|aug|sep|okt|oct|nov|dec)[a-z]*\b",
    re.IGNORECASE,
)


@lru_cache(maxsize=None)
def _word_prefix_pattern(keyword: str) -> re.Pattern:
    return re.compile(r"(?<!\w)" + re.escape(keyword.lower()))


@lru_cache(maxsize=None)
def _whole_word_pattern(name: str) -> re.Pattern:
    return re.compile(r"(?<![\w.])" + re.escape(name.lower()) + r"(?![\w])")


def extract_domain(sender: str) -> str:
    """
    Extract the lower-cased domain from a sender header.

    Examples:
    - "PostNL <noreply@postnl.nl>" -> "postnl.nl"
    - "not an address" -> "unknown"
    """
    _, address = parseaddr(sender or "")
    if "@" not in address:
        return "unknown"
    domain = address.rsplit("@", 1)[1].strip().lower().rstrip(".")
    return domain if DOMAIN_RE.match(domain) else "unknown"


def extract_tokens(redacted: str) -> list[str]:
    """
    Tokenize already-redacted text against the keyword dictionaries.

    Returns de-duplicated tokens like "invoice:factuur", "carrier:PostNL",
    "merchant:AliExpress" and presence flags like "has:amount".
    """
    if not redacted:
        return []

    lowered = redacted.lower()
    tokens: list[str] = []

    for category, words in KEYWORDS.items():
        for word in words:
            if _word_prefix_pattern(word).search(lowered):
                tokens.append(f"{category.value}:{word}")

    for carrier in CARRIERS:
        if _whole_word_pattern(carrier).search(lowered):
            tokens.append(f"carrier:{carrier}")

    for merchant in MERCHANTS:
        if _whole_word_pattern(merchant).search(lowered):
            tokens.append(f"merchant:{merchant}")

    if AMOUNT_RE.search(redacted):
        tokens.append(AMOUNT_TOKEN)
    if TRACKING_SHAPE_RE.search(redacted):
        tokens.append(TRACKING_CODE_TOKEN)
    if DATE_SHAPE_RE.search(redacted):
        tokens.append(DATE_TOKEN)

    return list(dict.fromkeys(tokens))


def temporal_features(received_at: datetime) -> TemporalFeatures:
    day = received_at.weekday()
    return TemporalFeatures(
        day_of_week=day,
        hour_of_day=received_at.hour,
        is_weekend=day >= 5,
    )


def anonymize(message: RawMessage) -> AnonymizedMessage:
    """
    Anonymize a message for classification.

    Never raises: anything it cannot parse degrades to "unknown" or empty.
    """
    subject = redact_pii(message.subject)
    body = redact_pii(message.body)

    anonymized = AnonymizedMessage(
        id=message.id,
        sender_domain=extract_domain(message.sender),
        subject_tokens=tuple(extract_tokens(subject)),
        body_tokens=tuple(extract_tokens(body)),
        has_attachments=len(message.attachments) > 0,
        attachment_types=tuple(a.mime_type for a in message.attachments),
        temporal=temporal_features(message.received_at),
    )

    log.debug(
        "message_anonymized",
        message_id=message.id,
        sender_domain=anonymized.sender_domain,
        token_count=len(anonymized.tokens),
    )
    return anonymized


def anonymize_all(messages: list[RawMessage]) -> list[AnonymizedMessage]:
    """Anonymize several messages."""
    return [anonymize(m) for m in messages]
