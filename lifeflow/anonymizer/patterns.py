"""
PII patterns removed from subject and body before any analysis.

Patterns are applied in declaration order; each match is replaced by a
bracketed placeholder that no pattern (or keyword) matches again.
"""

import re

PLACEHOLDER_RE = re.compile(r"\[[A-Z_]+\]")

EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")

# Candidate only; a candidate is redacted when its mod-97 checksum is valid
IBAN_RE = re.compile(r"\b[A-Z]{2}\d{2}\s?(?:[A-Z0-9]{4}\s?){2,7}[A-Z0-9]{1,4}\b")

CREDIT_CARD_RE = re.compile(r"\b(?:\d{4}[-\s]?){3}\d{4}\b")

PHONE_RE = re.compile(
    r"(?<![\w+])(?:\+|00)[1-9]\d{0,2}[\s.-]?(?:\(0\)\s?)?\d{1,4}(?:[\s.-]?\d{2,4}){1,4}(?!\d)"
    r"|(?<!\w)0\d{1,3}[\s.-]?\d{3,4}[\s.-]?\d{2,4}(?!\d)"
)

# Dutch citizen service number (BSN)
NATIONAL_ID_RE = re.compile(r"\b\d{9}\b")

POSTAL_CODE_RE = re.compile(r"\b[1-9]\d{3}\s?[A-Z]{2}\b")

STREET_ADDRESS_RE = re.compile(
    r"\b[A-Za-z][A-Za-z'-]*(?:straat|laan|weg|plein|dreef|singel|gracht|kade|steeg)\s+\d{1,5}(?:\s?[a-zA-Z]\b)?"
    r"|\b\d{1,5}\s+(?:[A-Z][a-z]+\s+){1,3}(?:Street|Road|Avenue|Lane|Drive|Boulevard|St|Rd|Ave)\b\.?",
    re.IGNORECASE,
)

_NAME_PARTICLE = r"(?:(?:van|de|der|den|ter|ten)\s+)*"
HONORIFIC_NAME_RE = re.compile(
    r"(?i:\b(?:dhr|mevr|mrs|mr|ms|dr)\b\.?|\bde\s+heer\b|\bmevrouw\b|\bmeneer\b)"
    rf"\s+{_NAME_PARTICLE}[A-Z][a-z'-]+(?:\s+{_NAME_PARTICLE}[A-Z][a-z'-]+)*"
)


def _valid_iban(candidate: str) -> bool:
    """ISO 13616 mod-97 check."""
    iban = candidate.replace(" ", "").upper()
    if not 15 <= len(iban) <= 34:
        return False
    rearranged = iban[4:] + iban[:4]
    digits = "".join(str(int(ch, 36)) for ch in rearranged)
    return int(digits) % 97 == 1


def _redact_iban(match: re.Match) -> str:
    return "[IBAN]" if _valid_iban(match.group(0)) else match.group(0)


# (name, pattern, placeholder or replacement callable), in application order
PII_PATTERNS: list[tuple[str, re.Pattern, object]] = [
    ("email", EMAIL_RE, "[EMAIL]"),
    ("iban", IBAN_RE, _redact_iban),
    ("credit_card", CREDIT_CARD_RE, "[CARD]"),
    ("phone", PHONE_RE, "[PHONE]"),
    ("national_id", NATIONAL_ID_RE, "[NATIONAL_ID]"),
    ("postal_code", POSTAL_CODE_RE, "[POSTCODE]"),
    ("street_address", STREET_ADDRESS_RE, "[ADDRESS]"),
    ("honorific_name", HONORIFIC_NAME_RE, "[NAME]"),
]


def redact_pii(text: str) -> str:
    """
    Replace every PII match in text with its placeholder.

    Idempotent: redact_pii(redact_pii(t)) == redact_pii(t).
    """
    if not text:
        return ""
    cleaned = text
    for _name, pattern, replacement in PII_PATTERNS:
        cleaned = pattern.sub(replacement, cleaned)
    return cleaned


def find_pii(text: str) -> list[tuple[str, str]]:
    """Return (pattern name, matched text) for every PII hit in text."""
    hits = []
    for name, pattern, _replacement in PII_PATTERNS:
        for match in pattern.finditer(text or ""):
            if name == "iban" and not _valid_iban(match.group(0)):
                continue
            hits.append((name, match.group(0)))
    return hits
