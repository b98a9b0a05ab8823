"""
Local value extraction.

Reads real values (amounts, tracking and order numbers, dates) from the raw
message for the action executor. Runs only locally; its output is never
part of the anonymized payload.
"""

import re
from datetime import date
from email.utils import parseaddr

from lifeflow.core.models import ExtractedData, RawMessage
from lifeflow.anonymizer.vocabulary import CARRIERS

_AMOUNT_NUMBER = r"(\d{1,3}(?:[.\s]\d{3})+(?:,\d{1,2})?|\d{1,3}(?:,\d{3})+(?:\.\d{1,2})?|\d+(?:[.,]\d{1,2})?)"

AMOUNT_PREFIX_RE = re.compile(r"(€|EUR|USD|GBP|\$|£)\s?" + _AMOUNT_NUMBER, re.IGNORECASE)
AMOUNT_SUFFIX_RE = re.compile(_AMOUNT_NUMBER + r"\s?(€|EUR|euro|USD|GBP)\b", re.IGNORECASE)

CURRENCY_CODES = {"€": "EUR", "eur": "EUR", "euro": "EUR", "$": "USD", "usd": "USD", "£": "GBP", "gbp": "GBP"}

# A digit is required inside every captured number
_CODE = r"((?=[A-Z-]*\d)[A-Z0-9][A-Z0-9-]{4,30})"

LABELED_TRACKING_RE = re.compile(
    r"(?:track\s*(?:&|and)\s*trace|tracking|zending|barcode)"
    r"(?:[\s-]*(?:code|nummer|number|nr\.?|id))?\s*[:#]?\s*([A-Z0-9]{8,30})\b",
    re.IGNORECASE,
)

CARRIER_TRACKING_PATTERNS = [
    re.compile(r"\b(3S[A-Z0-9]{10,18})\b"),  # PostNL
    re.compile(r"\b(1Z[A-Z0-9]{16})\b"),  # UPS
    re.compile(r"\b(JJD\d{18,22})\b"),  # GLS / DHL parcel
    re.compile(r"\b(JVGL\d{8,20})\b"),  # DHL eCommerce
    re.compile(r"\b(LP\d{11,16}(?:CN)?)\b"),  # Cainiao
    re.compile(r"\b([A-Z]{2}\d{9}[A-Z]{2})\b"),  # UPU S10 (postal)
]
GENERIC_TRACKING_RE = re.compile(r"\b(\d{10,20})\b")

ORDER_NUMBER_RE = re.compile(
    r"(?:ordernummer|bestelnummer|bestelling|order)"
    r"(?:\s*(?:number|nummer|nr\.?|no\.?|id))?\s*[:#]?\s*#?" + _CODE,
    re.IGNORECASE,
)

INVOICE_NUMBER_RE = re.compile(
    r"(?:factuurnummer|factuur\s*(?:nr\.?|nummer)|invoice\s*(?:number|no\.?|nr\.?|#))\s*[:#]?\s*"
    r"((?=[A-Z/-]*\d)[A-Z0-9][A-Z0-9/-]{2,30})",
    re.IGNORECASE,
)

DMY_RE = re.compile(r"\b(\d{1,2})[-/.](\d{1,2})[-/.](\d{4})\b")
YMD_RE = re.compile(r"\b(\d{4})-(\d{1,2})-(\d{1,2})\b")
TIME_RE = re.compile(r"\b([01]?\d|2[0-3])[:.h]([0-5]\d)\b(?:\s*(?:uur|u|h)\b)?", re.IGNORECASE)


def parse_amount(raw: str) -> float | None:
    """
    Parse a European or US formatted amount.

    Examples:
    - "1.234,56" -> 1234.56
    - "1,234.56" -> 1234.56
    - "45,99" -> 45.99
    - "1.250" -> 1250.0
    """
    value = raw.replace(" ", "")
    if "," in value and "." in value:
        if value.rfind(",") > value.rfind("."):
            value = value.replace(".", "").replace(",", ".")
        else:
            value = value.replace(",", "")
    elif "," in value:
        head, _, tail = value.rpartition(",")
        value = value.replace(",", "") if len(tail) == 3 else f"{head.replace(',', '')}.{tail}"
    elif "." in value:
        head, _, tail = value.rpartition(".")
        if len(tail) == 3:
            value = value.replace(".", "")
    try:
        return float(value)
    except ValueError:
        return None


def extract_amount(text: str) -> tuple[float | None, str | None]:
    """Return the first currency amount in text and its ISO currency code."""
    match = AMOUNT_PREFIX_RE.search(text)
    if match:
        symbol, number = match.group(1), match.group(2)
    else:
        match = AMOUNT_SUFFIX_RE.search(text)
        if not match:
            return None, None
        number, symbol = match.group(1), match.group(2)
    return parse_amount(number), CURRENCY_CODES.get(symbol.lower(), symbol.upper())


def extract_order_number(text: str) -> str | None:
    match = ORDER_NUMBER_RE.search(text)
    return match.group(1).upper() if match else None


def extract_tracking_number(text: str, exclude: set[str] | None = None) -> str | None:
    """
    Find a tracking number: labelled codes first, then carrier formats,
    then any long digit run that is not in exclude (e.g. the order number).
    """
    exclude = exclude or set()

    for match in LABELED_TRACKING_RE.finditer(text):
        code = match.group(1).upper()
        if any(ch.isdigit() for ch in code) and code not in exclude:
            return code

    for pattern in CARRIER_TRACKING_PATTERNS:
        match = pattern.search(text)
        if match and match.group(1) not in exclude:
            return match.group(1)

    for match in GENERIC_TRACKING_RE.finditer(text):
        if match.group(1) not in exclude:
            return match.group(1)
    return None


def extract_carrier(text: str) -> str | None:
    lowered = text.lower()
    for carrier in CARRIERS:
        if re.search(r"(?<![\w.])" + re.escape(carrier.lower()) + r"(?!\w)", lowered):
            return carrier
    return None


def extract_date(text: str) -> str | None:
    """First valid date in text as ISO YYYY-MM-DD (day-first for D-M-Y)."""
    candidates = []
    for match in DMY_RE.finditer(text):
        day, month, year = (int(g) for g in match.groups())
        candidates.append((match.start(), year, month, day))
    for match in YMD_RE.finditer(text):
        year, month, day = (int(g) for g in match.groups())
        candidates.append((match.start(), year, month, day))

    for _pos, year, month, day in sorted(candidates):
        try:
            return date(year, month, day).isoformat()
        except ValueError:
            continue
    return None


def extract_time(text: str) -> str | None:
    # Amounts like "12.50" would otherwise read as times
    stripped = AMOUNT_SUFFIX_RE.sub(" ", AMOUNT_PREFIX_RE.sub(" ", text))
    stripped = DMY_RE.sub(" ", stripped)
    match = TIME_RE.search(stripped)
    if not match:
        return None
    return f"{int(match.group(1)):02d}:{match.group(2)}"


def extract_sender_name(sender: str) -> str:
    """
    Display name of a sender header.

    Examples:
    - "Johan Jansen <johan@example.com>" -> "Johan Jansen"
    - "johan@example.com" -> "johan"
    """
    name, address = parseaddr(sender or "")
    if name:
        return name.strip()
    if "@" in address:
        return address.split("@", 1)[0]
    return sender or "unknown"


def extract_message_data(message: RawMessage) -> ExtractedData:
    """Extract concrete values from the raw message for local use only."""
    text = message.text
    amount, currency = extract_amount(text)
    order_number = extract_order_number(text)
    first_date = extract_date(text)

    return ExtractedData(
        amount=amount,
        currency=currency,
        invoice_number=_first_group(INVOICE_NUMBER_RE, text),
        tracking_number=extract_tracking_number(
            text, exclude={order_number} if order_number else None
        ),
        carrier=extract_carrier(text),
        order_number=order_number,
        due_date=first_date,
        event_date=first_date,
        event_time=extract_time(text),
        sender_name=extract_sender_name(message.sender),
    )


def _first_group(pattern: re.Pattern, text: str) -> str | None:
    match = pattern.search(text)
    return match.group(1) if match else None
