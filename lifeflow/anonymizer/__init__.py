"""Privacy layer: PII redaction, tokenization and local value extraction."""

from .anonymizer import anonymize, anonymize_all, extract_domain, extract_tokens
from .extraction import extract_message_data, extract_sender_name
from .patterns import find_pii, redact_pii

__all__ = [
    "anonymize",
    "anonymize_all",
    "extract_domain",
    "extract_tokens",
    "extract_message_data",
    "extract_sender_name",
    "find_pii",
    "redact_pii",
]
