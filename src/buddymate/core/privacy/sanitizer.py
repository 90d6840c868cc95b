"""PII scrubbing for crash reports and diagnostic logs.

Nothing that leaves the device in a crash report may contain an email
address, phone number, SSN, card number, file path or IP address in the
clear. User identifiers are replaced by a stable one-way digest.
"""

from __future__ import annotations

import hashlib
import re
from typing import Any

EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
SSN_RE = re.compile(r"\b\d{3}-\d{2}-\d{4}\b")
CARD_RE = re.compile(r"\b\d{4}[-\s]?\d{4}[-\s]?\d{4}[-\s]?\d{4}\b")
PHONE_RE = re.compile(r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b")
PATH_RE = re.compile(r"/.*?/")
IP_RE = re.compile(r"\b\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}\b")

# SSN and card patterns run before phone so their digits are not
# half-consumed as a phone number.
_TEXT_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (EMAIL_RE, "[email]"),
    (SSN_RE, "[ssn]"),
    (CARD_RE, "[card]"),
    (PHONE_RE, "[phone]"),
)

EMERGENCY_KEYWORDS = (
    "emergency",
    "help",
    "contact",
    "location",
    "call",
    "medication",
    "critical",
)

HASH_LENGTH = 16


def sanitize_text(text: str | None) -> str | None:
    """Replace emails, SSNs, card numbers and phone numbers with placeholders."""
    if not text:
        return text
    for pattern, placeholder in _TEXT_RULES:
        text = pattern.sub(placeholder, text)
    return text


def sanitize_stack(stack: str | None) -> str | None:
    """Scrub a stack trace: paths, IP addresses, and whatever ``sanitize_text``
    removes from the exception message embedded in it.
    """
    if not stack:
        return stack
    stack = PATH_RE.sub("/[path]/", stack)
    stack = IP_RE.sub("[ip]", stack)
    return sanitize_text(stack)


def sanitize_context(context: dict[str, Any] | None) -> dict[str, Any] | None:
    """Sanitize string values; nested containers collapse to ``"[object]"``."""
    if context is None:
        return None
    sanitized: dict[str, Any] = {}
    for key, value in context.items():
        if isinstance(value, str):
            sanitized[key] = sanitize_text(value)
        elif isinstance(value, (dict, list, tuple, set)) or hasattr(value, "__dict__"):
            sanitized[key] = "[object]"
        else:
            sanitized[key] = value
    return sanitized


def hash_value(value: str) -> str:
    """Stable, non-reversible digest (SHA-256 hex prefix)."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:HASH_LENGTH]


def is_emergency_related(message: str, context: dict[str, Any] | None = None) -> bool:
    """True if the message or any string context value names an emergency keyword."""
    texts = [message]
    if context:
        texts.extend(v for v in context.values() if isinstance(v, str))
    return any(keyword in text.lower() for text in texts for keyword in EMERGENCY_KEYWORDS)
