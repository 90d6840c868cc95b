"""Tests for crash-report PII scrubbing."""

from __future__ import annotations

from buddymate.core.privacy.sanitizer import (
    HASH_LENGTH,
    hash_value,
    is_emergency_related,
    sanitize_context,
    sanitize_stack,
    sanitize_text,
)


class TestSanitizeText:
    def test_email(self):
        assert sanitize_text("mail ann.lee@example.org now") == "mail [email] now"

    def test_phone_formats(self):
        assert sanitize_text("call 555-123-4567") == "call [phone]"
        assert sanitize_text("call 555.123.4567") == "call [phone]"
        assert sanitize_text("call 5551234567") == "call [phone]"

    def test_ssn_not_mistaken_for_phone(self):
        assert sanitize_text("ssn 123-45-6789") == "ssn [ssn]"

    def test_card_number(self):
        assert sanitize_text("card 4111 1111 1111 1111 declined") == "card [card] declined"
        assert sanitize_text("card 4111-1111-1111-1111") == "card [card]"

    def test_plain_text_unchanged(self):
        assert sanitize_text("Medication reminder failed") == "Medication reminder failed"

    def test_empty_and_none(self):
        assert sanitize_text("") == ""
        assert sanitize_text(None) is None


class TestSanitizeStack:
    def test_paths_and_ips_scrubbed(self):
        stack = 'File "/home/ann/buddymate/app.py", line 3\nConnectionError: 192.168.1.20'
        cleaned = sanitize_stack(stack)
        assert "/home/" not in cleaned
        assert "/[path]/" in cleaned
        assert "[ip]" in cleaned
        assert "192.168" not in cleaned

    def test_email_in_stack(self):
        assert "[email]" in sanitize_stack("KeyError: ann@example.org")

    def test_identifiers_in_exception_message(self):
        cleaned = sanitize_stack("ValueError: call 555-123-4567 ssn 123-45-6789 card 4111 1111 1111 1111")
        assert cleaned == "ValueError: call [phone] ssn [ssn] card [card]"

    def test_none(self):
        assert sanitize_stack(None) is None


class TestSanitizeContext:
    def test_strings_sanitized_and_containers_collapsed(self):
        context = {
            "screen": "contacts",
            "phone": "555-123-4567",
            "attempt": 2,
            "online": False,
            "contact": {"name": "Ann"},
            "ids": ["c1", "c2"],
        }
        assert sanitize_context(context) == {
            "screen": "contacts",
            "phone": "[phone]",
            "attempt": 2,
            "online": False,
            "contact": "[object]",
            "ids": "[object]",
        }

    def test_none(self):
        assert sanitize_context(None) is None


class TestHashValue:
    def test_stable_and_short(self):
        digest = hash_value("user-42")
        assert digest == hash_value("user-42")
        assert len(digest) == HASH_LENGTH
        assert "user-42" not in digest

    def test_distinct_inputs(self):
        assert hash_value("a") != hash_value("b")


class TestEmergencyRelated:
    def test_keyword_in_message(self):
        assert is_emergency_related("Emergency call button failed") is True

    def test_keyword_in_context(self):
        assert is_emergency_related("Render failed", {"screen": "medication list"}) is True

    def test_unrelated(self):
        assert is_emergency_related("Theme failed to load", {"count": 3}) is False
