"""PIN authentication.

The PIN is never stored. A salted PBKDF2-SHA256 digest lives under
``user_pin`` in the secure namespace, encoded as
``pbkdf2_sha256$<iterations>$<salt hex>$<digest hex>``.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import re
import secrets
from dataclasses import dataclass
from typing import Literal

from buddymate.core.errors import ValidationError
from buddymate.core.storage.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

PIN_KEY = "user_pin"
PIN_RE = re.compile(r"[0-9]{4,6}")
HASH_SCHEME = "pbkdf2_sha256"
ITERATIONS = 200_000
SALT_BYTES = 16


@dataclass
class PinAuthResult:
    success: bool
    auth_method: Literal["pin", "none"] = "none"
    error: str | None = None


def is_valid_pin(pin: str) -> bool:
    return bool(PIN_RE.fullmatch(pin or ""))


def hash_pin(pin: str, *, salt: bytes | None = None, iterations: int = ITERATIONS) -> str:
    salt = salt or secrets.token_bytes(SALT_BYTES)
    digest = hashlib.pbkdf2_hmac("sha256", pin.encode("utf-8"), salt, iterations)
    return f"{HASH_SCHEME}${iterations}${salt.hex()}${digest.hex()}"


def verify_pin(pin: str, encoded: str) -> bool:
    try:
        scheme, iterations, salt_hex, digest_hex = encoded.split("$")
        if scheme != HASH_SCHEME:
            return False
        candidate = hashlib.pbkdf2_hmac(
            "sha256", pin.encode("utf-8"), bytes.fromhex(salt_hex), int(iterations)
        )
    except ValueError:
        logger.warning("Stored PIN hash is malformed")
        return False
    return hmac.compare_digest(candidate.hex(), digest_hex)


class AuthService:
    """Set up, check and change the user's PIN.

    Usage::

        auth = AuthService(store)
        await auth.setup_pin("1234")
        result = await auth.authenticate_with_pin("1234")
    """

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    async def setup_pin(self, pin: str) -> None:
        """Raises ValidationError unless ``pin`` is 4-6 digits. Nothing is written then."""
        if not is_valid_pin(pin):
            raise ValidationError("PIN must be 4-6 digits")
        await self._store.set(PIN_KEY, hash_pin(pin), secure=True)
        logger.info("PIN set up")

    async def authenticate_with_pin(self, pin: str) -> PinAuthResult:
        if not is_valid_pin(pin):
            return PinAuthResult(success=False, error="Invalid PIN format")
        stored = await self._store.get(PIN_KEY, secure=True)
        if not stored:
            return PinAuthResult(success=False, error="No PIN set up")
        if verify_pin(pin, stored):
            return PinAuthResult(success=True, auth_method="pin")
        logger.info("PIN authentication failed")
        return PinAuthResult(success=False, error="Incorrect PIN")

    async def change_pin(self, current_pin: str, new_pin: str) -> bool:
        """Replace the PIN. Returns False if ``current_pin`` does not match."""
        if not is_valid_pin(new_pin):
            raise ValidationError("PIN must be 4-6 digits")
        result = await self.authenticate_with_pin(current_pin)
        if not result.success:
            return False
        await self.setup_pin(new_pin)
        return True

    async def is_pin_setup(self) -> bool:
        return await self._store.has_key(PIN_KEY, secure=True)

    async def remove_pin(self) -> None:
        await self._store.remove(PIN_KEY, secure=True)
        logger.info("PIN removed")
