"""API key generation, hashing, and comparison primitives."""

from __future__ import annotations

import base64
import hmac
import secrets
from hashlib import sha256


class ApiKeyCore:
    """Core API key operations."""

    _PREFIX = "rc_"
    _KEY_BYTES = 32
    _DISPLAY_PREFIX_LENGTH = 8

    @property
    def prefix(self) -> str:
        """Scheme marker every issued key starts with."""
        return self._PREFIX

    def generate_raw_key(self) -> str:
        """Generate `rc_` + unpadded URL-safe base64 of 32 random bytes."""
        return f"{self._PREFIX}{secrets.token_urlsafe(self._KEY_BYTES)}"

    def hash_key(self, raw_key: str) -> str:
        """Hash raw API key as standard base64 of its SHA-256 digest."""
        digest = sha256(raw_key.encode("utf-8")).digest()
        return base64.b64encode(digest).decode("ascii")

    def key_prefix(self, raw_key: str) -> str:
        """Return display prefix from the first 8 characters of raw key."""
        return raw_key[: self._DISPLAY_PREFIX_LENGTH]

    def is_valid_format(self, raw_key: str | None) -> bool:
        """Return True when the presented key carries the scheme marker."""
        if not raw_key or len(raw_key) <= len(self._PREFIX):
            return False
        return hmac.compare_digest(raw_key[: len(self._PREFIX)], self._PREFIX)

    def hash_matches(self, expected_hash: str, raw_key: str) -> bool:
        """Constant-time compare between stored hash and raw key hash."""
        return hmac.compare_digest(expected_hash, self.hash_key(raw_key))
