from __future__ import annotations

import base64
import binascii
import hashlib
import os
from functools import lru_cache

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from foresight.config import get_settings
from foresight.errors import EncryptionError

DEV_SEED = "foresight-dev"
IV_LENGTH = 16
TAG_LENGTH = 16
KEY_LENGTH = 32


def _normalize_key(raw_key: str | None, allow_dev_key: bool) -> bytes:
    """Return the 32-byte AES key; derive a stable development key only in dev/test."""
    if raw_key:
        key = raw_key.encode("utf-8")
        if len(key) != KEY_LENGTH:
            raise EncryptionError("ENCRYPTION_KEY must be exactly 32 characters for AES-256-GCM")
        return key
    if allow_dev_key:
        return hashlib.sha256(DEV_SEED.encode("utf-8")).digest()
    raise EncryptionError("ENCRYPTION_KEY environment variable is not set")


@lru_cache
def _get_cipher() -> AESGCM:
    settings = get_settings()
    return AESGCM(_normalize_key(settings.ENCRYPTION_KEY, settings.is_dev_or_test))


def encrypt_api_key(plaintext: str) -> str:
    """Encrypt a secret into the stored ``iv:authTag:ciphertext`` form (all base64)."""
    if not plaintext:
        raise EncryptionError("Cannot encrypt empty plaintext")

    iv = os.urandom(IV_LENGTH)
    sealed = _get_cipher().encrypt(iv, plaintext.encode("utf-8"), None)
    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
    return ":".join(
        base64.b64encode(part).decode("ascii") for part in (iv, tag, ciphertext)
    )


def decrypt_api_key(token: str) -> str:
    """Decrypt values produced by `encrypt_api_key`; tampering raises EncryptionError."""
    if not token:
        raise EncryptionError("Cannot decrypt empty string")

    parts = token.split(":")
    if len(parts) != 3:
        raise EncryptionError("Invalid encrypted format. Expected format: iv:authTag:ciphertext")

    try:
        iv, tag, ciphertext = (base64.b64decode(p, validate=True) for p in parts)
    except (ValueError, binascii.Error) as exc:
        raise EncryptionError("Invalid encrypted format: parts must be base64") from exc

    if len(iv) != IV_LENGTH or len(tag) != TAG_LENGTH:
        raise EncryptionError("Invalid encrypted format: bad IV or auth tag length")

    try:
        data = _get_cipher().decrypt(iv, ciphertext + tag, None)
    except InvalidTag as exc:
        raise EncryptionError("Failed to decrypt value: authentication failed") from exc
    return data.decode("utf-8")


def reset_crypto_state() -> None:
    """Clear the cached cipher (used by tests when env changes)."""
    _get_cipher.cache_clear()
