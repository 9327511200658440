"""Fernet encryption for stored target credentials."""

import base64
import hashlib
from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken

from sqlgate.config import settings


@lru_cache(maxsize=4)
def _fernet_for(secret_key: str) -> Fernet:
    # A proper Fernet key is used as-is; anything else is stretched into one
    # (dev convenience, the default "change-me" key lands here).
    try:
        return Fernet(secret_key.encode())
    except ValueError:
        derived = base64.urlsafe_b64encode(hashlib.sha256(secret_key.encode()).digest())
        return Fernet(derived)


def encrypt(plaintext: str) -> str:
    return _fernet_for(settings.secret_key).encrypt(plaintext.encode()).decode()


def decrypt(ciphertext: str) -> str:
    """Raises ``ValueError`` when the value was encrypted under another key."""
    try:
        return _fernet_for(settings.secret_key).decrypt(ciphertext.encode()).decode()
    except InvalidToken as exc:
        raise ValueError("stored secret cannot be decrypted with the current key") from exc
