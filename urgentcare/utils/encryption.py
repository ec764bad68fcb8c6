"""Field-level encryption for free-text clinical notes.

Keys come from FIELD_ENCRYPTION_KEYS (comma separated, newest first). Each
entry is either a urlsafe-base64 Fernet key or an arbitrary passphrase that
is stretched into one. Older keys stay usable for reads so keys can be
rotated without rewriting rows.
"""

import base64
import hashlib
import os
from typing import Any, List

from cryptography.fernet import Fernet, InvalidToken, MultiFernet
from sqlalchemy.types import TypeDecorator, Text

DEFAULT_DEV_SECRET = "dev-field-key-change-me"


def _as_fernet(secret: str) -> Fernet:
    try:
        return Fernet(secret.encode("utf-8"))
    except ValueError:
        key = base64.urlsafe_b64encode(hashlib.sha256(secret.encode("utf-8")).digest())
        return Fernet(key)


def build_cipher(raw_keys: str = None) -> MultiFernet:
    raw = raw_keys if raw_keys is not None else os.getenv("FIELD_ENCRYPTION_KEYS", DEFAULT_DEV_SECRET)
    secrets: List[str] = [k.strip() for k in (raw or "").split(",") if k.strip()]
    if not secrets:
        secrets = [DEFAULT_DEV_SECRET]
    return MultiFernet([_as_fernet(s) for s in secrets])


_CIPHER = build_cipher()


class EncryptedText(TypeDecorator):
    """Stores text as a Fernet token; decrypts transparently on load.

    Unreadable tokens (wrong key, tampered row) raise instead of silently
    returning None, so a misconfigured key is noticed on the first read.
    """

    impl = Text
    cache_ok = True

    def process_bind_param(self, value: Any, dialect) -> Any:  # type: ignore[override]
        if value is None:
            return None
        if not isinstance(value, str):
            value = str(value)
        return _CIPHER.encrypt(value.encode("utf-8")).decode("utf-8")

    def process_result_value(self, value: Any, dialect) -> Any:  # type: ignore[override]
        if value is None:
            return None
        try:
            return _CIPHER.decrypt(value.encode("utf-8")).decode("utf-8")
        except InvalidToken as exc:
            raise ValueError("Encrypted column could not be decrypted with the configured keys") from exc


def rotate_token(token: str) -> str:
    """Re-encrypt a stored token under the newest key."""
    return _CIPHER.rotate(token.encode("utf-8")).decode("utf-8")
