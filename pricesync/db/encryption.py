"""Credential column encryption.

API keys and passwords of suppliers, marketplaces and storage settings are
written as Fernet tokens through the ``EncryptedString`` column type.
"""

import base64
import hashlib
import logging
from functools import lru_cache
from typing import Any, Optional

from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy import String, TypeDecorator

from pricesync.config import settings

logger = logging.getLogger(__name__)


def derive_key(secret: str) -> bytes:
    """Fernet key for ``secret``: used as-is when it already is one, else hashed."""
    try:
        if len(base64.urlsafe_b64decode(secret)) == 32:
            return secret.encode()
    except ValueError:
        logger.debug("ENCRYPTION_KEY is not a Fernet key, deriving one")
    return base64.urlsafe_b64encode(hashlib.sha256(secret.encode()).digest())


@lru_cache(maxsize=1)
def credential_cipher() -> Fernet:
    """
    Process-wide cipher.

    Without ENCRYPTION_KEY a throwaway key is generated; credentials written
    with it are unreadable after a restart.
    """
    if not settings.encryption_key:
        logger.warning("ENCRYPTION_KEY not set, credentials use a temporary key")
        return Fernet(Fernet.generate_key())
    return Fernet(derive_key(settings.encryption_key))


def encrypt_credential(value: Optional[str]) -> Optional[str]:
    if not value:
        return value
    return credential_cipher().encrypt(value.encode()).decode()


def decrypt_credential(token: Optional[str]) -> Optional[str]:
    """Plaintext for ``token``; None when it was written with another key."""
    if not token:
        return token
    try:
        return credential_cipher().decrypt(token.encode()).decode()
    except InvalidToken:
        logger.error(f"Stored credential could not be decrypted (length={len(token)})")
        return None


class EncryptedString(TypeDecorator):
    """String column holding a Fernet token; reads return plaintext."""

    impl = String
    cache_ok = True

    def process_bind_param(self, value: Optional[str], dialect: Any) -> Optional[str]:
        return encrypt_credential(value)

    def process_result_value(self, value: Optional[str], dialect: Any) -> Optional[str]:
        return decrypt_credential(value)
