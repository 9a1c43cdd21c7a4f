"""Encryption for provider API keys stored in api_keys.key_value."""

from __future__ import annotations

from typing import Protocol

from cryptography.fernet import Fernet, InvalidToken

from finder.core.logging import get_logger

logger = get_logger(__name__)


class CredentialCipher(Protocol):
    def encrypt(self, plain: str) -> str: ...

    def decrypt(self, token: str) -> str | None:
        """Return the plain key, or None if the token can't be decrypted."""
        ...


class FernetCredentialCipher:
    def __init__(self, key: str) -> None:
        self._fernet = Fernet(key.encode("ascii"))

    def encrypt(self, plain: str) -> str:
        return self._fernet.encrypt(plain.encode("utf-8")).decode("ascii")

    def decrypt(self, token: str) -> str | None:
        try:
            return self._fernet.decrypt(token.encode("ascii")).decode("utf-8")
        except InvalidToken:
            logger.warning("api_key_decrypt_failed")
            return None


def get_cipher() -> FernetCredentialCipher | None:
    """Build the cipher from settings. Returns None if the key is missing or invalid."""
    from finder.config import get_settings

    key = get_settings().api_key_encryption_key
    if not key:
        logger.warning("api_key_encryption_key_not_configured")
        return None

    try:
        return FernetCredentialCipher(key)
    except ValueError as e:
        logger.warning("api_key_encryption_key_invalid", error=str(e))
        return None


def generate_encryption_key() -> str:
    """Generate a new Fernet key for API_KEY_ENCRYPTION_KEY (for .env)."""
    return Fernet.generate_key().decode("ascii")
