"""
Encryption of stored OAuth tokens.

Uses Fernet symmetric encryption from the cryptography library.
Access and refresh tokens are encrypted before they reach Firestore and
decrypted when a connection is loaded.
"""

import logging
import os

from cryptography.fernet import Fernet, InvalidToken

from authmate.core.exceptions import AuthMateError, ConfigurationError


logger = logging.getLogger(__name__)


class EncryptionError(AuthMateError):
    """Raised when encryption/decryption fails."""

    pass


class TokenCipher:
    """Fernet wrapper for token strings."""

    def __init__(self, key: str):
        """
        Args:
            key: 32-byte URL-safe base64 Fernet key

        Raises:
            ConfigurationError: If the key is not a valid Fernet key
        """
        try:
            self._fernet = Fernet(key.encode())
        except (ValueError, TypeError) as e:
            raise ConfigurationError(f"Invalid TOKEN_ENCRYPTION_KEY: {e}") from e

    @classmethod
    def from_env(cls) -> "TokenCipher":
        """
        Build a cipher from TOKEN_ENCRYPTION_KEY.

        Raises:
            ConfigurationError: If the variable is unset or invalid
        """
        key = os.getenv("TOKEN_ENCRYPTION_KEY")
        if not key:
            raise ConfigurationError(
                "TOKEN_ENCRYPTION_KEY environment variable must be set for token encryption"
            )
        cipher = cls(key)
        logger.info("Token encryption initialized")
        return cipher

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a token string."""
        return self._fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt a token string.

        Raises:
            EncryptionError: If the key does not match or the data is corrupted
        """
        try:
            return self._fernet.decrypt(ciphertext.encode()).decode()
        except InvalidToken as e:
            logger.error("Failed to decrypt token: invalid token or key")
            raise EncryptionError(
                "Decryption failed: invalid token or key mismatch"
            ) from e

    def encrypt_optional(self, plaintext: str | None) -> str | None:
        if plaintext is None:
            return None
        return self.encrypt(plaintext)

    def decrypt_optional(self, ciphertext: str | None) -> str | None:
        if ciphertext is None:
            return None
        return self.decrypt(ciphertext)


def generate_encryption_key() -> str:
    """
    Generate a new Fernet key, usable as TOKEN_ENCRYPTION_KEY.

    Returns:
        URL-safe base64-encoded 32-byte key
    """
    return Fernet.generate_key().decode()


# Singleton cipher instance
_cipher: TokenCipher | None = None


def get_token_cipher() -> TokenCipher:
    """Get the cipher singleton, created from the environment on first use."""
    global _cipher
    if _cipher is None:
        _cipher = TokenCipher.from_env()
    return _cipher


def reset_token_cipher() -> None:
    """
    Reset the cipher singleton.

    Useful for testing to ensure clean state between tests.
    """
    global _cipher
    _cipher = None
