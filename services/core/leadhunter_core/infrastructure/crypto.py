"""Encryption of Reddit OAuth tokens at rest.

Tokens are stored with Fernet (AES-128-CBC + HMAC). The key comes from
``Settings.encryption_key``.

Usage:
    crypto = CryptoService(settings.encryption_key)
    connection.access_token_encrypted = crypto.encrypt(access_token)
    access_token = crypto.decrypt(connection.access_token_encrypted)
"""

from cryptography.fernet import Fernet, InvalidToken


class InvalidKeyError(Exception):
    """Raised when an invalid encryption key is provided."""

    pass


class DecryptionError(Exception):
    """Raised when a stored token cannot be decrypted."""

    pass


class CryptoService:
    """Symmetric encryption for stored credentials."""

    def __init__(self, key: str):
        """Initialize with a Fernet key.

        Raises:
            InvalidKeyError: If the key is empty or malformed.
        """
        if not key:
            raise InvalidKeyError("Encryption key cannot be empty")

        try:
            self._fernet = Fernet(key.encode() if isinstance(key, str) else key)
        except (ValueError, TypeError) as e:
            raise InvalidKeyError(f"Invalid encryption key: {e}") from e

    @staticmethod
    def generate_key() -> str:
        """Generate a new base64-encoded Fernet key."""
        return Fernet.generate_key().decode()

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("utf-8")

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt a stored token.

        Raises:
            DecryptionError: If the ciphertext was tampered with or the key changed.
        """
        try:
            return self._fernet.decrypt(ciphertext.encode("utf-8")).decode("utf-8")
        except InvalidToken as e:
            raise DecryptionError(f"Failed to decrypt: {e}") from e
