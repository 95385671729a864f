"""
Encryption Service - Fernet encryption for connected-account access tokens.

The key is derived from SESSION_SECRET with PBKDF2-HMAC-SHA256 and a static
salt, so tokens written by one process decrypt in the next one as long as
SESSION_SECRET does not change. Changing SESSION_SECRET makes every stored
token unreadable; affected accounts have to reconnect.
"""
import base64
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC


class EncryptionService:
    """Symmetric encryption (AES-128-CBC + HMAC-SHA256) for stored credentials."""

    def __init__(self, key_material: str, salt: bytes = None):
        if not key_material:
            raise ValueError("Encryption key material cannot be empty")

        self._salt = salt or b'instagram-automation-tokens-v1'

        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,  # Fernet requires 32-byte key
            salt=self._salt,
            iterations=100_000,
        )
        key_bytes = kdf.derive(key_material.encode('utf-8'))
        self._fernet = Fernet(base64.urlsafe_b64encode(key_bytes))

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a token for database storage."""
        if not plaintext:
            raise ValueError("Cannot encrypt empty string")
        return self._fernet.encrypt(plaintext.encode('utf-8')).decode('utf-8')

    def decrypt(self, encrypted: str) -> str:
        """
        Decrypt a stored token.

        Raises:
            ValueError: If the value is empty, tampered with, or was encrypted
                with a different SESSION_SECRET
        """
        if not encrypted:
            raise ValueError("Cannot decrypt empty string")
        try:
            return self._fernet.decrypt(encrypted.encode('utf-8')).decode('utf-8')
        except InvalidToken as e:
            raise ValueError("Decryption failed: invalid token or wrong SESSION_SECRET") from e


# Singleton instance (initialized from settings.session_secret)
_encryption_service_instance: EncryptionService | None = None


def get_encryption_service(session_secret: str = None) -> EncryptionService:
    """
    Get or create the shared encryption service.

    Falls back to settings.session_secret when no secret is passed.
    """
    global _encryption_service_instance

    if _encryption_service_instance is None:
        if not session_secret:
            from app.config import settings
            session_secret = settings.session_secret
        _encryption_service_instance = EncryptionService(session_secret)

    return _encryption_service_instance


def reset_encryption_service() -> None:
    """Drop the cached instance (after SESSION_SECRET changes, and in tests)."""
    global _encryption_service_instance
    _encryption_service_instance = None


def encrypt_credential(credential: str, session_secret: str = None) -> str:
    return get_encryption_service(session_secret).encrypt(credential)


def decrypt_credential(encrypted_credential: str, session_secret: str = None) -> str:
    return get_encryption_service(session_secret).decrypt(encrypted_credential)
