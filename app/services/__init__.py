"""
Services package for supporting infrastructure.
"""
from app.services.encryption_service import EncryptionService, encrypt_credential, decrypt_credential

__all__ = ['EncryptionService', 'encrypt_credential', 'decrypt_credential']
