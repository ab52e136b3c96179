"""Encryption utilities for platform OAuth tokens"""
import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from shomer.core.config import settings

logger = logging.getLogger(__name__)

# Load encryption key from environment variable
ENCRYPTION_KEY_STR = getattr(settings, 'ENCRYPTION_KEY', None)

if not ENCRYPTION_KEY_STR:
    raise ValueError(
        "ENCRYPTION_KEY environment variable is required. "
        "Generate one with: python -c \"from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())\""
    )

# Fernet expects bytes
if isinstance(ENCRYPTION_KEY_STR, bytes):
    ENCRYPTION_KEY = ENCRYPTION_KEY_STR
else:
    ENCRYPTION_KEY = ENCRYPTION_KEY_STR.encode()

try:
    cipher = Fernet(ENCRYPTION_KEY)
except ValueError as e:
    raise ValueError(
        f"Invalid ENCRYPTION_KEY format: {e}. "
        "The key must be 32 bytes, base64-encoded (URL-safe), resulting in 44 characters."
    )


def encrypt(plaintext: str) -> str:
    """Encrypt a string"""
    if not plaintext:
        return ""
    return cipher.encrypt(plaintext.encode()).decode()


def decrypt(ciphertext: str) -> Optional[str]:
    """Decrypt a string
    
    Raises:
        ValueError: If decryption fails (invalid token, wrong key, corrupted data)
    """
    if not ciphertext:
        return None
    try:
        return cipher.decrypt(ciphertext.encode()).decode()
    except InvalidToken as e:
        logger.error(f"Decryption failed: {type(e).__name__}")
        raise ValueError(f"Decryption failed: {type(e).__name__}")
