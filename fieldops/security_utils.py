"""
Token encryption helpers for credentials stored in the database
"""

import base64
import hashlib
import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from .config import SECRET_KEY

logger = logging.getLogger(__name__)


def _build_cipher(secret: str) -> Fernet:
    # Fernet needs 32 url-safe base64 bytes; derive them from the app secret
    digest = hashlib.sha256(secret.encode()).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


cipher_suite = _build_cipher(SECRET_KEY)


def encrypt_token(token: str) -> str:
    """Encrypt a token for storage"""
    return cipher_suite.encrypt(token.encode()).decode()


def decrypt_token(encrypted_token: Optional[str]) -> Optional[str]:
    """Decrypt a stored token. Raises ValueError when the ciphertext is unreadable."""
    if encrypted_token is None:
        return None
    try:
        return cipher_suite.decrypt(encrypted_token.encode()).decode()
    except InvalidToken as e:
        logger.error("❌ Stored token could not be decrypted (SECRET_KEY changed?)")
        raise ValueError("Stored token could not be decrypted") from e
