"""
Encryption of OAuth tokens at rest
"""

import base64
import hashlib
import logging
from functools import lru_cache
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from .config import SECRET_KEY, TOKEN_ENCRYPTION_KEY

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_cipher() -> Fernet:
    if TOKEN_ENCRYPTION_KEY:
        return Fernet(TOKEN_ENCRYPTION_KEY.encode())
    derived = base64.urlsafe_b64encode(hashlib.sha256(SECRET_KEY.encode()).digest())
    return Fernet(derived)


def encrypt_token(token: Optional[str]) -> Optional[str]:
    """Encrypt a token for storage; None stays None"""
    if not token:
        return None
    return get_cipher().encrypt(token.encode()).decode()


def decrypt_token(encrypted_token: Optional[str]) -> Optional[str]:
    """Decrypt a stored token; None stays None"""
    if not encrypted_token:
        return None
    try:
        return get_cipher().decrypt(encrypted_token.encode()).decode()
    except InvalidToken:
        logger.error("❌ Stored token could not be decrypted (key rotated?)")
        raise
