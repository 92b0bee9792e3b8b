"""
Encryption of gateway secrets (private keys, webhook keys).

Uses Fernet symmetric encryption from the cryptography library. The key is
derived from the GATEWAY_ENCRYPTION_KEY passphrase.
"""
import base64
import logging
from typing import Optional, Protocol

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from giving_gateways.config import settings
from giving_gateways.core.exceptions import DecryptionError

logger = logging.getLogger(__name__)

SALT = b"giving_gateways_salt_v1"


class Decryptor(Protocol):
    """Anything able to turn a stored ciphertext back into plain text"""

    def decrypt(self, ciphertext: str) -> str:
        ...


def derive_key(passphrase: str) -> bytes:
    """
    Derive a Fernet key from a passphrase.

    Returns:
        32-byte url-safe base64 key
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=SALT,
        iterations=100000,
    )
    return base64.urlsafe_b64encode(kdf.derive(passphrase.encode()))


class FernetDecryptor:
    """Fernet-backed decryptor for gateway secrets"""

    def __init__(self, passphrase: Optional[str] = None):
        self._fernet = Fernet(derive_key(passphrase or settings.gateway_encryption_key))

    def encrypt(self, plaintext: str) -> str:
        if not plaintext:
            return ""
        return self._fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt a stored secret.

        Raises:
            DecryptionError: if the ciphertext is malformed or was encrypted
                with another key
        """
        if not ciphertext:
            return ""
        try:
            return self._fernet.decrypt(ciphertext.encode()).decode()
        except (InvalidToken, ValueError, UnicodeError) as e:
            raise DecryptionError(details={"cause": e.__class__.__name__}) from e
