"""
Message body encryption at rest.

Every non-system message is sealed with AES-256-GCM under a single server key.
The key is derived once from ``ENCRYPTION_KEY`` with scrypt. Decryption never
raises: history display degrades to a placeholder instead of failing the page.
"""
import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from app.core.config import ENCRYPTION_KEY

logger = logging.getLogger(__name__)

DECRYPTION_FAILED_PLACEHOLDER = "[Encrypted message - decryption failed]"

KEY_SALT = b"salt"
NONCE_SIZE = 12
TAG_SIZE = 16


@dataclass(frozen=True)
class EncryptedPayload:
    ciphertext: str
    iv: Optional[str]
    auth_tag: Optional[str]


def derive_key(secret: str) -> bytes:
    """Slow KDF: scrypt(N=2^14, r=8, p=1) -> 32 byte key."""
    kdf = Scrypt(salt=KEY_SALT, length=32, n=2**14, r=8, p=1)
    return kdf.derive(secret.encode("utf-8"))


class MessageCipher:
    def __init__(self, secret: str):
        self._aesgcm = AESGCM(derive_key(secret))

    def encrypt(self, plaintext: str) -> EncryptedPayload:
        iv = os.urandom(NONCE_SIZE)
        sealed = self._aesgcm.encrypt(iv, plaintext.encode("utf-8"), None)
        # AESGCM appends the tag to the ciphertext
        ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
        return EncryptedPayload(ciphertext=ciphertext.hex(), iv=iv.hex(), auth_tag=tag.hex())

    def decrypt(self, payload: EncryptedPayload) -> str:
        if not payload.iv or not payload.auth_tag:
            logger.warning("Decryption skipped: payload has no iv/auth tag")
            return DECRYPTION_FAILED_PLACEHOLDER
        try:
            iv = bytes.fromhex(payload.iv)
            sealed = bytes.fromhex(payload.ciphertext) + bytes.fromhex(payload.auth_tag)
            return self._aesgcm.decrypt(iv, sealed, None).decode("utf-8")
        except (InvalidTag, ValueError, TypeError) as e:
            logger.warning("Decryption failed: %s", e.__class__.__name__)
            return DECRYPTION_FAILED_PLACEHOLDER


@lru_cache(maxsize=1)
def get_cipher() -> MessageCipher:
    """Process-wide cipher built from the configured secret."""
    return MessageCipher(ENCRYPTION_KEY)
