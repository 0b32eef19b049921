"""
Pre-shared key codec - symmetric protection of short shared keys.

Used by the activation-id path, where a device proves itself with a key
shared out of band instead of a qualifier. Keys and stored passcodes are
AES-GCM encrypted under `secret + "XXXXXXX"` (nonce = key, 128-bit tag)
and travel base64-encoded.
"""

import base64
import binascii
import logging
import secrets
import string

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .exceptions import ErrorCode, PreconditionFailed
from .models import PreSharedKey

logger = logging.getLogger(__name__)

KEY_SUFFIX = "XXXXXXX"
KEY_LENGTH = 16
ALPHANUMERIC = string.digits + string.ascii_uppercase + string.ascii_lowercase


def _key(secret: str) -> bytes:
    return (secret + KEY_SUFFIX).encode("utf-8")


def random_alphanumeric(length: int) -> str:
    """Cryptographically random string over [0-9A-Za-z]."""
    return "".join(secrets.choice(ALPHANUMERIC) for _ in range(length))


class PreSharedKeyCodec:
    """Encrypt, decrypt, generate and compare pre-shared keys."""

    def encrypt(self, secret: str, plaintext: bytes) -> bytes:
        key = _key(secret)
        return AESGCM(key).encrypt(key, plaintext, None)

    def decrypt(self, secret: str, ciphertext: bytes) -> str:
        key = _key(secret)
        return AESGCM(key).decrypt(key, ciphertext, None).decode("utf-8")

    def encrypt_text(self, secret: str, plaintext: str) -> str:
        return base64.b64encode(self.encrypt(secret, plaintext.encode("utf-8"))).decode("ascii")

    def decrypt_text(self, secret: str, encoded: str) -> str:
        return self.decrypt(secret, base64.b64decode(encoded, validate=True))

    def generate(self, secret: str) -> PreSharedKey:
        """Generate a fresh 16-character key and its encrypted transport form."""
        plain = random_alphanumeric(KEY_LENGTH)
        return PreSharedKey(plain=plain, encrypted=self.encrypt_text(secret, plain))

    def validate(self, secret: str | None, request_key: str | None, reference_key: str | None) -> None:
        """
        Check that the request key decrypts to the same plaintext as the reference key.

        Raises:
            PreconditionFailed: if any input is blank, either value fails to
                decrypt, or the plaintexts differ
        """
        if not secret or not secret.strip():
            logger.error("Pre-shared key secret is not configured")
            raise PreconditionFailed(ErrorCode.PRESHARED_KEY_VALIDATION_FAILED)
        if not request_key or not request_key.strip() or not reference_key or not reference_key.strip():
            raise PreconditionFailed(ErrorCode.PRESHARED_KEY_VALIDATION_FAILED)

        try:
            requested = self.decrypt_text(secret, request_key)
            reference = self.decrypt_text(secret, reference_key)
        except (InvalidTag, ValueError, binascii.Error) as e:
            logger.warning("Pre-shared key could not be decrypted: %s", type(e).__name__)
            raise PreconditionFailed(ErrorCode.PRESHARED_KEY_VALIDATION_FAILED) from e

        if not secrets.compare_digest(requested.encode("utf-8"), reference.encode("utf-8")):
            logger.warning("Pre-shared key mismatch")
            raise PreconditionFailed(ErrorCode.PRESHARED_KEY_VALIDATION_FAILED)
