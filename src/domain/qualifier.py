"""
Qualifier verification - proof that the caller holds the physical device.

The device encrypts "<vin>@<serial>@<number>" (or the same joined with
"-delim-" when either identifier may contain '@') under a key derived
from the shared secret, the VIN and the serial number. The server
decrypts it and checks that the identifiers inside match the request.

Byte layout (firmware contract, algorithm version "aes-v1"):

    key   = secret + vin[:5] + serial[:2]        (UTF-8)
            vin shorter than 5 chars    -> "XXXXX"
            serial shorter than 2 chars -> "XX"
    nonce = key
    aad   = serial[:5] + "aadstr" + serial[-5:]  (only when aad flag is "yes")
            serial shorter than 5 chars is padded with "x" on both sides
    text  = plaintext truncated at the first '#'

GCM is tried first; on a tag failure the same bytes are decrypted with
AES-CBC/PKCS7 using the key as IV, which older firmware still produces.

Verification is a pure predicate: it never touches stored state and
never raises for a bad qualifier.
"""

import base64
import binascii
import logging
from dataclasses import dataclass, field
from typing import Protocol

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .exceptions import ErrorCode, ValidationFailed
from .models import strip_crlf

logger = logging.getLogger(__name__)

AAD_MARKER = "aadstr"
ALTERNATE_SEPARATOR = "-delim-"
DEFAULT_SEPARATOR = "@"
PADDING_CHAR = "#"


class QualifierAlgorithm(Protocol):
    """A versioned way of turning a qualifier back into its plaintext."""

    version: str

    def decrypt(self, vin: str, serial_number: str, qualifier: str, secret: str, use_aad: bool) -> str:
        """
        Return the decrypted qualifier text.

        Raises any error on undecodable input; the verifier treats every
        raised error as a mismatch.
        """
        ...


def validate_aad(aad: str | None) -> bool:
    """
    Check the aad flag and return whether associated data is in use.

    Raises:
        ValidationFailed: if the flag is present but not "yes"/"no"
    """
    if not aad:
        return False
    flag = aad.strip().lower()
    if flag not in ("yes", "no"):
        raise ValidationFailed(ErrorCode.INPUT_VALIDATION_FAILED, "aad must be 'yes' or 'no'")
    return flag == "yes"


class AesQualifierAlgorithm:
    """AES-GCM with AES-CBC fallback, keyed by secret, VIN and serial number."""

    version = "aes-v1"

    def decrypt(self, vin: str, serial_number: str, qualifier: str, secret: str, use_aad: bool) -> str:
        key = self.derive_key(secret, vin, serial_number)
        data = base64.b64decode(qualifier, validate=True)
        associated = self.associated_data(serial_number) if use_aad else None
        try:
            plain = AESGCM(key).decrypt(key, data, associated)
        except InvalidTag:
            logger.info("GCM tag check failed, retrying qualifier decryption with CBC")
            plain = self._decrypt_cbc(key, data)
        return plain.decode("utf-8")

    @staticmethod
    def derive_key(secret: str, vin: str, serial_number: str) -> bytes:
        vin_part = "XXXXX" if len(vin.strip()) < 5 else vin[:5]
        serial_part = "XX" if len(serial_number.strip()) < 2 else serial_number[:2]
        return (secret + vin_part + serial_part).encode("utf-8")

    @staticmethod
    def associated_data(serial_number: str) -> bytes:
        length = len(serial_number.strip())
        if length < 5:
            part = serial_number + "x" * (5 - length)
            return (part + AAD_MARKER + part).encode("utf-8")
        return (serial_number[:5] + AAD_MARKER + serial_number[length - 5 : length]).encode("utf-8")

    @staticmethod
    def _decrypt_cbc(key: bytes, data: bytes) -> bytes:
        decryptor = Cipher(algorithms.AES(key), modes.CBC(key)).decryptor()
        padded = decryptor.update(data) + decryptor.finalize()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        return unpadder.update(padded) + unpadder.finalize()


def parse_plaintext(text: str, vin: str, serial_number: str) -> int | None:
    """Extract the challenge number from decrypted text if the identifiers match."""
    cut = text.find(PADDING_CHAR)
    if cut != -1:
        text = text[:cut]

    separator = ALTERNATE_SEPARATOR if ALTERNATE_SEPARATOR in text else DEFAULT_SEPARATOR
    parts = text.split(separator)
    if len(parts) < 3:
        return None
    if parts[0] != vin or parts[1] != serial_number:
        return None

    try:
        value = int(parts[2])
    except ValueError:
        return None
    return value if value >= 0 else None


@dataclass
class QualifierVerifier:
    """
    Recompute and check a device qualifier.

    The algorithm is swappable so a firmware revision with a different
    byte layout can be supported without touching the activation flow.
    """

    algorithm: QualifierAlgorithm = field(default_factory=AesQualifierAlgorithm)

    def verify(
        self,
        vin: str,
        serial_number: str,
        qualifier: str,
        secret: str,
        aad: str | None = None,
    ) -> int | None:
        """
        Verify a qualifier against the VIN and serial number.

        Args:
            vin: Vehicle identification number from the request
            serial_number: Device serial number from the request
            qualifier: Base64 qualifier submitted by the device
            secret: Shared qualifier secret
            aad: Optional "yes"/"no" associated-data flag

        Returns:
            The non-negative challenge value on success, None on mismatch

        Raises:
            ValidationFailed: if the aad flag is not "yes" or "no"
        """
        use_aad = validate_aad(aad)
        try:
            text = self.algorithm.decrypt(vin, serial_number, qualifier, secret, use_aad)
        except (InvalidTag, ValueError, binascii.Error) as e:
            logger.warning(
                "Qualifier could not be decrypted for serial %s (%s): %s",
                strip_crlf(serial_number),
                self.algorithm.version,
                type(e).__name__,
            )
            return None

        value = parse_plaintext(text, vin, serial_number)
        if value is None:
            logger.warning("Qualifier content mismatch for serial %s", strip_crlf(serial_number))
        return value
