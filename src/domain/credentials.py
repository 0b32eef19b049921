"""
Credential issuance - passcodes, device identities and external registration.

Identity numbering is delegated to the persistence layer: the activation
record is inserted first and its auto-increment id is encoded into the
device identity. The external registration service is always called
outside the local transaction.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable

from .codec import random_alphanumeric
from .exceptions import PartialActivationFailure
from .models import Credentials
from .ports import RegistrationClient, TokenProvider

logger = logging.getLogger(__name__)

# Unambiguous charset: no 0/O, 1/I/L, 2/Z, 5/S.
IDENTITY_CHARSET = "PBVDFG7HK8MNEQ6RCT9UWXY3J4"
IDENTITY_PAD = "A"
IDENTITY_LENGTH = 12
PASSCODE_RANDOM_LENGTH = 64
DEFAULT_PREFIX = "HU"
REGISTRATION_STATUS = "approved"


def new_passcode() -> str:
    """64 random alphanumerics followed by the current epoch milliseconds."""
    return random_alphanumeric(PASSCODE_RANDOM_LENGTH) + str(int(time.time() * 1000))


def encode_sequence(value: int, minimum_length: int) -> str:
    """Encode a non-negative integer in base 26 over IDENTITY_CHARSET, left-padded with 'A'."""
    if value < 0:
        raise ValueError("sequence value must be non-negative")
    radix = len(IDENTITY_CHARSET)
    digits = []
    while value >= radix:
        value, remainder = divmod(value, radix)
        digits.append(IDENTITY_CHARSET[remainder])
    digits.append(IDENTITY_CHARSET[value])
    encoded = "".join(reversed(digits))
    return encoded.rjust(minimum_length, IDENTITY_PAD)


def decode_sequence(encoded: str) -> int:
    """Invert encode_sequence."""
    radix = len(IDENTITY_CHARSET)
    value = 0
    for char in encoded.lstrip(IDENTITY_PAD):
        index = IDENTITY_CHARSET.find(char)
        if index == -1:
            raise ValueError(f"invalid identity character: {char!r}")
        value = value * radix + index
    return value


def prefix_for(device_type: str | None, type_aware: bool) -> str:
    if type_aware and device_type:
        return device_type[:2].upper()
    return DEFAULT_PREFIX


def device_identity(prefix: str, sequence_id: int) -> str:
    return prefix + encode_sequence(sequence_id, IDENTITY_LENGTH)


@dataclass
class CredentialIssuer:
    """
    Issue, register, rotate and revoke device credentials.

    A fresh token is fetched for every registration call.
    """

    token_provider: TokenProvider
    registration: RegistrationClient

    def issue(self, insert_record: Callable[[str], int], prefix: str) -> Credentials:
        """
        Generate a passcode, persist it and derive the device identity.

        Args:
            insert_record: Persists the passcode and returns the assigned id.
                A unique-constraint violation surfaces from it unchanged.
            prefix: Two-letter identity prefix

        Returns:
            Credentials with the record id, identity and passcode
        """
        passcode = new_passcode()
        record_id = insert_record(passcode)
        return Credentials(record_id=record_id, device_id=device_identity(prefix, record_id), passcode=passcode)

    def register(self, credentials: Credentials, client_type: str) -> None:
        token = self.token_provider.fetch_token()
        self.registration.create_client(token, credentials.device_id, credentials.passcode, client_type)
        logger.info("Registered client for device %s", credentials.device_id)

    def rotate(self, device_id: str, client_type: str, persist: Callable[[str], None]) -> str:
        """
        Replace the registered passcode of an existing device identity.

        Sequence: revoke -> new passcode -> update registration -> persist.
        Nothing is retried. If a step after the revoke fails the device has
        no valid registration until it activates again.

        Raises:
            PartialActivationFailure: if any step after the revoke fails
        """
        token = self.token_provider.fetch_token()
        self.registration.delete_client(token, device_id)
        logger.info("Revoked registration of device %s", device_id)

        passcode = new_passcode()
        try:
            self.registration.update_client(token, device_id, passcode, client_type, REGISTRATION_STATUS)
            persist(passcode)
        except Exception as e:
            logger.error("Device %s left without a registration after revoke: %r", device_id, e)
            raise PartialActivationFailure(device_id, "credential rotation failed after revoke") from e
        return passcode

    def revoke(self, device_id: str) -> None:
        token = self.token_provider.fetch_token()
        self.registration.delete_client(token, device_id)
        logger.info("Revoked registration of device %s", device_id)
