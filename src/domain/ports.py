"""
Port interfaces - Protocol definitions for infrastructure abstraction.

This module defines the interfaces (ports) that the activation domain
requires from infrastructure. Adapters implement these protocols.
"""

from contextlib import AbstractContextManager
from typing import Any, Protocol

from .models import (
    ActivationReadiness,
    ActivationRecord,
    Association,
    DeviceState,
    FactoryRecord,
    PreSharedKeyActivation,
)


class DeviceStateUnit(Protocol):
    """
    Mutations of local device state sharing one database transaction.

    Obtained from DeviceStateStore.transaction(). Everything done through
    one unit commits together or not at all.
    """

    def insert_activation_record(
        self,
        factory_id: int,
        passcode: str,
        seed: int,
        vin: str | None,
        hw_version: str | None,
        sw_version: str | None,
    ) -> int:
        """
        Insert an active activation record and return its assigned id.

        Raises:
            DuplicateActivation: if the factory record already has an
                active activation record (unique constraint)
        """
        ...

    def assign_device_id(self, record_id: int, device_id: str) -> None:
        """Store the device identity derived from the assigned id."""
        ...

    def update_passcode(self, record_id: int, passcode: str) -> None:
        """Replace the passcode of an active activation record."""
        ...

    def change_state(self, factory_id: int, state: DeviceState, action: str) -> None:
        """Move a factory record to a new state and record the history row."""
        ...

    def update_device_type(self, factory_id: int, device_type: str, action: str | None) -> None:
        """Replace the stored device type of a factory record."""
        ...

    def complete_transaction(self, transaction_id: str) -> None:
        """Mark the provisioning transaction linked to an association completed."""
        ...

    def insert_psk_activation(self, jit_act_id: str, encrypted_passcode: str, device_type: str) -> int:
        """
        Insert an active pre-shared-key activation and return its id.

        Raises:
            DuplicateActivation: if the activation id already has an active record
        """
        ...

    def assign_psk_device_id(self, record_id: int, device_id: str) -> None:
        """Store the device identity of a pre-shared-key activation."""
        ...

    def update_psk_passcode(self, record_id: int, encrypted_passcode: str) -> None:
        """Replace the encrypted passcode of a pre-shared-key activation."""
        ...

    def insert_readiness(self, serial_number: str, user_id: str | None) -> int:
        """Insert an enabled readiness record for a serial number."""
        ...

    def disable_readiness(self, serial_number: str, user_id: str | None) -> int:
        """Disable every enabled readiness record of a serial number."""
        ...

    def disable_readiness_for_factory(self, factory_id: int, user_id: str | None) -> int:
        """Disable every enabled readiness record linked to a factory record."""
        ...

    def deactivate_records(self, serial_number: str) -> int:
        """Mark every active activation record of a serial number inactive."""
        ...

    def deactivate_records_for_factory(self, factory_id: int) -> list[str]:
        """Mark the factory record's active records inactive; return their device ids."""
        ...


class DeviceStateStore(Protocol):
    """Port interface for factory, activation and readiness persistence."""

    def transaction(self) -> AbstractContextManager[DeviceStateUnit]:
        """Open a unit of work; commits on clean exit, rolls back on error."""
        ...

    def find_factory_record(
        self,
        imei: str | None = None,
        serial_number: str | None = None,
        bssid: str | None = None,
    ) -> FactoryRecord | None:
        """Find the factory record matching every supplied identifier."""
        ...

    def find_factory_record_by_id(self, factory_id: int) -> FactoryRecord | None:
        ...

    def find_association(self, serial_number: str) -> Association | None:
        """Association (VIN, user, provisioning transaction) for a serial number."""
        ...

    def find_active_activation(self, factory_id: int) -> list[ActivationRecord]:
        ...

    def count_active_psk(self, jit_act_id: str) -> int:
        ...

    def find_active_psk(self, jit_act_id: str) -> list[PreSharedKeyActivation]:
        ...

    def find_readiness(self, serial_number: str) -> list[ActivationReadiness]:
        ...

    def health_check(self) -> bool:
        ...


class SecretStore(Protocol):
    """Port interface for shared secrets (qualifier secret, reference key)."""

    def get_secret(self, name: str) -> str | None:
        ...


class TokenProvider(Protocol):
    """Port interface for the registration-service token endpoint."""

    def fetch_token(self) -> str:
        """Fetch a fresh access token. Called once per registration call."""
        ...


class RegistrationClient(Protocol):
    """Port interface for the external credential-registration service."""

    def create_client(self, token: str, device_id: str, passcode: str, device_type: str) -> None:
        ...

    def update_client(
        self, token: str, device_id: str, passcode: str, device_type: str, status: str
    ) -> None:
        ...

    def delete_client(self, token: str, device_id: str) -> None:
        ...


class NotificationClient(Protocol):
    """Port interface for the notification (SMS) collaborator."""

    def get_user_profile(self, user_id: str) -> dict[str, Any] | None:
        """Return the user's profile, or None if it cannot be found."""
        ...

    def send_activation_notice(self, profile: dict[str, Any]) -> None:
        ...


class AssociationClient(Protocol):
    """Port interface for the association / event-publishing collaborator."""

    def notify_state_change(self, payload: dict[str, Any]) -> None:
        ...

    def publish_event(self, snapshot: dict[str, Any], event_id: str, topic: str, key: str | None) -> bool:
        """Publish a typed event; returns False instead of raising on failure."""
        ...


class DeviceValidator(Protocol):
    """Port interface for the optional device validation hook."""

    def is_device_valid(self, record: FactoryRecord, product_type: str | None) -> bool:
        ...
