"""
Domain events - side effects of activation returned as values.

The orchestrator never calls the association or notification services
itself. It returns the events below and EventDispatcher delivers them
after the local transaction has committed.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from .exceptions import CollaboratorError, PartialActivationFailure
from .ports import AssociationClient, NotificationClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeviceActivated:
    device_id: str
    serial_number: str | None
    sw_version: str | None
    hw_version: str | None
    device_type: str | None
    type_changed: bool = False
    first_activation: bool = True
    user_id: str | None = None


@dataclass(frozen=True)
class DeviceDeactivated:
    device_id: str
    serial_number: str | None


@dataclass(frozen=True)
class ActivationFailed:
    snapshot: dict[str, Any] = field(hash=False)
    event_id: str
    topic: str
    key: str | None


def activation_payload(event: DeviceActivated) -> dict[str, Any]:
    """Map a DeviceActivated event to the association state-change payload."""
    return {
        "harmanId": event.device_id,
        "serialNumber": event.serial_number,
        "state": "ACTIVATED",
        "softwareVersion": event.sw_version,
        "deviceType": event.device_type,
        "reactivationFlag": event.type_changed,
    }


def deactivation_payload(event: DeviceDeactivated) -> dict[str, Any]:
    """Map a DeviceDeactivated event to the association state-change payload."""
    return {
        "harmanId": event.device_id,
        "serialNumber": event.serial_number,
        "state": "DEACTIVATED",
    }


@dataclass
class EventDispatcher:
    """
    Deliver domain events to the association and notification services.

    Only the activation state change is escalated; every other delivery
    failure is logged and dropped.
    """

    association: AssociationClient
    notifications: NotificationClient

    def dispatch(self, events: list) -> None:
        for event in events:
            if isinstance(event, DeviceActivated):
                self._on_activated(event)
            elif isinstance(event, DeviceDeactivated):
                self._on_deactivated(event)
            elif isinstance(event, ActivationFailed):
                self._on_failed(event)
            else:
                logger.warning("No handler for event %s", type(event).__name__)

    def _on_activated(self, event: DeviceActivated) -> None:
        try:
            self.association.notify_state_change(activation_payload(event))
        except CollaboratorError as e:
            logger.error("Association state change failed for device %s: %s", event.device_id, e)
            raise PartialActivationFailure(event.device_id, "association state change failed") from e
        logger.info("Association notified of activation, device %s", event.device_id)

        if not event.first_activation or not event.user_id:
            return

        profile = self.notifications.get_user_profile(event.user_id)
        if profile is None:
            logger.warning("No user profile for %s, activation notice not sent", event.user_id)
            return
        try:
            self.notifications.send_activation_notice(profile)
        except CollaboratorError as e:
            logger.error("Activation notice to user %s failed: %s", event.user_id, e)

    def _on_deactivated(self, event: DeviceDeactivated) -> None:
        try:
            self.association.notify_state_change(deactivation_payload(event))
        except CollaboratorError as e:
            logger.error("Association state change failed for deactivated device %s: %s", event.device_id, e)

    def _on_failed(self, event: ActivationFailed) -> None:
        sent = self.association.publish_event(event.snapshot, event.event_id, event.topic, event.key)
        if not sent:
            logger.error("Activation failure event %s was not published to %s", event.event_id, event.topic)
