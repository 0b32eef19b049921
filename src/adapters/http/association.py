"""
Association client adapter - Implements AssociationClient protocol via httpx.

Two calls on the association service:
- state change (ACTIVATED / DEACTIVATED), sent as the admin user
- event trigger, which forwards a device snapshot to a message topic
"""

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from src.domain.exceptions import CollaboratorError

logger = logging.getLogger(__name__)

SERVICE = "association"
ADMIN_USER = "admin"


@dataclass
class HttpAssociationClient:
    client: httpx.Client
    base_url: str
    state_change_path: str
    event_trigger_path: str

    def notify_state_change(self, payload: dict[str, Any]) -> None:
        url = f"{self.base_url}{self.state_change_path}"
        logger.info("Association state change %s for device %s", payload.get("state"), payload.get("harmanId"))
        try:
            response = self.client.post(url, json=payload, headers={"user-id": ADMIN_USER})
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise CollaboratorError(SERVICE, f"state change failed: {e}") from e

    def publish_event(self, snapshot: dict[str, Any], event_id: str, topic: str, key: str | None) -> bool:
        url = f"{self.base_url}{self.event_trigger_path}"
        params = {"eventId": event_id, "topicName": topic, "key": key}
        try:
            response = self.client.post(
                url, params=params, json=snapshot, headers={"Accept": "application/json"}
            )
        except httpx.HTTPError as e:
            logger.error("Publishing event %s to %s failed: %s", event_id, topic, e)
            return False
        if response.status_code != httpx.codes.OK:
            logger.error("Event trigger answered %s for event %s", response.status_code, event_id)
            return False
        return True
