"""
Notification client adapter - Implements NotificationClient protocol via httpx.

Looks up the user profile and sends the one-time activation SMS through
the notification center's non-registered-user API. Neither call is
allowed to fail an activation: errors are logged here.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)

API_VERSION = "v1"
DEFAULT_BRAND = "default"
DEFAULT_LOCALE = "en-US"


def notice_payload(profile: dict[str, Any], notification_id: str) -> dict[str, Any]:
    """Map a user profile to the notification center request body."""
    recipient = {
        "sms": profile.get("defaultPhoneNumber"),
        "brand": DEFAULT_BRAND,
        "locale": profile.get("locale") or DEFAULT_LOCALE,
        "data": {"userId": profile.get("userId")},
    }
    return {"notificationId": notification_id, "version": API_VERSION, "recipients": [recipient]}


@dataclass
class HttpNotificationClient:
    client: httpx.Client
    base_url: str
    profile_path: str
    notice_path: str
    notification_id: str

    def get_user_profile(self, user_id: str) -> dict[str, Any] | None:
        url = f"{self.base_url}{self.profile_path}/{user_id}"
        try:
            response = self.client.get(url)
            response.raise_for_status()
            profile = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("User profile for %s not found: %s", user_id, e)
            return None
        logger.info("Found user profile %s", profile.get("userId"))
        return profile

    def send_activation_notice(self, profile: dict[str, Any]) -> None:
        url = f"{self.base_url}{self.notice_path}"
        request_id = str(uuid.uuid4())
        logger.info("Sending activation notice, RequestId %s", request_id)
        try:
            response = self.client.post(
                url,
                json=notice_payload(profile, self.notification_id),
                headers={"RequestId": request_id},
            )
        except httpx.HTTPError as e:
            logger.error("Activation notice request %s failed: %s", request_id, e)
            return

        if response.status_code == httpx.codes.OK:
            logger.info("Activation notice sent, RequestId %s", request_id)
        else:
            logger.error("Notification center answered %s for RequestId %s", response.status_code, request_id)
