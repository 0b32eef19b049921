"""
Console notification adapter - Implements NotificationClient protocol.

Development stand-in for the notification center: the activation notice
is logged instead of sent, and every user resolves to a stub profile.
"""

import logging
from typing import Any

logger = logging.getLogger(__name__)


class ConsoleNotificationSender:
    """
    Implements NotificationClient protocol via console logging.

    Uses structural subtyping - no explicit inheritance from Protocol.
    Used when no notification center URL is configured.
    """

    def get_user_profile(self, user_id: str) -> dict[str, Any] | None:
        return {"userId": user_id, "defaultPhoneNumber": None, "locale": None}

    def send_activation_notice(self, profile: dict[str, Any]) -> None:
        """
        Log the activation notice to console (simulates SMS delivery).

        Logged at INFO level to be visible in docker-compose logs.
        """
        logger.info("[ACTIVATION NOTICE] User: %s", profile.get("userId"))
