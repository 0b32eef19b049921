"""
Registration client adapter - Implements RegistrationClient protocol via httpx.

Talks to the external credential-registration service that stores each
device identity as a registered client whose secret is the passcode.
"""

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from src.domain.exceptions import CollaboratorError

logger = logging.getLogger(__name__)

SERVICE = "registration"
GRANT_TYPES = ["client_credentials", "authorization_code"]
REDIRECT_URIS = ["http://localhost:9000/login"]


def create_payload(device_id: str, passcode: str, device_type: str) -> dict[str, Any]:
    return {
        "clientId": device_id,
        "clientSecret": passcode,
        "clientName": device_id,
        "authorizationGrantTypes": GRANT_TYPES,
        "redirectUris": REDIRECT_URIS,
        "scopes": [device_type],
    }


def update_payload(device_id: str, passcode: str, device_type: str | None, status: str) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "clientSecret": passcode,
        "clientName": device_id,
        "authorizationGrantTypes": GRANT_TYPES,
        "redirectUris": REDIRECT_URIS,
        "status": status,
    }
    if device_type and device_type.strip():
        payload["scopes"] = [device_type]
    return payload


@dataclass
class HttpRegistrationClient:
    """
    Implements RegistrationClient protocol.

    Every non-expected status is raised as CollaboratorError; the domain
    decides whether that is a partial failure.
    """

    client: httpx.Client
    base_url: str

    def create_client(self, token: str, device_id: str, passcode: str, device_type: str) -> None:
        response = self._send("POST", self.base_url, token, create_payload(device_id, passcode, device_type))
        if response.status_code != httpx.codes.CREATED:
            raise CollaboratorError(SERVICE, f"create {device_id} returned {response.status_code}")

    def update_client(
        self, token: str, device_id: str, passcode: str, device_type: str, status: str
    ) -> None:
        if not device_id or not device_id.strip():
            raise ValueError("device_id is required")
        url = f"{self.base_url}/{device_id}"
        response = self._send("PUT", url, token, update_payload(device_id, passcode, device_type, status))
        if response.status_code != httpx.codes.OK:
            raise CollaboratorError(SERVICE, f"update {device_id} returned {response.status_code}")

    def delete_client(self, token: str, device_id: str) -> None:
        response = self._send("DELETE", f"{self.base_url}/{device_id}", token)
        if response.status_code != httpx.codes.OK:
            logger.info("Delete of %s answered %s", device_id, response.status_code)

    def _send(self, method: str, url: str, token: str, payload: dict[str, Any] | None = None) -> httpx.Response:
        headers = {"Authorization": f"Bearer {token}"}
        try:
            return self.client.request(method, url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.error("Registration %s %s failed: %s", method, url, e)
            raise CollaboratorError(SERVICE, f"{method} failed: {e}") from e
