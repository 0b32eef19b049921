"""
Token provider adapter - Implements TokenProvider protocol via httpx.

Fetches a client-credentials access token from the registration
service's token endpoint. No caching: every registration call asks for
a fresh token.
"""

import logging
from dataclasses import dataclass

import httpx

from src.domain.exceptions import CollaboratorError

logger = logging.getLogger(__name__)

SERVICE = "token"


@dataclass
class HttpTokenProvider:
    client: httpx.Client
    token_url: str
    client_id: str
    client_secret: str
    scope: str

    def fetch_token(self) -> str:
        form = {
            "grant_type": "client_credentials",
            "scope": self.scope,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }
        try:
            response = self.client.post(self.token_url, data=form)
            response.raise_for_status()
            token = response.json().get("access_token")
        except httpx.HTTPError as e:
            logger.error("Token request to %s failed: %s", self.token_url, e)
            raise CollaboratorError(SERVICE, str(e)) from e
        except ValueError as e:
            raise CollaboratorError(SERVICE, "token response is not JSON") from e

        if not token:
            raise CollaboratorError(SERVICE, "token response has no access_token")
        return token
