"""HTTP adapters - httpx clients for the external collaborators."""

from .association import HttpAssociationClient
from .notification import HttpNotificationClient
from .registration import HttpRegistrationClient
from .token_provider import HttpTokenProvider

__all__ = [
    "HttpAssociationClient",
    "HttpNotificationClient",
    "HttpRegistrationClient",
    "HttpTokenProvider",
]
