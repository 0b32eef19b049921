"""
FastAPI dependencies - Dependency injection factories.

This module provides Depends() factories for injecting
domain services and infrastructure adapters into routes.
"""

import httpx
from fastapi import Depends, Request
from psycopg_pool import ConnectionPool

from src.adapters.http import (
    HttpAssociationClient,
    HttpNotificationClient,
    HttpRegistrationClient,
    HttpTokenProvider,
)
from src.adapters.notification.console import ConsoleNotificationSender
from src.adapters.repository.postgres import PostgresDeviceStateStore
from src.adapters.secrets.settings import SettingsSecretStore
from src.adapters.validation.product_type import ProductTypeValidator
from src.config.settings import Settings, get_settings
from src.domain.activation import ActivationOrchestrator, ActivationPolicy, ActivationService
from src.domain.credentials import CredentialIssuer
from src.domain.events import EventDispatcher

# Module-level singleton - ConsoleNotificationSender is stateless
_console_sender = ConsoleNotificationSender()


def get_pool(request: Request) -> ConnectionPool:
    """
    Get connection pool from app state.

    The pool is created during app lifespan startup and stored in app.state.
    """
    return request.app.state.pool


def get_http_client(request: Request) -> httpx.Client:
    """Get the shared httpx client created during app lifespan startup."""
    return request.app.state.http_client


def get_store(request: Request) -> PostgresDeviceStateStore:
    """Create device state store with connection pool from app state."""
    return PostgresDeviceStateStore(get_pool(request))


def get_standard_policy(settings: Settings = Depends(get_settings)) -> ActivationPolicy:
    return ActivationPolicy.from_settings(settings, type_aware=False)


def get_type_aware_policy(settings: Settings = Depends(get_settings)) -> ActivationPolicy:
    return ActivationPolicy.from_settings(settings, type_aware=True)


def get_activation_service(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> ActivationService:
    """
    Create activation service with injected dependencies.

    Wires the store, secret store, external collaborators and event
    dispatcher together for the domain service.
    """
    client = get_http_client(request)

    issuer = CredentialIssuer(
        token_provider=HttpTokenProvider(
            client=client,
            token_url=settings.token_url,
            client_id=settings.token_client_id,
            client_secret=settings.token_client_secret.get_secret_value(),
            scope=settings.token_scope,
        ),
        registration=HttpRegistrationClient(client=client, base_url=settings.registration_base_url),
    )

    if settings.notification_base_url:
        notifications = HttpNotificationClient(
            client=client,
            base_url=settings.notification_base_url,
            profile_path=settings.notification_profile_path,
            notice_path=settings.notification_notice_path,
            notification_id=settings.activate_notification_id,
        )
    else:
        notifications = _console_sender

    association = HttpAssociationClient(
        client=client,
        base_url=settings.association_base_url,
        state_change_path=settings.association_state_change_path,
        event_trigger_path=settings.association_event_trigger_path,
    )

    orchestrator = ActivationOrchestrator(
        store=get_store(request),
        secrets=SettingsSecretStore(settings),
        issuer=issuer,
        validator=ProductTypeValidator(settings.allowed_product_types),
    )
    dispatcher = EventDispatcher(association=association, notifications=notifications)
    return ActivationService(orchestrator=orchestrator, dispatcher=dispatcher)
