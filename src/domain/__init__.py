"""
Domain layer - Pure business logic with no framework imports.

This package contains the device activation decision engine: the
lifecycle rules, qualifier verification, pre-shared key handling and
credential issuance. It defines its own port interfaces so persistence
and external services stay behind adapters.
"""

from .activation import ActivationOrchestrator, ActivationPolicy, ActivationService
from .codec import PreSharedKeyCodec
from .credentials import CredentialIssuer
from .events import ActivationFailed, DeviceActivated, DeviceDeactivated, EventDispatcher
from .exceptions import (
    ActivationError,
    CollaboratorError,
    DataIntegrityFault,
    DuplicateActivation,
    ErrorCode,
    PartialActivationFailure,
    PreconditionFailed,
    ResourceNotFound,
    TechnicalError,
    ValidationFailed,
)
from .models import ActivationRequest, ActivationResult, DeviceState, PreSharedKeyRequest
from .ports import DeviceStateStore, DeviceStateUnit
from .qualifier import AesQualifierAlgorithm, QualifierVerifier

__all__ = [
    "ActivationError",
    "ActivationFailed",
    "ActivationOrchestrator",
    "ActivationPolicy",
    "ActivationRequest",
    "ActivationResult",
    "ActivationService",
    "AesQualifierAlgorithm",
    "CollaboratorError",
    "CredentialIssuer",
    "DataIntegrityFault",
    "DeviceActivated",
    "DeviceDeactivated",
    "DeviceState",
    "DeviceStateStore",
    "DeviceStateUnit",
    "DuplicateActivation",
    "ErrorCode",
    "EventDispatcher",
    "PartialActivationFailure",
    "PreSharedKeyCodec",
    "PreSharedKeyRequest",
    "PreconditionFailed",
    "QualifierVerifier",
    "ResourceNotFound",
    "TechnicalError",
    "ValidationFailed",
]
