"""
Domain exceptions - Semantic error types for device activation.

Each exception carries an ErrorCode so the API layer can report a stable
code without knowing which step of the activation flow failed.
"""

from enum import Enum


class ErrorCode(Enum):
    """Stable error codes reported to device clients."""

    GENERAL_ERROR = ("dauth-777", "Not successful. Something went wrong. Please contact admin.")
    PROVISIONED_ALIVE = (
        "dauth-003",
        "Device will be in PROVISIONED_ALIVE state. Reason: Association was not performed.",
    )
    DUPLICATE_ACTIVATION = ("dauth-004", "Activation Failed: Duplicate activation request.")
    INPUT_VALIDATION_FAILED = ("dauth-005", "Not sufficient data is provided to activate")
    DEVICE_DETAILS_NOT_FOUND = ("dauth-006", "Device details are not in inventory")
    INVALID_DEVICE = ("dauth-007", "Invalid device.")
    TRANSACTION_INCOMPLETE = (
        "dauth-008",
        "Activation Failed: Sim transaction is either empty or not completed.",
    )
    VIN_ASSOCIATION_MANDATORY = ("dauth-008", "Vin Association is mandatory before activation.")
    QUALIFIER_MISMATCH = ("dauth-009", "Validation failed for qualifier.")
    QUALIFIER_SECRET_MISSING = (
        "dauth-009",
        "Qualifier secret key is missing from the secret store. Please contact admin.",
    )
    UNKNOWN_ERROR = ("dauth-010", "Something is not right. Please contact admin")
    DEVICE_INVALID_STATE = (
        "dauth-011",
        "Device is in invalid state to activate. i.e. It should not be faulty or stolen.",
    )
    INVALID_DEVICE_TYPE = ("dauth-012", "Invalid Device Type.")
    DEVICE_NOT_FOUND = (
        "dauth-013",
        "no device found or more than one device found in device activation table",
    )
    PRESHARED_KEY_VALIDATION_FAILED = ("dauth-014", "PreSharedKey from request is not right")

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        self.message = message


class ActivationError(Exception):
    """Base class for activation domain errors."""

    def __init__(self, code: ErrorCode, detail: str | None = None) -> None:
        super().__init__(detail or code.message)
        self.code = code
        self.detail = detail or code.message


class ValidationFailed(ActivationError):
    """Malformed or missing request data; nothing was attempted."""

    pass


class ResourceNotFound(ActivationError):
    """No factory record matches the supplied identifiers."""

    pass


class PreconditionFailed(ActivationError):
    """Device, association, secret or qualifier state forbids activation."""

    pass


class DuplicateActivation(ActivationError):
    """A concurrent activation already claimed the device. Safe to retry."""

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(ErrorCode.DUPLICATE_ACTIVATION, detail)


class DataIntegrityFault(ActivationError):
    """More than one active record exists where at most one is allowed."""

    pass


class TechnicalError(ActivationError):
    """Unexpected failure. Local state already committed stays committed."""

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(ErrorCode.GENERAL_ERROR, detail)


class CollaboratorError(Exception):
    """An external collaborator call failed or answered unexpectedly."""

    def __init__(self, service: str, detail: str) -> None:
        super().__init__(f"{service}: {detail}")
        self.service = service
        self.detail = detail


class PartialActivationFailure(TechnicalError):
    """Local state committed but an external call afterwards failed."""

    def __init__(self, device_id: str | None, detail: str) -> None:
        super().__init__(detail)
        self.device_id = device_id
