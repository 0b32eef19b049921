"""
API routes - Device activation and deactivation endpoints.

This module defines the HTTP endpoints:
- POST /v3/device/activate - Qualifier activation, standard profile
- POST /v4/device/activate - Qualifier activation, device-type aware
- POST /v5/device/activate - Pre-shared-key activation
- GET  /v5/device/preSharedKey - Generate a pre-shared key
- POST /v1/device/readyToActivate - Authorise a serial number to activate
- POST /v1/device/deactivate - Deactivate by serial number
- POST /v2/device/deactivate - Return a device to PROVISIONED by factory id
"""

import logging

from fastapi import APIRouter, Depends, Header, HTTPException, status
from fastapi.responses import JSONResponse

from src.api.dependencies import get_activation_service, get_standard_policy, get_type_aware_policy
from src.api.models import (
    ActivationResponse,
    DeviceActivationRequest,
    ErrorResponse,
    FactoryIdRequest,
    MessageResponse,
    PreSharedKeyActivationRequest,
    PreSharedKeyResponse,
    SerialNumberRequest,
)
from src.domain.activation import ActivationPolicy, ActivationService
from src.domain.exceptions import (
    ActivationError,
    DataIntegrityFault,
    DuplicateActivation,
    ErrorCode,
    PartialActivationFailure,
    PreconditionFailed,
    ResourceNotFound,
    TechnicalError,
    ValidationFailed,
)
from src.domain.models import ActivationResult

logger = logging.getLogger(__name__)

router = APIRouter(tags=["device"])

# Most specific first: PartialActivationFailure is a TechnicalError.
_STATUS_BY_ERROR: list[tuple[type[ActivationError], int]] = [
    (ValidationFailed, status.HTTP_400_BAD_REQUEST),
    (ResourceNotFound, status.HTTP_404_NOT_FOUND),
    (PreconditionFailed, status.HTTP_412_PRECONDITION_FAILED),
    (DuplicateActivation, status.HTTP_409_CONFLICT),
    (DataIntegrityFault, status.HTTP_404_NOT_FOUND),
    (PartialActivationFailure, status.HTTP_502_BAD_GATEWAY),
    (TechnicalError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Missing or malformed request data"},
    404: {"model": ErrorResponse, "description": "Device not found"},
    409: {"model": ErrorResponse, "description": "Duplicate concurrent activation"},
    412: {"model": ErrorResponse, "description": "Activation precondition failed"},
    500: {"model": ErrorResponse, "description": "Unexpected failure"},
    502: {"model": ErrorResponse, "description": "Committed locally, external call failed"},
}


def to_http_exception(error: ActivationError) -> HTTPException:
    """Map a domain error to its HTTP status and {"code", "message"} detail."""
    status_code = next(
        (code for error_type, code in _STATUS_BY_ERROR if isinstance(error, error_type)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    return HTTPException(
        status_code=status_code,
        detail={"code": error.code.code, "message": error.detail},
    )


def _activation_response(result: ActivationResult) -> ActivationResponse | JSONResponse:
    if result.is_provisioned_alive:
        body = ActivationResponse(provisioned_alive=True).model_dump(by_alias=True)
        body["code"] = ErrorCode.PROVISIONED_ALIVE.code
        body["message"] = ErrorCode.PROVISIONED_ALIVE.message
        return JSONResponse(status_code=status.HTTP_412_PRECONDITION_FAILED, content=body)
    return ActivationResponse(device_id=result.device_id, passcode=result.passcode)


def _activate(
    request_data: DeviceActivationRequest, service: ActivationService, policy: ActivationPolicy
) -> ActivationResponse | JSONResponse:
    try:
        result = service.activate(request_data.to_domain(), policy)
    except ActivationError as e:
        raise to_http_exception(e) from None
    return _activation_response(result)


@router.post(
    "/v3/device/activate",
    response_model=ActivationResponse,
    response_model_by_alias=True,
    responses=_ERROR_RESPONSES,
    summary="Activate a device with its qualifier",
)
def activate_v3(
    request_data: DeviceActivationRequest,
    service: ActivationService = Depends(get_activation_service),
    policy: ActivationPolicy = Depends(get_standard_policy),
) -> ActivationResponse | JSONResponse:
    """
    Activate a device identified by VIN, serial number and qualifier.

    Returns the device identity and a fresh passcode. A device that has
    never been associated answers 412 with provisionedAlive=true.
    """
    return _activate(request_data, service, policy)


@router.post(
    "/v4/device/activate",
    response_model=ActivationResponse,
    response_model_by_alias=True,
    responses=_ERROR_RESPONSES,
    summary="Activate a device with its qualifier and device type",
)
def activate_v4(
    request_data: DeviceActivationRequest,
    service: ActivationService = Depends(get_activation_service),
    policy: ActivationPolicy = Depends(get_type_aware_policy),
) -> ActivationResponse | JSONResponse:
    """
    Same as v3, with the device type required and used for the identity prefix.

    - **deviceType**: must be one of the configured allowed device types
    """
    return _activate(request_data, service, policy)


@router.post(
    "/v5/device/activate",
    response_model=ActivationResponse,
    response_model_by_alias=True,
    responses=_ERROR_RESPONSES,
    summary="Activate a device with a pre-shared key",
)
def activate_v5(
    request_data: PreSharedKeyActivationRequest,
    service: ActivationService = Depends(get_activation_service),
) -> ActivationResponse | JSONResponse:
    try:
        result = service.activate_with_pre_shared_key(request_data.to_domain())
    except ActivationError as e:
        raise to_http_exception(e) from None
    return _activation_response(result)


@router.get(
    "/v5/device/preSharedKey",
    response_model=PreSharedKeyResponse,
    response_model_by_alias=True,
    responses=_ERROR_RESPONSES,
    summary="Generate a pre-shared key",
)
def generate_pre_shared_key(
    service: ActivationService = Depends(get_activation_service),
) -> PreSharedKeyResponse:
    try:
        key = service.generate_pre_shared_key()
    except ActivationError as e:
        raise to_http_exception(e) from None
    return PreSharedKeyResponse(pre_shared_key=key.plain, encrypted_pre_shared_key=key.encrypted)


@router.post(
    "/v1/device/readyToActivate",
    response_model=MessageResponse,
    responses=_ERROR_RESPONSES,
    summary="Authorise a serial number to activate",
)
def ready_to_activate(
    request_data: SerialNumberRequest,
    user_id: str = Header(alias="user-id"),
    service: ActivationService = Depends(get_activation_service),
) -> MessageResponse:
    try:
        service.set_ready_to_activate(request_data.serial_number, user_id)
    except ActivationError as e:
        raise to_http_exception(e) from None
    return MessageResponse(message="Device is ready to activate")


@router.post(
    "/v1/device/deactivate",
    response_model=MessageResponse,
    responses=_ERROR_RESPONSES,
    summary="Deactivate a device by serial number",
)
def deactivate(
    request_data: SerialNumberRequest,
    user_id: str = Header(alias="user-id"),
    service: ActivationService = Depends(get_activation_service),
) -> MessageResponse:
    """Always succeeds for a well-formed serial number, even with nothing to deactivate."""
    try:
        service.deactivate(request_data.serial_number, user_id)
    except ActivationError as e:
        raise to_http_exception(e) from None
    return MessageResponse(message="Device deactivated")


@router.post(
    "/v2/device/deactivate",
    response_model=MessageResponse,
    responses=_ERROR_RESPONSES,
    summary="Return a device to PROVISIONED by factory id",
)
def deactivate_account(
    request_data: FactoryIdRequest,
    user_id: str = Header(alias="user-id"),
    service: ActivationService = Depends(get_activation_service),
) -> MessageResponse:
    try:
        service.deactivate_account(request_data.factory_id, user_id)
    except ActivationError as e:
        raise to_http_exception(e) from None
    return MessageResponse(message="Device deactivated")
