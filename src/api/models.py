"""
API request and response models.

Pydantic models for FastAPI endpoint validation and OpenAPI schema generation.
Field names are camelCase on the wire; blank or missing required values are
rejected by the domain with a dauth error code rather than by pydantic.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.domain.models import ActivationRequest, PreSharedKeyRequest


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DeviceActivationRequest(CamelModel):
    """Request model for qualifier-based activation (v3 and v4)."""

    vin: str | None = None
    serial_number: str | None = None
    qualifier: str | None = Field(default=None, description="Base64 qualifier computed by the device")
    hw_version: str | None = None
    sw_version: str | None = None
    product_type: str | None = None
    device_type: str | None = Field(default=None, description="Required by v4 only")
    imei: str | None = None
    iccid: str | None = None
    msisdn: str | None = None
    imsi: str | None = None
    bssid: str | None = None
    ssid: str | None = None
    aad: str | None = Field(default=None, description="'yes' or 'no'")

    def to_domain(self) -> ActivationRequest:
        return ActivationRequest(**self.model_dump())


class PreSharedKeyActivationRequest(CamelModel):
    """Request model for pre-shared-key activation (v5)."""

    jit_act_id: str | None = None
    pass_key: str | None = Field(default=None, description="Base64 encrypted pre-shared key")

    def to_domain(self) -> PreSharedKeyRequest:
        return PreSharedKeyRequest(jit_act_id=self.jit_act_id, pass_key=self.pass_key)


class ActivationResponse(CamelModel):
    """Response model for activation; provisionedAlive marks the 412 third outcome."""

    device_id: str | None = None
    passcode: str | None = None
    provisioned_alive: bool = False


class PreSharedKeyResponse(CamelModel):
    pre_shared_key: str
    encrypted_pre_shared_key: str


class SerialNumberRequest(CamelModel):
    """Request model for readiness and deactivation by serial number."""

    serial_number: str | None = None


class FactoryIdRequest(CamelModel):
    factory_id: int


class MessageResponse(BaseModel):
    message: str


class ErrorDetail(BaseModel):
    code: str
    message: str


class ErrorResponse(BaseModel):
    """Standard error response model."""

    detail: ErrorDetail
