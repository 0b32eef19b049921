"""
Domain models - Flat records exchanged between the domain and its ports.

Records are plain dataclasses. Reshaping one record into another (for
example a request into the device snapshot published on activation
failure) is done by the mapping functions at the bottom of this module.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class DeviceState(str, Enum):
    """
    Device lifecycle states stored on the factory record.

    Main path:
        PROVISIONED -> READY_TO_ACTIVATE -> ACTIVE -> DEACTIVATED

    Side states:
        PROVISIONED_ALIVE: device connected without a completed association
        STOLEN, FAULTY: block every activation path
    """

    PROVISIONED = "PROVISIONED"
    READY_TO_ACTIVATE = "READY_TO_ACTIVATE"
    PROVISIONED_ALIVE = "PROVISIONED_ALIVE"
    ACTIVE = "ACTIVE"
    DEACTIVATED = "DEACTIVATED"
    STOLEN = "STOLEN"
    FAULTY = "FAULTY"


class ResultKind(Enum):
    """Outcome classes of an activation attempt."""

    ACTIVATED = "activated"
    PROVISIONED_ALIVE = "provisioned_alive"
    REJECTED = "rejected"


@dataclass
class FactoryRecord:
    """Factory-provisioned inventory entry for one physical device."""

    id: int
    serial_number: str | None
    state: DeviceState
    imei: str | None = None
    bssid: str | None = None
    ssid: str | None = None
    iccid: str | None = None
    msisdn: str | None = None
    imsi: str | None = None
    vin: str | None = None
    hw_version: str | None = None
    sw_version: str | None = None
    device_type: str | None = None
    stolen: bool = False
    faulty: bool = False

    @property
    def blocked(self) -> bool:
        return self.stolen or self.faulty or self.state in (DeviceState.STOLEN, DeviceState.FAULTY)


@dataclass
class ActivationRecord:
    """Issued device identity and passcode for a factory record."""

    id: int
    device_id: str | None
    passcode: str
    factory_id: int | None = None
    seed: int | None = None
    vin: str | None = None
    hw_version: str | None = None
    sw_version: str | None = None
    activated_at: datetime | None = None
    active: bool = True


@dataclass
class PreSharedKeyActivation:
    """Activation record of the pre-shared-key path, keyed by activation id."""

    id: int
    jit_act_id: str
    device_id: str | None
    passcode: str  # encrypted with the pre-shared-key codec
    device_type: str = "hu"
    activated_at: datetime | None = None
    active: bool = True


@dataclass
class ActivationReadiness:
    """Authorisation for a serial number to activate, set after association."""

    id: int
    serial_number: str
    activation_ready: bool
    initiated_by: str | None = None
    initiated_on: datetime | None = None
    deactivated_by: str | None = None
    deactivated_on: datetime | None = None


@dataclass
class Association:
    """User association and its provisioning transaction for a serial number."""

    vin: str | None = None
    user_id: str | None = None
    transaction_id: str | None = None
    transaction_status: str | None = None


@dataclass
class ActivationRequest:
    """Qualifier-path activation request as received from the device."""

    vin: str | None
    serial_number: str | None
    qualifier: str | None
    hw_version: str | None = None
    sw_version: str | None = None
    product_type: str | None = None
    device_type: str | None = None
    imei: str | None = None
    iccid: str | None = None
    msisdn: str | None = None
    imsi: str | None = None
    bssid: str | None = None
    ssid: str | None = None
    aad: str | None = None


@dataclass
class PreSharedKeyRequest:
    """Pre-shared-key activation request: opaque activation id plus key."""

    jit_act_id: str | None
    pass_key: str | None


@dataclass(frozen=True)
class Credentials:
    """A freshly issued identity/passcode pair and the record holding it."""

    record_id: int
    device_id: str
    passcode: str


@dataclass(frozen=True)
class PreSharedKey:
    """A generated pre-shared key and its encrypted transport form."""

    plain: str
    encrypted: str


@dataclass(frozen=True)
class ActivationResult:
    """Identity/passcode pair, provisioned-alive marker, or rejection."""

    kind: ResultKind
    device_id: str | None = None
    passcode: str | None = None
    error: Exception | None = None

    @classmethod
    def activated(cls, device_id: str, passcode: str) -> "ActivationResult":
        return cls(ResultKind.ACTIVATED, device_id=device_id, passcode=passcode)

    @classmethod
    def provisioned_alive(cls) -> "ActivationResult":
        return cls(ResultKind.PROVISIONED_ALIVE)

    @classmethod
    def rejected(cls, error: Exception) -> "ActivationResult":
        return cls(ResultKind.REJECTED, error=error)

    @property
    def is_provisioned_alive(self) -> bool:
        return self.kind is ResultKind.PROVISIONED_ALIVE


@dataclass
class ActivationOutcome:
    """Result of one orchestrator call plus the events it produced."""

    result: ActivationResult | None
    events: list = field(default_factory=list)


def strip_crlf(value: Any) -> str:
    """Render a request-controlled value safely for a single log line."""
    return str(value).replace("\r", "_").replace("\n", "_")


def device_snapshot(request: ActivationRequest) -> dict[str, Any]:
    """Map an activation request to the device snapshot published on failure."""
    return {
        "vin": request.vin,
        "serialNumber": request.serial_number,
        "imei": request.imei,
        "iccid": request.iccid,
        "msisdn": request.msisdn,
        "imsi": request.imsi,
        "bssid": request.bssid,
        "ssid": request.ssid,
        "hwVersion": request.hw_version,
        "swVersion": request.sw_version,
        "productType": request.product_type,
        "deviceType": request.device_type,
    }


def lookup_keys(request: ActivationRequest) -> dict[str, str]:
    """Identifiers usable for the inventory lookup, in lookup order."""
    keys = {
        "imei": request.imei,
        "serial_number": request.serial_number,
        "bssid": request.bssid,
    }
    return {name: value for name, value in keys.items() if value is not None}
