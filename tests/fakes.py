"""
In-memory test doubles for the activation ports.

InMemoryDeviceStateStore keeps the same transactional contract as the
PostgreSQL store: mutations made through a unit of work are applied only
when the `with` block exits cleanly, and the active-record uniqueness
rules raise DuplicateActivation like the partial unique indexes do.
"""

import base64
import copy
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from src.domain.exceptions import DuplicateActivation
from src.domain.models import (
    ActivationReadiness,
    ActivationRecord,
    Association,
    DeviceState,
    FactoryRecord,
    PreSharedKeyActivation,
)

QUALIFIER_SECRET = "HarmanAct"


def make_qualifier(
    vin: str,
    serial_number: str,
    value: int = 12345,
    secret: str = QUALIFIER_SECRET,
    aad: bytes | None = None,
    separator: str = "@",
) -> str:
    """Build a qualifier the way device firmware does (AES-GCM, '#'-padded)."""
    vin_part = "XXXXX" if len(vin.strip()) < 5 else vin[:5]
    serial_part = "XX" if len(serial_number.strip()) < 2 else serial_number[:2]
    key = (secret + vin_part + serial_part).encode("utf-8")
    text = separator.join([vin, serial_number, str(value)])
    text += "#" * (-len(text) % 16)
    return base64.b64encode(AESGCM(key).encrypt(key, text.encode("utf-8"), aad)).decode("ascii")


@dataclass
class _State:
    factory: dict[int, FactoryRecord] = field(default_factory=dict)
    history: list[tuple[int, str, str | None]] = field(default_factory=list)
    devices: dict[int, ActivationRecord] = field(default_factory=dict)
    psk: dict[int, PreSharedKeyActivation] = field(default_factory=dict)
    readiness: dict[int, ActivationReadiness] = field(default_factory=dict)
    associations: dict[str, Association] = field(default_factory=dict)
    transaction_status: dict[str, str] = field(default_factory=dict)
    next_id: int = 1

    def allocate(self) -> int:
        value = self.next_id
        self.next_id += 1
        return value


class InMemoryUnit:
    def __init__(self, state: _State) -> None:
        self._s = state

    def insert_activation_record(self, factory_id, passcode, seed, vin, hw_version, sw_version) -> int:
        if any(d.factory_id == factory_id and d.active for d in self._s.devices.values()):
            raise DuplicateActivation()
        record_id = self._s.allocate()
        self._s.devices[record_id] = ActivationRecord(
            id=record_id,
            device_id=None,
            passcode=passcode,
            factory_id=factory_id,
            seed=seed,
            vin=vin,
            hw_version=hw_version,
            sw_version=sw_version,
        )
        return record_id

    def assign_device_id(self, record_id: int, device_id: str) -> None:
        self._s.devices[record_id].device_id = device_id

    def update_passcode(self, record_id: int, passcode: str) -> None:
        self._s.devices[record_id].passcode = passcode

    def change_state(self, factory_id: int, state: DeviceState, action: str) -> None:
        self._s.factory[factory_id].state = state
        self._s.history.append((factory_id, state.value, action))

    def update_device_type(self, factory_id: int, device_type: str, action: str | None) -> None:
        self._s.factory[factory_id].device_type = device_type

    def complete_transaction(self, transaction_id: str) -> None:
        self._s.transaction_status[transaction_id] = "Completed"

    def insert_psk_activation(self, jit_act_id: str, encrypted_passcode: str, device_type: str) -> int:
        if any(p.jit_act_id == jit_act_id and p.active for p in self._s.psk.values()):
            raise DuplicateActivation()
        record_id = self._s.allocate()
        self._s.psk[record_id] = PreSharedKeyActivation(
            id=record_id, jit_act_id=jit_act_id, device_id=None, passcode=encrypted_passcode, device_type=device_type
        )
        return record_id

    def assign_psk_device_id(self, record_id: int, device_id: str) -> None:
        self._s.psk[record_id].device_id = device_id

    def update_psk_passcode(self, record_id: int, encrypted_passcode: str) -> None:
        self._s.psk[record_id].passcode = encrypted_passcode

    def insert_readiness(self, serial_number: str, user_id: str | None) -> int:
        record_id = self._s.allocate()
        self._s.readiness[record_id] = ActivationReadiness(
            id=record_id, serial_number=serial_number, activation_ready=True, initiated_by=user_id
        )
        return record_id

    def disable_readiness(self, serial_number: str, user_id: str | None) -> int:
        count = 0
        for entry in self._s.readiness.values():
            if entry.serial_number == serial_number and entry.activation_ready:
                entry.activation_ready = False
                entry.deactivated_by = user_id
                count += 1
        return count

    def disable_readiness_for_factory(self, factory_id: int, user_id: str | None) -> int:
        return self.disable_readiness(self._s.factory[factory_id].serial_number, user_id)

    def deactivate_records(self, serial_number: str) -> int:
        ids = {f.id for f in self._s.factory.values() if f.serial_number == serial_number}
        count = 0
        for device in self._s.devices.values():
            if device.factory_id in ids and device.active:
                device.active = False
                count += 1
        return count

    def deactivate_records_for_factory(self, factory_id: int) -> list[str]:
        device_ids = []
        for device in self._s.devices.values():
            if device.factory_id == factory_id and device.active:
                device.active = False
                device_ids.append(device.device_id)
        return device_ids


class InMemoryDeviceStateStore:
    """Stateful fake of DeviceStateStore with commit/rollback semantics."""

    def __init__(self) -> None:
        self.state = _State()
        self.transactions = 0

    # Seeding helpers

    def add_factory_record(self, **fields) -> FactoryRecord:
        record = FactoryRecord(id=self.state.allocate(), **fields)
        self.state.factory[record.id] = record
        return record

    def add_association(self, serial_number: str, association: Association) -> None:
        self.state.associations[serial_number] = association
        if association.transaction_id:
            self.state.transaction_status[association.transaction_id] = association.transaction_status

    def add_psk_activation(self, jit_act_id: str, device_id: str, passcode: str) -> PreSharedKeyActivation:
        record = PreSharedKeyActivation(
            id=self.state.allocate(), jit_act_id=jit_act_id, device_id=device_id, passcode=passcode
        )
        self.state.psk[record.id] = record
        return record

    # DeviceStateStore

    @contextmanager
    def transaction(self) -> Iterator[InMemoryUnit]:
        working = copy.deepcopy(self.state)
        yield InMemoryUnit(working)
        self.state = working
        self.transactions += 1

    def find_factory_record(self, imei=None, serial_number=None, bssid=None) -> FactoryRecord | None:
        wanted = {"imei": imei, "serial_number": serial_number, "bssid": bssid}
        for record in self.state.factory.values():
            if all(getattr(record, k) == v for k, v in wanted.items() if v is not None):
                return copy.copy(record)
        return None

    def find_factory_record_by_id(self, factory_id: int) -> FactoryRecord | None:
        record = self.state.factory.get(factory_id)
        return copy.copy(record) if record is not None else None

    def find_association(self, serial_number: str) -> Association | None:
        association = self.state.associations.get(serial_number)
        if association is None:
            return None
        status = self.state.transaction_status.get(association.transaction_id, association.transaction_status)
        return Association(association.vin, association.user_id, association.transaction_id, status)

    def find_active_activation(self, factory_id: int) -> list[ActivationRecord]:
        return [copy.copy(d) for d in self.state.devices.values() if d.factory_id == factory_id and d.active]

    def count_active_psk(self, jit_act_id: str) -> int:
        return len(self.find_active_psk(jit_act_id))

    def find_active_psk(self, jit_act_id: str) -> list[PreSharedKeyActivation]:
        return [copy.copy(p) for p in self.state.psk.values() if p.jit_act_id == jit_act_id and p.active]

    def find_readiness(self, serial_number: str) -> list[ActivationReadiness]:
        return [copy.copy(r) for r in self.state.readiness.values() if r.serial_number == serial_number]

    def health_check(self) -> bool:
        return True


class DictSecretStore:
    def __init__(self, **secrets: str) -> None:
        self.values = dict(secrets)

    def get_secret(self, name: str) -> str | None:
        return self.values.get(name)
