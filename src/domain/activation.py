"""
Activation domain service - the device lifecycle decision engine.

Device Lifecycle
================

States:
- PROVISIONED: factory default
- READY_TO_ACTIVATE: a user association completed for the serial number
- ACTIVE: credentials issued
- DEACTIVATED: explicit teardown
- PROVISIONED_ALIVE: device connected without a completed association
- STOLEN / FAULTY: block every activation path

Once the factory record is found and the qualifier verified, the first
matching rule wins:
    1. READY_TO_ACTIVATE -> ACTIVE             (first activation, new identity)
    2. ACTIVE -> ACTIVE                        (reactivation, passcode rotated)
    3. not PROVISIONED_ALIVE -> PROVISIONED_ALIVE  (no credentials issued)
    4. anything else                           (rejected, invalid state)
Stolen or faulty devices are rejected before rule 1.

Deactivation is an administrative override and is not gated by these rules.

Uniqueness of the active activation record is enforced by the database;
the losing side of a concurrent first activation gets DuplicateActivation.
External calls happen after the local transaction commits; a failure
there is reported as PartialActivationFailure and nothing is rolled back.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator

from .codec import PreSharedKeyCodec
from .credentials import DEFAULT_PREFIX, CredentialIssuer, prefix_for
from .events import ActivationFailed, DeviceActivated, DeviceDeactivated, EventDispatcher
from .exceptions import (
    ActivationError,
    CollaboratorError,
    DataIntegrityFault,
    ErrorCode,
    PartialActivationFailure,
    PreconditionFailed,
    ResourceNotFound,
    TechnicalError,
    ValidationFailed,
)
from .models import (
    ActivationOutcome,
    ActivationRequest,
    ActivationResult,
    Association,
    Credentials,
    DeviceState,
    FactoryRecord,
    PreSharedKey,
    PreSharedKeyRequest,
    ResultKind,
    device_snapshot,
    lookup_keys,
    strip_crlf,
)
from .ports import DeviceStateStore, DeviceValidator, SecretStore
from .qualifier import QualifierVerifier, validate_aad

logger = logging.getLogger(__name__)

QUALIFIER_SECRET = "qualifier_secret_key"
PRE_SHARED_KEY = "activation_pre_shared_key"

TRANSACTION_COMPLETED = "Completed"
STANDARD_CLIENT_TYPE = "Dongle"
PRE_SHARED_KEY_CLIENT_TYPE = "hu"

ACTION_ACTIVATED = "Device Activated"
ACTION_REACTIVATED = "Device Reactivated"
ACTION_DEACTIVATED = "Device deactivated"
ACTION_READY = "Ready to activate"

_KEEP_ON_DEACTIVATION = (DeviceState.DEACTIVATED, DeviceState.STOLEN, DeviceState.FAULTY)


def _blank(value: str | None) -> bool:
    return value is None or not value.strip()


def _in_list(value: str | None, allowed: tuple[str, ...]) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {item.strip().lower() for item in allowed}


@dataclass(frozen=True)
class ActivationPolicy:
    """
    Feature flags for one activation call.

    Passed explicitly on every call so the engine never reads ambient
    configuration. Build one with from_settings().
    """

    vin_enabled: bool = False
    type_aware: bool = False
    allowed_device_types: tuple[str, ...] = ()
    device_validation_enabled: bool = False
    failure_event_enabled: bool = False
    failure_event_device_types: tuple[str, ...] = ()
    failure_event_id: str = "ActivationFailure"
    failure_event_topic: str = "activation-failure"

    @classmethod
    def from_settings(cls, settings: Any, type_aware: bool = False) -> "ActivationPolicy":
        return cls(
            vin_enabled=settings.vin_enabled,
            type_aware=type_aware,
            allowed_device_types=tuple(settings.allowed_device_types),
            device_validation_enabled=settings.device_validation_enabled,
            failure_event_enabled=settings.activation_failure_event_enabled,
            failure_event_device_types=tuple(settings.failure_event_device_types),
            failure_event_id=settings.failure_event_id,
            failure_event_topic=settings.failure_event_topic,
        )

    def sends_failure_event(self, device_type: str | None) -> bool:
        return (
            self.type_aware
            and self.failure_event_enabled
            and _in_list(device_type, self.failure_event_device_types)
        )


@contextmanager
def _unexpected_as_technical(operation: str) -> Iterator[None]:
    try:
        yield
    except ActivationError:
        raise
    except Exception as e:
        logger.exception("Unexpected failure during %s", operation)
        raise TechnicalError(f"{operation} failed") from e


@dataclass
class ActivationOrchestrator:
    """
    Decide and persist the outcome of activation and deactivation requests.

    Returns results and domain events; delivering the events is the
    caller's job (see ActivationService).
    """

    store: DeviceStateStore
    secrets: SecretStore
    issuer: CredentialIssuer
    verifier: QualifierVerifier = field(default_factory=QualifierVerifier)
    codec: PreSharedKeyCodec = field(default_factory=PreSharedKeyCodec)
    validator: DeviceValidator | None = None

    # Qualifier path

    def activate(self, request: ActivationRequest, policy: ActivationPolicy) -> ActivationOutcome:
        """
        Activate a device identified by VIN, serial number and qualifier.

        Args:
            request: Activation request from the device
            policy: Feature flags for this call

        Returns:
            ActivationOutcome with an ACTIVATED, PROVISIONED_ALIVE or
            REJECTED (invalid state) result and the events to deliver

        Raises:
            ValidationFailed: malformed request, bad aad flag, disallowed device type
            ResourceNotFound: no factory record matches
            PreconditionFailed: association, secret or qualifier check failed
            DuplicateActivation: a concurrent first activation won the race
            DataIntegrityFault: an active device has no single activation record
            PartialActivationFailure: committed locally, registration call failed
            TechnicalError: anything unexpected
        """
        self._validate(request, policy)
        with _unexpected_as_technical("activation"):
            return self._activate(request, policy)

    def _validate(self, request: ActivationRequest, policy: ActivationPolicy) -> None:
        if _blank(request.vin) or _blank(request.qualifier):
            raise ValidationFailed(ErrorCode.INPUT_VALIDATION_FAILED, "vin and qualifier are required")
        validate_aad(request.aad)
        if policy.type_aware:
            if _blank(request.device_type):
                raise ValidationFailed(ErrorCode.INPUT_VALIDATION_FAILED, "deviceType is required")
            if not _in_list(request.device_type, policy.allowed_device_types):
                raise ValidationFailed(ErrorCode.INVALID_DEVICE_TYPE)
        if not lookup_keys(request):
            raise ValidationFailed(
                ErrorCode.INPUT_VALIDATION_FAILED, "One of imei, serialNumber or bssid must be passed"
            )

    def _activate(self, request: ActivationRequest, policy: ActivationPolicy) -> ActivationOutcome:
        record = self.store.find_factory_record(**lookup_keys(request))
        if record is None:
            raise ResourceNotFound(ErrorCode.DEVICE_DETAILS_NOT_FOUND)
        serial_number = record.serial_number or request.serial_number or ""

        if policy.device_validation_enabled and self.validator is not None:
            if not self.validator.is_device_valid(record, request.product_type):
                logger.warning("Device validation rejected serial %s", strip_crlf(serial_number))
                raise PreconditionFailed(ErrorCode.INVALID_DEVICE)

        association = self.store.find_association(serial_number) or Association()
        if policy.vin_enabled:
            self._check_association(association, serial_number)

        secret = self._secret(QUALIFIER_SECRET)
        seed = self.verifier.verify(request.vin, serial_number, request.qualifier, secret, request.aad)
        if seed is None:
            raise PreconditionFailed(ErrorCode.QUALIFIER_MISMATCH)

        type_changed = policy.type_aware and record.device_type != request.device_type

        if record.blocked:
            return self._reject_invalid_state(request, record, policy)
        if record.state == DeviceState.READY_TO_ACTIVATE:
            return self._first_activation(request, record, policy, association, seed, type_changed)
        if record.state == DeviceState.ACTIVE:
            return self._reactivation(request, record, policy, association, type_changed)
        if record.state not in (DeviceState.PROVISIONED_ALIVE, DeviceState.DEACTIVATED):
            return self._provisioned_alive(request, record, policy, type_changed)
        return self._reject_invalid_state(request, record, policy)

    def _check_association(self, association: Association, serial_number: str) -> None:
        if _blank(association.vin):
            logger.info("No VIN association for serial %s", strip_crlf(serial_number))
            raise PreconditionFailed(ErrorCode.VIN_ASSOCIATION_MANDATORY)
        if _blank(association.transaction_id) or association.transaction_status != TRANSACTION_COMPLETED:
            logger.info(
                "Provisioning transaction %s not completed for serial %s",
                association.transaction_id,
                strip_crlf(serial_number),
            )
            raise PreconditionFailed(ErrorCode.TRANSACTION_INCOMPLETE)

    def _secret(self, name: str) -> str:
        secret = self.secrets.get_secret(name)
        if _blank(secret):
            logger.error("Secret %s is missing from the secret store, check service configuration", name)
            raise PreconditionFailed(ErrorCode.QUALIFIER_SECRET_MISSING)
        return secret.strip()

    def _first_activation(
        self,
        request: ActivationRequest,
        record: FactoryRecord,
        policy: ActivationPolicy,
        association: Association,
        seed: int,
        type_changed: bool,
    ) -> ActivationOutcome:
        prefix = prefix_for(request.device_type, policy.type_aware)

        with self.store.transaction() as unit:

            def insert(passcode: str) -> int:
                return unit.insert_activation_record(
                    record.id, passcode, seed, request.vin, request.hw_version, request.sw_version
                )

            credentials = self.issuer.issue(insert, prefix)
            unit.assign_device_id(credentials.record_id, credentials.device_id)
            if type_changed:
                unit.update_device_type(record.id, request.device_type, ACTION_ACTIVATED)
            unit.change_state(record.id, DeviceState.ACTIVE, ACTION_ACTIVATED)
            if policy.vin_enabled:
                unit.complete_transaction(association.transaction_id)
        logger.info("Device %s activated for serial %s", credentials.device_id, strip_crlf(record.serial_number))

        self._register(credentials, self._client_type(request, policy))

        event = DeviceActivated(
            device_id=credentials.device_id,
            serial_number=record.serial_number,
            sw_version=request.sw_version,
            hw_version=request.hw_version,
            device_type=request.device_type if policy.type_aware else record.device_type,
            type_changed=False,
            first_activation=True,
            user_id=association.user_id,
        )
        return ActivationOutcome(ActivationResult.activated(credentials.device_id, credentials.passcode), [event])

    def _reactivation(
        self,
        request: ActivationRequest,
        record: FactoryRecord,
        policy: ActivationPolicy,
        association: Association,
        type_changed: bool,
    ) -> ActivationOutcome:
        records = self.store.find_active_activation(record.id)
        if len(records) != 1:
            logger.error("Active device %s has %d active activation records", record.id, len(records))
            raise DataIntegrityFault(ErrorCode.UNKNOWN_ERROR)
        existing = records[0]

        def persist(passcode: str) -> None:
            with self.store.transaction() as unit:
                unit.update_passcode(existing.id, passcode)
                if type_changed:
                    unit.update_device_type(record.id, request.device_type, ACTION_REACTIVATED)
                if policy.vin_enabled:
                    unit.complete_transaction(association.transaction_id)

        passcode = self.issuer.rotate(existing.device_id, self._client_type(request, policy), persist)
        logger.info("Device %s reactivated, type changed: %s", existing.device_id, type_changed)

        event = DeviceActivated(
            device_id=existing.device_id,
            serial_number=record.serial_number,
            sw_version=request.sw_version,
            hw_version=request.hw_version,
            device_type=request.device_type if policy.type_aware else record.device_type,
            type_changed=type_changed,
            first_activation=False,
            user_id=association.user_id,
        )
        return ActivationOutcome(ActivationResult.activated(existing.device_id, passcode), [event])

    def _provisioned_alive(
        self,
        request: ActivationRequest,
        record: FactoryRecord,
        policy: ActivationPolicy,
        type_changed: bool,
    ) -> ActivationOutcome:
        with self.store.transaction() as unit:
            if type_changed:
                unit.update_device_type(record.id, request.device_type, None)
            unit.change_state(record.id, DeviceState.PROVISIONED_ALIVE, DeviceState.PROVISIONED_ALIVE.value)
        logger.info(
            "Device without user association moved to PROVISIONED_ALIVE, serial %s",
            strip_crlf(record.serial_number),
        )
        return ActivationOutcome(ActivationResult.provisioned_alive(), self._failure_events(request, policy))

    def _reject_invalid_state(
        self, request: ActivationRequest, record: FactoryRecord, policy: ActivationPolicy
    ) -> ActivationOutcome:
        logger.warning(
            "Device in invalid state %s (stolen=%s, faulty=%s), serial %s",
            record.state.value,
            record.stolen,
            record.faulty,
            strip_crlf(record.serial_number),
        )
        error = PreconditionFailed(ErrorCode.DEVICE_INVALID_STATE)
        return ActivationOutcome(ActivationResult.rejected(error), self._failure_events(request, policy))

    def _failure_events(self, request: ActivationRequest, policy: ActivationPolicy) -> list:
        if not policy.sends_failure_event(request.device_type):
            return []
        return [
            ActivationFailed(
                snapshot=device_snapshot(request),
                event_id=policy.failure_event_id,
                topic=policy.failure_event_topic,
                key=request.imei,
            )
        ]

    def _client_type(self, request: ActivationRequest, policy: ActivationPolicy) -> str:
        return request.device_type if policy.type_aware else STANDARD_CLIENT_TYPE

    def _register(self, credentials: Credentials, client_type: str) -> None:
        try:
            self.issuer.register(credentials, client_type)
        except CollaboratorError as e:
            logger.error("Device %s committed but registration failed: %s", credentials.device_id, e)
            raise PartialActivationFailure(credentials.device_id, "registration failed after activation") from e

    # Pre-shared-key path

    def activate_with_pre_shared_key(self, request: PreSharedKeyRequest) -> ActivationOutcome:
        """
        Activate a device known only by its activation id.

        Raises:
            ValidationFailed: activation id or key missing
            PreconditionFailed: key does not match the reference key
            DuplicateActivation: a concurrent activation won the race
            DataIntegrityFault: more than one active record for the activation id
            PartialActivationFailure: committed locally, registration call failed
        """
        if _blank(request.jit_act_id) or _blank(request.pass_key):
            raise ValidationFailed(ErrorCode.INPUT_VALIDATION_FAILED, "jitActId and passKey are required")
        with _unexpected_as_technical("pre-shared key activation"):
            return self._activate_with_pre_shared_key(request)

    def _activate_with_pre_shared_key(self, request: PreSharedKeyRequest) -> ActivationOutcome:
        secret = (self.secrets.get_secret(QUALIFIER_SECRET) or "").strip()
        reference = self.secrets.get_secret(PRE_SHARED_KEY)
        self.codec.validate(secret, request.pass_key, reference)
        jit_act_id = request.jit_act_id
        printable_id = strip_crlf(jit_act_id)

        count = self.store.count_active_psk(jit_act_id)
        if count == 0:
            with self.store.transaction() as unit:

                def insert(passcode: str) -> int:
                    return unit.insert_psk_activation(
                        jit_act_id, self.codec.encrypt_text(secret, passcode), PRE_SHARED_KEY_CLIENT_TYPE
                    )

                credentials = self.issuer.issue(insert, DEFAULT_PREFIX)
                unit.assign_psk_device_id(credentials.record_id, credentials.device_id)
            logger.info("Device %s activated for activation id %s", credentials.device_id, printable_id)
            self._register(credentials, PRE_SHARED_KEY_CLIENT_TYPE)
            return ActivationOutcome(ActivationResult.activated(credentials.device_id, credentials.passcode))

        records = self.store.find_active_psk(jit_act_id) if count == 1 else []
        if len(records) != 1:
            logger.error("Activation id %s has %d active activation records", printable_id, count)
            raise DataIntegrityFault(ErrorCode.DEVICE_NOT_FOUND)
        existing = records[0]

        def persist(passcode: str) -> None:
            with self.store.transaction() as unit:
                unit.update_psk_passcode(existing.id, self.codec.encrypt_text(secret, passcode))

        passcode = self.issuer.rotate(existing.device_id, PRE_SHARED_KEY_CLIENT_TYPE, persist)
        logger.info("Device %s reactivated for activation id %s", existing.device_id, printable_id)
        return ActivationOutcome(ActivationResult.activated(existing.device_id, passcode))

    def generate_pre_shared_key(self) -> PreSharedKey:
        secret = self._secret(QUALIFIER_SECRET)
        with _unexpected_as_technical("pre-shared key generation"):
            return self.codec.generate(secret)

    # Administrative operations

    def deactivate(self, serial_number: str, user_id: str | None) -> None:
        """
        Deactivate every activation of a serial number, whatever its state.

        Idempotent: a second call changes nothing and does not fail.
        """
        if _blank(serial_number):
            raise ValidationFailed(ErrorCode.INPUT_VALIDATION_FAILED, "serialNumber is required")
        with _unexpected_as_technical("deactivation"):
            record = self.store.find_factory_record(serial_number=serial_number)
            with self.store.transaction() as unit:
                deactivated = unit.deactivate_records(serial_number)
                disabled = unit.disable_readiness(serial_number, user_id)
                # STOLEN and FAULTY states outlive deactivation
                moved = record is not None and record.state not in _KEEP_ON_DEACTIVATION
                if moved:
                    unit.change_state(record.id, DeviceState.DEACTIVATED, ACTION_DEACTIVATED)

        if not (deactivated or disabled or moved):
            logger.info("Nothing to deactivate for serial %s", strip_crlf(serial_number))
        else:
            logger.info(
                "Serial %s deactivated by %s: %d records, %d readiness entries",
                strip_crlf(serial_number),
                strip_crlf(user_id),
                deactivated,
                disabled,
            )

    def set_ready_to_activate(self, serial_number: str, user_id: str | None) -> None:
        """Authorise a serial number to activate after a completed association."""
        if _blank(serial_number):
            raise ValidationFailed(ErrorCode.INPUT_VALIDATION_FAILED, "serialNumber is required")
        with _unexpected_as_technical("readiness update"):
            record = self.store.find_factory_record(serial_number=serial_number)
            with self.store.transaction() as unit:
                unit.deactivate_records(serial_number)
                unit.disable_readiness(serial_number, user_id)
                unit.insert_readiness(serial_number, user_id)
                if record is not None and not record.blocked:
                    unit.change_state(record.id, DeviceState.READY_TO_ACTIVATE, ACTION_READY)

        if record is None:
            logger.warning("Readiness stored for unknown serial %s", strip_crlf(serial_number))
        elif record.blocked:
            logger.warning("Serial %s is stolen or faulty, state left unchanged", strip_crlf(serial_number))

    def deactivate_account(self, factory_id: int, user_id: str | None) -> ActivationOutcome:
        """
        Return a device to PROVISIONED and revoke its registrations.

        Every device id is revoked even when an earlier revoke fails; the
        failures come back as a REJECTED result holding a
        PartialActivationFailure, next to the deactivation events.

        Raises:
            ResourceNotFound: no factory record with this id
        """
        with _unexpected_as_technical("account deactivation"):
            record = self.store.find_factory_record_by_id(factory_id)
            if record is None:
                raise ResourceNotFound(ErrorCode.DEVICE_DETAILS_NOT_FOUND)

            with self.store.transaction() as unit:
                unit.disable_readiness_for_factory(factory_id, user_id)
                device_ids = unit.deactivate_records_for_factory(factory_id)
                unit.change_state(factory_id, DeviceState.PROVISIONED, ACTION_DEACTIVATED)
            logger.info("Factory record %s returned to PROVISIONED by %s", factory_id, strip_crlf(user_id))

            failed = []
            for device_id in device_ids:
                try:
                    self.issuer.revoke(device_id)
                except CollaboratorError as e:
                    logger.error("Device %s deactivated locally but revoke failed: %s", device_id, e)
                    failed.append(device_id)

            events = [DeviceDeactivated(device_id, record.serial_number) for device_id in device_ids]
            if not failed:
                return ActivationOutcome(None, events)
            error = PartialActivationFailure(failed[0], f"revoke failed after deactivation for {', '.join(failed)}")
            return ActivationOutcome(ActivationResult.rejected(error), events)


@dataclass
class ActivationService:
    """
    Application facade: run the orchestrator, then deliver its events.

    A REJECTED result is raised after its events are delivered so the
    activation failure event still goes out.
    """

    orchestrator: ActivationOrchestrator
    dispatcher: EventDispatcher

    def activate(self, request: ActivationRequest, policy: ActivationPolicy) -> ActivationResult:
        outcome = self.orchestrator.activate(request, policy)
        return self._finish(outcome)

    def activate_with_pre_shared_key(self, request: PreSharedKeyRequest) -> ActivationResult:
        outcome = self.orchestrator.activate_with_pre_shared_key(request)
        return self._finish(outcome)

    def generate_pre_shared_key(self) -> PreSharedKey:
        return self.orchestrator.generate_pre_shared_key()

    def deactivate(self, serial_number: str, user_id: str | None) -> None:
        self.orchestrator.deactivate(serial_number, user_id)

    def set_ready_to_activate(self, serial_number: str, user_id: str | None) -> None:
        self.orchestrator.set_ready_to_activate(serial_number, user_id)

    def deactivate_account(self, factory_id: int, user_id: str | None) -> None:
        outcome = self.orchestrator.deactivate_account(factory_id, user_id)
        self.dispatcher.dispatch(outcome.events)
        if outcome.result is not None and outcome.result.kind is ResultKind.REJECTED:
            raise outcome.result.error

    def _finish(self, outcome: ActivationOutcome) -> ActivationResult:
        self.dispatcher.dispatch(outcome.events)
        result = outcome.result
        if result.kind is ResultKind.REJECTED:
            raise result.error
        return result
