"""End-to-end provisioning flow.

A request is validated, gets a reserved host port, has its resources built
by the provisioner and is finally recorded in the metadata store. Any
failure leaves no resources, no reservation and no row behind.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field, SecretStr
from pydantic import ValidationError as PydanticValidationError

from spinup.core.domain import (
    EngineType,
    InstanceState,
    ResourceLimits,
    ResourceSet,
    ServiceInstance,
    transition,
)
from spinup.errors import (
    AllocationExhaustedError,
    OperationTimeoutError,
    OwnershipError,
    PersistenceError,
    ProvisioningError,
    SpinupError,
    ValidationError,
)
from spinup.logging import bind_instance
from spinup.logging_schema import LogEvent
from spinup.metrics import PROVISION_TOTAL
from spinup.provisioning.postgres import InstanceSpec

if TYPE_CHECKING:
    from spinup.backup.registry import BackupScheduleRegistry
    from spinup.config import SpinupConfig
    from spinup.provisioning.ports import PortReservationTable
    from spinup.provisioning.provisioner import ResourceProvisioner
    from spinup.store.metadata import MetadataStore
    from spinup.store.models import BackupRecord

logger = logging.getLogger(__name__)

INSTANCE_NAME_PATTERN = r"^[a-zA-Z0-9][a-zA-Z0-9_.-]*$"


class BackupRequest(BaseModel):
    schedule: dict[str, Any]
    destination: dict[str, Any]


class ProvisionRequest(BaseModel):
    """Provisioning request as handed over by the serving layer."""

    name: str = Field(pattern=INSTANCE_NAME_PATTERN, max_length=63)
    owner_id: str = Field(min_length=1)
    engine_type: str
    username: str = "postgres"
    password: SecretStr
    limits: ResourceLimits = ResourceLimits()
    backup_enabled: bool = False
    backup: BackupRequest | None = None


class ProvisionResponse(BaseModel):
    host_name: str
    port: int
    container_id: str


@dataclass
class ProvisionResult:
    instance: ServiceInstance
    state: InstanceState
    response: ProvisionResponse
    backup: BackupRecord | None = None
    backup_error: str | None = None


def parse_request(value: ProvisionRequest | Mapping[str, Any]) -> ProvisionRequest:
    if isinstance(value, ProvisionRequest):
        return value
    try:
        return ProvisionRequest.model_validate(dict(value))
    except PydanticValidationError as exc:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
        raise ValidationError(f"invalid provisioning request: {fields}") from exc


class _StateTracker:
    def __init__(self, instance: str) -> None:
        self.instance = instance
        self.state = InstanceState.REQUESTED

    def advance(self, target: InstanceState) -> None:
        previous = self.state
        self.state = transition(self.state, target)
        logger.debug(
            "Instance %s: %s -> %s",
            self.instance,
            previous.value,
            target.value,
            extra={"event": LogEvent.STATE_CHANGED, "instance": self.instance},
        )


def _result_label(exc: BaseException) -> str:
    if isinstance(exc, ValidationError):
        return "validation_error"
    if isinstance(exc, AllocationExhaustedError):
        return "allocation_exhausted"
    if isinstance(exc, OperationTimeoutError) or isinstance(
        exc.__cause__, OperationTimeoutError
    ):
        return "timeout"
    if isinstance(exc, PersistenceError):
        return "persistence_error"
    return "provisioning_error"


def _count_failure(exc: SpinupError) -> None:
    PROVISION_TOTAL.labels(result=_result_label(exc)).inc()
    logger.warning(
        "Provisioning failed: %s",
        exc.message,
        extra={"event": LogEvent.PROVISION_FAILED, "error_code": exc.code.value},
    )


class ProvisioningService:
    """Runs provisioning requests against one host."""

    def __init__(
        self,
        config: SpinupConfig,
        ports: PortReservationTable,
        provisioner: ResourceProvisioner,
        metadata: MetadataStore,
        backups: BackupScheduleRegistry,
    ) -> None:
        self._config = config
        self._ports = ports
        self._provisioner = provisioner
        self._metadata = metadata
        self._backups = backups

    async def provision(
        self,
        request: ProvisionRequest | Mapping[str, Any],
        authenticated_owner: str | None = None,
    ) -> ProvisionResult:
        """Provision one instance.

        Raises:
            ValidationError: Request rejected; nothing was touched.
            AllocationExhaustedError: No free port in the configured range.
            ProvisioningError: Resource creation failed; see ``rollback``.
            PersistenceError / OperationTimeoutError: The instance could not be
                recorded; its resources were torn down again.
        """
        try:
            req = parse_request(request)
        except ValidationError as exc:
            _count_failure(exc)
            raise

        with bind_instance(req.name, req.owner_id):
            try:
                result = await self._provision(req, authenticated_owner)
            except SpinupError as exc:
                _count_failure(exc)
                raise
        PROVISION_TOTAL.labels(result="success").inc()
        return result

    async def _provision(
        self,
        req: ProvisionRequest,
        authenticated_owner: str | None,
    ) -> ProvisionResult:
        tracker = _StateTracker(req.name)

        if authenticated_owner is not None and req.owner_id != authenticated_owner:
            raise OwnershipError()
        if req.engine_type != EngineType.POSTGRES.value:
            raise ValidationError(f"currently we don't support {req.engine_type}")
        if req.backup_enabled and req.backup is not None:
            self._backups.validate(req.backup.schedule, req.backup.destination, True)
        # Volume, network and container names are host-wide, whoever owns them
        existing = await self._metadata.find_by_name(req.name)
        if existing is not None:
            if existing.owner_id == req.owner_id:
                raise ValidationError(f"instance {req.name} already exists")
            raise ValidationError(f"instance name {req.name} is already in use on this host")

        logger.info("Provisioning instance", extra={"event": LogEvent.PROVISION_STARTED})

        ports = self._config.ports
        async with self._ports.reserve(ports.range_min, ports.range_max) as port:
            tracker.advance(InstanceState.PORT_ALLOCATED)
            spec = InstanceSpec(
                name=req.name,
                image=self._config.runtime.postgres_image,
                username=req.username,
                password=req.password,
                port=port,
                limits=req.limits,
            )

            tracker.advance(InstanceState.RESOURCES_PROVISIONING)
            try:
                resources = await self._provisioner.create_instance(spec)
            except (ProvisioningError, asyncio.CancelledError):
                tracker.advance(InstanceState.ROLLING_BACK)
                tracker.advance(InstanceState.FAILED)
                raise
            tracker.advance(InstanceState.PROVISIONED)

            await self._record(req, port, resources, tracker)

        instance = ServiceInstance(
            instance_id=resources.container_id,
            owner_id=req.owner_id,
            name=req.name,
            port=port,
            architecture=self._config.runtime.architecture,
            resources=resources,
        )
        result = ProvisionResult(
            instance=instance,
            state=tracker.state,
            response=ProvisionResponse(
                host_name=self._config.runtime.public_hostname,
                port=port,
                container_id=resources.container_id,
            ),
        )
        logger.info(
            "Created service for user %s",
            req.owner_id,
            extra={
                "event": LogEvent.PROVISION_COMPLETED,
                "container_id": resources.container_id,
                "port": port,
            },
        )

        if req.backup_enabled and req.backup is not None:
            try:
                result.backup = await self._backups.register_schedule(
                    resources.container_id, req.backup.schedule, req.backup.destination, True
                )
                tracker.advance(InstanceState.BACKUP_SCHEDULED)
                result.state = tracker.state
            except SpinupError as exc:
                # The instance stays provisioned; the schedule can be registered later
                result.backup_error = exc.message
        return result

    async def _record(
        self,
        req: ProvisionRequest,
        port: int,
        resources: ResourceSet,
        tracker: _StateTracker,
    ) -> None:
        try:
            await self._metadata.record_instance(
                resources.container_id, req.name, port, owner_id=req.owner_id
            )
        except asyncio.CancelledError:
            tracker.advance(InstanceState.ROLLING_BACK)
            await self._provisioner.teardown(resources)
            tracker.advance(InstanceState.FAILED)
            raise
        except (PersistenceError, OperationTimeoutError) as exc:
            tracker.advance(InstanceState.ROLLING_BACK)
            outcome = await self._provisioner.teardown(resources)
            tracker.advance(InstanceState.FAILED)
            raise PersistenceError(
                "record_instance",
                f"{exc.message}; resources for {req.name} rollback {outcome.status.value}",
                rollback=outcome.status,
            ) from exc

    async def schedule_backup(
        self,
        instance_id: str,
        schedule: Mapping[str, Any],
        destination: Mapping[str, Any],
        backup_enabled: bool,
    ) -> BackupRecord:
        """Register a backup schedule for an already provisioned instance."""
        return await self._backups.register_schedule(
            instance_id, schedule, destination, backup_enabled
        )
