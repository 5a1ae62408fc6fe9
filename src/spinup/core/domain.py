"""Instance domain model.

State transitions (per instance, within one provisioning request):
- REQUESTED -> PORT_ALLOCATED | FAILED (validation, allocation)
- PORT_ALLOCATED -> RESOURCES_PROVISIONING
- RESOURCES_PROVISIONING -> PROVISIONED | ROLLING_BACK
- PROVISIONED -> BACKUP_SCHEDULED | ROLLING_BACK (metadata write failed)
- ROLLING_BACK -> FAILED
- FAILED is terminal
"""

from enum import Enum

from pydantic import BaseModel, Field


class EngineType(str, Enum):
    """Database engines accepted for provisioning."""

    POSTGRES = "postgres"


class InstanceState(str, Enum):
    REQUESTED = "requested"
    PORT_ALLOCATED = "port_allocated"
    RESOURCES_PROVISIONING = "resources_provisioning"
    PROVISIONED = "provisioned"
    ROLLING_BACK = "rolling_back"
    FAILED = "failed"
    BACKUP_SCHEDULED = "backup_scheduled"


_TRANSITIONS: dict[InstanceState, frozenset[InstanceState]] = {
    InstanceState.REQUESTED: frozenset({InstanceState.PORT_ALLOCATED, InstanceState.FAILED}),
    InstanceState.PORT_ALLOCATED: frozenset(
        {InstanceState.RESOURCES_PROVISIONING, InstanceState.FAILED}
    ),
    InstanceState.RESOURCES_PROVISIONING: frozenset(
        {InstanceState.PROVISIONED, InstanceState.ROLLING_BACK}
    ),
    InstanceState.PROVISIONED: frozenset(
        {InstanceState.BACKUP_SCHEDULED, InstanceState.ROLLING_BACK}
    ),
    InstanceState.ROLLING_BACK: frozenset({InstanceState.FAILED}),
    InstanceState.FAILED: frozenset(),
    InstanceState.BACKUP_SCHEDULED: frozenset(),
}


class InvalidTransitionError(Exception):
    def __init__(self, current: InstanceState, target: InstanceState) -> None:
        self.current = current
        self.target = target
        super().__init__(f"invalid instance transition {current.value} -> {target.value}")


def can_transition(current: InstanceState, target: InstanceState) -> bool:
    return target in _TRANSITIONS[current]


def transition(current: InstanceState, target: InstanceState) -> InstanceState:
    """Return ``target`` if it is reachable from ``current``."""
    if not can_transition(current, target):
        raise InvalidTransitionError(current, target)
    return target


class ResourceLimits(BaseModel):
    """Container resource limits.

    memory_mb is converted to bytes with a factor of 1_000_000.
    """

    cpu_shares: int = Field(default=0, ge=0)
    memory_mb: int = Field(default=0, ge=0)

    model_config = {"frozen": True}

    @property
    def memory_bytes(self) -> int:
        return self.memory_mb * 1_000_000


class ResourceSet(BaseModel):
    """The runtime resources bound to one instance."""

    volume_name: str
    network_id: str
    network_name: str
    container_id: str
    container_name: str

    model_config = {"frozen": True}


class ServiceInstance(BaseModel):
    """One provisioned database service."""

    instance_id: str
    owner_id: str
    name: str
    engine_type: EngineType = EngineType.POSTGRES
    port: int
    architecture: str
    resources: ResourceSet

    model_config = {"frozen": True}
