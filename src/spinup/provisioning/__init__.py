"""Provisioning core: port allocation and ordered resource creation."""

from spinup.provisioning.naming import ResourceNaming
from spinup.provisioning.ports import PortAllocator, PortReservationTable
from spinup.provisioning.postgres import InstanceSpec, reload_postgres
from spinup.provisioning.provisioner import ResourceProvisioner
from spinup.provisioning.saga import CompensationStack, RollbackOutcome

__all__ = [
    "CompensationStack",
    "InstanceSpec",
    "PortAllocator",
    "PortReservationTable",
    "ResourceNaming",
    "ResourceProvisioner",
    "RollbackOutcome",
    "reload_postgres",
]
