"""Process-wide wiring.

SpinupContext is built once from a SpinupConfig and handed to whatever
serves requests. It owns the Docker client, the database engine and the
per-host port reservation table; components only see what they are given.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from spinup.backup.registry import BackupScheduleRegistry
from spinup.config import SpinupConfig, get_config
from spinup.infra import DockerClient
from spinup.logging import setup_logging
from spinup.provisioning import (
    PortAllocator,
    PortReservationTable,
    ResourceNaming,
    ResourceProvisioner,
)
from spinup.runtimes import DockerRuntime
from spinup.service import ProvisioningService
from spinup.store import MetadataStore, create_engine

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from spinup.core.interfaces.runtime import ContainerRuntimeClient

logger = logging.getLogger(__name__)


class SpinupContext:
    """Explicit container for the components serving one host."""

    def __init__(
        self,
        config: SpinupConfig,
        runtime: ContainerRuntimeClient | None = None,
        engine: AsyncEngine | None = None,
        allocator: PortAllocator | None = None,
    ) -> None:
        self.config = config
        self._docker: DockerClient | None = None
        if runtime is None:
            self._docker = DockerClient(config.docker)
            runtime = DockerRuntime(config.docker, self._docker)
        self.runtime = runtime
        self.engine = engine or create_engine(config.database_url, echo=config.storage.echo)

        timeout = config.storage.operation_timeout
        self.metadata = MetadataStore(self.engine, timeout)
        self.backups = BackupScheduleRegistry(self.engine, config.backup, timeout)
        self.ports = PortReservationTable(
            allocator
            or PortAllocator(config.ports.probe_host, config.ports.probe_timeout)
        )
        self.naming = ResourceNaming(config.runtime)
        self.provisioner = ResourceProvisioner(
            self.runtime,
            self.naming,
            config.runtime,
            call_timeout=config.docker.api_timeout,
            create_timeout=config.docker.image_pull_timeout + config.docker.api_timeout,
        )
        self.service = ProvisioningService(
            config, self.ports, self.provisioner, self.metadata, self.backups
        )

    @classmethod
    def bootstrap(cls, config: SpinupConfig | None = None, **overrides: Any) -> SpinupContext:
        """Configure logging and build the context for a serving process.

        ``config`` defaults to the environment-derived configuration; this is
        the only place get_config() is read.
        """
        config = config or get_config()
        setup_logging(config.logging)
        context = cls(config, **overrides)
        logger.info(
            "Context configured",
            extra={
                "architecture": config.runtime.architecture,
                "range_min": config.ports.range_min,
                "range_max": config.ports.range_max,
            },
        )
        return context

    async def start(self) -> None:
        """Create tables and reserve ports of already recorded instances."""
        await self.metadata.ensure_schema()
        await self.backups.ensure_schema()
        ports = await self.metadata.list_ports()
        self.ports.seed(ports)
        logger.info("Context started with %d recorded instance(s)", len(ports))

    async def close(self) -> None:
        if self._docker is not None:
            await self._docker.close()
        await self.engine.dispose()
