"""Docker Engine implementation of ContainerRuntimeClient."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import TYPE_CHECKING

from spinup.core.interfaces.runtime import (
    ContainerRuntimeClient,
    ExecFailedError,
    ResourceExistsError,
)
from spinup.infra import (
    ContainerAPI,
    ContainerConfig,
    DockerConflictError,
    ExecConfig,
    ImageAPI,
    NetworkAPI,
    NetworkConfig,
    VolumeAPI,
    VolumeConfig,
)
from spinup.logging_schema import LogEvent
from spinup.metrics import RUNTIME_DURATION

if TYPE_CHECKING:
    from collections.abc import Iterator

    from spinup.config import DockerConfig
    from spinup.infra import DockerClient

logger = logging.getLogger(__name__)


@contextmanager
def _timed(operation: str) -> Iterator[None]:
    start = time.monotonic()
    try:
        yield
    finally:
        RUNTIME_DURATION.labels(operation=operation).observe(time.monotonic() - start)


class DockerRuntime(ContainerRuntimeClient):
    """Container runtime backed by the Docker Engine HTTP API."""

    def __init__(
        self,
        config: DockerConfig,
        client: DockerClient,
        containers: ContainerAPI | None = None,
        volumes: VolumeAPI | None = None,
        networks: NetworkAPI | None = None,
        images: ImageAPI | None = None,
    ) -> None:
        self._config = config
        self._containers = containers or ContainerAPI(client)
        self._volumes = volumes or VolumeAPI(client)
        self._networks = networks or NetworkAPI(client)
        self._images = images or ImageAPI(client)

    async def create_volume(self, name: str, labels: dict[str, str] | None = None) -> None:
        # Docker returns 201 for an existing volume, so check first
        if await self._volumes.inspect(name) is not None:
            raise ResourceExistsError("volume", name)
        with _timed("volume_create"):
            try:
                await self._volumes.create(VolumeConfig(name=name, labels=labels or {}))
            except DockerConflictError as exc:
                raise ResourceExistsError("volume", name) from exc
        logger.info("Volume created", extra={"event": LogEvent.VOLUME_CREATED, "volume": name})

    async def remove_volume(self, name: str) -> None:
        with _timed("volume_remove"):
            await self._volumes.remove(name)
        logger.info("Volume removed", extra={"event": LogEvent.VOLUME_REMOVED, "volume": name})

    async def create_network(self, name: str) -> str:
        with _timed("network_create"):
            try:
                network_id = await self._networks.create(NetworkConfig(name=name))
            except DockerConflictError as exc:
                raise ResourceExistsError("network", name) from exc
        logger.info(
            "Network created",
            extra={"event": LogEvent.NETWORK_CREATED, "network": name, "network_id": network_id},
        )
        return network_id

    async def remove_network(self, network_id: str) -> None:
        with _timed("network_remove"):
            await self._networks.remove(network_id)
        logger.info(
            "Network removed",
            extra={"event": LogEvent.NETWORK_REMOVED, "network_id": network_id},
        )

    async def create_container(self, config: ContainerConfig) -> str:
        if self._config.pull_missing_images:
            await self._images.ensure(config.image)
        with _timed("container_create"):
            try:
                container_id = await self._containers.create(config)
            except DockerConflictError as exc:
                raise ResourceExistsError("container", config.name) from exc
        logger.info(
            "Container created",
            extra={
                "event": LogEvent.CONTAINER_CREATED,
                "container": config.name,
                "container_id": container_id,
                "image": config.image,
            },
        )
        return container_id

    async def start_container(self, container_id: str) -> None:
        with _timed("container_start"):
            await self._containers.start(container_id)
        logger.info(
            "Container started",
            extra={"event": LogEvent.CONTAINER_STARTED, "container_id": container_id},
        )

    async def stop_container(self, container_id: str) -> None:
        with _timed("container_stop"):
            await self._containers.stop(container_id)
        logger.info(
            "Container stopped",
            extra={"event": LogEvent.CONTAINER_STOPPED, "container_id": container_id},
        )

    async def remove_container(self, container_id: str) -> None:
        with _timed("container_remove"):
            await self._containers.remove(container_id, force=True)
        logger.info(
            "Container removed",
            extra={"event": LogEvent.CONTAINER_REMOVED, "container_id": container_id},
        )

    async def exec_in_container(
        self,
        container_id: str,
        cmd: list[str],
        user: str | None = None,
        working_dir: str | None = None,
    ) -> str:
        with _timed("container_exec"):
            result = await self._containers.exec(
                container_id, ExecConfig(cmd=cmd, user=user, working_dir=working_dir)
            )
        output = result.output.decode("utf-8", errors="replace")
        logger.info(
            "Command executed in container",
            extra={
                "event": LogEvent.CONTAINER_EXEC,
                "container_id": container_id,
                "command": cmd[0],
                "exit_code": result.exit_code,
            },
        )
        if result.exit_code != 0:
            raise ExecFailedError(cmd, result.exit_code, output)
        return output
