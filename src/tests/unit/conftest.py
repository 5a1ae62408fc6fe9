"""Shared fixtures for spinup unit tests."""

import asyncio
import itertools
from collections.abc import AsyncIterator
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine

from spinup.backup.registry import BackupScheduleRegistry
from spinup.config import (
    BackupConfig,
    DockerConfig,
    PortConfig,
    RuntimeConfig,
    SpinupConfig,
    StorageConfig,
)
from spinup.core.interfaces.runtime import ContainerRuntimeClient, ResourceExistsError
from spinup.infra import ContainerConfig
from spinup.provisioning.naming import ResourceNaming
from spinup.provisioning.ports import PortAllocator
from spinup.store import MetadataStore, create_engine


class FakeRuntime(ContainerRuntimeClient):
    """In-memory container runtime that records calls and injects failures.

    ``fail`` maps an operation name (``create_volume``, ``remove_network``, ...)
    to the exception that operation raises. ``block`` maps an operation name to
    an event the operation waits on before proceeding. ``stall`` does the same
    after the operation has taken effect, like a daemon that finishes the work
    but answers late.
    """

    def __init__(self) -> None:
        self.volumes: dict[str, dict[str, str]] = {}
        self.networks: dict[str, str] = {}
        self.containers: dict[str, ContainerConfig] = {}
        self.running: set[str] = set()
        self.calls: list[tuple[str, str]] = []
        self.fail: dict[str, Exception] = {}
        self.block: dict[str, asyncio.Event] = {}
        self.stall: dict[str, asyncio.Event] = {}
        self.exec_output = "server signaled\n"
        self._ids = itertools.count(1)

    async def _enter(self, operation: str, target: str) -> None:
        self.calls.append((operation, target))
        if operation in self.block:
            await self.block[operation].wait()
        if operation in self.fail:
            raise self.fail[operation]

    def called(self, operation: str) -> list[str]:
        return [target for op, target in self.calls if op == operation]

    async def create_volume(self, name: str, labels: dict[str, str] | None = None) -> None:
        await self._enter("create_volume", name)
        if name in self.volumes:
            raise ResourceExistsError("volume", name)
        self.volumes[name] = dict(labels or {})

    async def remove_volume(self, name: str) -> None:
        await self._enter("remove_volume", name)
        self.volumes.pop(name, None)

    async def create_network(self, name: str) -> str:
        await self._enter("create_network", name)
        if name in self.networks.values():
            raise ResourceExistsError("network", name)
        network_id = f"net{next(self._ids):04d}"
        self.networks[network_id] = name
        return network_id

    async def remove_network(self, network_id: str) -> None:
        await self._enter("remove_network", network_id)
        self.networks.pop(network_id, None)

    async def create_container(self, config: ContainerConfig) -> str:
        await self._enter("create_container", config.name)
        if any(c.name == config.name for c in self.containers.values()):
            raise ResourceExistsError("container", config.name)
        container_id = f"c{next(self._ids):011d}"
        self.containers[container_id] = config
        if "create_container" in self.stall:
            await self.stall["create_container"].wait()
        return container_id

    async def start_container(self, container_id: str) -> None:
        await self._enter("start_container", container_id)
        self.running.add(container_id)

    async def stop_container(self, container_id: str) -> None:
        await self._enter("stop_container", container_id)
        self.running.discard(container_id)

    async def remove_container(self, container_id: str) -> None:
        await self._enter("remove_container", container_id)
        for cid, config in list(self.containers.items()):
            if container_id in (cid, config.name):
                del self.containers[cid]
                self.running.discard(cid)

    async def exec_in_container(
        self,
        container_id: str,
        cmd: list[str],
        user: str | None = None,
        working_dir: str | None = None,
    ) -> str:
        await self._enter("exec_in_container", container_id)
        return self.exec_output

    def container_named(self, name: str) -> ContainerConfig | None:
        for config in self.containers.values():
            if config.name == name:
                return config
        return None


class StubAllocator(PortAllocator):
    """PortAllocator whose probe consults a set of busy ports."""

    def __init__(self, busy: set[int] | None = None) -> None:
        super().__init__(host="127.0.0.1", probe_timeout=0.1)
        self.busy = busy or set()
        self.probed: list[int] = []

    async def is_free(self, port: int) -> bool:
        self.probed.append(port)
        return port not in self.busy


@pytest.fixture
def fake_runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def stub_allocator() -> StubAllocator:
    return StubAllocator()


@pytest.fixture
def runtime_config(tmp_path: Path) -> RuntimeConfig:
    return RuntimeConfig(project_dir=tmp_path, postgres_image="postgres:16")


@pytest.fixture
def naming(runtime_config: RuntimeConfig) -> ResourceNaming:
    return ResourceNaming(runtime_config)


@pytest.fixture
def spinup_config(tmp_path: Path, runtime_config: RuntimeConfig) -> SpinupConfig:
    return SpinupConfig(
        docker=DockerConfig(api_timeout=1.0, image_pull_timeout=1.0),
        ports=PortConfig(range_min=15000, range_max=15010, probe_host="127.0.0.1"),
        runtime=runtime_config,
        storage=StorageConfig(
            database_url=f"sqlite+aiosqlite:///{tmp_path / 'spinup.db'}",
            operation_timeout=2.0,
        ),
        backup=BackupConfig(),
    )


@pytest_asyncio.fixture
async def engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    """File-backed SQLite engine, disposed after the test."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'db' / 'metadata.db'}")
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def metadata_store(engine: AsyncEngine) -> MetadataStore:
    store = MetadataStore(engine, timeout=2.0)
    await store.ensure_schema()
    return store


@pytest_asyncio.fixture
async def backup_registry(engine: AsyncEngine, metadata_store: MetadataStore) -> BackupScheduleRegistry:
    registry = BackupScheduleRegistry(engine, BackupConfig(), timeout=2.0)
    await registry.ensure_schema()
    return registry
