"""Docker Engine API client.

Provides async Docker API access for containers, volumes, networks and images.
Supports both Unix socket and TCP connections.
"""

import logging
import struct

import httpx
from pydantic import BaseModel

from spinup.config import DockerConfig

logger = logging.getLogger(__name__)


class DockerConflictError(Exception):
    """Raised when Docker reports a name conflict (HTTP 409)."""

    pass


class VolumeInUseError(Exception):
    """Raised when trying to remove a volume that is in use."""

    pass


# =============================================================================
# Pydantic Models
# =============================================================================


class PortBinding(BaseModel):
    """Host side of a published container port."""

    host_ip: str = "0.0.0.0"
    host_port: int

    model_config = {"frozen": True}

    def to_api(self) -> dict:
        return {"HostIp": self.host_ip, "HostPort": str(self.host_port)}


class Mount(BaseModel):
    """Volume mount inside a container."""

    source: str
    target: str
    type: str = "volume"

    model_config = {"frozen": True}

    def to_api(self) -> dict:
        return {"Type": self.type, "Source": self.source, "Target": self.target}


class HostConfig(BaseModel):
    """Docker HostConfig for container creation."""

    network_mode: str = "bridge"
    port_bindings: dict[str, list[PortBinding]] = {}
    mounts: list[Mount] = []
    cpu_shares: int = 0
    memory: int = 0
    auto_remove: bool = False

    model_config = {"frozen": True}

    def to_api(self) -> dict:
        """Convert to Docker API format."""
        result: dict = {
            "NetworkMode": self.network_mode,
            "AutoRemove": self.auto_remove,
        }
        if self.port_bindings:
            result["PortBindings"] = {
                port: [binding.to_api() for binding in bindings]
                for port, bindings in self.port_bindings.items()
            }
        if self.mounts:
            result["Mounts"] = [mount.to_api() for mount in self.mounts]
        if self.cpu_shares:
            result["CpuShares"] = self.cpu_shares
        if self.memory:
            result["Memory"] = self.memory
        return result


class NetworkingConfig(BaseModel):
    """Networks a container is attached to at creation time."""

    endpoints: list[str] = []

    model_config = {"frozen": True}

    def to_api(self) -> dict:
        return {"EndpointsConfig": {name: {} for name in self.endpoints}}


class ContainerConfig(BaseModel):
    """Docker container configuration for creation."""

    image: str
    name: str
    cmd: list[str] = []
    env: list[str] = []
    labels: dict[str, str] = {}
    exposed_ports: dict[str, dict] = {}
    host_config: HostConfig = HostConfig()
    networking: NetworkingConfig = NetworkingConfig()

    model_config = {"frozen": True}

    def to_api(self) -> dict:
        """Convert to Docker API JSON format."""
        result: dict = {
            "Image": self.image,
            "ExposedPorts": self.exposed_ports,
            "HostConfig": self.host_config.to_api(),
            "NetworkingConfig": self.networking.to_api(),
        }
        if self.cmd:
            result["Cmd"] = self.cmd
        if self.env:
            result["Env"] = self.env
        if self.labels:
            result["Labels"] = self.labels
        return result


class VolumeConfig(BaseModel):
    """Docker volume configuration for creation."""

    name: str
    driver: str = "local"
    labels: dict[str, str] = {}

    model_config = {"frozen": True}

    def to_api(self) -> dict:
        """Convert to Docker API format."""
        result: dict = {"Name": self.name, "Driver": self.driver}
        if self.labels:
            result["Labels"] = self.labels
        return result


class NetworkConfig(BaseModel):
    """Docker network configuration for creation."""

    name: str
    driver: str = "bridge"
    check_duplicate: bool = True
    labels: dict[str, str] = {}

    model_config = {"frozen": True}

    def to_api(self) -> dict:
        result: dict = {
            "Name": self.name,
            "Driver": self.driver,
            "CheckDuplicate": self.check_duplicate,
        }
        if self.labels:
            result["Labels"] = self.labels
        return result


class ExecConfig(BaseModel):
    """Command executed inside a running container."""

    cmd: list[str]
    user: str | None = None
    working_dir: str | None = None

    model_config = {"frozen": True}

    def to_api(self) -> dict:
        result: dict = {
            "Cmd": self.cmd,
            "AttachStdout": True,
            "AttachStderr": True,
            "Tty": False,
        }
        if self.user:
            result["User"] = self.user
        if self.working_dir:
            result["WorkingDir"] = self.working_dir
        return result


class ExecResult(BaseModel):
    """Output of an exec call."""

    exit_code: int
    output: bytes


def demux_stream(data: bytes) -> bytes:
    """Join stdout/stderr frames of a non-TTY Docker attach stream.

    Each frame is an 8 byte header (stream type, 3 zero bytes, big-endian
    payload length) followed by the payload.
    """
    out = bytearray()
    offset = 0
    while offset + 8 <= len(data):
        _, size = struct.unpack(">BxxxL", data[offset : offset + 8])
        offset += 8
        out += data[offset : offset + size]
        offset += size
    return bytes(out)


# =============================================================================
# Docker Client
# =============================================================================


class DockerClient:
    """Async Docker API client."""

    def __init__(
        self,
        config: DockerConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._host = config.host
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def config(self) -> DockerConfig:
        return self._config

    def _create_client(self) -> httpx.AsyncClient:
        """Create a new HTTP client."""
        timeout = self._config.api_timeout
        if self._transport is not None:
            return httpx.AsyncClient(
                transport=self._transport,
                base_url="http://localhost",
                timeout=timeout,
            )
        if self._host.startswith("unix://"):
            socket_path = self._host.replace("unix://", "")
            transport = httpx.AsyncHTTPTransport(uds=socket_path)
            return httpx.AsyncClient(
                transport=transport,
                base_url="http://localhost",
                timeout=timeout,
            )
        else:
            base_url = self._host
            if base_url.startswith("tcp://"):
                base_url = base_url.replace("tcp://", "http://")
            return httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def get(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = self._create_client()
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None


# =============================================================================
# Container API
# =============================================================================


class ContainerAPI:
    """Docker Container API operations."""

    def __init__(self, client: DockerClient) -> None:
        self._docker = client

    async def create(self, config: ContainerConfig) -> str:
        """Create a container and return its ID.

        Raises DockerConflictError if a container with the same name exists.
        """
        client = await self._docker.get()
        resp = await client.post(
            "/containers/create",
            params={"name": config.name},
            json=config.to_api(),
        )
        if resp.status_code == 409:
            raise DockerConflictError(f"Container {config.name} already exists")
        resp.raise_for_status()
        container_id = resp.json()["Id"]
        logger.info("Created container: %s (%s)", config.name, container_id[:12])
        return container_id

    async def start(self, name: str) -> None:
        """Start a container."""
        client = await self._docker.get()
        resp = await client.post(f"/containers/{name}/start")
        if resp.status_code not in (204, 304):
            resp.raise_for_status()
        logger.info("Started container: %s", name)

    async def stop(self, name: str, timeout: int = 10) -> None:
        """Stop a container."""
        client = await self._docker.get()
        resp = await client.post(f"/containers/{name}/stop", params={"t": str(timeout)})
        if resp.status_code not in (204, 304, 404):
            resp.raise_for_status()
        logger.info("Stopped container: %s", name)

    async def remove(self, name: str, force: bool = True) -> None:
        """Remove a container."""
        client = await self._docker.get()
        resp = await client.delete(
            f"/containers/{name}", params={"force": "true" if force else "false"}
        )
        if resp.status_code == 404:
            logger.debug("Container not found: %s", name)
            return
        resp.raise_for_status()
        logger.info("Removed container: %s", name)

    async def exec(self, name: str, config: ExecConfig) -> ExecResult:
        """Run a command in a container and wait for it to finish."""
        client = await self._docker.get()
        resp = await client.post(f"/containers/{name}/exec", json=config.to_api())
        resp.raise_for_status()
        exec_id = resp.json()["Id"]

        resp = await client.post(f"/exec/{exec_id}/start", json={"Detach": False, "Tty": False})
        resp.raise_for_status()
        output = demux_stream(resp.content)

        resp = await client.get(f"/exec/{exec_id}/json")
        resp.raise_for_status()
        exit_code = resp.json().get("ExitCode", -1)
        return ExecResult(exit_code=exit_code, output=output)


# =============================================================================
# Volume API
# =============================================================================


class VolumeAPI:
    """Docker Volume API operations."""

    def __init__(self, client: DockerClient) -> None:
        self._docker = client

    async def inspect(self, name: str) -> dict | None:
        """Inspect a volume."""
        client = await self._docker.get()
        resp = await client.get(f"/volumes/{name}")
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return resp.json()

    async def create(self, config: VolumeConfig) -> None:
        """Create a volume."""
        client = await self._docker.get()
        resp = await client.post("/volumes/create", json=config.to_api())
        if resp.status_code == 409:
            raise DockerConflictError(f"Volume {config.name} already exists")
        resp.raise_for_status()
        logger.info("Created volume: %s", config.name)

    async def remove(self, name: str) -> None:
        """Remove a volume."""
        client = await self._docker.get()
        resp = await client.delete(f"/volumes/{name}")
        if resp.status_code == 404:
            logger.debug("Volume not found: %s", name)
            return
        if resp.status_code == 409:
            raise VolumeInUseError(f"Volume {name} is in use by a container")
        resp.raise_for_status()
        logger.info("Removed volume: %s", name)


# =============================================================================
# Network API
# =============================================================================


class NetworkAPI:
    """Docker Network API operations."""

    def __init__(self, client: DockerClient) -> None:
        self._docker = client

    async def create(self, config: NetworkConfig) -> str:
        """Create a network and return its ID."""
        client = await self._docker.get()
        resp = await client.post("/networks/create", json=config.to_api())
        if resp.status_code == 409:
            raise DockerConflictError(f"Network {config.name} already exists")
        resp.raise_for_status()
        network_id = resp.json()["Id"]
        logger.info("Created network: %s (%s)", config.name, network_id[:12])
        return network_id

    async def remove(self, network_id: str) -> None:
        """Remove a network."""
        client = await self._docker.get()
        resp = await client.delete(f"/networks/{network_id}")
        if resp.status_code == 404:
            logger.debug("Network not found: %s", network_id)
            return
        resp.raise_for_status()
        logger.info("Removed network: %s", network_id)


# =============================================================================
# Image API
# =============================================================================


class ImageAPI:
    """Docker Image API operations."""

    def __init__(self, client: DockerClient) -> None:
        self._docker = client

    async def exists(self, image_ref: str) -> bool:
        """Check if image exists locally."""
        client = await self._docker.get()
        resp = await client.get(f"/images/{image_ref}/json")
        return resp.status_code == 200

    async def pull(self, image_ref: str) -> None:
        """Pull image from registry."""
        client = await self._docker.get()

        if ":" in image_ref:
            image, tag = image_ref.rsplit(":", 1)
        else:
            image, tag = image_ref, "latest"

        logger.info("Pulling image: %s:%s", image, tag)

        resp = await client.post(
            "/images/create",
            params={"fromImage": image, "tag": tag},
            timeout=self._docker.config.image_pull_timeout,
        )
        resp.raise_for_status()
        logger.info("Pulled image: %s:%s", image, tag)

    async def ensure(self, image_ref: str) -> None:
        """Ensure image exists locally, pull if not."""
        if not await self.exists(image_ref):
            await self.pull(image_ref)
