"""Container runtime interface for the provisioning core.

This is the single interface the provisioner uses to touch the host's
container runtime. The Docker Engine implementation lives in
spinup.runtimes.docker; tests use an in-memory double.

Design principles:
- Operations map 1:1 to runtime resources (volume, network, container)
- No string parsing of CLI output; identifiers are returned as values
- The core never retries; callers decide whether a failure is worth retrying
"""

from abc import ABC, abstractmethod

from spinup.infra.docker import ContainerConfig


class ResourceExistsError(Exception):
    """Raised when a resource with the requested name already exists.

    The provisioner must never adopt (and later compensate away) a resource
    it did not create.
    """

    def __init__(self, kind: str, name: str) -> None:
        self.kind = kind
        self.name = name
        super().__init__(f"{kind} {name} already exists")


class ExecFailedError(Exception):
    """Raised when a command run inside a container exits non-zero."""

    def __init__(self, cmd: list[str], exit_code: int, output: str) -> None:
        self.cmd = cmd
        self.exit_code = exit_code
        self.output = output
        super().__init__(f"{cmd[0]} exited with {exit_code}: {output.strip()}")


class ContainerRuntimeClient(ABC):
    """Abstract client for host container runtime resources."""

    @abstractmethod
    async def create_volume(self, name: str, labels: dict[str, str] | None = None) -> None:
        """Create a named volume.

        Raises:
            ResourceExistsError: A volume with this name already exists.
        """
        ...

    @abstractmethod
    async def remove_volume(self, name: str) -> None:
        """Remove a volume. Missing volumes are ignored."""
        ...

    @abstractmethod
    async def create_network(self, name: str) -> str:
        """Create a network and return its ID.

        Raises:
            ResourceExistsError: A network with this name already exists.
        """
        ...

    @abstractmethod
    async def remove_network(self, network_id: str) -> None:
        """Remove a network. Missing networks are ignored."""
        ...

    @abstractmethod
    async def create_container(self, config: ContainerConfig) -> str:
        """Create (but do not start) a container and return its ID.

        ``config`` carries the container, host and networking configuration.

        Raises:
            ResourceExistsError: A container with this name already exists.
        """
        ...

    @abstractmethod
    async def start_container(self, container_id: str) -> None:
        """Start a created container."""
        ...

    @abstractmethod
    async def stop_container(self, container_id: str) -> None:
        """Stop a running container."""
        ...

    @abstractmethod
    async def remove_container(self, container_id: str) -> None:
        """Force-remove a container by ID or name. Missing containers are ignored."""
        ...

    @abstractmethod
    async def exec_in_container(
        self,
        container_id: str,
        cmd: list[str],
        user: str | None = None,
        working_dir: str | None = None,
    ) -> str:
        """Run a command inside a container and return its combined output.

        Raises:
            ExecFailedError: The command exited non-zero.
        """
        ...
