"""Infrastructure layer."""

from spinup.infra.docker import (
    ContainerAPI,
    ContainerConfig,
    DockerClient,
    DockerConflictError,
    ExecConfig,
    ExecResult,
    HostConfig,
    ImageAPI,
    Mount,
    NetworkAPI,
    NetworkConfig,
    NetworkingConfig,
    PortBinding,
    VolumeAPI,
    VolumeConfig,
    VolumeInUseError,
)

__all__ = [
    "ContainerAPI",
    "ContainerConfig",
    "DockerClient",
    "DockerConflictError",
    "ExecConfig",
    "ExecResult",
    "HostConfig",
    "ImageAPI",
    "Mount",
    "NetworkAPI",
    "NetworkConfig",
    "NetworkingConfig",
    "PortBinding",
    "VolumeAPI",
    "VolumeConfig",
    "VolumeInUseError",
]
