"""Core interfaces."""

from spinup.core.interfaces.runtime import (
    ContainerRuntimeClient,
    ExecFailedError,
    ResourceExistsError,
)

__all__ = [
    "ContainerRuntimeClient",
    "ExecFailedError",
    "ResourceExistsError",
]
