"""Container runtime implementations."""

from spinup.runtimes.docker import DockerRuntime

__all__ = ["DockerRuntime"]
