"""Resource naming utilities for instance resources."""

from spinup.config import RuntimeConfig


class ResourceNaming:
    """Centralized naming conventions for runtime resources."""

    def __init__(self, config: RuntimeConfig) -> None:
        self._prefix = config.container_prefix

    def volume_name(self, instance_name: str) -> str:
        return instance_name

    def network_name(self, instance_name: str) -> str:
        return f"{instance_name}_default"

    def container_name(self, instance_name: str) -> str:
        return f"{self._prefix}{instance_name}"
