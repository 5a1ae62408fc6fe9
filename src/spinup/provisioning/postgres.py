"""Postgres container definition and in-container maintenance."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, Field, SecretStr

from spinup.core.domain import ResourceLimits
from spinup.infra import (
    ContainerConfig,
    HostConfig,
    Mount,
    NetworkingConfig,
    PortBinding,
)

if TYPE_CHECKING:
    from spinup.config import RuntimeConfig
    from spinup.core.interfaces.runtime import ContainerRuntimeClient

VOLUME_LABELS = {"purpose": "postgres data"}


class InstanceSpec(BaseModel):
    """Everything the provisioner needs to build one instance."""

    name: str
    image: str
    username: str
    password: SecretStr
    port: int = Field(ge=1, le=65535)
    limits: ResourceLimits = ResourceLimits()


def docker_env(key: str, value: str) -> str:
    return f"{key}={value}"


def postgres_container_config(
    spec: InstanceSpec,
    container_name: str,
    volume_name: str,
    network_name: str,
    config: RuntimeConfig,
) -> ContainerConfig:
    """Container config publishing postgres on the allocated host port."""
    container_port = f"{config.postgres_port}/tcp"
    return ContainerConfig(
        image=spec.image,
        name=container_name,
        env=[
            docker_env("POSTGRES_USER", spec.username),
            docker_env("POSTGRES_PASSWORD", spec.password.get_secret_value()),
        ],
        exposed_ports={container_port: {}},
        host_config=HostConfig(
            network_mode=network_name,
            port_bindings={container_port: [PortBinding(host_port=spec.port)]},
            mounts=[Mount(source=volume_name, target=config.postgres_data_dir)],
            cpu_shares=spec.limits.cpu_shares,
            memory=spec.limits.memory_bytes,
        ),
        networking=NetworkingConfig(endpoints=[network_name]),
    )


async def reload_postgres(
    runtime: ContainerRuntimeClient,
    container_id: str,
    data_dir: str,
    exec_dir: str = "/",
) -> str:
    """Ask the postgres server to re-read its configuration files."""
    return await runtime.exec_in_container(
        container_id,
        ["pg_ctl", "-D", data_dir, "reload"],
        user="postgres",
        working_dir=exec_dir,
    )
