"""Fixtures for Docker runtime unit tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from spinup.config import DockerConfig
from spinup.infra import ContainerAPI, ImageAPI, NetworkAPI, VolumeAPI
from spinup.runtimes import DockerRuntime


@pytest.fixture
def mock_container_api() -> AsyncMock:
    """Mock ContainerAPI for testing."""
    api = AsyncMock(spec=ContainerAPI)
    api.create = AsyncMock(return_value="c0ffee000001")
    api.start = AsyncMock()
    api.stop = AsyncMock()
    api.remove = AsyncMock()
    api.exec = AsyncMock()
    return api


@pytest.fixture
def mock_volume_api() -> AsyncMock:
    """Mock VolumeAPI for testing."""
    api = AsyncMock(spec=VolumeAPI)
    api.inspect = AsyncMock(return_value=None)
    api.create = AsyncMock()
    api.remove = AsyncMock()
    return api


@pytest.fixture
def mock_network_api() -> AsyncMock:
    """Mock NetworkAPI for testing."""
    api = AsyncMock(spec=NetworkAPI)
    api.create = AsyncMock(return_value="n3tw0rk00001")
    api.remove = AsyncMock()
    return api


@pytest.fixture
def mock_image_api() -> AsyncMock:
    """Mock ImageAPI for testing."""
    api = AsyncMock(spec=ImageAPI)
    api.exists = AsyncMock(return_value=True)
    api.pull = AsyncMock()
    api.ensure = AsyncMock()
    return api


@pytest.fixture
def docker_runtime(
    mock_container_api: AsyncMock,
    mock_volume_api: AsyncMock,
    mock_network_api: AsyncMock,
    mock_image_api: AsyncMock,
) -> DockerRuntime:
    """DockerRuntime wired to mock APIs."""
    return DockerRuntime(
        DockerConfig(),
        MagicMock(),
        containers=mock_container_api,
        volumes=mock_volume_api,
        networks=mock_network_api,
        images=mock_image_api,
    )
