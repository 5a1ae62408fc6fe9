"""Unit tests for the Docker Engine API client over a mock transport."""

import json
import struct

import httpx
import pytest

from spinup.config import DockerConfig
from spinup.infra import (
    ContainerAPI,
    ContainerConfig,
    DockerClient,
    DockerConflictError,
    ExecConfig,
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
from spinup.infra.docker import demux_stream


def frame(stream: int, payload: bytes) -> bytes:
    return struct.pack(">BxxxL", stream, len(payload)) + payload


class Recorder:
    """httpx handler that answers from a route table and records requests."""

    def __init__(self, routes: dict[tuple[str, str], httpx.Response]) -> None:
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.routes.get((request.method, request.url.path), httpx.Response(404))


def make_client(routes: dict[tuple[str, str], httpx.Response]) -> tuple[DockerClient, Recorder]:
    recorder = Recorder(routes)
    return DockerClient(DockerConfig(), transport=httpx.MockTransport(recorder)), recorder


class TestModels:
    def test_container_config_to_api(self) -> None:
        config = ContainerConfig(
            image="postgres:16",
            name="spinup-postgres-alpha",
            env=["POSTGRES_USER=postgres"],
            exposed_ports={"5432/tcp": {}},
            host_config=HostConfig(
                network_mode="alpha_default",
                port_bindings={"5432/tcp": [PortBinding(host_port=15001)]},
                mounts=[Mount(source="alpha", target="/var/lib/postgresql/data")],
                cpu_shares=512,
                memory=256_000_000,
            ),
            networking=NetworkingConfig(endpoints=["alpha_default"]),
        )

        api = config.to_api()

        assert api["Image"] == "postgres:16"
        assert api["Env"] == ["POSTGRES_USER=postgres"]
        assert api["HostConfig"]["NetworkMode"] == "alpha_default"
        assert api["HostConfig"]["PortBindings"] == {
            "5432/tcp": [{"HostIp": "0.0.0.0", "HostPort": "15001"}]
        }
        assert api["HostConfig"]["Mounts"] == [
            {"Type": "volume", "Source": "alpha", "Target": "/var/lib/postgresql/data"}
        ]
        assert api["HostConfig"]["CpuShares"] == 512
        assert api["HostConfig"]["Memory"] == 256_000_000
        assert api["NetworkingConfig"] == {"EndpointsConfig": {"alpha_default": {}}}

    def test_unlimited_container_omits_limits(self) -> None:
        api = ContainerConfig(image="postgres:16", name="x").to_api()

        assert "CpuShares" not in api["HostConfig"]
        assert "Memory" not in api["HostConfig"]
        assert "Cmd" not in api

    def test_demux_stream(self) -> None:
        data = frame(1, b"server ") + frame(2, b"signaled\n")

        assert demux_stream(data) == b"server signaled\n"

    def test_demux_ignores_truncated_header(self) -> None:
        assert demux_stream(frame(1, b"ok") + b"\x01\x00") == b"ok"


class TestContainerAPI:
    async def test_create_returns_id(self) -> None:
        client, recorder = make_client(
            {("POST", "/containers/create"): httpx.Response(201, json={"Id": "abc123def456"})}
        )

        container_id = await ContainerAPI(client).create(
            ContainerConfig(image="postgres:16", name="spinup-postgres-alpha")
        )

        assert container_id == "abc123def456"
        request = recorder.requests[0]
        assert request.url.params["name"] == "spinup-postgres-alpha"
        assert json.loads(request.content)["Image"] == "postgres:16"
        await client.close()

    async def test_create_conflict(self) -> None:
        client, _ = make_client({("POST", "/containers/create"): httpx.Response(409)})

        with pytest.raises(DockerConflictError):
            await ContainerAPI(client).create(ContainerConfig(image="postgres:16", name="x"))
        await client.close()

    async def test_remove_missing_is_ignored(self) -> None:
        client, recorder = make_client({})

        await ContainerAPI(client).remove("gone")

        assert recorder.requests[0].url.params["force"] == "true"
        await client.close()

    async def test_start_error_raises(self) -> None:
        client, _ = make_client({("POST", "/containers/c1/start"): httpx.Response(500)})

        with pytest.raises(httpx.HTTPStatusError):
            await ContainerAPI(client).start("c1")
        await client.close()

    async def test_exec(self) -> None:
        client, recorder = make_client(
            {
                ("POST", "/containers/c1/exec"): httpx.Response(201, json={"Id": "e1"}),
                ("POST", "/exec/e1/start"): httpx.Response(
                    200, content=frame(1, b"server signaled\n")
                ),
                ("GET", "/exec/e1/json"): httpx.Response(200, json={"ExitCode": 0}),
            }
        )

        result = await ContainerAPI(client).exec(
            "c1", ExecConfig(cmd=["pg_ctl", "reload"], user="postgres", working_dir="/")
        )

        assert result.exit_code == 0
        assert result.output == b"server signaled\n"
        body = json.loads(recorder.requests[0].content)
        assert body["User"] == "postgres"
        assert body["WorkingDir"] == "/"
        await client.close()


class TestVolumeAPI:
    async def test_inspect_missing(self) -> None:
        client, _ = make_client({})

        assert await VolumeAPI(client).inspect("alpha") is None
        await client.close()

    async def test_create(self) -> None:
        client, recorder = make_client(
            {("POST", "/volumes/create"): httpx.Response(201, json={"Name": "alpha"})}
        )

        await VolumeAPI(client).create(VolumeConfig(name="alpha", labels={"purpose": "postgres data"}))

        assert json.loads(recorder.requests[0].content) == {
            "Name": "alpha",
            "Driver": "local",
            "Labels": {"purpose": "postgres data"},
        }
        await client.close()

    async def test_remove_in_use(self) -> None:
        client, _ = make_client({("DELETE", "/volumes/alpha"): httpx.Response(409)})

        with pytest.raises(VolumeInUseError):
            await VolumeAPI(client).remove("alpha")
        await client.close()


class TestNetworkAPI:
    async def test_create_and_remove(self) -> None:
        client, recorder = make_client(
            {
                ("POST", "/networks/create"): httpx.Response(201, json={"Id": "net123"}),
                ("DELETE", "/networks/net123"): httpx.Response(204),
            }
        )
        api = NetworkAPI(client)

        network_id = await api.create(NetworkConfig(name="alpha_default"))
        await api.remove(network_id)

        assert network_id == "net123"
        assert json.loads(recorder.requests[0].content)["Name"] == "alpha_default"
        assert recorder.requests[1].method == "DELETE"
        await client.close()

    async def test_create_conflict(self) -> None:
        client, _ = make_client({("POST", "/networks/create"): httpx.Response(409)})

        with pytest.raises(DockerConflictError):
            await NetworkAPI(client).create(NetworkConfig(name="alpha_default"))
        await client.close()


class TestImageAPI:
    async def test_ensure_pulls_missing_image(self) -> None:
        client, recorder = make_client({("POST", "/images/create"): httpx.Response(200)})

        await ImageAPI(client).ensure("postgres:16")

        pull = recorder.requests[1]
        assert pull.url.params["fromImage"] == "postgres"
        assert pull.url.params["tag"] == "16"
        await client.close()

    async def test_ensure_skips_present_image(self) -> None:
        client, recorder = make_client(
            {("GET", "/images/postgres:16/json"): httpx.Response(200, json={})}
        )

        await ImageAPI(client).ensure("postgres:16")

        assert len(recorder.requests) == 1
        await client.close()
