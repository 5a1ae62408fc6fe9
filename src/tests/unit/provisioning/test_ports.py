"""Unit tests for PortAllocator and PortReservationTable."""

import asyncio
import errno
from collections.abc import AsyncIterator

import pytest
import pytest_asyncio

from spinup.errors import AllocationExhaustedError, PortProbeError
from spinup.provisioning import ports as ports_module
from spinup.provisioning.ports import PortAllocator, PortReservationTable


@pytest_asyncio.fixture
async def listener() -> AsyncIterator[int]:
    """A live TCP listener on 127.0.0.1; yields its port."""

    async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    yield port
    server.close()
    await server.wait_closed()


@pytest.fixture
def allocator() -> PortAllocator:
    return PortAllocator(host="127.0.0.1", probe_timeout=1.0)


class TestPortProbe:
    """Tests for PortAllocator.is_free."""

    async def test_listener_is_occupied(self, allocator: PortAllocator, listener: int) -> None:
        assert await allocator.is_free(listener) is False

    async def test_refused_port_is_free(self, allocator: PortAllocator, listener: int) -> None:
        """A port nobody listens on is refused and therefore free."""
        server = await asyncio.start_server(lambda r, w: None, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        server.close()
        await server.wait_closed()

        assert await allocator.is_free(port) is True

    async def test_timeout_is_occupied(
        self, allocator: PortAllocator, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A dial that hangs past the probe timeout counts as occupied."""

        async def hang(*args: object, **kwargs: object) -> None:
            await asyncio.sleep(10)

        monkeypatch.setattr(ports_module.asyncio, "open_connection", hang)
        fast = PortAllocator(host="127.0.0.1", probe_timeout=0.01)

        assert await fast.is_free(15000) is False

    async def test_refusal_on_any_address_is_free(
        self, allocator: PortAllocator, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """localhost may resolve to ::1 and 127.0.0.1; one refusal is enough."""

        async def refuse(*args: object, **kwargs: object) -> None:
            raise ExceptionGroup(
                "create_connection failed",
                [
                    OSError(errno.EADDRNOTAVAIL, "Cannot assign requested address"),
                    ConnectionRefusedError(errno.ECONNREFUSED, "Connection refused"),
                ],
            )

        monkeypatch.setattr(ports_module.asyncio, "open_connection", refuse)

        assert await allocator.is_free(15000) is True

    async def test_network_fault_is_fatal(
        self, allocator: PortAllocator, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Errors other than refusal or timeout are propagated."""

        async def unreachable(*args: object, **kwargs: object) -> None:
            raise ExceptionGroup(
                "create_connection failed",
                [OSError(errno.EHOSTUNREACH, "No route to host")],
            )

        monkeypatch.setattr(ports_module.asyncio, "open_connection", unreachable)

        with pytest.raises(PortProbeError) as exc_info:
            await allocator.is_free(15000)
        assert exc_info.value.port == 15000
        assert exc_info.value.status_code == 500

    async def test_resolution_failure_is_fatal(
        self, allocator: PortAllocator, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        async def no_such_host(*args: object, **kwargs: object) -> None:
            raise OSError(errno.ENOENT, "Name or service not known")

        monkeypatch.setattr(ports_module.asyncio, "open_connection", no_such_host)

        with pytest.raises(PortProbeError):
            await allocator.is_free(15000)


class TestPortAllocator:
    """Tests for PortAllocator.allocate."""

    async def test_never_returns_listening_port(
        self, allocator: PortAllocator, listener: int
    ) -> None:
        port = await allocator.allocate(listener, listener + 5)

        assert port != listener
        assert listener < port < listener + 5

    async def test_exhausted_when_every_port_listens(
        self, allocator: PortAllocator, listener: int
    ) -> None:
        with pytest.raises(AllocationExhaustedError):
            await allocator.allocate(listener, listener + 1)

    async def test_empty_range_is_exhausted(self, allocator: PortAllocator) -> None:
        with pytest.raises(AllocationExhaustedError):
            await allocator.allocate(15000, 15000)

    async def test_scan_is_sequential_and_max_exclusive(self, stub_allocator) -> None:
        stub_allocator.busy = {15000, 15001, 15002}

        with pytest.raises(AllocationExhaustedError):
            await stub_allocator.allocate(15000, 15003)
        assert stub_allocator.probed == [15000, 15001, 15002]

    async def test_returns_first_free_port(self, stub_allocator) -> None:
        stub_allocator.busy = {15000}

        assert await stub_allocator.allocate(15000, 15010) == 15001
        assert stub_allocator.probed == [15000, 15001]

    async def test_excluded_ports_are_not_probed(self, stub_allocator) -> None:
        port = await stub_allocator.allocate(15000, 15010, exclude={15000, 15001})

        assert port == 15002
        assert stub_allocator.probed == [15002]

    async def test_probe_fault_stops_scan(
        self, allocator: PortAllocator, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        async def unreachable(*args: object, **kwargs: object) -> None:
            raise OSError(errno.ENETUNREACH, "Network is unreachable")

        monkeypatch.setattr(ports_module.asyncio, "open_connection", unreachable)

        with pytest.raises(PortProbeError) as exc_info:
            await allocator.allocate(15000, 15010)
        assert exc_info.value.port == 15000


class TestPortReservationTable:
    """Tests for PortReservationTable."""

    async def test_concurrent_reservations_get_distinct_ports(self, stub_allocator) -> None:
        """Probe-only allocation would hand both requests the same port."""
        table = PortReservationTable(stub_allocator)
        release = asyncio.Event()
        seen: list[int] = []

        async def provision() -> None:
            async with table.reserve(15000, 15010) as port:
                seen.append(port)
                await release.wait()

        tasks = [asyncio.create_task(provision()) for _ in range(3)]
        while len(seen) < 3:
            await asyncio.sleep(0)
        release.set()
        await asyncio.gather(*tasks)

        assert sorted(seen) == [15000, 15001, 15002]
        assert table.reserved == frozenset({15000, 15001, 15002})

    async def test_reservation_released_on_failure(self, stub_allocator) -> None:
        table = PortReservationTable(stub_allocator)

        with pytest.raises(RuntimeError):
            async with table.reserve(15000, 15010) as port:
                assert port in table.reserved
                raise RuntimeError("bind failed")

        assert table.reserved == frozenset()
        async with table.reserve(15000, 15010) as port:
            assert port == 15000

    async def test_reservation_released_on_cancel(self, stub_allocator) -> None:
        table = PortReservationTable(stub_allocator)
        entered = asyncio.Event()

        async def provision() -> None:
            async with table.reserve(15000, 15010):
                entered.set()
                await asyncio.sleep(10)

        task = asyncio.create_task(provision())
        await entered.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert table.reserved == frozenset()

    async def test_seeded_ports_are_skipped(self, stub_allocator) -> None:
        table = PortReservationTable(stub_allocator)
        table.seed([15000, 15001])

        async with table.reserve(15000, 15010) as port:
            assert port == 15002

    async def test_exhaustion_reserves_nothing(self, stub_allocator) -> None:
        stub_allocator.busy = {15000, 15001}
        table = PortReservationTable(stub_allocator)

        with pytest.raises(AllocationExhaustedError):
            async with table.reserve(15000, 15002):
                pass
        assert table.reserved == frozenset()
