"""Host port allocation.

PortAllocator is a liveness probe, not a reservation: a port it reports free
can be taken by another process before the runtime binds it. Concurrent
provisioning requests on the same host go through PortReservationTable,
which serializes allocation and remembers ports already handed out.
"""

import asyncio
import contextlib
import logging
import time
from collections.abc import AsyncIterator, Collection, Iterable
from contextlib import asynccontextmanager

from spinup.errors import AllocationExhaustedError, PortProbeError
from spinup.logging_schema import LogEvent
from spinup.metrics import PORT_PROBE_DURATION

logger = logging.getLogger(__name__)


class PortAllocator:
    """Finds an unused host port by dialing candidates in sequence."""

    def __init__(self, host: str = "localhost", probe_timeout: float = 3.0) -> None:
        self._host = host
        self._probe_timeout = probe_timeout

    async def is_free(self, port: int) -> bool:
        """Probe a single port.

        Returns:
            True if the connection was refused (nothing listening),
            False if something accepted or the dial timed out.

        Raises:
            PortProbeError: The dial failed for a reason other than refusal or timeout.
        """
        start = time.monotonic()
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(self._host, port, all_errors=True),
                timeout=self._probe_timeout,
            )
        except TimeoutError:
            logger.debug("Port %d probe timed out", port)
            return False
        except ExceptionGroup as group:
            # One error per resolved address (e.g. ::1 and 127.0.0.1)
            if any(isinstance(exc, ConnectionRefusedError) for exc in group.exceptions):
                return True
            raise PortProbeError(port, f"error on port scanning {port}: {group.exceptions[0]}") from group
        except ConnectionRefusedError:
            return True
        except OSError as exc:
            raise PortProbeError(port, f"error on port scanning {port}: {exc}") from exc
        finally:
            PORT_PROBE_DURATION.observe(time.monotonic() - start)

        writer.close()
        with contextlib.suppress(OSError):
            await writer.wait_closed()
        return False

    async def allocate(
        self,
        range_min: int,
        range_max: int,
        exclude: Collection[int] = (),
    ) -> int:
        """Return the first free port in [range_min, range_max).

        Ports in ``exclude`` are skipped without probing.

        Raises:
            AllocationExhaustedError: No candidate in the range is free.
            PortProbeError: A probe hit a genuine network fault.
        """
        for port in range(range_min, range_max):
            if port in exclude:
                continue
            try:
                free = await self.is_free(port)
            except PortProbeError:
                logger.error(
                    "Port probe failed",
                    extra={"event": LogEvent.PORT_PROBE_FAILED, "port": port},
                )
                raise
            if free:
                logger.info(
                    "Port %d is unused", port, extra={"event": LogEvent.PORT_ALLOCATED, "port": port}
                )
                return port
            logger.debug("Port %d in use", port, extra={"event": LogEvent.PORT_OCCUPIED})

        logger.warning(
            "All allocated ports are occupied",
            extra={
                "event": LogEvent.PORTS_EXHAUSTED,
                "range_min": range_min,
                "range_max": range_max,
            },
        )
        raise AllocationExhaustedError(
            f"error all allocated ports are occupied ({range_min}-{range_max})"
        )


class PortReservationTable:
    """Per-host table of ports handed out to instances.

    reserve() holds the lock only while probing, then records the port so a
    concurrent request never receives it even before the runtime binds it.
    A reservation is released if the body of reserve() raises.
    """

    def __init__(self, allocator: PortAllocator) -> None:
        self._allocator = allocator
        self._lock = asyncio.Lock()
        self._reserved: set[int] = set()

    @property
    def reserved(self) -> frozenset[int]:
        return frozenset(self._reserved)

    def seed(self, ports: Iterable[int]) -> None:
        """Mark ports of already provisioned instances as taken."""
        self._reserved.update(ports)

    def release(self, port: int) -> None:
        self._reserved.discard(port)
        logger.info("Port released", extra={"event": LogEvent.PORT_RELEASED, "port": port})

    @asynccontextmanager
    async def reserve(self, range_min: int, range_max: int) -> AsyncIterator[int]:
        async with self._lock:
            port = await self._allocator.allocate(range_min, range_max, exclude=self._reserved)
            self._reserved.add(port)
        try:
            yield port
        except BaseException:
            self.release(port)
            raise
