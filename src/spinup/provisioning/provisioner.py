"""Ordered creation of an instance's runtime resources.

Resources are created volume -> network -> container. The container depends
on the other two and is created last.

On any failure, including cancellation by the caller, the compensations
pushed so far run in reverse order before the error propagates.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from functools import partial
from typing import TYPE_CHECKING

from spinup.core.domain import ResourceSet
from spinup.core.interfaces.runtime import ResourceExistsError
from spinup.errors import OperationTimeoutError, ProvisioningError, RollbackStatus
from spinup.logging_schema import LogEvent
from spinup.provisioning.postgres import VOLUME_LABELS, InstanceSpec, postgres_container_config
from spinup.provisioning.saga import CompensationStack, RollbackOutcome

if TYPE_CHECKING:
    from spinup.config import RuntimeConfig
    from spinup.core.interfaces.runtime import ContainerRuntimeClient
    from spinup.provisioning.naming import ResourceNaming

logger = logging.getLogger(__name__)


class ResourceProvisioner:
    """Builds the ResourceSet for one instance through the runtime client."""

    def __init__(
        self,
        runtime: ContainerRuntimeClient,
        naming: ResourceNaming,
        config: RuntimeConfig,
        call_timeout: float = 30.0,
        create_timeout: float = 630.0,
    ) -> None:
        self._runtime = runtime
        self._naming = naming
        self._config = config
        self._call_timeout = call_timeout
        self._create_timeout = create_timeout

    async def _call[T](
        self,
        operation: str,
        fn: Callable[..., Awaitable[T]],
        *args: object,
        timeout: float | None = None,
    ) -> T:
        timeout = timeout or self._call_timeout
        try:
            return await asyncio.wait_for(fn(*args), timeout=timeout)
        except TimeoutError as exc:
            logger.warning(
                "Operation timeout",
                extra={
                    "event": LogEvent.OPERATION_TIMEOUT,
                    "operation": operation,
                    "timeout_s": timeout,
                },
            )
            raise OperationTimeoutError(operation, timeout) from exc

    async def create_instance(self, spec: InstanceSpec) -> ResourceSet:
        """Create volume, network and container for ``spec``.

        Returns the completed ResourceSet. On failure every resource created
        by this call has been compensated before ProvisioningError is raised.
        """
        stack = CompensationStack()
        volume_name = self._naming.volume_name(spec.name)
        network_name = self._naming.network_name(spec.name)
        container_name = self._naming.container_name(spec.name)
        step = "volume"

        try:
            await self._call("volume_create", self._runtime.create_volume, volume_name, VOLUME_LABELS)
            stack.push(
                f"remove volume {volume_name}",
                partial(self._call, "volume_remove", self._runtime.remove_volume, volume_name),
            )

            step = "network"
            network_id = await self._call(
                "network_create", self._runtime.create_network, network_name
            )
            stack.push(
                f"remove network {network_name}",
                partial(self._call, "network_remove", self._runtime.remove_network, network_id),
            )

            step = "container"
            container_config = postgres_container_config(
                spec, container_name, volume_name, network_name, self._config
            )
            # Keyed by name: the daemon may finish creating the container after
            # the call timed out or was cancelled, before an ID was returned.
            remove_container = partial(
                self._call, "container_remove", self._runtime.remove_container, container_name
            )
            try:
                container_id = await self._call(
                    "container_create",
                    self._runtime.create_container,
                    container_config,
                    timeout=self._create_timeout,
                )
            except ResourceExistsError:
                raise
            except BaseException:
                stack.push(f"remove container {container_name}", remove_container)
                raise
            stack.push(f"remove container {container_name}", remove_container)

            if self._config.start_containers:
                step = "start"
                await self._call("container_start", self._runtime.start_container, container_id)
        except asyncio.CancelledError:
            logger.warning(
                "Provisioning cancelled, rolling back",
                extra={"event": LogEvent.ROLLBACK_STARTED, "instance": spec.name, "step": step},
            )
            await self._compensate(spec.name, stack)
            raise
        except Exception as exc:
            outcome = await self._compensate(spec.name, stack)
            raise ProvisioningError(
                step=step,
                message=_failure_message(spec.name, step, exc, outcome.status),
                rollback=outcome.status,
                compensation_errors=outcome.failures,
            ) from exc

        return ResourceSet(
            volume_name=volume_name,
            network_id=network_id,
            network_name=network_name,
            container_id=container_id,
            container_name=container_name,
        )

    async def teardown(self, resources: ResourceSet) -> RollbackOutcome:
        """Remove a completed ResourceSet in reverse creation order."""
        stack = CompensationStack()
        stack.push(
            f"remove volume {resources.volume_name}",
            partial(self._call, "volume_remove", self._runtime.remove_volume, resources.volume_name),
        )
        stack.push(
            f"remove network {resources.network_name}",
            partial(
                self._call, "network_remove", self._runtime.remove_network, resources.network_id
            ),
        )
        stack.push(
            f"remove container {resources.container_name}",
            partial(
                self._call,
                "container_remove",
                self._runtime.remove_container,
                resources.container_id,
            ),
        )
        return await self._compensate(resources.volume_name, stack)

    async def _compensate(self, instance: str, stack: CompensationStack) -> RollbackOutcome:
        logger.info(
            "Rolling back %d step(s)",
            len(stack),
            extra={
                "event": LogEvent.ROLLBACK_STARTED,
                "instance": instance,
                "actions": stack.actions,
            },
        )
        outcome = await stack.unwind()
        log = logger.info if outcome.status == RollbackStatus.CLEAN else logger.error
        log(
            "Rollback finished: %s",
            outcome.status.value,
            extra={
                "event": LogEvent.ROLLBACK_COMPLETED,
                "instance": instance,
                "status": outcome.status.value,
                "failed_actions": [f.action for f in outcome.failures],
            },
        )
        return outcome


def _failure_message(instance: str, step: str, exc: Exception, status: RollbackStatus) -> str:
    if status == RollbackStatus.CLEAN:
        cleanup = "all created resources were removed"
    elif status == RollbackStatus.PARTIAL:
        cleanup = "rollback partially failed, manual cleanup required"
    else:
        cleanup = "rollback failed, manual cleanup required"
    return f"error creating {step} for {instance}: {exc} ({cleanup})"
