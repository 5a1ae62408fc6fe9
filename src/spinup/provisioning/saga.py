"""Ordered compensation for multi-step provisioning.

Each completed step pushes its inverse action. On failure the stack is
unwound in strict reverse order; every compensation runs even if an earlier
one raised, and each failure is recorded rather than dropped.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from spinup.errors import CompensationFailure, RollbackStatus
from spinup.logging_schema import LogEvent
from spinup.metrics import ROLLBACK_TOTAL

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Compensation:
    action: str
    undo: Callable[[], Awaitable[None]]


@dataclass
class RollbackOutcome:
    status: RollbackStatus
    attempted: list[str] = field(default_factory=list)
    failures: list[CompensationFailure] = field(default_factory=list)


class CompensationStack:
    """LIFO list of compensations for the steps completed so far."""

    def __init__(self) -> None:
        self._steps: list[Compensation] = []

    def __len__(self) -> int:
        return len(self._steps)

    @property
    def actions(self) -> list[str]:
        return [step.action for step in self._steps]

    def push(self, action: str, undo: Callable[[], Awaitable[None]]) -> None:
        self._steps.append(Compensation(action=action, undo=undo))

    async def unwind(self) -> RollbackOutcome:
        """Run every compensation, newest first, and empty the stack."""
        steps, self._steps = self._steps, []
        outcome = RollbackOutcome(status=RollbackStatus.CLEAN)

        for step in reversed(steps):
            outcome.attempted.append(step.action)
            try:
                await step.undo()
            except Exception as exc:
                logger.error(
                    "Compensation failed: %s",
                    step.action,
                    extra={
                        "event": LogEvent.ROLLBACK_STEP_FAILED,
                        "action": step.action,
                        "error_type": type(exc).__name__,
                        "error": str(exc),
                    },
                )
                outcome.failures.append(
                    CompensationFailure(
                        action=step.action,
                        error_type=type(exc).__name__,
                        error=str(exc),
                    )
                )

        if outcome.failures:
            if len(outcome.failures) == len(steps):
                outcome.status = RollbackStatus.FAILED
            else:
                outcome.status = RollbackStatus.PARTIAL

        ROLLBACK_TOTAL.labels(status=outcome.status.value).inc()
        return outcome
