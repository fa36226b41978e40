"""Saga runner.

A saga is an explicit list of steps, each a forward action with an optional
compensation. Steps run sequentially; when one fails, the compensations of
the steps that already completed run in reverse order and the original
error is re-raised. A failing compensation is logged as a critical alert
and collected, never raised in place of the original error.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional

from core.observability.logging import get_logger, with_correlation
from core.observability.metrics import record_compensation, record_processing_time
from core.provisioning.errors import CompensationFailed

logger = get_logger(__name__)


@dataclass
class SagaStep:
    """One forward action and its optional rollback.

    Attributes:
        name: Step name used in logs, metrics and errors
        action: Coroutine factory performing the forward side effect
        compensation: Coroutine factory reversing it
        needs_compensation: Predicate checked at rollback time; the
            compensation is skipped when it returns False
        reaches: State label entered once the action succeeds
    """
    name: str
    action: Callable[[], Awaitable[Any]]
    compensation: Optional[Callable[[], Awaitable[Any]]] = None
    needs_compensation: Optional[Callable[[], bool]] = None
    reaches: Optional[str] = None


@dataclass
class Saga:
    """Executes SagaSteps and tracks progress.

    Usage:
        saga = Saga("provision", initial_state="UNPROVISIONED")
        await saga.run([
            SagaStep("resolve", resolve, compensation=deactivate, needs_compensation=lambda: created),
            SagaStep("persist", persist),
        ])
    """
    name: str
    initial_state: Optional[str] = None
    state: Optional[str] = None
    completed_steps: List[str] = field(default_factory=list)
    compensated_steps: List[str] = field(default_factory=list)
    compensation_failures: List[CompensationFailed] = field(default_factory=list)
    failed_step: Optional[str] = None

    def __post_init__(self):
        if self.state is None:
            self.state = self.initial_state

    async def run(self, steps: List[SagaStep]) -> None:
        """Run steps in order, compensating on the first failure."""
        completed: List[SagaStep] = []

        for step in steps:
            with with_correlation(saga=self.name, saga_step=step.name):
                start = time.monotonic()
                try:
                    await step.action()
                except Exception as e:
                    self.failed_step = step.name
                    logger.error(f"Saga step {step.name} failed: {e}")
                    await self._compensate(completed, e)
                    raise
                finally:
                    record_processing_time(f"{self.name}.{step.name}", (time.monotonic() - start) * 1000)

                completed.append(step)
                self.completed_steps.append(step.name)
                if step.reaches:
                    self.state = step.reaches
                    logger.debug(f"Saga {self.name} reached {step.reaches}")

    async def _compensate(self, completed: List[SagaStep], original: BaseException) -> None:
        for step in reversed(completed):
            if step.compensation is None:
                continue
            if step.needs_compensation is not None and not step.needs_compensation():
                continue

            with with_correlation(saga=self.name, saga_step=f"compensate:{step.name}"):
                try:
                    await step.compensation()
                except Exception as e:
                    failure = CompensationFailed(
                        f"Compensation for {step.name} failed, manual cleanup required: {e}",
                        step=step.name,
                        original_error=original,
                        cause=e,
                    )
                    self.compensation_failures.append(failure)
                    record_compensation(self.name, success=False)
                    logger.critical(
                        failure.message,
                        extra_fields={"original_error": str(original), "requires_manual_intervention": True},
                    )
                    continue

                self.compensated_steps.append(step.name)
                record_compensation(self.name, success=True)
                logger.info(f"Compensated step {step.name}")

        if self.initial_state is not None:
            self.state = self.initial_state
