"""
HOD - Compensating Steps
========================
There is no transaction spanning the content files and the index, so a
mutation runs as an ordered list of (forward, compensate) steps:

    saga = Saga("update task 3")
    saga.step("write content", write_new, compensate=write_old)
    saga.step("update index", update_index)
    saga.run()

If step k fails, the compensations of steps k-1..1 run in reverse. A
compensation that fails is logged and chained onto the original error,
which is always the one re-raised.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from .errors import attach_rollback_error

logger = logging.getLogger("hod.saga")

RECONCILE_HINT = "Run 'hod sync' to repair the index."


@dataclass
class SagaStep:
    name: str
    action: Callable[[], Any]
    compensate: Optional[Callable[[], Any]] = None


class Saga:
    """Ordered forward steps with reverse-order compensation"""

    def __init__(self, name: str):
        self.name = name
        self.steps: List[SagaStep] = []

    def step(
        self,
        name: str,
        action: Callable[[], Any],
        compensate: Optional[Callable[[], Any]] = None,
    ) -> "Saga":
        self.steps.append(SagaStep(name, action, compensate))
        return self

    def run(self) -> List[Any]:
        """Run every step; return their results in order"""
        results: List[Any] = []
        completed: List[SagaStep] = []
        for step in self.steps:
            try:
                results.append(step.action())
            except Exception as error:
                logger.debug(f"{self.name}: step '{step.name}' failed: {error}")
                self._compensate(completed, error)
                raise
            completed.append(step)
        return results

    def _compensate(self, completed: List[SagaStep], error: Exception) -> None:
        failed = False
        for step in reversed(completed):
            if step.compensate is None:
                continue
            try:
                step.compensate()
                logger.info(f"{self.name}: rolled back '{step.name}'")
            except Exception as rollback_error:
                failed = True
                logger.warning(
                    f"{self.name}: could not roll back '{step.name}': {rollback_error}"
                )
                attach_rollback_error(error, rollback_error)
        if failed:
            logger.warning(f"{self.name}: stores may be inconsistent. {RECONCILE_HINT}")
