"""
Saga — ordered steps with compensating actions.

A saga runs its steps in order. Each step's action receives the results of the
steps before it (keyed by step name). When a required step fails, the
compensations of the steps that already completed run in reverse order and the
original exception is re-raised. A failing compensation is logged and never
replaces the original error.

Optional steps (``required=False``) that fail are recorded as warnings; the
saga carries on and nothing is compensated.

Usage:
    result = (
        Saga("create_user")
        .step("identity", create_identity, compensate=delete_identity)
        .step("profile", create_profile)
        .step("role", assign_default_role, required=False)
        .execute()
    )
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger(__name__)

StepResults = dict[str, Any]


@dataclass
class SagaStep:
    name: str
    action: Callable[[StepResults], Any]
    compensate: Callable[[StepResults], None] | None = None
    required: bool = True


@dataclass
class SagaResult:
    results: StepResults = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
    compensation_failures: list[str] = field(default_factory=list)


class Saga:
    def __init__(self, name: str) -> None:
        self.name = name
        self.steps: list[SagaStep] = []
        self.last_result: SagaResult | None = None

    def step(
        self,
        name: str,
        action: Callable[[StepResults], Any],
        compensate: Callable[[StepResults], None] | None = None,
        required: bool = True,
    ) -> Saga:
        self.steps.append(SagaStep(name, action, compensate, required))
        return self

    def execute(self) -> SagaResult:
        result = self.last_result = SagaResult()
        completed: list[SagaStep] = []

        for step in self.steps:
            try:
                result.results[step.name] = step.action(result.results)
            except Exception as exc:
                if not step.required:
                    logger.warning(
                        "Saga %s: optional step %s failed, continuing: %s",
                        self.name, step.name, exc,
                    )
                    result.warnings.append(f"{step.name}: {exc}")
                    continue

                logger.error("Saga %s: step %s failed: %s", self.name, step.name, exc)
                self._compensate(completed, result)
                raise

            completed.append(step)

        return result

    def _compensate(self, completed: list[SagaStep], result: SagaResult) -> None:
        for step in reversed(completed):
            if step.compensate is None:
                continue
            try:
                step.compensate(result.results)
                logger.info("Saga %s: compensated %s", self.name, step.name)
            except Exception as exc:
                # Not retried; the inconsistency is left for an operator
                logger.error(
                    "Saga %s: compensation of %s failed: %s", self.name, step.name, exc,
                )
                result.compensation_failures.append(f"{step.name}: {exc}")
