"""
genetic_search/evolution/scheduler.py

Between-generation control of a running search.

The scheduler runs after a generation has been ranked and before the next
one is bred. Its actions see the evaluated population (and may edit it
through an ArrayManager), a rolling history of population summaries and a
user-owned macro config they are free to tune.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Generic, List, Optional, TypeVar
import logging

from genetic_search.exceptions import SchedulerActionError

from .genome import EvaluatedGenome
from .stats import PopulationSummary
from .utils import ArrayManager

logger = logging.getLogger(__name__)

TConfig = TypeVar("TConfig")


class ActionStatus(Enum):
    APPLIED = "applied"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class ActionResult:
    """Outcome of one scheduler action for one generation."""
    status: ActionStatus
    error: Optional[BaseException] = None
    message: str = ""

    @classmethod
    def applied(cls, message: str = "") -> "ActionResult":
        return cls(ActionStatus.APPLIED, message=message)

    @classmethod
    def skipped(cls, message: str = "") -> "ActionResult":
        return cls(ActionStatus.SKIPPED, message=message)

    @classmethod
    def failed(cls, error: BaseException, message: str = "") -> "ActionResult":
        return cls(ActionStatus.FAILED, error=error, message=message)


@dataclass
class SchedulerActionInput(Generic[TConfig]):
    """Everything an action may look at or change."""
    runner: Any
    evaluated_population: List[EvaluatedGenome]
    evaluated_population_manager: ArrayManager[EvaluatedGenome]
    history: List[PopulationSummary]
    config: TConfig
    logger: Callable[[str], None]


SchedulerAction = Callable[[SchedulerActionInput], Optional[ActionResult]]


def rule(
    condition: Callable[[SchedulerActionInput], bool],
    action: Callable[[SchedulerActionInput], Optional[ActionResult]],
) -> SchedulerAction:
    """Gate an action behind a condition; the action is skipped while it is False."""

    def gated(action_input: SchedulerActionInput) -> Optional[ActionResult]:
        if not condition(action_input):
            return ActionResult.skipped("condition not met")
        return action(action_input)

    gated.__name__ = getattr(action, "__name__", "rule")
    return gated


@dataclass
class Scheduler(Generic[TConfig]):
    """
    Runs its actions, in order, once per generation.

    Args:
        runner: The search being scheduled
        config: Macro parameters the actions may tune
        actions: Callables taking a SchedulerActionInput
        max_history_length: Number of population summaries kept
        logger: Optional extra sink for action messages
    """
    runner: Any
    config: TConfig
    actions: List[SchedulerAction]
    max_history_length: int
    logger: Optional[Callable[[str], None]] = None
    history: List[PopulationSummary] = field(default_factory=list)
    logs: List[str] = field(default_factory=list)

    def __post_init__(self):
        if self.max_history_length < 1:
            raise ValueError(f"max_history_length must be >= 1, got {self.max_history_length}")

    def step(self, evaluated_population: List[EvaluatedGenome]) -> None:
        self.logs = []
        self._handle_history()

        manager = ArrayManager(evaluated_population)
        for action in self.actions:
            action_input = SchedulerActionInput(
                runner=self.runner,
                evaluated_population=evaluated_population,
                evaluated_population_manager=manager,
                history=self.history,
                config=self.config,
                logger=self._log,
            )
            self._handle_result(action, action(action_input))

    def _handle_history(self) -> None:
        self.history.append(self.runner.get_population_summary())
        if len(self.history) > self.max_history_length:
            del self.history[:len(self.history) - self.max_history_length]

    def _handle_result(self, action: SchedulerAction, result: Optional[ActionResult]) -> None:
        name = getattr(action, "__name__", repr(action))

        if result is None or result.status == ActionStatus.APPLIED:
            return

        if result.status == ActionStatus.SKIPPED:
            logger.debug(f"Scheduler action {name} skipped: {result.message}")
            return

        logger.error(f"Scheduler action {name} failed: {result.error or result.message}")
        raise SchedulerActionError(f"Scheduler action {name} failed: {result.message or result.error}") from result.error

    def _log(self, message: str) -> None:
        self.logs.append(message)
        logger.info(message)
        if self.logger is not None:
            self.logger(message)
