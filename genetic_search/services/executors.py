"""
genetic_search/services/executors.py

Executors turn a batch of task inputs into a batch of phenotype rows.

Phenotype strategies hand every genome that needs an evaluation to an
executor and block until the whole batch is back. All executors return
rows in input order:
- SequentialExecutor: in-process, one task after another
- PoolExecutor: a multiprocessing pool per batch
- QueueExecutor: EvaluationWorkers behind a TaskQueue
"""

from __future__ import annotations

import logging
import multiprocessing
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Sequence

from genetic_search.exceptions import EvaluationError

from .queue import EvaluationTask, TaskQueue, new_task_id

logger = logging.getLogger(__name__)

Task = Callable[[Any], Sequence[float]]
TaskResultCallback = Callable[[list[float], Any], None]


class TaskExecutor(ABC):
    """Runs evaluation tasks for a phenotype strategy."""

    def __init__(self, on_task_result: TaskResultCallback | None = None):
        self.on_task_result = on_task_result

    @abstractmethod
    def run(self, inputs: Sequence[Any], genome_ids: Sequence[int] | None = None) -> list[list[float]]:
        """
        Evaluate every input.

        Args:
            inputs: Task inputs, one per genome
            genome_ids: Ids of the genomes the inputs were built from

        Returns:
            One phenotype row per input, in input order
        """
        pass

    def _notify(self, rows: list[list[float]], inputs: Sequence[Any]) -> None:
        if self.on_task_result is None:
            return
        for row, task_input in zip(rows, inputs):
            self.on_task_result(row, task_input)


def _as_row(result: Sequence[float]) -> list[float]:
    return [float(x) for x in result]


class SequentialExecutor(TaskExecutor):
    """Calls the task for each input in turn."""

    def __init__(self, task: Task, on_task_result: TaskResultCallback | None = None):
        super().__init__(on_task_result)
        self.task = task

    def run(self, inputs: Sequence[Any], genome_ids: Sequence[int] | None = None) -> list[list[float]]:
        rows = []
        for task_input in inputs:
            try:
                row = _as_row(self.task(task_input))
            except Exception as e:
                logger.error(f"Evaluation task failed for input {task_input!r}: {e}")
                raise EvaluationError(f"Evaluation task failed: {e}") from e
            if self.on_task_result is not None:
                self.on_task_result(row, task_input)
            rows.append(row)
        return rows


class PoolExecutor(TaskExecutor):
    """
    Maps the task over a multiprocessing pool.

    A fresh pool is created for each batch and closed afterwards. The task
    and its inputs must be picklable.

    Args:
        task: Module-level callable evaluating one input
        pool_size: Number of processes (None = os.cpu_count())
        mp_context: Start method ("fork", "spawn", "forkserver"), None for default
    """

    def __init__(
        self,
        task: Task,
        pool_size: int | None = None,
        mp_context: str | None = None,
        on_task_result: TaskResultCallback | None = None,
    ):
        super().__init__(on_task_result)
        self.task = task
        self.pool_size = pool_size
        self.mp_context = mp_context

    def run(self, inputs: Sequence[Any], genome_ids: Sequence[int] | None = None) -> list[list[float]]:
        if not inputs:
            return []

        context = multiprocessing.get_context(self.mp_context)
        try:
            with context.Pool(self.pool_size) as pool:
                results = pool.map(self.task, list(inputs))
        except Exception as e:
            logger.error(f"Evaluation pool failed on a batch of {len(inputs)} tasks: {e}")
            raise EvaluationError(f"Evaluation task failed: {e}") from e

        rows = [_as_row(result) for result in results]
        self._notify(rows, inputs)
        return rows


class QueueExecutor(TaskExecutor):
    """
    Sends tasks through a TaskQueue and waits for EvaluationWorkers.

    Results are matched back to inputs by task id, so workers may finish
    in any order. Results for unknown task ids (left over from an
    aborted batch) are dropped.

    Args:
        queue: Queue shared with the workers
        timeout: Seconds to wait for a whole batch (None = wait forever)
        task_timeout: Per-task timeout recorded on each EvaluationTask
        poll_interval: Seconds per blocking pop_result call
    """

    def __init__(
        self,
        queue: TaskQueue,
        timeout: float | None = None,
        task_timeout: float = 300.0,
        poll_interval: float = 1.0,
        on_task_result: TaskResultCallback | None = None,
    ):
        super().__init__(on_task_result)
        self.queue = queue
        self.timeout = timeout
        self.task_timeout = task_timeout
        self.poll_interval = poll_interval
        self.batches = 0

    def run(self, inputs: Sequence[Any], genome_ids: Sequence[int] | None = None) -> list[list[float]]:
        if not inputs:
            return []
        if genome_ids is None:
            genome_ids = [-1] * len(inputs)

        pending: dict[str, int] = {}
        for index, (task_input, genome_id) in enumerate(zip(inputs, genome_ids)):
            task = EvaluationTask(
                task_id=new_task_id(),
                genome_id=genome_id,
                task_input=task_input,
                generation=self.batches,
                timeout_seconds=self.task_timeout,
            )
            if not self.queue.push_task(task):
                raise EvaluationError(f"Failed to push task for genome {genome_id}")
            pending[task.task_id] = index

        logger.debug(f"Batch {self.batches}: pushed {len(pending)} tasks")
        self.batches += 1

        rows: list[list[float] | None] = [None] * len(inputs)
        start_time = time.time()

        while pending:
            if self.timeout is not None and time.time() - start_time > self.timeout:
                logger.warning(f"Timeout waiting for results: {len(pending)}/{len(inputs)} missing")
                raise EvaluationError(f"Timed out with {len(pending)} of {len(inputs)} results missing")

            result = self.queue.pop_result(timeout=self.poll_interval)
            if result is None:
                continue

            index = pending.pop(result.task_id, None)
            if index is None:
                logger.warning(f"Dropping result for unknown task {result.task_id}")
                continue

            if result.error is not None:
                logger.error(f"Task {result.task_id} for genome {result.genome_id} failed: {result.error}")
                raise EvaluationError(f"Evaluation of genome {result.genome_id} failed: {result.error}")

            rows[index] = _as_row(result.phenotype)
            if self.on_task_result is not None:
                self.on_task_result(rows[index], inputs[index])

        return rows
