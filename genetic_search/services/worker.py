"""
genetic_search/services/worker.py

Evaluation worker service.

Workers perform the expensive part of a generation:
1. Pull evaluation tasks from the queue
2. Run the task callable on the task input
3. Push the phenotype (or the error) back to the queue

Add more workers for faster generations.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

from .queue import (
    EvaluationResultMessage,
    EvaluationTask,
    TaskQueue,
    create_task_queue,
)

logger = logging.getLogger(__name__)


@dataclass
class WorkerConfig:
    """Configuration for evaluation workers."""
    worker_id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])

    queue_backend: str = "memory"
    redis_url: str = "redis://localhost:6379"

    poll_interval: float = 0.1  # seconds per blocking pop
    max_consecutive_errors: int = 5
    heartbeat_interval: float = 30.0


class EvaluationWorker:
    """
    Worker that evaluates task inputs from the task queue.

    Args:
        config: Worker configuration
        task: Callable mapping a task input to a phenotype row
        queue: Queue to serve; created from the config when omitted
    """

    def __init__(
        self,
        config: WorkerConfig,
        task: Callable[[Any], Sequence[float]],
        queue: TaskQueue | None = None,
    ):
        self.config = config
        self.worker_id = config.worker_id
        self.task = task

        self.queue = queue if queue is not None else create_task_queue(
            backend=config.queue_backend,
            redis_url=config.redis_url,
        )

        self.running = False
        self.tasks_completed = 0
        self.tasks_failed = 0
        self.consecutive_errors = 0
        self.last_heartbeat = time.time()

        logger.info(f"Worker {self.worker_id} initialized")

    def evaluate_task(self, task: EvaluationTask) -> EvaluationResultMessage:
        """
        Evaluate a single task.

        Exceptions raised by the task callable become error results.
        """
        start_time = time.time()

        try:
            phenotype = [float(x) for x in self.task(task.task_input)]
        except Exception as e:
            logger.error(f"Task {task.task_id} failed: {e}")
            return EvaluationResultMessage(
                task_id=task.task_id,
                genome_id=task.genome_id,
                phenotype=[],
                metadata={"error_type": type(e).__name__},
                worker_id=self.worker_id,
                error=str(e),
            )

        return EvaluationResultMessage(
            task_id=task.task_id,
            genome_id=task.genome_id,
            phenotype=phenotype,
            metadata={"eval_time": time.time() - start_time},
            worker_id=self.worker_id,
        )

    def process_one(self) -> bool:
        """
        Process a single task if available.

        Returns True if a task was processed, False if queue was empty.
        """
        task = self.queue.pop_task(timeout=self.config.poll_interval)
        if task is None:
            return False

        logger.debug(f"Processing task {task.task_id} for genome {task.genome_id}")

        result = self.evaluate_task(task)

        if result.error is None:
            self.tasks_completed += 1
            self.consecutive_errors = 0
        else:
            self.tasks_failed += 1
            self.consecutive_errors += 1

        self.queue.push_result(result)
        return True

    def run(self) -> None:
        """Serve tasks until stopped or too many consecutive errors."""
        self.running = True
        logger.info(f"Worker {self.worker_id} starting")

        try:
            while self.running:
                if self.consecutive_errors >= self.config.max_consecutive_errors:
                    logger.error(
                        f"Too many consecutive errors ({self.consecutive_errors}), stopping"
                    )
                    break

                processed = self.process_one()

                now = time.time()
                if now - self.last_heartbeat >= self.config.heartbeat_interval:
                    logger.info(
                        f"Worker {self.worker_id} heartbeat: "
                        f"{self.tasks_completed} completed, {self.tasks_failed} failed"
                    )
                    self.last_heartbeat = now

                if not processed:
                    time.sleep(self.config.poll_interval)

        except KeyboardInterrupt:
            logger.info("Worker interrupted by user")

        finally:
            self.running = False
            logger.info(
                f"Worker {self.worker_id} stopped: "
                f"{self.tasks_completed} completed, {self.tasks_failed} failed"
            )

    def stop(self) -> None:
        """Stop worker gracefully."""
        self.running = False

    def get_status(self) -> dict[str, Any]:
        return {
            "worker_id": self.worker_id,
            "running": self.running,
            "tasks_completed": self.tasks_completed,
            "tasks_failed": self.tasks_failed,
            "consecutive_errors": self.consecutive_errors,
        }


def run_worker(config: WorkerConfig | None = None, argv: list[str] | None = None) -> None:
    """
    Run the worker as a standalone service.

    The task callable is given as `--task package.module:function`.
    """
    import argparse
    import signal
    import sys

    from genetic_search.config import get_redis_url, resolve_callable

    parser = argparse.ArgumentParser(description="Genetic search evaluation worker")
    parser.add_argument("--task", required=True, help="module:function evaluating one task input")
    parser.add_argument("--worker-id", default=None)
    parser.add_argument("--redis-url", default=get_redis_url())
    parser.add_argument("--poll-interval", type=float, default=0.1)
    parser.add_argument("--max-consecutive-errors", type=int, default=5)

    args = parser.parse_args(argv)

    if config is None:
        config = WorkerConfig(
            worker_id=args.worker_id or str(uuid.uuid4())[:8],
            queue_backend="redis",
            redis_url=args.redis_url,
            poll_interval=args.poll_interval,
            max_consecutive_errors=args.max_consecutive_errors,
        )

    worker = EvaluationWorker(config, resolve_callable(args.task))

    def signal_handler(sig, frame):
        logger.info("Received shutdown signal")
        worker.stop()
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    worker.run()


if __name__ == "__main__":
    from genetic_search.config import configure_logging

    configure_logging(logging.INFO)
    run_worker()
