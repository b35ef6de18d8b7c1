"""
genetic_search/services/

Services for running searches outside a notebook.

Architecture:
- Executors: evaluate a batch of genomes (in-process, process pool, queue)
- Queue: task distribution, in memory or through Redis
- Worker: evaluates tasks pulled from the queue
- Controller: drives a search with logging and checkpoints

Evaluation is the only slow phase of a generation and the only one that
leaves the controlling process.
"""

from .queue import (
    EvaluationResultMessage,
    EvaluationTask,
    InMemoryTaskQueue,
    RedisTaskQueue,
    TaskQueue,
    TaskStatus,
    create_task_queue,
)
from .executors import PoolExecutor, QueueExecutor, SequentialExecutor, TaskExecutor
from .controller import ControllerConfig, SearchController
from .worker import EvaluationWorker, WorkerConfig

__all__ = [
    "EvaluationResultMessage",
    "EvaluationTask",
    "InMemoryTaskQueue",
    "RedisTaskQueue",
    "TaskQueue",
    "TaskStatus",
    "create_task_queue",
    "PoolExecutor",
    "QueueExecutor",
    "SequentialExecutor",
    "TaskExecutor",
    "ControllerConfig",
    "SearchController",
    "EvaluationWorker",
    "WorkerConfig",
]
