"""
genetic_search/services/queue.py

Task queue between a search and its evaluation workers.

The search pushes one EvaluationTask per genome that needs a phenotype;
workers pop tasks, run the evaluation and push an EvaluationResultMessage
back. Two backends:
- InMemoryTaskQueue: threads in one process, and tests
- RedisTaskQueue: workers on other processes or machines
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
import json
import logging
import queue
import threading
import time
import uuid

logger = logging.getLogger(__name__)


class TaskStatus(Enum):
    """Status of an evaluation task."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


def new_task_id() -> str:
    return uuid.uuid4().hex


@dataclass
class EvaluationTask:
    """
    One genome to evaluate.

    task_input is whatever the phenotype strategy built for the genome;
    it must be JSON-serializable to travel through Redis.
    """
    task_id: str
    genome_id: int
    task_input: Any
    generation: int = 0
    created_at: float = field(default_factory=time.time)
    timeout_seconds: float = 300.0

    def to_json(self) -> str:
        return json.dumps({
            "task_id": self.task_id,
            "genome_id": self.genome_id,
            "task_input": self.task_input,
            "generation": self.generation,
            "created_at": self.created_at,
            "timeout_seconds": self.timeout_seconds,
        })

    @classmethod
    def from_json(cls, data: str) -> "EvaluationTask":
        d = json.loads(data)
        return cls(
            task_id=d["task_id"],
            genome_id=d["genome_id"],
            task_input=d["task_input"],
            generation=d.get("generation", 0),
            created_at=d.get("created_at", time.time()),
            timeout_seconds=d.get("timeout_seconds", 300.0),
        )


@dataclass
class EvaluationResultMessage:
    """
    Phenotype computed by a worker.

    `error` is set instead of a phenotype when the evaluation raised.
    """
    task_id: str
    genome_id: int
    phenotype: List[float]
    metadata: Dict[str, Any] = field(default_factory=dict)
    worker_id: str = ""
    completed_at: float = field(default_factory=time.time)
    error: Optional[str] = None

    def to_json(self) -> str:
        return json.dumps({
            "task_id": self.task_id,
            "genome_id": self.genome_id,
            "phenotype": self.phenotype,
            "metadata": self.metadata,
            "worker_id": self.worker_id,
            "completed_at": self.completed_at,
            "error": self.error,
        })

    @classmethod
    def from_json(cls, data: str) -> "EvaluationResultMessage":
        d = json.loads(data)
        return cls(
            task_id=d["task_id"],
            genome_id=d["genome_id"],
            phenotype=d.get("phenotype", []),
            metadata=d.get("metadata", {}),
            worker_id=d.get("worker_id", ""),
            completed_at=d.get("completed_at", time.time()),
            error=d.get("error"),
        )


class TaskQueue(ABC):
    """Abstract base for task queue implementations."""

    @abstractmethod
    def push_task(self, task: EvaluationTask) -> bool:
        """Push a task to the queue. Returns True if successful."""
        pass

    @abstractmethod
    def pop_task(self, timeout: float = 1.0) -> Optional[EvaluationTask]:
        """Pop a task from the queue. Returns None if queue is empty."""
        pass

    @abstractmethod
    def push_result(self, result: EvaluationResultMessage) -> bool:
        """Push a result to the result queue. Returns True if successful."""
        pass

    @abstractmethod
    def pop_result(self, timeout: float = 1.0) -> Optional[EvaluationResultMessage]:
        """Pop a result from the result queue. Returns None if empty."""
        pass

    @abstractmethod
    def get_queue_length(self) -> int:
        pass

    @abstractmethod
    def get_result_count(self) -> int:
        pass

    @abstractmethod
    def clear(self) -> None:
        pass

    @abstractmethod
    def get_task_status(self, task_id: str) -> TaskStatus:
        pass


def _decode(data: Any) -> str:
    return data.decode("utf-8") if isinstance(data, bytes) else data


class RedisTaskQueue(TaskQueue):
    """
    Redis-backed task queue.

    Tasks and results are Redis lists (RPUSH / BLPOP); per-task status
    lives in expiring string keys.
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379",
        task_queue_key: str = "genetic_search:tasks",
        result_queue_key: str = "genetic_search:results",
        status_key_prefix: str = "genetic_search:status:",
    ):
        self.redis_url = redis_url
        self.task_queue_key = task_queue_key
        self.result_queue_key = result_queue_key
        self.status_key_prefix = status_key_prefix
        self._redis = None

    def _get_redis(self):
        """Lazy connection to Redis."""
        if self._redis is None:
            try:
                import redis
            except ImportError:
                raise ImportError(
                    "redis package required for RedisTaskQueue. "
                    "Install with: pip install genetic-search[redis]"
                )
            try:
                self._redis = redis.from_url(self.redis_url)
                self._redis.ping()
                logger.info(f"Connected to Redis at {self.redis_url}")
            except Exception as e:
                self._redis = None
                logger.error(f"Failed to connect to Redis: {e}")
                raise
        return self._redis

    def _status_key(self, task_id: str) -> str:
        return f"{self.status_key_prefix}{task_id}"

    def push_task(self, task: EvaluationTask) -> bool:
        try:
            r = self._get_redis()
            r.rpush(self.task_queue_key, task.to_json())
            r.set(self._status_key(task.task_id), TaskStatus.PENDING.value, ex=int(task.timeout_seconds * 2))
            return True
        except Exception as e:
            logger.error(f"Failed to push task: {e}")
            return False

    def pop_task(self, timeout: float = 1.0) -> Optional[EvaluationTask]:
        try:
            r = self._get_redis()
            result = r.blpop(self.task_queue_key, timeout=timeout)
            if result is None:
                return None
            _, data = result
            task = EvaluationTask.from_json(_decode(data))
            r.set(self._status_key(task.task_id), TaskStatus.IN_PROGRESS.value, ex=int(task.timeout_seconds * 2))
            return task
        except Exception as e:
            logger.error(f"Failed to pop task: {e}")
            return None

    def push_result(self, result: EvaluationResultMessage) -> bool:
        try:
            r = self._get_redis()
            r.rpush(self.result_queue_key, result.to_json())
            status = TaskStatus.COMPLETED if result.error is None else TaskStatus.FAILED
            r.set(self._status_key(result.task_id), status.value, ex=3600)
            return True
        except Exception as e:
            logger.error(f"Failed to push result: {e}")
            return False

    def pop_result(self, timeout: float = 1.0) -> Optional[EvaluationResultMessage]:
        try:
            r = self._get_redis()
            result = r.blpop(self.result_queue_key, timeout=timeout)
            if result is None:
                return None
            _, data = result
            return EvaluationResultMessage.from_json(_decode(data))
        except Exception as e:
            logger.error(f"Failed to pop result: {e}")
            return None

    def get_queue_length(self) -> int:
        return int(self._get_redis().llen(self.task_queue_key))

    def get_result_count(self) -> int:
        return int(self._get_redis().llen(self.result_queue_key))

    def clear(self) -> None:
        r = self._get_redis()
        r.delete(self.task_queue_key, self.result_queue_key)
        cursor = 0
        while True:
            cursor, keys = r.scan(cursor, match=f"{self.status_key_prefix}*")
            if keys:
                r.delete(*keys)
            if cursor == 0:
                break
        logger.info("Cleared all queues")

    def get_task_status(self, task_id: str) -> TaskStatus:
        status = self._get_redis().get(self._status_key(task_id))
        if status is None:
            return TaskStatus.PENDING
        return TaskStatus(_decode(status))


class InMemoryTaskQueue(TaskQueue):
    """
    In-memory task queue for tests and single-machine use.

    Thread-safe; workers run as threads in the same process.
    """

    def __init__(self):
        self._task_queue: queue.Queue = queue.Queue()
        self._result_queue: queue.Queue = queue.Queue()
        self._status: Dict[str, TaskStatus] = {}
        self._lock = threading.Lock()

    def push_task(self, task: EvaluationTask) -> bool:
        self._task_queue.put(task)
        with self._lock:
            self._status[task.task_id] = TaskStatus.PENDING
        return True

    def pop_task(self, timeout: float = 1.0) -> Optional[EvaluationTask]:
        try:
            task = self._task_queue.get(timeout=timeout)
        except queue.Empty:
            return None
        with self._lock:
            self._status[task.task_id] = TaskStatus.IN_PROGRESS
        return task

    def push_result(self, result: EvaluationResultMessage) -> bool:
        self._result_queue.put(result)
        with self._lock:
            status = TaskStatus.COMPLETED if result.error is None else TaskStatus.FAILED
            self._status[result.task_id] = status
        return True

    def pop_result(self, timeout: float = 1.0) -> Optional[EvaluationResultMessage]:
        try:
            return self._result_queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def get_queue_length(self) -> int:
        return self._task_queue.qsize()

    def get_result_count(self) -> int:
        return self._result_queue.qsize()

    def clear(self) -> None:
        for q in (self._task_queue, self._result_queue):
            while True:
                try:
                    q.get_nowait()
                except queue.Empty:
                    break
        with self._lock:
            self._status.clear()

    def get_task_status(self, task_id: str) -> TaskStatus:
        with self._lock:
            return self._status.get(task_id, TaskStatus.PENDING)


def create_task_queue(
    backend: str = "memory",
    redis_url: str = "redis://localhost:6379",
    **kwargs
) -> TaskQueue:
    """
    Create a task queue.

    Args:
        backend: "memory" or "redis"
        redis_url: Redis connection URL (for redis backend)
        **kwargs: Additional backend-specific options

    Returns:
        TaskQueue instance
    """
    if backend == "memory":
        return InMemoryTaskQueue()
    elif backend == "redis":
        return RedisTaskQueue(redis_url=redis_url, **kwargs)
    else:
        raise ValueError(f"Unknown backend: {backend}")
