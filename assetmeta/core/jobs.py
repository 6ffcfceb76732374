from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections import Counter, defaultdict
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Any, AsyncIterator
from uuid import uuid4

from redis import Redis
from rq import Queue
from rq.suspension import resume as resume_workers
from rq.suspension import suspend as suspend_workers
from sqlalchemy.ext.asyncio import AsyncSession

from assetmeta.db.models import Job, JobName, JobStatus, QueueName

from .config import get_settings
from .logging import get_logger

EXCLUSIVE_LOCK_TIMEOUT_S = 600


class BaseJobBackend(ABC):
    @abstractmethod
    async def enqueue(self, job_id: str, job_name: JobName) -> None: ...

    @abstractmethod
    async def pause(self, queue: QueueName) -> None: ...

    @abstractmethod
    async def resume(self, queue: QueueName) -> None: ...

    @abstractmethod
    def exclusive(self, name: str) -> Any:
        """Async context manager held by at most one consumer of this backend at a time."""


class ImmediateJobBackend(BaseJobBackend):
    """Runs jobs inline; jobs for a paused queue are held until it is resumed.

    Pauses nest: a queue paused twice runs its held jobs after the second resume.
    """

    def __init__(self) -> None:
        self._paused: Counter[QueueName] = Counter()
        self._held: dict[QueueName, list[str]] = defaultdict(list)

    def is_paused(self, queue: QueueName) -> bool:
        return self._paused[queue] > 0

    async def enqueue(self, job_id: str, job_name: JobName) -> None:
        if self.is_paused(job_name.queue):
            self._held[job_name.queue].append(job_id)
            return
        await self._run(job_id)

    async def pause(self, queue: QueueName) -> None:
        self._paused[queue] += 1

    async def resume(self, queue: QueueName) -> None:
        if self._paused[queue] > 0:
            self._paused[queue] -= 1
        if self.is_paused(queue):
            return
        held = self._held.pop(queue, [])
        for job_id in held:
            await self._run(job_id)

    @asynccontextmanager
    async def exclusive(self, name: str) -> AsyncIterator[None]:
        # One process; nested pauses keep the queue held.
        yield

    async def _run(self, job_id: str) -> None:
        from assetmeta.workers.tasks import run_job

        try:
            await asyncio.to_thread(run_job, job_id)
        except Exception:
            # process_job has already recorded the failure on the job row.
            get_logger(component="immediate_job_backend").exception("inline_job_failed", job_id=job_id)


class RQJobBackend(BaseJobBackend):
    """Schedules jobs on RQ. Pausing suspends every worker bound to the connection."""

    def __init__(self, connection: Redis):
        self.connection = connection
        self.queues = {name: Queue(name.value, connection=connection) for name in QueueName}

    async def enqueue(self, job_id: str, job_name: JobName) -> None:  # pragma: no cover - exercised via worker
        from assetmeta.workers.tasks import run_job

        self.queues[job_name.queue].enqueue(run_job, job_id)

    async def pause(self, queue: QueueName) -> None:  # pragma: no cover - requires redis
        await asyncio.to_thread(suspend_workers, self.connection)

    async def resume(self, queue: QueueName) -> None:  # pragma: no cover - requires redis
        await asyncio.to_thread(resume_workers, self.connection)

    @asynccontextmanager
    async def exclusive(self, name: str) -> AsyncIterator[None]:  # pragma: no cover - requires redis
        # Released from another thread than the one that acquired it.
        lock = self.connection.lock(f"assetmeta:{name}", timeout=EXCLUSIVE_LOCK_TIMEOUT_S, thread_local=False)
        await asyncio.to_thread(lock.acquire)
        try:
            yield
        finally:
            await asyncio.to_thread(lock.release)


@lru_cache()
def get_job_backend() -> BaseJobBackend:
    settings = get_settings()
    backend = settings.normalized_job_backend
    if backend == "immediate":
        return ImmediateJobBackend()
    if backend == "rq":  # pragma: no cover - requires redis
        return RQJobBackend(Redis.from_url(settings.redis_url))
    raise ValueError(f"Unsupported job backend: {settings.job_queue_backend}")


class JobQueue:
    """Persists job records and hands their ids to the active backend."""

    def __init__(self, session: AsyncSession, backend: BaseJobBackend | None = None):
        self.session = session
        self.backend = backend or get_job_backend()
        self.logger = get_logger(component="job_queue")

    async def queue(self, name: JobName, data: dict[str, Any]) -> Job:
        job = Job(
            job_id=uuid4().hex,
            name=name,
            queue=name.queue,
            status=JobStatus.queued,
            payload=data,
        )
        self.session.add(job)
        await self.session.commit()
        self.logger.debug("job_queued", job_id=job.job_id, job_name=name.value, payload=data)
        await self.backend.enqueue(job.job_id, name)
        return job

    async def pause(self, queue: QueueName) -> None:
        self.logger.info("queue_paused", queue=queue.value)
        await self.backend.pause(queue)

    async def resume(self, queue: QueueName) -> None:
        self.logger.info("queue_resumed", queue=queue.value)
        await self.backend.resume(queue)


__all__ = ["BaseJobBackend", "ImmediateJobBackend", "JobQueue", "RQJobBackend", "get_job_backend"]
