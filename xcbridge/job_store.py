from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Iterable

from xcbridge.models import JobKind, JobRecord, JobStatus

logger = logging.getLogger(__name__)


class ReadWriteLock:
    """Many concurrent readers or a single writer."""

    def __init__(self) -> None:
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writer = False

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writer)
            self._readers += 1
        try:
            yield
        finally:
            async with self._cond:
                self._readers -= 1
                self._cond.notify_all()

    @asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writer and self._readers == 0)
            self._writer = True
        try:
            yield
        finally:
            async with self._cond:
                self._writer = False
                self._cond.notify_all()


class JobStore:
    """In-memory job registry.

    The store owns every state transition. Records leave ``running`` exactly
    once; writes against a record that is missing or already terminal are
    silently ignored, so a late log line or a losing finalizer never changes
    a finished job. Reads hand out deep copies.
    """

    def __init__(self) -> None:
        self._jobs: dict[str, JobRecord] = {}
        self._lock = ReadWriteLock()

    async def create(self, job_id: str, kind: JobKind) -> JobRecord:
        record = JobRecord(id=job_id, kind=kind)
        async with self._lock.write():
            self._jobs[job_id] = record
        return record.model_copy(deep=True)

    async def append_log(self, job_id: str, line: str) -> None:
        async with self._lock.write():
            record = self._jobs.get(job_id)
            if record is not None and record.status is JobStatus.running:
                record.logs.append(line)

    async def complete(self, job_id: str, artifacts: Iterable[str]) -> bool:
        return await self._finish(
            job_id, status=JobStatus.success, artifacts=list(artifacts), exit_code=0
        )

    async def fail(self, job_id: str, error: str, exit_code: int | None) -> bool:
        return await self._finish(
            job_id, status=JobStatus.failed, error=error, exit_code=exit_code
        )

    async def cancel(self, job_id: str) -> bool:
        return await self._finish(job_id, status=JobStatus.cancelled, logs=[])

    async def get(self, job_id: str) -> JobRecord | None:
        async with self._lock.read():
            record = self._jobs.get(job_id)
            if record is None:
                return None
            return record.model_copy(deep=True)

    async def all(self, kind: JobKind | None = None) -> list[JobRecord]:
        async with self._lock.read():
            records = [
                r.model_copy(deep=True)
                for r in self._jobs.values()
                if kind is None or r.kind is kind
            ]
        records.reverse()
        return records

    async def reclaim(self, max_terminal: int) -> int:
        """Evict the oldest terminal records beyond ``max_terminal``."""
        async with self._lock.write():
            terminal = [
                job_id
                for job_id, record in self._jobs.items()
                if record.status.is_terminal
            ]
            excess = max(len(terminal) - max(max_terminal, 0), 0)
            for job_id in terminal[:excess]:
                del self._jobs[job_id]
        if excess:
            logger.info("Reclaimed %d finished jobs", excess)
        return excess

    async def _finish(self, job_id: str, **kwargs) -> bool:
        async with self._lock.write():
            record = self._jobs.get(job_id)
            if record is None or record.status is not JobStatus.running:
                return False
            kwargs.setdefault("logs", record.logs)
            self._jobs[job_id] = record.model_copy(
                update={**kwargs, "finished_at": self._now()}
            )
            return True

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)
