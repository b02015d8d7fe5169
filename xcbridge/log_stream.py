from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import AsyncGenerator

from xcbridge.job_store import JobStore

DEFAULT_POLL_INTERVAL = 0.1


@dataclass(frozen=True)
class LogEvent:
    event: str
    data: str


async def follow_logs(
    store: JobStore,
    job_id: str,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
) -> AsyncGenerator[LogEvent, None]:
    """Replay a job's log from the start and follow it until the job ends.

    Each line is yielded once, in order. A terminal job produces a single
    ``complete`` event carrying its status name; an unknown job produces
    nothing.
    """
    cursor = 0
    while True:
        record = await store.get(job_id)
        if record is None:
            return

        for line in record.logs[cursor:]:
            yield LogEvent("line", line)
        cursor = max(cursor, len(record.logs))

        if record.status.is_terminal:
            yield LogEvent("complete", record.status.value)
            return

        await asyncio.sleep(poll_interval)
