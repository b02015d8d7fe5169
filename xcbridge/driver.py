"""Job driver: validates requests and runs xcodebuild jobs in the background."""

from __future__ import annotations

import asyncio
import logging
from uuid import uuid4

from xcbridge import commands
from xcbridge.errors import (
    InternalFailure,
    InvalidRequest,
    JobNotFound,
    PathNotAllowed,
    ToolStartError,
)
from xcbridge.job_store import JobStore
from xcbridge.models import BuildRequest, JobKind, JobRecord, JobStatus, TestRequest
from xcbridge.runner import ToolOutput, run_tool
from xcbridge.settings import Settings
from xcbridge.summary import failure_summary

logger = logging.getLogger(__name__)


class JobDriver:
    """Starts jobs, relays their output into the store and finalizes them.

    ``start_*`` returns as soon as the job is registered; the job itself runs
    as a background task and reports failures only through its record.
    """

    def __init__(self, store: JobStore, settings: Settings) -> None:
        self.store = store
        self.settings = settings
        self._tasks: set[asyncio.Task] = set()

    async def start_build(self, req: BuildRequest) -> str:
        self._validate(req.project, req.workspace, req.scheme)
        return await self._start(JobKind.build, commands.build_args(req))

    async def start_test(self, req: TestRequest) -> str:
        self._validate(req.project, req.workspace, req.scheme)
        return await self._start(JobKind.test, commands.test_args(req))

    async def get(self, job_id: str, kind: JobKind | None = None) -> JobRecord:
        record = await self.store.get(job_id)
        if record is None or (kind is not None and record.kind is not kind):
            raise JobNotFound(job_id)
        return record

    async def cancel(self, job_id: str, kind: JobKind | None = None) -> JobRecord:
        """Mark a running job as cancelled.

        Only the record changes: an xcodebuild process that is still running
        is left alone and its remaining output is discarded by the store.
        """
        record = await self.get(job_id, kind)
        if not await self.store.cancel(job_id):
            raise JobNotFound(job_id)
        logger.info("Job %s cancelled", job_id)
        return record.model_copy(
            update={"status": JobStatus.cancelled, "logs": [], "exit_code": None}
        )

    async def shutdown(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def _validate(self, project: str | None, workspace: str | None, scheme: str) -> None:
        paths = [p for p in (project, workspace) if p]
        if not paths:
            raise InvalidRequest("Either project or workspace must be specified")
        if not scheme.strip():
            raise InvalidRequest("A scheme must be specified")
        for path in paths:
            if not self.settings.is_path_allowed(path):
                raise PathNotAllowed(path)

    async def _start(self, kind: JobKind, args: list[str]) -> str:
        job_id = str(uuid4())
        await self.store.create(job_id, kind)
        task = asyncio.create_task(self._run(job_id, kind, args))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info("Started %s job %s", kind.value, job_id)
        return job_id

    async def _run(self, job_id: str, kind: JobKind, args: list[str]) -> None:
        try:
            output = await self._execute(job_id, args)
        except ToolStartError as exc:
            logger.warning("Job %s could not start: %s", job_id, exc)
            await self.store.fail(job_id, str(exc), None)
            return
        except Exception as exc:
            logger.exception("Job %s crashed", job_id)
            await self.store.fail(job_id, str(InternalFailure(str(exc))), None)
            return

        if output.success:
            artifacts = [output.build_dir] if output.build_dir else []
            recorded = await self.store.complete(job_id, artifacts)
        else:
            error = failure_summary(output.logs, kind)
            recorded = await self.store.fail(job_id, error, output.exit_code)

        if recorded:
            logger.info("Job %s finished with exit code %d", job_id, output.exit_code)
        else:
            logger.info("Job %s finished after cancellation, result discarded", job_id)

    async def _execute(self, job_id: str, args: list[str]) -> ToolOutput:
        # The runner's sink must never block: lines go through a bounded
        # queue and are dropped when it is full.
        queue: asyncio.Queue[str] = asyncio.Queue(maxsize=self.settings.log_queue_size)

        def sink(line: str) -> None:
            try:
                queue.put_nowait(line)
            except asyncio.QueueFull:
                logger.debug("Log queue full for job %s, dropping line", job_id)

        async def collect() -> None:
            while True:
                line = await queue.get()
                try:
                    await self.store.append_log(job_id, line)
                finally:
                    queue.task_done()

        collector = asyncio.create_task(collect())
        try:
            output = await run_tool(self.settings.xcodebuild, args, sink)
            await queue.join()
        finally:
            collector.cancel()
        return output
