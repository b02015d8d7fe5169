from __future__ import annotations

import asyncio
import logging
import secrets
from contextlib import asynccontextmanager, suppress
from typing import AsyncIterator

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader
from sse_starlette.sse import EventSourceResponse

from xcbridge.driver import JobDriver
from xcbridge.errors import ToolNotFound, Unauthorized, XcbridgeError
from xcbridge.job_store import JobStore
from xcbridge.log_stream import follow_logs
from xcbridge.models import (
    BuildRequest,
    BuildStartedResponse,
    BuildStatusResponse,
    JobKind,
    JobRecord,
    JobStatus,
    StatusResponse,
    TestRequest,
    TestResultResponse,
)
from xcbridge.runner import get_tool_version
from xcbridge.settings import Settings, get_settings
from xcbridge.summary import parse_test_report

logger = logging.getLogger(__name__)

API_DESCRIPTION = """
Xcode bridge - run `xcodebuild` builds and tests from anywhere that can speak HTTP.

## Jobs

`POST /build` and `POST /test` return immediately with a job id. The job runs
in the background; poll `GET /build/{id}` (or `GET /test/{id}`) for its state:
`running`, `success`, `failed` or `cancelled`.

## Live logs

`GET /build/{id}/logs` streams the job's output as Server-Sent Events. Every
line is sent once from the beginning of the log, followed by a single
`complete` event whose data is the final status:

```
data: CompileSwift normal arm64 ...

event: complete
data: success
```

## Authentication

When the service is started with an API key, send it in the `X-API-Key`
header on every request.
"""

_api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def require_api_key(
    request: Request, key: str | None = Depends(_api_key_header)
) -> None:
    expected = request.app.state.settings.api_key
    if expected is None:
        return
    if key is None or not secrets.compare_digest(key, expected):
        raise Unauthorized()


def get_driver(request: Request) -> JobDriver:
    return request.app.state.driver


async def _reclaim_forever(store: JobStore, settings: Settings) -> None:
    while True:
        await asyncio.sleep(settings.cleanup_interval_sec)
        await store.reclaim(settings.max_completed_jobs)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings: Settings = app.state.settings
    try:
        app.state.xcode_version = await get_tool_version(settings.xcodebuild)
    except ToolNotFound:
        logger.error("Xcode not found or not working")
        logger.error("xcbridge requires Xcode to be installed and configured")
        raise
    logger.info("Xcode version: %s", app.state.xcode_version)
    if settings.api_key is None:
        logger.warning("No API key configured - authentication disabled")
    else:
        logger.info("API key authentication enabled")

    reclaimer = asyncio.create_task(_reclaim_forever(app.state.store, settings))
    yield
    reclaimer.cancel()
    with suppress(asyncio.CancelledError):
        await reclaimer
    await app.state.driver.shutdown()


async def _handle_error(request: Request, exc: XcbridgeError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.error, "message": str(exc)},
    )


def _event_stream(store: JobStore, job_id: str, poll_interval: float) -> EventSourceResponse:
    async def events() -> AsyncIterator[dict]:
        async for event in follow_logs(store, job_id, poll_interval):
            if event.event == "line":
                yield {"data": event.data}
            else:
                yield {"event": event.event, "data": event.data}

    return EventSourceResponse(events())


def _test_result(record: JobRecord) -> TestResultResponse:
    return TestResultResponse.from_record(record, parse_test_report(record.logs))


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    store = JobStore()

    app = FastAPI(
        title="xcbridge",
        version="0.1.0",
        description=API_DESCRIPTION,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = store
    app.state.driver = JobDriver(store, settings)
    app.state.xcode_version = "Unknown"
    app.add_exception_handler(XcbridgeError, _handle_error)

    auth = [Depends(require_api_key)]

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/status", response_model=StatusResponse, dependencies=auth)
    async def status(request: Request) -> StatusResponse:
        records = await store.all()
        running = sum(1 for r in records if r.status is JobStatus.running)
        return StatusResponse(
            healthy=True,
            xcode_version=request.app.state.xcode_version,
            jobs={"running": running, "total": len(records)},
        )

    @app.post("/build", response_model=BuildStartedResponse, dependencies=auth)
    async def start_build(
        req: BuildRequest, driver: JobDriver = Depends(get_driver)
    ) -> BuildStartedResponse:
        build_id = await driver.start_build(req)
        return BuildStartedResponse(
            build_id=build_id, status="running", logs_url=f"/build/{build_id}/logs"
        )

    @app.get("/build", response_model=list[BuildStatusResponse], dependencies=auth)
    async def list_builds() -> list[BuildStatusResponse]:
        records = await store.all(JobKind.build)
        return [BuildStatusResponse.from_record(r) for r in records]

    @app.get("/build/{build_id}", response_model=BuildStatusResponse, dependencies=auth)
    async def get_build(
        build_id: str, driver: JobDriver = Depends(get_driver)
    ) -> BuildStatusResponse:
        record = await driver.get(build_id, JobKind.build)
        return BuildStatusResponse.from_record(record)

    @app.get("/build/{build_id}/logs", dependencies=auth)
    async def build_logs(
        build_id: str, driver: JobDriver = Depends(get_driver)
    ) -> EventSourceResponse:
        await driver.get(build_id, JobKind.build)
        return _event_stream(store, build_id, settings.poll_interval_sec)

    @app.delete("/build/{build_id}", response_model=BuildStatusResponse, dependencies=auth)
    async def cancel_build(
        build_id: str, driver: JobDriver = Depends(get_driver)
    ) -> BuildStatusResponse:
        record = await driver.cancel(build_id, JobKind.build)
        return BuildStatusResponse.from_record(record)

    @app.post("/test", response_model=BuildStartedResponse, dependencies=auth)
    async def start_test(
        req: TestRequest, driver: JobDriver = Depends(get_driver)
    ) -> BuildStartedResponse:
        test_id = await driver.start_test(req)
        return BuildStartedResponse(
            build_id=test_id, status="running", logs_url=f"/test/{test_id}/logs"
        )

    @app.get("/test", response_model=list[TestResultResponse], dependencies=auth)
    async def list_tests() -> list[TestResultResponse]:
        records = await store.all(JobKind.test)
        return [_test_result(r) for r in records]

    @app.get("/test/{test_id}", response_model=TestResultResponse, dependencies=auth)
    async def get_test(
        test_id: str, driver: JobDriver = Depends(get_driver)
    ) -> TestResultResponse:
        record = await driver.get(test_id, JobKind.test)
        return _test_result(record)

    @app.get("/test/{test_id}/logs", dependencies=auth)
    async def test_logs(
        test_id: str, driver: JobDriver = Depends(get_driver)
    ) -> EventSourceResponse:
        await driver.get(test_id, JobKind.test)
        return _event_stream(store, test_id, settings.poll_interval_sec)

    @app.delete("/test/{test_id}", response_model=TestResultResponse, dependencies=auth)
    async def cancel_test(
        test_id: str, driver: JobDriver = Depends(get_driver)
    ) -> TestResultResponse:
        record = await driver.cancel(test_id, JobKind.test)
        return _test_result(record)

    return app


app = create_app()
