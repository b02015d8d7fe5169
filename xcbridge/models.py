from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


class JobStatus(str, Enum):
    running = "running"
    success = "success"
    failed = "failed"
    cancelled = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not JobStatus.running


class JobKind(str, Enum):
    build = "build"
    test = "test"


class BuildRequest(BaseModel):
    project: str | None = None
    workspace: str | None = None
    scheme: str
    configuration: str = Field(default="Debug")
    destination: str | None = None
    derived_data_path: str | None = None
    extra_args: list[str] = Field(default_factory=list)


class TestRequest(BaseModel):
    project: str | None = None
    workspace: str | None = None
    scheme: str
    destination: str | None = None
    test_plan: str | None = None
    only_testing: list[str] = Field(default_factory=list)
    skip_testing: list[str] = Field(default_factory=list)


class JobRecord(BaseModel):
    id: str
    kind: JobKind
    status: JobStatus = JobStatus.running
    logs: list[str] = Field(default_factory=list)
    artifacts: list[str] = Field(default_factory=list)
    error: str | None = None
    exit_code: int | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None


class BuildStartedResponse(BaseModel):
    build_id: str
    status: str
    logs_url: str


class BuildStatusResponse(BaseModel):
    build_id: str
    status: str
    exit_code: int | None = None
    artifacts: list[str] | None = None
    error: str | None = None
    logs: list[str] = Field(default_factory=list)

    @classmethod
    def from_record(cls, record: JobRecord) -> BuildStatusResponse:
        return cls(
            build_id=record.id,
            status=record.status.value,
            exit_code=record.exit_code,
            artifacts=record.artifacts if record.status is JobStatus.success else None,
            error=record.error if record.status is JobStatus.failed else None,
            logs=record.logs,
        )


class TestFailure(BaseModel):
    test_name: str
    message: str
    file: str | None = None
    line: int | None = None


class TestReport(BaseModel):
    passed: int = 0
    failed: int = 0
    skipped: int = 0
    duration: float | None = None
    failures: list[TestFailure] = Field(default_factory=list)


class TestResultResponse(BaseModel):
    test_id: str
    status: str
    exit_code: int | None = None
    error: str | None = None
    passed: int | None = None
    failed: int | None = None
    skipped: int | None = None
    duration: float | None = None
    failures: list[TestFailure] = Field(default_factory=list)
    logs: list[str] = Field(default_factory=list)

    @classmethod
    def from_record(cls, record: JobRecord, report: TestReport) -> TestResultResponse:
        return cls(
            test_id=record.id,
            status=record.status.value,
            exit_code=record.exit_code,
            error=record.error if record.status is JobStatus.failed else None,
            passed=report.passed,
            failed=report.failed,
            skipped=report.skipped,
            duration=report.duration,
            failures=report.failures,
            logs=record.logs,
        )


class StatusResponse(BaseModel):
    healthy: bool
    xcode_version: str
    jobs: dict[str, int] = Field(default_factory=dict)
