"""Translate job requests into xcodebuild argument lists."""

from __future__ import annotations

from xcbridge.models import BuildRequest, TestRequest


def _common(project: str | None, workspace: str | None, scheme: str) -> list[str]:
    args: list[str] = []
    if project:
        args += ["-project", project]
    if workspace:
        args += ["-workspace", workspace]
    args += ["-scheme", scheme]
    return args


def build_args(req: BuildRequest) -> list[str]:
    args = _common(req.project, req.workspace, req.scheme)
    args += ["-configuration", req.configuration]
    if req.destination:
        args += ["-destination", req.destination]
    if req.derived_data_path:
        args += ["-derivedDataPath", req.derived_data_path]
    args.extend(req.extra_args)
    return args


def test_args(req: TestRequest) -> list[str]:
    args = ["test", *_common(req.project, req.workspace, req.scheme)]
    if req.destination:
        args += ["-destination", req.destination]
    if req.test_plan:
        args += ["-testPlan", req.test_plan]
    for name in req.only_testing:
        args += ["-only-testing", name]
    for name in req.skip_testing:
        args += ["-skip-testing", name]
    return args
