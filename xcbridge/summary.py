"""Heuristics that read xcodebuild output.

Nothing here is load-bearing: when the output does not look like what we
expect, callers get a generic message or empty counts rather than an error.
"""

from __future__ import annotations

import logging
import re
from typing import Sequence

from xcbridge.models import JobKind, TestFailure, TestReport

logger = logging.getLogger(__name__)

FAILURE_MARKERS: dict[JobKind, tuple[str, ...]] = {
    JobKind.build: ("error:",),
    JobKind.test: ("** TEST FAILED **", "error:"),
}

DEFAULT_FAILURE: dict[JobKind, str] = {
    JobKind.build: "Build failed",
    JobKind.test: "Tests failed",
}

# Executed 12 tests, with 2 tests skipped and 1 failure (0 unexpected) in 0.512 (0.530) seconds
_EXECUTED_RE = re.compile(
    r"Executed (?P<total>\d+) tests?"
    r"(?:, with (?:(?P<skipped>\d+) tests? skipped and )?(?P<failed>\d+) failures?)?"
    r"(?: \(\d+ unexpected\))?"
    r"(?: in (?P<test_time>[\d.]+)(?: \((?P<wall_time>[\d.]+)\))? seconds?)?"
)

# /path/FooTests.swift:42: error: -[FooTests.FooTests testBar] : XCTAssertTrue failed
_FAILURE_RE = re.compile(
    r"^(?P<file>.+?):(?P<line>\d+): error: -\[(?P<name>[^\]]+)\] : (?P<message>.*)$"
)


def failure_summary(logs: Sequence[str], kind: JobKind) -> str:
    """Return the most recent log line carrying a failure marker."""
    markers = FAILURE_MARKERS[kind]
    for line in reversed(logs):
        if any(marker in line for marker in markers):
            return line
    return DEFAULT_FAILURE[kind]


def parse_test_report(logs: Sequence[str]) -> TestReport:
    report = TestReport()
    for line in logs:
        match = _FAILURE_RE.match(line.strip())
        if match:
            report.failures.append(
                TestFailure(
                    test_name=match["name"].replace(" ", "."),
                    message=match["message"].strip(),
                    file=match["file"],
                    line=int(match["line"]),
                )
            )
            continue
        match = _EXECUTED_RE.search(line)
        if match:
            try:
                _apply_summary(report, match)
            except ValueError:
                logger.debug("Could not parse test summary: %r", line)
    return report


def _apply_summary(report: TestReport, match: re.Match[str]) -> None:
    total = int(match["total"])
    failed = int(match["failed"] or 0)
    skipped = int(match["skipped"] or 0)
    duration = match["wall_time"] or match["test_time"]
    seconds = float(duration) if duration else None

    report.failed = failed
    report.skipped = skipped
    report.passed = max(total - failed - skipped, 0)
    report.duration = seconds
