import sys
import textwrap
import time
from pathlib import Path
from uuid import uuid4

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from xcbridge.settings import Settings  # noqa: E402

TOOL_TEMPLATE = """\
import sys
import time

if sys.argv[1:] == ["-version"]:
    print("Xcode 15.0")
    print("Build version 15A240d")
    sys.exit(0)

"""


@pytest.fixture
def fake_xcodebuild(tmp_path):
    """Write a stand-in for xcodebuild whose behaviour is the given script body.

    The script answers ``-version`` like Xcode 15 and otherwise runs ``body``
    with ``sys`` and ``time`` already imported.
    """

    def _write(body: str = "") -> tuple[str, ...]:
        path = tmp_path / f"xcodebuild_{uuid4().hex[:8]}.py"
        path.write_text(TOOL_TEMPLATE + textwrap.dedent(body))
        return (sys.executable, str(path))

    return _write


@pytest.fixture
def make_settings(fake_xcodebuild):
    def _make(tool: str = "", **overrides) -> Settings:
        values = dict(
            host="127.0.0.1",
            port=9090,
            api_key=None,
            log_level="info",
            allowed_paths=None,
            xcodebuild=fake_xcodebuild(tool),
            max_completed_jobs=100,
            cleanup_interval_sec=60.0,
            log_queue_size=100,
            poll_interval_sec=0.01,
        )
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture
def allowed_root(tmp_path):
    """An allowed root holding an ``App.xcodeproj`` directory."""
    root = tmp_path / "allowed"
    (root / "App.xcodeproj").mkdir(parents=True)
    return root


def _wait_for_status(client, path: str, timeout: float = 10.0) -> dict:
    deadline = time.monotonic() + timeout
    while True:
        data = client.get(path).json()
        if data["status"] != "running" or time.monotonic() > deadline:
            return data
        time.sleep(0.05)


@pytest.fixture
def wait_for_status():
    """Poll a status endpoint until the job leaves ``running``."""
    return _wait_for_status
