import asyncio

import pytest

from xcbridge import runner
from xcbridge.errors import ToolNotFound, ToolStartError
from xcbridge.runner import LINE_LIMIT, get_tool_version, run_tool


@pytest.mark.asyncio
async def test_run_tool_captures_both_streams(fake_xcodebuild):
    command = fake_xcodebuild(
        """
        print("Build settings from command line:", flush=True)
        print("warning: something odd", file=sys.stderr, flush=True)
        print("    BUILD_DIR = /tmp/Build/Products", flush=True)
        """
    )
    seen = []

    output = await run_tool(command, ["-scheme", "App"], seen.append)

    assert output.success is True
    assert output.exit_code == 0
    assert output.build_dir == "/tmp/Build/Products"
    assert sorted(output.logs) == sorted(
        [
            "Build settings from command line:",
            "warning: something odd",
            "    BUILD_DIR = /tmp/Build/Products",
        ]
    )
    assert seen == output.logs


@pytest.mark.asyncio
async def test_run_tool_passes_arguments(fake_xcodebuild):
    command = fake_xcodebuild("print(' '.join(sys.argv[1:]))")

    output = await run_tool(command, ["test", "-scheme", "My App"], lambda line: None)

    assert output.logs == ["test -scheme My App"]


@pytest.mark.asyncio
async def test_run_tool_reports_exit_code(fake_xcodebuild):
    command = fake_xcodebuild(
        """
        print("error: no such scheme")
        sys.exit(3)
        """
    )

    output = await run_tool(command, [], lambda line: None)

    assert output.success is False
    assert output.exit_code == 3
    assert output.build_dir is None
    assert output.logs == ["error: no such scheme"]


@pytest.mark.asyncio
async def test_run_tool_replaces_undecodable_bytes(fake_xcodebuild):
    command = fake_xcodebuild(
        """
        sys.stdout.buffer.write(b"caf\\xe9\\r\\n")
        """
    )

    output = await run_tool(command, [], lambda line: None)

    assert output.logs == ["caf\ufffd"]


@pytest.mark.asyncio
async def test_run_tool_truncates_overlong_line_and_keeps_reading(fake_xcodebuild):
    command = fake_xcodebuild(
        """
        sys.stdout.write("x" * (2 * 1024 * 1024) + "\\n")
        print("after", flush=True)
        sys.exit(4)
        """
    )

    output = await asyncio.wait_for(run_tool(command, [], lambda line: None), timeout=30)

    assert output.exit_code == 4
    assert len(output.logs) == 2
    assert output.logs[0] == "x" * LINE_LIMIT
    assert output.logs[1] == "after"


@pytest.mark.asyncio
async def test_run_tool_overlong_line_does_not_stall_the_tool(fake_xcodebuild):
    command = fake_xcodebuild(
        """
        sys.stdout.write("y" * (2 * 1024 * 1024) + "\\n")
        for n in range(50000):
            sys.stdout.write("line %05d %s\\n" % (n, "." * 70))
        sys.stdout.flush()
        print("done", file=sys.stderr)
        """
    )

    output = await asyncio.wait_for(run_tool(command, [], lambda line: None), timeout=60)

    assert output.success is True
    assert len(output.logs) == 50002
    stdout_lines = [line for line in output.logs if line.startswith("line ")]
    assert stdout_lines[0].startswith("line 00000 ")
    assert stdout_lines[-1].startswith("line 49999 ")
    assert "done" in output.logs


@pytest.mark.asyncio
async def test_read_error_stops_only_that_stream(fake_xcodebuild, monkeypatch):
    command = fake_xcodebuild(
        """
        print("first", flush=True)
        print("broken", flush=True)
        print("never seen", flush=True)
        print("warning: still reported", file=sys.stderr, flush=True)
        sys.exit(7)
        """
    )
    read_line = runner._read_line

    async def flaky_read_line(stream, name):
        raw = await read_line(stream, name)
        if name == "stdout" and raw.startswith(b"broken"):
            raise OSError("Input/output error")
        return raw

    monkeypatch.setattr(runner, "_read_line", flaky_read_line)

    output = await asyncio.wait_for(run_tool(command, [], lambda line: None), timeout=30)

    assert output.exit_code == 7
    assert output.success is False
    assert "first" in output.logs
    assert "warning: still reported" in output.logs
    assert "broken" not in output.logs
    assert "never seen" not in output.logs


@pytest.mark.asyncio
async def test_run_tool_missing_executable(tmp_path):
    seen = []
    with pytest.raises(ToolStartError) as excinfo:
        await run_tool([str(tmp_path / "xcodebuild")], [], seen.append)

    assert "Failed to spawn" in str(excinfo.value)
    assert seen == []


@pytest.mark.asyncio
async def test_get_tool_version(fake_xcodebuild):
    assert await get_tool_version(fake_xcodebuild()) == "Xcode 15.0"


@pytest.mark.asyncio
async def test_get_tool_version_missing_tool(tmp_path):
    with pytest.raises(ToolNotFound):
        await get_tool_version([str(tmp_path / "xcodebuild")])
