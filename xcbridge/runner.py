from __future__ import annotations

import asyncio
import logging
import shlex
from dataclasses import dataclass, field
from typing import Callable, Sequence

from xcbridge.errors import ToolNotFound, ToolStartError

logger = logging.getLogger(__name__)

BUILD_DIR_MARKER = "BUILD_DIR = "
LINE_LIMIT = 1024 * 1024


@dataclass
class ToolOutput:
    success: bool
    exit_code: int
    logs: list[str] = field(default_factory=list)
    build_dir: str | None = None


async def _read_line(stream: asyncio.StreamReader, name: str) -> bytes:
    """Read one line, keeping at most ``LINE_LIMIT`` bytes of it.

    The rest of an overlong line is read and thrown away. Returns ``b""``
    at end of stream.
    """
    line = bytearray()
    overrun = False
    while True:
        try:
            chunk = await stream.readuntil(b"\n")
        except asyncio.IncompleteReadError as exc:
            chunk = exc.partial
        except asyncio.LimitOverrunError as exc:
            chunk = await stream.readexactly(exc.consumed)
            overrun = True
            line += chunk[: LINE_LIMIT - len(line)]
            continue
        line += chunk[: LINE_LIMIT - len(line)]
        if overrun:
            logger.warning("Truncated a %s line longer than %d bytes", name, LINE_LIMIT)
        return bytes(line)


async def run_tool(
    command: Sequence[str],
    args: Sequence[str],
    on_line: Callable[[str], None],
) -> ToolOutput:
    """Run ``command`` with ``args`` and stream its output line by line.

    stdout and stderr are drained concurrently; each line is passed to
    ``on_line`` as it arrives and kept in the returned log. A line carrying
    ``BUILD_DIR = <path>`` records the build directory.
    """
    cmd = [*command, *args]
    logger.info("Running: %s", shlex.join(cmd))

    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            limit=LINE_LIMIT,
        )
    except OSError as exc:
        raise ToolStartError(f"Failed to spawn {cmd[0]}: {exc}") from exc

    output = ToolOutput(success=False, exit_code=-1)

    def handle(line: str) -> None:
        if BUILD_DIR_MARKER in line:
            output.build_dir = line.split(BUILD_DIR_MARKER, 1)[1].strip()
        on_line(line)
        output.logs.append(line)

    async def drain(stream: asyncio.StreamReader | None, name: str) -> None:
        if stream is None:
            return
        while True:
            try:
                raw = await _read_line(stream, name)
            except OSError as exc:
                logger.warning("Error reading %s: %s", name, exc)
                return
            if not raw:
                return
            handle(raw.decode(errors="replace").rstrip("\r\n"))

    try:
        await asyncio.gather(
            drain(process.stdout, "stdout"),
            drain(process.stderr, "stderr"),
        )
        returncode = await process.wait()
    except asyncio.CancelledError:
        if process.returncode is None:
            process.kill()
            await process.wait()
        raise

    output.exit_code = returncode if returncode >= 0 else -1
    output.success = returncode == 0
    return output


async def get_tool_version(command: Sequence[str]) -> str:
    """Return the first line of ``<command> -version``, e.g. ``Xcode 15.0``."""
    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            "-version",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise ToolNotFound(str(exc)) from exc

    stdout, _ = await process.communicate()
    if process.returncode != 0:
        raise ToolNotFound(f"exit code {process.returncode}")

    lines = stdout.decode(errors="replace").splitlines()
    return lines[0].strip() if lines else "Unknown"
