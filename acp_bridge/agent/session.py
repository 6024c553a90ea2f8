"""
cursor-agent 会话

One agent process per request:

    cursor-agent --print --output-format stream-json --stream-partial-output \\
        --workspace <ws> --model <model> [--force]

The prompt is written to stdin, NDJSON events are read from stdout and stderr
is drained in the background so a chatty agent cannot block on a full pipe.
"""

import asyncio
from typing import AsyncIterator, List, Optional, Protocol

from log import log

from ..exceptions import AgentSessionError
from ..streaming.ndjson import LineBuffer

__all__ = [
    "AgentRun",
    "AgentSession",
    "CursorAgentRun",
    "CursorAgentSession",
    "build_agent_command",
]

_READ_SIZE = 64 * 1024


class AgentRun(Protocol):
    """一次 agent 运行"""

    def lines(self) -> AsyncIterator[str]:
        ...

    async def wait(self) -> int:
        ...

    async def read_stderr(self) -> str:
        ...

    def terminate(self) -> None:
        ...


class AgentSession(Protocol):
    async def open(self, prompt: str, model: str) -> AgentRun:
        ...


def build_agent_command(command: str, workspace: str, model: str, force: bool = True) -> List[str]:
    args = [
        command,
        "--print",
        "--output-format",
        "stream-json",
        "--stream-partial-output",
        "--workspace",
        workspace,
        "--model",
        model,
    ]
    if force:
        args.append("--force")
    return args


class CursorAgentRun:
    """Wraps the spawned process; lines() yields stdout lines until EOF or timeout."""

    def __init__(self, process: asyncio.subprocess.Process, timeout: Optional[float] = None):
        self.process = process
        self.timeout = timeout
        self.timed_out = False
        self._stderr_task = asyncio.ensure_future(self._drain_stderr())

    async def _drain_stderr(self) -> str:
        if self.process.stderr is None:
            return ""
        data = await self.process.stderr.read()
        return data.decode("utf-8", errors="replace")

    async def lines(self) -> AsyncIterator[str]:
        if self.process.stdout is None:
            return
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout if self.timeout else None
        buffer = LineBuffer()

        while True:
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                self._on_timeout()
                return
            try:
                chunk = await asyncio.wait_for(self.process.stdout.read(_READ_SIZE), timeout=remaining)
            except asyncio.TimeoutError:
                self._on_timeout()
                return
            if not chunk:
                break
            for line in buffer.push(chunk):
                yield line

        for line in buffer.flush():
            yield line

    def _on_timeout(self):
        self.timed_out = True
        log.warning(f"Agent session timed out after {self.timeout}s", tag="AGENT")
        self.terminate()

    async def wait(self) -> int:
        return await self.process.wait()

    async def read_stderr(self) -> str:
        stderr = await self._stderr_task
        if self.timed_out:
            stderr = (stderr + "\n" if stderr else "") + f"Agent session timeout after {self.timeout}s"
        return stderr

    def terminate(self) -> None:
        if self.process.returncode is not None:
            return
        try:
            self.process.kill()
        except ProcessLookupError:
            pass


class CursorAgentSession:
    """
    Spawns cursor-agent for each request.

    Args:
        command: cursor-agent 可执行文件
        workspace: --workspace 目录
        force: 是否传 --force
        timeout: 单次运行的最长秒数
    """

    def __init__(
        self,
        command: str = "cursor-agent",
        workspace: str = ".",
        force: bool = True,
        timeout: Optional[float] = None,
    ):
        self.command = command
        self.workspace = workspace
        self.force = force
        self.timeout = timeout

    async def open(self, prompt: str, model: str) -> CursorAgentRun:
        argv = build_agent_command(self.command, self.workspace, model, self.force)
        log.debug(f"Spawning {' '.join(argv)}", tag="AGENT")
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise AgentSessionError(f"Failed to start {self.command}: {e}") from e

        if process.stdin is not None:
            try:
                process.stdin.write(prompt.encode("utf-8"))
                await process.stdin.drain()
            except (BrokenPipeError, ConnectionResetError) as e:
                log.warning(f"Agent closed stdin early: {e}", tag="AGENT")
            finally:
                process.stdin.close()

        return CursorAgentRun(process, self.timeout)
