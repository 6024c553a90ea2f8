"""
cursor-agent 子进程会话测试 (用 shell 脚本代替 cursor-agent)
"""

import json
import stat
import sys

import pytest

from acp_bridge.agent.session import CursorAgentSession, build_agent_command
from acp_bridge.exceptions import AgentSessionError

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="posix shell scripts")


def _fake_agent(tmp_path, body: str) -> str:
    script = tmp_path / "fake-agent"
    script.write_text("#!/bin/sh\n" + body + "\n", encoding="utf-8")
    script.chmod(script.stat().st_mode | stat.S_IXUSR)
    return str(script)


class TestBuildAgentCommand:
    def test_flags(self):
        argv = build_agent_command("cursor-agent", "/ws", "gpt-5", force=True)
        assert argv[:5] == ["cursor-agent", "--print", "--output-format", "stream-json", "--stream-partial-output"]
        assert argv[argv.index("--workspace") + 1] == "/ws"
        assert argv[argv.index("--model") + 1] == "gpt-5"
        assert argv[-1] == "--force"

    def test_without_force(self):
        assert "--force" not in build_agent_command("cursor-agent", "/ws", "auto", force=False)


class TestCursorAgentSession:
    @pytest.mark.asyncio
    async def test_reads_lines_and_stderr(self, tmp_path):
        event = json.dumps({"type": "assistant", "message": {"content": [{"type": "text", "text": "hi"}]}})
        command = _fake_agent(
            tmp_path,
            f"cat > {tmp_path / 'prompt.txt'}\n"
            f"echo '{event}'\n"
            "printf 'tail-without-newline'\n"
            "echo 'boom' >&2\n"
            "exit 2",
        )
        session = CursorAgentSession(command=command, workspace=str(tmp_path), timeout=10)
        run = await session.open("USER: hello", "auto")

        lines = [line async for line in run.lines()]
        assert lines == [event, "tail-without-newline"]
        assert await run.wait() == 2
        assert (await run.read_stderr()).strip() == "boom"
        assert (tmp_path / "prompt.txt").read_text(encoding="utf-8") == "USER: hello"

    @pytest.mark.asyncio
    async def test_timeout_terminates(self, tmp_path):
        command = _fake_agent(tmp_path, "exec sleep 5")
        run = await CursorAgentSession(command=command, workspace=str(tmp_path), timeout=0.2).open("x", "auto")

        assert [line async for line in run.lines()] == []
        assert run.timed_out is True
        assert await run.wait() != 0
        assert "timeout after 0.2s" in await run.read_stderr()

    @pytest.mark.asyncio
    async def test_missing_binary(self, tmp_path):
        session = CursorAgentSession(command=str(tmp_path / "does-not-exist"))
        with pytest.raises(AgentSessionError):
            await session.open("x", "auto")
