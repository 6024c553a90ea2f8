"""
Chat Completions 处理流程

request -> prompt -> cursor-agent -> NDJSON events -> OpenAI response

Tool loop modes:
- forward:    the first declared tool call ends the turn and is returned to
              the caller (finish_reason=tool_calls); the caller runs it and
              sends a follow-up request with a role:"tool" message
- proxy-exec: the proxy runs the call through the executor chain, appends the
              result to the history and restarts the agent, up to
              max_tool_rounds times
- off:        tool calls are never translated
"""

import json
from typing import Any, AsyncIterator, Dict, List, NamedTuple, Optional, Sequence, Set, Union

from pydantic import BaseModel, ConfigDict, Field

from log import log

from ..agent.session import AgentSession
from ..errors import classify_agent_error, format_error_for_user
from ..exceptions import BridgeError
from ..streaming.events import AssistantTextDelta, ErrorEvent, ThinkingDelta, ToolInvocation, parse_agent_event
from ..streaming.sse import DeltaTracker, SSEChunkBuilder, format_sse_chunk
from ..tools.chain import execute_with_chain
from ..tools.executors.local import LocalExecutor
from ..tools.registry import ToolRegistry
from ..tools.types import ToolExecutor
from .formatter import create_chat_completion_response
from .prompt_builder import build_prompt
from .tool_loop import (
    create_tool_call_completion_response,
    create_tool_call_stream_chunks,
    extract_allowed_tool_names,
    extract_openai_tool_call,
)
from .tool_loop_guard import ToolLoopGuard, format_guard_message
from .types import OpenAiToolCall, ProxyConfig, ToolLoopMeta

__all__ = [
    "ChatRequest",
    "ChatCompletionsHandler",
    "normalize_model",
]

MODEL_PREFIX = "cursor-acp/"
DEFAULT_MODEL = "auto"


class ChatRequest(BaseModel):
    """OpenAI chat-completions 请求 (只取用到的字段)"""

    model_config = ConfigDict(extra="allow")

    model: Optional[str] = None
    messages: List[Dict[str, Any]] = Field(default_factory=list)
    tools: Optional[List[Dict[str, Any]]] = None
    stream: bool = False


class _Output(NamedTuple):
    """One item produced while driving the agent.

    kind: text | reasoning | tool_call | error | notice
    """

    kind: str
    value: Any


def normalize_model(model: Optional[str]) -> str:
    """cursor-acp/gpt-5 -> gpt-5; 空值 -> auto"""
    if not model:
        return DEFAULT_MODEL
    if model.startswith(MODEL_PREFIX):
        model = model[len(MODEL_PREFIX):]
    return model or DEFAULT_MODEL


class ChatCompletionsHandler:
    """
    Runs one chat-completions request against an agent session.

    Args:
        config: 代理配置 (tool_loop_mode / max_tool_rounds / tool_loop_max_repeat)
        session: AgentSession，每轮 open() 一次
        registry: proxy-exec 模式下可执行的工具
        executors: 执行器链，默认 [LocalExecutor(registry)]
    """

    def __init__(
        self,
        config: ProxyConfig,
        session: AgentSession,
        registry: Optional[ToolRegistry] = None,
        executors: Optional[Sequence[ToolExecutor]] = None,
    ):
        self.config = config
        self.session = session
        self.registry = registry if registry is not None else ToolRegistry()
        self.executors = list(executors) if executors is not None else [LocalExecutor(self.registry)]

    # ==================== entry ====================

    async def handle(self, body: Dict[str, Any]) -> Union[Dict[str, Any], AsyncIterator[str]]:
        """
        Returns:
            dict (非流式) 或 SSE 字符串的异步迭代器 (流式)

        Raises:
            pydantic.ValidationError: 请求体结构不合法
        """
        request = ChatRequest.model_validate(body)
        model = normalize_model(request.model)
        meta = ToolLoopMeta.new(model)
        log.info(
            f"chat.completions model={model} stream={request.stream} "
            f"messages={len(request.messages)} tools={len(request.tools or [])}",
            tag="PROXY",
        )
        if request.stream:
            return self.stream(request, model, meta)
        return await self.complete(request, model, meta)

    # ==================== non-stream ====================

    async def complete(self, request: ChatRequest, model: str, meta: ToolLoopMeta) -> Dict[str, Any]:
        text: List[str] = []
        reasoning: List[str] = []
        tool_call: Optional[OpenAiToolCall] = None

        async for output in self._drive(request, model):
            if output.kind == "text":
                text.append(output.value)
            elif output.kind == "reasoning":
                reasoning.append(output.value)
            elif output.kind == "tool_call":
                tool_call = output.value
            elif output.kind in ("error", "notice"):
                if text:
                    text.append("\n\n")
                text.append(output.value)

        if tool_call is not None:
            return create_tool_call_completion_response(meta, tool_call)
        return create_chat_completion_response(meta, "".join(text), "".join(reasoning) or None)

    # ==================== stream ====================

    async def stream(self, request: ChatRequest, model: str, meta: ToolLoopMeta) -> AsyncIterator[str]:
        builder = SSEChunkBuilder(meta.id, meta.model, meta.created)
        yield builder.build_role_chunk()

        # 终止 chunk 总是最后发送
        terminal: Optional[List[str]] = None
        try:
            async for output in self._drive(request, model):
                if output.kind == "text":
                    yield builder.build_content_chunk(output.value)
                elif output.kind == "reasoning":
                    yield builder.build_reasoning_chunk(output.value)
                elif output.kind == "notice":
                    yield builder.build_content_chunk(output.value)
                elif output.kind == "tool_call":
                    terminal = [format_sse_chunk(c) for c in create_tool_call_stream_chunks(meta, output.value)]
                elif output.kind == "error":
                    terminal = [builder.build_content_chunk(output.value, finish_reason="stop")]
        except BridgeError as e:
            log.error(f"Stream failed: {e}", tag="PROXY")
            terminal = [builder.build_content_chunk(f"cursor-acp error: {e}", finish_reason="stop")]

        for chunk in terminal or [builder.build_finish_chunk("stop")]:
            yield chunk
        yield builder.build_done_marker()

    # ==================== agent loop ====================

    def _allowed_tool_names(self, request: ChatRequest) -> Set[str]:
        mode = self.config.tool_loop_mode
        if mode == "off":
            return set()
        declared = extract_allowed_tool_names(request.tools)
        if mode == "proxy-exec":
            return declared | set(self.registry.names())
        return declared

    def _prompt_tools(self, request: ChatRequest) -> List[Dict[str, Any]]:
        tools = list(request.tools or [])
        if self.config.tool_loop_mode == "proxy-exec":
            tools.extend(self.registry.to_openai_tools(exclude=extract_allowed_tool_names(tools)))
        return tools

    async def _drive(self, request: ChatRequest, model: str) -> AsyncIterator[_Output]:
        """Run agent turns until a final output; proxy-exec may run several."""
        messages = list(request.messages)
        tools = self._prompt_tools(request)
        allowed = self._allowed_tool_names(request)
        guard: Optional[ToolLoopGuard] = None
        rounds = 0

        while True:
            tool_call: Optional[OpenAiToolCall] = None
            failed = False
            async for output in self._agent_turn(messages, tools, model, allowed):
                if output.kind == "tool_call":
                    tool_call = output.value
                    continue
                failed = failed or output.kind == "error"
                yield output

            if tool_call is None or failed:
                return

            if self.config.tool_loop_mode != "proxy-exec":
                if guard is None:
                    guard = ToolLoopGuard(request.messages, self.config.tool_loop_max_repeat)
                decision = guard.evaluate(tool_call)
                if decision.triggered:
                    log.warning(
                        f"Tool loop guard triggered: {decision.fingerprint} "
                        f"({decision.repeat_count}>{decision.max_repeat})",
                        tag="TOOL_LOOP",
                    )
                    yield _Output("notice", format_guard_message(tool_call, decision))
                    return
                log.route(f"Forwarding tool call {tool_call.function.name} ({tool_call.id})", tag="TOOL_LOOP")
                yield _Output("tool_call", tool_call)
                return

            if rounds >= self.config.max_tool_rounds:
                log.warning(f"Tool loop stopped after {rounds} rounds", tag="TOOL_LOOP")
                yield _Output(
                    "notice",
                    f"Tool loop stopped after {rounds} rounds (max_tool_rounds={self.config.max_tool_rounds}).",
                )
                return

            rounds += 1
            messages.extend(await self._execute_tool_call(tool_call))

    async def _execute_tool_call(self, tool_call: OpenAiToolCall) -> List[Dict[str, Any]]:
        """执行工具并返回要追加到历史的两条消息"""
        try:
            args = json.loads(tool_call.function.arguments)
        except ValueError:
            args = {}
        if not isinstance(args, dict):
            args = {"value": args}

        log.route(f"Executing {tool_call.function.name} ({tool_call.id}) locally", tag="TOOL_LOOP")
        result = await execute_with_chain(self.executors, tool_call.function.name, args)
        if not result.ok:
            log.warning(f"Tool {tool_call.function.name} failed: {result.error}", tag="TOOL_LOOP")

        return [
            {"role": "assistant", "content": None, "tool_calls": [tool_call.to_dict()]},
            {"role": "tool", "tool_call_id": tool_call.id, "content": result.as_text()},
        ]

    async def _agent_turn(
        self,
        messages: List[Dict[str, Any]],
        tools: List[Dict[str, Any]],
        model: str,
        allowed: Set[str],
    ) -> AsyncIterator[_Output]:
        """One agent process: stream its events, stop at the first forwardable tool call."""
        prompt = build_prompt(messages, tools)
        run = await self.session.open(prompt, model)
        text_tracker = DeltaTracker()

        try:
            async for line in run.lines():
                event = parse_agent_event(line)
                if event is None:
                    continue

                if isinstance(event, AssistantTextDelta):
                    delta = text_tracker.next_delta(event.text, event.partial)
                    if delta:
                        yield _Output("text", delta)
                elif isinstance(event, ThinkingDelta):
                    if event.text:
                        yield _Output("reasoning", event.text)
                elif isinstance(event, ToolInvocation):
                    if not event.is_started:
                        continue
                    tool_call = extract_openai_tool_call(event, allowed)
                    if tool_call is None:
                        log.debug(f"Agent-internal tool call suppressed: {event.tool_name}", tag="TOOL_LOOP")
                        continue
                    run.terminate()
                    yield _Output("tool_call", tool_call)
                    return
                elif isinstance(event, ErrorEvent):
                    run.terminate()
                    yield _Output("error", format_error_for_user(classify_agent_error(event.raw_message)))
                    return

            exit_code = await run.wait()
            if exit_code != 0:
                stderr = (await run.read_stderr()).strip()
                if stderr:
                    error = classify_agent_error(stderr)
                    log.error(f"cursor-agent exited with {exit_code}: {error.type}", tag="AGENT")
                    yield _Output("error", format_error_for_user(error))
                else:
                    log.debug(f"cursor-agent exited with {exit_code} without stderr", tag="AGENT")
        finally:
            run.terminate()
