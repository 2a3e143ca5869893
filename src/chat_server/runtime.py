"""Agent runtime adapter.

Opens the claude-agent-sdk query for a composed prompt and normalizes the SDK's
message classes into the small event union the stream translator works with.

The CLI writes tool progress as a top-level ``tool_progress`` frame, which the
SDK's message parser skips as an unknown type. ``ProgressTaggingTransport``
re-tags those frames as ``system`` messages so they reach us as a
``SystemMessage`` with subtype ``tool_progress``.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from typing import Any

from claude_agent_sdk import ClaudeAgentOptions, Transport, query
from claude_agent_sdk._internal.transport.subprocess_cli import SubprocessCLITransport
from claude_agent_sdk.types import (
    AssistantMessage,
    ResultMessage,
    StreamEvent,
    SystemMessage,
    ToolUseBlock,
)

from .settings import ChatSettings
from .state import AssistantTurn, QueryResult, RuntimeEvent, TextDelta, ToolProgress

AgentSource = Callable[[str], AsyncIterator[Any]]

TOOL_PROGRESS_SUBTYPE = "tool_progress"


def retag_frame(data: dict[str, Any]) -> dict[str, Any]:
    if data.get("type") == TOOL_PROGRESS_SUBTYPE:
        return {**data, "type": "system", "subtype": TOOL_PROGRESS_SUBTYPE}
    return data


class ProgressTaggingTransport(Transport):
    """Delegates to another transport, re-tagging tool progress frames on read."""

    def __init__(self, inner: Transport) -> None:
        self._inner = inner

    async def connect(self) -> None:
        await self._inner.connect()

    async def write(self, data: str) -> None:
        await self._inner.write(data)

    def read_messages(self) -> AsyncIterator[dict[str, Any]]:
        return self._read_messages()

    async def _read_messages(self) -> AsyncIterator[dict[str, Any]]:
        async for data in self._inner.read_messages():
            yield retag_frame(data)

    async def close(self) -> None:
        await self._inner.close()

    def is_ready(self) -> bool:
        return self._inner.is_ready()

    async def end_input(self) -> None:
        await self._inner.end_input()


def build_agent_options(settings: ChatSettings) -> ClaudeAgentOptions:
    return ClaudeAgentOptions(
        max_turns=settings.max_turns,
        tools={"type": "preset", "preset": settings.tools_preset},
        permission_mode=settings.permission_mode,
        include_partial_messages=settings.include_partial_messages,
        cwd=settings.agent_cwd,
        model=settings.model,
    )


def open_agent_stream(prompt: str, settings: ChatSettings) -> AsyncIterator[Any]:
    """Return the lazy SDK message iterator; errors surface on iteration."""
    options = build_agent_options(settings)
    # A custom transport does not receive the options, so the CLI transport is built with them here.
    transport = ProgressTaggingTransport(SubprocessCLITransport(prompt=prompt, options=options))
    return query(prompt=prompt, options=options, transport=transport)


def sdk_agent_source(settings: ChatSettings) -> AgentSource:
    def _source(prompt: str) -> AsyncIterator[Any]:
        return open_agent_stream(prompt, settings)

    return _source


def normalize_message(message: Any) -> RuntimeEvent | None:
    """Map one SDK message to a runtime event, or ``None`` when irrelevant."""
    if isinstance(message, StreamEvent):
        return _text_delta(message.event)
    if isinstance(message, AssistantMessage):
        names = tuple(block.name for block in message.content if isinstance(block, ToolUseBlock))
        return AssistantTurn(tool_names=names)
    if isinstance(message, SystemMessage):
        if message.subtype == TOOL_PROGRESS_SUBTYPE:
            data = message.data or {}
            return ToolProgress(
                tool=str(data.get("tool_name", "")),
                elapsed=float(data.get("elapsed_time_seconds") or 0.0),
            )
        return None
    if isinstance(message, ResultMessage):
        return QueryResult(subtype=message.subtype)
    return None


def _text_delta(event: dict[str, Any]) -> TextDelta | None:
    if event.get("type") != "content_block_delta":
        return None
    delta = event.get("delta") or {}
    if delta.get("type") != "text_delta":
        return None
    return TextDelta(text=delta.get("text", ""))
