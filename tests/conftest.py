"""Shared fixtures: a recording telemetry fake and SDK message builders."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass, field
from typing import Any

import pytest
from claude_agent_sdk._internal.message_parser import parse_message
from claude_agent_sdk.types import (
    AssistantMessage,
    ResultMessage,
    StreamEvent,
    TextBlock,
    ToolUseBlock,
)
from fastapi.testclient import TestClient

from chat_server.app import app, get_agent_source
from chat_server.runtime import retag_frame
from chat_server.settings import get_settings
from chat_server.telemetry import get_telemetry


@dataclass
class FakeSpan:
    """Matches the slice of the OpenTelemetry span API the server uses."""

    name: str
    attributes: dict[str, Any] = field(default_factory=dict)
    status: Any = None
    exceptions: list[BaseException] = field(default_factory=list)
    ended: int = 0

    def set_attribute(self, key: str, value: Any) -> None:
        self.attributes[key] = value

    def set_status(self, status: Any) -> None:
        self.status = status

    def record_exception(self, exc: BaseException) -> None:
        self.exceptions.append(exc)

    def end(self) -> None:
        self.ended += 1


@dataclass
class FakeTelemetry:
    """Records log, metric and span calls instead of shipping them anywhere."""

    logs: list[tuple[str, str, dict[str, Any]]] = field(default_factory=list)
    counts: list[tuple[str, int, dict[str, str]]] = field(default_factory=list)
    distributions: list[tuple[str, float, str, dict[str, str]]] = field(default_factory=list)
    spans: list[FakeSpan] = field(default_factory=list)

    def start_span(self, name: str, attributes: dict[str, Any] | None = None) -> FakeSpan:
        span = FakeSpan(name, dict(attributes or {}))
        self.spans.append(span)
        return span

    def info(self, event: str, **attributes: Any) -> None:
        self.logs.append(("info", event, attributes))

    def warning(self, event: str, **attributes: Any) -> None:
        self.logs.append(("warning", event, attributes))

    def error(self, event: str, exc_info: bool = False, **attributes: Any) -> None:
        self.logs.append(("error", event, attributes))

    def count(self, name: str, value: int = 1, tags: dict[str, str] | None = None) -> None:
        self.counts.append((name, value, tags or {}))

    def distribution(self, name: str, value: float, unit: str = "", tags: dict[str, str] | None = None) -> None:
        self.distributions.append((name, value, unit, tags or {}))

    def counted(self, name: str) -> list[dict[str, str]]:
        return [tags for metric, _, tags in self.counts if metric == name]

    def sampled(self, name: str) -> list[float]:
        return [value for metric, value, _, _ in self.distributions if metric == name]

    def logged(self, event: str) -> list[dict[str, Any]]:
        return [attrs for _, name, attrs in self.logs if name == event]


def text_delta(text: str) -> StreamEvent:
    return StreamEvent(
        uuid="evt",
        session_id="session",
        event={"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": text}},
    )


def assistant(*blocks: Any) -> AssistantMessage:
    return AssistantMessage(content=list(blocks), model="claude-sonnet")


def tool_use(name: str, tool_id: str = "toolu_1") -> ToolUseBlock:
    return ToolUseBlock(id=tool_id, name=name, input={})


def text_block(text: str) -> TextBlock:
    return TextBlock(text=text)


def tool_progress_frame(name: str, elapsed: float) -> dict[str, Any]:
    """Raw stdout frame the claude CLI writes while a tool is running."""
    return {
        "type": "tool_progress",
        "tool_use_id": "toolu_1",
        "tool_name": name,
        "parent_tool_use_id": None,
        "elapsed_time_seconds": elapsed,
        "uuid": "evt",
        "session_id": "session",
    }


def tool_progress(name: str, elapsed: float) -> Any:
    """The SDK message a progress frame becomes after passing through our transport."""
    return parse_message(retag_frame(tool_progress_frame(name, elapsed)))


def result(subtype: str = "success") -> ResultMessage:
    return ResultMessage(
        subtype=subtype,
        duration_ms=10,
        duration_api_ms=8,
        is_error=subtype != "success",
        num_turns=1,
        session_id="session",
    )


async def aiter_messages(messages: Iterable[Any], fail_with: Exception | None = None) -> AsyncIterator[Any]:
    for message in messages:
        await asyncio.sleep(0)
        yield message
    if fail_with is not None:
        raise fail_with


class ScriptedSource:
    """Agent source that replays a fixed message script and records prompts."""

    def __init__(
        self,
        messages: Iterable[Any],
        fail_with: Exception | None = None,
        fail_on_open: Exception | None = None,
    ) -> None:
        self.messages = list(messages)
        self.fail_with = fail_with
        self.fail_on_open = fail_on_open
        self.prompts: list[str] = []

    def __call__(self, prompt: str) -> AsyncIterator[Any]:
        self.prompts.append(prompt)
        if self.fail_on_open is not None:
            raise self.fail_on_open
        return aiter_messages(self.messages, self.fail_with)


@pytest.fixture
def telemetry() -> FakeTelemetry:
    return FakeTelemetry()


@pytest.fixture
def make_client(telemetry):
    get_settings.cache_clear()

    def _make(source: ScriptedSource) -> TestClient:
        app.dependency_overrides[get_telemetry] = lambda: telemetry
        app.dependency_overrides[get_agent_source] = lambda: source
        return TestClient(app)

    yield _make
    app.dependency_overrides.clear()
    get_settings.cache_clear()
