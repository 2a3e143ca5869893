"""Per-request state: normalized runtime events, wire events and counters."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict


class ChatTurn(BaseModel):
    model_config = ConfigDict(frozen=True, strict=True)

    role: Literal["user", "assistant"]
    content: str


# Agent runtime events, normalized from SDK messages.


@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class AssistantTurn:
    """Assistant message; carries the tool invocations it requested, in order."""

    tool_names: tuple[str, ...] = ()


@dataclass(frozen=True)
class ToolProgress:
    tool: str
    elapsed: float


@dataclass(frozen=True)
class QueryResult:
    subtype: str

    @property
    def ok(self) -> bool:
        return self.subtype == "success"


RuntimeEvent = Union[TextDelta, AssistantTurn, ToolProgress, QueryResult]


# Outbound wire events. Field order is the serialized key order.


class TextDeltaEvent(BaseModel):
    type: Literal["text_delta"] = "text_delta"
    text: str


class ToolStartEvent(BaseModel):
    type: Literal["tool_start"] = "tool_start"
    tool: str


class ToolProgressEvent(BaseModel):
    type: Literal["tool_progress"] = "tool_progress"
    tool: str
    elapsed: float


class DoneEvent(BaseModel):
    type: Literal["done"] = "done"


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    message: str


WireEvent = Union[TextDeltaEvent, ToolStartEvent, ToolProgressEvent, DoneEvent, ErrorEvent]


@dataclass
class RequestMetrics:
    """Counters for a single request. Timestamps are ``perf_counter`` seconds."""

    request_start: float
    stream_start: float = field(default_factory=time.perf_counter)
    tools_used: int = 0
    text_chunks: int = 0

    def total_duration_ms(self, now: float | None = None) -> float:
        now = time.perf_counter() if now is None else now
        return (now - self.request_start) * 1000

    def stream_duration_ms(self, now: float | None = None) -> float:
        now = time.perf_counter() if now is None else now
        return (now - self.stream_start) * 1000
