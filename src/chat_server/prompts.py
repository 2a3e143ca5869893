"""Prompt template and composition for the relay.

Keep prompts here so request handling stays thin and testable.
"""

from __future__ import annotations

from collections.abc import Sequence

from .state import ChatTurn

SYSTEM_PROMPT = """You are a helpful personal assistant designed to help with general research, questions, and tasks.

Your role is to:
- Answer questions on any topic accurately and thoroughly
- Help with research by searching the web for current information
- Assist with writing, editing, and brainstorming
- Provide explanations and summaries of complex topics
- Help solve problems and think through decisions

Guidelines:
- Be friendly, clear, and conversational
- Use web search when you need current information, facts you're unsure about, or real-time data
- Keep responses concise but complete - expand when the topic warrants depth
- Use markdown formatting when it helps readability (bullet points, code blocks, etc.)
- Be honest when you don't know something and offer to search for answers"""

ROLE_LABELS = {"user": "User", "assistant": "Assistant"}


def render_history(turns: Sequence[ChatTurn]) -> str:
    """Flatten every turn except the last into a blank-line separated transcript."""
    return "\n\n".join(f"{ROLE_LABELS[turn.role]}: {turn.content}" for turn in turns[:-1])


def compose_prompt(turns: Sequence[ChatTurn], active: ChatTurn) -> str:
    history = render_history(turns)
    if history:
        return f"{SYSTEM_PROMPT}\n\nPrevious conversation:\n{history}\n\nUser: {active.content}"
    return f"{SYSTEM_PROMPT}\n\nUser: {active.content}"
