"""Command-line client for the chat relay server."""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Iterable, Iterator
from typing import Any, TextIO

import httpx

DONE_SENTINEL = "[DONE]"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Chat with the relay server")
    parser.add_argument("prompt", nargs="?", help="User message (omit with --interactive)")
    parser.add_argument("--server-url", default="http://localhost:7002", help="Chat server base URL")
    parser.add_argument("--timeout", type=float, default=300.0, help="Read timeout seconds")
    parser.add_argument("--interactive", action="store_true", help="Keep a conversation going on stdin")
    parser.add_argument("--verbose", action="store_true", help="Print tool activity")
    return parser


def iter_sse_events(lines: Iterable[str]) -> Iterator[dict[str, Any]]:
    """Decode ``data:`` lines until the ``[DONE]`` sentinel."""
    for line in lines:
        if not line.startswith("data:"):
            continue
        data = line[len("data:"):].strip()
        if data == DONE_SENTINEL:
            return
        yield json.loads(data)


def stream_reply(
    client: httpx.Client,
    url: str,
    messages: list[dict[str, str]],
    verbose: bool = False,
    out: TextIO | None = None,
) -> tuple[str, bool]:
    """Send the conversation and print the reply; returns (text, ok)."""
    if out is None:
        out = sys.stdout
    parts: list[str] = []
    with client.stream("POST", url, json={"messages": messages}) as resp:
        if resp.status_code >= 400:
            resp.read()
            print(f"Request failed: {resp.status_code}", file=out)
            print(resp.text, file=out)
            return "", False

        for event in iter_sse_events(resp.iter_lines()):
            kind = event.get("type")
            if kind == "text_delta":
                parts.append(event["text"])
                out.write(event["text"])
                out.flush()
            elif kind == "tool_start" and verbose:
                print(f"\n[tool] {event['tool']}", file=out)
            elif kind == "tool_progress" and verbose:
                print(f"[tool] {event['tool']} running {event['elapsed']:.1f}s", file=out)
            elif kind == "error":
                print(f"\n[error] {event['message']}", file=out)
                return "".join(parts), False
    print(file=out)
    return "".join(parts), True


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.prompt and not args.interactive:
        parser.error("a prompt is required unless --interactive is given")

    url = f"{args.server_url}/api/chat"
    history: list[dict[str, str]] = []
    pending = args.prompt

    # Avoid inheriting system proxy settings that can break localhost calls.
    timeout = httpx.Timeout(10.0, read=args.timeout)
    with httpx.Client(timeout=timeout, trust_env=False) as client:
        while True:
            if pending is None:
                try:
                    pending = input("> ").strip()
                except EOFError:
                    return 0
                if not pending:
                    pending = None
                    continue

            history.append({"role": "user", "content": pending})
            try:
                reply, ok = stream_reply(client, url, history, verbose=args.verbose)
            except httpx.ReadTimeout:
                print("Request timed out. The server may still be processing the request.")
                print("Try again with a longer timeout, e.g. --timeout 600")
                return 1
            if not ok:
                return 1
            history.append({"role": "assistant", "content": reply})

            if not args.interactive:
                return 0
            pending = None


if __name__ == "__main__":
    raise SystemExit(main())
