import io

import httpx

from client.cli import iter_sse_events, stream_reply

SSE_BODY = (
    'data: {"type":"tool_start","tool":"WebSearch"}\n\n'
    'data: {"type":"tool_progress","tool":"WebSearch","elapsed":1.0}\n\n'
    'data: {"type":"text_delta","text":"Hello"}\n\n'
    'data: {"type":"text_delta","text":" there"}\n\n'
    'data: {"type":"done"}\n\n'
    "data: [DONE]\n\n"
)


def test_iter_sse_events_stops_at_sentinel():
    lines = ["data: {\"type\":\"done\"}", "", "data: [DONE]", "data: {\"type\":\"late\"}"]
    assert list(iter_sse_events(lines)) == [{"type": "done"}]


def _client(body: str, status: int = 200) -> httpx.Client:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, text=body, headers={"content-type": "text/event-stream"})

    return httpx.Client(transport=httpx.MockTransport(handler))


def test_stream_reply_collects_text():
    out = io.StringIO()
    with _client(SSE_BODY) as client:
        reply, ok = stream_reply(client, "http://test/api/chat", [{"role": "user", "content": "hi"}], verbose=True, out=out)
    assert ok is True
    assert reply == "Hello there"
    assert "[tool] WebSearch" in out.getvalue()


def test_stream_reply_reports_error_event():
    body = 'data: {"type":"text_delta","text":"par"}\n\ndata: {"type":"error","message":"Stream error occurred"}\n\ndata: [DONE]\n\n'
    out = io.StringIO()
    with _client(body) as client:
        reply, ok = stream_reply(client, "http://test/api/chat", [], out=out)
    assert ok is False
    assert reply == "par"
    assert "Stream error occurred" in out.getvalue()


def test_stream_reply_http_error():
    out = io.StringIO()
    with _client('{"error":"No user message found"}', status=400) as client:
        reply, ok = stream_reply(client, "http://test/api/chat", [], out=out)
    assert ok is False
    assert "Request failed: 400" in out.getvalue()
