"""Shared fixtures: a scripted OpenAI-compatible endpoint on httpx.MockTransport."""

import asyncio
import json

import httpx
import pytest

from srt_ai_translator.config import ApiConfig, RunOptions
from srt_ai_translator.models import SubtitleEntry


API = ApiConfig(
    base_url="https://api.test/v1",
    api_key="sk-test",
    model_name="test-model",
    system_prompt_template="Translate {source_language} to {target_language}.",
)


def sse_lines(*deltas, done=True) -> bytes:
    """Event-stream body carrying the given text deltas."""
    lines = []
    for delta in deltas:
        chunk = {"choices": [{"index": 0, "delta": {"content": delta}}]}
        lines.append(f"data: {json.dumps(chunk)}\n\n")
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode("utf-8")


def stream(*deltas, done=True):
    """Handler answering with one complete event-stream body."""
    body = sse_lines(*deltas, done=done)

    def handler(request):
        return httpx.Response(200, content=body, headers={"content-type": "text/event-stream"})
    return handler


def chunked(*chunks, delay=0.0):
    """Handler streaming the given raw byte chunks one read at a time."""
    def handler(request):
        async def body():
            for chunk in chunks:
                if delay:
                    await asyncio.sleep(delay)
                yield chunk
        return httpx.Response(200, content=body(), headers={"content-type": "text/event-stream"})
    return handler


def status(code, message="error", error_code=None):
    """Handler answering with an OpenAI-style JSON error body."""
    def handler(request):
        error = {"message": message, "type": "error"}
        if error_code:
            error["code"] = error_code
        return httpx.Response(code, json={"error": error})
    return handler


def connect_error(request):
    raise httpx.ConnectError("connection refused", request=request)


class FakeServer:
    """Scripted endpoint: answers requests from a queue, then with a default."""

    def __init__(self, *handlers, default=None, models=None):
        self.handlers = list(handlers)
        self.default = default
        self.models = models
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path.endswith("/models"):
            if self.models is not None:
                return self.models(request)
            return httpx.Response(200, json={"object": "list", "data": []})
        handler = self.handlers.pop(0) if self.handlers else self.default
        if handler is None:
            raise AssertionError(f"Unexpected request #{len(self.requests)}")
        return handler(request)

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))

    @property
    def chat_requests(self):
        return [r for r in self.requests if r.url.path.endswith("/chat/completions")]

    @property
    def prompts(self):
        return [json.loads(r.content)["messages"][1]["content"] for r in self.chat_requests]


@pytest.fixture
def api_config():
    return API


@pytest.fixture
def fast_options():
    return RunOptions(retry_delay=0)


@pytest.fixture
def entries():
    return [
        SubtitleEntry(1, "00:00:01,000", "00:00:02,000", "Hello"),
        SubtitleEntry(2, "00:00:03,000", "00:00:04,000", "World"),
        SubtitleEntry(3, "00:00:05,000", "00:00:06,000", "Bye"),
    ]
