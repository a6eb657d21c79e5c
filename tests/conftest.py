"""Shared fixtures for the AWB test suite."""

import asyncio
import json
from collections import deque
from unittest.mock import patch

import httpx
import pytest

GENERATE_PATH = "/api/ai/generate-widget"
CRITIQUE_PATH = "/api/ai/critique-widget"

PASSED = {"passed": True, "score": 9, "issues": []}


def failing(description="Button does nothing", severity="major", score=5):
    """Critique verdict with one issue."""
    return {
        "passed": False,
        "score": score,
        "issues": [
            {
                "category": "functionality",
                "severity": severity,
                "description": description,
                "fix": "Wire up the click handler",
            }
        ],
    }


def widget_doc(title="Test Widget", body="<div class=\"widget\">Hello</div>"):
    """A complete widget document."""
    return (
        "<!DOCTYPE html>\n<html>\n<head>\n"
        f"<title>{title}</title>\n"
        "<style>.widget { color: teal; }</style>\n"
        "</head>\n<body>\n"
        f"{body}\n"
        "</body>\n</html>"
    )


def sse_frames(text, parts=2):
    """Split text into SSE content frames followed by the DONE frame."""
    size = max(1, -(-len(text) // parts))
    chunks = [text[i:i + size] for i in range(0, len(text), size)]
    frames = [f"data: {json.dumps({'content': chunk})}\n\n" for chunk in chunks]
    frames.append("data: [DONE]\n\n")
    return frames


def sse_body(text, parts=2):
    return "".join(sse_frames(text, parts)).encode()


class GatedStream(httpx.AsyncByteStream):
    """Streams the first frame, then holds the rest until the gate opens."""

    def __init__(self, frames, gate: asyncio.Event):
        self._frames = frames
        self._gate = gate

    async def __aiter__(self):
        yield self._frames[0].encode()
        await self._gate.wait()
        for frame in self._frames[1:]:
            yield frame.encode()


class Gated:
    """Queue entry for a generation whose stream stalls after the first frame."""

    def __init__(self, text):
        self.text = text
        self.gate = asyncio.Event()


class FakeWidgetApi:
    """In-process stand-in for the generation and critique endpoints.

    Queue generations as text, httpx.Response, exceptions or Gated entries;
    queue critiques as dicts, httpx.Response or exceptions. An empty
    critique queue answers with a passing verdict.
    """

    def __init__(self):
        self.generations = deque()
        self.critiques = deque()
        self.requests = []

    def bodies(self, path):
        return [body for request_path, body in self.requests if request_path == path]

    @property
    def generation_bodies(self):
        return self.bodies(GENERATE_PATH)

    @property
    def critique_bodies(self):
        return self.bodies(CRITIQUE_PATH)

    async def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append((request.url.path, body))

        if request.url.path == GENERATE_PATH:
            item = self.generations.popleft()
        elif request.url.path == CRITIQUE_PATH:
            item = self.critiques.popleft() if self.critiques else PASSED
        else:
            return httpx.Response(404, json={"error": "Not found"})

        if isinstance(item, Exception):
            raise item
        if isinstance(item, httpx.Response):
            return item
        if isinstance(item, Gated):
            return httpx.Response(
                200,
                headers={"content-type": "text/event-stream"},
                stream=GatedStream(sse_frames(item.text), item.gate),
            )
        if isinstance(item, dict):
            return httpx.Response(200, json=item)
        return httpx.Response(
            200, headers={"content-type": "text/event-stream"}, content=sse_body(item)
        )

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url="http://testserver", transport=httpx.MockTransport(self.handler)
        )


async def wait_until(predicate, timeout=2.0):
    """Yield to the event loop until predicate() holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def api():
    return FakeWidgetApi()


@pytest.fixture
def mock_config(tmp_path):
    """Patch the config singleton with test-friendly values."""
    test_config = {
        "api_base_url": "http://testserver",
        "generate_path": GENERATE_PATH,
        "critique_path": CRITIQUE_PATH,
        "max_build_iterations": 5,
        "max_refine_iterations": 3,
        "max_extra_fixes": 2,
        "clarify_first": False,
        "preview_debounce_seconds": 0.05,
        "cancel_notice_seconds": 0.05,
        "request_timeout_seconds": 5,
        "http_max_retries": 0,
        "summary_max_chars": 100,
        "title_max_chars": 50,
        "output_dir": str(tmp_path / "output"),
        "log_level": "DEBUG",
    }
    with patch("awb.config._config", test_config):
        yield test_config
