"""Shared test fixtures for the gemini-mcp test suite."""

import pytest

from gemini_mcp.config import GeminiConfig
from gemini_mcp.gemini_client import ChatResult, GeminiAPIError, GeneratedImage, VideoStatus
from gemini_mcp.sessions import ROLE_MODEL, ROLE_USER, SessionStore, Turn
from gemini_mcp.tools import ServerContext, ToolDispatcher


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeGeminiClient:
    """Stands in for GeminiClient; records every call."""

    def __init__(self):
        self.chat_calls: list[dict] = []
        self.image_calls: list[dict] = []
        self.video_calls: list[dict] = []
        self.status_calls: list[str] = []
        self.fail_with: str | None = None
        self.return_no_images = False
        self.video_statuses: list[VideoStatus] = []
        self.video_bytes = b"\x00\x00\x00\x18ftypmp42"

    def _maybe_fail(self):
        if self.fail_with:
            raise GeminiAPIError(self.fail_with, 429)

    async def chat(self, prompt, history=(), system_instruction=None, model=None):
        self.chat_calls.append({
            "prompt": prompt,
            "history": list(history),
            "system_instruction": system_instruction,
            "model": model,
        })
        self._maybe_fail()
        text = f"reply to: {prompt}"
        return ChatResult(
            text=text,
            history=[*history, Turn(ROLE_USER, prompt), Turn(ROLE_MODEL, text)],
        )

    async def generate_images(self, prompt, model, count=1, aspect_ratio="1:1"):
        self.image_calls.append({
            "prompt": prompt, "model": model, "count": count, "aspect_ratio": aspect_ratio,
        })
        self._maybe_fail()
        if self.return_no_images:
            return []
        return [GeneratedImage(data=f"png-{i}".encode(), mime_type="image/png") for i in range(count)]

    async def start_video(self, prompt, model, aspect_ratio="16:9", resolution="720p", first_frame=None):
        self.video_calls.append({
            "prompt": prompt, "model": model, "aspect_ratio": aspect_ratio,
            "resolution": resolution, "first_frame": first_frame,
        })
        self._maybe_fail()
        return f"models/{model}/operations/op{len(self.video_calls)}"

    async def get_video_operation(self, operation_id):
        self.status_calls.append(operation_id)
        self._maybe_fail()
        if self.video_statuses:
            status = self.video_statuses.pop(0)
            status.operation_id = operation_id
            return status
        return VideoStatus(operation_id=operation_id, done=False)

    async def download_video(self, uri):
        self._maybe_fail()
        return self.video_bytes

    async def aclose(self):
        pass


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return SessionStore(clock=clock, retention_seconds=3600)


@pytest.fixture
def fake_client():
    return FakeGeminiClient()


@pytest.fixture
def config():
    return GeminiConfig.load({"GEMINI_API_KEY": "test-key-1234567890"})


@pytest.fixture
def context(config, fake_client, store, clock):
    return ServerContext(config=config, client=fake_client, sessions=store, clock=clock)


@pytest.fixture
def dispatcher(context):
    return ToolDispatcher(context)
