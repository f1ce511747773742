"""Tests for gemini_mcp.gemini_client — REST wrapper over the Gemini API.

All HTTP traffic goes through httpx.MockTransport; nothing leaves the process.
"""

import base64
import json

import httpx
import pytest

from gemini_mcp.gemini_client import FirstFrame, GeminiAPIError, GeminiClient
from gemini_mcp.sessions import ROLE_MODEL, ROLE_USER, Turn

BASE = "https://gemini.test/v1beta"


def _client(handler) -> GeminiClient:
    return GeminiClient(
        api_key="secret",
        default_model="gemini-test",
        base_url=BASE,
        transport=httpx.MockTransport(handler),
    )


def _text_response(text: str) -> dict:
    return {"candidates": [{"content": {"role": "model", "parts": [{"text": text}]}}]}


class TestChat:

    @pytest.mark.asyncio
    async def test_chat_sends_history_and_instruction(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["key"] = request.headers.get("x-goog-api-key")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=_text_response("pong"))

        client = _client(handler)
        history = [Turn(ROLE_USER, "hello"), Turn(ROLE_MODEL, "hi")]
        result = await client.chat("ping", history=history, system_instruction="be brief")
        await client.aclose()

        assert seen["url"] == f"{BASE}/models/gemini-test:generateContent"
        assert seen["key"] == "secret"
        assert seen["body"]["systemInstruction"] == {"parts": [{"text": "be brief"}]}
        assert [c["role"] for c in seen["body"]["contents"]] == ["user", "model", "user"]
        assert seen["body"]["contents"][-1]["parts"][0]["text"] == "ping"

        assert result.text == "pong"
        assert len(result.history) == 4
        assert result.history[-1] == Turn(ROLE_MODEL, "pong")

    @pytest.mark.asyncio
    async def test_chat_model_override(self):
        urls = []

        def handler(request):
            urls.append(request.url.path)
            return httpx.Response(200, json=_text_response("ok"))

        client = _client(handler)
        await client.chat("hi", model="gemini-other")
        assert urls == ["/v1beta/models/gemini-other:generateContent"]

    @pytest.mark.asyncio
    async def test_chat_skips_thought_parts(self):
        def handler(request):
            return httpx.Response(200, json={"candidates": [{"content": {"parts": [
                {"text": "thinking...", "thought": True},
                {"text": "answer"},
            ]}}]})

        result = await _client(handler).chat("q")
        assert result.text == "answer"

    @pytest.mark.asyncio
    async def test_api_error_message_surfaces(self):
        def handler(request):
            return httpx.Response(429, json={"error": {"code": 429, "message": "Quota exceeded"}})

        with pytest.raises(GeminiAPIError) as exc_info:
            await _client(handler).chat("hi")
        assert exc_info.value.message == "Quota exceeded"
        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    async def test_non_json_error(self):
        def handler(request):
            return httpx.Response(502, text="Bad Gateway")

        with pytest.raises(GeminiAPIError, match="HTTP 502"):
            await _client(handler).chat("hi")

    @pytest.mark.asyncio
    async def test_blocked_prompt(self):
        def handler(request):
            return httpx.Response(200, json={"promptFeedback": {"blockReason": "SAFETY"}})

        with pytest.raises(GeminiAPIError, match="SAFETY"):
            await _client(handler).chat("hi")


class TestImages:

    @pytest.mark.asyncio
    async def test_one_request_per_image(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"candidates": [{"content": {"parts": [
                {"inlineData": {"mimeType": "image/png", "data": base64.b64encode(b"img").decode()}},
            ]}}]})

        client = _client(handler)
        images = await client.generate_images("a cat", model="img-model", count=3, aspect_ratio="16:9")

        assert len(bodies) == 3
        assert bodies[0]["generationConfig"]["responseModalities"] == ["IMAGE"]
        assert bodies[0]["generationConfig"]["imageConfig"] == {"aspectRatio": "16:9"}
        assert [i.data for i in images] == [b"img"] * 3
        assert images[0].mime_type == "image/png"
        assert images[0].base64 == base64.b64encode(b"img").decode()
        assert client.get_stats()["request_count"] == 3

    @pytest.mark.asyncio
    async def test_failure_fails_batch(self):
        calls = []

        def handler(request):
            calls.append(1)
            if len(calls) == 2:
                return httpx.Response(500, json={"error": {"message": "boom"}})
            return httpx.Response(200, json={"candidates": [{"content": {"parts": [
                {"inlineData": {"mimeType": "image/png", "data": base64.b64encode(b"img").decode()}},
            ]}}]})

        with pytest.raises(GeminiAPIError, match="boom"):
            await _client(handler).generate_images("a cat", model="m", count=4)
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_text_only_reply_is_error(self):
        def handler(request):
            return httpx.Response(200, json=_text_response("I can't draw that."))

        with pytest.raises(GeminiAPIError, match="No image returned: I can't draw that."):
            await _client(handler).generate_images("a cat", model="m")


class TestVideo:

    @pytest.mark.asyncio
    async def test_start_returns_operation(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"name": "models/veo/operations/abc"})

        frame = FirstFrame(data=b"frame", mime_type="image/jpeg")
        op = await _client(handler).start_video("waves", model="veo", resolution="480p", first_frame=frame)

        assert op == "models/veo/operations/abc"
        assert seen["path"] == "/v1beta/models/veo:predictLongRunning"
        instance = seen["body"]["instances"][0]
        assert instance["prompt"] == "waves"
        assert instance["image"]["mimeType"] == "image/jpeg"
        assert base64.b64decode(instance["image"]["bytesBase64Encoded"]) == b"frame"
        assert seen["body"]["parameters"] == {"aspectRatio": "16:9", "resolution": "480p"}

    @pytest.mark.asyncio
    async def test_start_without_name_is_error(self):
        def handler(request):
            return httpx.Response(200, json={})

        with pytest.raises(GeminiAPIError):
            await _client(handler).start_video("waves", model="veo")

    @pytest.mark.asyncio
    async def test_poll_pending(self):
        def handler(request):
            assert request.url.path == "/v1beta/models/veo/operations/abc"
            return httpx.Response(200, json={"name": "models/veo/operations/abc"})

        status = await _client(handler).get_video_operation("models/veo/operations/abc")
        assert status.done is False

    @pytest.mark.asyncio
    async def test_poll_complete_and_download(self):
        def handler(request):
            if request.url.path.endswith("/operations/abc"):
                return httpx.Response(200, json={
                    "done": True,
                    "response": {"generateVideoResponse": {"generatedSamples": [
                        {"video": {"uri": "https://files.test/video.mp4"}},
                    ]}},
                })
            assert str(request.url) == "https://files.test/video.mp4"
            return httpx.Response(200, content=b"mp4-bytes")

        client = _client(handler)
        status = await client.get_video_operation("models/veo/operations/abc")
        assert status.done is True
        assert status.video_uri == "https://files.test/video.mp4"
        assert await client.download_video(status.video_uri) == b"mp4-bytes"

    @pytest.mark.asyncio
    async def test_poll_operation_error(self):
        def handler(request):
            return httpx.Response(200, json={"done": True, "error": {"message": "filtered"}})

        status = await _client(handler).get_video_operation("models/veo/operations/abc")
        assert status.done is True
        assert status.error == "filtered"

    @pytest.mark.asyncio
    async def test_poll_done_without_video(self):
        def handler(request):
            return httpx.Response(200, json={"done": True, "response": {}})

        status = await _client(handler).get_video_operation("models/veo/operations/abc")
        assert status.error is not None
        assert status.video_uri is None
