"""Async client for the Google Gemini REST API.

Covers the three request kinds the MCP tools need:
    chat        - models/{model}:generateContent with history + system instruction
    images      - models/{model}:generateContent with responseModalities=["IMAGE"]
    video       - models/{model}:predictLongRunning, then poll the operation

Every call is a single HTTP round-trip; there are no retries. Non-2xx
responses raise GeminiAPIError carrying the API's own error message.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

import httpx

from gemini_mcp.config import DEFAULT_API_BASE_URL
from gemini_mcp.sessions import ROLE_MODEL, ROLE_USER, Turn

logger = logging.getLogger(__name__)


class GeminiAPIError(Exception):
    """A Gemini API call failed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass
class ChatResult:
    """Reply text plus the history including the new user/model pair."""
    text: str
    history: list[Turn]


@dataclass
class GeneratedImage:
    """Raw image bytes returned by an image model."""
    data: bytes
    mime_type: str = "image/png"

    @property
    def base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")


@dataclass
class FirstFrame:
    """Optional starting image for video generation."""
    data: bytes
    mime_type: str = "image/png"


@dataclass
class VideoStatus:
    """Snapshot of a long-running video operation."""
    operation_id: str
    done: bool
    video_uri: str | None = None
    error: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


class GeminiClient:
    """Thin async wrapper over the Gemini REST endpoints."""

    def __init__(
        self,
        api_key: str,
        default_model: str,
        base_url: str = DEFAULT_API_BASE_URL,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.default_model = default_model
        self.base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._request_count = 0

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={"x-goog-api-key": self.api_key},
                timeout=self._timeout,
                transport=self._transport,
                follow_redirects=True,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, payload: dict | None = None) -> dict:
        self._request_count += 1
        response = await self._http().request(method, path, json=payload)
        if response.is_error:
            raise GeminiAPIError(_error_message(response), response.status_code)
        try:
            return response.json()
        except ValueError:
            raise GeminiAPIError(f"Invalid JSON response from {path}", response.status_code)

    # --- Chat ---

    async def chat(
        self,
        prompt: str,
        history: Sequence[Turn] = (),
        system_instruction: str | None = None,
        model: str | None = None,
    ) -> ChatResult:
        """Send one user message on top of an existing history."""
        model = model or self.default_model
        contents = [turn.to_content() for turn in history]
        contents.append(Turn(ROLE_USER, prompt).to_content())

        payload: dict[str, Any] = {"contents": contents}
        if system_instruction:
            payload["systemInstruction"] = {"parts": [{"text": system_instruction}]}

        logger.debug(f"Chat turn on {model} with {len(history)} prior message(s)")
        data = await self._request("POST", f"/models/{model}:generateContent", payload)
        text = _response_text(data)

        new_history = [*history, Turn(ROLE_USER, prompt), Turn(ROLE_MODEL, text)]
        return ChatResult(text=text, history=new_history)

    # --- Images ---

    async def generate_images(
        self,
        prompt: str,
        model: str,
        count: int = 1,
        aspect_ratio: str = "1:1",
    ) -> list[GeneratedImage]:
        """Generate ``count`` images, one request each.

        A failure on any request fails the whole batch.
        """
        payload = {
            "contents": [{"role": ROLE_USER, "parts": [{"text": prompt}]}],
            "generationConfig": {
                "responseModalities": ["IMAGE"],
                "imageConfig": {"aspectRatio": aspect_ratio},
            },
        }

        images: list[GeneratedImage] = []
        for i in range(count):
            logger.debug(f"Image request {i + 1}/{count} on {model}")
            data = await self._request("POST", f"/models/{model}:generateContent", payload)
            batch = _response_images(data)
            if not batch:
                # Refusals come back as text-only candidates
                text = _response_text(data).strip()
                raise GeminiAPIError(f"No image returned: {text}" if text else "No image returned")
            images.extend(batch)

        logger.info(f"Generated {len(images)} image(s) with {model}")
        return images

    # --- Video ---

    async def start_video(
        self,
        prompt: str,
        model: str,
        aspect_ratio: str = "16:9",
        resolution: str = "720p",
        first_frame: FirstFrame | None = None,
    ) -> str:
        """Kick off video generation and return the operation name."""
        instance: dict[str, Any] = {"prompt": prompt}
        if first_frame is not None:
            instance["image"] = {
                "bytesBase64Encoded": base64.b64encode(first_frame.data).decode("ascii"),
                "mimeType": first_frame.mime_type,
            }
        payload = {
            "instances": [instance],
            "parameters": {"aspectRatio": aspect_ratio, "resolution": resolution},
        }

        data = await self._request("POST", f"/models/{model}:predictLongRunning", payload)
        operation_id = data.get("name")
        if not operation_id:
            raise GeminiAPIError("Video generation did not return an operation id")

        logger.info(f"Started video operation {operation_id}")
        return operation_id

    async def get_video_operation(self, operation_id: str) -> VideoStatus:
        """Poll a video operation once."""
        data = await self._request("GET", f"/{operation_id.lstrip('/')}")

        if not data.get("done"):
            return VideoStatus(operation_id=operation_id, done=False, raw=data)

        if "error" in data:
            error = data["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            return VideoStatus(operation_id=operation_id, done=True, error=message or "Unknown error", raw=data)

        samples = (
            data.get("response", {})
            .get("generateVideoResponse", {})
            .get("generatedSamples", [])
        )
        uri = None
        for sample in samples:
            uri = sample.get("video", {}).get("uri")
            if uri:
                break

        if not uri:
            return VideoStatus(
                operation_id=operation_id,
                done=True,
                error="Operation finished without a video (it may have been filtered)",
                raw=data,
            )
        return VideoStatus(operation_id=operation_id, done=True, video_uri=uri, raw=data)

    async def download_video(self, uri: str) -> bytes:
        """Fetch generated video bytes from the file URI in a finished operation."""
        self._request_count += 1
        response = await self._http().get(uri)
        if response.is_error:
            raise GeminiAPIError(_error_message(response), response.status_code)
        return response.content

    def get_stats(self) -> dict[str, Any]:
        return {
            "base_url": self.base_url,
            "default_model": self.default_model,
            "request_count": self._request_count,
        }


def _error_message(response: httpx.Response) -> str:
    """Pull ``error.message`` out of a Gemini error body, else describe the status."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return error["message"]
    text = response.text.strip()
    if text:
        return f"HTTP {response.status_code}: {text[:500]}"
    return f"HTTP {response.status_code}"


def _candidate_parts(data: dict) -> list[dict]:
    candidates = data.get("candidates") or []
    if not candidates:
        feedback = data.get("promptFeedback", {})
        if feedback.get("blockReason"):
            raise GeminiAPIError(f"Prompt blocked: {feedback['blockReason']}")
        return []
    return candidates[0].get("content", {}).get("parts") or []


def _response_text(data: dict) -> str:
    return "".join(
        part.get("text", "")
        for part in _candidate_parts(data)
        if not part.get("thought")
    )


def _response_images(data: dict) -> list[GeneratedImage]:
    images = []
    for part in _candidate_parts(data):
        inline = part.get("inlineData") or part.get("inline_data")
        if inline and inline.get("data"):
            images.append(GeneratedImage(
                data=base64.b64decode(inline["data"]),
                mime_type=inline.get("mimeType") or inline.get("mime_type") or "image/png",
            ))
    return images
