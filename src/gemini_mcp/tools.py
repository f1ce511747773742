"""Gemini MCP tools and the dispatcher that routes calls to them.

Tools mirror the Codex MCP interface for chat (``gemini`` / ``gemini-reply``)
and add image and video generation:

- gemini: start a conversation, returns text + conversationId in _meta
- gemini-reply: continue a conversation by id
- gemini-image: generate 1-4 images, routed to a fast or pro model
- gemini-video: start a video job, returns the operation id immediately
- gemini-video-status: poll a video job, returns the video once complete

Every handler returns an envelope ``{"content": [...], "is_error": bool,
"_meta": {...}}``. Failures are rendered into that envelope; nothing a single
call does should escape to the transport.
"""

from __future__ import annotations

import base64
import binascii
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from claude_agent_sdk import SdkMcpTool, tool

from gemini_mcp.config import GeminiConfig
from gemini_mcp.gemini_client import FirstFrame, GeminiClient
from gemini_mcp.instructions import SANDBOX_MODES, compose_system_instruction
from gemini_mcp.media import save_images, save_video
from gemini_mcp.model_router import route_image_request
from gemini_mcp.sessions import SessionStore

logger = logging.getLogger(__name__)

TOOL_CHAT = "gemini"
TOOL_REPLY = "gemini-reply"
TOOL_IMAGE = "gemini-image"
TOOL_VIDEO = "gemini-video"
TOOL_VIDEO_STATUS = "gemini-video-status"

IMAGE_ASPECT_RATIOS = ("1:1", "3:4", "4:3", "9:16", "16:9")
VIDEO_ASPECT_RATIOS = ("16:9", "9:16")
VIDEO_RESOLUTIONS = ("720p", "480p")

MIN_IMAGES = 1
MAX_IMAGES = 4


class ToolInputError(Exception):
    """Arguments to a tool call are missing or invalid."""


@dataclass
class VideoOperation:
    """The most recently started video job."""
    operation_id: str
    started_at: float


@dataclass
class ServerContext:
    """Process-wide state shared by all tool calls.

    ``last_video`` is a single slot: starting a new video replaces it.
    """
    config: GeminiConfig
    client: GeminiClient
    sessions: SessionStore
    clock: Callable[[], float] = time.time
    last_video: VideoOperation | None = None
    call_counts: dict[str, int] = field(default_factory=dict)


# --- Envelope helpers ---


def text_result(text: str, meta: dict | None = None) -> dict:
    result: dict[str, Any] = {"content": [{"type": "text", "text": text}]}
    if meta:
        result["_meta"] = meta
    return result


def error_result(text: str) -> dict:
    return {"content": [{"type": "text", "text": text}], "is_error": True}


def _require_str(args: dict, key: str) -> str:
    value = args.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ToolInputError(f"Missing required argument: {key}")
    return value


def _optional_str(args: dict, key: str) -> str | None:
    value = args.get(key)
    if isinstance(value, str) and value:
        return value
    return None


def _optional_bool(args: dict, key: str) -> bool | None:
    value = args.get(key)
    return value if isinstance(value, bool) else None


def clamp_image_count(value: Any) -> int:
    """Coerce ``numberOfImages`` into [1, 4]; missing or non-numeric means 1."""
    if value is None or isinstance(value, bool):
        return MIN_IMAGES
    try:
        count = int(value)
    except (TypeError, ValueError):
        return MIN_IMAGES
    return max(MIN_IMAGES, min(MAX_IMAGES, count))


# --- Schemas ---


CHAT_SCHEMA = {
    "type": "object",
    "properties": {
        "prompt": {
            "type": "string",
            "description": "The initial user prompt to start the Gemini conversation",
        },
        "cwd": {"type": "string", "description": "Working directory for context"},
        "sandbox": {
            "type": "string",
            # No enum: unrecognized modes are ignored rather than rejected
            "description": f"Access policy mode ({', '.join(SANDBOX_MODES)})",
        },
        "base-instructions": {
            "type": "string",
            "description": "Override the default system instructions",
        },
        "developer-instructions": {
            "type": "string",
            "description": "Developer instructions for additional context",
        },
        "model": {"type": "string", "description": "Model override for this call"},
        "config": {
            "type": "object",
            "description": "Additional config settings (passthrough)",
            "additionalProperties": True,
        },
    },
    "required": ["prompt"],
}

REPLY_SCHEMA = {
    "type": "object",
    "properties": {
        "conversationId": {
            "type": "string",
            "description": "The conversation ID from a previous gemini call",
        },
        "prompt": {
            "type": "string",
            "description": "The next user prompt to continue the conversation",
        },
    },
    "required": ["conversationId", "prompt"],
}

IMAGE_SCHEMA = {
    "type": "object",
    "properties": {
        "prompt": {"type": "string", "description": "Text description of the image to generate"},
        "numberOfImages": {
            "type": "number",
            "description": "Number of images to generate (1-4, values outside are clamped)",
        },
        "aspectRatio": {
            "type": "string",
            "enum": list(IMAGE_ASPECT_RATIOS),
            "description": "Aspect ratio of generated images",
        },
        "usePro": {
            "type": "boolean",
            "description": "Force the pro (true) or fast (false) model. Omit to pick from the prompt.",
        },
        "outputPath": {"type": "string", "description": "Optional directory path to save generated images"},
    },
    "required": ["prompt"],
}

VIDEO_SCHEMA = {
    "type": "object",
    "properties": {
        "prompt": {"type": "string", "description": "Text description of the video to generate"},
        "aspectRatio": {
            "type": "string",
            "enum": list(VIDEO_ASPECT_RATIOS),
            "description": "Aspect ratio of the video",
        },
        "resolution": {
            "type": "string",
            "enum": list(VIDEO_RESOLUTIONS),
            "description": "Output resolution",
        },
        "firstFrameBase64": {
            "type": "string",
            "description": "Optional base64-encoded image to use as the first frame",
        },
        "firstFrameMimeType": {
            "type": "string",
            "description": "MIME type of firstFrameBase64 (default image/png)",
        },
    },
    "required": ["prompt"],
}

VIDEO_STATUS_SCHEMA = {
    "type": "object",
    "properties": {
        "operationId": {
            "type": "string",
            "description": "Operation ID from gemini-video (defaults to the most recent one)",
        },
        "outputPath": {
            "type": "string",
            "description": "Optional directory or .mp4 file path to save the finished video",
        },
    },
}


class ToolDispatcher:
    """Routes MCP tool calls to handlers sharing one ServerContext."""

    def __init__(self, context: ServerContext):
        self.context = context
        self.tools: list[SdkMcpTool] = [
            tool(
                TOOL_CHAT,
                "Run a Gemini session. Similar to Codex but uses Google Gemini.\n\n"
                "Returns the reply text; the conversation ID for gemini-reply is in _meta.conversationId.\n"
                f"Default model: {context.config.models.chat}",
                CHAT_SCHEMA,
            )(self._chat),
            tool(
                TOOL_REPLY,
                "Continue a Gemini conversation by providing the conversation ID and prompt.\n\n"
                "Use this to continue a multi-turn conversation started with the 'gemini' tool. "
                "Conversations expire after an hour without use.",
                REPLY_SCHEMA,
            )(self._reply),
            tool(
                TOOL_IMAGE,
                "Generate images with Gemini image models.\n\n"
                "Prompts about text, diagrams, infographics, logos or posters go to the pro model; "
                "everything else to the fast model. Set usePro to override.\n"
                "Returns a summary plus one image block per generated image. "
                "With outputPath, images are saved as <prompt>_1.png, <prompt>_2.png, ...",
                IMAGE_SCHEMA,
            )(self._image),
            tool(
                TOOL_VIDEO,
                "Start generating a video with Veo. Returns an operation ID immediately; "
                "poll it with gemini-video-status.",
                VIDEO_SCHEMA,
            )(self._video),
            tool(
                TOOL_VIDEO_STATUS,
                "Check a video generation job. Returns 'processing' with elapsed time, "
                "or 'complete' with the video (saved to outputPath if given).",
                VIDEO_STATUS_SCHEMA,
            )(self._video_status),
        ]
        self._tool_map = {t.name: t for t in self.tools}

    async def dispatch(self, name: str, arguments: dict | None) -> dict:
        """Run one tool call and always return an envelope."""
        self.context.sessions.sweep()

        registered = self._tool_map.get(name)
        if registered is None:
            logger.warning(f"Unknown tool requested: {name}")
            return error_result(f"Unknown tool: {name}")

        counts = self.context.call_counts
        counts[name] = counts.get(name, 0) + 1

        try:
            return await registered.handler(arguments or {})
        except ToolInputError as e:
            return error_result(f"Error: {e}")
        except Exception as e:
            logger.warning(f"{name} failed: {e}")
            return error_result(f"Gemini API error: {e}")

    # --- Chat ---

    async def _chat(self, args: dict) -> dict:
        prompt = _require_str(args, "prompt")
        cwd = _optional_str(args, "cwd")

        system_instruction = compose_system_instruction(
            base_instructions=_optional_str(args, "base-instructions"),
            cwd=cwd,
            sandbox=_optional_str(args, "sandbox"),
            developer_instructions=_optional_str(args, "developer-instructions"),
        )

        result = await self.context.client.chat(
            prompt,
            history=[],
            system_instruction=system_instruction,
            model=_optional_str(args, "model"),
        )

        conversation_id = self.context.sessions.create(result.history, cwd=cwd)
        logger.info(f"Started conversation {conversation_id}")
        return text_result(result.text, {"conversationId": conversation_id})

    async def _reply(self, args: dict) -> dict:
        conversation_id = _require_str(args, "conversationId")
        prompt = _require_str(args, "prompt")

        session = self.context.sessions.get(conversation_id)
        if session is None:
            return error_result(
                f"Error: Conversation {conversation_id} not found. "
                "It may have expired or never existed."
            )

        # Only the working directory carries over between turns
        system_instruction = compose_system_instruction(cwd=session.cwd)
        result = await self.context.client.chat(
            prompt,
            history=session.history,
            system_instruction=system_instruction,
        )

        self.context.sessions.append_turn(conversation_id, prompt, result.text)
        return text_result(result.text, {"conversationId": conversation_id})

    # --- Images ---

    async def _image(self, args: dict) -> dict:
        prompt = _require_str(args, "prompt")
        count = clamp_image_count(args.get("numberOfImages"))
        aspect_ratio = _optional_str(args, "aspectRatio") or "1:1"
        if aspect_ratio not in IMAGE_ASPECT_RATIOS:
            raise ToolInputError(
                f"Unsupported aspectRatio {aspect_ratio!r}; expected one of {', '.join(IMAGE_ASPECT_RATIOS)}"
            )

        models = self.context.config.models
        decision = route_image_request(
            prompt,
            _optional_bool(args, "usePro"),
            fast_model=models.image,
            advanced_model=models.image_pro,
        )

        images = await self.context.client.generate_images(
            prompt,
            model=decision.model,
            count=count,
            aspect_ratio=aspect_ratio,
        )
        if not images:
            return error_result(f"Gemini API error: {decision.model} returned no images")

        saved_paths = []
        output_path = _optional_str(args, "outputPath")
        if output_path and images:
            saved_paths = save_images(images, output_path, prompt)

        summary = f'Generated {len(images)} image(s) for prompt: "{prompt}"\nModel: {decision.model}'
        if saved_paths:
            summary += "\n\nSaved to:\n" + "\n".join(str(p) for p in saved_paths)

        content: list[dict] = [{"type": "text", "text": summary}]
        for image in images:
            content.append({"type": "image", "data": image.base64, "mimeType": image.mime_type})

        return {
            "content": content,
            "_meta": {"model": decision.model, "tier": decision.tier.value},
        }

    # --- Video ---

    async def _video(self, args: dict) -> dict:
        prompt = _require_str(args, "prompt")
        aspect_ratio = _optional_str(args, "aspectRatio") or VIDEO_ASPECT_RATIOS[0]
        resolution = _optional_str(args, "resolution") or VIDEO_RESOLUTIONS[0]
        if aspect_ratio not in VIDEO_ASPECT_RATIOS:
            raise ToolInputError(
                f"Unsupported aspectRatio {aspect_ratio!r}; expected one of {', '.join(VIDEO_ASPECT_RATIOS)}"
            )
        if resolution not in VIDEO_RESOLUTIONS:
            raise ToolInputError(
                f"Unsupported resolution {resolution!r}; expected one of {', '.join(VIDEO_RESOLUTIONS)}"
            )

        first_frame = None
        encoded = _optional_str(args, "firstFrameBase64")
        if encoded:
            try:
                frame_bytes = base64.b64decode(encoded, validate=True)
            except (binascii.Error, ValueError):
                raise ToolInputError("firstFrameBase64 is not valid base64")
            first_frame = FirstFrame(
                data=frame_bytes,
                mime_type=_optional_str(args, "firstFrameMimeType") or "image/png",
            )

        operation_id = await self.context.client.start_video(
            prompt,
            model=self.context.config.models.video,
            aspect_ratio=aspect_ratio,
            resolution=resolution,
            first_frame=first_frame,
        )
        self.context.last_video = VideoOperation(operation_id, self.context.clock())

        return text_result(
            f"Video generation started.\nOperation ID: {operation_id}\n"
            f"Use {TOOL_VIDEO_STATUS} to check progress.",
            {"operationId": operation_id},
        )

    async def _video_status(self, args: dict) -> dict:
        operation_id = _optional_str(args, "operationId")
        last = self.context.last_video
        if operation_id is None:
            if last is None:
                return error_result(
                    f"Error: No video operation to check. Start one with {TOOL_VIDEO} or pass operationId."
                )
            operation_id = last.operation_id

        status = await self.context.client.get_video_operation(operation_id)
        meta = {"operationId": operation_id}

        if not status.done:
            text = f"status: processing\nOperation ID: {operation_id}"
            if last is not None and last.operation_id == operation_id:
                elapsed = self.context.clock() - last.started_at
                text += f"\nElapsed: {elapsed:.0f}s"
                meta["elapsedSeconds"] = round(elapsed)
            return text_result(text, meta)

        if status.error:
            return error_result(f"Video generation failed: {status.error}")

        video_bytes = await self.context.client.download_video(status.video_uri)

        text = f"status: complete\nOperation ID: {operation_id}\nSize: {len(video_bytes)} bytes"
        uri = status.video_uri
        output_path = _optional_str(args, "outputPath")
        if output_path:
            saved = save_video(video_bytes, output_path, operation_id)
            text += f"\nSaved to: {saved}"
            meta["savedPath"] = str(saved)
            uri = saved.resolve().as_uri()

        return {
            "content": [
                {"type": "text", "text": text},
                {
                    "type": "resource",
                    "uri": uri,
                    "mimeType": "video/mp4",
                    "blob": base64.b64encode(video_bytes).decode("ascii"),
                },
            ],
            "_meta": meta,
        }

    def get_stats(self) -> dict[str, Any]:
        return {
            "calls": dict(self.context.call_counts),
            "sessions": self.context.sessions.get_stats(),
            "last_video": self.context.last_video.operation_id if self.context.last_video else None,
        }
