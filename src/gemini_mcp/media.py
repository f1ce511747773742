"""Saving generated images and videos to disk."""

import logging
import re
from pathlib import Path
from typing import Iterable

from gemini_mcp.gemini_client import GeneratedImage

logger = logging.getLogger(__name__)

MAX_STEM_LENGTH = 50

MIME_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
    "video/mp4": "mp4",
}


def safe_filename_stem(prompt: str) -> str:
    """First 50 characters of the prompt with every non-alphanumeric replaced by ``_``."""
    return re.sub(r"[^a-zA-Z0-9]", "_", prompt[:MAX_STEM_LENGTH])


def extension_for_mime(mime_type: str) -> str:
    return MIME_EXTENSIONS.get(mime_type.lower(), "bin")


def save_images(images: Iterable[GeneratedImage], output_dir: str | Path, prompt: str) -> list[Path]:
    """Write images as ``<stem>_<n>.<ext>`` (1-based) and return their paths."""
    directory = Path(output_dir).expanduser()
    directory.mkdir(parents=True, exist_ok=True)
    stem = safe_filename_stem(prompt)

    saved = []
    for i, image in enumerate(images, start=1):
        path = directory / f"{stem}_{i}.{extension_for_mime(image.mime_type)}"
        path.write_bytes(image.data)
        saved.append(path)

    logger.info(f"Saved {len(saved)} image(s) to {directory}")
    return saved


def save_video(data: bytes, output_path: str | Path, operation_id: str) -> Path:
    """Write video bytes.

    ``output_path`` ending in ``.mp4`` is used as the file itself; anything
    else is treated as a directory and receives ``video_<operation>.mp4``.
    """
    target = Path(output_path).expanduser()
    if target.suffix.lower() != ".mp4":
        suffix = operation_id.rstrip("/").split("/")[-1] or "output"
        target = target / f"video_{re.sub(r'[^a-zA-Z0-9_-]', '_', suffix)}.mp4"

    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(data)
    logger.info(f"Saved video ({len(data)} bytes) to {target}")
    return target
