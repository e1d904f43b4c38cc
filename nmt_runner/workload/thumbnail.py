"""
Thumbnail generation, the unit of work driven by the harness.

Each invocation opens the subject video with PyAV, decodes the first frame,
applies the container's ``rotate`` hint with Pillow and writes a PNG next to
the input. Every intermediate (container, decoded image, rotated image) is
released on every exit path.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import av
import av.logging
from av.error import FFmpegError
from PIL import Image

from nmt_common.errors import WorkloadError


logger = logging.getLogger(__name__)

ROTATE_KEY = "rotate"

# Rotation hints are clockwise; Pillow's transpose constants rotate counter-clockwise.
_TRANSPOSE_FOR_ANGLE = {
    90: Image.Transpose.ROTATE_270,
    180: Image.Transpose.ROTATE_180,
    270: Image.Transpose.ROTATE_90,
}


@dataclass
class MediaFileInfo:
    """Facts gathered about the subject file during one invocation."""

    file_path: Path
    duration: int = 0
    width: int = 0
    height: int = 0
    thumbnail_path: Optional[Path] = None


def quiet_av_logging() -> None:
    """Keep FFmpeg from writing to stderr while workers run."""
    av.logging.set_level(av.logging.PANIC)


def parse_rotation(value: Any) -> int:
    """Return the clockwise rotation in degrees, or 0 when absent or malformed."""
    if value is None:
        return 0
    text = str(value).strip()
    if len(text) < 2:
        return 0
    try:
        return int(text) % 360
    except ValueError:
        return 0


def rotate_image(image: Image.Image, angle: int) -> Image.Image:
    """Return a new image rotated clockwise by ``angle`` (90, 180 or 270).

    Any other angle yields an unrotated copy.
    """
    transpose = _TRANSPOSE_FOR_ANGLE.get(angle)
    if transpose is None:
        return image.copy()
    return image.transpose(transpose)


def generate_unique_id() -> str:
    timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d-%H%M%S")
    return f"{timestamp}-{uuid.uuid4().hex[:8]}"


def write_thumbnail(source_path: Path, image: Image.Image) -> Path:
    """Save ``image`` as PNG beside ``source_path`` and return the new path."""
    target = Path(f"{source_path}{generate_unique_id()}.png")
    try:
        image.save(target, "PNG")
    except Exception:
        target.unlink(missing_ok=True)
        raise
    return target


def process_media_file(info: MediaFileInfo) -> MediaFileInfo:
    """Fill in media facts and write a thumbnail for ``info.file_path``.

    Raises:
        WorkloadError: when the file cannot be decoded or the thumbnail not written.
    """
    context = {"file": info.file_path}
    try:
        with av.open(str(info.file_path)) as container:
            stream = next((s for s in container.streams if s.type == "video"), None)
            if stream is None:
                raise WorkloadError("No video stream found", context=context)
            if container.duration:
                info.duration = int(container.duration // av.time_base)
            info.width = stream.codec_context.width
            info.height = stream.codec_context.height
            angle = parse_rotation(stream.metadata.get(ROTATE_KEY))

            frame = next(container.decode(stream), None)
            if frame is None:
                raise WorkloadError("No decodable video frame", context=context)
            image = frame.to_image()
            rotated: Optional[Image.Image] = None
            try:
                rotated = rotate_image(image, angle)
                info.thumbnail_path = write_thumbnail(info.file_path, rotated)
            finally:
                if rotated is not None:
                    rotated.close()
                image.close()
        logger.debug(
            "Thumbnail written: %s (%dx%d)", info.thumbnail_path, info.width, info.height
        )
    except WorkloadError:
        raise
    except (FFmpegError, OSError, ValueError) as exc:
        raise WorkloadError("Error creating thumbnail", context=context, cause=exc) from exc
    return info


class ThumbnailWork:
    """Callable unit of work: create a thumbnail, then delete it."""

    def __init__(self, video_path: Path) -> None:
        self.video_path = Path(video_path)

    def __call__(self) -> MediaFileInfo:
        info = process_media_file(MediaFileInfo(self.video_path))
        if info.thumbnail_path is None:
            return info
        try:
            info.thumbnail_path.unlink()
        except OSError as exc:
            raise WorkloadError(
                "Error deleting thumbnail",
                context={"thumbnail": info.thumbnail_path},
                cause=exc,
            ) from exc
        return info
