"""Domain types for meme rendering."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Tuple

from PIL import ImageFont

INVALID_COMMAND_CODE = "meme_engine.input.invalid_command"
INVALID_CONFIG_CODE = "meme_engine.config.invalid"
IMAGES_DIR_CODE = "meme_engine.config.images_dir"
FONT_LOAD_CODE = "meme_engine.config.font"
DECODE_FAILED_CODE = "meme_engine.compose.decode_failed"
UNSUPPORTED_FORMAT_CODE = "meme_engine.compose.unsupported_format"
INVALID_GEOMETRY_CODE = "meme_engine.compose.invalid_geometry"
ENCODE_FAILED_CODE = "meme_engine.encode.failed"
ENCODE_UNAVAILABLE_CODE = "meme_engine.encode.unavailable"
FFMPEG_PROCESS_CODE = "meme_engine.encode.ffmpeg_failed"
FFMPEG_TIMEOUT_CODE = "meme_engine.encode.ffmpeg_timeout"
FFMPEG_IO_CODE = "meme_engine.encode.io_error"
REMOTE_FAILED_CODE = "meme_engine.encode.remote_failed"

ContentLookup = Callable[[Tuple[str, ...]], Awaitable[bytes | None]]


class MemeValidationError(ValueError):
    """Validation error with a stable error code."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


class MemeRenderError(RuntimeError):
    """Fatal decode, layout or composition error."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


class EncodeError(RuntimeError):
    """Video encoding error; callers may fall back to the still image."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


class MediaKind(str, Enum):
    """Kinds of rendered media."""

    IMAGE = "image"
    VIDEO = "video"


@dataclass(frozen=True)
class ImageResult:
    """Still PNG image."""

    data: bytes

    @property
    def kind(self) -> MediaKind:
        return MediaKind.IMAGE


@dataclass(frozen=True)
class VideoResult:
    """Muxed MP4 video."""

    data: bytes

    @property
    def kind(self) -> MediaKind:
        return MediaKind.VIDEO


RenderResult = ImageResult | VideoResult


@dataclass(frozen=True)
class ComposedFrame:
    """PNG-encoded canvas with its declared dimensions."""

    data: bytes
    width: int
    height: int

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise MemeRenderError(
                INVALID_GEOMETRY_CODE, "frame width and height must be positive"
            )
        if not self.data:
            raise MemeRenderError(INVALID_GEOMETRY_CODE, "frame data is empty")


@dataclass(frozen=True)
class RenderRequest:
    """A single message to render along with its deferred content lookups."""

    text: str
    scope_words: str | None
    image_lookup: ContentLookup
    audio_lookup: ContentLookup


@dataclass(frozen=True)
class EngineContext:
    """Process-wide read-only configuration shared by every render."""

    trigger_words: Tuple[str, ...]
    font: ImageFont.FreeTypeFont
    default_images: Tuple[bytes, ...]
    converter_url: str
    default_audio_path: str | None
    work_dir: str
    ffmpeg_binary: str
    ffmpeg_timeout_seconds: float
    remote_timeout_seconds: float

    def __post_init__(self) -> None:
        if not self.default_images:
            raise MemeValidationError(
                IMAGES_DIR_CODE, "at least one default image is required"
            )
        if any(not word for word in self.trigger_words):
            raise MemeValidationError(
                INVALID_CONFIG_CODE, "trigger words must be non-empty"
            )
        if not self.work_dir.strip():
            raise MemeValidationError(INVALID_CONFIG_CODE, "work_dir must be non-empty")
        if not self.ffmpeg_binary.strip():
            raise MemeValidationError(
                INVALID_CONFIG_CODE, "ffmpeg_binary must be non-empty"
            )
        if self.ffmpeg_timeout_seconds <= 0:
            raise MemeValidationError(
                INVALID_CONFIG_CODE, "ffmpeg_timeout_seconds must be positive"
            )
        if self.remote_timeout_seconds <= 0:
            raise MemeValidationError(
                INVALID_CONFIG_CODE, "remote_timeout_seconds must be positive"
            )
        if self.default_audio_path is not None and not self.default_audio_path.strip():
            raise MemeValidationError(
                INVALID_CONFIG_CODE, "default_audio_path must be non-empty"
            )
