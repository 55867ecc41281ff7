"""Environment-driven configuration for the meme engine."""

from __future__ import annotations

from io import BytesIO
import logging
import os
from pathlib import Path
import tempfile
from typing import Mapping, Tuple

from PIL import Image, ImageFont

from meme_engine.compositor import FONT_SIZE, PHOTO_HEIGHT, PHOTO_WIDTH
from meme_engine.domain.meme import (
    FONT_LOAD_CODE,
    IMAGES_DIR_CODE,
    INVALID_CONFIG_CODE,
    EngineContext,
    MemeValidationError,
)
from meme_engine.domain.triggers import normalize_words, parse_word_list

LOGGER = logging.getLogger("meme_engine.config")

WORDS_ENV = "MEME_ENGINE_WORDS"
CONVERTER_URL_ENV = "MEME_ENGINE_CONVERTER_URL"
FONT_PATH_ENV = "MEME_ENGINE_FONT_PATH"
IMAGES_DIR_ENV = "MEME_ENGINE_IMAGES_DIR"
DEFAULT_AUDIO_ENV = "MEME_ENGINE_DEFAULT_AUDIO"
WORK_DIR_ENV = "MEME_ENGINE_WORK_DIR"
FFMPEG_BINARY_ENV = "MEME_ENGINE_FFMPEG_BINARY"
FFMPEG_TIMEOUT_ENV = "MEME_ENGINE_FFMPEG_TIMEOUT_SECONDS"
REMOTE_TIMEOUT_ENV = "MEME_ENGINE_REMOTE_TIMEOUT_SECONDS"
LOG_LEVEL_ENV = "MEME_ENGINE_LOG_LEVEL"
LOG_FILE_ENV = "MEME_ENGINE_LOG_FILE"

DEFAULT_TRIGGER_WORDS = (
    "fuck,dick,cum,cock,"
    "https://www.youtube.com/watch?v=ak16XxnJK0g,https://youtu.be/ak16XxnJK0g"
)
DEFAULT_CONVERTER_URL = "https://why-do-you-converter.herokuapp.com/process"
DEFAULT_FFMPEG_BINARY = "ffmpeg"
DEFAULT_FFMPEG_TIMEOUT_SECONDS = 120.0
DEFAULT_REMOTE_TIMEOUT_SECONDS = 300.0
BUNDLED_IMAGES_DIR = Path(__file__).resolve().parent / "assets" / "images"
IMAGE_SUFFIXES = (".jpg", ".jpeg")
PLACEHOLDER_RGB = (48, 48, 48)
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


def configure_logging(env: Mapping[str, str], debug: bool = False) -> None:
    """Configure logging from environment, optionally forcing DEBUG."""
    level_name = env.get(LOG_LEVEL_ENV, "INFO").strip().upper()
    level = logging.DEBUG if debug else LOG_LEVELS.get(level_name, logging.INFO)
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    log_file = env.get(LOG_FILE_ENV, "").strip()
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)


def parse_positive_float(raw_value: str, field_name: str) -> float:
    """Parse a positive float from a string."""
    try:
        parsed = float(raw_value)
    except ValueError as exc:
        raise MemeValidationError(
            INVALID_CONFIG_CODE, f"{field_name} must be a number"
        ) from exc
    if parsed <= 0:
        raise MemeValidationError(
            INVALID_CONFIG_CODE, f"{field_name} must be positive"
        )
    return parsed


def read_env_float(
    env: Mapping[str, str], key: str, field_name: str, fallback: float
) -> float:
    """Read a positive float from the environment."""
    raw_value = env.get(key, "").strip()
    if not raw_value:
        return fallback
    return parse_positive_float(raw_value, field_name)


def read_env_path(env: Mapping[str, str], key: str) -> str | None:
    """Read an optional path from the environment."""
    raw_value = env.get(key, "").strip()
    return raw_value or None


def load_font(font_path: str | None) -> ImageFont.FreeTypeFont:
    """Load the caption font from a file, or Pillow's bundled font."""
    if font_path is None:
        font = ImageFont.load_default(size=FONT_SIZE)
        if not isinstance(font, ImageFont.FreeTypeFont):
            raise MemeValidationError(
                FONT_LOAD_CODE, "bundled font needs Pillow built with FreeType"
            )
        return font
    try:
        font_bytes = Path(font_path).read_bytes()
    except OSError as exc:
        raise MemeValidationError(
            FONT_LOAD_CODE, f"font file not readable: {font_path}"
        ) from exc
    try:
        return ImageFont.truetype(BytesIO(font_bytes), size=FONT_SIZE)
    except OSError as exc:
        raise MemeValidationError(
            FONT_LOAD_CODE, f"failed to load font {font_path}"
        ) from exc


def list_image_files(images_dir: Path) -> list[Path]:
    """List JPEG files from the images directory."""
    return [
        entry
        for entry in sorted(images_dir.iterdir())
        if entry.is_file() and entry.suffix.lower() in IMAGE_SUFFIXES
    ]


def build_placeholder_image() -> bytes:
    """Solid JPEG used when no default images are installed."""
    buffer = BytesIO()
    Image.new("RGB", (PHOTO_WIDTH, PHOTO_HEIGHT), color=PLACEHOLDER_RGB).save(
        buffer, format="JPEG"
    )
    return buffer.getvalue()


def load_default_images(images_dir: str | None) -> Tuple[bytes, ...]:
    """Read every default image into memory.

    An explicitly configured directory must exist and contain JPEG files.
    The bundled directory may be absent, in which case a placeholder is used.
    """
    if images_dir is not None:
        directory = Path(images_dir)
        if not directory.is_dir():
            raise MemeValidationError(
                IMAGES_DIR_CODE, f"images directory does not exist: {images_dir}"
            )
        image_files = list_image_files(directory)
        if not image_files:
            raise MemeValidationError(
                IMAGES_DIR_CODE, f"no JPEG images found in {images_dir}"
            )
        return tuple(image_file.read_bytes() for image_file in image_files)

    if BUNDLED_IMAGES_DIR.is_dir():
        image_files = list_image_files(BUNDLED_IMAGES_DIR)
        if image_files:
            return tuple(image_file.read_bytes() for image_file in image_files)
    LOGGER.warning("meme_engine.config.images: no default images, using placeholder")
    return (build_placeholder_image(),)


def load_context(env: Mapping[str, str] | None = None) -> EngineContext:
    """Build the immutable engine context from the environment."""
    if env is None:
        env = os.environ

    default_audio_path = read_env_path(env, DEFAULT_AUDIO_ENV)
    if default_audio_path is not None and not os.path.isfile(default_audio_path):
        raise MemeValidationError(
            INVALID_CONFIG_CODE, f"default audio not found: {default_audio_path}"
        )
    work_dir = read_env_path(env, WORK_DIR_ENV) or tempfile.gettempdir()
    if not os.path.isdir(work_dir):
        raise MemeValidationError(
            INVALID_CONFIG_CODE, f"work directory does not exist: {work_dir}"
        )

    return EngineContext(
        trigger_words=parse_word_list(
            normalize_words(env.get(WORDS_ENV, DEFAULT_TRIGGER_WORDS))
        ),
        font=load_font(read_env_path(env, FONT_PATH_ENV)),
        default_images=load_default_images(read_env_path(env, IMAGES_DIR_ENV)),
        converter_url=env.get(CONVERTER_URL_ENV, DEFAULT_CONVERTER_URL).strip(),
        default_audio_path=default_audio_path,
        work_dir=work_dir,
        ffmpeg_binary=env.get(FFMPEG_BINARY_ENV, "").strip() or DEFAULT_FFMPEG_BINARY,
        ffmpeg_timeout_seconds=read_env_float(
            env,
            FFMPEG_TIMEOUT_ENV,
            "ffmpeg-timeout-seconds",
            DEFAULT_FFMPEG_TIMEOUT_SECONDS,
        ),
        remote_timeout_seconds=read_env_float(
            env,
            REMOTE_TIMEOUT_ENV,
            "remote-timeout-seconds",
            DEFAULT_REMOTE_TIMEOUT_SECONDS,
        ),
    )
