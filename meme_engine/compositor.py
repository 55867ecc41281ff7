"""Compose a captioned meme frame from a source photo."""

from __future__ import annotations

from io import BytesIO
import logging
from typing import Tuple

from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError

from meme_engine.domain.meme import (
    DECODE_FAILED_CODE,
    INVALID_GEOMETRY_CODE,
    UNSUPPORTED_FORMAT_CODE,
    ComposedFrame,
    MemeRenderError,
)
from meme_engine.service.layout_plan import LayoutPlan, build_layout_plan

LOGGER = logging.getLogger("meme_engine.compositor")

CANVAS_SIZE = 1024
PHOTO_WIDTH = 768
PHOTO_HEIGHT = 512
PADDING = 128
FONT_SIZE = 64
SOURCE_FORMAT = "JPEG"
OUTPUT_FORMAT = "PNG"
BACKGROUND_RGB = (0, 0, 0)
TEXT_RGB = (255, 255, 255)
TEXT_RGBA = (255, 255, 255, 255)
CAPTION_MARGIN = 16
MAX_ROW_WIDTH = CANVAS_SIZE - 2 * CAPTION_MARGIN


def decode_source_image(source_bytes: bytes) -> Image.Image:
    """Decode a JPEG source image into RGB."""
    try:
        image = Image.open(BytesIO(source_bytes))
        image_format = image.format
        image.load()
    except Image.DecompressionBombError as exc:
        raise MemeRenderError(
            DECODE_FAILED_CODE, f"source image is too large: {exc}"
        ) from exc
    except UnidentifiedImageError as exc:
        raise MemeRenderError(
            DECODE_FAILED_CODE, "source image could not be identified"
        ) from exc
    except OSError as exc:
        raise MemeRenderError(
            DECODE_FAILED_CODE, f"failed to decode source image: {exc}"
        ) from exc
    if image_format != SOURCE_FORMAT:
        raise MemeRenderError(
            UNSUPPORTED_FORMAT_CODE,
            f"unsupported source format {image_format!r}, expected {SOURCE_FORMAT}",
        )
    if image.mode != "RGB":
        image = image.convert("RGB")
    return image


def compute_aspect_size(
    source_width: int, source_height: int, target_width: int, target_height: int
) -> Tuple[int, int]:
    """Scale a size to fit inside the target rectangle, keeping its aspect ratio."""
    if source_width <= 0 or source_height <= 0:
        raise MemeRenderError(INVALID_GEOMETRY_CODE, "source image has no pixels")
    ratio = min(target_width / source_width, target_height / source_height)
    new_width = int(source_width * ratio)
    new_height = int(source_height * ratio)
    if new_width <= 0 or new_height <= 0:
        raise MemeRenderError(
            INVALID_GEOMETRY_CODE,
            f"resized image is empty ({source_width}x{source_height} source)",
        )
    return new_width, new_height


def compute_photo_offset(photo_width: int, photo_height: int) -> Tuple[int, int]:
    """Center the photo horizontally and inside its band vertically."""
    x_offset = (CANVAS_SIZE - photo_width) // 2
    if photo_height < PHOTO_HEIGHT:
        y_offset = PADDING + (PHOTO_HEIGHT - photo_height) // 2
    else:
        y_offset = PADDING
    return x_offset, y_offset


def compute_row_x(row_width: int) -> int:
    """Horizontal position that centers a row on the canvas."""
    if row_width > CANVAS_SIZE:
        raise MemeRenderError(
            INVALID_GEOMETRY_CODE,
            f"caption row is wider than the canvas ({row_width}px)",
        )
    return (CANVAS_SIZE - row_width) // 2


def render_row_image(text_value: str, font: ImageFont.FreeTypeFont) -> Image.Image:
    """Render a caption row into an RGBA image cropped to its glyph box."""
    left, top, right, bottom = (
        int(value) for value in font.getbbox(text_value, anchor="la")
    )
    row_image = Image.new(
        "RGBA", (max(1, right - left), max(1, bottom - top)), (0, 0, 0, 0)
    )
    ImageDraw.Draw(row_image).text(
        (-left, -top), text_value, font=font, fill=TEXT_RGBA, anchor="la"
    )
    return row_image


def fit_row_image(row_image: Image.Image, max_width: int) -> Image.Image:
    """Scale a row image down, keeping its aspect ratio, to at most max_width."""
    if row_image.width <= max_width:
        return row_image
    scaled_height = max(1, round(row_image.height * max_width / row_image.width))
    return row_image.resize((max_width, scaled_height), Image.LANCZOS)


def draw_fitted_row(
    canvas: Image.Image, text_value: str, font: ImageFont.FreeTypeFont, y_position: int
) -> None:
    """Draw a row that is too wide for the canvas, shrunk to fit and centered."""
    top = int(font.getbbox(text_value, anchor="la")[1])
    row_image = render_row_image(text_value, font)
    fitted = fit_row_image(row_image, MAX_ROW_WIDTH)
    y_offset = y_position + top + (row_image.height - fitted.height) // 2
    canvas.paste(fitted, (compute_row_x(fitted.width), y_offset), fitted)


def draw_caption(
    canvas: Image.Image, plan: LayoutPlan, font: ImageFont.FreeTypeFont
) -> None:
    """Draw every planned row in white."""
    draw = ImageDraw.Draw(canvas)
    for row, y_position in zip(plan.rows, plan.row_positions()):
        if not row.text:
            continue
        if row.width > MAX_ROW_WIDTH:
            LOGGER.debug(
                "meme_engine.compose.row_shrunk width=%d max=%d",
                row.width,
                MAX_ROW_WIDTH,
            )
            draw_fitted_row(canvas, row.text, font, y_position)
            continue
        draw.text(
            (compute_row_x(row.width), y_position),
            row.text,
            font=font,
            fill=TEXT_RGB,
            anchor="la",
        )


def encode_png(canvas: Image.Image) -> bytes:
    """Encode the canvas losslessly."""
    buffer = BytesIO()
    canvas.save(buffer, format=OUTPUT_FORMAT)
    return buffer.getvalue()


def compose_frame(
    text: str, source_bytes: bytes, font: ImageFont.FreeTypeFont
) -> ComposedFrame:
    """Render the caption and the resized photo onto the square canvas."""
    source_image = decode_source_image(source_bytes)
    photo_size = compute_aspect_size(
        source_image.width, source_image.height, PHOTO_WIDTH, PHOTO_HEIGHT
    )
    photo = source_image.resize(photo_size, Image.LANCZOS)

    plan = build_layout_plan(
        text, font, band_top=PHOTO_HEIGHT + PADDING, band_bottom=CANVAS_SIZE
    )
    LOGGER.debug(
        "meme_engine.compose.layout rows=%d start_y=%d photo=%dx%d",
        len(plan.rows),
        plan.start_y,
        photo_size[0],
        photo_size[1],
    )

    canvas = Image.new("RGB", (CANVAS_SIZE, CANVAS_SIZE), color=BACKGROUND_RGB)
    draw_caption(canvas, plan, font)
    canvas.paste(photo, compute_photo_offset(*photo_size))
    return ComposedFrame(
        data=encode_png(canvas), width=CANVAS_SIZE, height=CANVAS_SIZE
    )
