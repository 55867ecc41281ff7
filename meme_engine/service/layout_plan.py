"""Caption layout planning: row wrapping, measurement and placement."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Tuple

from PIL import Image, ImageDraw, ImageFont

from meme_engine.domain.meme import (
    INVALID_CONFIG_CODE,
    INVALID_GEOMETRY_CODE,
    MemeRenderError,
    MemeValidationError,
)

ELLIPSIS = "..."
LINE_SEPARATOR = "\n"
WORD_SEPARATOR = " "
ROW_CHAR_LIMIT = 30
MAX_ROWS = 6
ROW_HEIGHT = 50
ROW_SPACING = 10
CENTERING_OFFSET = 10


@dataclass(frozen=True)
class TextRow:
    """A caption row with its measured pixel size."""

    text: str
    width: int
    height: int

    def __post_init__(self) -> None:
        if self.width < 0 or self.height < 0:
            raise MemeRenderError(
                INVALID_GEOMETRY_CODE, "row dimensions must be non-negative"
            )


@dataclass(frozen=True)
class LayoutPlan:
    """Rows to draw, top to bottom, starting at start_y."""

    rows: Tuple[TextRow, ...]
    start_y: int
    row_step: int

    def __post_init__(self) -> None:
        if len(self.rows) > MAX_ROWS:
            raise MemeRenderError(INVALID_GEOMETRY_CODE, "too many caption rows")
        if self.start_y < 0:
            raise MemeRenderError(
                INVALID_GEOMETRY_CODE, "caption start must be non-negative"
            )
        if self.row_step <= 0:
            raise MemeRenderError(INVALID_GEOMETRY_CODE, "row step must be positive")

    def row_positions(self) -> Tuple[int, ...]:
        """Return the y position of every row."""
        return tuple(
            self.start_y + index * self.row_step for index in range(len(self.rows))
        )


def truncate_word(word: str, max_length: int) -> str:
    """Shorten a word to max_length characters, ending with an ellipsis."""
    if len(word) <= max_length:
        return word
    return word[: max_length - len(ELLIPSIS)] + ELLIPSIS


def batch_line(line: str, max_length: int) -> list[str]:
    """Greedily pack the words of a single line into rows."""
    rows: list[str] = []
    for word in line.split(WORD_SEPARATOR):
        if rows and len(rows[-1]) + len(WORD_SEPARATOR) + len(word) <= max_length:
            rows[-1] = rows[-1] + WORD_SEPARATOR + word
        else:
            rows.append(truncate_word(word, max_length))
    return rows


def batch(text: str, max_length: int) -> list[str]:
    """Split text into rows of at most max_length characters.

    Explicit line breaks always start a new row. A word longer than the
    limit gets its own row, truncated with an ellipsis.
    """
    if max_length <= len(ELLIPSIS):
        raise MemeValidationError(
            INVALID_CONFIG_CODE,
            f"row limit must exceed {len(ELLIPSIS)} characters",
        )
    rows: list[str] = []
    for line in text.split(LINE_SEPARATOR):
        rows.extend(batch_line(line, max_length))
    return rows


def measure_row(
    text_value: str,
    font: ImageFont.FreeTypeFont,
    draw_context: ImageDraw.ImageDraw,
) -> TextRow:
    """Measure a row from its origin to the right edge of its last glyph."""
    if not text_value:
        return TextRow(text=text_value, width=0, height=0)
    left, top, right, bottom = draw_context.textbbox(
        (0, 0), text_value, font=font, anchor="la"
    )
    return TextRow(
        text=text_value,
        width=max(0, int(right)),
        height=max(0, int(bottom) - int(top)),
    )


def compute_block_height(rows: Sequence[TextRow]) -> int:
    """Sum of row heights plus spacing between rows."""
    if not rows:
        return 0
    return sum(row.height for row in rows) + ROW_SPACING * (len(rows) - 1)


def build_layout_plan(
    text: str,
    font: ImageFont.FreeTypeFont,
    band_top: int,
    band_bottom: int,
    max_length: int = ROW_CHAR_LIMIT,
    max_rows: int = MAX_ROWS,
) -> LayoutPlan:
    """Wrap, measure and place caption rows inside a vertical band."""
    if band_bottom <= band_top:
        raise MemeRenderError(INVALID_GEOMETRY_CODE, "caption band is empty")
    if max_rows <= 0 or max_rows > MAX_ROWS:
        raise MemeValidationError(
            INVALID_CONFIG_CODE, f"max_rows must be between 1 and {MAX_ROWS}"
        )

    draw_context = ImageDraw.Draw(Image.new("RGB", (1, 1)))
    shown_rows = tuple(
        measure_row(row_text, font, draw_context)
        for row_text in batch(text, max_length)[:max_rows]
    )

    start_y = band_top
    if len(shown_rows) < max_rows:
        block_height = compute_block_height(shown_rows)
        free_space = band_bottom - start_y - block_height
        if free_space < 0:
            raise MemeRenderError(
                INVALID_GEOMETRY_CODE, "caption does not fit into its band"
            )
        start_y += free_space // 2 + CENTERING_OFFSET

    return LayoutPlan(
        rows=shown_rows, start_y=start_y, row_step=ROW_HEIGHT + ROW_SPACING
    )
