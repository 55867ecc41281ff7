#!/usr/bin/env -S uv run
# /// script
# requires-python = ">=3.11"
# dependencies = [
#   "pillow>=10.1",
#   "aiohttp>=3.9",
# ]
# ///
"""Render a single message into a meme image or video."""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import dataclass
import logging
import os
from pathlib import Path
import sys
from typing import Sequence, Tuple

from meme_engine.config import configure_logging, load_context
from meme_engine.domain.meme import (
    INVALID_CONFIG_CODE,
    ContentLookup,
    MediaKind,
    MemeRenderError,
    MemeValidationError,
)
from meme_engine.engine import render

LOGGER = logging.getLogger("render_meme")

OUTPUT_STEM = "meme"
OUTPUT_SUFFIXES = {
    MediaKind.IMAGE: ".png",
    MediaKind.VIDEO: ".mp4",
}


@dataclass(frozen=True)
class CliRequest:
    """Parsed CLI arguments."""

    text: str
    scope_words: str | None
    image_path: str | None
    audio_path: str | None
    output_dir: str
    debug: bool


def parse_args(argv: Sequence[str]) -> CliRequest:
    """Parse CLI arguments into a CliRequest."""
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--text", required=True, help="Message text to render.")
    parser.add_argument(
        "--words",
        default=None,
        help="Comma-separated trigger words for this chat.",
    )
    parser.add_argument("--image", default=None, help="Custom JPEG image.")
    parser.add_argument("--audio", default=None, help="Custom audio track.")
    parser.add_argument("--output-dir", default=".", help="Output directory.")
    parser.add_argument("--debug", action="store_true", help="Verbose logging.")
    args = parser.parse_args(list(argv))

    for path_value, flag in ((args.image, "--image"), (args.audio, "--audio")):
        if path_value is not None and not os.path.isfile(path_value):
            raise MemeValidationError(
                INVALID_CONFIG_CODE, f"{flag} file not found: {path_value}"
            )
    if not os.path.isdir(args.output_dir):
        raise MemeValidationError(
            INVALID_CONFIG_CODE, f"output directory does not exist: {args.output_dir}"
        )

    return CliRequest(
        text=args.text,
        scope_words=args.words,
        image_path=args.image,
        audio_path=args.audio,
        output_dir=args.output_dir,
        debug=args.debug,
    )


def build_file_lookup(file_path: str | None) -> ContentLookup:
    """Lookup that reads a local file, or finds nothing."""

    async def lookup(matched_words: Tuple[str, ...]) -> bytes | None:
        if file_path is None:
            return None
        return Path(file_path).read_bytes()

    return lookup


async def run(request: CliRequest) -> int:
    """Render the request and write the result to disk."""
    context = load_context()
    result = await render(
        request.text,
        request.scope_words,
        build_file_lookup(request.image_path),
        build_file_lookup(request.audio_path),
        context=context,
    )
    if result is None:
        LOGGER.info("render_meme.no_match: message did not trigger a meme")
        return 0
    output_path = Path(request.output_dir) / (
        OUTPUT_STEM + OUTPUT_SUFFIXES[result.kind]
    )
    output_path.write_bytes(result.data)
    LOGGER.info("render_meme.written kind=%s path=%s", result.kind.value, output_path)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint."""
    configure_logging(os.environ)
    try:
        request = parse_args(list(argv) if argv is not None else sys.argv[1:])
        if request.debug:
            configure_logging(os.environ, debug=True)
        return asyncio.run(run(request))
    except MemeValidationError as exc:
        LOGGER.error("%s: %s", exc.code, str(exc).strip())
        return 1
    except MemeRenderError as exc:
        LOGGER.error("%s: %s", exc.code, str(exc).strip())
        return 1
    except Exception as exc:
        LOGGER.error("render_meme.unhandled_error: %s", str(exc).strip())
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
