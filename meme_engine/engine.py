"""Build a meme from a chat message: trigger check, compose, encode."""

from __future__ import annotations

import logging
import random
from typing import Tuple

from meme_engine.compositor import compose_frame
from meme_engine.domain.meme import (
    ContentLookup,
    EncodeError,
    EngineContext,
    ImageResult,
    RenderRequest,
    RenderResult,
    VideoResult,
)
from meme_engine.domain.triggers import NoMatch, evaluate_trigger
from meme_engine.encoder import encode_video

LOGGER = logging.getLogger("meme_engine")


async def resolve_content(
    lookup: ContentLookup, matched_words: Tuple[str, ...], content_name: str
) -> bytes | None:
    """Run an external content lookup; failures mean no custom content."""
    try:
        content = await lookup(matched_words)
    except Exception as exc:
        LOGGER.warning(
            "meme_engine.lookup.%s_failed: %s", content_name, str(exc).strip()
        )
        return None
    if not content:
        return None
    LOGGER.debug("meme_engine.lookup.%s_found bytes=%d", content_name, len(content))
    return content


def choose_default_image(context: EngineContext, rng: random.Random) -> bytes:
    """Pick one of the bundled default images."""
    return rng.choice(context.default_images)


async def render_request(
    request: RenderRequest,
    context: EngineContext,
    rng: random.Random | None = None,
) -> RenderResult | None:
    """Render a request; None means the message did not trigger a meme.

    MemeValidationError (malformed command) and MemeRenderError (decode or
    composition failure) propagate. Encoding failures fall back to the
    still image.
    """
    outcome = evaluate_trigger(
        request.text, request.scope_words, context.trigger_words
    )
    if isinstance(outcome, NoMatch):
        LOGGER.debug("meme_engine.trigger.no_match")
        return None
    LOGGER.info(
        "meme_engine.trigger.matched words=%s", ",".join(outcome.matched_words)
    )

    source_image = await resolve_content(
        request.image_lookup, outcome.matched_words, "image"
    )
    if source_image is None:
        source_image = choose_default_image(context, rng or random.Random())

    frame = compose_frame(outcome.payload, source_image, context.font)

    audio = await resolve_content(request.audio_lookup, outcome.matched_words, "audio")
    try:
        video = await encode_video(frame.data, audio, context)
    except EncodeError as exc:
        LOGGER.error("%s: %s; sending still image", exc.code, str(exc).strip())
        return ImageResult(data=frame.data)
    return VideoResult(data=video)


async def render(
    text: str,
    scope_words: str | None,
    image_lookup: ContentLookup,
    audio_lookup: ContentLookup,
    *,
    context: EngineContext,
    rng: random.Random | None = None,
) -> RenderResult | None:
    """Render a message with the given scope words and content lookups."""
    request = RenderRequest(
        text=text,
        scope_words=scope_words,
        image_lookup=image_lookup,
        audio_lookup=audio_lookup,
    )
    return await render_request(request, context, rng)
