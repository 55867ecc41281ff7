"""Encode a still frame plus optional audio into a short MP4 video."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import functools
import logging
import os
import shutil
import subprocess
from typing import Protocol, Sequence, Tuple
import uuid

import aiohttp

from meme_engine.domain.meme import (
    ENCODE_FAILED_CODE,
    ENCODE_UNAVAILABLE_CODE,
    FFMPEG_IO_CODE,
    FFMPEG_PROCESS_CODE,
    FFMPEG_TIMEOUT_CODE,
    REMOTE_FAILED_CODE,
    EncodeError,
    EngineContext,
)

LOGGER = logging.getLogger("meme_engine.encoder")

VIDEO_DURATION_SECONDS = "10"
H264_CODEC = "libx264"
H264_PIXEL_FORMAT = "yuv420p"
H264_TUNE = "stillimage"
AUDIO_CODEC = "aac"
AUDIO_BITRATE = "192k"
SILENT_AUDIO_SOURCE = "anullsrc=channel_layout=stereo:sample_rate=44100"
FRAME_SUFFIX = ".png"
AUDIO_SUFFIX = ".mp3"
VIDEO_SUFFIX = ".mp4"
REMOTE_FRAME_FIELD = "data"
REMOTE_FRAME_FILENAME = "data.png"
REMOTE_AUDIO_FIELD = "audio"
REMOTE_AUDIO_FILENAME = "audio.mp3"
STDERR_TAIL_CHARS = 2000

# Keeps shielded encode tasks referenced until they finish.
_PENDING_TASKS: set[asyncio.Task[bytes]] = set()


class VideoEncoder(Protocol):
    """Anything that can turn a frame and optional audio into video bytes."""

    name: str

    async def encode(self, frame: bytes, audio: bytes | None) -> bytes:
        ...


@functools.lru_cache(maxsize=None)
def is_ffmpeg_available(ffmpeg_binary: str) -> bool:
    """Return True when ffmpeg is installed and executable."""
    ffmpeg_path = shutil.which(ffmpeg_binary)
    if not ffmpeg_path:
        LOGGER.info("meme_engine.encode.probe: %s not on PATH", ffmpeg_binary)
        return False
    try:
        subprocess.run(
            [ffmpeg_path, "-version"],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=True,
        )
    except (OSError, subprocess.CalledProcessError) as exc:
        LOGGER.warning(
            "meme_engine.encode.probe: %s exists but could not be executed (%s)",
            ffmpeg_path,
            exc,
        )
        return False
    return True


def build_ffmpeg_command(
    ffmpeg_binary: str,
    frame_path: str,
    audio_path: str | None,
    output_path: str,
) -> list[str]:
    """Build the ffmpeg command that loops one frame over an audio track."""
    command = [ffmpeg_binary, "-y", "-loop", "1", "-i", frame_path]
    if audio_path:
        command.extend(["-i", audio_path])
    else:
        command.extend(["-f", "lavfi", "-i", SILENT_AUDIO_SOURCE])
    command.extend(
        [
            "-c:v",
            H264_CODEC,
            "-tune",
            H264_TUNE,
            "-c:a",
            AUDIO_CODEC,
            "-b:a",
            AUDIO_BITRATE,
            "-pix_fmt",
            H264_PIXEL_FORMAT,
            "-shortest",
            "-t",
            VIDEO_DURATION_SECONDS,
            output_path,
        ]
    )
    return command


def remove_quietly(file_path: str) -> None:
    """Remove a file if it exists."""
    try:
        os.remove(file_path)
    except FileNotFoundError:
        return
    LOGGER.debug("meme_engine.encode.cleanup: removed %s", file_path)


def write_bytes(file_path: str, data: bytes) -> None:
    """Write bytes to a new file."""
    with open(file_path, "wb") as file_handle:
        file_handle.write(data)


def read_bytes(file_path: str) -> bytes:
    """Read a whole file."""
    with open(file_path, "rb") as file_handle:
        return file_handle.read()


async def run_ffmpeg(command: Sequence[str], timeout_seconds: float) -> None:
    """Run ffmpeg to completion, killing it on timeout or cancellation."""
    process = await asyncio.create_subprocess_exec(
        *command,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        _, stderr_bytes = await asyncio.wait_for(
            process.communicate(), timeout=timeout_seconds
        )
    except asyncio.TimeoutError as exc:
        process.kill()
        await process.wait()
        raise EncodeError(
            FFMPEG_TIMEOUT_CODE, f"ffmpeg did not finish within {timeout_seconds}s"
        ) from exc
    except asyncio.CancelledError:
        # The process must be gone before the caller removes its files.
        if process.returncode is None:
            process.kill()
        await process.wait()
        LOGGER.warning("meme_engine.encode.local_cancelled: ffmpeg killed")
        raise
    if process.returncode != 0:
        stderr_text = stderr_bytes.decode("utf-8", errors="replace").strip()
        raise EncodeError(
            FFMPEG_PROCESS_CODE,
            f"ffmpeg failed with exit code {process.returncode}. "
            f"{stderr_text[-STDERR_TAIL_CHARS:]}",
        )


@dataclass(frozen=True)
class LocalVideoEncoder:
    """Encodes with a local ffmpeg process using per-call temporary files."""

    ffmpeg_binary: str
    work_dir: str
    default_audio_path: str | None
    timeout_seconds: float
    name: str = "local"

    async def encode(self, frame: bytes, audio: bytes | None) -> bytes:
        # Cancelling the caller must not orphan the process or its files.
        task = asyncio.ensure_future(self._encode_files(frame, audio))
        _PENDING_TASKS.add(task)
        task.add_done_callback(_PENDING_TASKS.discard)
        return await asyncio.shield(task)

    async def _encode_files(self, frame: bytes, audio: bytes | None) -> bytes:
        file_stem = os.path.join(self.work_dir, uuid.uuid4().hex)
        frame_path = file_stem + FRAME_SUFFIX
        audio_path = file_stem + AUDIO_SUFFIX
        output_path = file_stem + VIDEO_SUFFIX
        try:
            write_bytes(frame_path, frame)
            if audio is not None:
                write_bytes(audio_path, audio)
                track_path: str | None = audio_path
            else:
                track_path = self.default_audio_path
            command = build_ffmpeg_command(
                self.ffmpeg_binary, frame_path, track_path, output_path
            )
            LOGGER.debug("meme_engine.encode.local: %s", " ".join(command))
            await run_ffmpeg(command, self.timeout_seconds)
            return read_bytes(output_path)
        except OSError as exc:
            raise EncodeError(
                FFMPEG_IO_CODE, f"local encoding i/o failed: {exc}"
            ) from exc
        finally:
            for file_path in (frame_path, audio_path, output_path):
                remove_quietly(file_path)


@dataclass(frozen=True)
class RemoteVideoEncoder:
    """Uploads the frame and audio to a converter service."""

    converter_url: str
    timeout_seconds: float
    name: str = "remote"

    def build_form(self, frame: bytes, audio: bytes | None) -> aiohttp.FormData:
        """Build the multipart upload body."""
        form = aiohttp.FormData()
        form.add_field(
            REMOTE_FRAME_FIELD,
            frame,
            filename=REMOTE_FRAME_FILENAME,
            content_type="image/png",
        )
        if audio is not None:
            form.add_field(
                REMOTE_AUDIO_FIELD,
                audio,
                filename=REMOTE_AUDIO_FILENAME,
                content_type="audio/mpeg",
            )
        return form

    async def encode(self, frame: bytes, audio: bytes | None) -> bytes:
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(
                    self.converter_url, data=self.build_form(frame, audio)
                ) as response:
                    response.raise_for_status()
                    video = await response.read()
        except aiohttp.ClientError as exc:
            raise EncodeError(
                REMOTE_FAILED_CODE, f"converter request failed: {exc}"
            ) from exc
        except asyncio.TimeoutError as exc:
            raise EncodeError(
                REMOTE_FAILED_CODE,
                f"converter did not answer within {self.timeout_seconds}s",
            ) from exc
        if not video:
            raise EncodeError(REMOTE_FAILED_CODE, "converter returned an empty body")
        return video


async def build_encoder_chain(context: EngineContext) -> Tuple[VideoEncoder, ...]:
    """Local ffmpeg first when available, then the remote converter if configured."""
    encoders: list[VideoEncoder] = []
    # The first probe per binary runs a subprocess; keep it off the event loop.
    if await asyncio.to_thread(is_ffmpeg_available, context.ffmpeg_binary):
        encoders.append(
            LocalVideoEncoder(
                ffmpeg_binary=context.ffmpeg_binary,
                work_dir=context.work_dir,
                default_audio_path=context.default_audio_path,
                timeout_seconds=context.ffmpeg_timeout_seconds,
            )
        )
    if context.converter_url:
        encoders.append(
            RemoteVideoEncoder(
                converter_url=context.converter_url,
                timeout_seconds=context.remote_timeout_seconds,
            )
        )
    return tuple(encoders)


async def encode_with(
    encoders: Sequence[VideoEncoder], frame: bytes, audio: bytes | None
) -> bytes:
    """Try each encoder in order and return the first successful result."""
    if not encoders:
        raise EncodeError(ENCODE_UNAVAILABLE_CODE, "no video encoder is available")
    failures: list[str] = []
    for encoder in encoders:
        try:
            video = await encoder.encode(frame, audio)
        except EncodeError as exc:
            LOGGER.warning(
                "meme_engine.encode.%s_failed: %s: %s", encoder.name, exc.code, exc
            )
            failures.append(f"{encoder.name}: {exc.code}")
            continue
        LOGGER.debug(
            "meme_engine.encode.%s_succeeded bytes=%d", encoder.name, len(video)
        )
        return video
    raise EncodeError(
        ENCODE_FAILED_CODE, f"all encoders failed ({'; '.join(failures)})"
    )


async def encode_video(
    frame: bytes, audio: bytes | None, context: EngineContext
) -> bytes:
    """Encode a video with the encoders available in this environment."""
    return await encode_with(await build_encoder_chain(context), frame, audio)
