"""Integration tests for the render_meme CLI."""

from __future__ import annotations

import os
import subprocess
import sys
from io import BytesIO
from pathlib import Path
from typing import List

from PIL import Image


def run_render_meme(
    args: List[str], repo_root: Path, tmp_path: Path
) -> subprocess.CompletedProcess[str]:
    """Run render_meme.py offline, with no trigger words and no encoders."""
    work_dir = tmp_path / "work"
    work_dir.mkdir(exist_ok=True)
    env = os.environ.copy()
    env.update(
        {
            "MEME_ENGINE_WORDS": "",
            "MEME_ENGINE_CONVERTER_URL": "",
            "MEME_ENGINE_FFMPEG_BINARY": str(tmp_path / "no-such-ffmpeg"),
            "MEME_ENGINE_WORK_DIR": str(work_dir),
        }
    )
    return subprocess.run(
        [sys.executable, str(repo_root / "render_meme.py"), *args],
        cwd=repo_root,
        env=env,
        text=True,
        capture_output=True,
        check=False,
    )


def test_render_meme_writes_png(tmp_path: Path) -> None:
    """A /gen command without encoders produces the still image."""
    repo_root = Path(__file__).resolve().parents[1]
    result = run_render_meme(
        ["--text", "/gen hello there", "--output-dir", str(tmp_path)],
        repo_root,
        tmp_path,
    )
    assert result.returncode == 0, result.stderr
    output_path = tmp_path / "meme.png"
    assert output_path.is_file()
    with Image.open(output_path) as image:
        assert image.size == (1024, 1024)
    assert "meme_engine.encode.unavailable" in result.stderr


def test_render_meme_uses_custom_image(tmp_path: Path) -> None:
    """--image supplies the photo for the meme."""
    repo_root = Path(__file__).resolve().parents[1]
    image_path = tmp_path / "custom.jpg"
    buffer = BytesIO()
    Image.new("RGB", (300, 200), color=(0, 0, 255)).save(buffer, format="JPEG")
    image_path.write_bytes(buffer.getvalue())

    result = run_render_meme(
        [
            "--text",
            "/gen blue",
            "--image",
            str(image_path),
            "--output-dir",
            str(tmp_path),
        ],
        repo_root,
        tmp_path,
    )
    assert result.returncode == 0, result.stderr
    with Image.open(tmp_path / "meme.png") as image:
        red, green, blue = image.convert("RGB").getpixel((512, 384))
    assert blue > 200 and red < 40 and green < 40


def test_render_meme_rejects_malformed_command(tmp_path: Path) -> None:
    """Plain text is not a command when no trigger words are configured."""
    repo_root = Path(__file__).resolve().parents[1]
    result = run_render_meme(
        ["--text", "hello", "--output-dir", str(tmp_path)], repo_root, tmp_path
    )
    assert result.returncode == 1
    assert "meme_engine.input.invalid_command" in result.stderr
    assert not (tmp_path / "meme.png").exists()


def test_render_meme_scope_words_without_match(tmp_path: Path) -> None:
    """A non-matching scope list exits cleanly without output."""
    repo_root = Path(__file__).resolve().parents[1]
    result = run_render_meme(
        ["--text", "nothing here", "--words", "qqq", "--output-dir", str(tmp_path)],
        repo_root,
        tmp_path,
    )
    assert result.returncode == 0, result.stderr
    assert not (tmp_path / "meme.png").exists()
    assert not (tmp_path / "meme.mp4").exists()


def test_render_meme_rejects_missing_image(tmp_path: Path) -> None:
    repo_root = Path(__file__).resolve().parents[1]
    result = run_render_meme(
        [
            "--text",
            "/gen hello",
            "--image",
            str(tmp_path / "missing.jpg"),
            "--output-dir",
            str(tmp_path),
        ],
        repo_root,
        tmp_path,
    )
    assert result.returncode == 1
    assert "meme_engine.config.invalid" in result.stderr
