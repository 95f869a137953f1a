"""Integration tests for render_caption CLI."""

from __future__ import annotations

import random
import struct
import subprocess
import sys
import zlib
from pathlib import Path
from typing import List

from PIL import Image

from render_caption import random_name, resolve_output_path

REPO_ROOT = Path(__file__).resolve().parents[1]
SCRIPT_PATH = REPO_ROOT / "render_caption.py"
FONT_PATH = REPO_ROOT / "assets" / "fonts" / "Lato-Regular.ttf"


def run_render_caption(args: List[str]) -> subprocess.CompletedProcess[str]:
    """Run render_caption.py with the provided arguments."""
    return subprocess.run(
        [sys.executable, str(SCRIPT_PATH), *args],
        cwd=REPO_ROOT,
        text=True,
        capture_output=True,
        check=False,
    )


def write_png(
    target_path: Path, width: int, height: int, color: tuple[int, int, int, int]
) -> None:
    """Write a solid-color RGBA PNG using the standard library."""

    def png_chunk(chunk_type: bytes, data: bytes) -> bytes:
        length = struct.pack(">I", len(data))
        crc = struct.pack(">I", zlib.crc32(chunk_type + data) & 0xFFFFFFFF)
        return length + chunk_type + data + crc

    row = bytes([0]) + bytes(color) * width
    raw = row * height
    compressed = zlib.compress(raw)

    signature = b"\x89PNG\r\n\x1a\n"
    ihdr = struct.pack(">IIBBBBB", width, height, 8, 6, 0, 0, 0)
    png_bytes = (
        signature
        + png_chunk(b"IHDR", ihdr)
        + png_chunk(b"IDAT", compressed)
        + png_chunk(b"IEND", b"")
    )
    target_path.write_bytes(png_bytes)


def build_common_args(
    output_dir: Path,
    output_name: str = "caption",
    include_dimensions: bool = True,
    width: int = 320,
    height: int = 240,
) -> List[str]:
    """Build common CLI arguments for render_caption.py."""
    args = [
        "--font-file",
        str(FONT_PATH),
        "--output-dir",
        str(output_dir),
        "--output-name",
        output_name,
    ]
    if include_dimensions:
        args.extend(["--width", str(width), "--height", str(height)])
    return args


def test_caption_success(tmp_path: Path) -> None:
    """Render a caption PNG as wide as the requested media."""
    args = ["--text", "hello world"] + build_common_args(tmp_path)

    result = run_render_caption(args)

    assert result.returncode == 0, result.stderr
    output_path = tmp_path / "caption.png"
    assert output_path.exists()
    with Image.open(output_path) as image:
        assert image.width == 320
        assert image.height % 2 == 0


def test_caption_from_text_file(tmp_path: Path) -> None:
    """Read caption text from a UTF-8 file, newlines included."""
    text_path = tmp_path / "caption.txt"
    text_path.write_text("  insert here\nsomething generic  \n", encoding="utf-8")
    args = ["--text-file", str(text_path)] + build_common_args(tmp_path)

    result = run_render_caption(args)

    assert result.returncode == 0, result.stderr
    assert (tmp_path / "caption.png").exists()


def test_empty_caption_fails(tmp_path: Path) -> None:
    """Whitespace-only text is reported and no file is written."""
    args = ["--text", "   "] + build_common_args(tmp_path)

    result = run_render_caption(args)

    assert result.returncode != 0
    assert "caption.input.empty_text" in result.stderr
    assert not (tmp_path / "caption.png").exists()


def test_invalid_utf8_text_file_fails(tmp_path: Path) -> None:
    text_path = tmp_path / "caption.txt"
    text_path.write_bytes(b"caf\xe9")
    args = ["--text-file", str(text_path)] + build_common_args(tmp_path)

    result = run_render_caption(args)

    assert result.returncode != 0
    assert "caption.input.file_error" in result.stderr


def test_missing_font_fails(tmp_path: Path) -> None:
    args = [
        "--text",
        "hello",
        "--font-file",
        str(tmp_path / "missing.ttf"),
        "--output-dir",
        str(tmp_path),
        "--width",
        "320",
        "--height",
        "240",
    ]

    result = run_render_caption(args)

    assert result.returncode != 0
    assert "caption.input.font_missing" in result.stderr


def test_media_image_derives_dimensions(tmp_path: Path) -> None:
    """A media image supplies the width and gets the caption stacked on top."""
    media_path = tmp_path / "frame.png"
    write_png(media_path, 96, 64, (255, 0, 0, 255))
    args = ["--text", "caption on top", "--media-image", str(media_path)]
    args += build_common_args(tmp_path, include_dimensions=False)

    result = run_render_caption(args)

    assert result.returncode == 0, result.stderr
    with Image.open(tmp_path / "caption.png") as image:
        rgba = image.convert("RGBA")
        assert rgba.width == 96
        assert rgba.height > 64
        assert rgba.getpixel((0, rgba.height - 1)) == (255, 0, 0, 255)
        caption_height = rgba.height - 64
        assert caption_height % 2 == 0


def test_caption_only_with_media_image(tmp_path: Path) -> None:
    media_path = tmp_path / "frame.png"
    write_png(media_path, 96, 64, (255, 0, 0, 255))
    args = [
        "--text",
        "caption only",
        "--media-image",
        str(media_path),
        "--caption-only",
    ]
    args += build_common_args(tmp_path, include_dimensions=False)

    result = run_render_caption(args)

    assert result.returncode == 0, result.stderr
    with Image.open(tmp_path / "caption.png") as image:
        assert image.width == 96
        assert image.convert("RGBA").getpixel((0, image.height - 1))[0] > 200
        assert image.convert("RGBA").getpixel((0, image.height - 1))[1] > 200


def test_media_image_conflicts_with_dimensions(tmp_path: Path) -> None:
    media_path = tmp_path / "frame.png"
    write_png(media_path, 96, 64, (255, 0, 0, 255))
    args = ["--text", "hello", "--media-image", str(media_path)]
    args += build_common_args(tmp_path)

    result = run_render_caption(args)

    assert result.returncode != 0
    assert "caption.input.invalid_config" in result.stderr


def test_requires_dimensions_without_media(tmp_path: Path) -> None:
    args = ["--text", "hello"] + build_common_args(tmp_path, include_dimensions=False)

    result = run_render_caption(args)

    assert result.returncode != 0
    assert "caption.input.invalid_config" in result.stderr


def test_existing_output_requires_force(tmp_path: Path) -> None:
    """An existing output is kept unless overwriting is forced."""
    (tmp_path / "caption.png").write_bytes(b"keep")
    args = ["--text", "hello"] + build_common_args(tmp_path)

    refused = run_render_caption(args)
    assert refused.returncode != 0
    assert "caption.output.exists" in refused.stderr
    assert (tmp_path / "caption.png").read_bytes() == b"keep"

    forced = run_render_caption(args + ["--force-overwrite"])
    assert forced.returncode == 0, forced.stderr
    with Image.open(tmp_path / "caption.png") as image:
        assert image.width == 320


def test_random_name_is_alphanumeric() -> None:
    name = random_name()
    assert len(name) == 5
    assert name.isalnum()
    assert random_name(rng=random.Random(7)) == random_name(rng=random.Random(7))


def test_resolve_output_path_adds_extension(tmp_path: Path) -> None:
    assert resolve_output_path(str(tmp_path), "out", False) == str(tmp_path / "out.png")
    assert resolve_output_path(str(tmp_path), "out.png", False) == str(
        tmp_path / "out.png"
    )
    generated = resolve_output_path(str(tmp_path), None, False)
    assert generated.endswith(".png")
