#!/usr/bin/env -S uv run
# /// script
# requires-python = ">=3.11"
# dependencies = [
#   "pillow>=10.1"
# ]
# ///
"""Render a wrapped text caption sized to a media width into a PNG."""

from __future__ import annotations

import argparse
import logging
import os
import random
import string
import sys
from dataclasses import dataclass
from typing import Sequence, Tuple

from PIL import Image

from domain.caption import (
    DEFAULT_RENDER_WORKERS,
    INPUT_FILE_CODE,
    INVALID_CONFIG_CODE,
    MEDIA_IMAGE_CODE,
    OUTPUT_EXISTS_CODE,
    OUTPUT_EXTENSION,
    CaptionConfig,
    CaptionPipelineError,
    CaptionRequest,
    CaptionValidationError,
)
from service.caption_layout import load_caption_font
from service.caption_raster import render_caption, stack_caption_above_frame

RANDOM_NAME_LENGTH = 5
RANDOM_NAME_ALPHABET = string.ascii_letters + string.digits
LOGGER = logging.getLogger("render_caption")


@dataclass(frozen=True)
class CaptionCliRequest:
    """Parsed CLI request and runtime options."""

    config: CaptionConfig
    caption_text: str
    media_image: Image.Image | None


def configure_logging() -> None:
    """Configure logging for CLI output."""
    logging.basicConfig(level=logging.INFO, format="%(message)s")


def random_name(
    length: int = RANDOM_NAME_LENGTH, rng: random.Random | None = None
) -> str:
    """Return a random alphanumeric name."""
    generator = rng if rng is not None else random.Random()
    return "".join(generator.choice(RANDOM_NAME_ALPHABET) for _ in range(length))


def read_utf8_text_strict(file_path: str) -> str:
    """Read a UTF-8 file with strict decoding."""
    try:
        with open(file_path, "rb") as file_handle:
            file_bytes = file_handle.read()
    except FileNotFoundError as exc:
        raise CaptionValidationError(
            INPUT_FILE_CODE, f"caption text file not found: {file_path}"
        ) from exc

    try:
        return file_bytes.decode("utf-8", errors="strict")
    except UnicodeDecodeError as exc:
        raise CaptionValidationError(
            INPUT_FILE_CODE,
            f"caption text file is not valid UTF-8 at byte offset {exc.start}",
        ) from exc


def load_media_image(image_path: str) -> Image.Image:
    """Load the first frame of a media image as RGBA."""
    try:
        with Image.open(image_path) as image:
            image.seek(0)
            return image.convert("RGBA")
    except FileNotFoundError as exc:
        raise CaptionValidationError(
            MEDIA_IMAGE_CODE, f"media image not found: {image_path}"
        ) from exc
    except Exception as exc:
        raise CaptionValidationError(
            MEDIA_IMAGE_CODE, f"failed to read media image: {image_path}"
        ) from exc


def resolve_output_path(
    output_dir: str, output_name: str | None, force_overwrite: bool
) -> str:
    """Build the output file path, refusing to clobber unless forced."""
    name = output_name if output_name is not None else random_name()
    if not name.lower().endswith(OUTPUT_EXTENSION):
        name = f"{name}{OUTPUT_EXTENSION}"
    output_path = os.path.join(output_dir, name)
    if os.path.exists(output_path) and not force_overwrite:
        raise CaptionValidationError(
            OUTPUT_EXISTS_CODE,
            f"output file already exists: {output_path} (use --force-overwrite)",
        )
    return output_path


def resolve_dimensions(
    width: int | None, height: int | None, media_image: Image.Image | None
) -> Tuple[int, int]:
    """Take dimensions from the media image or from explicit flags."""
    if media_image is not None:
        if width is not None or height is not None:
            raise CaptionValidationError(
                INVALID_CONFIG_CODE,
                "width/height cannot be combined with media-image",
            )
        return media_image.size
    if width is None or height is None:
        raise CaptionValidationError(
            INVALID_CONFIG_CODE, "width and height are required without media-image"
        )
    return width, height


def parse_args(argv: Sequence[str]) -> CaptionCliRequest:
    """Parse CLI arguments into a CaptionCliRequest."""
    parser = argparse.ArgumentParser(prog="render_caption.py", add_help=True)
    text_group = parser.add_mutually_exclusive_group(required=True)
    text_group.add_argument("--text")
    text_group.add_argument("--text-file")
    parser.add_argument("--font-file", required=True)
    parser.add_argument("--width", type=int)
    parser.add_argument("--height", type=int)
    parser.add_argument("--media-image", default=None)
    parser.add_argument("--output-dir", default=".")
    parser.add_argument("--output-name", default=None)
    parser.add_argument("--force-overwrite", action="store_true")
    parser.add_argument(
        "--caption-only",
        action="store_true",
        help="write only the caption even when a media image is given",
    )
    parser.add_argument("--workers", type=int, default=DEFAULT_RENDER_WORKERS)

    parsed = parser.parse_args(argv)
    if parsed.text_file is not None:
        raw_text = read_utf8_text_strict(parsed.text_file)
    else:
        raw_text = parsed.text
    media_image = (
        load_media_image(parsed.media_image) if parsed.media_image else None
    )
    if parsed.caption_only and media_image is None:
        LOGGER.warning("render_caption.input.caption_only_ignored: no media image")
    width, height = resolve_dimensions(parsed.width, parsed.height, media_image)

    config = CaptionConfig(
        width=width,
        height=height,
        font_file=parsed.font_file,
        output_dir=parsed.output_dir,
        output_name=parsed.output_name,
        force_overwrite=parsed.force_overwrite,
        render_workers=parsed.workers,
        caption_only=parsed.caption_only,
    )
    return CaptionCliRequest(
        config=config, caption_text=raw_text.strip(), media_image=media_image
    )


def main() -> int:
    """CLI entrypoint."""
    configure_logging()

    try:
        request = parse_args(sys.argv[1:])
        config = request.config
        if not os.path.isdir(config.output_dir):
            raise CaptionValidationError(
                INVALID_CONFIG_CODE,
                f"output directory does not exist: {config.output_dir}",
            )
        output_path = resolve_output_path(
            config.output_dir, config.output_name, config.force_overwrite
        )
        font = load_caption_font(config.font_file)
        LOGGER.info("render_caption.caption.start: %dx%d", config.width, config.height)
        caption = render_caption(
            CaptionRequest(
                text=request.caption_text,
                width=config.width,
                height=config.height,
                font=font,
                render_workers=config.render_workers,
            )
        )
        LOGGER.info(
            "render_caption.caption.created: %dx%d", caption.width, caption.height
        )
        output_image = caption
        if request.media_image is not None and not config.caption_only:
            output_image = stack_caption_above_frame(caption, request.media_image)
        output_image.save(output_path, format="PNG")
        LOGGER.info("render_caption.output.written: %s", output_path)
        return 0
    except CaptionValidationError as exc:
        LOGGER.error("%s: %s", exc.code, str(exc).strip())
        return 1
    except CaptionPipelineError as exc:
        LOGGER.error("%s: %s", exc.code, str(exc).strip())
        return 1
    except Exception as exc:
        LOGGER.error("render_caption.unhandled_error: %s", str(exc).strip())
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
