"""Line rendering, stacking, canvas and scaling for render_caption."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
import logging
from typing import Sequence, Tuple

from PIL import Image, ImageDraw

from domain.caption import (
    COMPOSITION_CODE,
    DEGENERATE_SIZE_CODE,
    CaptionPipelineError,
    CaptionRequest,
    CaptionValidationError,
)
from service.caption_layout import GlyphMetrics, layout_caption

SOLE_LINE_PADDING = 2.5
MULTI_LINE_PADDING = 1.3
CANVAS_SCALE = 1.2
TEXT_RGBA = (0, 0, 0, 255)
CANVAS_RGBA = (255, 255, 255, 255)
TRANSPARENT_RGBA = (0, 0, 0, 0)
RESAMPLE_FILTER = Image.Resampling.BICUBIC
LOGGER = logging.getLogger("render_caption.raster")


def render_line(
    text_value: str,
    metrics: GlyphMetrics,
    sole_line: bool,
    line_height: int | None = None,
) -> Image.Image:
    """Draw one line of text into a transparent, vertically padded buffer."""
    text_width, text_height = metrics.measure(text_value)
    base_height = text_height if line_height is None else line_height
    padding = SOLE_LINE_PADDING if sole_line else MULTI_LINE_PADDING
    buffer_height = max(1, int(base_height * padding))
    image = Image.new("RGBA", (max(1, text_width), buffer_height), TRANSPARENT_RGBA)
    y_offset = (buffer_height - text_height) // 2 - metrics.ink_top(text_value)
    ImageDraw.Draw(image).text(
        (0, y_offset), text_value, font=metrics.face, fill=TEXT_RGBA, anchor="la"
    )
    return image


def render_lines(
    lines: Sequence[str],
    metrics: GlyphMetrics,
    max_workers: int,
    line_height: int | None = None,
) -> Tuple[Image.Image, ...]:
    """Render lines on a bounded thread pool; results keep the input order."""
    if not lines:
        return ()
    sole_line = len(lines) == 1
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        return tuple(
            executor.map(
                lambda text_value: render_line(
                    text_value, metrics, sole_line, line_height
                ),
                lines,
            )
        )


def paste_checked(
    target: Image.Image, source: Image.Image, x_value: int, y_value: int
) -> None:
    """Copy source into target, refusing any copy that would be clipped."""
    if (
        x_value < 0
        or y_value < 0
        or x_value + source.width > target.width
        or y_value + source.height > target.height
    ):
        raise CaptionPipelineError(
            COMPOSITION_CODE,
            f"{source.width}x{source.height} buffer at ({x_value}, {y_value}) "
            f"does not fit in {target.width}x{target.height}",
        )
    target.paste(source, (x_value, y_value))


def stack_lines(buffers: Sequence[Image.Image]) -> Image.Image:
    """Stack line buffers top to bottom, each centered horizontally."""
    if not buffers:
        raise CaptionPipelineError(COMPOSITION_CODE, "no line buffers to stack")
    output_width = max(buffer.width for buffer in buffers)
    output_height = sum(buffer.height for buffer in buffers)
    output = Image.new("RGBA", (output_width, output_height), TRANSPARENT_RGBA)
    accumulated_height = 0
    for buffer in buffers:
        paste_checked(
            output,
            buffer,
            (output_width - buffer.width) // 2,
            accumulated_height,
        )
        accumulated_height += buffer.height
    return output


def build_canvas(content: Image.Image, target_width: int) -> Image.Image:
    """Center content on an opaque white canvas 1.2 times its size.

    The canvas is sized from the target width, or from the content when a
    single word overflows it, so the content is never clipped.
    """
    canvas_width = int(max(target_width, content.width) * CANVAS_SCALE)
    canvas_height = int(content.height * CANVAS_SCALE)
    canvas = Image.new("RGBA", (canvas_width, canvas_height), CANVAS_RGBA)
    x_value = (canvas_width - content.width) // 2
    y_value = (canvas_height - content.height) // 2
    canvas.alpha_composite(content, dest=(x_value, y_value))
    return canvas


def compute_scaled_height(
    source_width: int, source_height: int, target_width: int
) -> int:
    """Scale a height by target_width / source_width, rounded up to even."""
    scaled_height = max(1, int(round(source_height * target_width / source_width)))
    if scaled_height % 2 != 0:
        scaled_height += 1
    return scaled_height


def scale_to_width(canvas: Image.Image, target_width: int) -> Image.Image:
    """Resize the canvas to target_width keeping its aspect ratio."""
    if target_width <= 0:
        raise CaptionValidationError(
            DEGENERATE_SIZE_CODE, "target width must be positive"
        )
    if canvas.width <= 0 or canvas.height <= 0:
        raise CaptionValidationError(
            DEGENERATE_SIZE_CODE,
            f"cannot scale a {canvas.width}x{canvas.height} canvas",
        )
    target_height = compute_scaled_height(canvas.width, canvas.height, target_width)
    return canvas.resize((target_width, target_height), RESAMPLE_FILTER)


def render_caption(request: CaptionRequest) -> Image.Image:
    """Lay out, render and scale a caption to the request width."""
    metrics = GlyphMetrics.for_scale(request.font, request.scale)
    lines = layout_caption(request.text, metrics, request.width)
    LOGGER.info("caption.layout.wrapped: %d line(s)", len(lines))
    line_height = max(metrics.measure(line)[1] for line in lines)
    if len(lines) == 1:
        content = render_line(lines[0], metrics, True, line_height)
    else:
        content = stack_lines(
            render_lines(lines, metrics, request.render_workers, line_height)
        )
    canvas = build_canvas(content, request.width)
    return scale_to_width(canvas, request.width)


def stack_caption_above_frame(caption: Image.Image, frame: Image.Image) -> Image.Image:
    """Return a new image with the caption on top and the frame below it."""
    if caption.width != frame.width:
        raise CaptionPipelineError(
            COMPOSITION_CODE,
            f"caption width {caption.width} does not match frame width {frame.width}",
        )
    if frame.mode != "RGBA":
        frame = frame.convert("RGBA")
    output = Image.new(
        "RGBA", (frame.width, caption.height + frame.height), TRANSPARENT_RGBA
    )
    paste_checked(output, caption, 0, 0)
    paste_checked(output, frame, 0, caption.height)
    return output


def stack_caption_above_frames(
    caption: Image.Image, frames: Sequence[Image.Image], max_workers: int
) -> Tuple[Image.Image, ...]:
    """Caption every frame of a decoded sequence, keeping frame order."""
    if not frames:
        return ()
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        return tuple(
            executor.map(
                lambda frame: stack_caption_above_frame(caption, frame), frames
            )
        )
