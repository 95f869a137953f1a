"""Glyph metrics and greedy word wrapping for render_caption."""

from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO
import math
import os
from typing import Protocol, Sequence, Tuple

from PIL import ImageFont

from domain.caption import (
    EMPTY_TEXT_CODE,
    FONT_LOAD_CODE,
    FONT_MISSING_CODE,
    CaptionFont,
    CaptionValidationError,
    FontScale,
    LineBreakPlan,
    TextBlock,
    parse_text_block,
)

LINE_SEPARATOR = " "


class TextMeasurer(Protocol):
    """Anything that can report the rendered size of a string."""

    def measure(self, text_value: str) -> Tuple[int, int]: ...


def load_caption_font(font_file_path: str) -> CaptionFont:
    """Read a font file once and check that FreeType can open it."""
    if not os.path.isfile(font_file_path):
        raise CaptionValidationError(
            FONT_MISSING_CODE, f"font file not found: {font_file_path}"
        )
    with open(font_file_path, "rb") as file_handle:
        font = CaptionFont(source_path=font_file_path, data=file_handle.read())
    try:
        ImageFont.truetype(
            BytesIO(font.data), size=12, layout_engine=ImageFont.Layout.BASIC
        )
    except Exception as exc:
        raise CaptionValidationError(
            FONT_LOAD_CODE, f"failed to load font {font_file_path}"
        ) from exc
    return font


@dataclass(frozen=True)
class GlyphMetrics:
    """A font face fixed at one scale, shared read-only by every render task."""

    face: ImageFont.FreeTypeFont
    scale: FontScale

    @classmethod
    def for_scale(cls, font: CaptionFont, scale: FontScale) -> "GlyphMetrics":
        try:
            face = ImageFont.truetype(
                BytesIO(font.data),
                size=scale.y,
                layout_engine=ImageFont.Layout.BASIC,
            )
        except Exception as exc:
            raise CaptionValidationError(
                FONT_LOAD_CODE,
                f"failed to load font {font.source_path} at size {scale.y}",
            ) from exc
        return cls(face=face, scale=scale)

    def measure(self, text_value: str) -> Tuple[int, int]:
        """Return (width, height) in pixels of text drawn from the left edge.

        Width covers both the advance and the ink, so nothing drawn at
        x = 0 falls outside it. Height is the ink height.
        """
        if not text_value:
            return (0, 0)
        _, top, right, bottom = self.face.getbbox(text_value, anchor="la")
        advance = int(math.ceil(self.face.getlength(text_value)))
        return (max(advance, right), bottom - top)

    def ink_top(self, text_value: str) -> int:
        """Distance from the ascender line down to the top of the ink."""
        if not text_value:
            return 0
        return self.face.getbbox(text_value, anchor="la")[1]


def compute_line_breaks(
    words: Sequence[str], metrics: TextMeasurer, max_width: int
) -> Tuple[int, ...]:
    """Greedily choose where each line of a paragraph ends.

    A word starts a new line when the run from the last cut through it
    measures strictly wider than max_width. A word that is too wide on its
    own keeps a line to itself rather than being split.
    """
    cut_points: list[int] = []
    line_start = 0
    for index in range(len(words)):
        if index == line_start:
            continue
        run = LINE_SEPARATOR.join(words[line_start : index + 1])
        if metrics.measure(run)[0] > max_width:
            cut_points.append(index)
            line_start = index
    if words:
        cut_points.append(len(words))
    return tuple(cut_points)


def plan_line_breaks(
    block: TextBlock, metrics: TextMeasurer, max_width: int
) -> LineBreakPlan:
    """Build a line break plan for every paragraph independently."""
    plan = LineBreakPlan(
        cut_points=tuple(
            compute_line_breaks(words, metrics, max_width)
            for words in block.paragraphs
        )
    )
    plan.validate_against(block)
    return plan


def wrap_lines(block: TextBlock, plan: LineBreakPlan) -> Tuple[str, ...]:
    """Join the words between consecutive cut points into lines."""
    lines: list[str] = []
    for words, cuts in zip(block.paragraphs, plan.cut_points):
        line_start = 0
        for cut in cuts:
            lines.append(LINE_SEPARATOR.join(words[line_start:cut]))
            line_start = cut
    return tuple(lines)


def layout_caption(
    raw_text: str, metrics: TextMeasurer, max_width: int
) -> Tuple[str, ...]:
    """Wrap caption text into lines that fit max_width pixels."""
    block = parse_text_block(raw_text)
    lines = wrap_lines(block, plan_line_breaks(block, metrics, max_width))
    if not lines:
        raise CaptionValidationError(EMPTY_TEXT_CODE, "caption contains no text")
    return lines
