"""Domain types and parsing for render_caption."""

from __future__ import annotations

from dataclasses import dataclass
import os
from typing import Tuple

INVALID_CONFIG_CODE = "caption.input.invalid_config"
EMPTY_TEXT_CODE = "caption.input.empty_text"
INPUT_FILE_CODE = "caption.input.file_error"
FONT_MISSING_CODE = "caption.input.font_missing"
FONT_LOAD_CODE = "caption.input.font_unloadable"
MEDIA_IMAGE_CODE = "caption.input.media_image"
DEGENERATE_SIZE_CODE = "caption.input.degenerate_size"
OUTPUT_EXISTS_CODE = "caption.output.exists"
COMPOSITION_CODE = "caption.internal.composition"
INVALID_PLAN_CODE = "caption.internal.invalid_plan"

FONT_SCALE_DIVISOR = 8.0
DEFAULT_RENDER_WORKERS = 4
OUTPUT_EXTENSION = ".png"


class CaptionValidationError(ValueError):
    """Validation error with a stable error code."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


class CaptionPipelineError(RuntimeError):
    """Runtime error with a stable error code."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


@dataclass(frozen=True)
class CaptionFont:
    """Font file contents loaded once and shared read-only."""

    source_path: str
    data: bytes

    def __post_init__(self) -> None:
        if not self.data:
            raise CaptionValidationError(
                FONT_LOAD_CODE, f"font file is empty: {self.source_path}"
            )


@dataclass(frozen=True)
class FontScale:
    """Pixel scale used for every measurement and draw of one caption."""

    x: float
    y: float

    def __post_init__(self) -> None:
        if self.x <= 0 or self.y <= 0:
            raise CaptionValidationError(
                INVALID_CONFIG_CODE, "font scale must be positive"
            )
        if self.x != self.y:
            raise CaptionValidationError(
                INVALID_CONFIG_CODE, "font scale must be uniform"
            )

    @classmethod
    def uniform(cls, value: float) -> "FontScale":
        return cls(x=value, y=value)

    @classmethod
    def from_media_height(cls, height: int) -> "FontScale":
        """Derive the scale from the height of the media being captioned."""
        if height <= 0:
            raise CaptionValidationError(
                INVALID_CONFIG_CODE, "media height must be positive"
            )
        return cls.uniform(height / FONT_SCALE_DIVISOR)


@dataclass(frozen=True)
class CaptionRequest:
    """Everything needed to render one caption image."""

    text: str
    width: int
    height: int
    font: CaptionFont
    render_workers: int = DEFAULT_RENDER_WORKERS

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise CaptionValidationError(
                DEGENERATE_SIZE_CODE, "width and height must be positive"
            )
        if self.render_workers <= 0:
            raise CaptionValidationError(
                INVALID_CONFIG_CODE, "render_workers must be positive"
            )

    @property
    def scale(self) -> FontScale:
        return FontScale.from_media_height(self.height)


@dataclass(frozen=True)
class CaptionConfig:
    """Validated configuration for render_caption."""

    width: int
    height: int
    font_file: str
    output_dir: str
    output_name: str | None
    force_overwrite: bool
    render_workers: int
    caption_only: bool

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise CaptionValidationError(
                INVALID_CONFIG_CODE, "width and height must be positive"
            )
        if not self.font_file.strip():
            raise CaptionValidationError(
                INVALID_CONFIG_CODE, "font_file must be non-empty"
            )
        if not self.output_dir.strip():
            raise CaptionValidationError(
                INVALID_CONFIG_CODE, "output_dir must be non-empty"
            )
        if self.output_name is not None:
            if not self.output_name.strip():
                raise CaptionValidationError(
                    INVALID_CONFIG_CODE, "output_name must be non-empty"
                )
            if os.sep in self.output_name:
                raise CaptionValidationError(
                    INVALID_CONFIG_CODE, "output_name must not contain a path"
                )
        if self.render_workers <= 0:
            raise CaptionValidationError(
                INVALID_CONFIG_CODE, "render_workers must be positive"
            )


@dataclass(frozen=True)
class TextBlock:
    """Caption text split into paragraphs of words."""

    paragraphs: Tuple[Tuple[str, ...], ...]

    @property
    def word_count(self) -> int:
        return sum(len(words) for words in self.paragraphs)


@dataclass(frozen=True)
class LineBreakPlan:
    """Per-paragraph word indexes at which each rendered line ends."""

    cut_points: Tuple[Tuple[int, ...], ...]

    def validate_against(self, block: TextBlock) -> None:
        """Raise when the cut points do not assign every word exactly once."""
        if len(self.cut_points) != len(block.paragraphs):
            raise CaptionPipelineError(
                INVALID_PLAN_CODE, "line break plan does not match paragraphs"
            )
        for cuts, words in zip(self.cut_points, block.paragraphs):
            if not words:
                if cuts:
                    raise CaptionPipelineError(
                        INVALID_PLAN_CODE, "empty paragraph has cut points"
                    )
                continue
            previous = 0
            for cut in cuts:
                if cut <= previous:
                    raise CaptionPipelineError(
                        INVALID_PLAN_CODE, "cut points must be strictly increasing"
                    )
                previous = cut
            if previous != len(words):
                raise CaptionPipelineError(
                    INVALID_PLAN_CODE, "last cut point must equal word count"
                )


def parse_text_block(raw_text: str) -> TextBlock:
    """Split raw text on newlines, then on whitespace."""
    normalized = raw_text.replace("\ufeff", "").replace("\r\n", "\n")
    return TextBlock(
        paragraphs=tuple(tuple(line.split()) for line in normalized.split("\n"))
    )
