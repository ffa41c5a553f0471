"""Domain types and text normalization for timeline synthesis."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import math
import re
import unicodedata
from typing import Any, Tuple

INVALID_CONFIG_CODE = "reelplan.input.invalid_config"
INVALID_SENTENCE_CODE = "reelplan.input.invalid_sentence"
INVALID_TIMING_CODE = "reelplan.align.invalid_timing"
INVALID_CUT_CODE = "reelplan.plan.invalid_cut"
INVALID_SCENE_CODE = "reelplan.compile.invalid_scene"
NON_CONTIGUOUS_CODE = "reelplan.compile.non_contiguous"
DURATION_UNAVAILABLE_CODE = "reelplan.audio.duration_unavailable"

CALL_TO_ACTION_TRAILING = re.compile(r"[.!?]+$")
WHITESPACE_PATTERN = re.compile(r"\s+")


class PlanValidationError(ValueError):
    """Validation error with a stable error code."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


class PlanPipelineError(RuntimeError):
    """Runtime error with a stable error code."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


class MediaKind(str, Enum):
    """Media backing a scene."""

    IMAGE = "image"
    VIDEO = "video"


class TransitionKind(str, Enum):
    """Stylistic treatment applied at a cut."""

    NONE = "none"
    GLITCH = "glitch"
    WHIP = "whip"
    FLASH = "flash"
    FADE = "fade"
    CHROMA_LEAK = "chromaLeak"


@dataclass(frozen=True)
class SentenceInput:
    """One narrated sentence and its media selection."""

    text: str
    is_suspense: bool = False
    media_kind: MediaKind = MediaKind.IMAGE
    media_ref: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.media_kind, MediaKind):
            raise PlanValidationError(
                INVALID_SENTENCE_CODE, f"invalid media kind: {self.media_kind!r}"
            )
        if self.media_ref is not None and not self.media_ref.strip():
            raise PlanValidationError(
                INVALID_SENTENCE_CODE, "media_ref must be non-empty when set"
            )


@dataclass(frozen=True)
class SentenceTiming:
    """Aligned time span of a sentence within the narration."""

    index: int
    text: str
    start_seconds: float
    end_seconds: float

    def __post_init__(self) -> None:
        if self.index < 0:
            raise PlanValidationError(
                INVALID_TIMING_CODE, "timing index must be non-negative"
            )
        if not math.isfinite(self.start_seconds) or self.start_seconds < 0:
            raise PlanValidationError(
                INVALID_TIMING_CODE, "timing start must be finite and non-negative"
            )
        if not math.isfinite(self.end_seconds):
            raise PlanValidationError(INVALID_TIMING_CODE, "timing end must be finite")
        if self.end_seconds <= self.start_seconds:
            raise PlanValidationError(
                INVALID_TIMING_CODE, "timing end must be after start"
            )


@dataclass(frozen=True)
class CutPlan:
    """Transition resolved for the boundary before scene ``cut_index``."""

    cut_index: int
    kind: TransitionKind
    seed: int
    whip_direction: int | None = None

    def __post_init__(self) -> None:
        if self.cut_index < 1:
            raise PlanValidationError(INVALID_CUT_CODE, "cut_index must be at least 1")
        if self.kind == TransitionKind.WHIP:
            if self.whip_direction not in (1, -1):
                raise PlanValidationError(
                    INVALID_CUT_CODE, "whip cuts require a direction of +1 or -1"
                )
        elif self.whip_direction is not None:
            raise PlanValidationError(
                INVALID_CUT_CODE, "whip_direction is only valid for whip cuts"
            )


@dataclass(frozen=True)
class Scene:
    """Compiled, frame-indexed scene handed to the rendering engine."""

    index: int
    text: str
    media_ref: str | None
    media_kind: MediaKind
    start_frame: int
    duration_frames: int
    transition_from_prev: TransitionKind = TransitionKind.NONE
    transition_to_next: TransitionKind = TransitionKind.NONE
    effect_seed_from_prev: int = 0
    effect_seed_to_next: int = 0
    whip_direction_from_prev: int = 0
    whip_direction_to_next: int = 0
    is_glitch_scene: bool = False
    is_suspense: bool = False

    def __post_init__(self) -> None:
        if self.index < 0:
            raise PlanValidationError(
                INVALID_SCENE_CODE, "scene index must be non-negative"
            )
        if self.start_frame < 0:
            raise PlanValidationError(
                INVALID_SCENE_CODE, "start_frame must be non-negative"
            )
        if self.duration_frames <= 0:
            raise PlanValidationError(
                INVALID_SCENE_CODE, "duration_frames must be positive"
            )

    @property
    def end_frame(self) -> int:
        return self.start_frame + self.duration_frames

    @property
    def is_image_backed(self) -> bool:
        return self.media_kind == MediaKind.IMAGE

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the rendering engine's field names."""
        image_src = self.media_ref if self.is_image_backed else None
        video_src = None if self.is_image_backed else self.media_ref
        return {
            "index": self.index,
            "text": self.text,
            "imageSrc": image_src,
            "videoSrc": video_src,
            "startFrame": self.start_frame,
            "durationFrames": self.duration_frames,
            "transitionFromPrev": self.transition_from_prev.value,
            "transitionToNext": self.transition_to_next.value,
            "seedFromPrev": self.effect_seed_from_prev,
            "seedToNext": self.effect_seed_to_next,
            "whipDirFromPrev": self.whip_direction_from_prev,
            "whipDirToNext": self.whip_direction_to_next,
            "useGlitch": self.is_glitch_scene,
            "isSuspense": self.is_suspense,
        }


@dataclass(frozen=True)
class Timeline:
    """Immutable rendering plan for one narrated video."""

    width: int
    height: int
    fps: int
    total_duration_frames: int
    audio_ref: str
    scenes: Tuple[Scene, ...]

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise PlanValidationError(
                INVALID_CONFIG_CODE, "width and height must be positive"
            )
        if self.fps <= 0:
            raise PlanValidationError(INVALID_CONFIG_CODE, "fps must be positive")
        if self.total_duration_frames <= 0:
            raise PlanValidationError(
                INVALID_CONFIG_CODE, "total_duration_frames must be positive"
            )

        expected_start = 0
        for scene in self.scenes:
            if scene.start_frame != expected_start:
                raise PlanValidationError(
                    NON_CONTIGUOUS_CODE,
                    f"scene {scene.index} starts at {scene.start_frame}, "
                    f"expected {expected_start}",
                )
            expected_start = scene.end_frame
        if self.scenes and expected_start != self.total_duration_frames:
            raise PlanValidationError(
                NON_CONTIGUOUS_CODE, "scenes do not cover the total duration"
            )

    def to_dict(self) -> dict[str, Any]:
        """Serialize the timeline for the rendering engine."""
        return {
            "width": self.width,
            "height": self.height,
            "fps": self.fps,
            "durationInFrames": self.total_duration_frames,
            "audioSrc": self.audio_ref,
            "scenes": [scene.to_dict() for scene in self.scenes],
        }


def is_word_character(character: str) -> bool:
    """Return True for unicode letters and digits."""
    category = unicodedata.category(character)
    return category.startswith("L") or category.startswith("N")


def normalize_token(raw_token: str) -> str:
    """Lowercase a token and strip non-alphanumeric characters at its edges."""
    token = raw_token.lower()
    start = 0
    end = len(token)
    while start < end and not is_word_character(token[start]):
        start += 1
    while end > start and not is_word_character(token[end - 1]):
        end -= 1
    return token[start:end]


def tokenize_sentence(text_value: str) -> Tuple[str, ...]:
    """Split text into normalized transcript tokens, dropping empty ones."""
    tokens = (normalize_token(raw) for raw in text_value.split())
    return tuple(token for token in tokens if token)


def count_words(text_value: str) -> int:
    """Count whitespace-delimited words."""
    return len(text_value.split())


def normalize_call_to_action(text_value: str) -> str:
    """Normalize text for comparison against call-to-action phrases."""
    normalized = text_value.lower().strip()
    normalized = CALL_TO_ACTION_TRAILING.sub("", normalized)
    normalized = normalized.replace("&", "and")
    return WHITESPACE_PATTERN.sub(" ", normalized)


def parse_media_kind(value: str) -> MediaKind:
    """Parse a media kind name."""
    normalized = value.strip().lower()
    try:
        return MediaKind(normalized)
    except ValueError as exc:
        raise PlanValidationError(
            INVALID_SENTENCE_CODE, f"invalid media kind: {value!r}"
        ) from exc
