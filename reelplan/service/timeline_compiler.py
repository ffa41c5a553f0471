"""Compile aligned sentence spans into a frame-contiguous timeline."""

from __future__ import annotations

from dataclasses import dataclass, replace
import logging
import math
from typing import Mapping, Sequence, Tuple

from reelplan.config import DEFAULT_CALL_TO_ACTION_PHRASES
from reelplan.domain.timeline import (
    INVALID_CONFIG_CODE,
    CutPlan,
    MediaKind,
    PlanValidationError,
    Scene,
    SentenceInput,
    SentenceTiming,
    Timeline,
    TransitionKind,
    normalize_call_to_action,
)
from reelplan.service.alignment import effective_duration
from reelplan.service.transition_plan import plan_cut_transitions

LOGGER = logging.getLogger("reelplan.timeline_compiler")

BASE_FPS = 30
LOWER_FPS = 24
SHORT_SCRIPT_PREFIX = "30"
SHORT_SIZE = (1080, 1920)
SHORT_LOWER_SIZE = (720, 1280)
LONG_SIZE = (1920, 1080)
LONG_LOWER_SIZE = (1280, 720)


@dataclass(frozen=True)
class FramePolicy:
    """Output geometry and frame rate."""

    width: int
    height: int
    fps: int

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise PlanValidationError(
                INVALID_CONFIG_CODE, "width and height must be positive"
            )
        if self.fps <= 0:
            raise PlanValidationError(INVALID_CONFIG_CODE, "fps must be positive")


@dataclass(frozen=True)
class MediaChoice:
    kind: MediaKind
    ref: str | None


def is_short_script(script_length: str) -> bool:
    """Script-length labels such as "30 seconds" denote vertical short-form."""
    return script_length.strip().lower().startswith(SHORT_SCRIPT_PREFIX)


def resolve_frame_policy(
    is_short: bool | None = None,
    script_length: str = "",
    use_lower_fps: bool = False,
    use_lower_resolution: bool = False,
) -> FramePolicy:
    """Pick resolution and fps; an explicit ``is_short`` wins over the label."""
    short_form = is_short if is_short is not None else is_short_script(script_length)
    if short_form:
        width, height = SHORT_LOWER_SIZE if use_lower_resolution else SHORT_SIZE
    else:
        width, height = LONG_LOWER_SIZE if use_lower_resolution else LONG_SIZE
    fps = LOWER_FPS if use_lower_fps else BASE_FPS
    return FramePolicy(width=width, height=height, fps=fps)


def is_call_to_action(text_value: str, phrases: Sequence[str]) -> bool:
    normalized = normalize_call_to_action(text_value)
    return any(normalized == normalize_call_to_action(phrase) for phrase in phrases)


def choose_media(
    sentence: SentenceInput,
    image_ref: str | None,
    call_to_action_clip: str | None,
    call_to_action_phrases: Sequence[str],
) -> MediaChoice:
    """Resolve what backs a scene after call-to-action substitution."""
    if call_to_action_clip and is_call_to_action(sentence.text, call_to_action_phrases):
        return MediaChoice(kind=MediaKind.VIDEO, ref=call_to_action_clip)
    if sentence.media_kind == MediaKind.VIDEO and (sentence.media_ref or "").strip():
        return MediaChoice(kind=MediaKind.VIDEO, ref=sentence.media_ref)
    if image_ref is None and sentence.media_kind == MediaKind.IMAGE:
        image_ref = sentence.media_ref
    return MediaChoice(kind=MediaKind.IMAGE, ref=image_ref)


def nominal_end_frames(
    timings: Sequence[SentenceTiming],
    sentence_count: int,
    fps: int,
    duration_seconds: float,
) -> list[int]:
    """Quantize each sentence end to a frame, rounding up.

    Sentences without a timing end where the next timing starts, or at an
    even split of the duration when that is missing too.
    """
    by_index: Mapping[int, SentenceTiming] = {timing.index: timing for timing in timings}
    count = max(1, sentence_count)
    end_frames: list[int] = []
    for index in range(sentence_count):
        timing = by_index.get(index)
        following = by_index.get(index + 1)
        if timing is not None:
            start_seconds = max(0.0, min(timing.start_seconds, duration_seconds))
            raw_end = timing.end_seconds
        else:
            start_seconds = duration_seconds * index / count
            if following is not None:
                raw_end = following.start_seconds
            else:
                raw_end = duration_seconds * (index + 1) / count
        end_seconds = max(
            start_seconds + 1.0 / fps, min(max(0.0, raw_end), duration_seconds)
        )
        end_frames.append(int(math.ceil(end_seconds * fps)))
    return end_frames


def compile_scenes(
    sentences: Sequence[SentenceInput],
    timings: Sequence[SentenceTiming],
    fps: int,
    duration_seconds: float,
    image_refs: Sequence[str | None] = (),
    call_to_action_clip: str | None = None,
    call_to_action_phrases: Sequence[str] = DEFAULT_CALL_TO_ACTION_PHRASES,
    enable_signature_scene: bool = False,
) -> Tuple[Scene, ...]:
    """Build frame-contiguous scenes; each starts where the previous ends."""
    duration = effective_duration(duration_seconds)
    end_frames = nominal_end_frames(timings, len(sentences), fps, duration)
    signature_index = len(sentences) // 2 if enable_signature_scene else -1

    scenes: list[Scene] = []
    cursor = 0
    for index, sentence in enumerate(sentences):
        image_ref = image_refs[index] if index < len(image_refs) else None
        media = choose_media(
            sentence, image_ref, call_to_action_clip, call_to_action_phrases
        )
        end_frame = max(cursor + 1, end_frames[index])
        scenes.append(
            Scene(
                index=index,
                text=sentence.text,
                media_ref=media.ref,
                media_kind=media.kind,
                start_frame=cursor,
                duration_frames=end_frame - cursor,
                is_glitch_scene=index == signature_index,
                is_suspense=sentence.is_suspense,
            )
        )
        cursor = end_frame
    return tuple(scenes)


def merge_cut_plans(
    scenes: Sequence[Scene], cuts: Sequence[CutPlan]
) -> Tuple[Scene, ...]:
    """Write each cut's kind, seed and whip direction onto both neighbours."""
    merged = list(scenes)
    for cut in cuts:
        if cut.cut_index >= len(merged):
            raise PlanValidationError(
                INVALID_CONFIG_CODE, f"cut {cut.cut_index} has no following scene"
            )
        direction = cut.whip_direction or 0
        before = merged[cut.cut_index - 1]
        after = merged[cut.cut_index]
        merged[cut.cut_index - 1] = replace(
            before,
            transition_to_next=cut.kind,
            effect_seed_to_next=cut.seed,
            whip_direction_to_next=direction,
        )
        merged[cut.cut_index] = replace(
            after,
            transition_from_prev=cut.kind,
            effect_seed_from_prev=cut.seed,
            whip_direction_from_prev=direction,
        )
    return tuple(merged)


def total_duration_frames(
    scenes: Sequence[Scene], fps: int, duration_seconds: float
) -> int:
    if scenes:
        return scenes[-1].end_frame
    return int(math.ceil(effective_duration(duration_seconds) * fps))


def compile_timeline(
    sentences: Sequence[SentenceInput],
    timings: Sequence[SentenceTiming],
    duration_seconds: float,
    audio_ref: str,
    policy: FramePolicy,
    image_refs: Sequence[str | None] = (),
    call_to_action_clip: str | None = None,
    call_to_action_phrases: Sequence[str] = DEFAULT_CALL_TO_ACTION_PHRASES,
    enable_signature_scene: bool = False,
    seed: int | None = None,
) -> Timeline:
    """Compile scenes, plan their cuts and assemble the timeline."""
    scenes = compile_scenes(
        sentences,
        timings,
        policy.fps,
        duration_seconds,
        image_refs=image_refs,
        call_to_action_clip=call_to_action_clip,
        call_to_action_phrases=call_to_action_phrases,
        enable_signature_scene=enable_signature_scene,
    )
    cuts = plan_cut_transitions([scene.media_kind for scene in scenes], seed=seed)
    scenes = merge_cut_plans(scenes, cuts)
    timeline = Timeline(
        width=policy.width,
        height=policy.height,
        fps=policy.fps,
        total_duration_frames=total_duration_frames(
            scenes, policy.fps, duration_seconds
        ),
        audio_ref=audio_ref,
        scenes=scenes,
    )
    LOGGER.info(
        "reelplan.compile.done: scenes=%d frames=%d stylized_cuts=%d",
        len(scenes),
        timeline.total_duration_frames,
        sum(1 for cut in cuts if cut.kind != TransitionKind.NONE),
    )
    return timeline
