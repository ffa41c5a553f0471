"""End-to-end composition: align, compile, plan cuts, derive effects."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import math
from typing import Any, Callable, Tuple

from reelplan.adapters.audio_probe import probe_audio_duration_seconds
from reelplan.adapters.transcription import Transcriber
from reelplan.adapters.voice_activity import VoiceActivityDetector
from reelplan.config import PipelineConfig
from reelplan.domain.timeline import (
    DURATION_UNAVAILABLE_CODE,
    PlanPipelineError,
    SentenceInput,
    SentenceTiming,
    Timeline,
)
from reelplan.service.alignment import align_sentences, build_strategy_chain
from reelplan.service.effects import CutEffects, build_cut_effects
from reelplan.service.timeline_compiler import FramePolicy, compile_timeline

LOGGER = logging.getLogger("reelplan.pipeline")

DurationProbe = Callable[[str], float]


@dataclass(frozen=True)
class TimelineRequest:
    """Inputs for one timeline build.

    ``duration_seconds`` is authoritative when given; otherwise it is probed
    from ``audio_path``.
    """

    sentences: Tuple[SentenceInput, ...]
    audio_path: str
    audio_ref: str
    policy: FramePolicy
    duration_seconds: float | None = None
    image_refs: Tuple[str | None, ...] = ()
    seed: int | None = None


@dataclass(frozen=True)
class TimelinePlan:
    """Timeline plus the alignment and effect data it was built from."""

    timeline: Timeline
    timings: Tuple[SentenceTiming, ...]
    alignment_strategy: str
    cut_effects: Tuple[CutEffects, ...]

    def to_dict(self) -> dict[str, Any]:
        payload = self.timeline.to_dict()
        payload["alignment"] = {
            "strategy": self.alignment_strategy,
            "sentences": [
                {
                    "index": timing.index,
                    "startSeconds": timing.start_seconds,
                    "endSeconds": timing.end_seconds,
                }
                for timing in self.timings
            ],
        }
        payload["cutEffects"] = [effect.to_dict() for effect in self.cut_effects]
        return payload


def resolve_duration(
    request: TimelineRequest, probe: DurationProbe = probe_audio_duration_seconds
) -> float:
    """Return the narration duration, probing the audio when not supplied."""
    if request.duration_seconds is not None:
        if not math.isfinite(request.duration_seconds):
            raise PlanPipelineError(
                DURATION_UNAVAILABLE_CODE, "duration_seconds must be finite"
            )
        return request.duration_seconds
    if not request.audio_path:
        raise PlanPipelineError(
            DURATION_UNAVAILABLE_CODE, "no duration given and no audio to probe"
        )
    return probe(request.audio_path)


def build_timeline_plan(
    request: TimelineRequest,
    config: PipelineConfig,
    transcriber: Transcriber | None = None,
    detector: VoiceActivityDetector | None = None,
    probe: DurationProbe = probe_audio_duration_seconds,
) -> TimelinePlan:
    """Build a deterministic rendering plan for one narrated video."""
    duration_seconds = resolve_duration(request, probe)
    LOGGER.info(
        "reelplan.pipeline.start: sentences=%d duration=%.3f",
        len(request.sentences),
        duration_seconds,
    )

    alignment = align_sentences(
        request.sentences,
        request.audio_path,
        duration_seconds,
        build_strategy_chain(config, transcriber, detector),
    )
    timeline = compile_timeline(
        request.sentences,
        alignment.timings,
        duration_seconds,
        request.audio_ref,
        request.policy,
        image_refs=request.image_refs,
        call_to_action_clip=config.call_to_action_clip,
        call_to_action_phrases=config.call_to_action_phrases,
        enable_signature_scene=config.enable_signature_scene,
        seed=request.seed,
    )
    return TimelinePlan(
        timeline=timeline,
        timings=alignment.timings,
        alignment_strategy=alignment.strategy,
        cut_effects=build_cut_effects(timeline),
    )
