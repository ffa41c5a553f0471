"""Tests for frame compilation, media substitution and cut merging."""

from __future__ import annotations

import pytest

from reelplan.domain.timeline import (
    NON_CONTIGUOUS_CODE,
    MediaKind,
    PlanValidationError,
    Scene,
    SentenceInput,
    SentenceTiming,
    Timeline,
    TransitionKind,
)
from reelplan.service.alignment import split_by_word_count
from reelplan.service.timeline_compiler import (
    compile_scenes,
    compile_timeline,
    is_short_script,
    resolve_frame_policy,
)

LONG_POLICY = resolve_frame_policy(is_short=False)


def sentences_of(*texts: str) -> tuple[SentenceInput, ...]:
    return tuple(SentenceInput(text=text) for text in texts)


def assert_contiguous(timeline: Timeline) -> None:
    cursor = 0
    for scene in timeline.scenes:
        assert scene.start_frame == cursor
        assert scene.duration_frames > 0
        cursor = scene.end_frame
    assert cursor == timeline.total_duration_frames


def test_word_count_scenario_compiles_to_expected_frames() -> None:
    """Nine seconds at 30 fps split 1:2:3 gives 45, 90 and 135 frames."""
    sentences = sentences_of("A", "B B", "C C C")
    timings = split_by_word_count(sentences, 9.0)

    timeline = compile_timeline(
        sentences, timings, 9.0, "narration.mp3", LONG_POLICY, image_refs=("a", "b", "c")
    )

    assert [scene.duration_frames for scene in timeline.scenes] == [45, 90, 135]
    assert [scene.start_frame for scene in timeline.scenes] == [0, 45, 135]
    assert timeline.total_duration_frames == 270
    assert (timeline.width, timeline.height, timeline.fps) == (1920, 1080, 30)
    assert [scene.media_ref for scene in timeline.scenes] == ["a", "b", "c"]


def test_word_count_boundaries_take_the_share_before_scaling() -> None:
    """Boundaries are share-of-words times duration, so 72.9 s / 9 lands on frame 243."""
    sentences = sentences_of("a", "", "", "", "a", "ccc dd", "", "")
    timings = split_by_word_count(sentences, 72.9)

    timeline = compile_timeline(sentences, timings, 72.9, "narration.mp3", LONG_POLICY)

    assert timeline.scenes[0].duration_frames == 243
    assert timeline.total_duration_frames == 2187
    assert_contiguous(timeline)


def test_overlapping_and_tiny_spans_stay_contiguous() -> None:
    """Every scene gets at least one frame and starts where the last ended."""
    sentences = sentences_of("one", "two", "three", "four")
    timings = (
        SentenceTiming(0, "one", 0.0, 0.01),
        SentenceTiming(1, "two", 0.0, 0.01),
        SentenceTiming(2, "three", 0.005, 0.02),
        SentenceTiming(3, "four", 0.5, 1.0),
    )

    timeline = compile_timeline(sentences, timings, 1.0, "a.wav", LONG_POLICY)

    assert_contiguous(timeline)
    assert [scene.duration_frames for scene in timeline.scenes] == [1, 1, 1, 27]


def test_missing_timing_uses_next_start() -> None:
    """A sentence without a timing ends where the next one starts."""
    sentences = sentences_of("one", "two", "three")
    timings = (
        SentenceTiming(0, "one", 0.0, 1.0),
        SentenceTiming(2, "three", 2.0, 3.0),
    )

    scenes = compile_scenes(sentences, timings, 30, 3.0)

    assert [scene.end_frame for scene in scenes] == [30, 60, 90]


def test_call_to_action_uses_configured_clip() -> None:
    """Call-to-action sentences become clip-backed when a clip is set."""
    sentences = (
        SentenceInput(text="Intro"),
        SentenceInput(text="please subscribe and help us reach out to more people!!"),
        SentenceInput(text="Outro"),
    )

    with_clip = compile_scenes(
        sentences, (), 30, 3.0, image_refs=("i0", "i1", "i2"), call_to_action_clip="cta.mp4"
    )
    without_clip = compile_scenes(sentences, (), 30, 3.0, image_refs=("i0", "i1", "i2"))

    assert with_clip[1].media_kind == MediaKind.VIDEO
    assert with_clip[1].media_ref == "cta.mp4"
    assert with_clip[1].to_dict()["videoSrc"] == "cta.mp4"
    assert with_clip[1].to_dict()["imageSrc"] is None
    assert without_clip[1].media_kind == MediaKind.IMAGE
    assert without_clip[1].media_ref == "i1"


def test_sentence_clip_requires_reference() -> None:
    """A video sentence is clip-backed only with a non-empty reference."""
    sentences = (
        SentenceInput(text="clip", media_kind=MediaKind.VIDEO, media_ref="clip.mp4"),
        SentenceInput(text="still", media_kind=MediaKind.VIDEO),
        SentenceInput(text="image", media_ref="own.png"),
    )

    scenes = compile_scenes(sentences, (), 24, 3.0)

    assert [scene.media_kind for scene in scenes] == [
        MediaKind.VIDEO,
        MediaKind.IMAGE,
        MediaKind.IMAGE,
    ]
    assert scenes[0].media_ref == "clip.mp4"
    assert scenes[2].media_ref == "own.png"


def test_clip_scenes_get_no_stylized_transitions() -> None:
    """Cuts adjacent to the call-to-action clip stay plain."""
    sentences = sentences_of(
        "One", "Two", "You can watch the full video from the link in the first comment."
    )

    timeline = compile_timeline(
        sentences,
        split_by_word_count(sentences, 6.0),
        6.0,
        "a.wav",
        LONG_POLICY,
        call_to_action_clip="cta.mp4",
    )

    scenes = timeline.scenes
    assert scenes[0].transition_to_next == TransitionKind.GLITCH
    assert scenes[1].transition_from_prev == TransitionKind.GLITCH
    assert scenes[1].transition_to_next == TransitionKind.NONE
    assert scenes[2].transition_from_prev == TransitionKind.NONE
    assert scenes[1].effect_seed_from_prev == 1 * 1009 + 2 * 9176


def test_empty_script_yields_audio_length_timeline() -> None:
    """No sentences gives no scenes and a duration of ceil(T * fps)."""
    timeline = compile_timeline((), (), 2.5, "a.wav", LONG_POLICY)

    assert timeline.scenes == ()
    assert timeline.total_duration_frames == 75


def test_signature_scene_is_the_middle_scene() -> None:
    """The signature flag marks scene floor(N / 2)."""
    sentences = sentences_of("a", "b", "c", "d", "e")

    scenes = compile_scenes(sentences, (), 30, 5.0, enable_signature_scene=True)

    assert [scene.is_glitch_scene for scene in scenes] == [False, False, True, False, False]


def test_resolve_frame_policy_variants() -> None:
    """Short-form is vertical; lower settings reduce fps and resolution."""
    short = resolve_frame_policy(script_length="30 seconds")
    short_low = resolve_frame_policy(
        script_length="30s", use_lower_fps=True, use_lower_resolution=True
    )
    long_low = resolve_frame_policy(script_length="5 minutes", use_lower_resolution=True)
    forced_long = resolve_frame_policy(is_short=False, script_length="30 seconds")

    assert (short.width, short.height, short.fps) == (1080, 1920, 30)
    assert (short_low.width, short_low.height, short_low.fps) == (720, 1280, 24)
    assert (long_low.width, long_low.height) == (1280, 720)
    assert (forced_long.width, forced_long.height) == (1920, 1080)
    assert is_short_script(" 30 Seconds ")
    assert not is_short_script("3 minutes")


def test_timeline_rejects_gaps() -> None:
    """Timelines with a gap between scenes are rejected."""
    scenes = (
        Scene(0, "a", None, MediaKind.IMAGE, start_frame=0, duration_frames=10),
        Scene(1, "b", None, MediaKind.IMAGE, start_frame=12, duration_frames=10),
    )

    with pytest.raises(PlanValidationError) as excinfo:
        Timeline(1920, 1080, 30, 22, "a.wav", scenes)

    assert excinfo.value.code == NON_CONTIGUOUS_CODE


def test_timeline_to_dict_uses_engine_keys() -> None:
    """Serialization uses the rendering engine's field names."""
    sentences = sentences_of("Hello there", "General Kenobi")
    timeline = compile_timeline(
        sentences, split_by_word_count(sentences, 2.0), 2.0, "voice.mp3", LONG_POLICY
    )

    payload = timeline.to_dict()

    assert payload["durationInFrames"] == 60
    assert payload["audioSrc"] == "voice.mp3"
    first = payload["scenes"][0]
    assert first["transitionToNext"] == "glitch"
    assert first["seedToNext"] == 1 * 1009 + 2 * 9176
    assert first["whipDirToNext"] == 0
    assert set(first) >= {"startFrame", "durationFrames", "useGlitch", "isSuspense"}
