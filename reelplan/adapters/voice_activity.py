"""Voice-activity detection over PCM WAV samples."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import math
import wave
from typing import Callable, Tuple

import numpy

from reelplan.adapters.audio_probe import (
    AudioKind,
    PreparedAudio,
    detect_audio_kind,
    read_header_bytes,
    transcode_to_wav,
)
from reelplan.domain.timeline import PlanPipelineError

LOGGER = logging.getLogger("reelplan.voice_activity")

WAV_READ_CODE = "reelplan.vad.wav_unreadable"
WAV_FORMAT_CODE = "reelplan.vad.unsupported_wav"

ANALYSIS_FRAME_SECONDS = 0.02
DB_FLOOR_AMPLITUDE = 1e-10
SAMPLE_DTYPES = {
    1: numpy.dtype("u1"),
    2: numpy.dtype("<i2"),
    4: numpy.dtype("<i4"),
}


@dataclass(frozen=True)
class AudibleSpan:
    """A non-silent interval as reported by a detector (not validated)."""

    start_seconds: float
    end_seconds: float


@dataclass(frozen=True)
class AudibleSpans:
    """Detector result: audible parts plus the detector's view of duration."""

    audible_parts: Tuple[AudibleSpan, ...]
    total_duration_seconds: float | None


# detect(audio_path, min_duration_seconds, noise_threshold_db) -> AudibleSpans
VoiceActivityDetector = Callable[[str, float, float], AudibleSpans]


def read_wav_mono(audio_path: str) -> tuple[numpy.ndarray, int]:
    """Read WAV samples as mono floats in [-1, 1] with the sample rate."""
    try:
        with wave.open(audio_path, "rb") as wav_handle:
            channels = wav_handle.getnchannels()
            sample_rate = wav_handle.getframerate()
            sample_width = wav_handle.getsampwidth()
            data = wav_handle.readframes(wav_handle.getnframes())
    except (wave.Error, EOFError, OSError, RuntimeError) as exc:
        # Older wave modules raise RuntimeError on bad chunk sizes.
        raise PlanPipelineError(WAV_READ_CODE, f"invalid wav: {exc}") from exc

    if sample_width not in SAMPLE_DTYPES:
        raise PlanPipelineError(
            WAV_FORMAT_CODE, f"unsupported wav sample width: {sample_width}"
        )
    if sample_rate <= 0 or channels <= 0:
        raise PlanPipelineError(WAV_FORMAT_CODE, "wav header is invalid")

    samples = numpy.frombuffer(data, dtype=SAMPLE_DTYPES[sample_width])
    if sample_width == 1:
        samples = samples.astype(numpy.int16) - 128
    frame_count = samples.size // channels
    samples = samples[: frame_count * channels].astype(numpy.float64)
    if channels > 1:
        samples = samples.reshape(frame_count, channels).mean(axis=1)
    max_amplitude = float(2 ** (8 * sample_width - 1))
    return samples / max_amplitude, sample_rate


def frame_levels_db(
    samples: numpy.ndarray, sample_rate: int, frame_seconds: float
) -> tuple[numpy.ndarray, float]:
    """Return per-frame RMS level in dBFS and the actual frame length."""
    frame_size = max(1, int(sample_rate * frame_seconds))
    frame_count = int(math.ceil(samples.size / frame_size))
    if frame_count == 0:
        return numpy.array([], dtype=numpy.float64), frame_size / sample_rate
    padded = numpy.zeros(frame_count * frame_size, dtype=numpy.float64)
    padded[: samples.size] = samples
    frames = padded.reshape(frame_count, frame_size)
    rms = numpy.sqrt(numpy.mean(numpy.square(frames), axis=1))
    levels = 20.0 * numpy.log10(numpy.maximum(rms, DB_FLOOR_AMPLITUDE))
    return levels, frame_size / sample_rate


def find_silences(
    silent_flags: list[bool],
    frame_seconds: float,
    duration_seconds: float,
    min_duration_seconds: float,
) -> list[tuple[float, float]]:
    """Group silent frames into runs at least ``min_duration_seconds`` long."""
    silences: list[tuple[float, float]] = []
    run_start: int | None = None
    for index, is_silent in enumerate(silent_flags):
        if is_silent and run_start is None:
            run_start = index
        elif not is_silent and run_start is not None:
            silences.append((run_start * frame_seconds, index * frame_seconds))
            run_start = None
    if run_start is not None:
        silences.append((run_start * frame_seconds, duration_seconds))

    return [
        (start, min(end, duration_seconds))
        for start, end in silences
        if min(end, duration_seconds) - start >= min_duration_seconds
    ]


def complement_spans(
    silences: list[tuple[float, float]], duration_seconds: float
) -> Tuple[AudibleSpan, ...]:
    """Return the audible intervals between silences."""
    audible: list[AudibleSpan] = []
    cursor = 0.0
    for start, end in silences:
        if start > cursor:
            audible.append(AudibleSpan(cursor, start))
        cursor = max(cursor, end)
    if cursor < duration_seconds:
        audible.append(AudibleSpan(cursor, duration_seconds))
    return tuple(audible)


def detect_audible_spans(
    audio_path: str, min_duration_seconds: float, noise_threshold_db: float
) -> AudibleSpans:
    """Detect audible parts of an audio file.

    Silence is any run of analysis frames at or below ``noise_threshold_db``
    lasting at least ``min_duration_seconds``; audible parts are everything
    else. Non-WAV inputs are transcoded with ffmpeg first.
    """
    prepared = PreparedAudio(audio_path=audio_path, kind=AudioKind.WAV)
    if detect_audio_kind(read_header_bytes(audio_path)) != AudioKind.WAV:
        wav_path = transcode_to_wav(audio_path)
        prepared = PreparedAudio(
            audio_path=wav_path, kind=AudioKind.WAV, cleanup_paths=(wav_path,)
        )
    try:
        samples, sample_rate = read_wav_mono(prepared.audio_path)
    finally:
        prepared.cleanup()

    duration_seconds = samples.size / float(sample_rate)
    levels, frame_seconds = frame_levels_db(
        samples, sample_rate, ANALYSIS_FRAME_SECONDS
    )
    silences = find_silences(
        [bool(flag) for flag in levels <= noise_threshold_db],
        frame_seconds,
        duration_seconds,
        min_duration_seconds,
    )
    audible = complement_spans(silences, duration_seconds)
    LOGGER.debug(
        "reelplan.vad.detected: audible=%d silences=%d duration=%.3f",
        len(audible),
        len(silences),
        duration_seconds,
    )
    return AudibleSpans(
        audible_parts=audible, total_duration_seconds=duration_seconds
    )
