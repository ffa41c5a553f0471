"""Forced alignment of sentences to narration time spans."""

from __future__ import annotations

from concurrent import futures
from dataclasses import dataclass
from enum import Enum
import logging
import math
import os
from typing import (
    Any,
    Callable,
    Mapping,
    NamedTuple,
    Protocol,
    Sequence,
    Tuple,
    TypeVar,
)

from reelplan.adapters.audio_probe import (
    AudioKind,
    PreparedAudio,
    prepare_transcription_audio,
)
from reelplan.adapters.transcription import (
    RESPONSE_FORMAT_VERBOSE_JSON,
    Transcriber,
    response_format_for_model,
)
from reelplan.adapters.voice_activity import AudibleSpan, VoiceActivityDetector
from reelplan.config import PipelineConfig
from reelplan.domain.timeline import (
    PlanPipelineError,
    SentenceInput,
    SentenceTiming,
    count_words,
    tokenize_sentence,
)

LOGGER = logging.getLogger("reelplan.alignment")

CALL_TIMEOUT_CODE = "reelplan.align.timeout"

MATCH_THRESHOLD = 0.5
MIN_MATCHED_SPAN_SECONDS = 0.05
MIN_WORD_COUNT_SPAN_SECONDS = 0.1
EMPTY_SENTENCE_SECONDS = 0.1
MIN_REMAINING_SECONDS = 0.1
DEGENERATE_DURATION_SECONDS = 1.0

ResultT = TypeVar("ResultT")


class RawSpan(NamedTuple):
    """Unvalidated span produced while a strategy is still working."""

    index: int
    text: str
    start_seconds: float
    end_seconds: float


@dataclass(frozen=True)
class TimedWord:
    """Transcript token with an approximate time span."""

    token: str
    start_seconds: float
    end_seconds: float


@dataclass(frozen=True)
class AlignmentContext:
    """Inputs shared by every alignment strategy."""

    sentences: Tuple[SentenceInput, ...]
    audio_path: str
    duration_seconds: float


class OutcomeStatus(str, Enum):
    """Result of one strategy attempt."""

    SUCCEEDED = "succeeded"
    FALL_THROUGH = "fall_through"


@dataclass(frozen=True)
class AlignmentOutcome:
    """Either a full set of timings or a reason to try the next strategy."""

    status: OutcomeStatus
    timings: Tuple[SentenceTiming, ...] = ()
    reason: str | None = None

    @classmethod
    def succeeded(cls, timings: Sequence[SentenceTiming]) -> "AlignmentOutcome":
        return cls(status=OutcomeStatus.SUCCEEDED, timings=tuple(timings))

    @classmethod
    def fall_through(cls, reason: str) -> "AlignmentOutcome":
        return cls(status=OutcomeStatus.FALL_THROUGH, reason=reason)


@dataclass(frozen=True)
class AlignmentResult:
    """Timings and the name of the strategy that produced them."""

    strategy: str
    timings: Tuple[SentenceTiming, ...]


def effective_duration(duration_seconds: float) -> float:
    """Floor a degenerate duration instead of failing."""
    if not math.isfinite(duration_seconds) or duration_seconds <= 0:
        return DEGENERATE_DURATION_SECONDS
    return float(duration_seconds)


def run_with_timeout(
    task: Callable[[], ResultT], timeout_seconds: float, label: str
) -> ResultT:
    """Run a blocking external call, abandoning it after ``timeout_seconds``.

    A timeout of zero disables the limit. The worker thread is not joined on
    timeout; the abandoned call finishes in the background.
    """
    if timeout_seconds <= 0:
        return task()
    executor = futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="reelplan")
    future = executor.submit(task)
    try:
        return future.result(timeout=timeout_seconds)
    except futures.TimeoutError as exc:
        future.cancel()
        raise PlanPipelineError(
            CALL_TIMEOUT_CODE, f"{label} timed out after {timeout_seconds:g}s"
        ) from exc
    finally:
        executor.shutdown(wait=False)


def finalize_timings(
    spans: Sequence[RawSpan], duration_seconds: float
) -> Tuple[SentenceTiming, ...]:
    """Clamp spans into [0, T], keep starts non-decreasing, end the last at T."""
    timings: list[SentenceTiming] = []
    previous_start = 0.0
    last_position = len(spans) - 1
    for position, span in enumerate(spans):
        start = span.start_seconds if math.isfinite(span.start_seconds) else 0.0
        end = span.end_seconds
        if not math.isfinite(end) or end <= start:
            end = start + EMPTY_SENTENCE_SECONDS
        start = max(previous_start, min(max(start, 0.0), duration_seconds))
        end = min(end, duration_seconds)
        if position == last_position:
            end = duration_seconds
        if end <= start:
            # Only reachable when earlier spans already consumed all of T.
            start = max(previous_start, duration_seconds - MIN_MATCHED_SPAN_SECONDS)
            end = duration_seconds
        timings.append(
            SentenceTiming(
                index=span.index,
                text=span.text,
                start_seconds=start,
                end_seconds=end,
            )
        )
        previous_start = start
    return tuple(timings)


def word_count_spans(
    sentences: Sequence[SentenceInput],
    duration_seconds: float,
    index_offset: int = 0,
    time_offset: float = 0.0,
) -> list[RawSpan]:
    """Split ``duration_seconds`` proportionally to sentence word counts."""
    texts = [sentence.text.strip() for sentence in sentences]
    weights = [max(1, count_words(text)) for text in texts]
    total_weight = sum(weights) or 1

    spans: list[RawSpan] = []
    accumulated = 0
    for position, (text, weight) in enumerate(zip(texts, weights)):
        start = (accumulated / total_weight) * duration_seconds
        accumulated += weight
        end = (accumulated / total_weight) * duration_seconds
        if position == len(weights) - 1:
            end = duration_seconds
        end = max(start + MIN_WORD_COUNT_SPAN_SECONDS, end)
        spans.append(
            RawSpan(
                index=index_offset + position,
                text=text,
                start_seconds=time_offset + start,
                end_seconds=time_offset + end,
            )
        )
    return spans


def split_by_word_count(
    sentences: Sequence[SentenceInput], duration_seconds: float
) -> Tuple[SentenceTiming, ...]:
    """Terminal fallback: proportional split of [0, T] by word count."""
    duration = effective_duration(duration_seconds)
    return finalize_timings(word_count_spans(sentences, duration), duration)


def coerce_seconds(raw_value: Any) -> float | None:
    """Parse a timestamp from a service payload; None when unusable."""
    if raw_value is None or isinstance(raw_value, bool):
        return None
    try:
        parsed = float(raw_value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(parsed):
        return None
    return parsed


def build_word_timeline(segments: Sequence[Any]) -> Tuple[TimedWord, ...]:
    """Spread each segment's time span evenly over its whitespace tokens."""
    words: list[TimedWord] = []
    for segment in segments:
        if not isinstance(segment, Mapping):
            continue
        start = coerce_seconds(segment.get("start"))
        end = coerce_seconds(segment.get("end"))
        if start is None or end is None or end <= start:
            continue
        raw_tokens = str(segment.get("text") or "").split()
        if not raw_tokens:
            continue
        span = end - start
        count = len(raw_tokens)
        for position, raw_token in enumerate(raw_tokens):
            tokens = tokenize_sentence(raw_token)
            if not tokens:
                continue
            words.append(
                TimedWord(
                    token=tokens[0],
                    start_seconds=start + span * position / count,
                    end_seconds=start + span * (position + 1) / count,
                )
            )
    return tuple(words)


def find_best_window(
    transcript_tokens: Sequence[str],
    sentence_tokens: Sequence[str],
    start_from: int,
) -> tuple[int, int] | None:
    """Find the best-scoring same-length window at or after ``start_from``.

    Score is the fraction of positions whose tokens match. The first window
    with the highest score wins; windows scoring below the threshold never do.
    """
    width = len(sentence_tokens)
    max_start = len(transcript_tokens) - width
    if width == 0 or max_start < start_from:
        return None

    best_score = 0.0
    best: tuple[int, int] | None = None
    for window_start in range(start_from, max_start + 1):
        matches = sum(
            1
            for offset, token in enumerate(sentence_tokens)
            if transcript_tokens[window_start + offset] == token
        )
        score = matches / width
        if score > best_score and score >= MATCH_THRESHOLD:
            best_score = score
            best = (window_start, window_start + width - 1)
    return best


def match_sentences(
    sentences: Sequence[SentenceInput],
    words: Sequence[TimedWord],
    duration_seconds: float,
) -> Tuple[SentenceTiming, ...]:
    """Place sentences on the word timeline, in order, without reuse."""
    transcript_tokens = [word.token for word in words]
    spans: list[RawSpan] = []
    word_index = 0

    for index, sentence in enumerate(sentences):
        text = sentence.text.strip()
        previous_end = spans[-1].end_seconds if spans else 0.0
        sentence_tokens = tokenize_sentence(text)
        if not sentence_tokens:
            spans.append(
                RawSpan(
                    index,
                    text,
                    previous_end,
                    min(duration_seconds, previous_end + EMPTY_SENTENCE_SECONDS),
                )
            )
            continue

        window = find_best_window(transcript_tokens, sentence_tokens, word_index)
        if window is None:
            LOGGER.warning(
                "reelplan.align.no_match: sentence %d; splitting %d remaining by word count",
                index,
                len(sentences) - index,
            )
            remaining = max(MIN_REMAINING_SECONDS, duration_seconds - previous_end)
            spans.extend(
                word_count_spans(
                    sentences[index:],
                    remaining,
                    index_offset=index,
                    time_offset=previous_end,
                )
            )
            break

        first_word = words[window[0]]
        last_word = words[window[1]]
        start = min(max(first_word.start_seconds, 0.0), duration_seconds)
        end = max(
            start + MIN_MATCHED_SPAN_SECONDS,
            min(last_word.end_seconds, duration_seconds),
        )
        spans.append(RawSpan(index, text, start, end))
        word_index = window[1] + 1

    return finalize_timings(spans, duration_seconds)


class WordCountAlignment:
    """Terminal strategy: always succeeds."""

    name = "word_count"

    def attempt(self, context: AlignmentContext) -> AlignmentOutcome:
        return AlignmentOutcome.succeeded(
            split_by_word_count(context.sentences, context.duration_seconds)
        )


class VoiceActivityAlignment:
    """Word-count split over audible time, mapped back to real time."""

    name = "voice_activity"

    def __init__(
        self,
        detector: VoiceActivityDetector,
        min_duration_seconds: float,
        noise_threshold_db: float,
        timeout_seconds: float,
    ) -> None:
        self._detector = detector
        self._min_duration_seconds = min_duration_seconds
        self._noise_threshold_db = noise_threshold_db
        self._timeout_seconds = timeout_seconds

    def attempt(self, context: AlignmentContext) -> AlignmentOutcome:
        try:
            detected = run_with_timeout(
                lambda: self._detector(
                    context.audio_path,
                    self._min_duration_seconds,
                    self._noise_threshold_db,
                ),
                self._timeout_seconds,
                "voice activity detection",
            )
        except Exception as exc:
            return AlignmentOutcome.fall_through(f"detector failed: {exc}")

        segments = usable_spans(detected.audible_parts)
        if not segments:
            return AlignmentOutcome.fall_through("no audible spans detected")
        voiced_duration = sum(span.end_seconds - span.start_seconds for span in segments)
        if not math.isfinite(voiced_duration) or voiced_duration <= 0:
            return AlignmentOutcome.fall_through("audible duration is empty")

        to_real_time = build_compressed_time_map(segments)
        mapped: list[RawSpan] = []
        for span in word_count_spans(context.sentences, voiced_duration):
            real_start = to_real_time(span.start_seconds)
            real_end = max(
                real_start + MIN_MATCHED_SPAN_SECONDS, to_real_time(span.end_seconds)
            )
            mapped.append(span._replace(start_seconds=real_start, end_seconds=real_end))
        return AlignmentOutcome.succeeded(
            finalize_timings(mapped, context.duration_seconds)
        )


def usable_spans(parts: Sequence[AudibleSpan]) -> list[AudibleSpan]:
    """Drop non-finite or inverted spans and sort the rest by start."""
    valid = [
        part
        for part in parts
        if math.isfinite(part.start_seconds)
        and math.isfinite(part.end_seconds)
        and part.end_seconds > part.start_seconds
    ]
    return sorted(valid, key=lambda part: part.start_seconds)


def build_compressed_time_map(
    segments: Sequence[AudibleSpan],
) -> Callable[[float], float]:
    """Map time on the audible-only axis back to real audio time.

    Audible segments are laid end to end; compressed time ``t`` lands in the
    segment whose cumulative range contains it.
    """
    ranges: list[tuple[float, float, float]] = []
    cursor = 0.0
    for segment in segments:
        length = segment.end_seconds - segment.start_seconds
        ranges.append((cursor, cursor + length, segment.start_seconds))
        cursor += length
    first_start = segments[0].start_seconds
    last_end = segments[-1].end_seconds
    compressed_total = cursor

    def to_real_time(compressed: float) -> float:
        if not math.isfinite(compressed) or compressed <= 0:
            return first_start
        if compressed >= compressed_total:
            return last_end
        for range_start, range_end, real_start in ranges:
            if range_start <= compressed <= range_end:
                return real_start + (compressed - range_start)
        return last_end

    return to_real_time


class TranscriptionAlignment:
    """Primary strategy: match sentences against a time-coded transcript."""

    name = "transcription"

    def __init__(
        self,
        transcriber: Transcriber,
        model: str,
        fallback_model: str,
        timeout_seconds: float,
        prepare_audio: Callable[[str], PreparedAudio] = prepare_transcription_audio,
    ) -> None:
        self._transcriber = transcriber
        self._model = model
        self._fallback_model = fallback_model
        self._timeout_seconds = timeout_seconds
        self._prepare_audio = prepare_audio

    def attempt(self, context: AlignmentContext) -> AlignmentOutcome:
        if not os.path.isfile(context.audio_path):
            return AlignmentOutcome.fall_through("audio file not found")
        if os.path.getsize(context.audio_path) == 0:
            return AlignmentOutcome.fall_through("audio file is empty")

        try:
            prepared = self._prepare_audio(context.audio_path)
        except (PlanPipelineError, OSError) as exc:
            LOGGER.warning("reelplan.align.prepare_failed: %s; using original", exc)
            prepared = PreparedAudio(audio_path=context.audio_path, kind=AudioKind.UNKNOWN)
        try:
            segments = self._transcribe_segments(prepared.audio_path)
        except Exception as exc:
            return AlignmentOutcome.fall_through(f"transcription failed: {exc}")
        finally:
            prepared.cleanup()

        if not segments:
            return AlignmentOutcome.fall_through("transcription returned no segments")
        words = build_word_timeline(segments)
        if not words:
            return AlignmentOutcome.fall_through("transcription produced no words")
        return AlignmentOutcome.succeeded(
            match_sentences(context.sentences, words, context.duration_seconds)
        )

    def _transcribe_segments(self, audio_path: str) -> list[Any]:
        try:
            segments = self._request_segments(
                audio_path, self._model, response_format_for_model(self._model)
            )
        except Exception as exc:
            LOGGER.warning("reelplan.align.primary_failed: %s: %s", self._model, exc)
            segments = []
        if segments:
            return segments
        LOGGER.warning(
            "reelplan.align.retry: model %s gave no segments; retrying with %s",
            self._model,
            self._fallback_model,
        )
        return self._request_segments(
            audio_path, self._fallback_model, RESPONSE_FORMAT_VERBOSE_JSON
        )

    def _request_segments(
        self, audio_path: str, model: str, response_format: str
    ) -> list[Any]:
        result = run_with_timeout(
            lambda: self._transcriber(audio_path, model, response_format),
            self._timeout_seconds,
            f"transcription ({model})",
        )
        segments = result.get("segments") if isinstance(result, Mapping) else None
        if not isinstance(segments, (list, tuple)):
            return []
        LOGGER.info(
            "reelplan.align.transcribed: model=%s segments=%d", model, len(segments)
        )
        return list(segments)


class AlignmentStrategy(Protocol):
    """One link of the fallback chain."""

    name: str

    def attempt(self, context: AlignmentContext) -> AlignmentOutcome: ...


def build_strategy_chain(
    config: PipelineConfig,
    transcriber: Transcriber | None,
    detector: VoiceActivityDetector | None,
) -> Tuple[AlignmentStrategy, ...]:
    """Assemble strategies in fallback order; word count always comes last."""
    chain: list[AlignmentStrategy] = []
    if transcriber is not None and config.use_transcription:
        chain.append(
            TranscriptionAlignment(
                transcriber,
                model=config.transcribe_model,
                fallback_model=config.transcribe_fallback_model,
                timeout_seconds=config.transcribe_timeout_seconds,
            )
        )
    if detector is not None and config.use_voice_activity:
        chain.append(
            VoiceActivityAlignment(
                detector,
                min_duration_seconds=config.vad_min_duration_seconds,
                noise_threshold_db=config.vad_noise_threshold_db,
                timeout_seconds=config.vad_timeout_seconds,
            )
        )
    chain.append(WordCountAlignment())
    return tuple(chain)


def align_sentences(
    sentences: Sequence[SentenceInput],
    audio_path: str,
    duration_seconds: float,
    strategies: Sequence[AlignmentStrategy] = (),
) -> AlignmentResult:
    """Run strategies in order until one succeeds.

    The word-count split closes the chain even when ``strategies`` does not
    end with it, so the call never fails for a known duration.
    """
    context = AlignmentContext(
        sentences=tuple(sentences),
        audio_path=audio_path,
        duration_seconds=effective_duration(duration_seconds),
    )
    if not context.sentences:
        return AlignmentResult(strategy=WordCountAlignment.name, timings=())

    for strategy in strategies:
        outcome = strategy.attempt(context)
        if outcome.status == OutcomeStatus.SUCCEEDED:
            LOGGER.info(
                "reelplan.align.done: strategy=%s sentences=%d",
                strategy.name,
                len(outcome.timings),
            )
            return AlignmentResult(strategy=strategy.name, timings=outcome.timings)
        LOGGER.warning("reelplan.align.fallback: %s: %s", strategy.name, outcome.reason)

    return AlignmentResult(
        strategy=WordCountAlignment.name,
        timings=split_by_word_count(context.sentences, context.duration_seconds),
    )
