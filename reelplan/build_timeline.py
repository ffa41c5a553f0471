"""Build a narrated-video timeline from a script and its narration audio."""

from __future__ import annotations

import argparse
import json
import logging
import os
from pathlib import Path
import sys
from typing import Any, Sequence, Tuple

from reelplan.adapters.transcription import WhisperxTranscriber
from reelplan.adapters.voice_activity import detect_audible_spans
from reelplan.config import configure_logging, load_config, parse_bool
from reelplan.domain.timeline import (
    INVALID_CONFIG_CODE,
    PlanPipelineError,
    PlanValidationError,
    SentenceInput,
    parse_media_kind,
)
from reelplan.service.pipeline import TimelineRequest, build_timeline_plan
from reelplan.service.timeline_compiler import resolve_frame_policy

LOGGER = logging.getLogger("reelplan.build_timeline")

INPUT_SCRIPT_CODE = "reelplan.input.script_file"
INPUT_AUDIO_CODE = "reelplan.input.audio_file"
OUTPUT_JSON_CODE = "reelplan.output.json_file"


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(prog="build_timeline.py", add_help=True)
    parser.add_argument("--input-script", required=True)
    parser.add_argument("--input-audio", default=None)
    parser.add_argument("--audio-ref", default=None)
    parser.add_argument("--duration-seconds", type=float, default=None)
    parser.add_argument("--output-json", default=None)
    form = parser.add_mutually_exclusive_group()
    form.add_argument("--short", dest="is_short", action="store_true", default=None)
    form.add_argument("--long", dest="is_short", action="store_false")
    parser.set_defaults(is_short=None)
    parser.add_argument("--script-length", default="")
    parser.add_argument("--lower-fps", action="store_true")
    parser.add_argument("--lower-resolution", action="store_true")
    parser.add_argument("--enable-signature-scene", action="store_true")
    images = parser.add_mutually_exclusive_group()
    images.add_argument("--image-ref", action="append", default=None)
    images.add_argument("--image-pattern", default=None)
    parser.add_argument("--cta-clip", default=None)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--no-transcription", action="store_true")
    parser.add_argument("--no-vad", action="store_true")
    parser.add_argument("--transcribe-model", default=None)
    parser.add_argument("--transcribe-timeout-seconds", type=float, default=None)
    parser.add_argument("--device", default=None)
    return parser.parse_args(argv)


def read_script_file(file_path: str) -> str:
    """Read a UTF-8 script file."""
    try:
        return Path(file_path).read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise PlanValidationError(
            INPUT_SCRIPT_CODE, f"input script not found: {file_path}"
        ) from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise PlanValidationError(
            INPUT_SCRIPT_CODE, f"input script unreadable: {file_path}"
        ) from exc


def parse_suspense_flag(raw_value: Any, position: int) -> bool:
    """Accept JSON booleans or the usual true/false spellings."""
    if raw_value is None or isinstance(raw_value, bool):
        return bool(raw_value)
    if isinstance(raw_value, str):
        return parse_bool(raw_value)
    raise PlanValidationError(
        INPUT_SCRIPT_CODE, f"script entry {position} isSuspense must be a boolean"
    )


def sentence_from_json(entry: Any, position: int) -> SentenceInput:
    if isinstance(entry, str):
        return SentenceInput(text=entry)
    if not isinstance(entry, dict) or not isinstance(entry.get("text"), str):
        raise PlanValidationError(
            INPUT_SCRIPT_CODE, f"script entry {position} must be a string or have text"
        )
    media_ref = entry.get("mediaRef")
    return SentenceInput(
        text=entry["text"],
        is_suspense=parse_suspense_flag(entry.get("isSuspense"), position),
        media_kind=parse_media_kind(str(entry.get("mediaType", "image"))),
        media_ref=str(media_ref) if media_ref else None,
    )


def parse_script(content: str) -> Tuple[SentenceInput, ...]:
    """Parse a JSON sentence list, or plain text with one sentence per line."""
    stripped = content.strip()
    if stripped.startswith("["):
        try:
            entries = json.loads(stripped)
        except json.JSONDecodeError as exc:
            raise PlanValidationError(
                INPUT_SCRIPT_CODE, f"script JSON is invalid: {exc.msg}"
            ) from exc
        return tuple(
            sentence_from_json(entry, position) for position, entry in enumerate(entries)
        )
    return tuple(
        SentenceInput(text=line.strip()) for line in content.splitlines() if line.strip()
    )


def resolve_image_refs(
    args: argparse.Namespace, sentence_count: int
) -> Tuple[str | None, ...]:
    if args.image_ref:
        return tuple(args.image_ref)
    if args.image_pattern:
        try:
            return tuple(
                args.image_pattern.format(index=index) for index in range(sentence_count)
            )
        except (KeyError, IndexError, ValueError) as exc:
            raise PlanValidationError(
                INVALID_CONFIG_CODE, "image-pattern may only use the {index} field"
            ) from exc
    return ()


def build_request(
    args: argparse.Namespace, sentences: Tuple[SentenceInput, ...]
) -> TimelineRequest:
    audio_path = args.input_audio or ""
    if audio_path and not os.path.isfile(audio_path):
        raise PlanValidationError(
            INPUT_AUDIO_CODE, f"input audio not found: {audio_path}"
        )
    audio_ref = args.audio_ref or audio_path
    if not audio_ref:
        raise PlanValidationError(
            INPUT_AUDIO_CODE, "input-audio or audio-ref is required"
        )
    return TimelineRequest(
        sentences=sentences,
        audio_path=audio_path,
        audio_ref=audio_ref,
        policy=resolve_frame_policy(
            is_short=args.is_short,
            script_length=args.script_length,
            use_lower_fps=args.lower_fps,
            use_lower_resolution=args.lower_resolution,
        ),
        duration_seconds=args.duration_seconds,
        image_refs=resolve_image_refs(args, len(sentences)),
        seed=args.seed,
    )


def write_json_output(file_path: str | None, payload: dict[str, Any]) -> None:
    """Write the plan to a file, or to stdout when no path is given."""
    content = json.dumps(payload, indent=2, ensure_ascii=False) + "\n"
    if not file_path:
        sys.stdout.write(content)
        return
    output_path = Path(file_path)
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(content, encoding="utf-8")
    except OSError as exc:
        raise PlanPipelineError(
            OUTPUT_JSON_CODE, f"failed to write output: {file_path}"
        ) from exc


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint."""
    configure_logging(os.environ)
    try:
        args = parse_args(sys.argv[1:] if argv is None else argv)
        config = load_config(args, os.environ)
        sentences = parse_script(read_script_file(args.input_script))
        request = build_request(args, sentences)
        has_audio = bool(request.audio_path)
        transcriber = None
        if has_audio and config.use_transcription:
            transcriber = WhisperxTranscriber(device=config.device)
        detector = detect_audible_spans if has_audio else None
        plan = build_timeline_plan(request, config, transcriber, detector)
        write_json_output(args.output_json, plan.to_dict())
        LOGGER.info(
            "reelplan.output.timeline_written: %s", args.output_json or "<stdout>"
        )
        return 0
    except PlanValidationError as exc:
        LOGGER.error("%s: %s", exc.code, str(exc).strip())
        return 1
    except PlanPipelineError as exc:
        LOGGER.error("%s: %s", exc.code, str(exc).strip())
        return 1
    except ValueError as exc:
        LOGGER.error("%s: %s", INVALID_CONFIG_CODE, str(exc).strip())
        return 1
    except Exception as exc:
        LOGGER.error("reelplan.unhandled_error: %s", str(exc).strip())
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
