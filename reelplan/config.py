"""Pipeline configuration resolved from CLI arguments and environment."""

from __future__ import annotations

import argparse
import dataclasses
import logging
from typing import Mapping, Tuple

TRANSCRIBE_MODEL_ENV = "REELPLAN_TRANSCRIBE_MODEL"
TRANSCRIBE_FALLBACK_MODEL_ENV = "REELPLAN_TRANSCRIBE_FALLBACK_MODEL"
TRANSCRIBE_TIMEOUT_ENV = "REELPLAN_TRANSCRIBE_TIMEOUT_SECONDS"
VAD_TIMEOUT_ENV = "REELPLAN_VAD_TIMEOUT_SECONDS"
DEVICE_ENV = "REELPLAN_DEVICE"
CTA_CLIP_ENV = "REELPLAN_CTA_CLIP"
SIGNATURE_SCENE_ENV = "REELPLAN_ENABLE_SIGNATURE_SCENE"
LOG_LEVEL_ENV = "REELPLAN_LOG_LEVEL"

DEFAULT_TRANSCRIBE_MODEL = "large-v2"
DEFAULT_TRANSCRIBE_FALLBACK_MODEL = "base"
DEFAULT_TRANSCRIBE_TIMEOUT_SECONDS = 120.0
DEFAULT_VAD_TIMEOUT_SECONDS = 60.0
DEFAULT_DEVICE = "auto"
DEFAULT_VAD_MIN_DURATION_SECONDS = 0.2
DEFAULT_VAD_NOISE_THRESHOLD_DB = -35.0
DEFAULT_CALL_TO_ACTION_PHRASES = (
    "Please Subscribe & Help us reach out to more people",
    "You can watch the full video from the link in the first comment",
)
SUPPORTED_DEVICES = {"auto", "cpu", "cuda"}
LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


@dataclasses.dataclass(frozen=True)
class PipelineConfig:
    """Resolved settings for one pipeline invocation."""

    transcribe_model: str = DEFAULT_TRANSCRIBE_MODEL
    transcribe_fallback_model: str = DEFAULT_TRANSCRIBE_FALLBACK_MODEL
    transcribe_timeout_seconds: float = DEFAULT_TRANSCRIBE_TIMEOUT_SECONDS
    vad_timeout_seconds: float = DEFAULT_VAD_TIMEOUT_SECONDS
    vad_min_duration_seconds: float = DEFAULT_VAD_MIN_DURATION_SECONDS
    vad_noise_threshold_db: float = DEFAULT_VAD_NOISE_THRESHOLD_DB
    device: str = DEFAULT_DEVICE
    call_to_action_clip: str | None = None
    call_to_action_phrases: Tuple[str, ...] = DEFAULT_CALL_TO_ACTION_PHRASES
    enable_signature_scene: bool = False
    use_transcription: bool = True
    use_voice_activity: bool = True

    def __post_init__(self) -> None:
        if not self.transcribe_model.strip():
            raise ValueError("transcribe-model must be non-empty")
        if not self.transcribe_fallback_model.strip():
            raise ValueError("transcribe-fallback-model must be non-empty")
        if self.transcribe_timeout_seconds < 0:
            raise ValueError("transcribe-timeout-seconds must be non-negative")
        if self.vad_timeout_seconds < 0:
            raise ValueError("vad-timeout-seconds must be non-negative")
        if self.vad_min_duration_seconds < 0:
            raise ValueError("vad-min-duration-seconds must be non-negative")
        if self.device not in SUPPORTED_DEVICES:
            raise ValueError(f"invalid device: {self.device!r}")
        if self.call_to_action_clip is not None and not self.call_to_action_clip.strip():
            raise ValueError("cta-clip must be non-empty when set")


def configure_logging(env: Mapping[str, str]) -> None:
    """Configure logging from environment."""
    level_name = env.get(LOG_LEVEL_ENV, "INFO").strip().upper()
    logging.basicConfig(
        level=LOG_LEVELS.get(level_name, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def parse_non_negative_float(raw_value: str, field_name: str) -> float:
    """Parse a non-negative float from a string."""
    try:
        parsed = float(raw_value)
    except ValueError as exc:
        raise ValueError(f"{field_name} must be a number") from exc
    if parsed < 0:
        raise ValueError(f"{field_name} must be non-negative")
    return parsed


def parse_bool(raw_value: str) -> bool:
    """Parse a boolean from a string."""
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def read_env_float(
    env: Mapping[str, str], key: str, field_name: str, fallback: float
) -> float:
    """Read a float from the environment."""
    raw_value = env.get(key, "").strip()
    if not raw_value:
        return fallback
    return parse_non_negative_float(raw_value, field_name)


def read_env_text(env: Mapping[str, str], key: str, fallback: str | None) -> str | None:
    """Read a trimmed string from the environment."""
    raw_value = env.get(key, "").strip()
    return raw_value or fallback


def load_config(args: argparse.Namespace, env: Mapping[str, str]) -> PipelineConfig:
    """Load pipeline configuration, letting CLI args override environment."""
    transcribe_model = read_env_text(
        env, TRANSCRIBE_MODEL_ENV, DEFAULT_TRANSCRIBE_MODEL
    )
    if args.transcribe_model is not None:
        transcribe_model = args.transcribe_model

    fallback_model = read_env_text(
        env, TRANSCRIBE_FALLBACK_MODEL_ENV, DEFAULT_TRANSCRIBE_FALLBACK_MODEL
    )

    transcribe_timeout = read_env_float(
        env,
        TRANSCRIBE_TIMEOUT_ENV,
        "transcribe-timeout-seconds",
        DEFAULT_TRANSCRIBE_TIMEOUT_SECONDS,
    )
    if args.transcribe_timeout_seconds is not None:
        transcribe_timeout = args.transcribe_timeout_seconds

    vad_timeout = read_env_float(
        env, VAD_TIMEOUT_ENV, "vad-timeout-seconds", DEFAULT_VAD_TIMEOUT_SECONDS
    )

    device = read_env_text(env, DEVICE_ENV, DEFAULT_DEVICE)
    if args.device is not None:
        device = args.device

    cta_clip = args.cta_clip
    if cta_clip is None:
        cta_clip = read_env_text(env, CTA_CLIP_ENV, None)

    enable_signature_scene = bool(args.enable_signature_scene) or parse_bool(
        env.get(SIGNATURE_SCENE_ENV, "")
    )

    return PipelineConfig(
        transcribe_model=str(transcribe_model),
        transcribe_fallback_model=str(fallback_model),
        transcribe_timeout_seconds=float(transcribe_timeout),
        vad_timeout_seconds=float(vad_timeout),
        device=str(device).strip().lower(),
        call_to_action_clip=cta_clip,
        enable_signature_scene=enable_signature_scene,
        use_transcription=not args.no_transcription,
        use_voice_activity=not args.no_vad,
    )
