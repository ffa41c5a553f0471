"""Tests for configuration loading."""

from __future__ import annotations

import argparse

import pytest

from reelplan.config import (
    DEFAULT_TRANSCRIBE_FALLBACK_MODEL,
    DEFAULT_TRANSCRIBE_MODEL,
    PipelineConfig,
    load_config,
    parse_bool,
    parse_non_negative_float,
)


def make_args(**overrides: object) -> argparse.Namespace:
    values: dict[str, object] = {
        "transcribe_model": None,
        "transcribe_timeout_seconds": None,
        "device": None,
        "cta_clip": None,
        "enable_signature_scene": False,
        "no_transcription": False,
        "no_vad": False,
    }
    values.update(overrides)
    return argparse.Namespace(**values)


def test_load_config_defaults() -> None:
    """Without arguments or environment the defaults apply."""
    config = load_config(make_args(), {})

    assert config.transcribe_model == DEFAULT_TRANSCRIBE_MODEL
    assert config.transcribe_fallback_model == DEFAULT_TRANSCRIBE_FALLBACK_MODEL
    assert config.device == "auto"
    assert config.call_to_action_clip is None
    assert config.enable_signature_scene is False
    assert config.use_transcription and config.use_voice_activity


def test_load_config_reads_environment() -> None:
    """Environment variables configure the pipeline."""
    env = {
        "REELPLAN_TRANSCRIBE_MODEL": "medium",
        "REELPLAN_TRANSCRIBE_FALLBACK_MODEL": "tiny",
        "REELPLAN_TRANSCRIBE_TIMEOUT_SECONDS": "30",
        "REELPLAN_VAD_TIMEOUT_SECONDS": "5.5",
        "REELPLAN_DEVICE": "CPU",
        "REELPLAN_CTA_CLIP": "https://cdn.example.com/subscribe.mp4",
        "REELPLAN_ENABLE_SIGNATURE_SCENE": "yes",
    }

    config = load_config(make_args(), env)

    assert config.transcribe_model == "medium"
    assert config.transcribe_fallback_model == "tiny"
    assert config.transcribe_timeout_seconds == 30.0
    assert config.vad_timeout_seconds == 5.5
    assert config.device == "cpu"
    assert config.call_to_action_clip == "https://cdn.example.com/subscribe.mp4"
    assert config.enable_signature_scene is True


def test_cli_arguments_override_environment() -> None:
    """CLI arguments win over environment variables."""
    env = {"REELPLAN_TRANSCRIBE_MODEL": "medium", "REELPLAN_CTA_CLIP": "env.mp4"}
    args = make_args(
        transcribe_model="small",
        transcribe_timeout_seconds=12.0,
        cta_clip="cli.mp4",
        no_transcription=True,
        no_vad=True,
    )

    config = load_config(args, env)

    assert config.transcribe_model == "small"
    assert config.transcribe_timeout_seconds == 12.0
    assert config.call_to_action_clip == "cli.mp4"
    assert not config.use_transcription
    assert not config.use_voice_activity


def test_invalid_values_raise_value_error() -> None:
    """Malformed environment values and devices are rejected."""
    with pytest.raises(ValueError):
        load_config(make_args(), {"REELPLAN_TRANSCRIBE_TIMEOUT_SECONDS": "soon"})
    with pytest.raises(ValueError):
        load_config(make_args(), {"REELPLAN_VAD_TIMEOUT_SECONDS": "-1"})
    with pytest.raises(ValueError):
        load_config(make_args(device="tpu"), {})
    with pytest.raises(ValueError):
        PipelineConfig(transcribe_model=" ")


def test_parse_helpers() -> None:
    """Helper parsers accept the documented spellings."""
    assert parse_bool("TRUE") and parse_bool(" on ") and not parse_bool("0")
    assert parse_non_negative_float("2.5", "field") == 2.5
    with pytest.raises(ValueError):
        parse_non_negative_float("-0.1", "field")
