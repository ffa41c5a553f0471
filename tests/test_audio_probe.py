"""Tests for audio container sniffing and duration probing."""

from __future__ import annotations

import os
import wave
from pathlib import Path

import pytest

from reelplan.adapters.audio_probe import (
    AudioKind,
    detect_audio_kind,
    prepare_transcription_audio,
    probe_audio_duration_seconds,
)
from reelplan.domain.timeline import DURATION_UNAVAILABLE_CODE, PlanPipelineError


def write_silent_wav(target_path: Path, duration_seconds: float) -> None:
    """Write a silent PCM WAV file."""
    sample_rate = 16000
    frame_count = max(1, int(round(duration_seconds * sample_rate)))
    with wave.open(str(target_path), "wb") as wav_file:
        wav_file.setnchannels(1)
        wav_file.setsampwidth(2)
        wav_file.setframerate(sample_rate)
        wav_file.writeframes(b"\x00\x00" * frame_count)


@pytest.mark.parametrize(
    ("header", "expected"),
    [
        (b"RIFF\x24\x00\x00\x00WAVEfmt ", AudioKind.WAV),
        (b"\x00\x00\x00\x20ftypisom\x00\x00\x02\x00", AudioKind.MP4),
        (b"\x1a\x45\xdf\xa3\x9f\x42\x86\x81", AudioKind.WEBM),
        (b"OggS\x00\x02\x00\x00", AudioKind.OGG),
        (b"\xff\xf1\x50\x80\x02\x1f\xfc", AudioKind.AAC_ADTS),
        (b"ID3\x04\x00\x00\x00\x00\x00\x00", AudioKind.MP3),
        (b"\xff\xfb\x90\x64\x00\x00\x00\x00", AudioKind.MP3),
        (b"hello world", AudioKind.UNKNOWN),
        (b"", AudioKind.UNKNOWN),
    ],
)
def test_detect_audio_kind(header: bytes, expected: AudioKind) -> None:
    """Containers are classified from their leading bytes."""
    assert detect_audio_kind(header) == expected


def test_prepare_keeps_correctly_named_wav(tmp_path: Path) -> None:
    """A WAV file with a .wav extension is used as is."""
    wav_path = tmp_path / "voice.wav"
    write_silent_wav(wav_path, 0.1)

    prepared = prepare_transcription_audio(str(wav_path))

    assert prepared.audio_path == str(wav_path)
    assert prepared.kind == AudioKind.WAV
    assert prepared.cleanup_paths == ()


def test_prepare_copies_misnamed_audio_and_cleans_up(tmp_path: Path) -> None:
    """A WAV file with the wrong extension is copied under the right one."""
    misnamed = tmp_path / "voice.bin"
    write_silent_wav(misnamed, 0.1)

    prepared = prepare_transcription_audio(str(misnamed))

    assert prepared.audio_path.endswith(".wav")
    assert prepared.audio_path != str(misnamed)
    assert Path(prepared.audio_path).read_bytes() == misnamed.read_bytes()
    prepared.cleanup()
    assert not os.path.exists(prepared.audio_path)
    assert misnamed.exists()


def test_probe_missing_audio_reports_duration_unavailable(tmp_path: Path) -> None:
    """Probing a missing file fails with the duration error code."""
    with pytest.raises(PlanPipelineError) as excinfo:
        probe_audio_duration_seconds(str(tmp_path / "missing.mp3"))

    assert excinfo.value.code == DURATION_UNAVAILABLE_CODE
