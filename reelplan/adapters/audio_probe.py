"""ffprobe/ffmpeg helpers and audio container sniffing."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import logging
import os
import shutil
import subprocess
import tempfile
import uuid

from reelplan.domain.timeline import DURATION_UNAVAILABLE_CODE, PlanPipelineError

LOGGER = logging.getLogger("reelplan.audio_probe")

FFMPEG_NOT_FOUND_CODE = "reelplan.dependency.ffmpeg_missing"
FFMPEG_EXEC_CODE = "reelplan.dependency.ffmpeg_exec"
FFMPEG_PROBE_CODE = "reelplan.audio.probe_failed"
TRANSCODE_CODE = "reelplan.audio.transcode_failed"

HEADER_SNIFF_BYTES = 64
TRANSCODE_SAMPLE_RATE = 16000
WAV_CONTAINER_TAGS = {b"RIFF", b"RF64", b"BW64", b"RIFX"}


class AudioKind(str, Enum):
    """Audio container detected from the file header."""

    MP3 = "mp3"
    WAV = "wav"
    MP4 = "mp4"
    WEBM = "webm"
    OGG = "ogg"
    AAC_ADTS = "aac-adts"
    UNKNOWN = "unknown"


TRANSCRIPTION_EXTENSIONS = {
    AudioKind.MP3: ".mp3",
    AudioKind.WAV: ".wav",
    AudioKind.MP4: ".m4a",
    AudioKind.WEBM: ".webm",
}


@dataclass(frozen=True)
class PreparedAudio:
    """Audio path ready for transcription plus temp files to remove."""

    audio_path: str
    kind: AudioKind
    cleanup_paths: tuple[str, ...] = field(default_factory=tuple)

    def cleanup(self) -> None:
        """Remove temporary files created while preparing the audio."""
        for path in self.cleanup_paths:
            try:
                os.remove(path)
            except FileNotFoundError:
                continue
            except OSError as exc:
                LOGGER.warning("reelplan.audio.cleanup_failed: %s (%s)", path, exc)


def ensure_tool_available(tool_name: str) -> str:
    """Ensure an ffmpeg-suite binary is installed and executable."""
    tool_path = shutil.which(tool_name)
    if not tool_path:
        raise PlanPipelineError(FFMPEG_NOT_FOUND_CODE, f"{tool_name} not on PATH")
    try:
        subprocess.run(
            [tool_path, "-version"],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=True,
        )
    except Exception as exc:
        raise PlanPipelineError(
            FFMPEG_EXEC_CODE, f"{tool_name} exists but could not be executed"
        ) from exc
    return tool_path


def probe_audio_duration_seconds(audio_path: str) -> float:
    """Return the authoritative audio duration in seconds."""
    if not os.path.isfile(audio_path):
        raise PlanPipelineError(
            DURATION_UNAVAILABLE_CODE, f"audio file not found: {audio_path}"
        )
    ffprobe_path = ensure_tool_available("ffprobe")
    result = subprocess.run(
        [
            ffprobe_path,
            "-v",
            "error",
            "-show_entries",
            "format=duration",
            "-of",
            "default=noprint_wrappers=1:nokey=1",
            audio_path,
        ],
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        check=False,
    )
    if result.returncode != 0:
        raise PlanPipelineError(
            FFMPEG_PROBE_CODE, f"ffprobe failed for audio: {result.stderr.strip()}"
        )
    try:
        duration_seconds = float(result.stdout.strip())
    except ValueError as exc:
        raise PlanPipelineError(
            DURATION_UNAVAILABLE_CODE, f"audio duration unavailable: {audio_path}"
        ) from exc
    if duration_seconds <= 0:
        raise PlanPipelineError(
            DURATION_UNAVAILABLE_CODE, f"audio duration invalid: {audio_path}"
        )
    return duration_seconds


def read_header_bytes(file_path: str, length: int = HEADER_SNIFF_BYTES) -> bytes:
    """Read up to ``length`` bytes from the start of a file."""
    with open(file_path, "rb") as file_handle:
        return file_handle.read(max(0, length))


def looks_like_wav(header: bytes) -> bool:
    return len(header) >= 12 and header[0:4] in WAV_CONTAINER_TAGS and header[8:12] == b"WAVE"


def looks_like_mp4(header: bytes) -> bool:
    return len(header) >= 12 and header[4:8] == b"ftyp"


def looks_like_webm(header: bytes) -> bool:
    return header[:4] == b"\x1a\x45\xdf\xa3"


def looks_like_ogg(header: bytes) -> bool:
    return header[:4] == b"OggS"


def looks_like_aac_adts(header: bytes) -> bool:
    """Detect the ADTS sync word (0xFFF) with the always-zero layer bits."""
    if len(header) < 2 or header[0] != 0xFF:
        return False
    if header[1] & 0xF0 != 0xF0:
        return False
    return header[1] & 0x06 == 0x00


def looks_like_mp3(header: bytes) -> bool:
    """Detect an ID3 tag or a valid MPEG audio frame header."""
    if len(header) < 4:
        return False
    if header[:3] == b"ID3":
        return True
    if not (header[0] == 0xFF and header[1] & 0xE0 == 0xE0):
        return False
    if looks_like_aac_adts(header):
        return False
    version_id = (header[1] >> 3) & 0x3
    layer = (header[1] >> 1) & 0x3
    # 01 version and 00 layer are reserved values.
    return version_id != 0x1 and layer != 0x0


def detect_audio_kind(header: bytes) -> AudioKind:
    """Classify an audio container from its leading bytes."""
    if looks_like_wav(header):
        return AudioKind.WAV
    if looks_like_mp4(header):
        return AudioKind.MP4
    if looks_like_webm(header):
        return AudioKind.WEBM
    if looks_like_ogg(header):
        return AudioKind.OGG
    if looks_like_aac_adts(header):
        return AudioKind.AAC_ADTS
    if looks_like_mp3(header):
        return AudioKind.MP3
    return AudioKind.UNKNOWN


def temp_audio_path(suffix: str) -> str:
    return os.path.join(tempfile.gettempdir(), f"reelplan-{uuid.uuid4().hex}{suffix}")


def transcode_to_wav(input_path: str) -> str:
    """Transcode audio to 16 kHz mono PCM WAV and return the new path."""
    ffmpeg_path = ensure_tool_available("ffmpeg")
    output_path = temp_audio_path("-transcoded.wav")
    result = subprocess.run(
        [
            ffmpeg_path,
            "-y",
            "-loglevel",
            "error",
            "-i",
            input_path,
            "-vn",
            "-ac",
            "1",
            "-ar",
            str(TRANSCODE_SAMPLE_RATE),
            "-f",
            "wav",
            output_path,
        ],
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        check=False,
    )
    if result.returncode != 0:
        raise PlanPipelineError(
            TRANSCODE_CODE, f"ffmpeg transcode failed: {result.stderr.strip()}"
        )
    return output_path


def prepare_transcription_audio(audio_path: str) -> PreparedAudio:
    """Make sure the transcription service receives a supported container.

    Supported containers with a misleading extension are copied to a temp file
    with the right one. Anything else is transcoded to WAV; a failed
    transcode keeps the original path.
    """
    kind = detect_audio_kind(read_header_bytes(audio_path))
    extension = os.path.splitext(audio_path)[1].lower()
    desired_extension = TRANSCRIPTION_EXTENSIONS.get(kind)
    LOGGER.debug(
        "reelplan.audio.sniffed: kind=%s ext=%s desired=%s",
        kind.value,
        extension,
        desired_extension,
    )

    if desired_extension is not None:
        if extension == desired_extension:
            return PreparedAudio(audio_path=audio_path, kind=kind)
        copied_path = temp_audio_path(desired_extension)
        shutil.copyfile(audio_path, copied_path)
        return PreparedAudio(
            audio_path=copied_path, kind=kind, cleanup_paths=(copied_path,)
        )

    try:
        wav_path = transcode_to_wav(audio_path)
    except PlanPipelineError as exc:
        LOGGER.warning("%s: %s; using original audio", exc.code, exc)
        return PreparedAudio(audio_path=audio_path, kind=kind)
    return PreparedAudio(audio_path=wav_path, kind=kind, cleanup_paths=(wav_path,))
