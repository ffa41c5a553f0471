"""Transcription client backed by whisperx."""

from __future__ import annotations

import logging
from types import ModuleType
from typing import Any, Callable, Mapping

from reelplan.domain.timeline import PlanPipelineError

LOGGER = logging.getLogger("reelplan.transcription")

TRANSCRIBE_UNAVAILABLE_CODE = "reelplan.transcribe.unavailable"
TRANSCRIBE_MODEL_CODE = "reelplan.transcribe.model"
TRANSCRIBE_FAILED_CODE = "reelplan.transcribe.failed"

RESPONSE_FORMAT_JSON = "json"
RESPONSE_FORMAT_VERBOSE_JSON = "verbose_json"
DEVICE_AUTO = "auto"
DEFAULT_BATCH_SIZE = 16

# transcribe(audio_path, model, response_format) -> {"segments": [...]}
Transcriber = Callable[[str, str, str], Mapping[str, Any]]


def response_format_for_model(model: str) -> str:
    """gpt-4o style models only return plain JSON without segment timings."""
    if model.startswith("gpt-4o"):
        return RESPONSE_FORMAT_JSON
    return RESPONSE_FORMAT_VERBOSE_JSON


def load_torch_module() -> ModuleType:
    """Import torch."""
    try:
        import torch
    except Exception as exc:
        raise PlanPipelineError(
            TRANSCRIBE_UNAVAILABLE_CODE, f"torch is unavailable: {exc}"
        ) from exc
    return torch


def load_whisperx_module() -> ModuleType:
    """Import whisperx."""
    try:
        import whisperx
    except Exception as exc:
        raise PlanPipelineError(
            TRANSCRIBE_UNAVAILABLE_CODE, f"whisperx import failed: {exc}"
        ) from exc
    return whisperx


def resolve_device(device_value: str) -> str:
    """Resolve auto device selection to a concrete device."""
    if device_value != DEVICE_AUTO:
        return device_value
    torch_module = load_torch_module()
    return "cuda" if torch_module.cuda.is_available() else "cpu"


def compute_type_for_device(device: str) -> str:
    return "float16" if device == "cuda" else "int8"


class WhisperxTranscriber:
    """Callable transcriber; loaded models are cached per instance."""

    def __init__(self, device: str = DEVICE_AUTO, batch_size: int = DEFAULT_BATCH_SIZE) -> None:
        self._device_value = device
        self._batch_size = batch_size
        self._models: dict[str, Any] = {}

    def _load_model(self, whisperx: ModuleType, model: str, device: str) -> Any:
        cached = self._models.get(model)
        if cached is not None:
            return cached
        try:
            loaded = whisperx.load_model(
                model, device, compute_type=compute_type_for_device(device)
            )
        except Exception as exc:
            raise PlanPipelineError(
                TRANSCRIBE_MODEL_CODE, f"transcription model load failed: {exc}"
            ) from exc
        self._models[model] = loaded
        return loaded

    def __call__(
        self, audio_path: str, model: str, response_format: str
    ) -> Mapping[str, Any]:
        whisperx = load_whisperx_module()
        device = resolve_device(self._device_value)
        loaded_model = self._load_model(whisperx, model, device)
        LOGGER.info(
            "reelplan.transcribe.start: model=%s device=%s format=%s",
            model,
            device,
            response_format,
        )
        try:
            audio = whisperx.load_audio(audio_path)
            result = loaded_model.transcribe(audio, batch_size=self._batch_size)
        except Exception as exc:
            raise PlanPipelineError(
                TRANSCRIBE_FAILED_CODE, f"transcription failed: {exc}"
            ) from exc

        segments = [
            {
                "start": segment.get("start"),
                "end": segment.get("end"),
                "text": segment.get("text", ""),
            }
            for segment in result.get("segments", [])
            if isinstance(segment, Mapping)
        ]
        text = " ".join(str(segment["text"]).strip() for segment in segments).strip()
        if response_format == RESPONSE_FORMAT_JSON:
            return {"text": text}
        return {"text": text, "segments": segments}
