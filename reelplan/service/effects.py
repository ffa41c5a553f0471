"""Seeded visual parameters and per-frame envelopes for transitions.

Everything here is a pure function of a seed, a frame index and scene
geometry. The rendering engine evaluates the same functions every frame, so
a given seed always yields the same offsets, slices and directions.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
import math
from typing import Any, Callable, Mapping, Tuple

from reelplan.domain.seeded import (
    WHIP_SEED_SALT,
    Mulberry32,
    chroma_seed,
    first_float,
    whip_direction,
)
from reelplan.domain.timeline import Scene, Timeline, TransitionKind

EDGE_FRAMES: Mapping[TransitionKind, int] = {
    TransitionKind.GLITCH: 4,
    TransitionKind.FLASH: 5,
    TransitionKind.FADE: 12,
    TransitionKind.WHIP: 10,
    TransitionKind.CHROMA_LEAK: 10,
}
WHIP_DISTANCE_MULTIPLIER = 1.15
WHIP_MAX_BLUR_PX = 18.0
WHIP_MAX_SKEW_DEG = 6.0
CHROMA_MAX_SHIFT_PX = 22.0
CHROMA_MAX_BLUR_PX = 6.0
IMAGE_ZOOM_PER_SECOND = 0.009

GLITCH_MIN_SLICES = 4
SUSPENSE_BAND_MARGIN_PX = 40
SUSPENSE_SPLICE_WIDTH_PX = 6

Easing = Callable[[float], float]


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values, unlike round()."""
    return int(math.floor(value + 0.5))


def linear(progress: float) -> float:
    return progress


def ease_in_cubic(progress: float) -> float:
    return progress**3


def ease_out_cubic(progress: float) -> float:
    return 1.0 - (1.0 - progress) ** 3


def ease_in_out_cubic(progress: float) -> float:
    """Symmetric cubic: accelerates through the first half, decelerates after."""
    if progress < 0.5:
        return ease_in_cubic(progress * 2.0) / 2.0
    return 1.0 - ease_in_cubic((1.0 - progress) * 2.0) / 2.0


def interpolate_clamped(
    value: float,
    input_range: Tuple[float, float],
    output_range: Tuple[float, float],
    easing: Easing = linear,
) -> float:
    """Map ``value`` from one range to another, clamping at both ends."""
    input_start, input_end = input_range
    if input_end <= input_start:
        raise ValueError("input_range must be strictly increasing")
    output_start, output_end = output_range
    progress = clamp01((value - input_start) / (input_end - input_start))
    return output_start + (output_end - output_start) * easing(progress)


@dataclass(frozen=True)
class GlitchSlice:
    top_pct: float
    height_pct: float
    dx: float


@dataclass(frozen=True)
class GlitchParams:
    """Channel offsets and displaced slices for one glitch cut."""

    intensity: float
    red_x: float
    red_y: float
    blue_x: float
    blue_y: float
    slices: Tuple[GlitchSlice, ...]


@dataclass(frozen=True)
class ChromaParams:
    """Direction, strength and light-leak origin for one chroma cut."""

    dir_x: int
    dir_y: int
    strength: float
    origin_x_pct: float
    origin_y_pct: float
    peak_shift_px: float
    peak_blur_px: float


@dataclass(frozen=True)
class SuspenseFrame:
    """Film-damage overlay values for one frame of the suspense opening."""

    flicker: float
    scratch_pulse: float
    scratch_alpha: float
    soft_pulse: float
    hard_pulse: float
    vertical_glitch_alpha: float
    jitter_x: float
    band_x: int
    band_width: int
    band_on: bool
    splice_x: int
    splice_on: bool


@dataclass(frozen=True)
class WhipPan:
    offset_x: float
    blur_px: float
    skew_deg: float


@dataclass(frozen=True)
class CutEffects:
    """Everything the engine needs to draw one stylized cut."""

    cut_index: int
    kind: TransitionKind
    seed: int
    edge_frames: int
    whip_direction: int | None = None
    glitch: GlitchParams | None = None
    chroma: ChromaParams | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "cutIndex": self.cut_index,
            "kind": self.kind.value,
            "seed": self.seed,
            "edgeFrames": self.edge_frames,
            "whipDirection": self.whip_direction,
            "glitch": asdict(self.glitch) if self.glitch is not None else None,
            "chroma": asdict(self.chroma) if self.chroma is not None else None,
        }


def signed_unit(generator: Mulberry32) -> float:
    return generator.next_float() * 2.0 - 1.0


def glitch_params(seed: int) -> GlitchParams:
    """Draw glitch parameters; the draw order is fixed."""
    generator = Mulberry32(seed)
    intensity = 0.6 + generator.next_float() * 0.8
    red_x = signed_unit(generator) * 16 * intensity
    red_y = signed_unit(generator) * 6 * intensity
    blue_x = signed_unit(generator) * 16 * intensity
    blue_y = signed_unit(generator) * 6 * intensity

    slice_count = GLITCH_MIN_SLICES + int(math.floor(generator.next_float() * 4))
    slices = []
    for _ in range(slice_count):
        top_pct = generator.next_float() * 92
        height_pct = 2 + generator.next_float() * 10
        dx = signed_unit(generator) * 60 * intensity
        slices.append(GlitchSlice(top_pct=top_pct, height_pct=height_pct, dx=dx))
    return GlitchParams(
        intensity=intensity,
        red_x=red_x,
        red_y=red_y,
        blue_x=blue_x,
        blue_y=blue_y,
        slices=tuple(slices),
    )


def chroma_params(seed: int) -> ChromaParams:
    generator = Mulberry32(chroma_seed(seed))
    dir_x = -1 if generator.next_float() < 0.5 else 1
    dir_y = -1 if generator.next_float() < 0.5 else 1
    strength = 0.85 + generator.next_float() * 0.5
    origin_x_pct = 20 + generator.next_float() * 60
    origin_y_pct = 20 + generator.next_float() * 50
    return ChromaParams(
        dir_x=dir_x,
        dir_y=dir_y,
        strength=strength,
        origin_x_pct=origin_x_pct,
        origin_y_pct=origin_y_pct,
        peak_shift_px=chroma_shift_px(strength, 1.0),
        peak_blur_px=chroma_blur_px(strength, 1.0),
    )


def lighting_seed(scene_index: int) -> float:
    return first_float((scene_index + 1) * 4409)


def suspense_flicker(frame: int) -> float:
    return 0.02 + 0.02 * math.sin(frame * 0.9) + 0.012 * math.sin(frame * 2.7)


def suspense_frame_params(scene_index: int, frame: int, width: int) -> SuspenseFrame:
    """Per-frame film-damage values for a suspense opening scene.

    Bands re-seed every two frames and the splice line every three, so they
    hold still for a moment instead of shimmering.
    """
    key = scene_index + 1
    flicker = suspense_flicker(frame)

    scratch_pulse = clamp01((first_float(key * 881 + frame * 131) - 0.92) * 16)
    scratch_alpha = clamp01(0.14 + flicker + 0.62 * scratch_pulse)

    vertical = first_float(key * 1907 + frame * 73)
    soft_pulse = clamp01((vertical - 0.70) * 3.2)
    hard_pulse = clamp01((vertical - 0.92) * 22)
    vertical_glitch_alpha = clamp01(
        0.16
        + 0.18 * flicker
        + 0.42 * soft_pulse
        + 0.55 * hard_pulse
        + 0.20 * scratch_pulse
    )

    jitter_x = (first_float(key * 7129 + frame * 11) * 2 - 1) * 10 * hard_pulse

    band_seed = key * 9029 + (frame // 2) * 37
    band_x = round_half_up(first_float(band_seed) * (width - SUSPENSE_BAND_MARGIN_PX))
    band_width = round_half_up(18 + first_float(band_seed ^ WHIP_SEED_SALT) * 72)

    splice_seed = key * 3331 + (frame // 3) * 97
    splice_x = round_half_up(first_float(splice_seed) * (width - SUSPENSE_SPLICE_WIDTH_PX))

    return SuspenseFrame(
        flicker=flicker,
        scratch_pulse=scratch_pulse,
        scratch_alpha=scratch_alpha,
        soft_pulse=soft_pulse,
        hard_pulse=hard_pulse,
        vertical_glitch_alpha=vertical_glitch_alpha,
        jitter_x=jitter_x,
        band_x=band_x,
        band_width=band_width,
        band_on=hard_pulse > 0.08,
        splice_x=splice_x,
        splice_on=hard_pulse > 0.35 or scratch_pulse > 0.7,
    )


def in_edge_window(
    kind: TransitionKind, frame: int, duration_frames: int, incoming: bool
) -> bool:
    edge = EDGE_FRAMES.get(kind)
    if edge is None:
        return False
    if incoming:
        return 0 <= frame < edge
    return frame >= duration_frames - edge


def glitch_edge_alpha(frame: int, duration_frames: int) -> float:
    """Linear ramp so a glitch is not a single-frame pop."""
    edge = EDGE_FRAMES[TransitionKind.GLITCH]
    if frame < edge:
        return clamp01((frame + 1) / edge)
    return clamp01((duration_frames - frame) / edge)


def transition_envelope(
    kind: TransitionKind, frame: int, duration_frames: int, incoming: bool
) -> float:
    """Return the 0..1 strength of a transition at a scene-relative frame.

    ``incoming`` selects the cut at the start of the scene; otherwise the cut
    at its end. Outside the edge window the envelope is zero.
    """
    if not in_edge_window(kind, frame, duration_frames, incoming):
        return 0.0
    edge = EDGE_FRAMES[kind]
    if kind == TransitionKind.GLITCH:
        return glitch_edge_alpha(frame, duration_frames)
    if kind == TransitionKind.WHIP:
        if incoming:
            return interpolate_clamped(frame, (0, edge), (1.0, 0.0), ease_in_out_cubic)
        return interpolate_clamped(
            frame,
            (duration_frames - edge, duration_frames),
            (0.0, 1.0),
            ease_in_out_cubic,
        )
    if incoming:
        return interpolate_clamped(frame, (0, edge - 1), (1.0, 0.0), ease_out_cubic)
    return interpolate_clamped(
        frame,
        (duration_frames - edge, duration_frames - 1),
        (0.0, 1.0),
        ease_in_cubic,
    )


def whip_pan(scene: Scene, frame: int, width: int) -> WhipPan:
    """Horizontal offset, motion blur and skew of a scene during whip cuts."""
    distance = width * WHIP_DISTANCE_MULTIPLIER
    offset_x = 0.0
    blur_px = 0.0
    if scene.transition_from_prev == TransitionKind.WHIP:
        envelope = transition_envelope(
            TransitionKind.WHIP, frame, scene.duration_frames, incoming=True
        )
        offset_x -= scene.whip_direction_from_prev * distance * envelope
        blur_px += WHIP_MAX_BLUR_PX * envelope
    if scene.transition_to_next == TransitionKind.WHIP:
        envelope = transition_envelope(
            TransitionKind.WHIP, frame, scene.duration_frames, incoming=False
        )
        offset_x += scene.whip_direction_to_next * distance * envelope
        blur_px += WHIP_MAX_BLUR_PX * envelope
    blur_px = min(WHIP_MAX_BLUR_PX, blur_px)
    skew_sign = 1.0 if offset_x >= 0 else -1.0
    skew_deg = blur_px / WHIP_MAX_BLUR_PX * WHIP_MAX_SKEW_DEG * skew_sign
    return WhipPan(offset_x=offset_x, blur_px=blur_px, skew_deg=skew_deg)


def chroma_shift_px(strength: float, envelope: float) -> float:
    """Channel split in pixels at a point on the chroma envelope."""
    return CHROMA_MAX_SHIFT_PX * strength * envelope


def chroma_blur_px(strength: float, envelope: float) -> float:
    return CHROMA_MAX_BLUR_PX * strength * envelope


def image_zoom_scale(elapsed_seconds: float) -> float:
    return 1.0 + IMAGE_ZOOM_PER_SECOND * elapsed_seconds


def build_cut_effects(timeline: Timeline) -> Tuple[CutEffects, ...]:
    """Bundle seeded parameters for every stylized cut in a timeline."""
    effects: list[CutEffects] = []
    for scene in timeline.scenes[1:]:
        kind = scene.transition_from_prev
        if kind == TransitionKind.NONE:
            continue
        seed = scene.effect_seed_from_prev
        effects.append(
            CutEffects(
                cut_index=scene.index,
                kind=kind,
                seed=seed,
                edge_frames=EDGE_FRAMES[kind],
                whip_direction=whip_direction(seed) if kind == TransitionKind.WHIP else None,
                glitch=glitch_params(seed) if kind == TransitionKind.GLITCH else None,
                chroma=chroma_params(seed) if kind == TransitionKind.CHROMA_LEAK else None,
            )
        )
    return tuple(effects)
