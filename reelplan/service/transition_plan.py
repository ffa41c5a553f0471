"""Deterministic transition assignment for scene boundaries."""

from __future__ import annotations

import logging
from typing import List, Sequence, Tuple

from reelplan.domain.seeded import (
    Mulberry32,
    cut_seed,
    plan_seed,
    shuffle_in_place,
    whip_direction,
)
from reelplan.domain.timeline import CutPlan, MediaKind, TransitionKind

LOGGER = logging.getLogger("reelplan.transition_plan")

TRANSITION_POOL = (
    TransitionKind.WHIP,
    TransitionKind.FLASH,
    TransitionKind.FADE,
    TransitionKind.CHROMA_LEAK,
)
NO_FADE_RESHUFFLE = 2


def is_eligible_cut(previous: MediaKind, following: MediaKind) -> bool:
    """Only cuts between two still images receive a stylized transition."""
    return previous == MediaKind.IMAGE and following == MediaKind.IMAGE


def rotate_front_to_back(bag: List[TransitionKind]) -> None:
    bag.append(bag.pop(0))


class TransitionBag:
    """Shuffled pool that is exhausted before any kind repeats."""

    def __init__(self, generator: Mulberry32) -> None:
        self._generator = generator
        self._entries: List[TransitionKind] = self._shuffled()
        self._position = 0
        self._reshuffle_count = 1
        self._last_used: TransitionKind | None = None

    def _shuffled(self) -> List[TransitionKind]:
        return list(shuffle_in_place(list(TRANSITION_POOL), self._generator))

    def _refill(self) -> None:
        self._entries = self._shuffled()
        self._position = 0
        self._reshuffle_count += 1
        if (
            self._reshuffle_count == NO_FADE_RESHUFFLE
            and len(self._entries) > 1
            and self._entries[0] == TransitionKind.FADE
        ):
            rotate_front_to_back(self._entries)
        if (
            self._last_used is not None
            and len(self._entries) > 1
            and self._entries[0] == self._last_used
        ):
            rotate_front_to_back(self._entries)

    def _swap_away_from_fade(self) -> None:
        """Swap a pending fade with the next non-fade entry; draws nothing."""
        if self._entries[self._position] != TransitionKind.FADE:
            return
        for index in range(self._position + 1, len(self._entries)):
            if self._entries[index] != TransitionKind.FADE:
                self._entries[self._position], self._entries[index] = (
                    self._entries[index],
                    self._entries[self._position],
                )
                return

    def draw(self, avoid_fade: bool = False) -> TransitionKind:
        if self._position >= len(self._entries):
            self._refill()
        if avoid_fade:
            self._swap_away_from_fade()
        kind = self._entries[self._position]
        self._position += 1
        self._last_used = kind
        return kind


def resolve_cut_kinds(
    media_kinds: Sequence[MediaKind], seed: int
) -> List[TransitionKind]:
    """Return the transition kind for every boundary index (index 0 unused)."""
    kinds = [TransitionKind.NONE] * len(media_kinds)
    eligible = [
        index
        for index in range(1, len(media_kinds))
        if is_eligible_cut(media_kinds[index - 1], media_kinds[index])
    ]
    if not eligible:
        return kinds

    first_cut = eligible[0]
    last_cut = eligible[-1]
    kinds[first_cut] = TransitionKind.GLITCH
    kinds[last_cut] = TransitionKind.GLITCH
    interior = [index for index in eligible if index not in (first_cut, last_cut)]

    bag = TransitionBag(Mulberry32(seed))
    for position, index in enumerate(interior):
        kinds[index] = bag.draw(avoid_fade=position == 0)
    return kinds


def plan_cut_transitions(
    media_kinds: Sequence[MediaKind], seed: int | None = None
) -> Tuple[CutPlan, ...]:
    """Plan the transition at every boundary between consecutive scenes.

    ``seed`` defaults to the plan seed derived from the scene count, which
    keeps plans for identical inputs identical.
    """
    count = len(media_kinds)
    if count < 2:
        return ()
    if seed is None:
        seed = plan_seed(count, 0, count - 1)

    kinds = resolve_cut_kinds(media_kinds, seed)
    plans: list[CutPlan] = []
    for index in range(1, count):
        boundary_seed = cut_seed(index - 1, index)
        direction = None
        if kinds[index] == TransitionKind.WHIP:
            direction = whip_direction(boundary_seed)
        plans.append(
            CutPlan(
                cut_index=index,
                kind=kinds[index],
                seed=boundary_seed,
                whip_direction=direction,
            )
        )
    LOGGER.debug(
        "reelplan.plan.cuts: %s",
        ",".join(plan.kind.value for plan in plans),
    )
    return tuple(plans)
