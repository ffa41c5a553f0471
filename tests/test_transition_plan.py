"""Tests for the deterministic transition planner."""

from __future__ import annotations

from typing import Sequence

from reelplan.domain.seeded import cut_seed
from reelplan.domain.timeline import MediaKind, TransitionKind
from reelplan.service.transition_plan import (
    TRANSITION_POOL,
    TransitionBag,
    plan_cut_transitions,
)

IMAGE = MediaKind.IMAGE
VIDEO = MediaKind.VIDEO


def test_four_image_scenes_glitch_at_ends_and_never_fade_second() -> None:
    """Boundaries 1 and 3 glitch; boundary 2 is never a fade for any seed."""
    for seed in range(500):
        plans = plan_cut_transitions([IMAGE] * 4, seed=seed)

        assert [plan.cut_index for plan in plans] == [1, 2, 3]
        assert plans[0].kind == TransitionKind.GLITCH
        assert plans[2].kind == TransitionKind.GLITCH
        assert plans[1].kind in TRANSITION_POOL
        assert plans[1].kind != TransitionKind.FADE


def test_single_scene_has_no_cuts() -> None:
    """A single scene produces an empty plan."""
    assert plan_cut_transitions([IMAGE]) == ()
    assert plan_cut_transitions([]) == ()


def test_two_image_scenes_share_one_glitch_cut() -> None:
    """The only eligible cut is both first and last."""
    plans = plan_cut_transitions([IMAGE, IMAGE])

    assert [plan.kind for plan in plans] == [TransitionKind.GLITCH]


def test_clip_neighbours_are_never_stylized() -> None:
    """Cuts touching a clip stay plain."""
    plans = plan_cut_transitions([IMAGE, VIDEO, IMAGE, IMAGE, VIDEO])

    assert [plan.kind for plan in plans] == [
        TransitionKind.NONE,
        TransitionKind.NONE,
        TransitionKind.GLITCH,
        TransitionKind.NONE,
    ]
    assert plan_cut_transitions([VIDEO, VIDEO, VIDEO])[0].kind == TransitionKind.NONE


def test_plan_is_deterministic_and_seeds_every_cut() -> None:
    """The same inputs always produce the same plan with per-cut seeds."""
    kinds = [IMAGE] * 9
    first = plan_cut_transitions(kinds)
    second = plan_cut_transitions(kinds)

    assert first == second
    for plan in first:
        assert plan.seed == cut_seed(plan.cut_index - 1, plan.cut_index)
        if plan.kind == TransitionKind.WHIP:
            assert plan.whip_direction in (1, -1)
        else:
            assert plan.whip_direction is None


def test_interior_cuts_exhaust_the_bag_before_repeating() -> None:
    """Four interior cuts use each pooled transition exactly once."""
    for seed in range(200):
        plans = plan_cut_transitions([IMAGE] * 7, seed=seed)
        interior = [plan.kind for plan in plans[1:-1]]

        assert sorted(interior) == sorted(TRANSITION_POOL)


def test_consecutive_interior_cuts_never_repeat() -> None:
    """Reshuffles never start with the transition that was just used."""
    for seed in range(200):
        plans = plan_cut_transitions([IMAGE] * 16, seed=seed)
        interior = [plan.kind for plan in plans[1:-1]]

        assert len(interior) == 13
        assert TransitionKind.GLITCH not in interior
        for previous, following in zip(interior, interior[1:]):
            assert previous != following


class ScriptedGenerator:
    """Stand-in generator returning fixed floats in order."""

    def __init__(self, values: Sequence[float]) -> None:
        self._values = list(values)

    def next_float(self) -> float:
        return self._values.pop(0)


def test_second_bag_rotates_leading_fade_to_the_back() -> None:
    """A second bag shuffled with fade first starts with its next entry."""
    identity = [0.99, 0.99, 0.99]
    fade_first = [0.99, 0.0, 0.99]
    bag = TransitionBag(ScriptedGenerator(identity + fade_first))

    draws = [bag.draw(avoid_fade=position == 0) for position in range(8)]

    assert draws == [
        TransitionKind.WHIP,
        TransitionKind.FLASH,
        TransitionKind.FADE,
        TransitionKind.CHROMA_LEAK,
        TransitionKind.FLASH,
        TransitionKind.WHIP,
        TransitionKind.CHROMA_LEAK,
        TransitionKind.FADE,
    ]


def test_second_bag_never_opens_with_fade() -> None:
    """The first draw after the first reshuffle is never a fade."""
    for seed in range(500):
        plans = plan_cut_transitions([IMAGE] * 16, seed=seed)

        assert plans[5].cut_index == 6
        assert plans[5].kind in TRANSITION_POOL
        assert plans[5].kind != TransitionKind.FADE
