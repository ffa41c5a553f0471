"""Seeded pseudo-random generation and seed derivation formulas.

Every formula here is part of the reproducibility contract shared with the
rendering engine: changing a constant silently changes every rendered plan.
"""

from __future__ import annotations

from typing import Iterator, MutableSequence, TypeVar

UINT32_MASK = 0xFFFFFFFF
UINT32_RANGE = 4294967296.0
MULBERRY_INCREMENT = 0x6D2B79F5

CUT_SEED_PREV_FACTOR = 1009
CUT_SEED_NEXT_FACTOR = 9176
PLAN_SEED_FACTOR = 1337
WHIP_SEED_SALT = 0x9E3779B9
CHROMA_SEED_SALT = 0x7F4A7C15

ItemT = TypeVar("ItemT")


def to_uint32(value: int) -> int:
    """Reduce an integer to its unsigned 32-bit representation."""
    return value & UINT32_MASK


def imul32(left: int, right: int) -> int:
    """Multiply two integers with 32-bit wraparound."""
    return (left * right) & UINT32_MASK


class Mulberry32:
    """Small, bit-reproducible 32-bit generator keyed by an explicit seed."""

    def __init__(self, seed: int) -> None:
        self._state = to_uint32(seed)

    def next_uint32(self) -> int:
        self._state = to_uint32(self._state + MULBERRY_INCREMENT)
        mixed = imul32(self._state ^ (self._state >> 15), self._state | 1)
        mixed = to_uint32(mixed + imul32(mixed ^ (mixed >> 7), mixed | 61)) ^ mixed
        return to_uint32(mixed ^ (mixed >> 14))

    def next_float(self) -> float:
        """Return the next float in [0, 1)."""
        return self.next_uint32() / UINT32_RANGE

    def __iter__(self) -> Iterator[float]:
        while True:
            yield self.next_float()


def first_float(seed: int) -> float:
    """Return the first value of the stream for ``seed``."""
    return Mulberry32(seed).next_float()


def cut_seed(prev_index: int, next_index: int) -> int:
    """Seed for the cut between two scene indices."""
    return (prev_index + 1) * CUT_SEED_PREV_FACTOR + (
        next_index + 1
    ) * CUT_SEED_NEXT_FACTOR


def plan_seed(scene_count: int, first_index: int, last_index: int) -> int:
    """Global shuffle seed for a transition plan."""
    return (scene_count * PLAN_SEED_FACTOR) ^ cut_seed(first_index, last_index)


def whip_seed(seed: int) -> int:
    return seed ^ WHIP_SEED_SALT


def chroma_seed(seed: int) -> int:
    return seed ^ CHROMA_SEED_SALT


def shuffle_in_place(
    items: MutableSequence[ItemT], generator: Mulberry32
) -> MutableSequence[ItemT]:
    """Fisher-Yates shuffle walking from the end of the sequence."""
    for index in range(len(items) - 1, 0, -1):
        swap_index = int(generator.next_float() * (index + 1))
        items[index], items[swap_index] = items[swap_index], items[index]
    return items


def whip_direction(seed: int) -> int:
    """Pan direction for a whip cut: +1 moves right, -1 moves left."""
    return 1 if first_float(whip_seed(seed)) < 0.5 else -1
