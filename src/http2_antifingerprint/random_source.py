"""
http2-antifingerprint - Random Source

Integer draws and shuffling behind every randomized fingerprint facet.

Two draw modes:
    - uniform: ``random.random`` (general purpose PRNG, not a CSPRNG)
    - seeded:  ``seedint`` derives the draw from a per-connection SeedCursor

Seeded draw contract ("seedint v1"):
    x = abs(sin(cursor) * 10000)
    draw = x - floor(x)
    cursor = cursor + 1
    value = floor(draw * (max - min + 1) + min)

The formula is fixed; changing it changes every recorded seed history.
"""

import math
import random
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TypeVar

T = TypeVar("T")

Draw = Callable[[], float]

SEED_HASH_SCALE = 10000
SEED_CURSOR_STEP = 1


@dataclass
class SeedCursor:
    """Evolving scalar behind seeded draws.

    Owned by exactly one connection. It only moves forward.
    """

    value: float

    def advance(self) -> float:
        """Return the current value and step the cursor."""
        current = self.value
        self.value = current + SEED_CURSOR_STEP
        return current


def seed_draw(cursor: SeedCursor) -> float:
    """Derive a draw in [0, 1) from the cursor and advance it."""
    x = abs(math.sin(cursor.advance()) * SEED_HASH_SCALE)
    return x - math.floor(x)


class RandomSource:
    """Integer generation and shuffling with a pluggable draw function."""

    def __init__(self, draw: Draw | None = None) -> None:
        self._draw = draw or random.random

    def randint(self, min_value: int, max_value: int, draw: Draw | None = None) -> int:
        """Integer in the closed interval [min_value, max_value]."""
        value = (draw or self._draw)()
        return math.floor(value * (max_value - min_value + 1) + min_value)

    def seedint(self, min_value: int, max_value: int, cursor: SeedCursor) -> int:
        """Deterministic variant of randint driven by ``cursor``."""
        value = seed_draw(cursor)
        return self.randint(min_value, max_value, lambda: value)

    def coin(self) -> bool:
        return self.randint(0, 1) == 1

    def shuffle(self, sequence: Sequence[T]) -> list[T]:
        """Return a new list holding every element once, in Fisher-Yates order."""
        items = list(sequence)
        for i in range(len(items) - 1, 0, -1):
            j = self.randint(0, i)
            items[i], items[j] = items[j], items[i]
        return items


default_source = RandomSource()


def randint(min_value: int, max_value: int, draw: Draw | None = None) -> int:
    return default_source.randint(min_value, max_value, draw)


def seedint(min_value: int, max_value: int, cursor: SeedCursor) -> int:
    return default_source.seedint(min_value, max_value, cursor)


def shuffle(sequence: Sequence[T]) -> list[T]:
    return default_source.shuffle(sequence)
