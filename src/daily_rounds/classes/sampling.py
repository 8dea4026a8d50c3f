"""Seeded roster sampling."""

from __future__ import annotations

import random
import time
from collections.abc import Sequence

from daily_rounds.errors import ValidationError

from .round import MIN_PLAYERS, Entrant, RawComment


def make_seed() -> str:
    """Millisecond clock plus three random digits, kept as a string for storage."""
    return "{}{:03d}".format(int(time.time() * 1000), random.randrange(1000))


def rng_for_seed(seed: str) -> random.Random:
    return random.Random(int(seed))


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def sample_roster(
    candidates: Sequence[RawComment],
    capacity: int,
    rng: random.Random,
) -> list[Entrant] | None:
    """Shuffle ``candidates`` and keep at most ``capacity`` of them as slots 1..N.

    Returns None when fewer than MIN_PLAYERS candidates are available, so the
    caller can fall back instead of running a short round.
    """
    if capacity < MIN_PLAYERS:
        raise ValidationError(f"capacity must be at least {MIN_PLAYERS}, got {capacity}")
    if len(candidates) < MIN_PLAYERS:
        return None

    pool = list(candidates)
    rng.shuffle(pool)
    picked = pool[: min(capacity, len(pool))]
    return [Entrant.from_comment(slot, comment) for slot, comment in enumerate(picked, start=1)]


def training_roster(count: int) -> list[Entrant]:
    return [Entrant.placeholder(slot) for slot in range(1, count + 1)]
