"""Win tallies over completed rounds."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from .qualification import normalize_handle

BIO_PREFIX = "🏆 Top: "


@dataclass(frozen=True)
class LeaderboardEntry:
    handle: str
    wins: int

    def to_dict(self) -> dict:
        return {"handle": self.handle, "wins": self.wins}


def tally_wins(winner_handles: Iterable[str | None]) -> list[LeaderboardEntry]:
    """Count wins per handle, most wins first.

    ``winner_handles`` must be in round order: handles are grouped
    case-insensitively and the spelling from the earliest win is displayed.
    Equal counts are ordered by the case-folded handle.
    """
    counts: dict[str, int] = {}
    display: dict[str, str] = {}
    for handle in winner_handles:
        key = normalize_handle(handle)
        if not key:
            continue
        display.setdefault(key, handle.strip())
        counts[key] = counts.get(key, 0) + 1

    ordered = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [LeaderboardEntry(display[key], wins) for key, wins in ordered]


def format_bio(entries: Iterable[LeaderboardEntry], top: int = 3) -> str:
    leaders = list(entries)[:top]
    if not leaders:
        return BIO_PREFIX + "TBD"
    return BIO_PREFIX + " • ".join(f"@{entry.handle}({entry.wins})" for entry in leaders)
