"""Round and Entrant objects shared by the generator, the store and the game feed."""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import Any

MIN_PLAYERS = 2

MODE_LIVE = "live"
MODE_TRAINING = "training"

STATUS_PENDING = "pending"
STATUS_COMPLETE = "complete"

SOURCE_COMMENT = "comment"
SOURCE_TRAINING = "training"


@dataclass(frozen=True)
class Post:
    """A feed post whose comments supply the day's entrants."""

    id: str
    permalink: str | None = None
    timestamp: str | None = None
    caption: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "permalink": self.permalink}


@dataclass(frozen=True)
class RawComment:
    handle: str
    text: str
    comment_id: str | None = None
    timestamp: str | None = None


@dataclass(frozen=True)
class Entrant:
    """One slot in a round's roster."""

    slot: int
    handle: str
    source: str = SOURCE_COMMENT
    comment_id: str | None = None
    comment_text: str | None = None
    comment_timestamp: str | None = None

    @classmethod
    def from_comment(cls, slot: int, comment: RawComment) -> "Entrant":
        return cls(
            slot=slot,
            handle=comment.handle,
            source=SOURCE_COMMENT,
            comment_id=comment.comment_id,
            comment_text=comment.text,
            comment_timestamp=comment.timestamp,
        )

    @classmethod
    def placeholder(cls, slot: int) -> "Entrant":
        return cls(slot=slot, handle=f"#{slot}", source=SOURCE_TRAINING)

    def to_dict(self) -> dict[str, Any]:
        return {
            "slot": self.slot,
            "handle": self.handle,
            "source": self.source,
            "comment_id": self.comment_id,
            "comment_text": self.comment_text,
            "comment_timestamp": self.comment_timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Entrant":
        return cls(
            slot=int(data["slot"]),
            handle=data["handle"],
            source=data.get("source", SOURCE_COMMENT),
            comment_id=data.get("comment_id"),
            comment_text=data.get("comment_text"),
            comment_timestamp=data.get("comment_timestamp"),
        )


@dataclass
class Round:
    """The state of one calendar day's elimination round."""

    round_date: datetime.date
    mode: str
    seed: str
    claimed_total: int
    entrants: list[Entrant] = field(default_factory=list)
    status: str = STATUS_PENDING
    source_post: Post | None = None
    fallback_reason: str | None = None
    error_message: str | None = None
    winner_handle: str | None = None
    winner_slot: int | None = None
    winner_set_at: datetime.datetime | None = None
    generation: int = 0

    @property
    def finale_count(self) -> int:
        return len(self.entrants)

    @property
    def is_complete(self) -> bool:
        return self.status == STATUS_COMPLETE

    def entrant_for_slot(self, slot: int) -> Entrant | None:
        for entrant in self.entrants:
            if entrant.slot == slot:
                return entrant
        return None

    def to_dict(self) -> dict[str, Any]:
        """Plain structure handed to the game client."""
        return {
            "round_date": self.round_date.isoformat(),
            "mode": self.mode,
            "status": self.status,
            "claimed_total": self.claimed_total,
            "finale_count": self.finale_count,
            "seed": self.seed,
            "post": self.source_post.to_dict() if self.source_post else None,
            "entrants": [entrant.to_dict() for entrant in sorted(self.entrants, key=lambda e: e.slot)],
            "winner_handle": self.winner_handle,
            "winner_slot": self.winner_slot,
            "winner_set_at": self.winner_set_at.isoformat() if self.winner_set_at else None,
            "fallback_reason": self.fallback_reason,
            "error_message": self.error_message,
        }

    def __str__(self) -> str:
        return "[Round]: {} mode={} status={} entrants={}/{} winner={}".format(
            self.round_date, self.mode, self.status, self.finale_count, self.claimed_total, self.winner_handle
        )
