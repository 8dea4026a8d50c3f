"""Service layer: generates, stores and closes out daily rounds."""

from __future__ import annotations

import datetime
import logging
import threading
import weakref
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, Protocol

from daily_rounds.classes.leaderboard import LeaderboardEntry, format_bio, tally_wins
from daily_rounds.classes.qualification import qualifying_candidates
from daily_rounds.classes.round import MIN_PLAYERS, MODE_LIVE, MODE_TRAINING, Post, RawComment, Round
from daily_rounds.classes.rounddatabase import RoundDatabase
from daily_rounds.classes.sampling import clamp, make_seed, rng_for_seed, sample_roster, training_roster
from daily_rounds.config import Settings
from daily_rounds.errors import IngestionError, PersistenceError, RoundNotFoundError, ValidationError
from daily_rounds.feed.client import FeedClient

logger = logging.getLogger(__name__)

REASON_NO_POST = "no_post"
REASON_INSUFFICIENT = "insufficient_entrants"


class CommentFeed(Protocol):
    def latest_post(self) -> Post | None: ...

    def comments(self, post_id: str) -> list[RawComment]: ...


class RoundService:
    """Daily round operations over a feed client and a round store."""

    def __init__(
        self,
        store: RoundDatabase,
        feed: CommentFeed,
        settings: Settings,
        *,
        clock: Callable[[], datetime.datetime] | None = None,
        seed_factory: Callable[[], str] = make_seed,
    ) -> None:
        self.store = store
        self.feed = feed
        self.settings = settings
        self.clock = clock or (lambda: datetime.datetime.now(datetime.timezone.utc))
        self.seed_factory = seed_factory
        # a date drops out once no caller holds its lock
        self._locks: weakref.WeakValueDictionary[datetime.date, threading.Lock] = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    def today(self) -> datetime.date:
        return self.clock().astimezone(self.settings.tz).date()

    @contextmanager
    def _date_lock(self, round_date: datetime.date) -> Iterator[None]:
        with self._locks_guard:
            lock = self._locks.get(round_date)
            if lock is None:
                lock = threading.Lock()
                self._locks[round_date] = lock
        with lock:
            yield

    def _capacity(self, max_players: int | None) -> int:
        if max_players is None:
            return self.settings.max_finalists
        if isinstance(max_players, bool) or not isinstance(max_players, int):
            raise ValidationError(f"max_players must be an integer, got {max_players!r}")
        if not MIN_PLAYERS <= max_players <= self.settings.max_finalists:
            raise ValidationError(
                f"max_players must be between {MIN_PLAYERS} and {self.settings.max_finalists}, got {max_players}"
            )
        return max_players

    # -----------------------
    # Generation
    # -----------------------

    def _build_round(self, round_date: datetime.date, capacity: int, capped: bool) -> Round:
        seed = self.seed_factory()
        rng = rng_for_seed(seed)
        try:
            post = self.feed.latest_post()
            if post is None:
                logger.warning("no feed post available for %s, using training round", round_date)
                return self._training_round(round_date, seed, capacity, capped, REASON_NO_POST)

            candidates = qualifying_candidates(self.feed.comments(post.id), self.settings.require_keyword)
        except IngestionError as err:
            logger.warning("feed ingestion failed (%s): %s; using training round", err.reason, err)
            return self._training_round(round_date, seed, capacity, capped, err.reason, str(err))

        roster = sample_roster(candidates, capacity, rng)
        if roster is None:
            logger.warning(
                "only %d qualifying entrant(s) on post %s, using training round", len(candidates), post.id
            )
            return self._training_round(round_date, seed, capacity, capped, REASON_INSUFFICIENT)

        logger.info(
            "live round for %s: %d of %d entrant(s) from post %s", round_date, len(roster), len(candidates), post.id
        )
        return Round(
            round_date=round_date,
            mode=MODE_LIVE,
            seed=seed,
            claimed_total=len(candidates),
            entrants=roster,
            source_post=post,
        )

    def _training_round(
        self,
        round_date: datetime.date,
        seed: str,
        capacity: int,
        capped: bool,
        reason: str,
        error_message: str | None = None,
    ) -> Round:
        count = clamp(self.settings.training_count, MIN_PLAYERS, self.settings.max_training)
        if capped:
            count = min(count, capacity)
        return Round(
            round_date=round_date,
            mode=MODE_TRAINING,
            seed=seed,
            claimed_total=count,
            entrants=training_roster(count),
            fallback_reason=reason,
            error_message=error_message,
        )

    def generate(self, max_players: int | None = None, round_date: datetime.date | None = None) -> Round:
        """
        Create or replace the round for ``round_date`` (today by default).

        Feed failures fall back to a training round; a store failure raises
        PersistenceError and leaves the previously stored round untouched.
        """
        capacity = self._capacity(max_players)
        round_date = round_date or self.today()
        with self._date_lock(round_date):
            rnd = self._build_round(round_date, capacity, max_players is not None)
            return self.store.upsert_round(rnd)

    # -----------------------
    # Reads
    # -----------------------

    def get_current_round(self, round_date: datetime.date | None = None) -> Round | None:
        return self.store.get_round(round_date or self.today())

    def get_or_generate_round(self, round_date: datetime.date | None = None) -> Round:
        """Return the stored round, generating it first if this is the day's first read."""
        round_date = round_date or self.today()
        existing = self.store.get_round(round_date)
        if existing is not None:
            return existing
        with self._date_lock(round_date):
            existing = self.store.get_round(round_date)
            if existing is not None:
                return existing
            logger.info("no round for %s yet, generating on first read", round_date)
            rnd = self._build_round(round_date, self.settings.max_finalists, False)
            return self.store.upsert_round(rnd)

    # -----------------------
    # Winner reporting
    # -----------------------

    def record_winner(self, slot: int, *, round_date: datetime.date | None = None) -> Round:
        """
        Mark ``slot`` as the winner of the round. Calling it again overwrites the winner.
        """
        if isinstance(slot, bool) or not isinstance(slot, int):
            raise ValidationError(f"winner slot must be an integer, got {slot!r}")
        round_date = round_date or self.today()
        with self._date_lock(round_date):
            rnd = self.store.get_round(round_date)
            if rnd is None:
                raise RoundNotFoundError(f"no round stored for {round_date}")
            entrant = rnd.entrant_for_slot(slot)
            if entrant is None:
                raise ValidationError(f"slot {slot} is not in round {round_date} (1..{rnd.finale_count})")

            if not self.store.set_winner(round_date, rnd.generation, slot, entrant.handle, self.clock()):
                raise ValidationError(f"round {round_date} was regenerated while recording the winner")

            stored = self.store.get_round(round_date)
            if stored is None:
                raise PersistenceError(f"round {round_date} missing after recording the winner")
            logger.info("winner for %s: slot %d (%s)", round_date, slot, entrant.handle)
            return stored

    # -----------------------
    # Leaderboard
    # -----------------------

    def leaderboard(self) -> list[LeaderboardEntry]:
        return tally_wins(self.store.get_winning_handles())

    def bio_line(self, top: int = 3) -> str:
        return format_bio(self.leaderboard(), top=top)

    def health(self) -> dict[str, Any]:
        return {"ok": True, "store": "connected", "rounds": self.store.count_rounds()}


def build_round_service(settings: Settings) -> RoundService:
    """Wire the SQLite store and the Graph feed client from settings."""
    store = RoundDatabase(settings.rounds_db)
    store.create_table()
    feed = FeedClient(
        settings.access_token,
        base_url=settings.feed_base_url,
        timeout_sec=settings.feed_timeout_sec,
        retries=settings.feed_retries,
    )
    return RoundService(store, feed, settings)
