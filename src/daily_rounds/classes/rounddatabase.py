import datetime
import json
import logging
import sqlite3
import threading

from daily_rounds.errors import PersistenceError

from .round import MODE_TRAINING, STATUS_COMPLETE, STATUS_PENDING, Entrant, Post, Round

ROUND_COLUMNS = (
    "round_date",
    "generation",
    "mode",
    "status",
    "seed",
    "claimed_total",
    "finale_count",
    "source_post",
    "entrants",
    "fallback_reason",
    "error_message",
    "winner_handle",
    "winner_slot",
    "winner_set_at",
)


class RoundDatabase:
    def __init__(self, sqlite3_database: str, logger: logging.Logger | None = None) -> None:
        """
        Open the rounds store backed by a SQLite database file.

        Args:
            sqlite3_database (str): Path to SQLite database file (":memory:" for tests).
            logger (logging.Logger, optional): Logger instance.
        """
        self.logger = logger or logging.getLogger(__name__)
        self.sqlite_path = sqlite3_database
        self.logger.info("Connecting to rounds DB %s", self.sqlite_path)
        self._lock = threading.RLock()
        try:
            self.conn: sqlite3.Connection = sqlite3.connect(sqlite3_database, check_same_thread=False)
        except sqlite3.Error as err:
            raise self._failure("connect", err) from err

    def _failure(self, action: str, err: sqlite3.Error) -> PersistenceError:
        self.logger.error("sqlite error in %s (%s): %s", action, self.sqlite_path, err)
        return PersistenceError(f"rounds store {action} failed: {err}")

    def create_table(self) -> None:
        """
        Create the rounds table if it does not exist.

        Entrants live in the same row as JSON so a round is always replaced whole.
        """
        sql = """
        CREATE TABLE IF NOT EXISTS "rounds" (
            "round_date"      TEXT PRIMARY KEY,
            "generation"      INTEGER NOT NULL DEFAULT 1,
            "mode"            TEXT NOT NULL,
            "status"          TEXT NOT NULL,
            "seed"            TEXT NOT NULL,
            "claimed_total"   INTEGER NOT NULL,
            "finale_count"    INTEGER NOT NULL,
            "source_post"     TEXT,
            "entrants"        TEXT NOT NULL,
            "fallback_reason" TEXT,
            "error_message"   TEXT,
            "winner_handle"   TEXT,
            "winner_slot"     INTEGER,
            "winner_set_at"   TEXT,
            "updated_at"      TEXT NOT NULL
        );
        """
        with self._lock:
            try:
                self.conn.execute(sql)
                self.conn.commit()
            except sqlite3.Error as err:
                raise self._failure("create_table", err) from err

    def upsert_round(self, rnd: Round) -> Round:
        """
        Replace the stored round for ``rnd.round_date`` in a single statement.

        Winner fields are reset and the generation counter is bumped, so a
        winner recorded against an older entrant set can never be applied.

        Returns:
            Round: the round as stored, including its new generation.
        """
        sql = """
        INSERT INTO rounds (
            round_date, generation, mode, status, seed, claimed_total, finale_count,
            source_post, entrants, fallback_reason, error_message,
            winner_handle, winner_slot, winner_set_at, updated_at
        )
        VALUES (?, 1, ?, ?, ?, ?, ?, ?, ?, ?, ?, NULL, NULL, NULL, ?)
        ON CONFLICT(round_date) DO UPDATE SET
            generation = rounds.generation + 1,
            mode = excluded.mode,
            status = excluded.status,
            seed = excluded.seed,
            claimed_total = excluded.claimed_total,
            finale_count = excluded.finale_count,
            source_post = excluded.source_post,
            entrants = excluded.entrants,
            fallback_reason = excluded.fallback_reason,
            error_message = excluded.error_message,
            winner_handle = NULL,
            winner_slot = NULL,
            winner_set_at = NULL,
            updated_at = excluded.updated_at
        """
        source_post = None
        if rnd.source_post is not None:
            source_post = json.dumps(
                {
                    "id": rnd.source_post.id,
                    "permalink": rnd.source_post.permalink,
                    "timestamp": rnd.source_post.timestamp,
                }
            )
        params = (
            rnd.round_date.isoformat(),
            rnd.mode,
            STATUS_PENDING,
            rnd.seed,
            rnd.claimed_total,
            rnd.finale_count,
            source_post,
            json.dumps([entrant.to_dict() for entrant in rnd.entrants]),
            rnd.fallback_reason,
            rnd.error_message,
            _utcnow().isoformat(),
        )
        with self._lock:
            try:
                with self.conn:
                    self.conn.execute(sql, params)
            except sqlite3.Error as err:
                raise self._failure("upsert_round", err) from err

        stored = self.get_round(rnd.round_date)
        if stored is None:
            raise PersistenceError(f"round {rnd.round_date} missing after upsert")
        self.logger.info("stored %s (generation %d)", stored, stored.generation)
        return stored

    def get_round(self, round_date: datetime.date) -> Round | None:
        """
        Get the stored round for a date.

        Returns:
            Round | None: the round, or None if no round exists for the date.
        """
        sql = "SELECT {} FROM rounds WHERE round_date=? LIMIT 1".format(", ".join(ROUND_COLUMNS))
        with self._lock:
            try:
                row = self.conn.execute(sql, (round_date.isoformat(),)).fetchone()
            except sqlite3.Error as err:
                raise self._failure("get_round", err) from err
        if row is None:
            self.logger.debug("no round stored for %s", round_date)
            return None
        return _round_from_row(row)

    def set_winner(
        self,
        round_date: datetime.date,
        generation: int,
        slot: int,
        handle: str,
        set_at: datetime.datetime,
    ) -> bool:
        """
        Record the winner only if the round is still at ``generation``.

        Returns:
            bool: False when the round was regenerated (or removed) in between.
        """
        sql = (
            "UPDATE rounds "
            "SET winner_handle=?, winner_slot=?, winner_set_at=?, status=? "
            "WHERE round_date=? AND generation=? AND finale_count >= ?"
        )
        params = (handle, slot, set_at.isoformat(), STATUS_COMPLETE, round_date.isoformat(), generation, slot)
        with self._lock:
            try:
                with self.conn:
                    cur = self.conn.execute(sql, params)
            except sqlite3.Error as err:
                raise self._failure("set_winner", err) from err
        return cur.rowcount == 1

    def get_winning_handles(self) -> list[str]:
        """
        Winner handles of every completed live round, oldest round first.

        Training rounds only hold placeholder entrants, so their winners never count.
        """
        sql = (
            "SELECT winner_handle FROM rounds "
            "WHERE winner_handle IS NOT NULL AND mode != ? "
            "ORDER BY round_date ASC"
        )
        with self._lock:
            try:
                rows = self.conn.execute(sql, (MODE_TRAINING,)).fetchall()
            except sqlite3.Error as err:
                raise self._failure("get_winning_handles", err) from err
        return [row[0] for row in rows]

    def count_rounds(self) -> int:
        with self._lock:
            try:
                return self.conn.execute("SELECT COUNT(*) FROM rounds").fetchone()[0]
            except sqlite3.Error as err:
                raise self._failure("count_rounds", err) from err

    def close(self) -> None:
        """
        Close the database connection.
        """
        with self._lock:
            self.conn.close()


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def _round_from_row(row: tuple) -> Round:
    data = dict(zip(ROUND_COLUMNS, row))
    post = None
    if data["source_post"]:
        post_data = json.loads(data["source_post"])
        post = Post(id=post_data["id"], permalink=post_data.get("permalink"), timestamp=post_data.get("timestamp"))
    winner_set_at = None
    if data["winner_set_at"]:
        winner_set_at = datetime.datetime.fromisoformat(data["winner_set_at"])
    entrants = sorted((Entrant.from_dict(item) for item in json.loads(data["entrants"])), key=lambda e: e.slot)
    return Round(
        round_date=datetime.date.fromisoformat(data["round_date"]),
        mode=data["mode"],
        seed=data["seed"],
        claimed_total=data["claimed_total"],
        entrants=entrants,
        status=data["status"],
        source_post=post,
        fallback_reason=data["fallback_reason"],
        error_message=data["error_message"],
        winner_handle=data["winner_handle"],
        winner_slot=data["winner_slot"],
        winner_set_at=winner_set_at,
        generation=data["generation"],
    )
