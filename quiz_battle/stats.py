"""End-of-run statistics and the sinks that collect them.

Submission is fire-and-forget from the battle's point of view: a failing
sink is logged and reported as a status message, never raised.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from .scoring import TOTAL_SCALE

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


@dataclass(frozen=True, slots=True)
class RunStatistics:
    user_id: str | None
    game_id: int
    normalized_score: int
    time_spent_s: int
    score: int
    questions_presented: int
    questions_correct: int
    questions_incorrect: int
    completed: bool
    total_scale: int = TOTAL_SCALE

    def to_payload(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "gameId": int(self.game_id),
            "normalizedScore": int(self.normalized_score),
            "totalScale": int(self.total_scale),
            "timeSpentSeconds": int(self.time_spent_s),
        }


class StatisticsSink(Protocol):
    def submit(self, stats: RunStatistics) -> None: ...


class LoggingStatisticsSink:
    """Writes the final statistics to the log as JSON."""

    def __init__(self, *, level: int = logging.INFO) -> None:
        self._level = level

    def submit(self, stats: RunStatistics) -> None:
        summary = {
            **stats.to_payload(),
            "score": stats.score,
            "correct": stats.questions_correct,
            "incorrect": stats.questions_incorrect,
            "completed": stats.completed,
        }
        logger.log(self._level, "final run statistics: %s", json.dumps(summary, sort_keys=True))


class SqliteStatisticsSink:
    """Records one row per finished run in a local sqlite collector."""

    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path)

    def submit(self, stats: RunStatistics) -> None:
        conn = open_db(self._db_path)
        try:
            _insert_run(conn=conn, stats=stats)
        finally:
            conn.close()

    def submitted_runs(self) -> list[dict[str, Any]]:
        conn = open_db(self._db_path)
        try:
            conn.row_factory = sqlite3.Row
            rows = conn.execute("SELECT * FROM run_stats ORDER BY id").fetchall()
            return [dict(r) for r in rows]
        finally:
            conn.close()


def open_db(path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(path)
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    _migrate(conn)
    return conn


def _utc_now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(time.time()))


def _migrate(conn: sqlite3.Connection) -> None:
    row = conn.execute("PRAGMA user_version;").fetchone()
    ver = int(row[0]) if row else 0
    if ver >= SCHEMA_VERSION:
        return

    with conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS run_stats (
                id INTEGER PRIMARY KEY,
                user_id TEXT NOT NULL,
                game_id INTEGER NOT NULL,
                normalized_score INTEGER NOT NULL,
                total_scale INTEGER NOT NULL,
                time_spent_s INTEGER NOT NULL,
                score INTEGER NOT NULL,
                presented INTEGER NOT NULL,
                correct INTEGER NOT NULL,
                incorrect INTEGER NOT NULL,
                completed INTEGER NOT NULL,
                submitted_at_utc TEXT NOT NULL
            );
            """
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_run_stats_user ON run_stats(user_id, game_id);")
        conn.execute(f"PRAGMA user_version={SCHEMA_VERSION};")


def _insert_run(*, conn: sqlite3.Connection, stats: RunStatistics) -> int:
    with conn:
        cur = conn.execute(
            """
            INSERT INTO run_stats(
                user_id, game_id, normalized_score, total_scale, time_spent_s,
                score, presented, correct, incorrect, completed, submitted_at_utc
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                str(stats.user_id),
                int(stats.game_id),
                int(stats.normalized_score),
                int(stats.total_scale),
                int(stats.time_spent_s),
                int(stats.score),
                int(stats.questions_presented),
                int(stats.questions_correct),
                int(stats.questions_incorrect),
                1 if stats.completed else 0,
                _utc_now_iso(),
            ),
        )
    return int(cur.lastrowid)


def submit_statistics(sink: StatisticsSink | None, stats: RunStatistics) -> str:
    """Hand statistics to a sink and return a short status message for the UI."""

    if stats.user_id is None:
        logger.info("no user id; skipping statistics submission")
        return "Statistics not sent (no user)."
    if sink is None:
        return ""
    try:
        sink.submit(stats)
    except Exception:
        logger.exception("statistics submission failed")
        return "Could not send statistics."
    logger.info("statistics submitted for user %s (score %d/%d)", stats.user_id, stats.normalized_score, stats.total_scale)
    return "Statistics sent."
