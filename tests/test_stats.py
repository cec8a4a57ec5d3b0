from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from quiz_battle.stats import (
    LoggingStatisticsSink,
    RunStatistics,
    SqliteStatisticsSink,
    submit_statistics,
)


def _stats(user_id: str | None = "u-1") -> RunStatistics:
    return RunStatistics(
        user_id=user_id,
        game_id=3,
        normalized_score=87,
        time_spent_s=42,
        score=55,
        questions_presented=5,
        questions_correct=4,
        questions_incorrect=1,
        completed=True,
    )


class RecordingSink:
    def __init__(self) -> None:
        self.received: list[RunStatistics] = []

    def submit(self, stats: RunStatistics) -> None:
        self.received.append(stats)


class BrokenSink:
    def submit(self, stats: RunStatistics) -> None:
        raise ConnectionError("collector down")


def test_payload_shape() -> None:
    assert _stats().to_payload() == {
        "userId": "u-1",
        "gameId": 3,
        "normalizedScore": 87,
        "totalScale": 100,
        "timeSpentSeconds": 42,
    }


def test_submission_skipped_without_user() -> None:
    sink = RecordingSink()
    status = submit_statistics(sink, _stats(user_id=None))
    assert sink.received == []
    assert "no user" in status


def test_submission_delivers_to_sink() -> None:
    sink = RecordingSink()
    status = submit_statistics(sink, _stats())
    assert sink.received == [_stats()]
    assert status == "Statistics sent."
    assert submit_statistics(None, _stats()) == ""


def test_sink_failure_is_reported_not_raised(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.ERROR, logger="quiz_battle.stats"):
        status = submit_statistics(BrokenSink(), _stats())
    assert status == "Could not send statistics."
    assert "statistics submission failed" in caplog.text


def test_logging_sink_writes_json(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger="quiz_battle.stats"):
        LoggingStatisticsSink().submit(_stats())
    record = next(r for r in caplog.records if "final run statistics" in r.getMessage())
    payload = json.loads(record.getMessage().split(": ", 1)[1])
    assert payload["normalizedScore"] == 87
    assert payload["completed"] is True


def test_sqlite_sink_records_runs(tmp_path: Path) -> None:
    sink = SqliteStatisticsSink(tmp_path / "stats.sqlite3")
    sink.submit(_stats())
    sink.submit(_stats(user_id="u-2"))

    rows = sink.submitted_runs()
    assert [r["user_id"] for r in rows] == ["u-1", "u-2"]
    assert rows[0]["normalized_score"] == 87
    assert rows[0]["total_scale"] == 100
    assert rows[0]["completed"] == 1
