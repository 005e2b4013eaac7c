"""Refresh pass event building, validation and JSONL round trips."""

from __future__ import annotations

from datetime import datetime, timezone
import json
from pathlib import Path

import pytest

from profile_refresher.diagnostics.events import (
    EVENT_SCHEMA_VERSION,
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_SKIPPED,
    JsonlEventLogger,
    RefreshPassEvent,
    build_refresh_pass_event,
    parse_refresh_pass_event,
    read_refresh_events,
)
from profile_refresher.errors import DiagnosticsError
from profile_refresher.models import PassOutcome

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def test_completed_pass_carries_outcome_counters() -> None:
    event = build_refresh_pass_event(
        run_id=" refresh-1 ",
        occurred_at=NOW,
        waited_seconds=0,
        outcome=PassOutcome(attempted=5, succeeded=3, timed_out=1),
    )

    assert event.status == STATUS_COMPLETED
    assert event.run_id == "refresh-1"
    assert (event.attempted, event.succeeded, event.failed, event.timed_out) == (5, 3, 2, 1)
    assert event.to_dict()["schema_version"] == EVENT_SCHEMA_VERSION


def test_error_wins_over_skip_and_zeroes_counters() -> None:
    failed = build_refresh_pass_event(
        run_id="r",
        occurred_at=NOW,
        waited_seconds=60,
        outcome=PassOutcome(attempted=1, succeeded=1),
        error="StoreError: database is locked",
    )
    skipped = build_refresh_pass_event(
        run_id="r",
        occurred_at=NOW,
        waited_seconds=0,
        skipped_reason="too_soon",
    )

    assert failed.status == STATUS_FAILED
    assert failed.attempted == 0
    assert skipped.status == STATUS_SKIPPED
    assert skipped.skipped_reason == "too_soon"


def test_naive_occurred_at_is_read_as_utc() -> None:
    event = build_refresh_pass_event(
        run_id="r",
        occurred_at=datetime(2026, 3, 1, 12, 0),
        waited_seconds=0,
        outcome=PassOutcome(),
    )
    assert event.to_dict()["occurred_at"] == "2026-03-01T12:00:00+00:00"


def test_event_needs_something_to_report() -> None:
    with pytest.raises(DiagnosticsError, match="needs an outcome"):
        build_refresh_pass_event(run_id="r", occurred_at=NOW, waited_seconds=0)


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"run_id": " "}, "run_id"),
        ({"status": "partial"}, "Unknown refresh pass status"),
        ({"waited_seconds": -1.0}, "waited_seconds"),
        ({"attempted": -1}, "attempted"),
        ({"attempted": 1, "succeeded": 2}, "succeeded cannot exceed"),
        ({"attempted": 2, "succeeded": 1, "timed_out": 2}, "timed_out cannot exceed"),
        ({"status": STATUS_FAILED}, "must carry an error"),
        ({"status": STATUS_SKIPPED}, "must carry a skipped reason"),
    ],
)
def test_logger_rejects_inconsistent_events(tmp_path: Path, overrides: dict[str, object], message: str) -> None:
    fields: dict[str, object] = {
        "run_id": "r",
        "occurred_at": NOW,
        "status": STATUS_COMPLETED,
        "waited_seconds": 0.0,
    }
    fields.update(overrides)
    logger = JsonlEventLogger(tmp_path / "events.jsonl")

    with pytest.raises(DiagnosticsError, match=message):
        logger.append(RefreshPassEvent(**fields))

    assert not logger.path.exists()


def test_logged_events_read_back_most_recent_last(tmp_path: Path) -> None:
    logger = JsonlEventLogger(tmp_path / "nested" / "events.jsonl")
    for attempted in (1, 2, 3):
        logger.append(
            build_refresh_pass_event(
                run_id="r",
                occurred_at=NOW,
                waited_seconds=0,
                outcome=PassOutcome(attempted=attempted, succeeded=attempted),
            )
        )

    everything = read_refresh_events(logger.path)
    recent = read_refresh_events(logger.path, limit=2)

    assert [event.attempted for event in everything] == [1, 2, 3]
    assert [event.attempted for event in recent] == [2, 3]
    assert everything[0].occurred_at == NOW


def test_parse_rejects_other_schema_versions_and_types() -> None:
    record = build_refresh_pass_event(
        run_id="r", occurred_at=NOW, waited_seconds=0, outcome=PassOutcome()
    ).to_dict()

    with pytest.raises(DiagnosticsError, match="Unsupported event schema"):
        parse_refresh_pass_event({**record, "schema_version": "v2"})
    with pytest.raises(DiagnosticsError, match="Unexpected event type"):
        parse_refresh_pass_event({**record, "event_type": "debug"})
    with pytest.raises(DiagnosticsError, match="missing field 'status'"):
        parse_refresh_pass_event({key: value for key, value in record.items() if key != "status"})


def test_read_reports_line_of_bad_record(tmp_path: Path) -> None:
    path = tmp_path / "events.jsonl"
    good = build_refresh_pass_event(
        run_id="r", occurred_at=NOW, waited_seconds=0, outcome=PassOutcome()
    ).to_dict()
    path.write_text(json.dumps(good) + "\n{broken\n", encoding="utf-8")

    with pytest.raises(DiagnosticsError, match=r"events\.jsonl:2"):
        read_refresh_events(path)


def test_read_reports_missing_file(tmp_path: Path) -> None:
    with pytest.raises(DiagnosticsError, match="Could not read refresh events"):
        read_refresh_events(tmp_path / "missing.jsonl")
