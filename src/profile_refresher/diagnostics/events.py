"""Refresh pass events written to and read back from a JSONL log."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
import json
from pathlib import Path
from typing import Any

from profile_refresher.errors import DiagnosticsError
from profile_refresher.models import PassOutcome

EVENT_SCHEMA_VERSION = "v1"
EVENT_TYPE = "refresh_pass"

STATUS_COMPLETED = "completed"
STATUS_SKIPPED = "skipped"
STATUS_FAILED = "failed"
_STATUSES = (STATUS_COMPLETED, STATUS_SKIPPED, STATUS_FAILED)

_COUNTER_FIELDS = ("attempted", "succeeded", "timed_out")


@dataclass(frozen=True)
class RefreshPassEvent:
    """One scheduler iteration as recorded in the event log."""

    run_id: str
    occurred_at: datetime
    status: str
    waited_seconds: float
    attempted: int = 0
    succeeded: int = 0
    timed_out: int = 0
    skipped_reason: str | None = None
    error: str | None = None

    @property
    def failed(self) -> int:
        return self.attempted - self.succeeded

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": EVENT_SCHEMA_VERSION,
            "event_type": EVENT_TYPE,
            "run_id": self.run_id,
            "occurred_at": self.occurred_at.isoformat(),
            "status": self.status,
            "waited_seconds": self.waited_seconds,
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "timed_out": self.timed_out,
            "skipped_reason": self.skipped_reason,
            "error": self.error,
        }


class JsonlEventLogger:
    """Append refresh pass events, one JSON object per line."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self._path

    def append(self, event: RefreshPassEvent) -> dict[str, Any]:
        validate_refresh_pass_event(event)
        record = event.to_dict()
        with self._path.open("a", encoding="utf-8") as stream:
            stream.write(json.dumps(record, sort_keys=True))
            stream.write("\n")
        return record


def build_refresh_pass_event(
    *,
    run_id: str,
    occurred_at: datetime,
    waited_seconds: float,
    outcome: PassOutcome | None = None,
    skipped_reason: str | None = None,
    error: str | None = None,
) -> RefreshPassEvent:
    """Summarize one iteration; an error wins over a skip, a skip over an outcome."""
    if error is not None:
        status = STATUS_FAILED
    elif skipped_reason is not None:
        status = STATUS_SKIPPED
    elif outcome is not None:
        status = STATUS_COMPLETED
    else:
        raise DiagnosticsError("A refresh pass event needs an outcome, a skipped reason or an error.")

    if occurred_at.tzinfo is None:
        occurred_at = occurred_at.replace(tzinfo=timezone.utc)
    counted = outcome if status == STATUS_COMPLETED else None
    event = RefreshPassEvent(
        run_id=run_id.strip(),
        occurred_at=occurred_at.astimezone(timezone.utc),
        status=status,
        waited_seconds=float(waited_seconds),
        attempted=counted.attempted if counted else 0,
        succeeded=counted.succeeded if counted else 0,
        timed_out=counted.timed_out if counted else 0,
        skipped_reason=skipped_reason,
        error=error,
    )
    validate_refresh_pass_event(event)
    return event


def validate_refresh_pass_event(event: RefreshPassEvent) -> None:
    if not event.run_id.strip():
        raise DiagnosticsError("run_id must be non-empty.")
    if event.status not in _STATUSES:
        raise DiagnosticsError(f"Unknown refresh pass status {event.status!r}.")
    if event.occurred_at.tzinfo is None:
        raise DiagnosticsError("occurred_at must include a timezone.")
    if event.waited_seconds < 0:
        raise DiagnosticsError("waited_seconds must be >= 0.")
    for name in _COUNTER_FIELDS:
        value = getattr(event, name)
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise DiagnosticsError(f"{name} must be a non-negative integer.")
    if event.succeeded > event.attempted:
        raise DiagnosticsError("succeeded cannot exceed attempted.")
    if event.timed_out > event.failed:
        raise DiagnosticsError("timed_out cannot exceed failed fetches.")
    if event.status == STATUS_FAILED and not event.error:
        raise DiagnosticsError("A failed pass must carry an error.")
    if event.status == STATUS_SKIPPED and not event.skipped_reason:
        raise DiagnosticsError("A skipped pass must carry a skipped reason.")


def parse_refresh_pass_event(raw: Any) -> RefreshPassEvent:
    if not isinstance(raw, Mapping):
        raise DiagnosticsError("Refresh event must be a JSON object.")
    if raw.get("schema_version") != EVENT_SCHEMA_VERSION:
        raise DiagnosticsError(
            f"Unsupported event schema {raw.get('schema_version')!r}; expected '{EVENT_SCHEMA_VERSION}'."
        )
    if raw.get("event_type") != EVENT_TYPE:
        raise DiagnosticsError(f"Unexpected event type {raw.get('event_type')!r}.")

    try:
        occurred_at = datetime.fromisoformat(str(raw["occurred_at"]))
        event = RefreshPassEvent(
            run_id=str(raw["run_id"]),
            occurred_at=occurred_at,
            status=str(raw["status"]),
            waited_seconds=float(raw["waited_seconds"]),
            attempted=raw.get("attempted", 0),
            succeeded=raw.get("succeeded", 0),
            timed_out=raw.get("timed_out", 0),
            skipped_reason=raw.get("skipped_reason"),
            error=raw.get("error"),
        )
    except KeyError as exc:
        raise DiagnosticsError(f"Refresh event is missing field {exc.args[0]!r}.") from exc
    except (TypeError, ValueError) as exc:
        raise DiagnosticsError(f"Refresh event has an invalid field: {exc}.") from exc
    validate_refresh_pass_event(event)
    return event


def read_refresh_events(path: str | Path, *, limit: int | None = None) -> list[RefreshPassEvent]:
    """Return logged events oldest first; with `limit`, only the most recent ones."""
    events_path = Path(path).expanduser()
    try:
        lines = events_path.read_text(encoding="utf-8").splitlines()
    except OSError as exc:
        raise DiagnosticsError(f"Could not read refresh events '{events_path}': {exc}.") from exc

    events: list[RefreshPassEvent] = []
    for number, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        try:
            raw = json.loads(line)
        except ValueError as exc:
            raise DiagnosticsError(f"{events_path}:{number} is not valid JSON: {exc}.") from exc
        try:
            events.append(parse_refresh_pass_event(raw))
        except DiagnosticsError as exc:
            raise DiagnosticsError(f"{events_path}:{number}: {exc}") from exc

    if limit is not None:
        return events[-limit:] if limit > 0 else []
    return events
