"""Refresh pass event logging."""

from .events import (
    EVENT_SCHEMA_VERSION,
    EVENT_TYPE,
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_SKIPPED,
    JsonlEventLogger,
    RefreshPassEvent,
    build_refresh_pass_event,
    parse_refresh_pass_event,
    read_refresh_events,
    validate_refresh_pass_event,
)

__all__ = [
    "EVENT_SCHEMA_VERSION",
    "EVENT_TYPE",
    "STATUS_COMPLETED",
    "STATUS_FAILED",
    "STATUS_SKIPPED",
    "JsonlEventLogger",
    "RefreshPassEvent",
    "build_refresh_pass_event",
    "parse_refresh_pass_event",
    "read_refresh_events",
    "validate_refresh_pass_event",
]
