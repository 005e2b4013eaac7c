"""Data model contracts for cross-module use."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class ContactKind(str, Enum):
    INDIVIDUAL = "individual"
    GROUP = "group"


@dataclass(eq=False)
class Contact:
    """A known contact as seen by the refresher.

    Instances are shared references owned by the contact provider. Selection
    mutates the credential fields in place, so identity (not value) equality
    is kept.
    """

    id: str
    kind: ContactKind | str
    service_id: str | None = None
    phone_number: str | None = None
    active_at: datetime | None = None
    profile_last_fetched_at: datetime | None = None
    profile_key: str | None = None
    profile_credential: str | None = None
    profile_credential_expires_at: datetime | None = None
    members: tuple[Contact, ...] = ()

    def has_profile_credential_expired(self, now: datetime | None = None) -> bool:
        """Return True when a held profile key lacks a usable credential."""
        if not self.profile_key:
            return False
        if not self.profile_credential:
            return True
        if self.profile_credential_expires_at is None:
            return True
        return _as_utc(self.profile_credential_expires_at) <= _as_utc(now or datetime.now(timezone.utc))

    def clear_profile_credential(self) -> None:
        self.profile_credential = None
        self.profile_credential_expires_at = None

    def id_for_logging(self) -> str:
        if self.kind == ContactKind.GROUP:
            return f"group({_redact(self.id)})"
        identifier = self.service_id or self.phone_number
        if identifier:
            return f"{_redact(identifier)} ({self.id})"
        return f"[unknown] ({self.id})"


@dataclass(frozen=True)
class PassOutcome:
    attempted: int = 0
    succeeded: int = 0
    timed_out: int = 0
    finished_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def failed(self) -> int:
        return self.attempted - self.succeeded


def _redact(value: str) -> str:
    if len(value) <= 3:
        return "[REDACTED]"
    return f"[REDACTED]{value[-3:]}"


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
