"""Candidate selection for routine profile refresh."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from datetime import datetime, timedelta, timezone
from itertools import islice

from profile_refresher.config import RefreshConfig
from profile_refresher.errors import SchedulerError, SelectionError
from profile_refresher.models import Contact, ContactKind

MAX_CONTACTS_TO_REFRESH = 50
MAX_AGE_TO_BE_CONSIDERED_ACTIVE = timedelta(days=30)
MAX_AGE_TO_BE_CONSIDERED_RECENTLY_REFRESHED = timedelta(days=1)

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def select_candidates(
    contacts: Sequence[Contact],
    local_identity_id: str,
    *,
    now: datetime | None = None,
    limit: int = MAX_CONTACTS_TO_REFRESH,
    active_window: timedelta = MAX_AGE_TO_BE_CONSIDERED_ACTIVE,
    recently_refreshed_window: timedelta = MAX_AGE_TO_BE_CONSIDERED_RECENTLY_REFRESHED,
) -> Iterator[Contact]:
    """Return a lazy, deduplicated iterator of at most `limit` contacts to refresh.

    Scanning stops as soon as `limit` contacts have been produced. Contacts
    with an expired profile credential have their credential cleared as they
    are emitted, so the iterator must be consumed before fetching starts.
    """
    if limit <= 0:
        raise SchedulerError("limit must be > 0.")
    reference = _normalize_dt(now) or datetime.now(timezone.utc)
    candidates = _iter_candidates(
        contacts,
        local_identity_id,
        now=reference,
        active_window=active_window,
        recently_refreshed_window=recently_refreshed_window,
    )
    return islice(candidates, limit)


class CandidateSelector:
    """Selection windows and batch cap bound from refresh config."""

    def __init__(self, config: RefreshConfig | None = None) -> None:
        resolved = config or RefreshConfig()
        self._limit = resolved.max_contacts_per_pass
        self._active_window = resolved.active_window
        self._recently_refreshed_window = resolved.recently_refreshed_window

    @property
    def limit(self) -> int:
        return self._limit

    def select(
        self,
        contacts: Sequence[Contact],
        local_identity_id: str,
        *,
        now: datetime | None = None,
    ) -> Iterator[Contact]:
        return select_candidates(
            contacts,
            local_identity_id,
            now=now,
            limit=self._limit,
            active_window=self._active_window,
            recently_refreshed_window=self._recently_refreshed_window,
        )


def _iter_candidates(
    contacts: Iterable[Contact],
    local_identity_id: str,
    *,
    now: datetime,
    active_window: timedelta,
    recently_refreshed_window: timedelta,
) -> Iterator[Contact]:
    ordered = sorted(contacts, key=_activity_sort_key)
    seen: set[str] = {local_identity_id}

    for contact in ordered:
        if contact.kind == ContactKind.INDIVIDUAL:
            if contact.has_profile_credential_expired(now) and (
                contact.id == local_identity_id or contact.id not in seen
            ):
                contact.clear_profile_credential()
                seen.add(contact.id)
                yield contact
                continue

            if (
                contact.id not in seen
                and _is_active(contact, now, active_window)
                and not _has_refreshed_recently(contact, now, recently_refreshed_window)
            ):
                seen.add(contact.id)
                yield contact
        elif contact.kind == ContactKind.GROUP:
            for member in contact.members:
                if member.id not in seen and not _has_refreshed_recently(
                    member, now, recently_refreshed_window
                ):
                    seen.add(member.id)
                    yield member
        else:
            raise SelectionError(
                f"Unexpected kind {contact.kind!r} for contact '{contact.id}'; expected one of "
                f"[{', '.join(kind.value for kind in ContactKind)}]."
            )


def _activity_sort_key(contact: Contact) -> tuple[bool, datetime]:
    # Missing activity sorts after every timestamp.
    active_at = _normalize_dt(contact.active_at)
    return active_at is None, active_at or _OLDEST


def _is_active(contact: Contact, now: datetime, window: timedelta) -> bool:
    active_at = _normalize_dt(contact.active_at)
    return active_at is not None and active_at + window > now


def _has_refreshed_recently(contact: Contact, now: datetime, window: timedelta) -> bool:
    fetched_at = _normalize_dt(contact.profile_last_fetched_at)
    return fetched_at is not None and fetched_at + window > now


def _normalize_dt(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
