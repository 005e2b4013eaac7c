"""Scheduler collaborator interfaces."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from typing import Any, Protocol

from profile_refresher.models import Contact

ProfileFetcher = Callable[[str | None, str | None], Awaitable[Any]]


class ContactProvider(Protocol):
    def list_all_contacts(self) -> Sequence[Contact]:
        """Return a snapshot of every known contact."""

    def local_identity_id(self) -> str | None:
        """Return the contact id of the local identity, or None when unknown."""
