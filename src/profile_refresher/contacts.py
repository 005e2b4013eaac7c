"""JSON contact snapshots and the file-backed contact provider."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
import json
from pathlib import Path
from typing import Any

from profile_refresher.errors import SnapshotError
from profile_refresher.models import Contact, ContactKind

_TIMESTAMP_FIELDS = (
    "active_at",
    "profile_last_fetched_at",
    "profile_credential_expires_at",
)
_OPTIONAL_STRING_FIELDS = (
    "service_id",
    "phone_number",
    "profile_key",
    "profile_credential",
)


@dataclass(frozen=True)
class ContactSnapshot:
    contacts: tuple[Contact, ...]
    local_identity_id: str | None = None


class SnapshotContactProvider:
    """Contact provider that re-reads a JSON snapshot file on every call."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def list_all_contacts(self) -> Sequence[Contact]:
        return load_contact_snapshot(self._path).contacts

    def local_identity_id(self) -> str | None:
        return load_contact_snapshot(self._path).local_identity_id


def load_contact_snapshot(path: str | Path) -> ContactSnapshot:
    snapshot_path = Path(path).expanduser()
    try:
        text = snapshot_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise SnapshotError(f"Could not read contact snapshot '{snapshot_path}': {exc}.") from exc
    try:
        raw = json.loads(text)
    except ValueError as exc:
        raise SnapshotError(f"Contact snapshot '{snapshot_path}' is not valid JSON: {exc}.") from exc
    return parse_contact_snapshot(raw)


def parse_contact_snapshot(raw: Any) -> ContactSnapshot:
    """Build contacts from snapshot JSON, resolving group members by contact id."""
    if not isinstance(raw, Mapping):
        raise SnapshotError("Contact snapshot must be a JSON object.")

    local_identity_id = raw.get("local_identity_id")
    if local_identity_id is not None and not isinstance(local_identity_id, str):
        raise SnapshotError("'local_identity_id' must be a string or null.")

    entries = raw.get("contacts", [])
    if not isinstance(entries, list):
        raise SnapshotError("'contacts' must be an array.")

    contacts: list[Contact] = []
    member_refs: dict[str, tuple[str, ...]] = {}
    by_id: dict[str, Contact] = {}
    for index, entry in enumerate(entries):
        contact, members = _parse_contact(entry, index)
        if contact.id in by_id:
            raise SnapshotError(f"contacts[{index}] repeats contact id '{contact.id}'.")
        by_id[contact.id] = contact
        contacts.append(contact)
        if members:
            member_refs[contact.id] = members

    for group_id, member_ids in member_refs.items():
        resolved: list[Contact] = []
        for member_id in member_ids:
            member = by_id.get(member_id)
            if member is None:
                raise SnapshotError(f"Group '{group_id}' references unknown member '{member_id}'.")
            resolved.append(member)
        by_id[group_id].members = tuple(resolved)

    return ContactSnapshot(
        contacts=tuple(contacts),
        local_identity_id=local_identity_id or None,
    )


def contact_to_dict(contact: Contact) -> dict[str, Any]:
    kind = contact.kind.value if isinstance(contact.kind, ContactKind) else str(contact.kind)
    return {
        "id": contact.id,
        "kind": kind,
        "service_id": contact.service_id,
        "phone_number": contact.phone_number,
        "active_at": _dt_to_json(contact.active_at),
        "profile_last_fetched_at": _dt_to_json(contact.profile_last_fetched_at),
        "profile_key": contact.profile_key,
        "profile_credential": contact.profile_credential,
        "profile_credential_expires_at": _dt_to_json(contact.profile_credential_expires_at),
        "members": [member.id for member in contact.members],
    }


def _parse_contact(entry: Any, index: int) -> tuple[Contact, tuple[str, ...]]:
    if not isinstance(entry, Mapping):
        raise SnapshotError(f"contacts[{index}] must be an object, got {type(entry).__name__}.")

    contact_id = entry.get("id")
    if not isinstance(contact_id, str) or not contact_id.strip():
        raise SnapshotError(f"contacts[{index}].id must be a non-empty string.")
    raw_kind = entry.get("kind")
    if not isinstance(raw_kind, str) or not raw_kind.strip():
        raise SnapshotError(f"contacts[{index}].kind must be a non-empty string.")

    strings = {name: _optional_string(entry, name, index) for name in _OPTIONAL_STRING_FIELDS}
    timestamps = {name: _optional_timestamp(entry, name, index) for name in _TIMESTAMP_FIELDS}

    raw_members = entry.get("members", [])
    if not isinstance(raw_members, list) or not all(isinstance(value, str) for value in raw_members):
        raise SnapshotError(f"contacts[{index}].members must be an array of contact ids.")

    contact = Contact(
        id=contact_id,
        kind=_parse_kind(raw_kind),
        **strings,
        **timestamps,
    )
    return contact, tuple(raw_members)


def _parse_kind(raw_kind: str) -> ContactKind | str:
    # Unknown kinds pass through; selection rejects them when it reaches one.
    try:
        return ContactKind(raw_kind)
    except ValueError:
        return raw_kind


def _optional_string(entry: Mapping[str, Any], name: str, index: int) -> str | None:
    value = entry.get(name)
    if value is None:
        return None
    if not isinstance(value, str):
        raise SnapshotError(f"contacts[{index}].{name} must be a string or null.")
    return value or None


def _optional_timestamp(entry: Mapping[str, Any], name: str, index: int) -> datetime | None:
    value = entry.get(name)
    if value is None:
        return None
    if not isinstance(value, str):
        raise SnapshotError(f"contacts[{index}].{name} must be an ISO-8601 string or null.")
    raw = value.strip()
    if raw.endswith("Z"):
        raw = f"{raw[:-1]}+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError as exc:
        raise SnapshotError(f"contacts[{index}].{name} is not an ISO-8601 timestamp: {value!r}.") from exc
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _dt_to_json(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()
