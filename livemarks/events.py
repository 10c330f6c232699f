"""Change events and record validation at the datastore boundary.

Rows arriving from the datastore (snapshot fetches and change-feed payloads)
are untrusted mappings. They are validated here once, into the immutable
records of :mod:`livemarks.model`, so the rest of the package never re-checks
field presence.

Change-feed payloads look like::

    {"eventType": "INSERT" | "UPDATE" | "DELETE", "new": {...} | None, "old": {...} | None}

and become one of :class:`Insert`, :class:`Update` or :class:`Delete`.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from datetime import datetime, timezone
from typing import Any, Dict, Generic, Literal, Mapping, Optional, Type, Union

from pydantic import AliasChoices, BaseModel, Field, TypeAdapter, ValidationError, field_validator

from .model import Bookmark, Folder, R, Reminder

_ADAPTERS: Dict[type, TypeAdapter] = {
    Bookmark: TypeAdapter(Bookmark),
    Folder: TypeAdapter(Folder),
    Reminder: TypeAdapter(Reminder),
}

_ID_FIELDS = ("id", "user_id", "folder_id", "parent_id", "bookmark_id")


class MalformedEvent(ValueError):
    """A row or change payload that does not validate."""


@dataclass(frozen=True)
class Insert(Generic[R]):
    record: R


@dataclass(frozen=True)
class Update(Generic[R]):
    record: R


@dataclass(frozen=True)
class Delete:
    id: str
    owner_id: Optional[str] = None


ChangeEvent = Union[Insert, Update, Delete]


class _Envelope(BaseModel):
    event_type: Literal["INSERT", "UPDATE", "DELETE"] = Field(
        validation_alias=AliasChoices("eventType", "event_type", "type")
    )
    new: Optional[Dict[str, Any]] = Field(None, validation_alias=AliasChoices("new", "record"))
    old: Optional[Dict[str, Any]] = Field(None, validation_alias=AliasChoices("old", "old_record"))

    @field_validator("event_type", mode="before")
    @classmethod
    def _upper(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v


def owner_of(event: ChangeEvent) -> Optional[str]:
    if isinstance(event, Delete):
        return event.owner_id
    return event.record.user_id


def event_id(event: ChangeEvent) -> str:
    if isinstance(event, Delete):
        return event.id
    return event.record.id


def parse_record(record_type: Type[R], row: Mapping[str, Any]) -> R:
    adapter = _ADAPTERS.get(record_type)
    if adapter is None:
        raise TypeError(f"unsupported record type: {record_type!r}")
    try:
        rec = adapter.validate_python(_prepare_row(row))
    except ValidationError as e:
        raise MalformedEvent(f"invalid {record_type.__name__} row: {e.error_count()} error(s)") from e
    # Timestamps without an offset are UTC; keep every datetime comparable.
    naive: Dict[str, datetime] = {}
    for f in fields(rec):
        v = getattr(rec, f.name)
        if isinstance(v, datetime) and v.tzinfo is None:
            naive[f.name] = v.replace(tzinfo=timezone.utc)
    return replace(rec, **naive) if naive else rec


def dump_record(record: Union[Bookmark, Folder]) -> Dict[str, Any]:
    """JSON-compatible dict for a record (datetimes as ISO strings, tags as a list)."""
    return _ADAPTERS[type(record)].dump_python(record, mode="json")


def parse_change(record_type: Type[R], payload: Mapping[str, Any]) -> ChangeEvent:
    try:
        env = _Envelope.model_validate(payload)
    except ValidationError as e:
        raise MalformedEvent(f"invalid change payload: {e.error_count()} error(s)") from e

    # The feed sends {} rather than null for the side that does not apply.
    new = env.new or None
    old = env.old or None

    if env.event_type == "INSERT":
        if new is None:
            raise MalformedEvent("INSERT without a new record")
        return Insert(parse_record(record_type, new))
    if env.event_type == "UPDATE":
        if new is None:
            raise MalformedEvent("UPDATE without a new record")
        return Update(parse_record(record_type, new))

    if old is None or old.get("id") in (None, ""):
        raise MalformedEvent("DELETE without an old record id")
    owner = old.get("user_id")
    return Delete(id=str(old["id"]), owner_id=str(owner) if owner not in (None, "") else None)


def _prepare_row(row: Mapping[str, Any]) -> Dict[str, Any]:
    if not isinstance(row, Mapping):
        raise MalformedEvent(f"row is not a mapping: {type(row).__name__}")
    out = dict(row)
    # Identifiers may be integer keys in some deployments.
    for k in _ID_FIELDS:
        v = out.get(k)
        if isinstance(v, int) and not isinstance(v, bool):
            out[k] = str(v)
    # Nullable columns that the records treat as always present.
    for k, empty in (("tags", ()), ("visit_count", 0), ("is_archived", False), ("is_favorite", False)):
        if k in out and out[k] is None:
            out[k] = empty
    return out
