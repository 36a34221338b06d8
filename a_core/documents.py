# a_core/documents.py
from __future__ import annotations

from datetime import datetime, timezone as dt_timezone
from typing import Any, ClassVar, FrozenSet, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

EPOCH = datetime(1970, 1, 1, tzinfo=dt_timezone.utc)


def now_iso() -> str:
    """
    Current UTC time as an ISO-8601 string with millisecond precision and a
    trailing 'Z' (same shape JavaScript's toISOString() produces).

    Fixed width, so string order is time order and Firestore can
    order_by() on it directly.
    """
    now = datetime.now(dt_timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso(value: Any) -> Optional[datetime]:
    """Parse a stored timestamp (ISO string or datetime) into an aware datetime."""
    if not value:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=dt_timezone.utc)
    return dt


def drop_none(data: dict) -> dict:
    """Firestore rejects undefined values; we never write None for omitted fields."""
    return {k: v for k, v in (data or {}).items() if v is not None}


class FirestoreDocument(BaseModel):
    """
    Base for everything we read from / write to Firestore.

    Attributes are snake_case in Python, camelCase in the stored document.
    Unknown keys written by other clients are ignored.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    # Fields that live in the document path, not in the document body
    path_fields: ClassVar[FrozenSet[str]] = frozenset({"id"})

    @classmethod
    def from_snapshot(cls, snap, **extra):
        data = snap.to_dict() or {}
        return cls.model_validate({**data, **extra, "id": snap.id})

    def to_firestore(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True, exclude=set(self.path_fields))

    def to_api(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")
