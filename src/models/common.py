"""Shared types, enums, and base models used across the portal data layer."""

from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from pydantic import BaseModel

# A store row exactly as the tabular store returns it.
Record = dict[str, Any]

OWNER_FIELD_CANDIDATES: tuple[str, ...] = ("supabase_user_id", "user_id", "owner_id")


def utc_now() -> datetime:
    """Return the current UTC timestamp (timezone-aware)."""
    return datetime.now(tz=timezone.utc)


def row_id(record: Record) -> str | None:
    """Resolve a record's id (``Id`` first, then ``id``) as a string."""
    value = record.get("Id")
    if value is None:
        value = record.get("id")
    if value is None or value == "":
        return None
    return str(value)


def row_owner(record: Record, owner_fields: tuple[str, ...] = OWNER_FIELD_CANDIDATES) -> str | None:
    """Return the first non-empty owner field of a record, if any."""
    for name in owner_fields:
        value = record.get(name)
        if value:
            return str(value)
    return None


# --- Shared enums ---


class ScopeKind(StrEnum):
    """How an entity type relates to the space tenant boundary."""

    ROOT = "ROOT"
    CHILD = "CHILD"
    UNSCOPED = "UNSCOPED"


class CreateStatus(StrEnum):
    """Outcome of a create that may span two stores."""

    CREATED = "CREATED"
    CREATED_BUT_UNREGISTERED = "CREATED_BUT_UNREGISTERED"
    NOT_CREATED = "NOT_CREATED"


# --- Base model ---


class PortalBase(BaseModel):
    """Base model with common configuration for all portal Pydantic models."""

    model_config = {
        "populate_by_name": True,
        "protected_namespaces": (),
    }
