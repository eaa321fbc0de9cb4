# src/lumberjack/registry.py
"""Object registry: change detection for domain-object snapshots.

``register_one(obj)`` accepts a mapping, dataclass, pydantic model or plain
object carrying a caller-stable ``id``. ``register_many({key: obj})``
registers one entry per key, with the key as the display name.

Field filtering keeps:
- numbers and booleans
- datetimes (stamped ``YYYY-MM-DDTHH:MM:SS.mmmZ`` in UTC) and dates
- strings of at most 1024 characters without line breaks
- plain nested dicts, filtered by the same rules

Everything else (lists, callables, long or multi-line strings, arbitrary
objects) is dropped. ``id`` and ``name`` never appear in ``fields``.

A SHA-256 checksum over the canonical JSON of name, id and fields is kept
per id; a registration whose checksum matches the cached one is suppressed.
A new or changed registration writes ``{name}_id`` into the ambient context.
"""

from __future__ import annotations

import dataclasses
import math
from collections.abc import Callable, Mapping
from datetime import UTC, date, datetime
from typing import Any

import structlog

from lumberjack.context import TraceContextStore
from lumberjack.contracts.errors import ValidationRejection
from lumberjack.contracts.events import RegisteredObject
from lumberjack.core.canonical import stable_hash

logger = structlog.get_logger(__name__)

MAX_FIELD_STRING_LENGTH = 1024
_MAX_NESTING = 8
# Integers outside this range cannot be hashed canonically (IEEE 754 safe range)
_MAX_SAFE_INTEGER = 2**53 - 1
_RESERVED_FIELDS = frozenset({"id", "name"})


def format_timestamp(value: datetime) -> str:
    """UTC ISO-8601 with millisecond precision and a ``Z`` suffix.

    Naive datetimes are assumed UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def _filter_value(value: Any, depth: int) -> tuple[bool, Any]:
    """Return (keep, normalized) for one field value."""
    if isinstance(value, bool):
        return True, value
    if isinstance(value, int):
        if abs(value) > _MAX_SAFE_INTEGER:
            return True, str(value)
        return True, value
    if isinstance(value, float):
        return math.isfinite(value), value
    if isinstance(value, datetime):
        return True, format_timestamp(value)
    if isinstance(value, date):
        return True, value.isoformat()
    if isinstance(value, str):
        keep = len(value) <= MAX_FIELD_STRING_LENGTH and "\n" not in value and "\r" not in value
        return keep, value
    if isinstance(value, dict) and depth < _MAX_NESTING:
        return True, filter_fields(value, depth + 1)
    return False, None


def filter_fields(attributes: Mapping[str, Any], depth: int = 0) -> dict[str, Any]:
    """Keep only exportable field values (see module docstring)."""
    fields: dict[str, Any] = {}
    for key, value in attributes.items():
        if not isinstance(key, str):
            continue
        keep, normalized = _filter_value(value, depth)
        if keep:
            fields[key] = normalized
    return fields


def _attributes_of(obj: Any) -> tuple[dict[str, Any], str | None]:
    """Return (attributes, fallback display name) for any supported object.

    Raises:
        ValidationRejection: If obj has no inspectable attributes.
    """
    if isinstance(obj, Mapping):
        return dict(obj), None
    fallback = type(obj).__name__.lower()
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: getattr(obj, f.name) for f in dataclasses.fields(obj)}, fallback
    model_dump = getattr(obj, "model_dump", None)
    if callable(model_dump):
        return dict(model_dump()), fallback
    try:
        attributes = vars(obj)
    except TypeError:
        raise ValidationRejection(f"Cannot register object of type {type(obj).__name__}") from None
    return {k: v for k, v in attributes.items() if not k.startswith("_")}, fallback


def build_registered_object(obj: Any, name_override: str | None = None) -> RegisteredObject:
    """Normalize a registration.

    Raises:
        ValidationRejection: If the object has no usable id.
    """
    attributes, fallback_name = _attributes_of(obj)

    raw_id = attributes.get("id")
    if raw_id is None or isinstance(raw_id, bool) or not isinstance(raw_id, str | int):
        raise ValidationRejection("Object must have an 'id' field (string or integer)")
    object_id = str(raw_id)
    if not object_id:
        raise ValidationRejection("Object id must not be empty")

    raw_name = attributes.get("name")
    name = name_override or (raw_name if isinstance(raw_name, str) and raw_name else None) or fallback_name

    fields = filter_fields({k: v for k, v in attributes.items() if k not in _RESERVED_FIELDS})
    return RegisteredObject(id=object_id, name=name, fields=fields)


def object_checksum(obj: RegisteredObject) -> str:
    return stable_hash({"name": obj.name, "id": obj.id, "fields": dict(obj.fields)})


class ObjectRegistry:
    """Gate registrations on checksum changes.

    Args:
        on_register: Receives each new or changed RegisteredObject
        context: Store that receives ``{name}_id`` keys
    """

    def __init__(self, on_register: Callable[[RegisteredObject], None], context: TraceContextStore) -> None:
        self._on_register = on_register
        self._context = context
        self._checksums: dict[str, str] = {}

    def register_one(self, obj: Any) -> RegisteredObject | None:
        """Register a single object.

        Returns:
            The accepted snapshot, or None when rejected or unchanged.
        """
        return self._register(obj, None)

    def register_many(self, objects: Mapping[str, Any]) -> list[RegisteredObject]:
        """Register one object per key, using the key as its name."""
        accepted = []
        for key, obj in objects.items():
            registered = self._register(obj, key)
            if registered is not None:
                accepted.append(registered)
        return accepted

    def _register(self, obj: Any, name_override: str | None) -> RegisteredObject | None:
        try:
            registered = build_registered_object(obj, name_override)
        except ValidationRejection as e:
            logger.debug("Object registration rejected", reason=str(e), name=name_override)
            return None

        checksum = object_checksum(registered)
        if self._checksums.get(registered.id) == checksum:
            return None
        self._checksums[registered.id] = checksum

        if registered.name:
            self._context.set(f"{registered.name}_id", registered.id)
        self._on_register(registered)
        return registered

    def clear(self) -> None:
        """Forget all cached checksums."""
        self._checksums.clear()

    def __len__(self) -> int:
        return len(self._checksums)
