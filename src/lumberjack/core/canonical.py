# src/lumberjack/core/canonical.py
"""
Canonical JSON serialization for change detection.

The object registry decides whether a snapshot is new information by
comparing checksums. Checksums are SHA-256 over RFC 8785 (JCS) canonical
JSON, so key order never affects the result.

NaN and Infinity are rejected by rfc8785; the registry filters them out
before hashing.

json_safe() is the lenient counterpart used on caller-supplied log, event
and error properties: nothing it returns can fail to encode later.
"""

from __future__ import annotations

import base64
import hashlib
import math
from collections.abc import Mapping
from datetime import UTC, date, datetime
from typing import Any

import rfc8785


def canonical_json(obj: Any) -> str:
    """Produce canonical JSON.

    Args:
        obj: JSON-compatible data (dicts, lists, strings, numbers, booleans)

    Returns:
        Canonical JSON string

    Raises:
        rfc8785.CanonicalizationError: If obj contains non-finite floats
        rfc8785.IntegerDomainError: If an integer is outside the IEEE 754
            safe range
    """
    canonical_bytes = rfc8785.dumps(obj)
    return canonical_bytes.decode("utf-8")


def stable_hash(obj: Any) -> str:
    """Compute a stable SHA-256 hash of canonical JSON.

    Args:
        obj: Data to hash

    Returns:
        Hex-encoded SHA-256 digest
    """
    return hashlib.sha256(canonical_json(obj).encode("utf-8")).hexdigest()


CIRCULAR_MARKER = "[Circular]"


def _json_safe_value(obj: Any) -> Any:
    if obj is None or isinstance(obj, str | bool | int):
        return obj
    if isinstance(obj, float):
        # JSON has no NaN/Infinity; keep the information as text
        return obj if math.isfinite(obj) else str(obj)
    if isinstance(obj, datetime):
        if obj.tzinfo is None:
            obj = obj.replace(tzinfo=UTC)
        return obj.astimezone(UTC).isoformat()
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, bytes):
        return {"__bytes__": base64.b64encode(obj).decode("ascii")}
    return str(obj)


def json_safe(data: Any) -> Any:
    """Recursively convert data into values ``json.dumps`` always accepts.

    - Mapping keys become strings.
    - Lists, tuples, sets and frozensets become lists.
    - Non-finite floats become ``"nan"`` / ``"inf"`` / ``"-inf"``.
    - Datetimes become ISO strings (naive ones are taken as UTC).
    - Containers already being converted higher up the same path are
      replaced by ``"[Circular]"``.
    - Anything else becomes ``str(value)``.

    Args:
        data: Any caller-supplied value

    Returns:
        JSON-encodable copy of ``data``

    Raises:
        Exception: Whatever a value's ``__str__`` raises.
    """
    return _json_safe(data, set())


def _json_safe(data: Any, active: set[int]) -> Any:
    if isinstance(data, Mapping | list | tuple | set | frozenset):
        marker = id(data)
        if marker in active:
            return CIRCULAR_MARKER
        active.add(marker)
        try:
            if isinstance(data, Mapping):
                return {_json_safe_key(k): _json_safe(v, active) for k, v in data.items()}
            return [_json_safe(v, active) for v in data]
        finally:
            active.discard(marker)
    return _json_safe_value(data)


def _json_safe_key(key: Any) -> str:
    if isinstance(key, str):
        return key
    value = _json_safe_value(key)
    return value if isinstance(value, str) else str(key)
