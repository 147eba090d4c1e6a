# src/chunkwise/core/canonical.py
"""
Canonical JSON serialization for deterministic hashing.

Two-phase approach:
1. Normalize: Convert datetimes, Decimals, bytes, sets and tuples to
   JSON-safe primitives (our code)
2. Serialize: Produce deterministic JSON per RFC 8785/JCS (rfc8785 package)

Used for RunIdentity keys: the same name and parameters must hash to the
same key no matter how the parameter mapping was built.

IMPORTANT: NaN and Infinity are strictly REJECTED, not silently converted.
A run identity that depends on a NaN parameter is not reproducible.
"""

from __future__ import annotations

import base64
import hashlib
import json
import math
from collections.abc import Mapping
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any

import rfc8785

from chunkwise.contracts import RunIdentity

# Version string for the identity hash scheme
CANONICAL_VERSION = "sha256-rfc8785-v1"


def _normalize_value(obj: Any) -> Any:
    """Convert a single value to a JSON-safe primitive.

    Raises:
        ValueError: If value is a non-finite float or Decimal
    """
    if isinstance(obj, float):
        if math.isnan(obj) or math.isinf(obj):
            raise ValueError(f"Cannot canonicalize non-finite float: {obj}. Use None for missing values, not NaN.")
        return obj

    if obj is None or isinstance(obj, str | int | bool):
        return obj

    if isinstance(obj, datetime):
        if obj.tzinfo is None:
            obj = obj.replace(tzinfo=UTC)
        return obj.astimezone(UTC).isoformat()

    if isinstance(obj, date):
        return obj.isoformat()

    if isinstance(obj, bytes):
        return {"__bytes__": base64.b64encode(obj).decode("ascii")}

    if isinstance(obj, Decimal):
        if not obj.is_finite():
            raise ValueError(f"Cannot canonicalize non-finite Decimal: {obj}. Use None for missing values, not NaN/Infinity.")
        return str(obj)

    return obj


def _normalize_for_canonical(data: Any) -> Any:
    """Recursively normalize a data structure for canonical JSON."""
    if isinstance(data, Mapping):
        return {str(k): _normalize_for_canonical(v) for k, v in data.items()}
    if isinstance(data, list | tuple):
        return [_normalize_for_canonical(v) for v in data]
    if isinstance(data, set | frozenset):
        # Sets have no order; sort their canonical encodings
        return sorted((_normalize_for_canonical(v) for v in data), key=lambda v: rfc8785.dumps(v))
    return _normalize_value(data)


def canonical_json(obj: Any) -> str:
    """Produce canonical JSON for hashing.

    Returns:
        Canonical JSON string (no whitespace, sorted keys)

    Raises:
        ValueError: If data contains NaN, Infinity, or other non-finite values
        TypeError: If data contains types that cannot be serialized
    """
    normalized = _normalize_for_canonical(obj)
    result: bytes = rfc8785.dumps(normalized)
    return result.decode("utf-8")


def stable_hash(obj: Any) -> str:
    """SHA-256 hex digest of canonical JSON."""
    canonical = canonical_json(obj)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def identity_key(name: str, params: Mapping[str, Any]) -> str:
    """Deterministic deduplication key for (work unit name, parameters)."""
    return stable_hash({"name": name, "params": dict(params)})


def make_identity(name: str, params: Mapping[str, Any] | None = None) -> RunIdentity:
    """Resolve a RunIdentity from a name and optional parameters."""
    resolved = dict(params) if params is not None else {}
    return RunIdentity(name=name, params=resolved, key=identity_key(name, resolved))


def snapshot_payload(record: Any) -> str:
    """JSON snapshot of a record for SkipRecord storage.

    Records are external data: a snapshot must never fail. Anything that
    cannot be canonicalized (NaN, custom objects) falls back to repr().
    """
    try:
        return canonical_json(record)
    except (TypeError, ValueError):
        return json.dumps({"__repr__": repr(record)})
