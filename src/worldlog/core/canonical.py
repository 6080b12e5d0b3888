# src/worldlog/core/canonical.py
"""
Canonical JSON serialization for byte-level state comparison.

Two-phase approach:
1. Normalize: Convert datetime/bytes/Decimal/tuple values and out-of-range ints to JSON-safe primitives (our code)
2. Serialize: Produce deterministic JSON per RFC 8785/JCS (rfc8785 package)

Two values are "byte-identical" when their canonical forms are equal. This
is what the state differencer uses, so key order inside compounds never
produces a spurious difference.

IMPORTANT: NaN and Infinity are strictly REJECTED by canonical_bytes(), not
silently converted. Comparison and size diagnostics (values_identical,
serialized_length) tag them as {"__float__": "NaN"} instead, so entity
state containing them still diffs.
"""

from __future__ import annotations

import base64
import math
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

import rfc8785

# Largest integer an IEEE 754 double represents exactly
_MAX_SAFE_INTEGER = 2**53 - 1


def _non_finite_tag(obj: float | Decimal) -> dict[str, str]:
    is_nan = obj.is_nan() if isinstance(obj, Decimal) else math.isnan(obj)
    if is_nan:
        return {"__float__": "NaN"}
    return {"__float__": "Infinity" if obj > 0 else "-Infinity"}


def _normalize_value(obj: Any, *, tag_non_finite: bool = False) -> Any:
    """Convert a single value to a JSON-safe primitive.

    Raises:
        ValueError: If value is a non-finite float or Decimal and tag_non_finite is False
    """
    if isinstance(obj, float):
        if math.isnan(obj) or math.isinf(obj):
            if tag_non_finite:
                return _non_finite_tag(obj)
            raise ValueError(f"Cannot canonicalize non-finite float: {obj}. Use None for missing values, not NaN.")
        return obj

    if obj is None or isinstance(obj, str | bool):
        return obj

    if isinstance(obj, int):
        # 64-bit longs (UUID halves, seeds) exceed the RFC 8785 integer domain
        if abs(obj) > _MAX_SAFE_INTEGER:
            return {"__int__": str(obj)}
        return obj

    if isinstance(obj, datetime):
        if obj.tzinfo is None:
            obj = obj.replace(tzinfo=UTC)
        return obj.astimezone(UTC).isoformat()

    if isinstance(obj, bytes):
        return {"__bytes__": base64.b64encode(obj).decode("ascii")}

    if isinstance(obj, Decimal):
        if not obj.is_finite():
            if tag_non_finite:
                return _non_finite_tag(obj)
            raise ValueError(f"Cannot canonicalize non-finite Decimal: {obj}. Use None for missing values, not NaN/Infinity.")
        return str(obj)

    return obj



def _normalize_for_canonical(data: Any, *, tag_non_finite: bool = False) -> Any:
    """Recursively normalize a data structure for canonical JSON."""
    if isinstance(data, dict):
        return {k: _normalize_for_canonical(v, tag_non_finite=tag_non_finite) for k, v in data.items()}
    if isinstance(data, list | tuple):
        return [_normalize_for_canonical(v, tag_non_finite=tag_non_finite) for v in data]
    return _normalize_value(data, tag_non_finite=tag_non_finite)


def canonical_bytes(obj: Any) -> bytes:
    """Produce canonical JSON as UTF-8 bytes.

    Raises:
        ValueError: If data contains NaN, Infinity, or other non-finite values
        TypeError: If data contains types that cannot be serialized
    """
    normalized = _normalize_for_canonical(obj)
    result: bytes = rfc8785.dumps(normalized)
    return result


def canonical_json(obj: Any) -> str:
    """Produce canonical JSON (no whitespace, sorted keys)."""
    return canonical_bytes(obj).decode("utf-8")


def _comparison_bytes(obj: Any) -> bytes:
    """Canonical bytes with non-finite numbers tagged rather than rejected."""
    result: bytes = rfc8785.dumps(_normalize_for_canonical(obj, tag_non_finite=True))
    return result


def serialized_length(obj: Any) -> int:
    """UTF-8 byte length of the canonical form.

    Counts four-byte characters as four bytes, which is what a utf8mb4
    column will actually store. NaN and Infinity are counted by their
    tagged form.
    """
    return len(_comparison_bytes(obj))


def values_identical(a: Any, b: Any) -> bool:
    """Whether two values have byte-identical canonical forms.

    Note that 1 and 1.0 are identical under RFC 8785 while True and 1 are not.
    NaN is identical to NaN, and a NaN never matches a finite value.
    """
    return _comparison_bytes(a) == _comparison_bytes(b)


def diagnostic_length(obj: Any) -> int | None:
    """serialized_length() for log fields; None when obj has no canonical form."""
    try:
        return serialized_length(obj)
    except (TypeError, ValueError):
        return None
