# src/worldlog/compaction/differ.py
"""Structural difference between a live entity state and its baseline.

extract_difference() keeps only what a live AttributeTree changes relative
to the baseline for its type. compact() additionally strips a fixed set of
volatile top-level keys that carry no audit value.

Comparison is by canonical JSON bytes (see worldlog.core.canonical), so
key order inside compounds never produces a difference.

Neither function mutates its inputs; baselines come straight from the
shared DefaultStateCache.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

import structlog

from worldlog.contracts import AttributeTree
from worldlog.core.canonical import diagnostic_length, values_identical
from worldlog.core.config import DEFAULT_REJECT_KEYS

logger = structlog.get_logger(__name__)

ENTITY_REJECT_KEYS: frozenset[str] = frozenset(DEFAULT_REJECT_KEYS)


def _is_compound_list(value: list[Any]) -> bool:
    return bool(value) and all(isinstance(item, Mapping) for item in value)


def _diff_value(live: Any, baseline: Any) -> tuple[bool, Any]:
    """Diff one value against its baseline counterpart.

    Returns:
        (changed, value_to_keep)
    """
    if values_identical(live, baseline):
        return False, None

    if isinstance(live, Mapping) and isinstance(baseline, Mapping):
        nested = extract_difference(live, baseline)
        return bool(nested), nested

    # Lists of compounds are diffed positionally; "{}" marks an unchanged element
    if (
        isinstance(live, list)
        and isinstance(baseline, list)
        and len(live) == len(baseline)
        and _is_compound_list(live)
        and _is_compound_list(baseline)
    ):
        elements = [extract_difference(item, base) for item, base in zip(live, baseline, strict=True)]
        return any(elements), elements

    return True, _detach(live)


def _detach(value: Any) -> Any:
    """Copy containers so the result never aliases the live tree."""
    if isinstance(value, Mapping):
        return {k: _detach(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [_detach(v) for v in value]
    return value


def extract_difference(live: Mapping[str, Any], baseline: Mapping[str, Any]) -> AttributeTree:
    """Return the parts of live that differ from baseline.

    For every key in live:
    - absent from baseline: kept
    - byte-identical to baseline: omitted
    - both compounds: recursed, kept only if the nested difference is non-empty
    - both equal-length lists of compounds: diffed element-wise
    - anything else that differs (scalars, scalar lists, type changes): live value kept

    Keys only present in baseline are not reported; the result describes
    state the live entity has, not state it lacks.

    Numeric type is not part of identity: a value that changes from 1 to 1.0
    is treated as unchanged and omitted.
    """
    result: AttributeTree = {}
    for key, value in live.items():
        if key not in baseline:
            result[key] = _detach(value)
            continue
        changed, kept = _diff_value(value, baseline[key])
        if changed:
            result[key] = kept
    return result


def strip_keys(tree: Mapping[str, Any], keys: Iterable[str]) -> AttributeTree:
    """Return a copy of tree without the given top-level keys."""
    rejected = frozenset(keys)
    return {key: value for key, value in tree.items() if key not in rejected}


def compact(
    live: Mapping[str, Any],
    baseline: Mapping[str, Any],
    reject_keys: Iterable[str] = ENTITY_REJECT_KEYS,
) -> AttributeTree:
    """Diff live against baseline, then strip reject_keys at the top level.

    Logs original and compacted serialized byte lengths at DEBUG. NaN and
    Infinity compare and count like any other value.
    """
    filtered = strip_keys(extract_difference(live, baseline), reject_keys)

    logger.debug(
        "Compacted entity state",
        original_bytes=diagnostic_length(live),
        compacted_bytes=diagnostic_length(filtered),
    )
    return filtered
