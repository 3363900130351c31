"""Change detection for update events."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Dict, Iterable, List, Optional


# Past this nesting depth, values are compared with plain equality.
MAX_COMPARE_DEPTH = 64


def values_differ(before: Any, after: Any, depth: int = 0) -> bool:
    """
    Deep value comparison.

    Booleans never equal numbers (``True`` vs ``1``) and there is no null
    coalescing: ``None`` and ``""`` are different values. Structures nested
    beyond ``MAX_COMPARE_DEPTH`` fall back to ``!=``; if even that cannot
    finish they count as changed.
    """
    if depth >= MAX_COMPARE_DEPTH:
        try:
            return before != after
        except RecursionError:
            return True
    if isinstance(before, bool) or isinstance(after, bool):
        return type(before) is not type(after) or before != after
    if isinstance(before, Mapping) and isinstance(after, Mapping):
        if set(before.keys()) != set(after.keys()):
            return True
        return any(values_differ(before[key], after[key], depth + 1) for key in before)
    if isinstance(before, (list, tuple)) and isinstance(after, (list, tuple)):
        if len(before) != len(after):
            return True
        return any(values_differ(left, right, depth + 1) for left, right in zip(before, after))
    return before != after


def _candidate_fields(prior: Mapping, current: Mapping) -> List[Any]:
    fields = list(current.keys())
    fields.extend(key for key in prior.keys() if key not in current)
    return fields


def detect_change(
    prior: Optional[Mapping[str, Any]],
    current: Optional[Mapping[str, Any]],
    ignore: Iterable[str] = (),
    exclude: Iterable[str] = (),
) -> Optional[Dict[str, List[Any]]]:
    """
    Compute the diff between two snapshots of an entity.

    Args:
        prior: Field values before the mutation
        current: Field values after the mutation
        ignore: Fields whose changes are not audit-worthy
        exclude: Fields dropped from the returned diff

    Returns:
        None when no field outside ``ignore`` changed, otherwise
        ``{field: [before, after]}`` without excluded fields.
    """
    prior = prior or {}
    current = current or {}
    ignored = set(ignore)
    excluded = set(exclude)

    changed = [
        field
        for field in _candidate_fields(prior, current)
        if field not in ignored and values_differ(prior.get(field), current.get(field))
    ]
    if not changed:
        return None

    return {
        field: [prior.get(field), current.get(field)]
        for field in changed
        if field not in excluded
    }
