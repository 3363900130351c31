"""
Canonical serialization of audit records.

The checksum is computed over bytes produced here, so any change to key
order, separators or number formatting invalidates every stored checksum.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import Mapping
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from audit_trail.config import settings
from audit_trail.core.redaction import REDACTION_MARKER

# Envelope field order is fixed; never sort it.
ENVELOPE_FIELDS = ("event", "message_data", "payload", "diff", "actor_id", "subjects")
SUBJECT_FIELDS = ("subject_type", "subject_id", "role")


def stable_json(value: Any) -> str:
    """Compact JSON keeping insertion order, unicode and float fractions."""
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"), allow_nan=False)


def _to_jsonable(value: Any, limit: int, depth: int = 0) -> Any:
    if isinstance(value, Mapping):
        if depth >= limit:
            return REDACTION_MARKER
        return {str(key): _to_jsonable(item, limit, depth + 1) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        if depth >= limit:
            return REDACTION_MARKER
        items = sorted(value, key=repr) if isinstance(value, (set, frozenset)) else value
        return [_to_jsonable(item, limit, depth + 1) for item in items]
    if isinstance(value, Enum):
        return _to_jsonable(value.value, limit, depth)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def normalize(value: Any, max_depth: Optional[int] = None) -> Optional[Any]:
    """
    Convert a host value into exactly the JSON form it will be stored as.

    Empty mappings and None both normalize to None, matching the nullable
    JSON columns they are written to. Containers nested deeper than
    ``max_depth`` (default ``AUDIT_REDACTION_MAX_DEPTH``) collapse to the
    redaction marker, at the same depth ``sanitize`` would cut them.
    """
    if value is None:
        return None
    limit = settings.AUDIT_REDACTION_MAX_DEPTH if max_depth is None else max_depth
    converted = _to_jsonable(value, limit)
    if isinstance(converted, dict) and not converted:
        return None
    # Round-trip so the result is what a JSON column hands back on read.
    return json.loads(stable_json(converted))


def canonical_subjects(subjects: Optional[Sequence[Mapping[str, Any]]]) -> List[Dict[str, Any]]:
    return [
        {field: subject.get(field) for field in SUBJECT_FIELDS}
        for subject in (subjects or [])
    ]


def canonicalize(
    event: Optional[str],
    message_data: Any = None,
    payload: Any = None,
    diff: Any = None,
    actor_id: Optional[str] = None,
    subjects: Optional[Sequence[Mapping[str, Any]]] = None,
) -> bytes:
    """
    Build the canonical envelope for an audit record.

    The three mapping fields are embedded as their own compact JSON strings,
    subjects as ``{subject_type, subject_id, role}`` objects in the order given.

    Returns:
        bytes: UTF-8 encoded envelope
    """
    envelope = {
        "event": event,
        "message_data": stable_json(message_data),
        "payload": stable_json(payload),
        "diff": stable_json(diff),
        "actor_id": actor_id,
        "subjects": canonical_subjects(subjects),
    }
    return stable_json(envelope).encode("utf-8")
