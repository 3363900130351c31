"""HMAC-SHA256 integrity checksums for audit records"""

from __future__ import annotations

import hashlib
import hmac
from typing import Any, Dict, Mapping, Optional

from audit_trail.config import settings
from audit_trail.core.canonical import canonicalize
from audit_trail.core.exceptions import ConfigurationError


def _resolve_secret(secret: Optional[str]) -> bytes:
    key = secret if secret is not None else settings.AUDIT_KEY
    if not key:
        raise ConfigurationError("AUDIT_KEY is not configured; audit checksums cannot be computed")
    return key.encode("utf-8")


def compute_checksum(record: Mapping[str, Any], secret: Optional[str] = None) -> str:
    """
    Compute the checksum of an audit record.

    Args:
        record: Mapping with event, message_data, payload, diff, actor_id, subjects
        secret: HMAC key, defaults to settings.AUDIT_KEY

    Returns:
        str: Lowercase hex HMAC-SHA256 digest

    Raises:
        ConfigurationError: If no secret is configured
    """
    key = _resolve_secret(secret)
    message = canonicalize(
        record.get("event"),
        record.get("message_data"),
        record.get("payload"),
        record.get("diff"),
        record.get("actor_id"),
        record.get("subjects"),
    )
    return hmac.new(key, message, hashlib.sha256).hexdigest()


def verify_checksum(record: Mapping[str, Any], expected: Optional[str], secret: Optional[str] = None) -> bool:
    """
    Recompute and compare a checksum in constant time.

    A missing expected checksum never verifies.
    """
    computed = compute_checksum(record, secret)
    if not expected:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), computed.encode("utf-8"))


def envelope_from_event(event: Any) -> Dict[str, Any]:
    """Rebuild the checksum envelope from a stored AuditEvent row."""
    subjects = sorted(event.subjects, key=lambda subject: subject.id)
    return {
        "event": event.event,
        "message_data": event.message_data,
        "payload": event.payload,
        "diff": event.diff,
        "actor_id": event.actor_id,
        "subjects": [subject.to_dict() for subject in subjects],
    }
