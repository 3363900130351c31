"""Sensitive-field redaction for audit payloads, headers and bodies."""

from __future__ import annotations

import threading
from collections.abc import Mapping
from typing import Any, Dict, Iterable, List, Optional, Tuple

from audit_trail.config import settings

REDACTION_MARKER = "***"
HEADER_REDACTION_MARKER = "[REDACTED]"

SENSITIVE_HEADERS = frozenset(
    {
        "authorization",
        "proxy-authorization",
        "cookie",
        "set-cookie",
        "x-csrf-token",
        "x-xsrf-token",
        "x-api-key",
        "api-key",
    }
)


class SensitiveFieldRegistry:
    """Process-wide, append-only list of sensitive key patterns.

    Patterns are matched as case-insensitive substrings of a mapping key.
    Readers never take the lock: additions publish a fresh tuple.
    """

    def __init__(self, patterns: Iterable[str] = ()) -> None:
        self._lock = threading.Lock()
        self._patterns: Tuple[str, ...] = ()
        self.add(patterns)

    def add(self, patterns: Iterable[str]) -> None:
        with self._lock:
            current = list(self._patterns)
            for pattern in patterns:
                normalized = str(pattern).strip().lower()
                if normalized and normalized not in current:
                    current.append(normalized)
            self._patterns = tuple(current)

    def patterns(self) -> Tuple[str, ...]:
        return self._patterns

    def matches(self, key: Any) -> bool:
        lowered = str(key).lower()
        return any(pattern in lowered for pattern in self._patterns)

    def reset(self, patterns: Iterable[str] = ()) -> None:
        """Replace the registered patterns (test helper)."""
        with self._lock:
            self._patterns = ()
        self.add(patterns)


sensitive_fields = SensitiveFieldRegistry(settings.AUDIT_SENSITIVE_FIELDS)


def add_sensitive_fields(fields: Iterable[str]) -> None:
    """Register extra sensitive key patterns for the rest of the process."""
    sensitive_fields.add(fields)


def sanitize(
    value: Any,
    registry: Optional[SensitiveFieldRegistry] = None,
    max_depth: Optional[int] = None,
) -> Any:
    """
    Redact values whose key matches a sensitive pattern, at any depth.

    Non-mapping input is returned unchanged. Matching keys have their value
    replaced by the redaction marker without descending into it. Mappings
    found inside lists are sanitized as well; other list items are kept.
    The input is never mutated.

    Args:
        value: Arbitrary JSON-like value
        registry: Pattern registry (defaults to the process registry)
        max_depth: Nesting cap; deeper subtrees collapse to the marker

    Returns:
        Sanitized copy of ``value``
    """
    if not isinstance(value, Mapping):
        return value

    registry = registry or sensitive_fields
    limit = settings.AUDIT_REDACTION_MAX_DEPTH if max_depth is None else max_depth
    return _sanitize_mapping(value, registry, limit, 0)


def _sanitize_mapping(
    data: Mapping, registry: SensitiveFieldRegistry, limit: int, depth: int
) -> Any:
    if depth >= limit:
        return REDACTION_MARKER

    sanitized: Dict[Any, Any] = {}
    for key, item in data.items():
        if registry.matches(key):
            sanitized[key] = REDACTION_MARKER
        else:
            sanitized[key] = _sanitize_value(item, registry, limit, depth + 1)
    return sanitized


def _sanitize_value(item: Any, registry: SensitiveFieldRegistry, limit: int, depth: int) -> Any:
    if isinstance(item, Mapping):
        return _sanitize_mapping(item, registry, limit, depth)
    if isinstance(item, (list, tuple)):
        if depth >= limit:
            return REDACTION_MARKER
        return [_sanitize_value(element, registry, limit, depth + 1) for element in item]
    return item


def redact_headers(
    headers: Mapping[str, Any],
    exclude: Iterable[str] = (),
    sensitive: Iterable[str] = SENSITIVE_HEADERS,
) -> Dict[str, Any]:
    """
    Mask credential-bearing headers and drop headers stored elsewhere.

    Header names are compared case-insensitively; the original casing and
    value shape (string or list of strings) are preserved.
    """
    excluded = {name.lower() for name in exclude}
    masked = {name.lower() for name in sensitive}

    result: Dict[str, Any] = {}
    for name, value in headers.items():
        lowered = name.lower()
        if lowered in excluded:
            continue
        if lowered in masked:
            result[name] = [HEADER_REDACTION_MARKER] if isinstance(value, list) else HEADER_REDACTION_MARKER
        else:
            result[name] = value
    return result


def sanitize_body(body: Any) -> Optional[Any]:
    """Sanitize a decoded request/response body; empty bodies become None."""
    if body is None or body == {} or body == [] or body == "":
        return None
    if isinstance(body, list):
        return _sanitize_value(body, sensitive_fields, settings.AUDIT_REDACTION_MAX_DEPTH, 0)
    return sanitize(body)


def header_lists(items: Iterable[Tuple[str, str]]) -> Dict[str, List[str]]:
    """Group raw header pairs into ``{name: [values]}`` keeping first-seen order."""
    grouped: Dict[str, List[str]] = {}
    for name, value in items:
        grouped.setdefault(name, []).append(value)
    return grouped
