"""Decoding of captured HTTP bodies before redaction."""

from __future__ import annotations

import json
from typing import Any, Optional
from urllib.parse import parse_qs


def decode_json_body(content: bytes, content_type: Optional[str]) -> Optional[Any]:
    """Decode a JSON body; anything else (or invalid JSON) yields None."""
    if not content or "application/json" not in (content_type or ""):
        return None
    try:
        return json.loads(content)
    except (ValueError, UnicodeDecodeError, RecursionError):
        return None


def decode_form_body(content: bytes) -> Optional[Any]:
    if not content:
        return None
    try:
        parsed = parse_qs(content.decode("utf-8"), keep_blank_values=True)
    except UnicodeDecodeError:
        return None
    return {key: values[0] if len(values) == 1 else values for key, values in parsed.items()} or None


def decode_request_body(content: bytes, content_type: Optional[str] = None) -> Optional[Any]:
    """
    Decode a request body for logging.

    With a known content type only JSON and urlencoded forms are decoded.
    Without one, JSON is tried first and form encoding second.
    """
    if not content:
        return None
    if content_type:
        if "application/json" in content_type:
            return decode_json_body(content, content_type)
        if "application/x-www-form-urlencoded" in content_type:
            return decode_form_body(content)
        return None
    try:
        return json.loads(content)
    except (ValueError, UnicodeDecodeError, RecursionError):
        return decode_form_body(content)
