"""Request correlation: one reference id per inbound request scope."""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Iterator, Optional

MAX_REFERENCE_ID_LENGTH = 64


@dataclass
class AuditContext:
    """Correlation and actor information threaded into audit writes.

    The scope object is shared by every task and worker thread spawned while
    handling the request, so binding an actor late in a dependency is seen by
    the endpoint as well.
    """

    reference_id: Optional[str] = None
    actor_id: Optional[str] = None


_current_context: ContextVar[Optional[AuditContext]] = ContextVar("audit_context", default=None)


def new_reference_id() -> str:
    """Random 128-bit identifier in canonical UUID text form."""
    return str(uuid.uuid4())


def coerce_reference_id(value: Optional[str]) -> Optional[str]:
    """Accept a caller-supplied reference id if it is short, printable text."""
    if value is None:
        return None
    candidate = value.strip()
    if not candidate or len(candidate) > MAX_REFERENCE_ID_LENGTH:
        return None
    if not candidate.isprintable():
        return None
    return candidate


def resolve_reference_id(header_value: Optional[str]) -> str:
    """Reuse an incoming reference id or allocate a new one."""
    return coerce_reference_id(header_value) or new_reference_id()


def current_context() -> AuditContext:
    return _current_context.get() or AuditContext()


def get_reference_id() -> Optional[str]:
    return current_context().reference_id


def bind_actor(actor_id: Optional[str]) -> None:
    """Record the authenticated principal for the rest of the current scope."""
    value = None if actor_id is None else str(actor_id)
    context = _current_context.get()
    if context is None:
        _current_context.set(AuditContext(actor_id=value))
    else:
        context.actor_id = value


@contextmanager
def request_context(reference_id: str, actor_id: Optional[str] = None) -> Iterator[AuditContext]:
    """Open a correlation scope; nested code reads the same reference id."""
    context = AuditContext(
        reference_id=reference_id,
        actor_id=None if actor_id is None else str(actor_id),
    )
    token = _current_context.set(context)
    try:
        yield context
    finally:
        _current_context.reset(token)
