"""
Entity-level audit wrapper.

Hosts describe each audited entity type with an ``AuditableConfig`` and call
the matching ``ModelAuditor`` from their own create/update/delete paths.
Parent relationships are declared explicitly as ``ParentSubject`` entries.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Union

from sqlalchemy.orm import Session

from audit_trail.config import settings
from audit_trail.core.changes import detect_change
from audit_trail.core.correlation import AuditContext
from audit_trail.services.audit_writer import audit_writer

logger = logging.getLogger(__name__)

AUDIT_ACTIONS = ("created", "updated", "deleted")


@dataclass(frozen=True)
class ParentSubject:
    """Foreign-key field whose value names a parent subject of the entity."""

    field: str
    subject_type: str
    role: str = "parent"


@dataclass
class AuditableConfig:
    """Per-entity audit settings."""

    subject_type: str
    event_prefix: Optional[str] = None
    exclude: Optional[Sequence[str]] = None
    ignore_changes: Optional[Sequence[str]] = None
    # ["name"] or {"email": "contact.email_masked"}
    message_fields: Union[Sequence[str], Mapping[str, str]] = field(default_factory=list)
    events: Sequence[str] = AUDIT_ACTIONS
    parents: Sequence[ParentSubject] = field(default_factory=list)
    key_field: str = "id"
    level: Optional[int] = None

    def resolved_prefix(self) -> str:
        if self.event_prefix:
            return self.event_prefix
        name = self.subject_type
        if name.endswith("ies"):
            return name[:-3] + "y"
        return name[:-1] if name.endswith("s") else name

    def resolved_exclude(self) -> List[str]:
        return list(settings.AUDIT_DEFAULT_EXCLUDE if self.exclude is None else self.exclude)

    def resolved_ignore(self) -> List[str]:
        return list(
            settings.AUDIT_DEFAULT_IGNORE_CHANGES if self.ignore_changes is None else self.ignore_changes
        )


def lookup_path(data: Any, path: str) -> Any:
    """Resolve a dotted path through nested mappings or attributes."""
    current = data
    for part in path.split("."):
        if current is None:
            return None
        if isinstance(current, Mapping):
            current = current.get(part)
        else:
            current = getattr(current, part, None)
    return current


class ModelAuditor:
    """Turn entity lifecycle calls into audit events."""

    def __init__(self, config: AuditableConfig, writer=audit_writer) -> None:
        self.config = config
        self.writer = writer
        name = config.subject_type
        self._level_override: ContextVar[Optional[int]] = ContextVar(f"audit_level:{name}", default=None)
        self._event_type_override: ContextVar[Optional[str]] = ContextVar(
            f"audit_event_type:{name}", default=None
        )
        self._suppressed: ContextVar[bool] = ContextVar(f"audit_suppressed:{name}", default=False)

    @contextmanager
    def with_level(self, level: int) -> Iterator[None]:
        """Temporarily write this entity's events at another visibility level."""
        token = self._level_override.set(level)
        try:
            yield
        finally:
            self._level_override.reset(token)

    @contextmanager
    def with_event_type(self, event_type: str) -> Iterator[None]:
        """Temporarily replace the action part of the event name (e.g. ``init``)."""
        token = self._event_type_override.set(event_type)
        try:
            yield
        finally:
            self._event_type_override.reset(token)

    @contextmanager
    def without_auditing(self) -> Iterator[None]:
        token = self._suppressed.set(True)
        try:
            yield
        finally:
            self._suppressed.reset(token)

    def build_message_data(self, fields: Mapping[str, Any]) -> Dict[str, Any]:
        fields_map = self.config.message_fields
        pairs = fields_map.items() if isinstance(fields_map, Mapping) else ((name, name) for name in fields_map)
        return {key: lookup_path(fields, path) for key, path in pairs}

    def build_payload(self, fields: Mapping[str, Any]) -> Dict[str, Any]:
        excluded = set(self.config.resolved_exclude())
        return {key: value for key, value in fields.items() if key not in excluded}

    def build_subjects(self, fields: Mapping[str, Any]) -> List[Dict[str, str]]:
        key = fields.get(self.config.key_field)
        subjects = [
            {
                "subject_type": self.config.subject_type,
                "subject_id": "" if key is None else str(key),
                "role": "primary",
            }
        ]
        added = {f"{self.config.subject_type}:{subjects[0]['subject_id']}"}

        for parent in self.config.parents:
            value = fields.get(parent.field)
            if value is None:
                continue
            marker = f"{parent.subject_type}:{value}"
            if marker in added:
                continue
            subjects.append(
                {"subject_type": parent.subject_type, "subject_id": str(value), "role": parent.role}
            )
            added.add(marker)
        return subjects

    def _level(self) -> Optional[int]:
        override = self._level_override.get()
        return override if override is not None else self.config.level

    def event_name(self, action: str) -> str:
        return f"{self.config.resolved_prefix()}.{self._event_type_override.get() or action}"

    def record(
        self,
        db: Session,
        action: str,
        current: Mapping[str, Any],
        prior: Optional[Mapping[str, Any]] = None,
        *,
        actor_id: Optional[Any] = None,
        context: Optional[AuditContext] = None,
    ) -> Optional[str]:
        """
        Write the audit event for one lifecycle action.

        Returns:
            The event id, or None when the action is not audited, auditing is
            suppressed, or an update changed nothing audit-worthy.
        """
        if action not in self.config.events or self._suppressed.get():
            return None

        diff = None
        if action == "updated":
            diff = detect_change(
                prior or {},
                current,
                ignore=self.config.resolved_ignore(),
                exclude=self.config.resolved_exclude(),
            )
            if diff is None:
                logger.debug(
                    "Skipping %s update for %s: no audit-worthy change",
                    self.config.subject_type,
                    current.get(self.config.key_field),
                )
                return None

        return self.writer.write(
            db,
            self.event_name(action),
            subjects=self.build_subjects(current),
            message_data=self.build_message_data(current),
            payload=self.build_payload(current),
            diff=diff,
            actor_id=actor_id,
            level=self._level(),
            context=context,
        )

    def created(self, db: Session, fields: Mapping[str, Any], **kwargs) -> Optional[str]:
        return self.record(db, "created", fields, **kwargs)

    def updated(
        self, db: Session, prior: Mapping[str, Any], current: Mapping[str, Any], **kwargs
    ) -> Optional[str]:
        return self.record(db, "updated", current, prior, **kwargs)

    def deleted(self, db: Session, fields: Mapping[str, Any], **kwargs) -> Optional[str]:
        return self.record(db, "deleted", fields, **kwargs)
