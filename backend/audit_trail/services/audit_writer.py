"""Audit writer - builds, redacts, checksums and persists audit events."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from audit_trail.config import settings
from audit_trail.core.canonical import normalize
from audit_trail.core.checksum import compute_checksum, envelope_from_event, verify_checksum
from audit_trail.core.correlation import AuditContext, current_context
from audit_trail.core.exceptions import PersistenceError, ResourceNotFoundError, ValidationError
from audit_trail.core.metrics import CHECKSUM_FAILURES, EVENTS_WRITTEN
from audit_trail.core.redaction import sanitize
from audit_trail.models.audit import AuditEvent, AuditSubject

logger = logging.getLogger(__name__)

DEFAULT_ROLE = "primary"


class AuditWriter:
    """Persist immutable, checksummed audit events."""

    @staticmethod
    def prepare_subjects(subjects: Optional[Sequence[Mapping[str, Any]]]) -> List[Dict[str, str]]:
        """
        Validate subject entries and drop exact duplicates.

        Raises:
            ValidationError: If an entry lacks subject_type or subject_id
        """
        prepared: List[Dict[str, str]] = []
        seen = set()
        for index, subject in enumerate(subjects or []):
            if not isinstance(subject, Mapping):
                raise ValidationError(
                    "Audit subject must be a mapping", details={"index": index}
                )
            subject_type = subject.get("subject_type")
            subject_id = subject.get("subject_id")
            if subject_type is None or str(subject_type).strip() == "":
                raise ValidationError(
                    "Audit subject is missing subject_type", details={"index": index}
                )
            if subject_id is None or str(subject_id).strip() == "":
                raise ValidationError(
                    "Audit subject is missing subject_id", details={"index": index}
                )
            role = subject.get("role") or DEFAULT_ROLE
            entry = {
                "subject_type": str(subject_type),
                "subject_id": str(subject_id),
                "role": str(role),
            }
            key = (entry["subject_type"], entry["subject_id"], entry["role"])
            if key in seen:
                continue
            seen.add(key)
            prepared.append(entry)
        return prepared

    @staticmethod
    def _resolve_timestamp(created_at: Optional[datetime]) -> datetime:
        if created_at is None:
            return datetime.now(timezone.utc)
        if created_at.tzinfo is None:
            return created_at.replace(tzinfo=timezone.utc)
        return created_at.astimezone(timezone.utc)

    @staticmethod
    def _prepare_mapping(name: str, value: Any) -> Any:
        try:
            return sanitize(normalize(value))
        except (TypeError, ValueError, RecursionError) as exc:
            raise ValidationError(f"Audit {name} is not JSON serializable", details={"error": str(exc)}) from exc

    @staticmethod
    def write(
        db: Session,
        event: str,
        subjects: Optional[Sequence[Mapping[str, Any]]] = None,
        message_data: Optional[Mapping[str, Any]] = None,
        payload: Optional[Mapping[str, Any]] = None,
        diff: Optional[Mapping[str, Any]] = None,
        actor_id: Optional[Any] = None,
        created_at: Optional[datetime] = None,
        *,
        level: Optional[int] = None,
        context: Optional[AuditContext] = None,
        commit: bool = True,
    ) -> str:
        """
        Write one audit event with its subjects.

        The checksum is computed over the redacted values that get stored, so
        verification only ever needs the persisted row.

        Args:
            db: Database session
            event: Dot-namespaced event name, e.g. ``product.updated``
            subjects: ``{subject_type, subject_id, role?}`` entries
            message_data: Human-readable summary fields
            payload: Full entity state
            diff: ``{field: [before, after]}`` for updates
            actor_id: Acting principal, overrides the context actor
            created_at: Event time, defaults to now (UTC)
            level: Visibility tier, defaults to AUDIT_DEFAULT_LEVEL
            context: Explicit correlation context, defaults to the request scope
            commit: Commit the transaction (False flushes inside the caller's)

        Returns:
            str: Identifier of the created event

        Raises:
            ValidationError: Malformed event name, subjects or level
            ConfigurationError: AUDIT_KEY missing
            PersistenceError: Storage failure, nothing was persisted
        """
        if not event or not str(event).strip():
            raise ValidationError("Audit event name is required")

        prepared_subjects = AuditWriter.prepare_subjects(subjects)

        resolved_level = settings.AUDIT_DEFAULT_LEVEL if level is None else level
        if type(resolved_level) is not int or resolved_level < 0:
            raise ValidationError("Audit level must be a non-negative integer", details={"level": level})

        scope = context or current_context()
        if actor_id is None:
            actor_id = scope.actor_id
        resolved_actor = None if actor_id is None else str(actor_id)
        timestamp = AuditWriter._resolve_timestamp(created_at)

        stored_message_data = AuditWriter._prepare_mapping("message_data", message_data)
        stored_payload = AuditWriter._prepare_mapping("payload", payload)
        stored_diff = AuditWriter._prepare_mapping("diff", diff)

        checksum = compute_checksum(
            {
                "event": event,
                "message_data": stored_message_data,
                "payload": stored_payload,
                "diff": stored_diff,
                "actor_id": resolved_actor,
                "subjects": prepared_subjects,
            }
        )

        event_id = str(uuid.uuid4())
        record = AuditEvent(
            id=event_id,
            event=event,
            level=resolved_level,
            message_data=stored_message_data,
            payload=stored_payload,
            diff=stored_diff,
            actor_id=resolved_actor,
            reference_id=scope.reference_id,
            created_at=timestamp,
            checksum=checksum,
        )
        record.subjects = [AuditSubject(**subject) for subject in prepared_subjects]

        try:
            db.add(record)
            if commit:
                db.commit()
            else:
                db.flush()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Failed to persist audit event %s: %s", event, exc)
            raise PersistenceError(f"Failed to persist audit event '{event}'") from exc

        EVENTS_WRITTEN.labels(event).inc()
        logger.debug(
            "Audit event %s written id=%s subjects=%d reference_id=%s",
            event,
            event_id,
            len(prepared_subjects),
            scope.reference_id,
        )
        return event_id

    @staticmethod
    def verify_event(record: AuditEvent) -> bool:
        """Recompute a stored event's checksum from its persisted fields."""
        valid = verify_checksum(envelope_from_event(record), record.checksum)
        if not valid:
            CHECKSUM_FAILURES.inc()
            logger.warning("Checksum mismatch for audit event %s (%s)", record.id, record.event)
        return valid

    @staticmethod
    def verify(db: Session, event_id: str) -> bool:
        """
        Verify a persisted event by id.

        Raises:
            ResourceNotFoundError: If the event does not exist
        """
        record = (
            db.query(AuditEvent)
            .options(selectinload(AuditEvent.subjects))
            .filter(AuditEvent.id == event_id)
            .first()
        )
        if not record:
            raise ResourceNotFoundError("Audit event")
        return AuditWriter.verify_event(record)


audit_writer = AuditWriter()
