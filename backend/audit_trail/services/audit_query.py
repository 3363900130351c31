"""Query interface over audit events and their correlated request logs."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session, selectinload

from audit_trail.core.exceptions import ResourceNotFoundError
from audit_trail.models.audit import AuditEvent, AuditSubject
from audit_trail.models.request_log import OutgoingRequestLog, RequestLog
from audit_trail.services.audit_writer import audit_writer


class AuditQueryService:
    """Filtering, pagination and integrity checks for stored audit data."""

    @staticmethod
    def get_events(
        db: Session,
        *,
        subject_type: Optional[str] = None,
        subject_id: Optional[str] = None,
        actor_id: Optional[str] = None,
        event: Optional[str] = None,
        event_like: Optional[str] = None,
        reference_id: Optional[str] = None,
        max_level: Optional[int] = None,
        page: int = 1,
        per_page: int = 50,
    ) -> Tuple[List[AuditEvent], int]:
        """
        Query audit events with filtering and pagination.

        ``event_like`` is a SQL LIKE pattern (e.g. ``product.%``); ``max_level``
        keeps events visible at that tier or broader.
        """
        query = db.query(AuditEvent)

        if subject_type is not None:
            subject_filter = AuditEvent.subjects.any(AuditSubject.subject_type == subject_type)
            if subject_id is not None:
                subject_filter = AuditEvent.subjects.any(
                    (AuditSubject.subject_type == subject_type)
                    & (AuditSubject.subject_id == str(subject_id))
                )
            query = query.filter(subject_filter)
        if actor_id is not None:
            query = query.filter(AuditEvent.actor_id == str(actor_id))
        if event:
            query = query.filter(AuditEvent.event == event)
        if event_like:
            query = query.filter(AuditEvent.event.like(event_like))
        if reference_id:
            query = query.filter(AuditEvent.reference_id == reference_id)
        if max_level is not None:
            query = query.filter(AuditEvent.level <= max_level)

        total = query.count()

        page = max(1, page)
        per_page = max(1, min(per_page, 500))
        events = (
            query.options(selectinload(AuditEvent.subjects))
            .order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
            .all()
        )
        return events, total

    @staticmethod
    def get_event(db: Session, event_id: str) -> AuditEvent:
        event = (
            db.query(AuditEvent)
            .options(selectinload(AuditEvent.subjects))
            .filter(AuditEvent.id == event_id)
            .first()
        )
        if not event:
            raise ResourceNotFoundError("Audit event")
        return event

    @staticmethod
    def get_trail(db: Session, reference_id: str) -> Dict[str, list]:
        """Everything recorded under one reference id, oldest first."""
        requests = (
            db.query(RequestLog)
            .filter(RequestLog.reference_id == reference_id)
            .order_by(RequestLog.created_at.asc())
            .all()
        )
        outgoing = (
            db.query(OutgoingRequestLog)
            .filter(OutgoingRequestLog.reference_id == reference_id)
            .order_by(OutgoingRequestLog.created_at.asc())
            .all()
        )
        events = (
            db.query(AuditEvent)
            .options(selectinload(AuditEvent.subjects))
            .filter(AuditEvent.reference_id == reference_id)
            .order_by(AuditEvent.created_at.asc())
            .all()
        )
        return {"requests": requests, "outgoing_requests": outgoing, "events": events}

    @staticmethod
    def verify_range(
        db: Session,
        *,
        since: Optional[datetime] = None,
        limit: int = 1000,
    ) -> Tuple[int, List[str]]:
        """
        Re-verify stored checksums.

        Returns:
            Tuple of (events checked, ids that failed verification)
        """
        query = db.query(AuditEvent).options(selectinload(AuditEvent.subjects))
        if since is not None:
            query = query.filter(AuditEvent.created_at >= since)
        events = query.order_by(AuditEvent.created_at.asc()).limit(max(1, limit)).all()

        failed = [event.id for event in events if not audit_writer.verify_event(event)]
        return len(events), failed


audit_query_service = AuditQueryService()
