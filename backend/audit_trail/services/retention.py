"""Retention sweeper - batched deletion of expired audit records."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from audit_trail.config import settings
from audit_trail.core.exceptions import PersistenceError, ValidationError
from audit_trail.core.metrics import RETENTION_DELETED
from audit_trail.models.audit import AuditEvent, AuditSubject
from audit_trail.models.request_log import OutgoingRequestLog, RequestLog

logger = logging.getLogger(__name__)

RETENTION_MODELS = {
    "events": AuditEvent,
    "requests": RequestLog,
    "outgoing_requests": OutgoingRequestLog,
}


class RetentionSweeper:
    """Delete records older than a per-kind age threshold, in bounded batches."""

    def __init__(self, batch_size: Optional[int] = None) -> None:
        self.batch_size = max(1, batch_size or settings.RETENTION_BATCH_SIZE)

    def sweep(
        self,
        db: Session,
        kind: str,
        max_age_days: Optional[int],
        now: Optional[datetime] = None,
    ) -> int:
        """
        Delete records of ``kind`` created before ``now - max_age_days``.

        Each batch commits on its own; for events, subject rows of a batch are
        deleted in the same transaction before their parents. Rows already
        removed by a concurrent sweep are simply not counted.

        Args:
            db: Database session
            kind: ``events``, ``requests`` or ``outgoing_requests``
            max_age_days: Age threshold; None disables the sweep
            now: Reference time, converted to UTC (defaults to current UTC time)

        Returns:
            int: Total rows of ``kind`` deleted

        Raises:
            ValidationError: Unknown kind or negative age
            PersistenceError: A batch failed and was rolled back
        """
        model = RETENTION_MODELS.get(kind)
        if model is None:
            raise ValidationError(
                f"Unknown retention kind '{kind}'",
                details={"allowed": sorted(RETENTION_MODELS)},
            )
        if max_age_days is None:
            return 0
        if max_age_days < 0:
            raise ValidationError("Retention age must not be negative", details={"max_age_days": max_age_days})

        if now is None:
            now = datetime.now(timezone.utc)
        elif now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        else:
            now = now.astimezone(timezone.utc)
        threshold = now - timedelta(days=max_age_days)
        deleted = 0

        while True:
            ids = db.execute(
                select(model.id)
                .where(model.created_at < threshold)
                .order_by(model.created_at.asc())
                .limit(self.batch_size)
            ).scalars().all()
            if not ids:
                break

            try:
                if model is AuditEvent:
                    db.execute(
                        delete(AuditSubject)
                        .where(AuditSubject.audit_event_id.in_(ids))
                        .execution_options(synchronize_session=False)
                    )
                result = db.execute(
                    delete(model)
                    .where(model.id.in_(ids))
                    .execution_options(synchronize_session=False)
                )
                db.commit()
            except SQLAlchemyError as exc:
                db.rollback()
                logger.error("Retention sweep for %s failed after %d deletions: %s", kind, deleted, exc)
                raise PersistenceError(f"Retention sweep for '{kind}' failed") from exc

            batch_deleted = result.rowcount or 0
            deleted += batch_deleted
            if batch_deleted == 0 and len(ids) < self.batch_size:
                break

        if deleted:
            RETENTION_DELETED.labels(kind).inc(deleted)
        logger.info("Retention sweep for %s older than %s days deleted %d row(s)", kind, max_age_days, deleted)
        return deleted

    def run(self, db: Session, kind: str, now: Optional[datetime] = None) -> int:
        """Sweep one kind using its configured retention age."""
        if kind not in RETENTION_MODELS:
            raise ValidationError(f"Unknown retention kind '{kind}'")
        return self.sweep(db, kind, settings.retention_days_for(kind), now=now)

    def run_all(self, db: Session, now: Optional[datetime] = None) -> Dict[str, int]:
        """Sweep every kind that has a retention policy configured."""
        return {kind: self.run(db, kind, now=now) for kind in RETENTION_MODELS}


retention_sweeper = RetentionSweeper()
