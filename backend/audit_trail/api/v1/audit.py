"""Audit trail routes - read-only access to events and request logs"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from audit_trail.api.deps import Principal, get_current_auditor
from audit_trail.core.database import get_db
from audit_trail.schemas.audit import (
    AuditEventPage,
    AuditEventResponse,
    IntegrityReport,
    ReferenceTrailResponse,
    VerifyResponse,
)
from audit_trail.services.audit_query import audit_query_service
from audit_trail.services.audit_writer import audit_writer

router = APIRouter()


@router.get("/events", response_model=AuditEventPage)
def list_events(
    subject_type: Optional[str] = None,
    subject_id: Optional[str] = None,
    actor_id: Optional[str] = None,
    event: Optional[str] = None,
    event_like: Optional[str] = Query(None, description="SQL LIKE pattern, e.g. product.%"),
    reference_id: Optional[str] = None,
    max_level: Optional[int] = Query(None, ge=0),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=500),
    current_user: Principal = Depends(get_current_auditor),
    db: Session = Depends(get_db),
):
    """
    List audit events, newest first

    Args:
        subject_type: Only events touching this subject type
        subject_id: Narrow ``subject_type`` to one subject
        max_level: Only events at this visibility tier or broader
    """
    events, total = audit_query_service.get_events(
        db,
        subject_type=subject_type,
        subject_id=subject_id,
        actor_id=actor_id,
        event=event,
        event_like=event_like,
        reference_id=reference_id,
        max_level=max_level,
        page=page,
        per_page=per_page,
    )
    return {"items": events, "total": total, "page": page, "per_page": per_page}


@router.get("/events/{event_id}", response_model=AuditEventResponse)
def get_event(
    event_id: str,
    current_user: Principal = Depends(get_current_auditor),
    db: Session = Depends(get_db),
):
    return audit_query_service.get_event(db, event_id)


@router.get("/events/{event_id}/verify", response_model=VerifyResponse)
def verify_event(
    event_id: str,
    current_user: Principal = Depends(get_current_auditor),
    db: Session = Depends(get_db),
):
    """Recompute the stored event's checksum."""
    return {"id": event_id, "valid": audit_writer.verify(db, event_id)}


@router.get("/references/{reference_id}", response_model=ReferenceTrailResponse)
def get_reference_trail(
    reference_id: str,
    current_user: Principal = Depends(get_current_auditor),
    db: Session = Depends(get_db),
):
    """Inbound request, outgoing calls and audit events sharing one reference id."""
    trail = audit_query_service.get_trail(db, reference_id)
    return {"reference_id": reference_id, **trail}


@router.get("/integrity", response_model=IntegrityReport)
def check_integrity(
    since: Optional[datetime] = None,
    limit: int = Query(1000, ge=1, le=10000),
    current_user: Principal = Depends(get_current_auditor),
    db: Session = Depends(get_db),
):
    checked, failed_ids = audit_query_service.verify_range(db, since=since, limit=limit)
    return {"checked": checked, "failed": len(failed_ids), "failed_ids": failed_ids}
