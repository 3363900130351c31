"""Audit event and subject models"""

import uuid

from sqlalchemy import (
    Column,
    Integer,
    SmallInteger,
    String,
    DateTime,
    ForeignKey,
    JSON,
    Index,
    UniqueConstraint,
    CheckConstraint,
)
from sqlalchemy.orm import relationship

from audit_trail.core.database import Base


def _uuid_str() -> str:
    return str(uuid.uuid4())


class AuditEvent(Base):
    """Immutable audit events."""

    __tablename__ = "audit_events"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    event = Column(String(255), nullable=False, index=True)
    level = Column(SmallInteger, nullable=False, default=0)
    # Plain JSON (not JSONB) so stored key order matches the checksummed order.
    message_data = Column(JSON(none_as_null=True), nullable=True)
    payload = Column(JSON(none_as_null=True), nullable=True)
    diff = Column(JSON(none_as_null=True), nullable=True)
    actor_id = Column(String(64), nullable=True)
    reference_id = Column(String(64), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    checksum = Column(String(128), nullable=True)

    subjects = relationship(
        "AuditSubject",
        back_populates="audit_event",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="AuditSubject.id",
    )

    __table_args__ = (
        Index("idx_audit_event_time", "event", "created_at"),
        Index("idx_audit_actor_time", "actor_id", "created_at"),
        Index("idx_audit_events_created_at", "created_at"),
        CheckConstraint("level >= 0", name="chk_audit_level"),
    )

    def __repr__(self):
        return f"<AuditEvent(id='{self.id}', event='{self.event}', created_at={self.created_at})>"

    def to_dict(self):
        """Convert to dictionary"""
        return {
            "id": self.id,
            "event": self.event,
            "level": self.level,
            "message_data": self.message_data,
            "payload": self.payload,
            "diff": self.diff,
            "actor_id": self.actor_id,
            "reference_id": self.reference_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "checksum": self.checksum,
            "subjects": [subject.to_dict() for subject in self.subjects],
        }


class AuditSubject(Base):
    """Participant referenced by an audit event, tagged with a role."""

    __tablename__ = "audit_subjects"

    id = Column(Integer, primary_key=True, autoincrement=True)
    audit_event_id = Column(
        String(36), ForeignKey("audit_events.id", ondelete="CASCADE"), nullable=False
    )
    subject_type = Column(String(255), nullable=False)
    subject_id = Column(String(255), nullable=False)
    role = Column(String(32), nullable=False, default="primary")

    audit_event = relationship("AuditEvent", back_populates="subjects")

    __table_args__ = (
        UniqueConstraint(
            "audit_event_id", "subject_type", "subject_id", "role", name="uq_subject_per_event"
        ),
        Index("idx_subject_lookup", "subject_type", "subject_id", "audit_event_id"),
    )

    def __repr__(self):
        return (
            f"<AuditSubject(event='{self.audit_event_id}', type='{self.subject_type}', "
            f"id='{self.subject_id}', role='{self.role}')>"
        )

    def to_dict(self):
        """Convert to dictionary"""
        return {
            "subject_type": self.subject_type,
            "subject_id": self.subject_id,
            "role": self.role,
        }
