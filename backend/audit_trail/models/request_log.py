"""Inbound and outgoing HTTP request log models"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, Float, String, Text, DateTime, JSON, Index

from audit_trail.core.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RequestLog(Base):
    """One row per inbound HTTP request; completed once when the response is known."""

    __tablename__ = "audit_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    method = Column(String(10), nullable=False)
    url = Column(Text, nullable=False)
    route_name = Column(String(255), nullable=True)
    route_action = Column(String(255), nullable=True)
    status_code = Column(Integer, nullable=True)
    duration_ms = Column(Float, nullable=True)
    ip = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)
    session_id = Column(String(255), nullable=True)
    actor_id = Column(String(64), nullable=True)
    reference_id = Column(String(64), nullable=False, index=True)
    request_headers = Column(JSON(none_as_null=True), nullable=True)
    request_query = Column(JSON(none_as_null=True), nullable=True)
    request_body = Column(JSON(none_as_null=True), nullable=True)
    response_body = Column(JSON(none_as_null=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index("idx_audit_requests_created_at", "created_at"),
        Index("idx_request_actor_time", "actor_id", "created_at"),
    )

    def __repr__(self):
        return f"<RequestLog(id={self.id}, method='{self.method}', status_code={self.status_code})>"

    def to_dict(self):
        """Convert to dictionary"""
        return {
            "id": self.id,
            "method": self.method,
            "url": self.url,
            "route_name": self.route_name,
            "route_action": self.route_action,
            "status_code": self.status_code,
            "duration_ms": self.duration_ms,
            "ip": self.ip,
            "user_agent": self.user_agent,
            "session_id": self.session_id,
            "actor_id": self.actor_id,
            "reference_id": self.reference_id,
            "request_headers": self.request_headers,
            "request_query": self.request_query,
            "request_body": self.request_body,
            "response_body": self.response_body,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class OutgoingRequestLog(Base):
    """Calls made to external services while handling a request."""

    __tablename__ = "audit_outgoing_requests"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    method = Column(String(10), nullable=False)
    url = Column(Text, nullable=False)
    status_code = Column(Integer, nullable=True)
    duration_ms = Column(Float, nullable=True)
    reference_id = Column(String(64), nullable=True, index=True)
    request_headers = Column(JSON(none_as_null=True), nullable=True)
    request_body = Column(JSON(none_as_null=True), nullable=True)
    response_body = Column(JSON(none_as_null=True), nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index("idx_audit_outgoing_created_at", "created_at"),
    )

    def __repr__(self):
        return f"<OutgoingRequestLog(id='{self.id}', method='{self.method}', status_code={self.status_code})>"

    def to_dict(self):
        """Convert to dictionary"""
        return {
            "id": self.id,
            "method": self.method,
            "url": self.url,
            "status_code": self.status_code,
            "duration_ms": self.duration_ms,
            "reference_id": self.reference_id,
            "request_headers": self.request_headers,
            "request_body": self.request_body,
            "response_body": self.response_body,
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
