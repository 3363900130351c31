"""Pydantic schemas for API validation"""

from audit_trail.schemas.audit import (
    AuditSubjectResponse,
    AuditEventResponse,
    AuditEventPage,
    VerifyResponse,
    IntegrityReport,
    RequestLogResponse,
    OutgoingRequestLogResponse,
    ReferenceTrailResponse,
)
from audit_trail.schemas.response import ErrorResponse, HealthResponse

__all__ = [
    "AuditSubjectResponse", "AuditEventResponse", "AuditEventPage",
    "VerifyResponse", "IntegrityReport",
    "RequestLogResponse", "OutgoingRequestLogResponse", "ReferenceTrailResponse",
    "ErrorResponse", "HealthResponse",
]
