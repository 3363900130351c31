"""Database models"""

from audit_trail.models.audit import AuditEvent, AuditSubject
from audit_trail.models.request_log import RequestLog, OutgoingRequestLog

__all__ = ["AuditEvent", "AuditSubject", "RequestLog", "OutgoingRequestLog"]
