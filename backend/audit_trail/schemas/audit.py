"""Audit trail response schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class AuditSubjectResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    subject_type: str
    subject_id: str
    role: str


class AuditEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    event: str
    level: int
    message_data: Optional[Dict[str, Any]] = None
    payload: Optional[Dict[str, Any]] = None
    diff: Optional[Dict[str, Any]] = None
    actor_id: Optional[str] = None
    reference_id: Optional[str] = None
    created_at: Optional[datetime] = None
    checksum: str
    subjects: List[AuditSubjectResponse] = []


class AuditEventPage(BaseModel):
    items: List[AuditEventResponse]
    total: int
    page: int
    per_page: int


class VerifyResponse(BaseModel):
    id: str
    valid: bool


class IntegrityReport(BaseModel):
    checked: int
    failed: int
    failed_ids: List[str]


class RequestLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    method: str
    url: str
    route_name: Optional[str] = None
    route_action: Optional[str] = None
    status_code: Optional[int] = None
    duration_ms: Optional[float] = None
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    actor_id: Optional[str] = None
    reference_id: str
    request_headers: Optional[Dict[str, Any]] = None
    request_query: Optional[Any] = None
    request_body: Optional[Any] = None
    response_body: Optional[Any] = None
    created_at: Optional[datetime] = None


class OutgoingRequestLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    method: str
    url: str
    status_code: Optional[int] = None
    duration_ms: Optional[float] = None
    reference_id: Optional[str] = None
    request_headers: Optional[Dict[str, Any]] = None
    request_body: Optional[Any] = None
    response_body: Optional[Any] = None
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None


class ReferenceTrailResponse(BaseModel):
    reference_id: str
    requests: List[RequestLogResponse]
    outgoing_requests: List[OutgoingRequestLogResponse]
    events: List[AuditEventResponse]
