"""Outgoing HTTP request logging through httpx transports."""

from __future__ import annotations

import fnmatch
import logging
import time
import uuid
from typing import Callable, Iterable, Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from audit_trail.config import settings
from audit_trail.core.correlation import get_reference_id
from audit_trail.core.database import SessionLocal
from audit_trail.core.http_bodies import decode_json_body, decode_request_body
from audit_trail.core.redaction import redact_headers, sanitize_body
from audit_trail.models.request_log import OutgoingRequestLog

logger = logging.getLogger(__name__)


class OutgoingRequestRecorder:
    """Create and complete ``audit_outgoing_requests`` rows."""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        exclude_urls: Optional[Iterable[str]] = None,
    ) -> None:
        self.session_factory = session_factory
        self.exclude_urls = list(
            settings.OUTGOING_REQUEST_EXCLUDE_URLS if exclude_urls is None else exclude_urls
        )

    def should_record(self, url: str) -> bool:
        if not settings.OUTGOING_REQUEST_LOGGING_ENABLED:
            return False
        return not any(fnmatch.fnmatch(url, pattern) for pattern in self.exclude_urls)

    def _run(self, record_id: str, action: Callable[[Session], None]) -> None:
        db = self.session_factory()
        try:
            action(db)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Failed to log outgoing request %s: %s", record_id, exc)
        finally:
            db.close()

    def start(self, request: httpx.Request, reference_id: Optional[str]) -> str:
        record_id = str(uuid.uuid4())
        try:
            body = request.content
        except httpx.RequestNotRead:
            # Streaming uploads are forwarded without being buffered.
            body = b""

        def insert(db: Session) -> None:
            db.add(
                OutgoingRequestLog(
                    id=record_id,
                    method=request.method,
                    url=str(request.url),
                    reference_id=reference_id,
                    request_headers=redact_headers(dict(request.headers)),
                    request_body=sanitize_body(
                        decode_request_body(body, request.headers.get("content-type"))
                    ),
                )
            )

        self._run(record_id, insert)
        return record_id

    def finish(self, record_id: str, response: httpx.Response, duration_ms: float) -> None:
        response_body = sanitize_body(
            decode_json_body(response.content, response.headers.get("content-type"))
        )

        def update(db: Session) -> None:
            db.query(OutgoingRequestLog).filter(OutgoingRequestLog.id == record_id).update(
                {
                    "status_code": response.status_code,
                    "duration_ms": round(duration_ms, 2),
                    "response_body": response_body,
                },
                synchronize_session=False,
            )

        self._run(record_id, update)

    def fail(self, record_id: str, error: Exception, duration_ms: float) -> None:
        message = str(error) or "Connection failed"

        def update(db: Session) -> None:
            db.query(OutgoingRequestLog).filter(OutgoingRequestLog.id == record_id).update(
                {"duration_ms": round(duration_ms, 2), "error_message": message},
                synchronize_session=False,
            )

        self._run(record_id, update)

    def prepare(self, request: httpx.Request) -> Optional[str]:
        """Propagate the current reference id onto the outgoing request."""
        reference_id = get_reference_id()
        header = settings.REFERENCE_ID_HEADER
        if reference_id and header not in request.headers:
            request.headers[header] = reference_id
        return reference_id


class AuditedTransport(httpx.BaseTransport):
    """Sync httpx transport that logs every call it forwards."""

    def __init__(
        self,
        transport: Optional[httpx.BaseTransport] = None,
        recorder: Optional[OutgoingRequestRecorder] = None,
    ) -> None:
        self._transport = transport or httpx.HTTPTransport()
        self._recorder = recorder or OutgoingRequestRecorder()

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        if not self._recorder.should_record(str(request.url)):
            return self._transport.handle_request(request)

        reference_id = self._recorder.prepare(request)
        record_id = self._recorder.start(request, reference_id)
        start = time.perf_counter()
        try:
            response = self._transport.handle_request(request)
        except httpx.TransportError as exc:
            self._recorder.fail(record_id, exc, (time.perf_counter() - start) * 1000)
            raise

        response.read()
        self._recorder.finish(record_id, response, (time.perf_counter() - start) * 1000)
        return response

    def close(self) -> None:
        self._transport.close()


class AsyncAuditedTransport(httpx.AsyncBaseTransport):
    """Async counterpart of ``AuditedTransport``; DB writes run in a worker thread."""

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        recorder: Optional[OutgoingRequestRecorder] = None,
    ) -> None:
        self._transport = transport or httpx.AsyncHTTPTransport()
        self._recorder = recorder or OutgoingRequestRecorder()

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        if not self._recorder.should_record(str(request.url)):
            return await self._transport.handle_async_request(request)

        reference_id = self._recorder.prepare(request)
        record_id = await run_in_threadpool(self._recorder.start, request, reference_id)
        start = time.perf_counter()
        try:
            response = await self._transport.handle_async_request(request)
        except httpx.TransportError as exc:
            await run_in_threadpool(self._recorder.fail, record_id, exc, (time.perf_counter() - start) * 1000)
            raise

        await response.aread()
        await run_in_threadpool(
            self._recorder.finish, record_id, response, (time.perf_counter() - start) * 1000
        )
        return response

    async def aclose(self) -> None:
        await self._transport.aclose()


def audited_client(recorder: Optional[OutgoingRequestRecorder] = None, **kwargs) -> httpx.Client:
    """httpx.Client whose calls are logged and carry the current reference id."""
    transport = AuditedTransport(kwargs.pop("transport", None), recorder)
    return httpx.Client(transport=transport, **kwargs)


def audited_async_client(recorder: Optional[OutgoingRequestRecorder] = None, **kwargs) -> httpx.AsyncClient:
    transport = AsyncAuditedTransport(kwargs.pop("transport", None), recorder)
    return httpx.AsyncClient(transport=transport, **kwargs)
