"""Inbound request logging middleware."""

import logging
import time
from typing import Callable, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Match

from audit_trail.config import settings
from audit_trail.core.correlation import current_context
from audit_trail.core.database import SessionLocal
from audit_trail.core.http_bodies import decode_json_body, decode_request_body
from audit_trail.core.redaction import header_lists, redact_headers, sanitize, sanitize_body
from audit_trail.middleware.reference_id import ensure_reference_id
from audit_trail.models.request_log import RequestLog

logger = logging.getLogger(__name__)


def resolve_route(request: Request) -> Tuple[Optional[str], Optional[str]]:
    """Find the route that will handle the request (name, endpoint path)."""
    app = request.scope.get("app")
    router = getattr(app, "router", None)
    for route in getattr(router, "routes", []):
        match, _ = route.matches(request.scope)
        if match == Match.FULL:
            endpoint = getattr(route, "endpoint", None)
            action = f"{endpoint.__module__}.{endpoint.__qualname__}" if endpoint else None
            name = getattr(route, "name", None)
            return (name[:255] if name else None), (action[:255] if action else None)
    return None, None


async def _replay(content: bytes):
    yield content


class RequestLogMiddleware(BaseHTTPMiddleware):
    """
    Record every inbound request in ``audit_requests``.

    The row is written before the handler runs so it survives a crash, then
    completed exactly once with status, duration and response body.
    """

    def __init__(self, app, session_factory: Callable[[], Session] = SessionLocal) -> None:
        super().__init__(app)
        self.session_factory = session_factory

    @staticmethod
    def _capture(request: Request, body: bytes) -> dict:
        """Redacted headers, query and body of the request."""
        headers = redact_headers(
            header_lists(request.headers.items()),
            exclude=["user-agent", settings.REFERENCE_ID_HEADER],
        )
        return {
            "request_headers": sanitize(headers) or None,
            "request_query": sanitize_body(dict(request.query_params)),
            "request_body": sanitize_body(
                decode_request_body(body, request.headers.get("content-type"))
            ),
        }

    def _insert(self, values: dict) -> Optional[int]:
        db = self.session_factory()
        try:
            record = RequestLog(**values)
            db.add(record)
            db.commit()
            return record.id
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Failed to log request %s %s: %s", values.get("method"), values.get("url"), exc)
            return None
        finally:
            db.close()

    def _complete(self, record_id: int, values: dict) -> None:
        db = self.session_factory()
        try:
            db.query(RequestLog).filter(RequestLog.id == record_id).update(
                values, synchronize_session=False
            )
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Failed to complete request log %s: %s", record_id, exc)
        finally:
            db.close()

    async def dispatch(self, request: Request, call_next) -> Response:
        if not settings.REQUEST_LOGGING_ENABLED:
            return await call_next(request)
        if request.url.path in settings.REQUEST_LOGGING_EXCLUDE_PATHS:
            return await call_next(request)

        reference_id = ensure_reference_id(request)
        start = time.perf_counter()

        body = await request.body()
        route_name, route_action = resolve_route(request)
        values = {
            "method": request.method,
            "url": str(request.url.replace(query="")),
            "route_name": route_name,
            "route_action": route_action,
            "ip": request.client.host if request.client else None,
            "user_agent": request.headers.get("user-agent"),
            "session_id": request.cookies.get(settings.SESSION_COOKIE_NAME),
            "actor_id": current_context().actor_id,
            "reference_id": reference_id,
        }
        try:
            values.update(self._capture(request, body))
        except Exception as exc:
            logger.error("Failed to capture request %s %s: %s", request.method, values["url"], exc)

        # The actor is only known once authentication ran inside the handler.
        record_id = None
        if not settings.REQUEST_LOGGING_ONLY_AUTHENTICATED:
            try:
                record_id = await run_in_threadpool(self._insert, values)
            except Exception as exc:
                logger.error("Failed to log request %s %s: %s", request.method, values["url"], exc)

        try:
            response = await call_next(request)
        except Exception:
            await self._finish(record_id, values, start, {"status_code": 500})
            raise

        content = b"".join([chunk async for chunk in response.body_iterator])
        response.body_iterator = _replay(content)

        await self._finish(
            record_id,
            values,
            start,
            {
                "status_code": response.status_code,
                "response_body": sanitize_body(
                    decode_json_body(content, response.headers.get("content-type"))
                ),
            },
        )
        return response

    async def _finish(self, record_id: Optional[int], values: dict, start: float, outcome: dict) -> None:
        outcome["duration_ms"] = round((time.perf_counter() - start) * 1000, 2)
        outcome["actor_id"] = current_context().actor_id or values["actor_id"]

        if record_id is not None:
            await run_in_threadpool(self._complete, record_id, outcome)
        elif settings.REQUEST_LOGGING_ONLY_AUTHENTICATED and outcome["actor_id"] is not None:
            await run_in_threadpool(self._insert, {**values, **outcome})
