"""Reference id allocation for inbound requests."""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from audit_trail.config import settings
from audit_trail.core.correlation import request_context, resolve_reference_id


def ensure_reference_id(request: Request) -> str:
    """
    Return the request's reference id, allocating it on first call.

    An incoming ``REFERENCE_ID_HEADER`` value is reused when it is usable.
    The id lives on ``request.state`` so every later call sees the same one.
    """
    existing = getattr(request.state, "reference_id", None)
    if existing:
        return existing

    reference_id = resolve_reference_id(request.headers.get(settings.REFERENCE_ID_HEADER))
    request.state.reference_id = reference_id
    return reference_id


class ReferenceIdMiddleware(BaseHTTPMiddleware):
    """Outermost middleware: opens the correlation scope for the request."""

    async def dispatch(self, request: Request, call_next) -> Response:
        reference_id = ensure_reference_id(request)

        with request_context(reference_id, getattr(request.state, "actor_id", None)):
            response = await call_next(request)

        response.headers[settings.REFERENCE_ID_HEADER] = reference_id
        return response
