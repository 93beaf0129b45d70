import uuid
from contextvars import ContextVar
from typing import Callable

import structlog
from django.http import HttpRequest, HttpResponse

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")

logger = structlog.get_logger(__name__)


class CorrelationIdMiddleware:
    """Extract or generate a correlation ID and bind request context for logs.

    ``X-Request-ID`` is reused when the client sends one, otherwise a UUID4
    is generated.  The optional ``X-Venue-ID`` header is bound as
    ``venue_id`` so assignment log lines can be filtered per tenant.  The
    correlation ID is echoed back in the ``X-Request-ID`` response header.
    """

    def __init__(self, get_response: Callable[[HttpRequest], HttpResponse]) -> None:
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        cid = request.META.get("HTTP_X_REQUEST_ID") or str(uuid.uuid4())
        correlation_id_var.set(cid)

        structlog.contextvars.clear_contextvars()
        context = {"correlation_id": cid}
        venue_id = request.META.get("HTTP_X_VENUE_ID")
        if venue_id:
            context["venue_id"] = venue_id
        structlog.contextvars.bind_contextvars(**context)

        logger.info(
            "request.started",
            method=request.method,
            path=request.get_full_path(),
        )

        response = self.get_response(request)

        logger.info(
            "request.finished",
            method=request.method,
            path=request.get_full_path(),
            status_code=response.status_code,
        )

        response["X-Request-ID"] = cid
        return response
