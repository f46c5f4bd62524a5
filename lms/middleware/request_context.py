"""Request ID and access-log middleware.

Every request gets an ID stored in a ContextVar.  A root-logger filter
copies it onto each record, so an attempt submission, the progress
recompute it triggers and the certificate it may issue all log under the
same ``request_id``.

A caller-supplied X-Request-ID is reused only when it looks like an ID
(short, no whitespace or control characters); anything else is replaced
with a fresh UUID before it can reach a log line.
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")

_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._:\-]{1,128}$")


class _RequestContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get("-")  # type: ignore[attr-defined]
        return True


def install_request_id_filter() -> None:
    """Attach the filter to the root logger once."""
    root = logging.getLogger()
    if not any(isinstance(f, _RequestContextFilter) for f in root.filters):
        root.addFilter(_RequestContextFilter())


def resolve_request_id(header_value: str | None) -> str:
    if header_value and _REQUEST_ID_RE.match(header_value):
        return header_value
    return str(uuid.uuid4())


install_request_id_filter()


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        req_id = resolve_request_id(request.headers.get("x-request-id"))
        token = request_id_var.set(req_id)
        started = time.monotonic()
        fields = {
            "request_id": req_id,
            "method": request.method,
            "path": request.url.path,
        }
        try:
            try:
                response = await call_next(request)
            except Exception:
                fields["duration_ms"] = round((time.monotonic() - started) * 1000, 1)
                logger.exception(
                    "%s %s raised", request.method, request.url.path, extra=fields
                )
                raise

            duration_ms = round((time.monotonic() - started) * 1000, 1)
            level = logging.ERROR if response.status_code >= 500 else logging.INFO
            logger.log(
                level,
                "%s %s -> %d (%.1fms)",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
                extra={
                    **fields,
                    "status_code": response.status_code,
                    "duration_ms": duration_ms,
                },
            )
            response.headers["X-Request-ID"] = req_id
            return response
        finally:
            request_id_var.reset(token)
