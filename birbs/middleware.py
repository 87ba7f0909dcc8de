"""
Request tracing for the birbs API

Every request gets an ID, taken from ``X-Request-ID`` when the client sends
one. The ID is echoed on the response and stamped on every log record
emitted while the request is handled (see ``RequestIdFilter``). One summary
line is logged per request with its status and latency and, for the
per-species routes, the species it addressed.
"""

import logging
import time
import uuid
from collections.abc import Callable
from typing import Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from .logging_config import get_logger, request_id_var

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
SPECIES_ROUTES = {"files.json", "hourly.json", "daily.json", "photo.png"}


def species_from_path(path: str) -> Optional[str]:
    """Common name addressed by a per-species route such as ``/American Crow/files.json``."""
    parts = path.strip("/").split("/")
    if len(parts) == 2 and parts[1] in SPECIES_ROUTES:
        return parts[0]
    return None


class RequestTrackingMiddleware(BaseHTTPMiddleware):
    """Tag each request with an ID and log one line when it completes."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        token = request_id_var.set(request_id)

        # ASGI paths arrive percent-decoded
        path = request.scope["path"]
        context = {"request_id": request_id, "method": request.method, "path": path}
        species = species_from_path(path)
        if species is not None:
            context["species"] = species

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            context["duration_ms"] = round((time.perf_counter() - start_time) * 1000, 2)
            logger.exception(f"{request.method} {path} failed", extra=context)
            raise
        finally:
            request_id_var.reset(token)

        context["status_code"] = response.status_code
        context["duration_ms"] = round((time.perf_counter() - start_time) * 1000, 2)
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(level, f"{request.method} {path} -> {response.status_code}", extra=context)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
