"""Request-context middleware for FastAPI.

Binds an X-Request-ID to every request so service logs can be correlated,
and logs each request's outcome with its duration.

Usage:
    from libs.common.middleware import add_observability_middleware

    app = FastAPI()
    add_observability_middleware(app)
"""
import time
from typing import Callable

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from libs.common.logging import (
    clear_request_context,
    configure_logging,
    get_logger,
    set_request_context,
)

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
QUIET_PATHS = frozenset({"/health"})


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Set the request context, log the outcome, then clear the context."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = set_request_context(
            request_id=request.headers.get(REQUEST_ID_HEADER),
            path=request.url.path,
            method=request.method,
        )
        quiet = request.url.path in QUIET_PATHS
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "%s %s failed after %.2fms",
                request.method,
                request.url.path,
                (time.perf_counter() - start_time) * 1000,
            )
            raise
        else:
            if not quiet:
                duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
                log = logger.warning if response.status_code >= 400 else logger.info
                log(
                    "%s %s -> %d",
                    request.method,
                    request.url.path,
                    response.status_code,
                    extra={
                        "extra_fields": {
                            "status_code": response.status_code,
                            "duration_ms": duration_ms,
                        }
                    },
                )
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            clear_request_context()


def add_observability_middleware(app: FastAPI) -> None:
    """
    Configure logging and install the request-context middleware.
    """
    configure_logging()
    app.add_middleware(RequestContextMiddleware)
