import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from chat_relay.settings import get_settings

logger = logging.getLogger(__name__)


def internal_error_response(exc: Exception) -> JSONResponse:
    """Generic 500 body; the exception text is only exposed in dev"""
    body = {"message": "An unexpected error occurred."}
    if get_settings().is_dev:
        body["error"] = str(exc)
    return JSONResponse(status_code=500, content=body)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tags each request with an id and turns unhandled errors into a 500"""

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        request_id = str(uuid.uuid4())

        # session_id can come from header OR be resolved later in /questions
        request.state.request_id = request_id
        request.state.session_id = request.headers.get("x-session-id")

        logger.info(
            "[START] request_id=%s session_id=%s %s %s",
            request_id, request.state.session_id, request.method, request.url.path,
        )

        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = int((time.perf_counter() - start) * 1000)
            logger.exception(
                "[ERROR] request_id=%s session_id=%s duration_ms=%s err=%r",
                request_id, request.state.session_id, duration_ms, e,
            )
            response = internal_error_response(e)

        session_id = request.state.session_id
        duration_ms = int((time.perf_counter() - start) * 1000)
        logger.info(
            "[END]   request_id=%s session_id=%s status=%s duration_ms=%s",
            request_id, session_id, response.status_code, duration_ms,
        )

        # Return IDs to client for traceability
        response.headers["x-request-id"] = request_id
        if session_id:
            response.headers["x-session-id"] = session_id

        return response
