import logging
import re
import time
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

_EVENT_PATH = re.compile(r"^/(?:events|ws/events)/([^/]+)")


def event_id_from_path(path: str) -> str:
    match = _EVENT_PATH.match(path)
    return match.group(1) if match else "-"


class HTTPLogMiddleware(BaseHTTPMiddleware):
    """Request timing per event, enabled by REQUEST_DEBUG=1.

    Requests slower than ``slow_ms`` are logged at warning even when the
    logger is not at debug.
    """

    def __init__(self, app, logger_name: str = "meetgrid.http", slow_ms: int = 1000):
        super().__init__(app)
        self._logger = logging.getLogger(logger_name)
        self._slow_ms = slow_ms

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        path = request.url.path
        method = request.method
        event_id = event_id_from_path(path)
        self._logger.debug("http.request start method=%s path=%s event_id=%s", method, path, event_id)
        try:
            response: Response = await call_next(request)
        except Exception as e:
            dur_ms = int((time.perf_counter() - start) * 1000)
            self._logger.warning("http.request error method=%s path=%s event_id=%s dur_ms=%s err=%r",
                                 method, path, event_id, dur_ms, e)
            raise
        dur_ms = int((time.perf_counter() - start) * 1000)
        level = logging.WARNING if dur_ms >= self._slow_ms else logging.DEBUG
        self._logger.log(level, "http.request end method=%s path=%s event_id=%s status=%s dur_ms=%s",
                         method, path, event_id, response.status_code, dur_ms)
        response.headers["X-Response-Time-Ms"] = str(dur_ms)
        return response
