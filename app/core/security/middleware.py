# app/core/security/middleware.py
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.logger import logger
from app.core.request_scope import set_request_scope, reset_request_scope, get_request_scope


class AuditMiddleware(BaseHTTPMiddleware):
    """记录请求 method、path、状态码、耗时，并为每个请求建立独立的 request scope。"""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        token = set_request_scope({"request_id": request_id})
        started = time.perf_counter()
        try:
            response = await call_next(request)
            elapsed_ms = (time.perf_counter() - started) * 1000
            scope = get_request_scope()
            logger.info(
                f"{request.method} {request.url.path} -> {response.status_code} "
                f"({elapsed_ms:.1f} ms) principal={scope.get('principal_id')} request_id={request_id}"
            )
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            reset_request_scope(token)
