from starlette.middleware.base import BaseHTTPMiddleware
from fastapi import Request

from ..utils.logging import setup_logger
from .trace_id_middleware import get_trace_id

logger = setup_logger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        client_ip = request.client.host if request.client else None
        logger.info("", extra={
            "operation": "Middleware Request logging",
            "client_ip": client_ip,
            "method": request.method,
            "path": request.url.path,
            "trace_id": get_trace_id(request),
        })

        response = await call_next(request)

        logger.info("", extra={
            "operation": "Middleware Response logging",
            "client_ip": client_ip,
            "status_code": response.status_code,
            "trace_id": get_trace_id(request),
        })

        return response
