import logging

from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        client = request.client.host if request.client else ""
        if request.method == "GET":
            logger.info(
                "HTTP %s %s  topic: %s, display_name: %s src_ip: %s x_forwarded_for: %s",
                request.method,
                request.url.path,
                request.query_params.get("topic", ""),
                request.query_params.get("display_name", ""),
                client,
                request.headers.get("X-Forwarded-For", ""),
            )
        else:
            # form fields are logged by the handler that parses the body
            logger.info(
                "HTTP %s %s  src_ip: %s x_forwarded_for: %s",
                request.method,
                request.url.path,
                client,
                request.headers.get("X-Forwarded-For", ""),
            )
        return await call_next(request)
