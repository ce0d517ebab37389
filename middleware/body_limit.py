from starlette.middleware.base import BaseHTTPMiddleware

from core.exceptions import PayloadTooLargeException
from middleware.error_handler import error_response


class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject request bodies larger than ``max_size`` bytes with 413."""

    def __init__(self, app, max_size: int = 10 * 1024):
        super().__init__(app)
        self.max_size = max_size

    def _too_large(self, request):
        exc = PayloadTooLargeException(f"Request body exceeds {self.max_size} bytes")
        return error_response(request, exc)

    async def dispatch(self, request, call_next):
        declared = request.headers.get("content-length")
        if declared is not None:
            if declared.isdigit() and int(declared) > self.max_size:
                return self._too_large(request)
        elif request.method in ("POST", "PUT", "PATCH"):
            body = await request.body()
            if len(body) > self.max_size:
                return self._too_large(request)
        return await call_next(request)
