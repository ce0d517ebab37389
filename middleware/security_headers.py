from starlette.middleware.base import BaseHTTPMiddleware

# Helmet's default header set, minus the ones that only matter for HTML pages
DEFAULT_SECURITY_HEADERS = {
    "Content-Security-Policy": "default-src 'self'; frame-ancestors 'none'; base-uri 'self'",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Origin-Agent-Cluster": "?1",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=63072000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Frame-Options": "DENY",
    "X-Permitted-Cross-Domain-Policies": "none",
    "X-XSS-Protection": "0",
}

# Docs pages load their UI from a CDN
_DOCS_PATHS = ("/docs", "/redoc", "/openapi.json")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, headers: dict[str, str] | None = None):
        super().__init__(app)
        self.headers = {**DEFAULT_SECURITY_HEADERS, **(headers or {})}

    async def dispatch(self, request, call_next):
        response = await call_next(request)

        skip_csp = request.url.path.startswith(_DOCS_PATHS)
        for name, value in self.headers.items():
            if skip_csp and name == "Content-Security-Policy":
                continue
            response.headers.setdefault(name, value)

        return response
