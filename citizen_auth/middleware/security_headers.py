"""Security headers applied to every auth service response."""

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

# Responses carry credentials, so nothing may be cached or framed
SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Cache-Control": "no-store",
    "Pragma": "no-cache",
    "Referrer-Policy": "no-referrer",
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
}

HSTS_VALUE = "max-age=31536000; includeSubDomains"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware to add security headers to all responses."""

    def __init__(self, app, hsts: bool = True):
        super().__init__(app)
        self.hsts = hsts

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)

        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)

        # Only advertise HSTS when the client actually reached us over TLS
        is_https = (
            request.url.scheme == "https"
            or request.headers.get("x-forwarded-proto", "") == "https"
        )
        if self.hsts and is_https:
            response.headers["Strict-Transport-Security"] = HSTS_VALUE

        return response
