"""Middleware module for the Ceylon Smart Citizen auth service."""

from citizen_auth.middleware.request_logging import RequestLoggingMiddleware
from citizen_auth.middleware.security_headers import SecurityHeadersMiddleware

__all__ = [
    "RequestLoggingMiddleware",
    "SecurityHeadersMiddleware",
]
