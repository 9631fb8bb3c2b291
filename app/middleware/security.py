"""
Response hardening.

Share tokens travel in the path of /shared/ URLs, so those responses are
never cached and never sent as a Referer. Tracking and API responses are
per-viewer and uncacheable too.
"""

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

NO_STORE_PREFIXES = ("/v1/", "/shared/", "/demo/")
TOKEN_PREFIXES = ("/shared/",)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)

        for header in ("server", "X-Powered-By"):
            if header in response.headers:
                del response.headers[header]

        path = request.url.path

        if path.startswith(NO_STORE_PREFIXES):
            response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, private"
            response.headers["Pragma"] = "no-cache"
            response.headers["Expires"] = "0"

        if path.startswith(TOKEN_PREFIXES):
            response.headers["Referrer-Policy"] = "no-referrer"
            response.headers["X-Robots-Tag"] = "noindex, nofollow"
        else:
            response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        # The player is embeddable only from our own origin
        response.headers["X-Frame-Options"] = "SAMEORIGIN"
        response.headers.setdefault("Content-Security-Policy", "frame-ancestors 'self'")
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response
