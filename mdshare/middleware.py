"""HTTP middleware: path normalization, security headers and request logging."""
import logging
import time
import uuid

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import RedirectResponse

logger = logging.getLogger(__name__)

API_PREFIX = "/api/"
VERSIONED_PREFIX = "/api/v1/"

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


class TrailingSlashMiddleware(BaseHTTPMiddleware):
    """Serve `/api/posts/` as `/api/posts` instead of redirecting."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        scope = request.scope
        if scope["path"] != "/" and scope["path"].endswith("/"):
            scope["path"] = scope["path"].rstrip("/")
            raw_path = scope.get("raw_path")
            if isinstance(raw_path, (bytes, bytearray)):
                scope["raw_path"] = raw_path.rstrip(b"/")
        return await call_next(request)


async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.update(SECURITY_HEADERS)
    return response


async def request_logging(request: Request, call_next):
    request_id = uuid.uuid4().hex[:8]
    started = time.perf_counter()
    logger.info("[%s] %s %s", request_id, request.method, request.url.path)

    response = await call_next(request)

    logger.info(
        "[%s] %s %s -> %d (%.0fms)",
        request_id,
        request.method,
        request.url.path,
        response.status_code,
        (time.perf_counter() - started) * 1000,
    )
    response.headers["X-Request-ID"] = request_id
    return response


async def versioned_api_paths(request: Request, call_next):
    """Route the unversioned `/api/...` paths the frontend calls to `/api/v1/...`.

    The path is rewritten in place; a 307 would break cross-origin fetches.
    `/api/health` lives at the root.
    """
    path = request.url.path
    if path == "/api/health":
        if request.method == "GET":
            return RedirectResponse(url="/health", status_code=307)
        request.scope["path"] = "/health"
    elif path.startswith(API_PREFIX) and not path.startswith(VERSIONED_PREFIX):
        request.scope["path"] = VERSIONED_PREFIX + path[len(API_PREFIX):]
    return await call_next(request)


def install_middleware(app: FastAPI) -> None:
    """Register the HTTP middleware. Starlette runs the last one added first."""
    app.add_middleware(TrailingSlashMiddleware)
    app.middleware("http")(security_headers)
    app.middleware("http")(request_logging)
    app.middleware("http")(versioned_api_paths)
