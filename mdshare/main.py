import logging
import traceback
from contextlib import asynccontextmanager

import sentry_sdk
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.responses import JSONResponse

from mdshare.config import get_settings

settings = get_settings()
if settings.sentry_dsn:
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        traces_sample_rate=0.1,
        environment=settings.environment or "production",
    )

from mdshare.database import engine, get_db  # noqa: E402
from mdshare.dependencies import limiter  # noqa: E402
from mdshare.exceptions import AppError  # noqa: E402
from mdshare.middleware import install_middleware  # noqa: E402
from mdshare.routers import auth, posts  # noqa: E402

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

VALUE_ERROR_PREFIX = "Value error, "


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("MDShare API starting (environment=%s)", settings.environment or "production")
    yield
    await engine.dispose()
    logger.info("MDShare API stopped")


app = FastAPI(
    title="MDShare API",
    description="""
## MDShare API Overview

MDShare lets people write markdown documents, keep them private or publish them, and vote on what others publish.

- **Authentication**: Registration with email verification, login, password reset, GitHub sign-in and JWT tokens
- **Posts**: Create, read, update and delete markdown documents; "my documents" listing
- **Explore**: Public documents ranked by votes
- **Votes**: Up/down votes with toggle semantics

Endpoints that act on behalf of a user require a Bearer access token.
Unversioned `/api/...` paths are served as `/api/v1/...`.
""",
    version="1.0.0",
    lifespan=lifespan,
    redirect_slashes=False,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

install_middleware(app)
# Added last so it wraps everything, including redirects and error responses
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(dict.fromkeys(o for o in (settings.frontend_url, "http://localhost:3000") if o)),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

api_v1 = APIRouter(prefix="/api/v1")
api_v1.include_router(auth.router, prefix="/auth", tags=["Authentication"])
api_v1.include_router(posts.router, prefix="/posts", tags=["Posts"])
app.include_router(api_v1)


def _first_error_message(errors: list[dict]) -> str:
    """`field: message` for the first validation error, for display in the frontend."""
    if not errors:
        return "Validation failed"
    first = errors[0]
    msg = first.get("msg", "Invalid input")
    if msg.startswith(VALUE_ERROR_PREFIX):
        msg = msg[len(VALUE_ERROR_PREFIX):]
    loc = first.get("loc", ())
    return f"{loc[-1]}: {msg}" if len(loc) >= 2 else msg


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("Application error: %s (path=%s)", exc.message, request.url.path)
    else:
        logger.info("%s %s -> %d %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Validation errors are 400s carrying the error list plus a one-line message."""
    errors = exc.errors()
    # ctx can hold the raw ValueError, which is not JSON serialisable; input may be the 1MB body
    detail = [{k: v for k, v in e.items() if k not in ("ctx", "input")} for e in errors]
    logger.warning("Request validation error: path=%s errors=%s", request.url.path, detail)
    return JSONResponse(
        status_code=400,
        content={"detail": detail, "message": _first_error_message(errors)},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    if isinstance(exc, HTTPException):
        raise exc
    logger.exception("Unhandled exception: %s (path=%s)", exc, request.url.path)
    if settings.debug:
        return JSONResponse(
            status_code=500, content={"detail": str(exc), "traceback": traceback.format_exc()}
        )
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.get("/health", status_code=200)
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Health check including database connectivity.

    **Response:** {status: "ok"|"degraded", checks: {database: "ok"|"error: ..."}}
    """
    checks: dict[str, str] = {}
    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        logger.error("Health check database failure: %s", e)
        checks["database"] = f"error: {e}"

    status = "ok" if all(v == "ok" for v in checks.values()) else "degraded"
    return {"status": status, "checks": checks}
