"""
main.py
FastAPI application entry point.
Registers all routers, middleware, exception handlers and startup/shutdown events.
"""

import json
import logging
import os
import time
import uuid
from contextlib import asynccontextmanager
from logging import LogRecord

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from jose import JWTError
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.exceptions import HTTPException as StarletteHTTPException

from config.database import close_db, get_db, get_db_context, init_db
from config.redis_client import close_redis, get_redis, init_redis
from config.settings import settings
from shared.exceptions import AppError
from shared.schemas.schemas import ErrorResponse
from shared.utils.security import verify_access_token

# Service routers
from services.admin.router import router as admin_router
from services.booking.router import router as booking_router
from services.comment.router import router as comment_router
from services.provider.router import router as provider_router
from services.user.router import router as user_router


# ── Logging ──────────────────────────────────────────────────

class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "instance": os.getenv("INSTANCE_NAME", "unknown"),
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data)


handler = logging.StreamHandler()
handler.setFormatter(JSONFormatter())
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    handlers=[handler],
)
logger = logging.getLogger(__name__)


# ── Lifespan (startup/shutdown) ───────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle handler."""
    logger.info(f"Starting {settings.APP_NAME} ({settings.APP_ENV})...")

    await init_db()
    logger.info("Database connected")

    await init_redis()
    logger.info("Redis connected")

    await seed_admin()

    logger.info(f"{settings.APP_NAME} v{settings.APP_VERSION} is ready")
    yield

    await close_redis()
    await close_db()
    logger.info("Server shutdown complete")


# ── Error envelope ────────────────────────────────────────────

def _error(status_code: int, message: str, request: Request, headers: dict | None = None) -> JSONResponse:
    body = ErrorResponse(message=message, request_id=getattr(request.state, "request_id", None))
    return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)


def _validation_message(exc: RequestValidationError) -> str:
    """First validation error as a readable sentence."""
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    message = str(first.get("msg", "Invalid request")).removeprefix("Value error, ")
    field = ".".join(str(p) for p in first.get("loc", ())[1:])
    if first.get("type") == "missing":
        return f"{field} is required" if field else "All fields are required"
    if first.get("type") == "value_error" or not field:
        return message
    return f"{field}: {message}"


def _verified_token(request: Request) -> dict | None:
    """Payload of the request's access token (cookie, then Bearer header) if it verifies."""
    token = request.cookies.get(settings.AUTH_COOKIE_NAME)
    if not token:
        scheme, _, credentials = request.headers.get("Authorization", "").partition(" ")
        token = credentials.strip() if scheme.lower() == "bearer" else None
    if not token:
        return None
    try:
        return verify_access_token(token)
    except JWTError:
        return None


def register_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        return _error(exc.status_code, exc.message, request)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail), request, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return _error(400, _validation_message(exc), request)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Catch-all. Never expose stack traces outside debug mode."""
        request_id = getattr(request.state, "request_id", None)
        logger.error(f"[{request_id}] Unhandled exception: {exc}", exc_info=True)
        detail = str(exc) if settings.DEBUG else "Internal Server Error"
        return _error(500, detail, request)


# ── App Factory ───────────────────────────────────────────────

def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="""
## Local Services Marketplace API

- **Users**: email/password accounts, JWT in an HTTP-only cookie
- **Providers**: profiles, portfolios and service offerings
- **Bookings**: pending → accepted / rejected / cancelled → completed
- **Comments**: customer reviews on provider profiles
- **Admin**: platform-wide booking dashboard

### Authentication
Send the `jwt` cookie set by `/api/user/login`, or
`Authorization: Bearer <token>` for non-browser clients.
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Custom Middleware ──────────────────────────────────────────

    @app.middleware("http")
    async def rate_limit_middleware(request: Request, call_next):
        """
        Fixed-window limiter keyed by client IP. Requests carrying a valid,
        unrevoked access token are not limited here. Fails open if Redis is down.
        """
        skip_paths = {"/health", "/docs", "/redoc", "/openapi.json", "/metrics"}
        if request.url.path in skip_paths:
            return await call_next(request)

        try:
            from config.redis_client import RedisCache, redis_client
            if redis_client:
                cache = RedisCache(redis_client)
                payload = _verified_token(request)
                trusted = bool(payload and payload.get("jti")) and not await cache.is_token_revoked(payload["jti"])
                if not trusted:
                    client_ip = request.client.host if request.client else "unknown"
                    allowed = await cache.check_rate_limit(
                        f"rate:unauth:{client_ip}", settings.RATE_LIMIT_UNAUTH_PER_MINUTE
                    )
                    if not allowed:
                        logger.warning(f"Rate limit exceeded for IP {client_ip}")
                        return _error(429, "Rate limit exceeded. Please slow down.", request, {"Retry-After": "60"})
        except Exception as e:
            logger.error(f"Rate limit check failed: {e}")

        return await call_next(request)

    @app.middleware("http")
    async def process_time_middleware(request: Request, call_next):
        """Track and expose request processing time."""
        start = time.perf_counter()
        response = await call_next(request)
        process_time = round((time.perf_counter() - start) * 1000, 2)
        response.headers["X-Process-Time"] = f"{process_time}ms"
        return response

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """Add unique X-Request-ID to every request."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    # ── Middleware (each one added wraps the ones before it) ───────
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Process-Time"],
    )

    register_exception_handlers(app)

    # ── Routes ────────────────────────────────────────────────────

    @app.get("/health", tags=["Health"], include_in_schema=False)
    async def health_check(db: AsyncSession = Depends(get_db), redis=Depends(get_redis)):
        checks = {"status": "ok", "version": settings.APP_VERSION}

        try:
            await db.execute(text("SELECT 1"))
            checks["database"] = "ok"
        except Exception as e:
            logger.warning(f"Health check: database unavailable: {e}")
            checks["database"] = "error"
            checks["status"] = "degraded"

        try:
            await redis.ping()
            checks["redis"] = "ok"
        except Exception as e:
            logger.warning(f"Health check: redis unavailable: {e}")
            checks["redis"] = "error"
            checks["status"] = "degraded"

        status_code = 200 if checks["status"] == "ok" else 503
        return JSONResponse(content=checks, status_code=status_code)

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "success": True,
            "name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "docs": "/docs",
            "health": "/health",
        }

    # Register all service routers
    app.include_router(user_router)
    app.include_router(provider_router)
    app.include_router(booking_router)
    app.include_router(comment_router)
    app.include_router(admin_router)

    # ── Prometheus Metrics ─────────────────────────────────────────
    Instrumentator().instrument(app).expose(app, endpoint="/metrics", tags=["Monitoring"])

    return app


# ── Bootstrap admin ───────────────────────────────────────────

async def seed_admin() -> None:
    """Create the configured admin account on first run. Admins are never self-registered."""
    from shared.models.models import User, UserRole
    from shared.utils.security import hash_password

    if not settings.ADMIN_EMAIL or not settings.ADMIN_PASSWORD:
        return

    email = settings.ADMIN_EMAIL.lower()
    async with get_db_context() as db:
        existing = await db.scalar(select(User).where(User.email == email))
        if existing:
            return
        db.add(
            User(
                name=settings.ADMIN_NAME,
                email=email,
                password_hash=hash_password(settings.ADMIN_PASSWORD),
                phone_number=settings.ADMIN_PHONE_NUMBER,
                role=UserRole.ADMIN,
            )
        )
    logger.info(f"Seeded admin account {email}")


# ── Entry Point ───────────────────────────────────────────────

app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        workers=1 if settings.DEBUG else settings.WORKERS,
        log_level="debug" if settings.DEBUG else "info",
        access_log=True,
    )
