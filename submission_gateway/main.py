import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

# Import models so they're registered with SQLAlchemy Base
from . import models  # noqa: F401
from .config import ALLOWED_ORIGINS, RATE_LIMIT_BACKEND, SECURITY_HEADERS_ENABLED
from .cors import PreflightCORSMiddleware
from .database import Base, engine
from .domain.submissions.admin_router import router as admin_submissions_router
from .domain.submissions.router import router as submissions_router
from .security_gate import build_security_gate
from .security_headers import SecurityHeadersMiddleware

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except Exception as e:
        # Ignore "already exists" errors from race conditions between workers
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")

    if RATE_LIMIT_BACKEND == "redis":
        try:
            from .rate_limiter import get_redis_client

            get_redis_client().ping()  # Connection test
            logger.info("Redis connection established")
        except Exception as e:
            logger.warning(
                f"Redis connection failed - submissions will get 503 until it recovers: {e}"
            )

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="Clean Up Bros Submission Gateway", version="1.0.0", lifespan=lifespan)

# One gate per process so rate-limit counters and blocks are shared across requests
app.state.security_gate = build_security_gate()


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=422, content={"detail": exc.errors()})


@app.middleware("http")
async def log_requests(request: Request, call_next):
    try:
        response = await call_next(request)
        return response
    except Exception as e:
        logger.error(f"{request.method} {request.url.path} - Error: {str(e)}")
        raise


if SECURITY_HEADERS_ENABLED:
    app.add_middleware(SecurityHeadersMiddleware, exclude_paths=["/health", "/docs", "/openapi.json"])
    logger.info("Security headers enabled")
else:
    logger.warning("Security headers DISABLED - only use in development!")

logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    PreflightCORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=False,
    allow_methods=["POST", "OPTIONS"],
    allow_headers=["Content-Type", "X-Admin-Secret"],
    expose_headers=["X-RateLimit-Remaining", "Retry-After"],
)

# Routes
app.include_router(submissions_router)
app.include_router(admin_submissions_router)


@app.get("/health")
def health():
    return {"status": "healthy"}
