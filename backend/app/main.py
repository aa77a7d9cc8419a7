"""FastAPI application entry point."""

import json
import logging
import sys
import time
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from starlette.middleware.base import BaseHTTPMiddleware

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.api.routes import api_router
from app.core.config import settings
from app.core.rate_limit import limiter
from app.db.base import Base
from app.db.session import SessionLocal, engine

import app.models  # noqa: F401  registers every table on Base.metadata

APP_VERSION = "1.0.0"
QUIET_PATHS = {"/", "/health", "/docs", "/openapi.json"}


class JSONFormatter(logging.Formatter):
    """One JSON object per line for log shippers."""

    def format(self, record):
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def configure_logging() -> None:
    """Human-readable logs while debugging, JSON lines otherwise."""
    if settings.debug:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    else:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, settings.log_level))


configure_logging()
logger = logging.getLogger(__name__)
request_logger = logging.getLogger("requests")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log each API call with its status and latency, tagged with a request id."""

    async def dispatch(self, request: Request, call_next):
        if request.url.path in QUIET_PATHS:
            return await call_next(request)

        request_id = request.headers.get("X-Request-ID") or uuid4().hex[:12]
        started = time.perf_counter()
        client_ip = request.client.host if request.client else "unknown"
        line = f"[{request_id}] {request.method} {request.url.path} from {client_ip}"

        try:
            response = await call_next(request)
        except Exception:
            request_logger.exception(f"{line} failed after {time.perf_counter() - started:.3f}s")
            raise

        request_logger.log(
            logging.WARNING if response.status_code >= 400 else logging.INFO,
            f"{line} -> {response.status_code} in {time.perf_counter() - started:.3f}s",
        )
        response.headers["X-Request-ID"] = request_id
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info(f"Tip service starting (database: {settings.redacted_database_url}, timezone: {settings.timezone})")

    # SQLite dev databases are created on the fly; PostgreSQL goes through Alembic
    if settings.database_url.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)
        logger.info("SQLite tables ensured")

    yield

    logger.info("Tip service stopped")


app = FastAPI(
    title="RevManager Tips API",
    description="Daily tip pool calculation, payouts and disputes for restaurant staff",
    version=APP_VERSION,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=settings.cors_origins_list != ["*"],
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
)

app.include_router(api_router, prefix=settings.api_v1_prefix)


@app.get("/")
def root():
    return {"name": app.title, "version": APP_VERSION}


@app.get("/health")
def health_check():
    """Liveness plus a database round trip."""
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        database = "healthy"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        database = "unhealthy"
    finally:
        db.close()

    return {
        "status": "healthy" if database == "healthy" else "degraded",
        "version": APP_VERSION,
        "database": database,
    }
