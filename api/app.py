"""
FastAPI application factory.

Usage:
    python -m api.app                    # Dev server on port 8000
    APP_DB_PATH=/data/ecfr.sqlite python -m api.app

OpenAPI docs available at http://localhost:8000/docs after starting.

Structured JSON logging when APP_LOG_FORMAT=json; CORS origins configurable
via APP_CORS_ORIGINS.  Every error response has the shape
``{"error": str, "status_code": int}`` with an optional ``detail``.
"""

import json
import logging
import sqlite3
import time
import uuid
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response

from api.database import get_db_path, set_db_path
from api.models import ErrorResponse
from api.routes import agencies, corrections, metadata, navigation, regulation, search, titles
from utils.config import AppConfig

# ── Configuration ─────────────────────────────────────────────────────────────
_cfg = AppConfig.from_env()

# Requests slower than this are logged at WARNING
_SLOW_REQUEST_MS = 500

# ── Structured JSON logging ───────────────────────────────────────────────────


class _JsonFormatter(logging.Formatter):
    """Emit log records as newline-delimited JSON."""

    def format(self, record: logging.LogRecord) -> str:
        data: dict = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        # Merge extra fields added via logger.info("...", extra={...})
        for key in ("method", "path", "status", "duration_ms", "request_id"):
            if hasattr(record, key):
                data[key] = getattr(record, key)
        if record.exc_info:
            data["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(data)


_logger = logging.getLogger("ecfr_api")
_handler = logging.StreamHandler()
if _cfg.log_format == "json":
    _handler.setFormatter(_JsonFormatter())
else:
    _handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    )
logging.basicConfig(handlers=[_handler], level=logging.INFO, force=True)

# Cache-Control by path prefix; first match wins
_CACHE_POLICIES = (
    ("/api/v1/titles", "public, max-age=3600"),
    ("/api/v1/agencies", "public, max-age=3600"),
    ("/api/v1/metadata", "public, max-age=3600"),
    ("/api/v1/search", "private, no-cache"),
    ("/api/v1/corrections", "private, no-cache"),
    ("/api/v1/regulation/corrections", "private, no-cache"),
)


def _error_body(status_code: int, error: str, detail=None) -> dict:
    return ErrorResponse(
        error=error, status_code=status_code, detail=detail,
    ).model_dump(exclude_none=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Warn on startup when the database has not been built yet."""
    db_path = get_db_path()
    _logger.info("Starting eCFR Analyzer API with settings %s", _cfg.to_dict())
    if not db_path.exists():
        _logger.warning(
            "Database not found at %s. Run 'python build_ecfr_db.py <snapshot.json>' first.",
            db_path,
        )
    yield


def create_app(db_path: Path | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        db_path: Override the database path (useful for testing).

    Returns:
        Configured FastAPI application instance.
    """
    if db_path is not None:
        set_db_path(db_path)

    app = FastAPI(
        title="eCFR Analyzer API",
        summary="Read-only API for browsing, searching and analysing the Code of Federal Regulations.",
        description=(
            "## eCFR Analyzer API\n\n"
            "Browse the CFR hierarchy (title → chapter → subchapter → part → section), "
            "read regulation text, search it, and analyse agencies and the history "
            "of corrections.\n\n"
            "### Key concepts\n"
            "- **Navigation** returns an ordered tree; pass `parent` to lazily fetch "
            "one node's children.\n"
            "- **Search** returns exact phrase/citation matches first, then "
            "full-text matches ranked by SQLite FTS5 BM25.\n"
            "- **Corrections** record when an error occurred in a regulation and "
            "when it was corrected."
        ),
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_tags=[
            {"name": "hierarchy", "description": "Titles and regulation detail."},
            {"name": "navigation", "description": "Ordered navigation tree with lazy expansion."},
            {"name": "search", "description": "Exact and full-text search over regulation text."},
            {"name": "agencies", "description": "Agencies, their references and statistics."},
            {"name": "corrections", "description": "Correction history and analytics."},
            {"name": "meta", "description": "Health check and store metadata."},
        ],
    )

    # ── CORS middleware ───────────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cfg.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "HEAD", "OPTIONS"],
        allow_headers=["*"],
    )

    # ── ETag + Cache-Control middleware ───────────────────────────────────────

    def _compute_etag() -> str | None:
        """Compute a weak ETag from the database and WAL file stats.

        Size and modification time of both files are used, so a write that
        is still sitting in the ``-wal`` file changes the tag too.
        """
        path = get_db_path()
        try:
            db_stat = path.stat()
        except OSError:
            return None
        parts = [db_stat.st_size, db_stat.st_mtime_ns]
        wal = path.with_name(path.name + "-wal")
        if wal.exists():
            wal_stat = wal.stat()
            # An empty WAL holds no pending writes
            if wal_stat.st_size:
                parts += [wal_stat.st_size, wal_stat.st_mtime_ns]
        return 'W/"' + "-".join(f"{p:x}" for p in parts) + '"'

    @app.middleware("http")
    async def cache_control_middleware(request: Request, call_next):
        """Add Cache-Control headers and handle ETag/If-None-Match."""
        path = request.url.path

        etag = None
        if request.method == "GET" and path.startswith("/api/v1"):
            etag = _compute_etag()
            if etag and request.headers.get("If-None-Match") == etag:
                return Response(status_code=304, headers={"ETag": etag})

        response = await call_next(request)

        if etag and response.status_code < 400:
            response.headers["ETag"] = etag
            for prefix, policy in _CACHE_POLICIES:
                if path.startswith(prefix):
                    response.headers.setdefault("Cache-Control", policy)
                    break

        return response

    # ── Request logging middleware ────────────────────────────────────────────

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log each request with its status and duration; tag it with an ID."""
        request_id = str(uuid.uuid4())[:8]
        start = time.monotonic()
        path = request.url.path

        response = await call_next(request)
        duration_ms = (time.monotonic() - start) * 1000
        response.headers["X-Request-ID"] = request_id

        if _cfg.log_format == "json":
            _logger.info(
                "request",
                extra={
                    "method": request.method,
                    "path": path,
                    "status": response.status_code,
                    "duration_ms": round(duration_ms, 1),
                    "request_id": request_id,
                },
            )
        else:
            _logger.info(
                "method=%s path=%s status=%d duration_ms=%.1f rid=%s",
                request.method, path, response.status_code, duration_ms, request_id,
            )
        if duration_ms > _SLOW_REQUEST_MS:
            _logger.warning(
                "slow_request method=%s path=%s duration_ms=%.1f",
                request.method, path, duration_ms,
            )
        return response

    # ── Error handling ────────────────────────────────────────────────────────

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.status_code, str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        """Map request validation errors to 400 in the standard error shape."""
        messages = []
        for err in exc.errors():
            loc = ".".join(str(p) for p in err.get("loc", ()) if p != "query")
            messages.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
        return JSONResponse(
            status_code=400,
            content=_error_body(400, "; ".join(messages) or "Invalid request"),
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(status_code=400, content=_error_body(400, str(exc)))

    @app.exception_handler(sqlite3.Error)
    async def database_error_handler(request: Request, exc: sqlite3.Error):
        _logger.error("database error on %s", request.url.path, exc_info=exc)
        return JSONResponse(status_code=500, content=_error_body(500, str(exc)))

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Catch unhandled exceptions and return JSON instead of HTML traceback."""
        _logger.error("unhandled error on %s", request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=500,
            content=_error_body(500, "Internal server error", str(exc)),
        )

    # ── Health check ──────────────────────────────────────────────────────────

    @app.get("/health", tags=["meta"], summary="Health check")
    def health():
        """Return 200 OK if the API is running and can reach the database."""
        path = get_db_path()
        if not path.exists():
            return JSONResponse(
                status_code=503,
                content={"status": "no_database", "database": str(path)},
            )
        try:
            conn = sqlite3.connect(str(path))
            try:
                count = conn.execute("SELECT COUNT(*) FROM nodes").fetchone()[0]
            finally:
                conn.close()
        except sqlite3.Error as e:
            return JSONResponse(
                status_code=503,
                content={"status": "degraded", "error": str(e)},
            )
        return {"status": "ok", "database": str(path), "nodes": count}

    # ── Register routers ──────────────────────────────────────────────────────

    prefix = "/api/v1"
    app.include_router(titles.router,      prefix=prefix)
    app.include_router(navigation.router,  prefix=prefix)
    app.include_router(regulation.router,  prefix=prefix)
    app.include_router(search.router,      prefix=prefix)
    app.include_router(agencies.router,    prefix=prefix)
    app.include_router(corrections.router, prefix=prefix)
    app.include_router(metadata.router,    prefix=prefix)

    return app


# Singleton instance for uvicorn
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.app:app",
        host=_cfg.api_host,
        port=_cfg.api_port,
        reload=True,
        log_level="info",
    )
