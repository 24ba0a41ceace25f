"""
Price-list import service.

FastAPI entry point: logging setup, CORS, health check, error handlers
and the /api/import router.

Run locally with:
    python main.py
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog

from config import settings, check_connection
from exceptions import AppError

# structlog renders through stdlib logging, which filters by LOG_LEVEL
logging.basicConfig(format="%(message)s", level=settings.log_level)

structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer() if settings.is_production
            else structlog.dev.ConsoleRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log configuration and catalog store reachability at startup."""
    logger.info(
        "import_service_starting",
        environment=settings.environment,
        preview_page_size=settings.import_preview_page_size,
        max_file_mb=settings.import_max_file_mb,
        parse_cache_ttl_minutes=settings.import_parse_cache_ttl_minutes,
    )

    db_status = check_connection()
    if db_status["status"] == "healthy":
        logger.info(
            "database_connected",
            products=db_status["products_count"],
            price_entries=db_status["price_entries_count"]
        )
    else:
        # The service still starts; /health reports degraded
        logger.error("database_connection_failed", error=db_status.get("error"))

    yield

    logger.info("import_service_stopping")


app = FastAPI(
    title="Price List Import",
    description="Import supplier price lists (Excel, CSV, PDF) into a tenant catalog",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url=None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check():
    """Service status plus catalog store connectivity."""
    db_status = check_connection()
    return {
        "status": "healthy" if db_status["status"] == "healthy" else "degraded",
        "timestamp": _now(),
        "environment": settings.environment,
        "database": db_status
    }


# ===================
# ERROR HANDLERS
# ===================

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """AppErrors raised before a route body runs (e.g. a missing X-Tenant-ID)."""
    logger.warning(
        "request_rejected",
        path=request.url.path,
        code=exc.code,
        status_code=exc.status_code
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    """Anything else: 500 with the standard error envelope."""
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        error_type=type(exc).__name__
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
                "details": {"error": str(exc)} if settings.debug else {},
                "timestamp": _now()
            }
        }
    )


from routes import imports_router  # noqa: E402

app.include_router(imports_router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug
    )
