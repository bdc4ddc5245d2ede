from fastapi import FastAPI, Depends, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import HTTPException, RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import structlog

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from finverno.config import settings
from finverno.database import init_db, close_db, get_db
from finverno.errors import DependencyError
from finverno.logging_config import setup_logging
from finverno.services.cache import TTLCache, UpstashTTLCache, cache as app_cache, get_cache
from finverno.middleware.correlation import CorrelationIdMiddleware

# Import models so they are registered with Base.metadata
import finverno.models  # noqa: F401

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("starting_finverno", env=settings.ENVIRONMENT)
    await init_db()
    yield
    if isinstance(app_cache, UpstashTTLCache):
        await app_cache.aclose()
    await close_db()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Global exception handlers: every error renders as
# {"error": {"code": "...", "message": "...", "details": ...}}
# ---------------------------------------------------------------------------

@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail
    if isinstance(detail, str):
        detail = {"error": {"code": "HTTP_ERROR", "message": detail}}
    elif isinstance(detail, dict) and "error" not in detail:
        detail = {"error": detail}
    return JSONResponse(status_code=exc.status_code, content=detail, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "Request validation failed",
                "details": jsonable_encoder(exc.errors()),
            }
        },
    )


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    # Driver message passes through verbatim; no retry.
    message = str(getattr(exc, "orig", None) or exc)
    logger.error("database_error", error=message, path=request.url.path)
    error = DependencyError("Database operation failed", details=message)
    return JSONResponse(status_code=error.status_code, content=error.detail)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        exc_info=exc,
    )
    error = DependencyError("Internal server error", details=type(exc).__name__)
    return JSONResponse(status_code=error.status_code, content=error.detail)


app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_origin_regex=settings.CORS_ORIGIN_REGEX,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Requested-With", "X-Request-ID"],
)


@app.get("/health", tags=["System"])
async def health(
    response: Response,
    db: AsyncSession = Depends(get_db),
    cache: TTLCache = Depends(get_cache),
):
    health_status = {"status": "healthy", "version": settings.APP_VERSION, "checks": {}}

    try:
        await db.execute(text("SELECT 1"))
        health_status["checks"]["db"] = "ok"
    except SQLAlchemyError as e:
        logger.error("health_check_db_failed", error=str(e))
        health_status["checks"]["db"] = "error"
        health_status["status"] = "unhealthy"

    try:
        ok = await cache.ping()
        health_status["checks"]["cache"] = "ok" if ok else "error"
        if not ok:
            health_status["status"] = "unhealthy"
    except Exception as e:
        logger.error("health_check_cache_failed", error=str(e))
        health_status["checks"]["cache"] = "error"
        health_status["status"] = "unhealthy"

    if health_status["status"] == "unhealthy":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return health_status


# --- Routers ---
from finverno.routes.purchase_requests import router as pr_router  # noqa: E402
from finverno.routes.admin_purchase_requests import router as admin_pr_router  # noqa: E402
from finverno.routes.delivery import admin_router as admin_delivery_router  # noqa: E402
from finverno.routes.delivery import tracker_router  # noqa: E402
from finverno.routes.invoices import router as invoices_router  # noqa: E402
from finverno.routes.takeoffs import router as takeoffs_router  # noqa: E402
from finverno.routes.takeoffs import verification_router  # noqa: E402
from finverno.routes.takeoffs import admin_router as admin_takeoff_router  # noqa: E402
from finverno.routes.capital import investor_router  # noqa: E402
from finverno.routes.capital import admin_router as admin_capital_router  # noqa: E402
from finverno.routes.projects import router as projects_router  # noqa: E402
from finverno.routes.admin import router as admin_router  # noqa: E402
from finverno.jobs.scheduled import router as cron_router  # noqa: E402

app.include_router(pr_router, prefix="/purchase-requests", tags=["Purchase Requests"])
app.include_router(admin_pr_router, prefix="/admin/purchase-requests", tags=["Admin"])
app.include_router(admin_delivery_router, prefix="/admin/delivery", tags=["Admin", "Delivery"])
app.include_router(tracker_router, prefix="/delivery-tracker", tags=["Delivery"])
app.include_router(invoices_router, prefix="/invoices", tags=["Invoices"])
app.include_router(takeoffs_router, prefix="/boq-takeoffs", tags=["Takeoffs"])
app.include_router(verification_router, prefix="/takeoff-verification", tags=["Takeoffs"])
app.include_router(admin_takeoff_router, prefix="/admin/takeoff-verification", tags=["Admin", "Takeoffs"])
app.include_router(investor_router, prefix="/investor", tags=["Investor"])
app.include_router(admin_capital_router, prefix="/admin/capital", tags=["Admin", "Capital"])
app.include_router(projects_router, prefix="/projects", tags=["Projects"])
app.include_router(admin_router, prefix="/admin", tags=["Admin"])
app.include_router(cron_router, prefix="/cron", tags=["Cron"])
