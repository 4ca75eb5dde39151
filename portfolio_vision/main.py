"""
Portfolio Vision: FastAPI Application Entry Point
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from portfolio_vision import __version__
from portfolio_vision.core.config import settings
from portfolio_vision.core.database import engine, init_local_schema
from portfolio_vision.core.exceptions import PortfolioVisionError
from portfolio_vision.core.identity import StorageMode
from portfolio_vision.core.logging import setup_logging
from portfolio_vision.core.responses import err
from portfolio_vision.routers import backup, dashboard, planning, portfolios, snapshots

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.LOG_LEVEL, settings.json_logs)
    logger.info(
        "api.startup",
        env=settings.APP_ENV,
        log_level=settings.LOG_LEVEL,
        storage_mode=settings.STORAGE_MODE.value,
    )
    if settings.STORAGE_MODE == StorageMode.LOCAL:
        await init_local_schema(engine)
    yield
    await engine.dispose()
    logger.info("api.shutdown")


app = FastAPI(
    title="Portfolio Vision API",
    description="Snapshots, analítica y copias de seguridad de portfolios cripto.",
    version=__version__,
    docs_url="/docs" if settings.APP_ENV != "production" else None,
    redoc_url="/redoc" if settings.APP_ENV != "production" else None,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middlewares
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Authorization", "Content-Type"],
)

# ---------------------------------------------------------------------------
# Exception handlers globales; mantienen formato { data, error, meta }
# ---------------------------------------------------------------------------


@app.exception_handler(PortfolioVisionError)
async def domain_exception_handler(request: Request, exc: PortfolioVisionError) -> JSONResponse:
    log = logger.warning if exc.status_code < 500 else logger.error
    log("api.domain_error", path=request.url.path, error=type(exc).__name__, message=exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=err(exc.message, meta={"retryable": exc.retryable}),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    # 401 del Bearer JWT: se conserva WWW-Authenticate
    return JSONResponse(status_code=exc.status_code, content=err(str(exc.detail)), headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Body o query inválidos: un mensaje por campo, en el mismo envelope que los errores de dominio."""
    problems = [
        {"field": ".".join(str(part) for part in error["loc"] if part != "body"), "message": error["msg"]}
        for error in exc.errors()
    ]
    logger.info("api.invalid_request", path=request.url.path, fields=[p["field"] for p in problems])
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=err("Petición inválida", meta={"problems": problems, "retryable": False}),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("api.unhandled_error", path=request.url.path, error=type(exc).__name__, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=err("Error interno del servidor", meta={"retryable": False}),
    )


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(portfolios.router, prefix="/api/v1/portfolios", tags=["portfolios"])
app.include_router(snapshots.router, prefix="/api/v1/snapshots", tags=["snapshots"])
app.include_router(dashboard.router, prefix="/api/v1/dashboard", tags=["dashboard"])
app.include_router(planning.router, prefix="/api/v1/planning", tags=["planning"])
app.include_router(backup.router, prefix="/api/v1/backup", tags=["backup"])


# ---------------------------------------------------------------------------
# Health check (sin auth)
# ---------------------------------------------------------------------------


@app.get("/health", tags=["health"])
async def health_check() -> dict:
    return {"status": "ok", "env": settings.APP_ENV, "storage_mode": settings.STORAGE_MODE.value}
