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

from orgaflow.config import settings
from orgaflow.database import init_db, close_db, get_db
from orgaflow.logging_config import setup_logging
from orgaflow.middleware.correlation import CorrelationIdMiddleware
from orgaflow.schemas.common import error_body

# Import models so they are registered with Base.metadata
import orgaflow.models  # noqa: F401

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info(
        "starting_orgaflow",
        env=settings.ENVIRONMENT,
        default_workflow=settings.default_workflow_list,
    )
    await init_db()
    yield
    await close_db()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Global exception handlers: every error leaves as
# {"error": {"code": "...", "message": "..."}}
# ---------------------------------------------------------------------------

@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail
    if isinstance(detail, str):
        code = "NOT_FOUND" if exc.status_code == status.HTTP_404_NOT_FOUND else "HTTP_ERROR"
        detail = error_body(code, detail)
    elif isinstance(detail, dict) and "error" not in detail:
        detail = {"error": detail}
    if exc.status_code >= 500:
        logger.error("http_error", status=exc.status_code, detail=detail)
    return JSONResponse(status_code=exc.status_code, content=detail, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=error_body(
            "VALIDATION_ERROR", "Request validation failed", jsonable_encoder(exc.errors())
        ),
    )


app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_origin_regex=settings.CORS_ORIGIN_REGEX,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Requested-With", "X-Request-ID"],
)


@app.get("/health", tags=["System"])
async def health(response: Response, db: AsyncSession = Depends(get_db)):
    health_status = {"status": "healthy", "version": settings.APP_VERSION, "checks": {}}

    try:
        await db.execute(text("SELECT 1"))
        health_status["checks"]["db"] = "ok"
    except (SQLAlchemyError, OSError) as e:
        logger.error("health_check_db_failed", error=str(e))
        health_status["checks"]["db"] = "error"
        health_status["status"] = "unhealthy"
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return health_status


# --- Routers ---
from orgaflow.routes.purchase_requests import router as pr_router  # noqa: E402
from orgaflow.routes.price_analysis import router as price_analysis_router  # noqa: E402
from orgaflow.routes.approvals import router as approvals_router  # noqa: E402
from orgaflow.routes.workflow import router as workflow_router  # noqa: E402
from orgaflow.routes.purchase_orders import router as po_router  # noqa: E402

app.include_router(pr_router, prefix="/api/v1/purchase-requests", tags=["Purchase Requests"])
app.include_router(price_analysis_router, prefix="/api/v1/purchase-requests", tags=["Price Analysis"])
app.include_router(approvals_router, prefix="/api/v1/approvals", tags=["Approvals"])
app.include_router(workflow_router, prefix="/api/v1/workflow", tags=["Workflow"])
app.include_router(po_router, prefix="/api/v1/purchase-orders", tags=["Purchase Orders"])
