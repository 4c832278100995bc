from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from backoffice.api.api import api_router
from backoffice.api.responses import action_error_handler, request_validation_handler, unhandled_error_handler
from backoffice.core.config import settings
from backoffice.core.errors import ActionError
from backoffice.core.logging_config import get_logger, setup_logging
from backoffice.db.init_db import ensure_tables_exist
from backoffice.services.scheduler import init_scheduler, shutdown_scheduler

setup_logging(settings.LOG_LEVEL, settings.LOG_DIR)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Back-office starting")

    try:
        await ensure_tables_exist()
        logger.info("Database tables ready")
    except Exception as e:
        logger.warning(f"Table initialisation warning: {e}")

    init_scheduler()
    yield
    logger.info("Back-office shutting down")
    shutdown_scheduler()


app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_PREFIX}/openapi.json",
    description="Multi-tenant e-commerce back-office",
    lifespan=lifespan,
)

if settings.BACKEND_CORS_ORIGINS:
    logger.info(f"CORS origins: {settings.BACKEND_CORS_ORIGINS}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(origin) for origin in settings.BACKEND_CORS_ORIGINS],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.add_exception_handler(ActionError, action_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)
app.add_exception_handler(Exception, unhandled_error_handler)

app.include_router(api_router, prefix=settings.API_PREFIX)


@app.get("/")
async def root():
    return {"message": settings.PROJECT_NAME}


@app.get("/health")
async def health():
    return {"status": "ok"}
