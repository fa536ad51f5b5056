"""
FastAPI application entry point.

Configures middleware, routes, and exception handlers.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from taskboard.core.config import settings
from taskboard.core.exceptions import (
    BadRequest,
    Conflict,
    Forbidden,
    ResourceMissing,
    ServiceError,
)
from taskboard.core.logging_config import configure_logging
from taskboard.routers import audit, organizations, tasks

logger = logging.getLogger(__name__)

# Most specific first; NotFound is a Forbidden and must render as one.
STATUS_BY_ERROR: tuple[tuple[type[ServiceError], int], ...] = (
    (Forbidden, status.HTTP_403_FORBIDDEN),
    (BadRequest, status.HTTP_400_BAD_REQUEST),
    (Conflict, status.HTTP_409_CONFLICT),
    (ResourceMissing, status.HTTP_404_NOT_FOUND),
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    configure_logging()
    logger.info("Starting taskboard API in %s mode", settings.ENVIRONMENT)
    yield
    logger.info("Shutting down taskboard API")


app = FastAPI(
    title="Taskboard API",
    description="Multi-tenant task tracker",
    version="1.0.0",
    docs_url="/api/docs" if settings.DEBUG else None,
    redoc_url="/api/redoc" if settings.DEBUG else None,
    openapi_url="/api/openapi.json" if settings.DEBUG else None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for error_type, code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            status_code = code
            break
    if isinstance(exc, Forbidden):
        # Same body for every denial; the reason was already logged and audited.
        body = {"code": Forbidden.code, "message": Forbidden.message}
    else:
        body = {"code": exc.code, "message": exc.message}
    return JSONResponse(status_code=status_code, content={"detail": body})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    if settings.DEBUG:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": {
                    "code": "INTERNAL_SERVER_ERROR",
                    "message": str(exc),
                    "type": type(exc).__name__,
                }
            },
        )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": {
                "code": "INTERNAL_SERVER_ERROR",
                "message": "An unexpected error occurred",
            }
        },
    )


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    return {
        "status": "ok",
        "environment": settings.ENVIRONMENT,
        "version": "1.0.0",
    }


app.include_router(organizations.router, prefix="/api/v1/organizations", tags=["Organizations"])
app.include_router(tasks.router, prefix="/api/v1", tags=["Tasks"])
app.include_router(audit.router, prefix="/api/v1", tags=["Audit"])
