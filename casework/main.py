"""Casework: Main FastAPI Application.

Back end for humanitarian case management: cases, beneficiary
registrations and referrals routed to service-provider organizations,
each moving through an approval workflow.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api import api_router
from .core import close_db, get_settings, init_db
from .schemas import ErrorDetail, ErrorResponse
from .services.errors import (
    ConflictError,
    EntityNotFoundError,
    InvalidStateTransitionError,
    NotAuthorizedError,
    NotOwnerError,
    OrganizationInactiveError,
    ValidationFailedError,
    WorkflowError,
    WrongOrganizationError,
)

logger = logging.getLogger(__name__)
settings = get_settings()

# Workflow error code -> HTTP status
ERROR_STATUS: dict[str, int] = {
    NotAuthorizedError.code: status.HTTP_403_FORBIDDEN,
    WrongOrganizationError.code: status.HTTP_403_FORBIDDEN,
    NotOwnerError.code: status.HTTP_403_FORBIDDEN,
    EntityNotFoundError.code: status.HTTP_404_NOT_FOUND,
    InvalidStateTransitionError.code: status.HTTP_409_CONFLICT,
    ConflictError.code: status.HTTP_409_CONFLICT,
    ValidationFailedError.code: status.HTTP_422_UNPROCESSABLE_ENTITY,
    OrganizationInactiveError.code: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    # Startup - skip init_db in production (tables already exist)
    if settings.environment != "production":
        try:
            await init_db()
        except Exception as e:
            logger.warning(f"Could not initialize database: {e}")
    yield
    # Shutdown
    await close_db()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    ## Casework API

    Case, registration and referral workflows for humanitarian response.

    ### Key Features

    - **Approval Workflow**: Cases and registrations are approved or rejected by a central authority.
    - **Referral Routing**: Referrals are routed to active service providers, who accept or decline them.
    - **Reassignment**: Declined referrals return to a queue and can be routed again.
    - **Optimistic Concurrency**: Every write is conditional on the version the caller read.

    ### Authentication

    All endpoints require a valid JWT token in the `Authorization: Bearer <token>` header.
    """,
    openapi_url=f"{settings.api_prefix}/openapi.json",
    docs_url=f"{settings.api_prefix}/docs",
    redoc_url=f"{settings.api_prefix}/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS", "HEAD"],
    allow_headers=["*"],
    max_age=86400,
)


@app.exception_handler(WorkflowError)
async def workflow_exception_handler(request: Request, exc: WorkflowError):
    """Map typed workflow errors to HTTP responses."""
    details = []
    if exc.detail:
        details.append(ErrorDetail(message=str(exc), code=exc.detail))

    return JSONResponse(
        status_code=ERROR_STATUS.get(exc.code, status.HTTP_400_BAD_REQUEST),
        content=ErrorResponse(
            error=exc.code,
            message=str(exc),
            details=details,
        ).model_dump(),
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception(f"Unhandled exception on {request.method} {request.url.path}")

    message = "An unexpected error occurred"
    if settings.debug or settings.environment != "production":
        message = f"{message}: {str(exc)[:200]}"

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            error="internal_error",
            message=message,
            details=[],
        ).model_dump(),
    )


# Health check endpoint
@app.get("/health", tags=["health"])
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": settings.app_version}


# Include API routes
app.include_router(api_router, prefix=settings.api_prefix)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "casework.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
