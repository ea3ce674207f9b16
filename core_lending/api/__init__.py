"""
Core Lending API Application Factory
"""

from datetime import datetime, timezone
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .auth import LendingSystem, get_lending_system, router as auth_router
from .customers import router as customers_router
from .loans import router as loans_router
from .. import __version__
from ..exceptions import (
    AuthorizationError, DuplicateUsernameError,
    LendingError, NotFoundError, UnauthenticatedError
)
from ..logging_config import get_logger


logger = get_logger("core_lending.api")


def error_status(exc: LendingError) -> int:
    """HTTP status for a lending error"""
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, AuthorizationError):
        return 403
    if isinstance(exc, UnauthenticatedError):
        return 401
    if isinstance(exc, DuplicateUsernameError):
        return 409
    # Business rule violations and any other lending error
    return 400


def error_body(status_code: int, error: str, details: str) -> dict:
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "status": status_code,
        "error": error,
        "details": details
    }


async def lending_error_handler(request: Request, exc: LendingError) -> JSONResponse:
    status_code = error_status(exc)
    logger.warning(f"{request.method} {request.url.path} -> {status_code}: {exc}")
    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return JSONResponse(
        status_code=status_code,
        content=error_body(status_code, exc.error, str(exc)),
        headers=headers
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content=error_body(500, "Internal server error", "Something went wrong")
    )


def create_app(lending_system: Optional[LendingSystem] = None) -> FastAPI:
    """
    Create and configure the FastAPI application

    Args:
        lending_system: System to serve; defaults to one built from the
            global configuration on first request
    """
    app = FastAPI(
        title="Core Lending API",
        description="Consumer loan lifecycle and payment allocation",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(LendingError, lending_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    if lending_system is not None:
        app.dependency_overrides[get_lending_system] = lambda: lending_system

    # Include routers
    app.include_router(auth_router, prefix="/auth", tags=["Auth"])
    app.include_router(customers_router, prefix="/customers", tags=["Customers"])
    app.include_router(loans_router, prefix="/loans", tags=["Loans"])

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "core_lending_api",
            "version": __version__
        }

    return app


app = create_app()


def run_server(host: str = "0.0.0.0", port: int = 8080, debug: bool = False):
    """Run the FastAPI server"""
    uvicorn.run(
        "core_lending.api:app",
        host=host,
        port=port,
        reload=debug,
        log_level="info"
    )
