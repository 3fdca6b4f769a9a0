"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from settlement_engine.api.routes import health_router, payments_router
from settlement_engine.config import Settings, get_settings
from settlement_engine.database import build_engine, build_session_factory, create_schema
from settlement_engine.payments.errors import Rejection, RejectionKind, StorageFailure
from settlement_engine.payments.settlement import Settlement

logger = logging.getLogger(__name__)

REJECTION_STATUS: dict[RejectionKind, int] = {
    RejectionKind.MALFORMED_INPUT: status.HTTP_400_BAD_REQUEST,
    RejectionKind.PAYMENT_NOT_CAPTURED: status.HTTP_400_BAD_REQUEST,
    RejectionKind.SESSION_INCOMPLETE: status.HTTP_400_BAD_REQUEST,
    RejectionKind.INVALID_METADATA: status.HTTP_400_BAD_REQUEST,
    RejectionKind.AMOUNT_OUT_OF_BOUNDS: status.HTTP_400_BAD_REQUEST,
    RejectionKind.OWNERSHIP_MISMATCH: status.HTTP_403_FORBIDDEN,
    RejectionKind.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    RejectionKind.PROVIDER_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    if getattr(app.state, "settlement", None) is None:
        engine = build_engine(app.state.settings.database_url)
        create_schema(engine)
        app.state.settlement = Settlement.from_settings(
            app.state.settings, build_session_factory(engine)
        )
    yield


def create_app(
    settings: Settings | None = None,
    settlement: Settlement | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Defaults to environment settings
        settlement: Pre-wired facade; built from settings at startup if None
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Settlement Engine API",
        description="Exactly-once crediting of checkout sessions",
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.state.settings = settings
    app.state.settlement = settlement

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["POST", "GET", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Client-Info", "Apikey"],
    )

    # Exception handlers
    @app.exception_handler(Rejection)
    async def rejection_handler(request: Request, exc: Rejection) -> JSONResponse:
        """Map a rejection to its status with a caller-safe message."""
        logger.info("Rejected %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=REJECTION_STATUS[exc.kind],
            content={"success": False, "error": exc.public_message, "code": exc.kind.value},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Bad request bodies get a generic 400; the input is not echoed back."""
        bad_action = any(
            tuple(error.get("loc", ()))[-1:] == ("action",) for error in exc.errors()
        )
        logger.info("Invalid request body on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "success": False,
                "error": "Invalid action specified" if bad_action else "Invalid request body",
                "code": RejectionKind.MALFORMED_INPUT.value,
            },
        )

    @app.exception_handler(StorageFailure)
    async def storage_failure_handler(request: Request, exc: StorageFailure) -> JSONResponse:
        """Storage failures never leak detail."""
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": exc.public_message, "code": "STORAGE_FAILURE"},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "error": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(payments_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
