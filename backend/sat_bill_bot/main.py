"""
SAT Bill Bot API - Main Application
FastAPI application that signs in to the SAT invoice portal with an e.firma
and generates bills through browser automation
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.v1.routes import bill_settings, bills, diagnostics
from .core.config import ConfigurationProvider, Settings, get_settings
from .middlewares.logger_middleware import LoggingMiddleware
from .middlewares.trace_id_middleware import TraceIDMiddleware, get_trace_id
from .service.bill_workflow import BillGenerationWorkflow
from .service.browser_provider import BrowserProvider
from .service.credential_store import CredentialStore
from .service.errors import (
    BillGenerationError,
    BillValidationError,
    BrowserConnectionError,
    MissingCredentialError,
    SatBotError,
)
from .service.preflight_validator import PreflightValidator
from .service.retry_orchestrator import RetryOrchestrator
from .utils.logging import setup_logger

logger = setup_logger(__name__)

# Application version
VERSION = "1.0.0"

ERROR_STATUS_CODES = (
    (BillValidationError, 422),
    (MissingCredentialError, 400),
    (BrowserConnectionError, 502),
    (BillGenerationError, 500),
)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # One instance of each service for the whole process
        config = ConfigurationProvider.from_settings(settings)
        orchestrator = RetryOrchestrator(config)
        validator = PreflightValidator()

        app.state.settings = settings
        app.state.config = config
        app.state.orchestrator = orchestrator
        app.state.validator = validator
        app.state.credential_store = CredentialStore(settings.credentials_file)
        app.state.browser = BrowserProvider(settings)
        app.state.workflow = BillGenerationWorkflow(settings, config, orchestrator, validator)
        logger.info("SAT bill bot started", extra={"portal": settings.portal_url, "version": VERSION})

        yield

        await app.state.browser.close()
        logger.info("SAT bill bot stopped")

    app = FastAPI(
        title="SAT Bill Bot API",
        description="""
        API for generating SAT bills with an e.firma through browser automation
        """,
        version=VERSION,
        lifespan=lifespan,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Added last so it runs first: request logs already carry the trace id
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(TraceIDMiddleware)

    @app.exception_handler(SatBotError)
    async def bot_exception_handler(request: Request, exc: SatBotError):
        status_code = next((code for kind, code in ERROR_STATUS_CODES if isinstance(exc, kind)), 500)
        content = {"success": False, "message": str(exc)}
        if isinstance(exc, BillValidationError):
            content["errors"] = exc.errors
        logger.error(f"Request failed: {exc}", extra={
            "status_code": status_code,
            "error_type": type(exc).__name__,
            "trace_id": get_trace_id(request),
        })
        return JSONResponse(status_code=status_code, content=content)

    # Exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "message": "Internal server error",
                "error": str(exc)
            }
        )

    # Include routers
    app.include_router(bill_settings.router)
    app.include_router(bills.router)
    app.include_router(diagnostics.router)

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint with API information"""
        return {
            "name": "SAT Bill Bot API",
            "version": VERSION,
            "docs": "/docs",
            "bills": "/bills",
            "settings": "/config/bill-settings",
        }

    @app.get("/ping", tags=["Health"])
    async def ping():
        """Simple ping endpoint for load balancers"""
        return {"status": "ok"}

    return app


app = create_app()


# Run with uvicorn
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "sat_bill_bot.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
