"""FastAPI application factory and entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from ..core.config import get_settings
from ..core.exceptions import (
    ConsentRequiredError,
    NotFoundError,
    PiiRejectedError,
    ValidationError,
)
from ..memory.service import ConversationMemory
from ..utils.logging_config import configure_logging
from .middleware import RequestContextMiddleware
from .routes import router


def create_app(memory: ConversationMemory | None = None) -> FastAPI:
    """Create FastAPI application.

    When *memory* is given it is used as-is and not closed on shutdown;
    otherwise the service is built from settings at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        settings = get_settings()
        configure_logging(settings.log_level, json_output=settings.log_json)
        if memory is not None:
            app.state.memory = memory
            yield
            return
        app.state.memory = ConversationMemory.from_settings(settings)
        yield
        await app.state.memory.aclose()

    app = FastAPI(
        title="Conversation Memory",
        description="Conversation memory with privacy-compliant retention",
        version="1.0.0",
        lifespan=lifespan,
    )

    @app.exception_handler(ValidationError)
    async def validation_error_handler(_request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(NotFoundError)
    async def not_found_handler(_request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(PiiRejectedError)
    async def pii_rejected_handler(_request: Request, exc: PiiRejectedError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": str(exc), "kinds": exc.kinds})

    @app.exception_handler(ConsentRequiredError)
    async def consent_required_handler(
        _request: Request, exc: ConsentRequiredError
    ) -> JSONResponse:
        return JSONResponse(status_code=403, content={"detail": str(exc)})

    app.add_middleware(RequestContextMiddleware)
    app.include_router(router, prefix="/api/v1")

    # Prometheus metrics endpoint
    app.mount("/metrics", make_asgi_app())

    return app
