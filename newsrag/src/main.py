"""
NewsRAG - Application Entry Point
==================================
Builds the FastAPI application: services are constructed once in the
lifespan hook and shared by the HTTP routes and the ``/ws`` socket.

Run:
    python -m newsrag.src.main
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from newsrag.config.settings import settings
from newsrag.src.api.dependencies import Services, build_services
from newsrag.src.api.rate_limit import RATE_LIMIT_MESSAGE, RateLimitExceeded
from newsrag.src.api.routes import cache_router, chat_router, health_router, session_router
from newsrag.src.api.socket import ChatSocketHandler, socket_router
from newsrag.src.utils.logger import get_logger

logger = get_logger(__name__)


def _install(app: FastAPI, services: Services) -> None:
    app.state.services = services
    app.state.socket_handler = ChatSocketHandler(services.orchestrator, services.bindings)


def create_app(services: Services | None = None) -> FastAPI:
    """
    Create the application.

    Parameters
    ----------
    services
        Pre-built services (tests).  When omitted, production services are
        built from ``settings`` at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = services is None
        if owned:
            _install(app, await build_services())
        yield
        await app.state.socket_handler.drain()
        await app.state.services.orchestrator.drain()
        if owned:
            app.state.services.kv_store.close()
        logger.info("NewsRAG shut down.")

    app = FastAPI(title="NewsRAG API", description="Retrieval-augmented answers over stored news articles", version="1.0.0", lifespan=lifespan)
    if services is not None:
        _install(app, services)

    app.add_middleware(CORSMiddleware, allow_origins=[settings.FRONTEND_URL], allow_credentials=True, allow_methods=["GET", "POST", "DELETE"], allow_headers=["*"])

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.info("[API] Rejected malformed request to %s: %s", request.url.path, exc.errors())
        return JSONResponse(status_code=400, content={"success": False, "error": "Invalid request body"})

    @app.exception_handler(RateLimitExceeded)
    async def rate_limited(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        return JSONResponse(status_code=429, content={"success": False, "error": RATE_LIMIT_MESSAGE}, headers={"Retry-After": str(exc.retry_after)})

    app.include_router(health_router)
    app.include_router(chat_router)
    app.include_router(session_router)
    app.include_router(cache_router)
    app.include_router(socket_router)
    return app


def main() -> None:
    """Run the API server."""
    import uvicorn

    logger.info("Starting NewsRAG on %s:%d", settings.HOST, settings.PORT)
    uvicorn.run("newsrag.src.main:create_app", factory=True, host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    main()
