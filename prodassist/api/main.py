"""Main FastAPI application for ProdAssist."""

from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from prodassist import __version__
from prodassist.api.routers import arcs, sse
from prodassist.clients.generation_client import GenerationClient
from prodassist.core.config import Settings, get_settings
from prodassist.core.logging_config import LogLevel, get_logger, setup_logging
from prodassist.session.arc_session import SessionManager
from prodassist.store import DocumentStore, create_store

logger = get_logger("api.main")


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[DocumentStore] = None,
    client: Optional[GenerationClient] = None
) -> FastAPI:
    """Build the application around a document store and a generation client."""
    settings = settings or get_settings()
    store = store or create_store(settings)
    client = client or GenerationClient(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        setup_logging(
            LogLevel.from_name(settings.log_level),
            log_file=settings.log_file,
            verbose=settings.debug,
        )
        logger.info(f"Starting ProdAssist API ({settings.store_backend} store)...")
        yield
        logger.info("Shutting down ProdAssist API...")
        await app.state.sessions.close_all()
        await client.aclose()
        await store.close()

    app = FastAPI(
        title="ProdAssist API",
        description="Arc pre-production aggregation, cost rollups and generation runs",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.store = store
    app.state.client = client
    app.state.sessions = SessionManager(store, client, settings)

    # Add rate limiter to app state
    arcs.limiter.enabled = settings.rate_limit_enabled
    app.state.limiter = arcs.limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # CORS middleware for the web UI
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # SSE routes first so /stream/... is never read as an arc id
    app.include_router(sse.router, prefix="/api/arcs", tags=["sse"])
    app.include_router(arcs.router, prefix="/api/arcs", tags=["arcs"])

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {"message": "ProdAssist API", "version": __version__}

    @app.get("/api/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "store": settings.store_backend}

    return app


def start_server(host: Optional[str] = None, port: Optional[int] = None, reload: bool = False):
    """Start the FastAPI server."""
    settings = get_settings()
    uvicorn.run(
        "prodassist.api.main:create_app",
        factory=True,
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_level="warning",  # Suppress INFO logs for each request
    )


if __name__ == "__main__":
    start_server()
