"""
orbitdash - Backend API

FastAPI application that provides:
- Live host metrics (CPU, RAM, disk) with a 60s rolling window
- Server-Sent Events stream of new samples
- Service bookmark catalog with icon upload/download
- Built frontend assets, when present
"""

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse

from . import __version__
from .common.config import Settings, get_settings
from .common.logging_setup import get_service_logger
from .context import AppContext
from .routers import icons, metrics, services

logger = get_service_logger("api")


# ============================================
# APPLICATION LIFESPAN
# ============================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup:
    - Open the database and build the AppContext
    - Sweep orphaned icons, start metrics collection

    Shutdown:
    - Stop metrics collection
    """
    settings: Settings = app.state.settings
    context = AppContext.create(settings)
    app.state.context = context

    logger.info(f"orbitdash server starting on port {settings.port}")
    await context.start()

    yield

    logger.info("Shutting down orbitdash")
    await context.stop()


# ============================================
# CREATE APPLICATION
# ============================================

def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title="orbitdash",
        description="Host metrics and service bookmarks for a self-hosted dashboard.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(metrics.router, prefix="/api/metrics", tags=["Metrics"])
    app.include_router(services.router, prefix="/api/services", tags=["Services"])
    app.include_router(icons.router, prefix="/api/icons", tags=["Icons"])

    @app.get("/health", tags=["Health"])
    @app.get("/api/health", tags=["Health"], include_in_schema=False)
    async def health_check(request: Request):
        """Liveness plus metrics pipeline statistics."""
        context: AppContext = request.app.state.context
        return {
            "status": "healthy" if context.collector.running else "degraded",
            "version": __version__,
            "collector": context.collector.get_stats(),
            "hub": context.hub.get_stats(),
            "samples_stored": await asyncio.to_thread(context.store.count),
        }

    if settings.static_dir.is_dir():
        mount_frontend(app, settings.static_dir)

    return app


def mount_frontend(app: FastAPI, static_dir: Path) -> None:
    """Serve built assets, falling back to index.html for SPA routes."""
    root = static_dir.resolve()
    index = root / "index.html"

    @app.get("/{full_path:path}", include_in_schema=False)
    async def frontend(full_path: str):
        if full_path.startswith("api/"):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not found")

        candidate = (root / full_path).resolve()
        if full_path and candidate.is_relative_to(root) and candidate.is_file():
            return FileResponse(candidate)
        if index.is_file():
            return FileResponse(index)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")

    logger.info(f"Serving frontend from {root}")
