"""FastAPI application factory."""
from fastapi import FastAPI

from stationsync.db.engine import get_engine
from stationsync.api.routes import sync as sync_routes


def create_app() -> FastAPI:
    """Build and return the FastAPI app. Tables are created with the engine."""
    get_engine()

    app = FastAPI(
        title="Station Sync API",
        description="UEX catalog and location sync status and triggers",
        version="0.1.0",
    )
    app.include_router(sync_routes.router, prefix="/sync", tags=["sync"])
    return app


# Module-level app instance for uvicorn
app = create_app()
