from __future__ import annotations

from fastapi import FastAPI

from config import load_env_file
from web.routes import cron, prices, volumes


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    load_env_file()

    app = FastAPI(
        title="Tickerscope API",
        version="0.1.0",
        description="Market snapshot ingestion and dashboard aggregates.",
    )

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(prices.router)
    app.include_router(volumes.router)
    app.include_router(cron.router)

    return app


app = create_app()
