# backend/main.py
# Pelecard ↔ Summit bridge - FastAPI app

from contextlib import asynccontextmanager
from typing import Optional

import structlog
import uvicorn
from fastapi import FastAPI

from core.config import Settings, get_settings
from core.log import configure_logging
from integrations.pelecard_client import PelecardClient
from integrations.summit_client import SummitClient
from storage.scratch_store import ScratchStore
from webhooks.pelecard_webhook import router as pelecard_router
from webhooks.summit_api import router as summit_router


logger = structlog.get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """App factory - settings default to the environment"""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        resolved = settings or get_settings()
        configure_logging(resolved.log_level, resolved.log_json)

        app.state.settings = resolved
        app.state.store = ScratchStore(resolved.scratch_dir)
        app.state.gateway = PelecardClient(resolved)
        app.state.accounting = SummitClient(resolved)

        logger.info(
            "bridge_started",
            scratch_dir=str(resolved.scratch_dir),
            timeout=resolved.http_timeout_seconds
        )
        yield

        await app.state.gateway.close()
        await app.state.accounting.close()
        logger.info("bridge_stopped")

    app = FastAPI(
        title="Pelecard Summit Bridge",
        description="Pelecard payments → Summit invoice/receipt documents",
        version="1.0.0",
        lifespan=lifespan
    )

    app.include_router(pelecard_router, tags=["Pelecard"])
    app.include_router(summit_router, tags=["Summit"])

    @app.get("/health")
    async def health():
        return {"status": "healthy", "service": "Pelecard Summit Bridge"}

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=get_settings().port)
