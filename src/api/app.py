"""FastAPI application for the ledger service."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from src.api.ledger import register_error_handlers
from src.api.ledger import router as ledger_router
from src.models import Base
from src.services import engine
from src.services.config import get_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create missing tables on startup (migrations manage existing databases)."""
    Base.metadata.create_all(bind=engine)
    logger.info("Ledger API started (database: %s)", engine.url.render_as_string(hide_password=True))
    yield
    engine.dispose()
    logger.info("Ledger API stopped")


_settings = get_settings()

app = FastAPI(
    title=_settings.api_title,
    description="Billing period rollover and payment ledger",
    version=_settings.api_version,
    lifespan=lifespan,
)

register_error_handlers(app)
app.include_router(ledger_router)


# Register health check endpoint
@app.get("/health")
def health_check() -> dict:
    """Health check endpoint for monitoring."""
    return {"status": "ok"}


__all__ = ["app"]
