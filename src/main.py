"""Entry point for the Twilio <-> OpenAI Realtime flight booking relay."""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI

from agents.errors import ConfigurationError
from api.dependencies import drain_pipeline
from api.routes import router as api_router
from config.settings import get_settings

LOGGER = logging.getLogger(__name__)


def require_api_key() -> None:
    if not get_settings().openai_api_key:
        raise ConfigurationError()


@asynccontextmanager
async def lifespan(app: FastAPI):
    require_api_key()
    yield
    await drain_pipeline()


settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

app = FastAPI(
    title="Aviation Factory Voice Relay",
    description="Bridges Twilio Media Streams to the OpenAI Realtime API and extracts flight requests.",
    lifespan=lifespan,
)
app.include_router(api_router)


def run() -> None:
    try:
        require_api_key()
    except ConfigurationError as exc:
        LOGGER.error("%s", exc.detail)
        sys.exit(1)

    import uvicorn

    LOGGER.info("Server is listening on port %s", settings.port)
    uvicorn.run(app, host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    run()
