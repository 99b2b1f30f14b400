"""FastAPI application: runs the market controller for the app's lifetime.

Run with any ASGI server, e.g. ``uvicorn oiquant.main:app``.
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .market import MarketSettings, create_market_controller, create_market_router

logger = logging.getLogger(__name__)


def create_app(settings: MarketSettings | None = None) -> FastAPI:
    controller = create_market_controller(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await controller.start()
        try:
            yield
        finally:
            await controller.stop()

    app = FastAPI(title="Gold OI Quant Analyzer", lifespan=lifespan)
    app.include_router(create_market_router(controller))
    app.state.market = controller
    return app


logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app()
