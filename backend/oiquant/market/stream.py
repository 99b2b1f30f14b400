"""HTTP endpoints and SSE stream for the market state."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncGenerator

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from .controller import ModeController
from .models import DataSourceMode

logger = logging.getLogger(__name__)


class ModeRequest(BaseModel):
    mode: DataSourceMode


class AutoRefreshRequest(BaseModel):
    enabled: bool


class SessionRequest(BaseModel):
    api_key: str | None = None
    user_prompt: str | None = None


def create_market_router(controller: ModeController) -> APIRouter:
    """Create the market router bound to one controller.

    This factory pattern lets us inject the controller without globals.
    """
    router = APIRouter(prefix="/api/market", tags=["market"])

    @router.get("/snapshot")
    async def get_snapshot() -> dict:
        return controller.snapshot()

    @router.get("/stream")
    async def stream_market(request: Request) -> StreamingResponse:
        """SSE endpoint pushing the full market snapshot whenever it changes.

            data: {"mode": "EXTERNAL", "series": [...], "analysis": {...}, ...}
        """
        return StreamingResponse(
            _generate_events(controller, request),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",  # Disable nginx buffering if proxied
            },
        )

    @router.post("/mode")
    async def set_mode(body: ModeRequest) -> dict:
        await controller.set_mode(body.mode)
        return controller.snapshot()

    @router.post("/refresh", status_code=202)
    async def refresh() -> dict:
        # Do not block the request on the remote calls; clients follow the stream
        controller.request_refresh()
        return {"status": controller.state.cycle.status.value, "epoch": controller.state.epoch}

    @router.post("/auto-refresh")
    async def set_auto_refresh(body: AutoRefreshRequest) -> dict:
        try:
            await controller.set_auto_refresh(body.enabled)
        except ValueError as e:
            raise HTTPException(status_code=409, detail=str(e)) from e
        return controller.state.cycle.to_dict()

    @router.post("/session")
    async def update_session(body: SessionRequest) -> dict:
        if body.api_key is not None:
            controller.set_api_key(body.api_key)
        if body.user_prompt is not None:
            controller.user_prompt = body.user_prompt
        return {"user_prompt": controller.user_prompt}

    return router


async def _generate_events(
    controller: ModeController,
    request: Request,
    interval: float = 0.5,
) -> AsyncGenerator[str, None]:
    """Async generator that yields SSE-formatted snapshots.

    Checks for changes every ``interval`` seconds and only sends when the
    state's change token moved. Stops when the client disconnects.
    """
    # Tell the client to retry after 1 second if the connection drops
    yield "retry: 1000\n\n"

    last_token = None
    client_ip = request.client.host if request.client else "unknown"
    logger.info("SSE client connected: %s", client_ip)

    try:
        while True:
            if await request.is_disconnected():
                logger.info("SSE client disconnected: %s", client_ip)
                break

            token = controller.state.change_token
            if token != last_token:
                last_token = token
                yield f"data: {json.dumps(controller.snapshot())}\n\n"

            await asyncio.sleep(interval)
    except asyncio.CancelledError:
        logger.info("SSE stream cancelled for: %s", client_ip)
