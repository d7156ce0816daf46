"""
Metrics Router

- GET /           recent samples from the rolling window
- GET /stream     live samples as Server-Sent Events
"""

import asyncio
import json
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from ..common.logging_setup import get_service_logger
from ..context import AppContext
from ..services.metrics.broadcast import BroadcastHub, QueueSubscriber
from .deps import get_context

logger = get_service_logger("api.metrics")

router = APIRouter()


# ============================================
# SCHEMAS
# ============================================

class SampleResponse(BaseModel):
    """One metrics sample."""
    timestamp: int
    cpu: float
    ram: float
    disk: float


class MetricsResponse(BaseModel):
    """Samples ascending by timestamp."""
    samples: list[SampleResponse]


# ============================================
# SSE
# ============================================

def format_event(event: str, data: str) -> str:
    """Serialize one SSE event"""
    lines = [f"event: {event}"]
    lines.extend(f"data: {line}" for line in data.split("\n"))
    return "\n".join(lines) + "\n\n"


async def sample_events(hub: BroadcastHub, keepalive_s: float) -> AsyncIterator[str]:
    """
    Yield 'sample' events as the hub publishes them, plus a 'ping'
    every keepalive_s regardless of sample traffic.

    The subscription is released when the client disconnects (the
    generator is closed) or the hub drops the subscriber.
    """
    subscriber = QueueSubscriber()
    unsubscribe = hub.subscribe(subscriber.deliver)
    loop = asyncio.get_running_loop()
    next_ping = loop.time() + keepalive_s

    try:
        while not subscriber.closed:
            timeout = next_ping - loop.time()
            if timeout <= 0:
                yield format_event("ping", "")
                next_ping += keepalive_s
                continue

            try:
                sample = await asyncio.wait_for(subscriber.queue.get(), timeout)
            except asyncio.TimeoutError:
                continue

            yield format_event("sample", json.dumps(sample.to_dict()))
    finally:
        subscriber.close()
        unsubscribe()


# ============================================
# ENDPOINTS
# ============================================

def parse_window(value: Optional[str], default: int) -> int:
    """Window in seconds; missing, non-numeric or non-positive means default"""
    try:
        window = int(value) if value is not None else default
    except ValueError:
        return default
    return window if window >= 1 else default


@router.get("", response_model=MetricsResponse)
async def get_metrics(
    window: Optional[str] = Query(None, description="Window in seconds (default 30)"),
    ctx: AppContext = Depends(get_context),
):
    """
    Recent samples within the window, oldest first.
    """
    window_s = parse_window(window, ctx.settings.default_window_s)
    samples = await asyncio.to_thread(ctx.store.query, window_s)
    return {"samples": [s.to_dict() for s in samples]}


@router.get("/stream")
async def stream_metrics(ctx: AppContext = Depends(get_context)) -> StreamingResponse:
    """
    Stream samples via SSE.

    Clients needing history should call GET /api/metrics first; the
    stream carries only samples published after connecting.
    """
    logger.debug("Metrics stream opened", extra={"subscribers": len(ctx.hub) + 1})
    return StreamingResponse(
        sample_events(ctx.hub, ctx.settings.keepalive_s),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
