"""Realtime SSE Endpoint for seller listings.

Streams the full listing set of one seller as Server-Sent Events: once on
connect and again after every committed change. Backed by a projection
subscription that is cancelled when the client disconnects.
"""

import asyncio
import json
from typing import Any, AsyncIterator

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from shopstock.logging import get_logger, sanitize_id_for_logging
from shopstock.routers.deps import get_projections
from shopstock.routers.models import ListingResponse
from shopstock.services.projections import StockProjections

logger = get_logger(__name__)

router = APIRouter(tags=["realtime"])

# Keep-alive interval when no change arrives (seconds)
KEEPALIVE_SECS = 15.0

# Maximum number of snapshots buffered for a slow client; older ones are dropped
MAX_PENDING_SNAPSHOTS = 10


def _format_listings(listings: list) -> str:
    payload = [ListingResponse.from_listing(listing).model_dump() for listing in listings]
    return f"data: {json.dumps(payload)}\n\n"


def _format_error(error: Exception) -> str:
    return f"event: error\ndata: {json.dumps({'error': str(error)})}\n\n"


def _offer(queue: asyncio.Queue, item: Any) -> None:
    """Enqueue, dropping the oldest pending snapshot if the client fell behind."""
    if queue.full():
        queue.get_nowait()
    queue.put_nowait(item)


async def _listing_events(projections: StockProjections, seller_id: str) -> AsyncIterator[str]:
    queue: asyncio.Queue = asyncio.Queue(maxsize=MAX_PENDING_SNAPSHOTS)

    def on_update(listings: list) -> None:
        _offer(queue, listings)

    def on_error(error: Exception) -> None:
        _offer(queue, error)

    subscription = await projections.subscribe_listings(seller_id, on_update, on_error)
    try:
        while True:
            try:
                item = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECS)
            except asyncio.TimeoutError:
                yield ": keep-alive\n\n"
                continue
            if isinstance(item, Exception):
                logger.warning(
                    "Listing stream for %s failed: %s", sanitize_id_for_logging(seller_id), item
                )
                yield _format_error(item)
                return
            yield _format_listings(item)
    finally:
        await subscription.cancel()


@router.get("/api/realtime/listings/{seller_id}")
async def stream_seller_listings(
    seller_id: str, projections: StockProjections = Depends(get_projections)
):
    """SSE stream of a seller's listings"""
    return StreamingResponse(
        _listing_events(projections, seller_id),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
