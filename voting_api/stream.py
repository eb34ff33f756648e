"""Server-sent events for live results.

Each connection runs its own loop: one ``connection`` event, then a
``live-update`` every interval until the client goes away. Nothing is shared
between connections except the read-only store.
"""
import asyncio
import json
import logging
from typing import AsyncIterator, Awaitable, Callable

from .errors import StorageUnavailable

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_event(event: str, data) -> str:
    """Encode one SSE frame."""
    return f"event: {event}\ndata: {json.dumps(data, separators=(',', ':'))}\n\n"


async def live_update_events(
    load_payload: Callable[[], Awaitable[dict]],
    is_disconnected: Callable[[], Awaitable[bool]],
    interval: float,
) -> AsyncIterator[str]:
    """
    Yield SSE frames for one client.

    Args:
        load_payload: Reads a fresh live snapshot as a JSON-ready dict
        is_disconnected: Reports whether the client has gone away
        interval: Seconds between updates
    """
    yield format_event("connection", {"type": "connected", "message": "Live stream connected"})
    try:
        while True:
            await asyncio.sleep(interval)
            if await is_disconnected():
                break
            try:
                payload = await load_payload()
            except StorageUnavailable:
                logger.error("Error sending live update: storage unavailable")
                yield format_event("error", {"type": "error", "message": "Failed to fetch live data"})
                continue
            yield format_event("live-update", payload)
    finally:
        logger.info("Live stream closed")
