"""SSE streaming endpoint for live search results."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncGenerator, Callable

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import StreamingResponse

from .client import StreamingSearchClient
from .errors import ConfigurationError
from .events import SearchStream
from .factory import default_options_from_env
from .models import SearchOptions

logger = logging.getLogger(__name__)


def create_search_router(
    client: StreamingSearchClient,
    options_factory: Callable[[], SearchOptions] = default_options_from_env,
) -> APIRouter:
    """Create the search router bound to a client.

    ``options_factory`` supplies the api key and history window for queries
    started over HTTP.
    """
    router = APIRouter(prefix="/api/search", tags=["search"])

    @router.get("/stream")
    async def stream_search(
        request: Request,
        q: str = Query(..., min_length=1, description="Search query"),
    ) -> StreamingResponse:
        """SSE endpoint for one query's results.

        Sends archived results first, then live ones as they are published:

            data: {"type": "archived", "query": "python", "entry": {...}}
            data: {"type": "live", "query": "python", "entry": {...}}

        The stream ends when the client disconnects or all searches are
        torn down.
        """
        try:
            search_stream = client.stream(q, options_factory())
        except ConfigurationError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e

        return StreamingResponse(
            _generate_events(search_stream, request),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",  # Disable nginx buffering if proxied
            },
        )

    @router.get("/subscriptions")
    async def list_subscriptions() -> dict:
        """Active queries and the number of live listeners."""
        records = [client.registry.get(query) for query in client.get_queries()]
        return {
            "subscriptions": [record.to_dict() for record in records if record],
            "listeners": client.listener_count,
        }

    @router.delete("/subscriptions")
    async def unsubscribe_all() -> dict:
        """Tear down every search. There is no per-query unsubscribe."""
        count = len(client.registry)
        client.unsubscribe_all()
        return {"unsubscribed": count}

    return router


async def _generate_events(
    search_stream: SearchStream,
    request: Request,
    keepalive: float = 15.0,
    poll_interval: float = 0.5,
) -> AsyncGenerator[str, None]:
    """Async generator that yields SSE-formatted search events.

    Checks for a client disconnect every ``poll_interval`` seconds while
    waiting, and sends a comment line after ``keepalive`` seconds without
    events so proxies keep the connection open.
    """
    # Tell the client to retry after 1 second if the connection drops
    yield "retry: 1000\n\n"

    client_ip = request.client.host if request.client else "unknown"
    logger.info("SSE search client connected: %s (%r)", client_ip, search_stream.query)

    idle = 0.0
    try:
        while True:
            if await request.is_disconnected():
                logger.info("SSE search client disconnected: %s", client_ip)
                break

            try:
                event = await asyncio.wait_for(search_stream.__anext__(), timeout=poll_interval)
            except asyncio.TimeoutError:
                idle += poll_interval
                if idle >= keepalive:
                    idle = 0.0
                    yield ": keepalive\n\n"
                continue
            except StopAsyncIteration:
                logger.info("Search stream %r closed", search_stream.query)
                break

            idle = 0.0
            yield f"data: {json.dumps(event.to_dict())}\n\n"
    except asyncio.CancelledError:
        logger.info("SSE search stream cancelled for: %s", client_ip)
    finally:
        search_stream.close()
