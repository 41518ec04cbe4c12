"""Streaming search subsystem.

Public API:
    StreamingSearchClient - subscribe / stream / unsubscribe_all over a Transport
    SearchOptions         - Per-query options (api key, history window, callbacks)
    Subscription          - Registry record for an active query
    SearchStream          - Async iterator of ArchivedItem / LiveItem / SearchFailed
    Transport             - Abstract interface for the XMPP connection
    MemoryTransport       - In-memory transport for development and tests
    create_search_client  - Factory that configures a client from the environment
    create_search_router  - FastAPI router factory for the SSE endpoint
"""

from .client import StreamingSearchClient
from .errors import ConfigurationError, DispatchError, ProtocolError, SearchError
from .events import ArchivedItem, LiveItem, SearchFailed, SearchStream
from .factory import create_search_client, default_options_from_env
from .interface import Transport
from .memory_transport import MemoryTransport
from .models import SearchOptions, Subscription
from .stream import create_search_router

__all__ = [
    "StreamingSearchClient",
    "SearchOptions",
    "Subscription",
    "SearchStream",
    "ArchivedItem",
    "LiveItem",
    "SearchFailed",
    "Transport",
    "MemoryTransport",
    "SearchError",
    "ConfigurationError",
    "ProtocolError",
    "DispatchError",
    "create_search_client",
    "default_options_from_env",
    "create_search_router",
]
