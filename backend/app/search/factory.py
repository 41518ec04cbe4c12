"""Factory for creating streaming search clients from the environment."""

from __future__ import annotations

import logging
import os

from .client import StreamingSearchClient
from .errors import ConfigurationError
from .interface import Transport
from .models import SearchOptions
from .protocol import DEFAULT_CONTEXT_COUNT

logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}


def create_search_client(transport: Transport | None = None) -> StreamingSearchClient:
    """Create a search client configured from environment variables.

    - COLLECTA_MATCH_QUERY_VALUE truthy → dispatch only notifications whose
      query header equals the subscribed query
    - No transport given → in-memory MemoryTransport (development mode)
    """
    match_value = os.environ.get("COLLECTA_MATCH_QUERY_VALUE", "").strip().lower() in _TRUTHY

    if transport is None:
        from .memory_transport import MemoryTransport

        logger.info("Search transport: in-memory loopback")
        transport = MemoryTransport()
    else:
        logger.info("Search transport: %s", type(transport).__name__)

    if match_value:
        logger.info("Search dispatch: matching query header values")
    return StreamingSearchClient(transport, match_query_value=match_value)


def default_options_from_env() -> SearchOptions:
    """SearchOptions built from COLLECTA_API_KEY and COLLECTA_CONTEXT_COUNT.

    Raises:
        ConfigurationError: COLLECTA_API_KEY unset or empty, or a bad context count
    """
    api_key = os.environ.get("COLLECTA_API_KEY", "").strip()
    if not api_key:
        raise ConfigurationError("COLLECTA_API_KEY is not set")

    raw_count = os.environ.get("COLLECTA_CONTEXT_COUNT", "").strip()
    try:
        context_count = int(raw_count) if raw_count else DEFAULT_CONTEXT_COUNT
    except ValueError as e:
        raise ConfigurationError(f"COLLECTA_CONTEXT_COUNT must be an integer, got {raw_count!r}") from e
    if context_count < 0:
        raise ConfigurationError(f"COLLECTA_CONTEXT_COUNT must be >= 0, got {context_count}")

    return SearchOptions(api_key=api_key, context_count=context_count)
