"""Public entry point for streaming Collecta searches."""

from __future__ import annotations

import logging

from .coordinator import SubscriptionCoordinator
from .errors import ConfigurationError
from .events import SearchStream, StreamFanout
from .interface import Transport
from .models import SearchOptions, Subscription
from .registry import SubscriptionRegistry
from .teardown import TeardownCoordinator

logger = logging.getLogger(__name__)


class StreamingSearchClient:
    """Manages a set of streaming searches over one transport.

    Each query gets up to ``context_count`` archived results followed by live
    results as they are published, delivered to the option callbacks as
    ``(entry, is_archived)`` or through a SearchStream.

    Lifecycle:
        client = StreamingSearchClient(transport)
        client.subscribe("python", api_key="...", callback=on_result)
        async for event in client.stream("asyncio", api_key="..."):
            ...
        client.unsubscribe_all()
        await client.stop()

    Only bulk teardown is supported. Subscribing the same query twice
    replaces its registry record, but the first live listener keeps
    delivering until unsubscribe_all(). Streams of one query share a single
    live subscription; each stream still gets its own history.
    """

    def __init__(self, transport: Transport, match_query_value: bool = False) -> None:
        self._transport = transport
        self._registry = SubscriptionRegistry()
        self._coordinator = SubscriptionCoordinator(
            transport, self._registry, match_query_value=match_query_value
        )
        self._teardown = TeardownCoordinator(transport, self._registry)
        self._fanouts: dict[str, StreamFanout] = {}
        self.match_query_value = match_query_value

    def subscribe(
        self,
        query: str,
        options: SearchOptions | None = None,
        **option_fields,
    ) -> Subscription:
        """Start watching ``query``.

        Options come either as a SearchOptions or as its fields in keyword
        form (``api_key=..., callback=...``), not both.

        Raises:
            ConfigurationError: Invalid query or options
        """
        return self._coordinator.subscribe(query, self._resolve_options(options, option_fields))

    def stream(
        self,
        query: str,
        options: SearchOptions | None = None,
        **option_fields,
    ) -> SearchStream:
        """Start watching ``query`` and return its events as an async iterator.

        A query that already has an open stream reuses its live listener and
        only fetches history for the new stream. A failed or torn-down live
        subscription is started again.
        """
        resolved = self._resolve_options(options, option_fields)
        resolved.validate(query)
        search_stream = SearchStream(query)
        bound = search_stream.bind(resolved)

        previous = self._fanouts.get(query)
        if previous is not None and self._can_join(previous):
            previous.add(search_stream, bound)
            self._coordinator.fetch_history(query, bound)
            logger.debug("Stream joined live search %r (%d open)", query, len(previous))
            return search_stream

        fanout = StreamFanout(query, self._registry.generation)
        shared = fanout.bind(search_stream, bound)
        if previous is not None:
            # Streams left on a failed subscription move to the new one
            fanout.adopt(previous)
        self._coordinator.subscribe(query, shared)
        self._fanouts[query] = fanout
        return search_stream

    def unsubscribe_all(self) -> None:
        """Stop every search and end all open streams."""
        if not self._teardown.unsubscribe_all():
            return
        fanouts, self._fanouts = self._fanouts, {}
        for fanout in fanouts.values():
            fanout.close_all()

    @property
    def registry(self) -> SubscriptionRegistry:
        return self._registry

    @property
    def listener_count(self) -> int:
        """Number of live listeners currently registered with the transport."""
        return len(self._registry.handles)

    def get_queries(self) -> list[str]:
        return self._registry.queries()

    async def wait_pending(self) -> None:
        """Wait for all in-flight history and subscribe exchanges to finish."""
        await self._coordinator.wait_pending()

    async def stop(self) -> None:
        """Tear everything down and cancel in-flight exchanges. Safe to call twice."""
        self.unsubscribe_all()
        await self._coordinator.cancel_pending()
        await self._teardown.cancel_pending()
        logger.info("Streaming search client stopped")

    # --- Internal ---

    def _can_join(self, fanout: StreamFanout) -> bool:
        return (
            not fanout.failed
            and fanout.generation == self._registry.generation
            and fanout.query in self._registry
        )

    @staticmethod
    def _resolve_options(options: SearchOptions | None, fields: dict) -> SearchOptions:
        if options is not None and fields:
            raise ConfigurationError("pass either a SearchOptions or option keywords, not both")
        if options is not None:
            return options
        if "api_key" not in fields:
            raise ConfigurationError("api_key is required")
        try:
            return SearchOptions(**fields)
        except TypeError as e:
            raise ConfigurationError(f"invalid search options: {e}") from e
