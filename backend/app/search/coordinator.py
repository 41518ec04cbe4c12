"""Runs the history fetch and live subscribe exchanges for each query."""

from __future__ import annotations

import asyncio
import logging
import xml.etree.ElementTree as ET
from typing import Any

from .dispatcher import EventDispatcher
from .errors import ProtocolError
from .interface import Transport
from .models import SearchOptions, Subscription
from .protocol import NS_PUBSUB_EVENT
from .registry import SubscriptionRegistry
from .stanzas import build_history_request, build_requests, error_condition, iter_entries

logger = logging.getLogger(__name__)


class SubscriptionCoordinator:
    """Turns a query into a history fetch plus a live subscription.

    Both requests go out as independent asyncio tasks and may complete in
    either order. The registry entry is written before either is sent.
    """

    def __init__(
        self,
        transport: Transport,
        registry: SubscriptionRegistry,
        match_query_value: bool = False,
    ) -> None:
        self._transport = transport
        self._registry = registry
        self._match_value = match_query_value
        self._tasks: set[asyncio.Task] = set()

    def subscribe(self, query: str, options: SearchOptions) -> Subscription:
        """Register ``query`` and send its two requests.

        Must be called from a running event loop. Results arrive through the
        option callbacks; this returns as soon as the requests are scheduled.

        Raises:
            ConfigurationError: Empty query or missing api key (nothing is sent)
        """
        options.validate(query)

        record = Subscription.from_options(query, options, generation=self._registry.generation)
        replaced = self._registry.put(query, record)
        if replaced is not None:
            # The earlier listener, if any, stays registered until teardown
            logger.info("Re-subscribing %r: replacing existing subscription", query)

        history_iq, subscribe_iq = build_requests(record, self._transport.jid)
        self._spawn(self._fetch_history(record, history_iq), f"search-history:{query}")
        self._spawn(self._start_live(record, subscribe_iq), f"search-subscribe:{query}")

        logger.info("Subscribed to %r (history window %d)", query, record.context_count)
        return record

    def fetch_history(self, query: str, options: SearchOptions) -> None:
        """Send only the history fetch for ``query``. The registry is not touched."""
        options.validate(query)
        record = Subscription.from_options(query, options, generation=self._registry.generation)
        self._spawn(
            self._fetch_history(record, build_history_request(record)), f"search-history:{query}"
        )

    async def wait_pending(self) -> None:
        """Wait until every in-flight exchange has completed."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel_pending(self) -> None:
        """Cancel every in-flight exchange; its callbacks will not fire."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # --- Internal ---

    def _spawn(self, coro: Any, name: str) -> None:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _fetch_history(self, record: Subscription, iq: ET.Element) -> None:
        try:
            response = await self._transport.send_iq(iq)
        except Exception as e:
            self._report_failure(record, e, archived=True)
            return

        if not record.on_item:
            return

        count = 0
        for entry in iter_entries(response):
            try:
                record.on_item(entry, True)
            except Exception:
                logger.exception("Item callback failed for query %r", record.query)
            else:
                count += 1
        logger.debug("History for %r: %d items delivered", record.query, count)

    async def _start_live(self, record: Subscription, iq: ET.Element) -> None:
        try:
            await self._transport.send_iq(iq)
        except Exception as e:
            self._report_failure(record, e, archived=False)
            return

        if not record.on_item:
            return

        if record.generation != self._registry.generation:
            logger.warning(
                "Discarding subscribe ack for %r: unsubscribe_all ran while it was in flight",
                record.query,
            )
            return

        dispatcher = EventDispatcher(record.query, record.on_item, self._match_value)
        handle = self._transport.add_handler(dispatcher, NS_PUBSUB_EVENT, "message")
        record.listener_handle = handle
        self._registry.add_handle(handle)
        logger.debug("Live listener registered for %r", record.query)

    def _report_failure(self, record: Subscription, exc: Exception, archived: bool) -> None:
        phase = "history" if archived else "subscribe"
        if isinstance(exc, ProtocolError):
            response = exc.response
            logger.warning(
                "Search %s request for %r failed: %s",
                phase,
                record.query,
                error_condition(response) or "unknown error",
            )
        else:
            response = exc
            logger.error(
                "Search %s request for %r raised: %s", phase, record.query, exc, exc_info=exc
            )

        if not record.on_error:
            logger.debug("No error callback for %r; failure dropped", record.query)
            return
        try:
            record.on_error(response, archived)
        except Exception:
            logger.exception("Error callback failed for query %r", record.query)
