"""Bulk teardown of every search subscription on a connection."""

from __future__ import annotations

import asyncio
import logging
import xml.etree.ElementTree as ET

from .interface import Transport
from .registry import SubscriptionRegistry
from .stanzas import build_unsubscribe_request

logger = logging.getLogger(__name__)


class TeardownCoordinator:
    """Unsubscribes from the search node and forgets all local state.

    Teardown is all-or-nothing: the service subscription is node-level, so
    there is no way to drop a single query.
    """

    def __init__(self, transport: Transport, registry: SubscriptionRegistry) -> None:
        self._transport = transport
        self._registry = registry
        self._tasks: set[asyncio.Task] = set()

    def unsubscribe_all(self) -> bool:
        """Tear down every subscription. Returns False if there was nothing to do.

        The unsubscribe request is fire-and-forget; listeners and registry
        entries are removed immediately whatever its outcome.
        """
        if self._registry.first() is None:
            return False

        iq = build_unsubscribe_request(self._transport.jid)
        task = asyncio.create_task(self._send_unsubscribe(iq), name="search-unsubscribe")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        handles = self._registry.handles
        for handle in handles:
            self._transport.delete_handler(handle)
        count = len(self._registry)
        self._registry.clear()

        logger.info(
            "Unsubscribed from all searches: %d subscriptions, %d listeners removed",
            count,
            len(handles),
        )
        return True

    async def _send_unsubscribe(self, iq: ET.Element) -> None:
        try:
            await self._transport.send_iq(iq)
        except Exception as e:
            logger.warning("Search unsubscribe request failed: %s", e)

    async def cancel_pending(self) -> None:
        """Stop waiting on unsubscribe responses.

        Requests scheduled but not yet started are given one loop turn to
        reach the transport first; only the wait for their answer is cancelled.
        """
        if self._tasks:
            await asyncio.sleep(0)
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
