"""Routes inbound live notifications to a subscription's item callback."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET

from .errors import DispatchError
from .models import ItemCallback
from .stanzas import check_notification, has_query_header, iter_entries

logger = logging.getLogger(__name__)


class EventDispatcher:
    """Transport handler bound to one subscribe call's query and callback.

    A message is relevant when it carries a header named after the query
    field. By default only the header's presence is checked, so every
    dispatcher on the connection sees every search result. With
    ``match_query_value`` the header value must also equal ``query``.

    The dispatcher never unregisters itself: ``__call__`` always returns True.
    """

    def __init__(
        self,
        query: str,
        on_item: ItemCallback,
        match_query_value: bool = False,
    ) -> None:
        self.query = query
        self._on_item = on_item
        self._match_value = match_query_value
        self.delivered: int = 0  # Entries whose callback returned normally

    def __call__(self, message: ET.Element) -> bool:
        if not has_query_header(message, self.query if self._match_value else None):
            return True

        try:
            check_notification(message)
        except DispatchError as e:
            logger.debug("Skipping notification for %r: %s", self.query, e)
            return True

        for entry in iter_entries(message):
            try:
                self._on_item(entry, False)
            except Exception:
                logger.exception("Item callback failed for query %r", self.query)
            else:
                self.delivered += 1
        return True

    def __repr__(self) -> str:
        return f"EventDispatcher(query={self.query!r}, delivered={self.delivered})"
