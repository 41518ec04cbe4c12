"""In-memory stand-in for an XMPP connection to the Collecta search service.

Used for local development and tests. It answers history and subscribe
requests from an in-process archive and pushes published entries to the
registered handlers, so the client can run without a network.

With ``auto_respond=False`` requests stay pending until the caller answers
them with respond() or fail(), which lets tests control completion order.
"""

from __future__ import annotations

import asyncio
import copy
import itertools
import logging
import xml.etree.ElementTree as ET
from collections import defaultdict
from typing import Any

from .errors import ProtocolError
from .interface import StanzaHandler, Transport
from .protocol import (
    FIELD_QUERY,
    NS_ATOM,
    NS_PUBSUB,
    NS_PUBSUB_EVENT,
    NS_SHIM,
    PUBSUB_NODE,
    PUBSUB_SERVICE,
)
from .stanzas import find_child, form_fields, local_name, namespace_of

logger = logging.getLogger(__name__)

NS_STANZAS = "urn:ietf:params:xml:ns:xmpp-stanzas"


def atom_entry(title: str, entry_id: str | None = None, link: str | None = None) -> ET.Element:
    """Build a minimal Atom <entry>."""
    entry = ET.Element("entry", {"xmlns": NS_ATOM})
    ET.SubElement(entry, "id").text = entry_id or f"urn:collecta:{title}"
    ET.SubElement(entry, "title").text = title
    if link:
        ET.SubElement(entry, "link", {"rel": "alternate", "href": link})
    return entry


def build_notification(query: str, entries: list[ET.Element], to: str = "") -> ET.Element:
    """Pubsub event message carrying ``entries`` for ``query``."""
    message = ET.Element("message", {"from": PUBSUB_SERVICE, "to": to})
    event = ET.SubElement(message, "event", {"xmlns": NS_PUBSUB_EVENT})
    items = ET.SubElement(event, "items", {"node": PUBSUB_NODE})
    for entry in entries:
        item = ET.SubElement(items, "item")
        item.append(copy.deepcopy(entry))
    headers = ET.SubElement(message, "headers", {"xmlns": NS_SHIM})
    ET.SubElement(headers, "header", {"name": FIELD_QUERY}).text = query
    return message


def request_kind(iq: ET.Element) -> str | None:
    """'history', 'subscribe' or 'unsubscribe' for a search IQ, else None."""
    pubsub = find_child(iq, "pubsub")
    if pubsub is None:
        return None
    for child in pubsub:
        name = local_name(child)
        if name == "items":
            return "history"
        if name in ("subscribe", "unsubscribe"):
            return name
    return None


class MemoryTransport(Transport):
    """Loopback transport backed by an in-process archive of published entries."""

    def __init__(
        self,
        jid: str = "searcher@localhost/streaming-search",
        auto_respond: bool = True,
    ) -> None:
        self._jid = jid
        self._auto = auto_respond
        self._ids = itertools.count(1)
        self._handles = itertools.count(1)
        self._handlers: dict[int, tuple[StanzaHandler, str | None, str | None]] = {}
        self._pending: dict[str, tuple[ET.Element, asyncio.Future]] = {}
        self._archive: dict[str, list[ET.Element]] = defaultdict(list)
        self._subscribed: set[str] = set()
        self.sent: list[ET.Element] = []

    @property
    def jid(self) -> str:
        return self._jid

    async def send_iq(self, iq: ET.Element) -> ET.Element:
        iq_id = f"search{next(self._ids)}"
        iq.set("id", iq_id)
        self.sent.append(iq)
        logger.debug("Sent %s request %s", request_kind(iq), iq_id)

        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[iq_id] = (iq, future)
        if self._auto:
            asyncio.get_running_loop().call_soon(self.respond, iq)

        response = await future
        if response.get("type") == "error":
            raise ProtocolError(response)
        return response

    def add_handler(
        self,
        handler: StanzaHandler,
        namespace: str | None = None,
        name: str | None = None,
    ) -> Any:
        handle = next(self._handles)
        self._handlers[handle] = (handler, namespace, name)
        return handle

    def delete_handler(self, handle: Any) -> None:
        self._handlers.pop(handle, None)

    # --- Test / development helpers ---

    @property
    def handler_count(self) -> int:
        return len(self._handlers)

    def pending_requests(self, kind: str | None = None) -> list[ET.Element]:
        """Requests sent but not yet answered, oldest first."""
        return [
            iq for iq, _ in self._pending.values() if kind is None or request_kind(iq) == kind
        ]

    def sent_requests(self, kind: str) -> list[ET.Element]:
        return [iq for iq in self.sent if request_kind(iq) == kind]

    def respond(self, iq: ET.Element, response: ET.Element | None = None) -> None:
        """Complete a pending request, by default with what the service would answer."""
        pending = self._pending.pop(iq.get("id"), None)
        if pending is None:
            return
        _, future = pending
        if future.done():
            return
        if response is None:
            response = self._answer(iq)
        response.set("id", iq.get("id"))
        future.set_result(response)

    def fail(self, iq: ET.Element, condition: str = "not-authorized") -> ET.Element:
        """Complete a pending request with a type="error" response. Returns the error stanza."""
        error_iq = ET.Element("iq", {"type": "error", "from": PUBSUB_SERVICE})
        error = ET.SubElement(error_iq, "error", {"type": "cancel"})
        ET.SubElement(error, condition, {"xmlns": NS_STANZAS})
        self.respond(iq, error_iq)
        return error_iq

    def publish(self, query: str, *entries: ET.Element) -> bool:
        """Archive ``entries`` under ``query`` and push them if this JID is subscribed.

        Returns True if a notification was delivered.
        """
        self._archive[query].extend(entries)
        if query not in self._subscribed:
            return False
        self.deliver(build_notification(query, list(entries), to=self._jid))
        return True

    def deliver(self, stanza: ET.Element) -> int:
        """Run every matching handler on an inbound stanza. Returns how many ran."""
        ran = 0
        for handle, (handler, namespace, name) in list(self._handlers.items()):
            if name and local_name(stanza) != name:
                continue
            if namespace and not any(namespace_of(child) == namespace for child in stanza):
                continue
            ran += 1
            if not handler(stanza):
                self._handlers.pop(handle, None)
        return ran

    # --- Internal ---

    def _answer(self, iq: ET.Element) -> ET.Element:
        kind = request_kind(iq)
        result = ET.Element("iq", {"type": "result", "from": PUBSUB_SERVICE, "to": self._jid})
        fields = form_fields(iq)
        query = fields.get(FIELD_QUERY, "")

        if kind == "history":
            max_items = int(iq.findtext(".//max") or 0)
            archived = self._archive.get(query, [])
            pubsub = ET.SubElement(result, "pubsub", {"xmlns": NS_PUBSUB})
            items = ET.SubElement(pubsub, "items", {"node": PUBSUB_NODE})
            for entry in archived[-max_items:] if max_items else []:
                item = ET.SubElement(items, "item")
                item.append(copy.deepcopy(entry))
        elif kind == "subscribe":
            self._subscribed.add(query)
        elif kind == "unsubscribe":
            self._subscribed.clear()
        return result
