"""Abstract interface for the XMPP transport the search client runs on."""

from __future__ import annotations

import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

# Returns True to stay registered, False to be removed after this call
StanzaHandler = Callable[[ET.Element], bool]


class Transport(ABC):
    """Contract for the connection that carries search stanzas.

    The transport owns the socket, stanza framing and request ids. The search
    client only builds requests, awaits their responses and registers
    handlers for inbound messages.

    Lifecycle:
        transport = SomeTransport(...)
        client = StreamingSearchClient(transport)
        client.subscribe("python", api_key="...")
        # ... handlers fire as results arrive ...
        client.unsubscribe_all()
    """

    @property
    @abstractmethod
    def jid(self) -> str:
        """Full JID of the connected entity, used as the pubsub subscriber."""

    @abstractmethod
    async def send_iq(self, iq: ET.Element) -> ET.Element:
        """Send an IQ and wait for its response.

        The request is on the wire once the coroutine starts running.
        Returns the type="result" response.

        Raises:
            ProtocolError: The response had type="error"; ``response`` holds it
        """

    @abstractmethod
    def add_handler(
        self,
        handler: StanzaHandler,
        namespace: str | None = None,
        name: str | None = None,
    ) -> Any:
        """Register a handler for inbound stanzas.

        Only stanzas named ``name`` with a child in ``namespace`` are passed
        to it. Returns an opaque handle for delete_handler().
        """

    @abstractmethod
    def delete_handler(self, handle: Any) -> None:
        """Remove a handler registered with add_handler(). Unknown handles are ignored."""
