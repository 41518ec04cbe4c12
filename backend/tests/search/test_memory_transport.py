"""Tests for MemoryTransport."""

import asyncio
from unittest.mock import MagicMock

import pytest

from app.search.errors import ProtocolError
from app.search.memory_transport import MemoryTransport, atom_entry, build_notification, request_kind
from app.search.models import Subscription
from app.search.protocol import NS_PUBSUB_EVENT
from app.search.stanzas import (
    build_history_request,
    build_subscribe_request,
    build_unsubscribe_request,
    find_child,
    iter_entries,
)


def _search(query: str = "python", context_count: int = 10) -> Subscription:
    return Subscription(query=query, api_key="key", context_count=context_count)


@pytest.mark.asyncio
class TestMemoryTransport:
    """Unit tests for the in-memory transport."""

    async def test_assigns_request_ids(self):
        """Test that each request gets a unique id."""
        transport = MemoryTransport()
        await transport.send_iq(build_history_request(_search()))
        await transport.send_iq(build_history_request(_search()))

        ids = [iq.get("id") for iq in transport.sent]
        assert len(set(ids)) == 2

    async def test_history_answers_from_archive(self):
        """Test that history returns the most recent archived entries."""
        transport = MemoryTransport()
        transport.publish("python", atom_entry("A"), atom_entry("B"), atom_entry("C"))

        response = await transport.send_iq(build_history_request(_search(context_count=2)))

        assert response.get("type") == "result"
        assert [find_child(e, "title").text for e in iter_entries(response)] == ["B", "C"]

    async def test_publish_requires_subscription(self):
        """Test that entries are only pushed after a subscribe."""
        transport = MemoryTransport()
        handler = MagicMock(return_value=True)
        transport.add_handler(handler, NS_PUBSUB_EVENT, "message")

        assert transport.publish("python", atom_entry("A")) is False
        handler.assert_not_called()

        await transport.send_iq(build_subscribe_request(_search(), transport.jid))
        assert transport.publish("python", atom_entry("B")) is True
        handler.assert_called_once()

    async def test_unsubscribe_stops_pushes(self):
        """Test that the node-level unsubscribe drops every query."""
        transport = MemoryTransport()
        await transport.send_iq(build_subscribe_request(_search("python"), transport.jid))
        await transport.send_iq(build_subscribe_request(_search("rust"), transport.jid))

        await transport.send_iq(build_unsubscribe_request(transport.jid))

        assert transport.publish("python", atom_entry("A")) is False
        assert transport.publish("rust", atom_entry("B")) is False

    async def test_manual_mode_holds_requests(self):
        """Test that requests wait for respond() when auto_respond is off."""
        transport = MemoryTransport(auto_respond=False)
        task = asyncio.create_task(transport.send_iq(build_history_request(_search())))
        await asyncio.sleep(0)

        assert not task.done()
        pending = transport.pending_requests("history")
        assert len(pending) == 1

        transport.respond(pending[0])
        response = await task
        assert response.get("id") == pending[0].get("id")
        assert transport.pending_requests() == []

    async def test_fail_raises_protocol_error(self):
        """Test that fail() makes send_iq raise with the error stanza."""
        transport = MemoryTransport(auto_respond=False)
        task = asyncio.create_task(transport.send_iq(build_history_request(_search())))
        await asyncio.sleep(0)

        error_iq = transport.fail(transport.pending_requests()[0], "forbidden")

        with pytest.raises(ProtocolError) as excinfo:
            await task
        assert excinfo.value.response is error_iq
        assert error_iq.get("type") == "error"
        assert find_child(find_child(error_iq, "error"), "forbidden") is not None

    async def test_respond_unknown_request_ignored(self):
        """Test that answering an already answered request is a no-op."""
        transport = MemoryTransport()
        iq = build_history_request(_search())
        await transport.send_iq(iq)
        transport.respond(iq)  # Should not raise


class TestHandlers:
    """Unit tests for handler registration and delivery."""

    def test_deliver_matches_name_and_namespace(self):
        """Test that handlers only see matching stanzas."""
        transport = MemoryTransport()
        events = MagicMock(return_value=True)
        other = MagicMock(return_value=True)
        transport.add_handler(events, NS_PUBSUB_EVENT, "message")
        transport.add_handler(other, "urn:example:other", "message")

        ran = transport.deliver(build_notification("python", [atom_entry("A")]))

        assert ran == 1
        events.assert_called_once()
        other.assert_not_called()

    def test_handler_returning_false_is_removed(self):
        """Test one-shot handlers."""
        transport = MemoryTransport()
        handler = MagicMock(return_value=False)
        transport.add_handler(handler, NS_PUBSUB_EVENT, "message")

        transport.deliver(build_notification("python", []))
        transport.deliver(build_notification("python", []))

        assert handler.call_count == 1
        assert transport.handler_count == 0

    def test_delete_handler(self):
        """Test removing a handler by handle."""
        transport = MemoryTransport()
        handle = transport.add_handler(MagicMock(return_value=True), NS_PUBSUB_EVENT, "message")

        transport.delete_handler(handle)
        transport.delete_handler(handle)  # Unknown handles are ignored

        assert transport.handler_count == 0

    def test_request_kind(self):
        """Test classification of search requests."""
        jid = "tester@localhost"
        assert request_kind(build_history_request(_search())) == "history"
        assert request_kind(build_subscribe_request(_search(), jid)) == "subscribe"
        assert request_kind(build_unsubscribe_request(jid)) == "unsubscribe"
        assert request_kind(atom_entry("A")) is None
