"""Tests for typed search events and SearchStream."""

from unittest.mock import MagicMock

import pytest

from app.search.events import (
    ArchivedItem,
    LiveItem,
    SearchFailed,
    SearchStream,
    StreamFanout,
    item_event,
)
from app.search.memory_transport import atom_entry
from app.search.models import SearchOptions


class TestEvents:
    """Unit tests for the event dataclasses."""

    def test_archived_flag(self):
        """Test that the archived flag is part of the event type."""
        entry = atom_entry("A")
        assert ArchivedItem(query="python", entry=entry).archived is True
        assert LiveItem(query="python", entry=entry).archived is False

    def test_item_event(self):
        """Test choosing the event type from the archived flag."""
        entry = atom_entry("A")
        assert isinstance(item_event("python", entry, True), ArchivedItem)
        assert isinstance(item_event("python", entry, False), LiveItem)

    def test_item_to_dict(self):
        """Test serialization of an item event."""
        data = LiveItem(query="python", entry=atom_entry("A", entry_id="urn:a")).to_dict()
        assert data["type"] == "live"
        assert data["query"] == "python"
        assert data["entry"]["id"] == "urn:a"
        assert data["entry"]["title"] == "A"

    def test_failure_to_dict(self):
        """Test serialization of a failure event."""
        history = SearchFailed(query="python", response="denied", archived=True)
        live = SearchFailed(query="python", response="denied", archived=False)
        assert history.to_dict() == {
            "type": "error",
            "query": "python",
            "phase": "history",
            "detail": "denied",
        }
        assert live.to_dict()["phase"] == "live"


@pytest.mark.asyncio
class TestSearchStream:
    """Unit tests for the async event stream."""

    async def test_yields_events_until_closed(self):
        """Test iteration over queued events."""
        stream = SearchStream("python")
        stream.on_item(atom_entry("A"), True)
        stream.on_item(atom_entry("B"), False)
        stream.on_error("denied", False)
        stream.close()

        events = [event async for event in stream]

        assert [type(e) for e in events] == [ArchivedItem, LiveItem, SearchFailed]
        assert all(e.query == "python" for e in events)

    async def test_pending(self):
        """Test the count of unconsumed events."""
        stream = SearchStream("python")
        stream.on_item(atom_entry("A"), True)
        stream.on_item(atom_entry("B"), True)
        assert stream.pending() == 2
        stream.close()
        assert stream.pending() == 2

    async def test_drops_events_after_close(self):
        """Test that nothing is queued once the stream is closed."""
        stream = SearchStream("python")
        stream.close()
        stream.on_item(atom_entry("A"), False)

        assert stream.closed
        assert [event async for event in stream] == []

    async def test_close_is_idempotent(self):
        """Test that close() can be called repeatedly."""
        stream = SearchStream("python")
        stream.close()
        stream.close()
        assert [event async for event in stream] == []
        # Iterating again still terminates
        assert [event async for event in stream] == []

    async def test_bind_keeps_user_callbacks(self):
        """Test that bound options feed the stream and the user's callbacks."""
        callback = MagicMock()
        stream = SearchStream("python")
        options = stream.bind(SearchOptions(api_key="key", context_count=3, callback=callback))

        entry = atom_entry("A")
        options.on_item(entry, True)
        options.on_error("denied", False)
        stream.close()

        assert options.api_key == "key"
        assert options.context_count == 3
        assert callback.call_count == 2
        callback.assert_any_call(entry, True)
        callback.assert_any_call("denied", False)
        events = [event async for event in stream]
        assert [type(e) for e in events] == [ArchivedItem, SearchFailed]

    async def test_bind_without_user_callbacks(self):
        """Test binding options that carry no callbacks."""
        stream = SearchStream("python")
        options = stream.bind(SearchOptions(api_key="key"))

        assert options.on_item is not None
        assert options.on_error is not None
        options.on_item(atom_entry("A"), False)
        stream.close()
        assert len([event async for event in stream]) == 1


@pytest.mark.asyncio
class TestStreamFanout:
    """Unit tests for sharing one live subscription between streams."""

    def _join(self, fanout: StreamFanout, callback=None) -> SearchStream:
        stream = SearchStream(fanout.query)
        fanout.add(stream, stream.bind(SearchOptions(api_key="key", callback=callback)))
        return stream

    async def test_live_items_reach_every_open_stream(self):
        """Test that a live item is copied to the owner and every joined stream."""
        fanout = StreamFanout("python", generation=0)
        owner = SearchStream("python")
        shared = fanout.bind(owner, owner.bind(SearchOptions(api_key="key")))
        joined = self._join(fanout)

        shared.on_item(atom_entry("A"), False)
        owner.close()
        joined.close()

        assert [type(e) for e in [event async for event in owner]] == [LiveItem]
        assert [type(e) for e in [event async for event in joined]] == [LiveItem]

    async def test_history_goes_to_owner_only(self):
        """Test that the shared subscription's history and its errors are the owner's."""
        fanout = StreamFanout("python", generation=0)
        owner = SearchStream("python")
        shared = fanout.bind(owner, owner.bind(SearchOptions(api_key="key")))
        joined = self._join(fanout)

        shared.on_item(atom_entry("A"), True)
        shared.on_error("denied", True)
        owner.close()
        joined.close()

        assert [type(e) for e in [event async for event in owner]] == [ArchivedItem, SearchFailed]
        assert [event async for event in joined] == []
        assert not fanout.failed

    async def test_live_failure_marks_fanout_failed(self):
        """Test that a live failure is reported to every stream and flags the fanout."""
        fanout = StreamFanout("python", generation=0)
        owner = SearchStream("python")
        user_error = MagicMock()
        shared = fanout.bind(owner, owner.bind(SearchOptions(api_key="key", error=user_error)))
        joined = self._join(fanout)

        shared.on_error("denied", False)
        fanout.close_all()

        assert fanout.failed
        user_error.assert_called_once_with("denied", False)
        assert [e.archived for e in [event async for event in owner]] == [False]
        assert [e.archived for e in [event async for event in joined]] == [False]

    async def test_closed_streams_are_pruned(self):
        """Test that closed streams stop receiving and no longer count."""
        fanout = StreamFanout("python", generation=0)
        owner = SearchStream("python")
        shared = fanout.bind(owner, owner.bind(SearchOptions(api_key="key")))
        callback = MagicMock()
        joined = self._join(fanout, callback=callback)
        assert len(fanout) == 2

        joined.close()
        shared.on_item(atom_entry("A"), False)

        assert len(fanout) == 1
        callback.assert_not_called()
        assert owner.pending() == 1

    async def test_adopt_moves_open_streams(self):
        """Test that a new fanout takes over the open streams of an earlier one."""
        earlier = StreamFanout("python", generation=0)
        kept = self._join(earlier)
        self._join(earlier).close()

        fanout = StreamFanout("python", generation=0)
        owner = SearchStream("python")
        shared = fanout.bind(owner, owner.bind(SearchOptions(api_key="key")))
        fanout.adopt(earlier)
        shared.on_item(atom_entry("A"), False)

        assert len(fanout) == 2
        assert len(earlier) == 0
        assert kept.pending() == 1

    async def test_close_all(self):
        """Test that close_all ends every stream."""
        fanout = StreamFanout("python", generation=0)
        streams = [self._join(fanout) for _ in range(3)]

        fanout.close_all()

        assert all(stream.closed for stream in streams)
        assert len(fanout) == 0
