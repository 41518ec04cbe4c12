"""Typed search events and the async stream that yields them."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field, replace
from typing import Any

from .models import SearchOptions
from .stanzas import entry_summary

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ArchivedItem:
    """A historical result delivered from the history fetch."""

    query: str
    entry: Any
    timestamp: float = field(default_factory=time.time)

    archived = True

    def to_dict(self) -> dict:
        return {"type": "archived", "query": self.query, "entry": entry_summary(self.entry)}


@dataclass(frozen=True, slots=True)
class LiveItem:
    """A fresh result pushed by the live subscription."""

    query: str
    entry: Any
    timestamp: float = field(default_factory=time.time)

    archived = False

    def to_dict(self) -> dict:
        return {"type": "live", "query": self.query, "entry": entry_summary(self.entry)}


@dataclass(frozen=True, slots=True)
class SearchFailed:
    """A failed exchange. ``archived`` names the phase: history (True) or live (False)."""

    query: str
    response: Any
    archived: bool
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "type": "error",
            "query": self.query,
            "phase": "history" if self.archived else "live",
            "detail": str(self.response),
        }


SearchEvent = ArchivedItem | LiveItem | SearchFailed


def item_event(query: str, entry: Any, archived: bool) -> ArchivedItem | LiveItem:
    if archived:
        return ArchivedItem(query=query, entry=entry)
    return LiveItem(query=query, entry=entry)


class SearchStream:
    """Async iterator over the events of one query.

    Usage:
        stream = client.stream("python", api_key="...")
        async for event in stream:
            ...

    Iteration ends when the stream is closed, either explicitly or by
    ``unsubscribe_all``. Events arriving after close are dropped.
    """

    _CLOSED = object()

    def __init__(self, query: str) -> None:
        self.query = query
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    def push(self, event: SearchEvent) -> None:
        if self._closed:
            logger.debug("Dropping %s for closed stream %r", type(event).__name__, self.query)
            return
        self._queue.put_nowait(event)

    def on_item(self, entry: Any, archived: bool) -> None:
        self.push(item_event(self.query, entry, archived))

    def on_error(self, response: Any, archived: bool) -> None:
        self.push(SearchFailed(query=self.query, response=response, archived=archived))

    def bind(self, options: SearchOptions) -> SearchOptions:
        """Options that feed this stream, still calling any callbacks already set."""
        user_item, user_error = options.on_item, options.on_error

        def on_item(entry: Any, archived: bool) -> None:
            if user_item:
                user_item(entry, archived)
            self.on_item(entry, archived)

        def on_error(response: Any, archived: bool) -> None:
            if user_error:
                user_error(response, archived)
            self.on_error(response, archived)

        return replace(options, callback=None, success=on_item, error=on_error)

    def close(self) -> None:
        """Stop iteration once the already-queued events are consumed. Idempotent."""
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(self._CLOSED)

    @property
    def closed(self) -> bool:
        return self._closed

    def pending(self) -> int:
        """Number of queued, unconsumed events."""
        return self._queue.qsize() - (1 if self._closed else 0)

    def __aiter__(self) -> SearchStream:
        return self

    async def __anext__(self) -> SearchEvent:
        event = await self._queue.get()
        if event is self._CLOSED:
            # Leave the marker for any other consumer of the same stream
            self._queue.put_nowait(self._CLOSED)
            raise StopAsyncIteration
        return event


class StreamFanout:
    """Shares one live subscription between every open stream of a query.

    The stream that started the subscription receives its history; live
    items and live failures go to every stream still open. Closed streams
    are pruned, so connections that come and go never add listeners.
    """

    def __init__(self, query: str, generation: int) -> None:
        self.query = query
        self.generation = generation
        self.failed = False
        self._consumers: list[tuple[SearchStream, SearchOptions]] = []

    def add(self, stream: SearchStream, bound: SearchOptions) -> None:
        """Attach a stream; ``bound`` is the stream's own SearchStream.bind() options."""
        self._prune()
        self._consumers.append((stream, bound))

    def bind(self, owner: SearchStream, bound: SearchOptions) -> SearchOptions:
        """Options for the shared subscription, started on behalf of ``owner``."""
        self.add(owner, bound)

        def on_item(entry: Any, archived: bool) -> None:
            if archived:
                bound.on_item(entry, True)
                return
            for _, consumer in self._open():
                consumer.on_item(entry, False)

        def on_error(response: Any, archived: bool) -> None:
            if archived:
                bound.on_error(response, True)
                return
            self.failed = True
            for _, consumer in self._open():
                consumer.on_error(response, False)

        return replace(bound, callback=None, success=on_item, error=on_error)

    def adopt(self, other: StreamFanout) -> None:
        """Take over the open streams of an earlier fanout for the same query."""
        for stream, bound in other._open():
            self.add(stream, bound)
        other._consumers.clear()

    def close_all(self) -> None:
        for stream, _ in self._consumers:
            stream.close()
        self._consumers.clear()

    def __len__(self) -> int:
        """Number of streams still open."""
        return len(self._open())

    def _open(self) -> list[tuple[SearchStream, SearchOptions]]:
        self._prune()
        return list(self._consumers)

    def _prune(self) -> None:
        self._consumers = [(s, b) for s, b in self._consumers if not s.closed]
