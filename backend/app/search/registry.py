"""In-memory registry of active search subscriptions."""

from __future__ import annotations

from typing import Any

from .models import Subscription


class SubscriptionRegistry:
    """Subscriptions keyed by query, plus the live listener handles.

    Not thread-safe: all mutations happen on the event loop thread (subscribe
    calls, response tasks and teardown), which serializes them.

    Writers: SubscriptionCoordinator (put, add_handle), TeardownCoordinator (clear).
    Readers: TeardownCoordinator, StreamingSearchClient, the HTTP router.
    """

    def __init__(self) -> None:
        self._searches: dict[str, Subscription] = {}
        self._handles: list[Any] = []
        self._generation: int = 0  # Bumped on every clear()

    def put(self, query: str, record: Subscription) -> Subscription | None:
        """Insert or overwrite the record for ``query``. Returns the replaced record, if any."""
        previous = self._searches.get(query)
        self._searches[query] = record
        return previous

    def get(self, query: str) -> Subscription | None:
        return self._searches.get(query)

    def first(self) -> Subscription | None:
        """Some registered subscription, or None if the registry is empty."""
        return next(iter(self._searches.values()), None)

    def queries(self) -> list[str]:
        return list(self._searches)

    def add_handle(self, handle: Any) -> None:
        self._handles.append(handle)

    @property
    def handles(self) -> list[Any]:
        """Snapshot of all registered listener handles."""
        return list(self._handles)

    def clear(self) -> None:
        """Drop every subscription and listener handle, starting a new generation."""
        self._searches.clear()
        self._handles.clear()
        self._generation += 1

    @property
    def generation(self) -> int:
        """Teardown counter. Responses captured under an older generation are stale."""
        return self._generation

    def __len__(self) -> int:
        return len(self._searches)

    def __contains__(self, query: str) -> bool:
        return query in self._searches
