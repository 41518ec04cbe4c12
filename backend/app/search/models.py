"""Data models for streaming search subscriptions."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .errors import ConfigurationError
from .protocol import DEFAULT_CONTEXT_COUNT

# (entry, is_archived) for items, (response, is_archived) for failures
ItemCallback = Callable[[Any, bool], None]
ErrorCallback = Callable[[Any, bool], None]


@dataclass(frozen=True, slots=True)
class SearchOptions:
    """Options for a single search subscription.

    ``callback`` handles both items and errors unless ``success`` or ``error``
    is given; each of those overrides it for its own channel only.
    """

    api_key: str
    rate_limit: float | None = None
    context_count: int = DEFAULT_CONTEXT_COUNT
    score_threshold: float | None = None
    callback: ItemCallback | None = None
    success: ItemCallback | None = None
    error: ErrorCallback | None = None

    @property
    def on_item(self) -> ItemCallback | None:
        return self.success or self.callback

    @property
    def on_error(self) -> ErrorCallback | None:
        return self.error or self.callback

    def validate(self, query: str) -> None:
        """Raise ConfigurationError if the query cannot be sent with these options."""
        if not query or not query.strip():
            raise ConfigurationError("query must be a non-empty string")
        if not self.api_key or not self.api_key.strip():
            raise ConfigurationError(f"api_key is required to subscribe to {query!r}")
        if self.context_count < 0:
            raise ConfigurationError(
                f"context_count must be >= 0, got {self.context_count}"
            )


@dataclass(slots=True)
class Subscription:
    """Registry record for one query.

    ``listener_handle`` stays None until the live subscribe is acknowledged;
    until then the subscription only receives history.
    """

    query: str
    api_key: str
    rate_limit: float | None = None
    score_threshold: float | None = None
    context_count: int = DEFAULT_CONTEXT_COUNT
    on_item: ItemCallback | None = None
    on_error: ErrorCallback | None = None
    listener_handle: Any = None
    generation: int = 0
    created_at: float = field(default_factory=time.time)  # Unix seconds

    @classmethod
    def from_options(
        cls, query: str, options: SearchOptions, generation: int = 0
    ) -> Subscription:
        return cls(
            query=query,
            api_key=options.api_key,
            rate_limit=options.rate_limit,
            score_threshold=options.score_threshold,
            context_count=options.context_count,
            on_item=options.on_item,
            on_error=options.on_error,
            generation=generation,
        )

    @property
    def is_live(self) -> bool:
        """True once a live listener is registered for this subscription."""
        return self.listener_handle is not None

    def to_dict(self) -> dict:
        """Serialize for JSON (credentials excluded)."""
        return {
            "query": self.query,
            "context_count": self.context_count,
            "rate_limit": self.rate_limit,
            "score_threshold": self.score_threshold,
            "live": self.is_live,
            "created_at": self.created_at,
        }
