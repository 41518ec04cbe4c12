"""Exceptions raised by the streaming search subsystem."""

from __future__ import annotations

from typing import Any


class SearchError(Exception):
    """Base exception for streaming search errors."""


class ConfigurationError(SearchError):
    """Raised when a query or its options are unusable (e.g. missing api key).

    Raised before any request is sent.
    """


class ProtocolError(SearchError):
    """A request/response exchange with the search service failed.

    Attributes:
        response: The raw error stanza (or the exception that stood in for one)
        archived: True if the failure happened on the history fetch, False for
            the live subscribe, None when the phase is not known yet
    """

    def __init__(self, response: Any, archived: bool | None = None) -> None:
        self.response = response
        self.archived = archived
        super().__init__(f"search request failed (archived={archived})")


class DispatchError(SearchError):
    """An inbound notification could not be routed (missing or mistagged payload).

    Never fatal: the dispatcher logs it and moves on to the next message.
    """
