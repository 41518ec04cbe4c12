"""Pytest configuration and fixtures."""

import pytest

from app.search.client import StreamingSearchClient
from app.search.memory_transport import MemoryTransport


@pytest.fixture
def event_loop_policy():
    """Use the default event loop policy for all async tests."""
    import asyncio

    return asyncio.DefaultEventLoopPolicy()


@pytest.fixture
def transport():
    """Transport whose requests stay pending until the test answers them."""
    return MemoryTransport(jid="tester@localhost/tests", auto_respond=False)


@pytest.fixture
def loopback():
    """Transport that answers every request immediately."""
    return MemoryTransport(jid="tester@localhost/tests")


@pytest.fixture
def client(transport):
    return StreamingSearchClient(transport)
