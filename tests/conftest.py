"""
Pytest configuration and shared fixtures.
"""
import asyncio
import json
from typing import Any, Callable, Dict, List, Optional

import pytest
from websockets.exceptions import ConnectionClosedOK

from devtools_transport.cdp.transport import Transport

_CLOSE = object()


class FakeChannel:
    """
    In-memory stand-in for a websockets connection.

    ``feed`` queues an incoming frame, ``drop`` simulates the remote side
    hanging up. When ``responder`` is given it is called with every sent
    command and any dict it returns is fed back as the reply.
    """

    def __init__(self, responder: Optional[Callable[[Dict[str, Any]], Optional[Dict[str, Any]]]] = None):
        self.sent: List[Dict[str, Any]] = []
        self.closed = False
        self.responder = responder
        self._incoming: asyncio.Queue = asyncio.Queue()

    async def send(self, data: str) -> None:
        if self.closed:
            raise ConnectionClosedOK(None, None)
        message = json.loads(data)
        self.sent.append(message)
        if self.responder is not None:
            reply = self.responder(message)
            if reply is not None:
                self.feed(reply)

    async def recv(self) -> str:
        item = await self._incoming.get()
        if item is _CLOSE:
            raise ConnectionClosedOK(None, None)
        return item

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._incoming.put_nowait(_CLOSE)

    def feed(self, message: Any) -> None:
        self._incoming.put_nowait(message if isinstance(message, str) else json.dumps(message))

    def drop(self) -> None:
        self._incoming.put_nowait(_CLOSE)

    def methods(self) -> List[str]:
        return [m["method"] for m in self.sent]


def start_transport(channel: FakeChannel, **kwargs) -> Transport:
    """Build and start a Transport over ``channel``. Needs a running loop."""
    transport = Transport(channel, **kwargs)
    transport.start()
    return transport


async def wait_sent(channel: FakeChannel, count: int, timeout: float = 1.0) -> None:
    """Wait until ``count`` commands have been written to ``channel``."""
    async def _poll():
        while len(channel.sent) < count:
            await asyncio.sleep(0)
    await asyncio.wait_for(_poll(), timeout)


@pytest.fixture
def channel():
    return FakeChannel()


def pytest_configure(config):
    """Configure pytest."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (requires Chrome)"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


def pytest_collection_modifyitems(config, items):
    """Modify test collection."""
    for item in items:
        if "integration" in item.nodeid.lower():
            item.add_marker(pytest.mark.integration)
        if "slow" in item.nodeid.lower():
            item.add_marker(pytest.mark.slow)
