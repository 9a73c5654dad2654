"""
Pytest configuration and fixtures for room tests
"""
import json
from datetime import timedelta

import pytest

from room_manager import RoomRegistry
from session_handler import SessionHandler
from transport import ConnectionHub


class FakeWebSocket:
    """Records every frame the hub sends to it."""

    def __init__(self):
        self.sent = []

    async def send_text(self, data: str):
        self.sent.append(json.loads(data))

    def events(self, name=None):
        return [f for f in self.sent if name is None or f["event"] == name]

    def system_messages(self):
        return [f["data"] for f in self.events("systemMessage")]


@pytest.fixture
def hub():
    return ConnectionHub()


@pytest.fixture
async def registry(hub):
    registry = RoomRegistry(members_of=hub.members_of)
    yield registry
    await registry.shutdown()


@pytest.fixture
def handler(registry, hub):
    handler = SessionHandler(registry, hub)
    registry.on_expire = handler.expire_room
    return handler


@pytest.fixture
def connect(hub, handler):
    """Open a fake connection and its session."""
    def _connect():
        ws = FakeWebSocket()
        connection_id = hub.register(ws)
        return handler.open_session(connection_id), ws
    return _connect


@pytest.fixture
def short_ttl():
    return timedelta(milliseconds=50)
