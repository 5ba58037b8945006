"""Shared fixtures: an in-memory transport and engine wiring."""

import inspect
from typing import Any, Callable, Dict, List, Optional, Tuple
from unittest.mock import MagicMock

import pytest

from chat.base import NotificationSink, TransportBinding
from chat.connection import ConnectionManager
from chat.engine import SyncEngine
from chat.exceptions import TransportError
from chat.models import UserIdentity


class FakeTransport(TransportBinding):
    """TransportBinding that records emits and lets tests push events."""

    name = "fake"
    reconnects = True

    def __init__(self) -> None:
        self.handlers: Dict[str, Callable[..., Any]] = {}
        self.emitted: List[Tuple[str, Any]] = []
        # event -> positional args the server acks with
        self.ack_responses: Dict[str, Tuple[Any, ...]] = {}
        self.pending_acks: Dict[str, List[Callable[..., Any]]] = {}
        self.fail_connect = False
        self.connect_calls = 0
        self.disconnect_calls = 0
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        self.connect_calls += 1
        if self.fail_connect:
            raise TransportError("connection refused")
        self._connected = True
        await self.fire("connect")

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        if not self._connected:
            return
        self._connected = False
        await self.fire("disconnect")

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        self.handlers[event] = handler

    def off(self, event: str) -> None:
        self.handlers.pop(event, None)

    async def emit(
        self, event: str, data: Any = None, callback: Optional[Callable[..., Any]] = None
    ) -> None:
        if not self._connected:
            raise TransportError("channel closed")
        self.emitted.append((event, data))
        if callback is None:
            return
        if event in self.ack_responses:
            callback(*self.ack_responses[event])
        else:
            self.pending_acks.setdefault(event, []).append(callback)

    async def fire(self, event: str, *args: Any) -> None:
        """Deliver an inbound event the way the socket client would."""
        handler = self.handlers.get(event)
        if handler is None:
            return
        result = handler(*args)
        if inspect.isawaitable(result):
            await result

    async def drop(self) -> None:
        """Simulate the channel being lost."""
        self._connected = False
        await self.fire("disconnect", "transport close")

    async def restore(self) -> None:
        """Simulate the client library reconnecting on its own.

        Fires even after disconnect() to stand in for a reconnect that was
        already under way.
        """
        self._connected = True
        await self.fire("connect")

    def sent(self, event: str) -> List[Any]:
        return [data for name, data in self.emitted if name == event]


def make_summary(uuid: str, unread: int = 0, **extra: Any) -> dict:
    data = {
        "uuid": uuid,
        "cnName": f"User {uuid}",
        "avatarUrl": f"https://img/{uuid}.png",
        "time": "10:00",
        "unread": unread,
        "lastMessage": "hi",
    }
    data.update(extra)
    return data


def make_message(
    msg_id: str,
    sender: str,
    recipient: str,
    status: str = "delivered",
    content: str = "hello",
) -> dict:
    return {
        "id": msg_id,
        "senderId": sender,
        "recipientId": recipient,
        "content": content,
        "status": status,
        "createTime": "2025-01-01 10:00:00",
        "updateTime": "2025-01-01 10:00:00",
    }


@pytest.fixture
def identity():
    return UserIdentity(id="me", display_name="Me", avatar_ref="https://img/me.png")


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def connection(transport):
    return ConnectionManager(transport, ack_timeout=0.05)


@pytest.fixture
def notification_sink():
    return MagicMock(spec=NotificationSink)


@pytest.fixture
def engine(connection, identity, notification_sink):
    return SyncEngine(connection, identity, notification_sink=notification_sink)


@pytest.fixture
def summary_factory():
    return make_summary


@pytest.fixture
def message_factory():
    return make_message
