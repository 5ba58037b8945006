"""Connection Manager - channel lifecycle, listener registry and handshake.

The manager is the only owner of the transport's handler table. It installs
one dispatcher per event name on the transport and fans events out to any
number of listeners registered through ``on()``.
"""

import asyncio
import inspect
from collections.abc import Callable
from typing import Any, Dict, List, Optional

from loguru import logger

from .base import EventHandler, TransportBinding
from .exceptions import TransportError
from .models import AckResult, ConnectionState

# Lifecycle events the manager always listens to for its own state machine
LIFECYCLE_EVENTS = ("connect", "disconnect", "connect_error")

# Outbound event names
EVENT_REGISTER = "register"
EVENT_GET_CONVERSATIONS = "getConversations"


class ConnectionManager:
    """
    Owns the event channel's state machine and identity handshake.

    disconnected -> connecting -> connected, and connected -> disconnected
    on loss, followed by connecting again while the transport retries on
    its own. Every transition into ``connected`` re-runs the handshake
    (register, then request the conversation list), reconnects included.
    """

    def __init__(self, transport: TransportBinding, ack_timeout: float = 10.0):
        self._transport = transport
        self.ack_timeout = ack_timeout
        self._state = ConnectionState.DISCONNECTED
        self._user_id: Optional[str] = None
        # Cleared by disconnect(); a late transport connect is then ignored
        self._wanted = False
        self._listeners: Dict[str, List[EventHandler]] = {}
        self._state_callbacks: List[Callable[[ConnectionState], None]] = []

        self._transport.on("connect", self._on_transport_connect)
        self._transport.on("disconnect", self._on_transport_disconnect)
        self._transport.on("connect_error", self._on_transport_connect_error)

    # ==================== State ====================

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    def add_state_callback(self, callback: Callable[[ConnectionState], None]) -> None:
        """Observe state transitions (presentation / diagnostics)."""
        self._state_callbacks.append(callback)

    def _set_state(self, new_state: ConnectionState) -> bool:
        """Apply a transition. Returns False if the state did not change."""
        if new_state is self._state:
            return False
        old_state = self._state
        self._state = new_state
        logger.info(f"Connection state: {old_state.value} -> {new_state.value}")
        for callback in list(self._state_callbacks):
            try:
                callback(new_state)
            except Exception as e:
                logger.warning(f"State callback failed: {e}")
        return True

    # ==================== Lifecycle ====================

    async def connect(self, user_id: str) -> bool:
        """
        Open the channel for ``user_id``.

        No-op when already connected or connecting. The handshake runs from
        the transport's ``connect`` event, not from here, so that it repeats
        on every reconnect. Returns False if the channel could not be opened.
        """
        self._user_id = user_id
        self._wanted = True
        if self._state is not ConnectionState.DISCONNECTED:
            return True

        self._set_state(ConnectionState.CONNECTING)
        try:
            await self._transport.connect()
        except TransportError as e:
            logger.warning(f"Channel open failed: {e}")
            self._set_state(ConnectionState.DISCONNECTED)
            return False
        return True

    async def disconnect(self) -> None:
        """
        Close the channel and stop transport-level reconnects. Idempotent.

        The transport is always told to close, even when the channel is
        already down, because a reconnect loop may still be running.
        """
        self._wanted = False
        await self._transport.disconnect()
        self._set_state(ConnectionState.DISCONNECTED)

    async def _on_transport_connect(self, *args: Any) -> None:
        if not self._wanted:
            logger.warning("Channel opened after disconnect; ignoring it")
            return
        if self._set_state(ConnectionState.CONNECTED):
            await self._handshake()
        await self._dispatch("connect", *args)

    async def _on_transport_disconnect(self, *args: Any) -> None:
        self._set_state(ConnectionState.DISCONNECTED)
        await self._dispatch("disconnect", *args)
        if self._wanted and self._transport.reconnects:
            self._set_state(ConnectionState.CONNECTING)

    async def _on_transport_connect_error(self, *args: Any) -> None:
        logger.warning(f"Channel connect error: {args[0] if args else 'unknown'}")
        # While the transport retries, a failed attempt leaves us connecting
        if (
            self._state is ConnectionState.CONNECTING
            and not self._transport.reconnects
            and not self._transport.is_connected
        ):
            self._set_state(ConnectionState.DISCONNECTED)
        await self._dispatch("connect_error", *args)

    async def _handshake(self) -> None:
        if not self._user_id:
            logger.warning("Connected without a user id; skipping registration")
            return
        logger.info(f"Registering identity {self._user_id}")
        await self.emit(EVENT_REGISTER, self._user_id)
        await self.refresh_conversations()

    async def refresh_conversations(self) -> bool:
        """Ask the server to push a full conversation list."""
        return await self.emit(EVENT_GET_CONVERSATIONS, self._user_id)

    # ==================== Listener registry ====================

    def on(self, event: str, listener: EventHandler) -> None:
        """Register a listener. Several listeners may share one event name."""
        listeners = self._listeners.get(event)
        if listeners is None:
            listeners = self._listeners[event] = []
            if event not in LIFECYCLE_EVENTS:
                self._transport.on(event, self._make_dispatcher(event))
        listeners.append(listener)

    def off(self, event: str, listener: Optional[EventHandler] = None) -> None:
        """
        Remove ``listener`` from ``event``, leaving other listeners intact.

        With no listener, every listener for ``event`` is removed.
        """
        listeners = self._listeners.get(event)
        if listeners is None:
            return
        if listener is not None:
            remaining = [cb for cb in listeners if cb != listener]
        else:
            remaining = []

        if remaining:
            self._listeners[event] = remaining
            return
        del self._listeners[event]
        if event not in LIFECYCLE_EVENTS:
            self._transport.off(event)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    def _make_dispatcher(self, event: str) -> EventHandler:
        async def _dispatcher(*args: Any) -> None:
            await self._dispatch(event, *args)

        return _dispatcher

    async def _dispatch(self, event: str, *args: Any) -> None:
        """Run every listener for ``event`` in registration order."""
        for listener in list(self._listeners.get(event, [])):
            try:
                result = listener(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning(
                    f"Listener for {event!r} failed: {type(e).__name__}: {e}"
                )

    # ==================== Outbound ====================

    async def emit(self, event: str, data: Any = None) -> bool:
        """Fire-and-forget emit. Returns False if the channel is closed."""
        try:
            await self._transport.emit(event, data)
            return True
        except TransportError as e:
            logger.warning(f"Emit {event!r} dropped: {e}")
            return False

    async def request(
        self,
        event: str,
        data: Any = None,
        timeout: Optional[float] = None,
        require_success: bool = False,
    ) -> AckResult:
        """
        Emit ``event`` and wait for the server's single acknowledgement.

        Resolves to a failed AckResult on timeout or closed channel. With
        ``require_success`` only an ack carrying a truthy ``success`` flag
        counts as success.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()

        def _ack(*args: Any) -> None:
            if future.done():
                return
            if not args:
                future.set_result(None)
            elif len(args) == 1:
                future.set_result(args[0])
            else:
                future.set_result(list(args))

        try:
            await self._transport.emit(event, data, callback=_ack)
        except TransportError as e:
            logger.warning(f"Request {event!r} not sent: {e}")
            return AckResult.failed("transport")

        wait_s = self.ack_timeout if timeout is None else timeout
        try:
            payload = await asyncio.wait_for(future, timeout=wait_s)
        except TimeoutError:
            logger.warning(f"No acknowledgement for {event!r} within {wait_s}s")
            return AckResult.failed("timeout")
        return AckResult.from_payload(payload, require_success=require_success)
