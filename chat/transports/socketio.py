"""
Socket.IO Transport Binding

Implements TransportBinding on top of python-socketio's AsyncClient.
Retrying, both for the first open and after a drop, is left to the client
library and follows the same reconnection settings.
"""

import asyncio
from collections.abc import Sequence
from typing import Any, Optional

import socketio
from loguru import logger

from ..base import AckCallback, EventHandler, TransportBinding
from ..exceptions import TransportError

DEFAULT_NAMESPACE = "/"


class SocketIOTransport(TransportBinding):
    """
    Socket.IO channel adapter.

    The client is created with auto-connect semantics off: nothing is
    opened until ``connect()`` is awaited.
    """

    name = "socketio"

    def __init__(
        self,
        url: str,
        transports: Sequence[str] = ("websocket",),
        reconnection: bool = True,
        reconnection_attempts: int = 0,
        reconnection_delay: float = 1.0,
        client: Optional[socketio.AsyncClient] = None,
    ):
        self.url = url
        self.transports = list(transports)
        self.reconnects = reconnection
        self._opening: Optional[asyncio.Future] = None
        self._client = client or socketio.AsyncClient(
            reconnection=reconnection,
            reconnection_attempts=reconnection_attempts,
            reconnection_delay=reconnection_delay,
            logger=False,
        )

    @property
    def is_connected(self) -> bool:
        return bool(self._client.connected)

    async def connect(self) -> None:
        """
        Open the channel.

        With reconnection enabled the library keeps retrying a failed first
        open until it succeeds, its attempts run out, or ``disconnect()``
        aborts it.
        """
        if self.is_connected:
            return

        self._opening = asyncio.ensure_future(
            self._client.connect(
                self.url, transports=self.transports, retry=self.reconnects
            )
        )
        try:
            await self._opening
        except socketio.exceptions.ConnectionError as e:
            logger.error(f"Failed to connect to {self.url}: {e}")
            raise TransportError(f"Could not open channel to {self.url}: {e}") from e
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            raise TransportError(f"Opening channel to {self.url} was aborted") from None
        finally:
            self._opening = None
        logger.info(f"Socket.IO channel open: {self.url}")

    async def disconnect(self) -> None:
        """
        Close the channel and stop any retrying. Idempotent.

        ``shutdown()`` also ends a reconnect loop running after a drop, so a
        closed transport never comes back on its own.
        """
        if self._opening is not None and not self._opening.done():
            self._opening.cancel()
        await self._client.shutdown()
        logger.info("Socket.IO channel closed")

    def on(self, event: str, handler: EventHandler) -> None:
        self._client.on(event, handler)

    def off(self, event: str) -> None:
        # AsyncClient has no public removal API; handlers live per namespace.
        self._client.handlers.get(DEFAULT_NAMESPACE, {}).pop(event, None)

    async def emit(
        self,
        event: str,
        data: Any = None,
        callback: Optional[AckCallback] = None,
    ) -> None:
        try:
            await self._client.emit(event, data, callback=callback)
        except socketio.exceptions.SocketIOError as e:
            raise TransportError(f"Emit {event!r} failed: {e}") from e
