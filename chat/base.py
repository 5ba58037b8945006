"""Abstract seams between the sync core and its collaborators."""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any, Optional, Union

EventHandler = Callable[..., Union[None, Awaitable[None]]]
AckCallback = Callable[..., Any]


class TransportBinding(ABC):
    """
    A single persistent, bidirectional event channel to one endpoint.

    Implementations hold at most one handler per event name; fan-out to
    multiple listeners is the connection manager's job.
    """

    name: str = "transport"
    # True when the channel re-opens itself after an unexpected loss
    reconnects: bool = False

    @abstractmethod
    async def connect(self) -> None:
        """Open the channel. Raises TransportError if it cannot be opened."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the channel and stop any reconnect attempts. Idempotent."""

    @abstractmethod
    def on(self, event: str, handler: EventHandler) -> None:
        """Install the handler for ``event``, replacing any previous one."""

    @abstractmethod
    def off(self, event: str) -> None:
        """Remove the handler for ``event`` if one is installed."""

    @abstractmethod
    async def emit(
        self,
        event: str,
        data: Any = None,
        callback: Optional[AckCallback] = None,
    ) -> None:
        """
        Send an event. When ``callback`` is given the server's single
        acknowledgement is delivered to it.

        Raises TransportError if the channel is closed.
        """

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether the channel is currently open."""


class NotificationSink(ABC):
    """Decides whether and how to alert the user about unread messages."""

    @abstractmethod
    def notify(self, count: int, avatar_ref: str) -> None:
        """Called with the current unread total while the view is hidden."""
