"""Message History Cache for the active conversation."""

from typing import Iterable, Optional

from loguru import logger

from .models import Message


class MessageHistoryCache:
    """
    Ordered messages for exactly one peer.

    Order is arrival order; nothing is re-sorted by timestamp. Switching
    peers discards the previous peer's messages.
    """

    def __init__(self, dedupe: bool = False):
        self.dedupe = dedupe
        self._peer_id: Optional[str] = None
        self._messages: list[Message] = []
        self._ids: set[str] = set()

    @property
    def peer_id(self) -> Optional[str]:
        return self._peer_id

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def reset(self, peer_id: Optional[str]) -> None:
        """Switch to ``peer_id`` with an empty history."""
        self._peer_id = peer_id
        self._messages = []
        self._ids = set()

    def replace(self, peer_id: Optional[str], messages: Iterable[Message]) -> None:
        """Install a full history load for ``peer_id``."""
        self.reset(peer_id)
        for message in messages:
            self._add(message)

    def append(self, message: Message) -> bool:
        """Append a pushed message. Returns False if it was dropped as a duplicate."""
        return self._add(message)

    def _add(self, message: Message) -> bool:
        if self.dedupe and message.id in self._ids:
            logger.debug(f"Skipping duplicate message {message.id}")
            return False
        self._messages.append(message)
        self._ids.add(message.id)
        return True

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._ids

    def __len__(self) -> int:
        return len(self._messages)
