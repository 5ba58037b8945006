"""Client-side synchronization core for one-to-one chat."""

from .base import NotificationSink, TransportBinding
from .connection import ConnectionManager
from .engine import SyncEngine
from .exceptions import ChatError, PayloadError, TransportError
from .history import MessageHistoryCache
from .models import (
    AckResult,
    ConnectionState,
    ConversationSummary,
    Message,
    MessageStatus,
    SearchUser,
    UserIdentity,
)
from .store import ConversationSnapshot, ConversationStore

__all__ = [
    "AckResult",
    "ChatError",
    "ConnectionManager",
    "ConnectionState",
    "ConversationSnapshot",
    "ConversationStore",
    "ConversationSummary",
    "Message",
    "MessageHistoryCache",
    "MessageStatus",
    "NotificationSink",
    "PayloadError",
    "SearchUser",
    "SyncEngine",
    "TransportBinding",
    "TransportError",
    "UserIdentity",
]
