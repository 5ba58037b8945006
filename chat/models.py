"""Data model shared by the connection manager, stores and sync engine.

Wire payloads use the server's camelCase keys; each model translates them
in ``from_dict`` / ``to_dict`` so the rest of the package only sees
Python attribute names.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Optional

from .exceptions import PayloadError


class ConnectionState(Enum):
    """Lifecycle of the single event channel."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class MessageStatus(Enum):
    """Delivery status as reported by the server."""

    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"


def _require_str(data: dict, key: str, kind: str) -> str:
    value = data.get(key)
    if value is None or isinstance(value, (dict, list)):
        raise PayloadError(kind, f"missing or invalid {key!r}")
    return str(value)


def _require_dict(data: Any, kind: str) -> dict:
    if not isinstance(data, dict):
        raise PayloadError(kind, f"expected an object, got {type(data).__name__}")
    return data


@dataclass(frozen=True)
class UserIdentity:
    """The local user, supplied once by the login flow."""

    id: str
    display_name: str = ""
    avatar_ref: str = ""


@dataclass(frozen=True)
class ConversationSummary:
    """One row of the conversation list, keyed by ``peer_id``."""

    peer_id: str
    display_name: str = ""
    avatar_ref: str = ""
    last_activity: str = ""  # timestamp or relative label such as "Just now"
    last_message: str = ""
    unread: int = 0

    @classmethod
    def from_dict(cls, data: Any) -> "ConversationSummary":
        data = _require_dict(data, "conversation")
        raw_unread = data.get("unread") or 0
        try:
            unread = int(raw_unread)
        except (TypeError, ValueError) as e:
            raise PayloadError("conversation", f"invalid unread {raw_unread!r}") from e
        return cls(
            peer_id=_require_str(data, "uuid", "conversation"),
            display_name=str(data.get("cnName") or ""),
            avatar_ref=str(data.get("avatarUrl") or ""),
            last_activity=str(data.get("time") or ""),
            last_message=str(data.get("lastMessage") or ""),
            unread=max(unread, 0),
        )

    def to_dict(self) -> dict:
        return {
            "uuid": self.peer_id,
            "cnName": self.display_name,
            "avatarUrl": self.avatar_ref,
            "time": self.last_activity,
            "lastMessage": self.last_message,
            "unread": self.unread,
        }

    def with_unread(self, unread: int) -> "ConversationSummary":
        return replace(self, unread=max(unread, 0))


@dataclass(frozen=True)
class Message:
    """A single message as issued by the server. Never built locally."""

    id: str
    sender_id: str
    recipient_id: str
    content: str
    status: MessageStatus
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> "Message":
        data = _require_dict(data, "message")
        raw_status = data.get("status")
        try:
            status = MessageStatus(raw_status)
        except ValueError as e:
            raise PayloadError("message", f"unknown status {raw_status!r}") from e
        return cls(
            id=_require_str(data, "id", "message"),
            sender_id=_require_str(data, "senderId", "message"),
            recipient_id=_require_str(data, "recipientId", "message"),
            content=str(data.get("content") or ""),
            status=status,
            created_at=str(data.get("createTime") or ""),
            updated_at=str(data.get("updateTime") or ""),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "senderId": self.sender_id,
            "recipientId": self.recipient_id,
            "content": self.content,
            "status": self.status.value,
            "createTime": self.created_at,
            "updateTime": self.updated_at,
        }

    def involves(self, user_id: str) -> bool:
        """True if ``user_id`` is the sender or the recipient."""
        return user_id in (self.sender_id, self.recipient_id)


@dataclass(frozen=True)
class SearchUser:
    """A user returned by the fuzzy search endpoint."""

    id: str
    email: str = ""
    display_name: str = ""
    avatar_ref: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> "SearchUser":
        data = _require_dict(data, "search result")
        return cls(
            id=_require_str(data, "uuid", "search result"),
            email=str(data.get("email") or ""),
            display_name=str(data.get("cnName") or ""),
            avatar_ref=str(data.get("avatarUrl") or ""),
        )


@dataclass(frozen=True)
class AckResult:
    """Outcome of a request/acknowledgement exchange.

    ``error`` is ``None`` when the server answered; otherwise one of
    ``"timeout"`` or ``"transport"``.
    """

    success: bool
    payload: Any = None
    error: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any, require_success: bool = False) -> "AckResult":
        """
        Interpret an ack body. An explicit ``success`` flag wins when present.

        Some acks carry no body at all (history completion) and count as
        success, unless ``require_success`` asks for a truthy flag.
        """
        if isinstance(payload, dict) and "success" in payload:
            return cls(success=bool(payload["success"]), payload=payload)
        return cls(success=not require_success, payload=payload)

    @classmethod
    def failed(cls, error: str) -> "AckResult":
        return cls(success=False, error=error)

    @property
    def timed_out(self) -> bool:
        return self.error == "timeout"
