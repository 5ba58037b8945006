"""Exceptions raised inside the chat synchronization core."""


class ChatError(Exception):
    """Base class for chat client errors."""


class TransportError(ChatError):
    """The event channel could not be opened, or an emit hit a closed channel."""


class PayloadError(ChatError, ValueError):
    """An inbound payload does not match the expected wire shape."""

    def __init__(self, kind: str, detail: str):
        self.kind = kind
        self.detail = detail
        super().__init__(f"Malformed {kind} payload: {detail}")
