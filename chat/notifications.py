"""Unread alert helpers and the default notification sink."""

from loguru import logger

from .base import NotificationSink

DEFAULT_TITLE = "Chat"


def notification_text(count: int) -> str:
    return f"You have {count} new message{'s' if count > 1 else ''}"


def window_title(total_unread: int, visible: bool) -> str:
    """Title for the visible view: the unread count, or the plain app name."""
    if total_unread > 0 and visible:
        return f"You have {total_unread} unread messages"
    return DEFAULT_TITLE


def should_notify(total_unread: int, visible: bool) -> bool:
    return total_unread > 0 and not visible


class LogNotificationSink(NotificationSink):
    """Writes alerts to the log. Used when no desktop integration is wired in."""

    def notify(self, count: int, avatar_ref: str) -> None:
        logger.info(f"NOTIFY: {notification_text(count)}")
