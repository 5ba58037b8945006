"""Builds the transport and sync engine from settings."""

from collections.abc import Callable
from typing import TYPE_CHECKING, Optional

from loguru import logger

from .base import NotificationSink, TransportBinding
from .connection import ConnectionManager
from .engine import SyncEngine
from .notifications import LogNotificationSink
from .search import DebouncedUserSearch, UserSearchClient
from .transports import SocketIOTransport

if TYPE_CHECKING:
    from config.settings import Settings


def create_transport(settings: "Settings") -> TransportBinding:
    """Create the socket.io channel described by ``settings``."""
    logger.info(
        f"Creating socket.io transport for {settings.server_url} ({settings.socket_transports})"
    )
    return SocketIOTransport(
        url=settings.server_url,
        transports=settings.transports,
        reconnection=settings.reconnection,
        reconnection_attempts=settings.reconnection_attempts,
        reconnection_delay=settings.reconnection_delay,
    )


def create_engine(
    settings: "Settings",
    transport: Optional[TransportBinding] = None,
    notification_sink: Optional[NotificationSink] = None,
    search_client: Optional[UserSearchClient] = None,
    on_history_loaded: Optional[Callable[[str], None]] = None,
) -> SyncEngine:
    """
    Wire a SyncEngine for the user in ``settings``.

    Collaborators not passed in are built from settings.
    """
    connection = ConnectionManager(
        transport or create_transport(settings),
        ack_timeout=settings.ack_timeout,
    )
    if notification_sink is None and settings.notifications_enabled:
        notification_sink = LogNotificationSink()
    search = DebouncedUserSearch(
        search_client
        or UserSearchClient(settings.api_base_url, timeout=settings.http_timeout),
        delay=settings.search_debounce,
    )
    return SyncEngine(
        connection,
        settings.identity(),
        notification_sink=notification_sink,
        search=search,
        on_history_loaded=on_history_loaded,
        history_dedupe=settings.history_dedupe,
    )
