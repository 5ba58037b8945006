"""
Sync Engine

Reconciles pushed events (conversation list, history loads, live messages,
refresh hints) with local actions (open, send, start new conversation)
against the Conversation Store and Message History Cache.

Inbound handlers are plain synchronous functions: the event loop delivers
one event at a time and a handler never awaits, so each one runs to
completion before the next is applied.
"""

from collections.abc import Callable
from typing import Any, List, Optional, Tuple

from loguru import logger

from .base import EventHandler, NotificationSink
from .connection import ConnectionManager
from .exceptions import PayloadError
from .history import MessageHistoryCache
from .models import (
    AckResult,
    ConversationSummary,
    Message,
    MessageStatus,
    SearchUser,
    UserIdentity,
)
from .notifications import should_notify, window_title
from .search import DebouncedUserSearch
from .store import (
    JUST_NOW,
    ConversationStore,
    ensure_summary,
    increment_unread,
    record_sent,
    replace_all,
    reset_unread,
)

# Inbound event names
EVENT_CONVERSATION_LIST = "conversationList"
EVENT_MESSAGE_HISTORY = "messageHistory"
EVENT_PRIVATE_MESSAGE = "privateMessage"
EVENT_UPDATE_CONVERSATIONS = "updateConversations"

# Outbound event names (privateMessage is shared with inbound)
EVENT_GET_HISTORY = "getHistory"

UNKNOWN_NAME = "Unknown"


class SyncEngine:
    """
    Owns the client's view of conversations for one signed-in user.

    Construct once per session, ``await start()``, hand the instance to the
    presentation layer, and ``await dispose()`` on logout or teardown.
    """

    def __init__(
        self,
        connection: ConnectionManager,
        identity: UserIdentity,
        notification_sink: Optional[NotificationSink] = None,
        search: Optional[DebouncedUserSearch] = None,
        on_history_loaded: Optional[Callable[[str], None]] = None,
        history_dedupe: bool = False,
    ):
        self.connection = connection
        self.identity = identity
        self.notification_sink = notification_sink
        self.on_history_loaded = on_history_loaded
        self.store = ConversationStore()
        self.history = MessageHistoryCache(dedupe=history_dedupe)
        self._search = search
        if search is not None and search.on_results is None:
            search.on_results = self._on_search_results
        self._active_peer: Optional[str] = None
        self._view_visible = True
        self._subscriptions: List[Tuple[str, EventHandler]] = []
        self._change_listeners: List[Callable[["SyncEngine"], None]] = []
        self._started = False
        self._disposed = False

    # ==================== Lifecycle ====================

    async def start(self) -> bool:
        """Subscribe to inbound events and open the channel."""
        self._ensure_live()
        if not self._started:
            self._subscribe(EVENT_CONVERSATION_LIST, self._on_conversation_list)
            self._subscribe(EVENT_MESSAGE_HISTORY, self._on_message_history)
            self._subscribe(EVENT_PRIVATE_MESSAGE, self._on_private_message)
            self._subscribe(EVENT_UPDATE_CONVERSATIONS, self._on_update_conversations)
            self._started = True
        logger.info(f"Sync engine starting for user {self.identity.id}")
        return await self.connection.connect(self.identity.id)

    async def dispose(self) -> None:
        """Detach every listener this engine registered and close the channel."""
        if self._disposed:
            return
        self._disposed = True
        for event, handler in self._subscriptions:
            self.connection.off(event, handler)
        self._subscriptions.clear()
        if self._search is not None:
            self._search.cancel()
        await self.connection.disconnect()
        if self._search is not None:
            await self._search.aclose()
        logger.info("Sync engine disposed")

    @property
    def disposed(self) -> bool:
        return self._disposed

    def _subscribe(self, event: str, handler: EventHandler) -> None:
        self.connection.on(event, handler)
        self._subscriptions.append((event, handler))

    def _ensure_live(self) -> None:
        if self._disposed:
            raise RuntimeError("Sync engine has been disposed")

    # ==================== Derived state ====================

    @property
    def active_peer(self) -> Optional[str]:
        return self._active_peer

    @property
    def conversations(self) -> tuple[ConversationSummary, ...]:
        return self.store.summaries

    @property
    def total_unread(self) -> int:
        return self.store.total_unread

    @property
    def messages(self) -> tuple[Message, ...]:
        return self.history.messages

    @property
    def search_results(self) -> List[SearchUser]:
        return self._search.results if self._search is not None else []

    @property
    def title(self) -> str:
        return window_title(self.total_unread, self._view_visible)

    def active_peer_info(self) -> Optional[ConversationSummary | SearchUser]:
        """The active peer's row, or its search result for a brand-new chat."""
        if self._active_peer is None:
            return None
        summary = self.store.get(self._active_peer)
        if summary is not None:
            return summary
        return self._find_search_result(self._active_peer)

    def display_name_for(self, user_id: str) -> str:
        summary = self.store.get(user_id)
        if summary is not None and summary.display_name:
            return summary.display_name
        result = self._find_search_result(user_id)
        if result is not None and result.display_name:
            return result.display_name
        return UNKNOWN_NAME

    def _find_search_result(self, user_id: str) -> Optional[SearchUser]:
        for user in self.search_results:
            if user.id == user_id:
                return user
        return None

    def add_change_listener(self, callback: Callable[["SyncEngine"], None]) -> None:
        self._change_listeners.append(callback)

    def remove_change_listener(self, callback: Callable[["SyncEngine"], None]) -> None:
        self._change_listeners = [cb for cb in self._change_listeners if cb != callback]

    def _changed(self, previous_total: int) -> None:
        for callback in list(self._change_listeners):
            try:
                callback(self)
            except Exception as e:
                logger.warning(f"Change listener failed: {e}")
        if self.total_unread != previous_total:
            self._maybe_notify()

    # ==================== Visibility / notifications ====================

    def set_view_visible(self, visible: bool) -> None:
        """Called by the presentation layer when the view is shown or hidden."""
        if visible == self._view_visible:
            return
        self._view_visible = visible
        self._maybe_notify()

    def _maybe_notify(self) -> None:
        if self.notification_sink is None:
            return
        if not should_notify(self.total_unread, self._view_visible):
            return
        try:
            self.notification_sink.notify(self.total_unread, self.identity.avatar_ref)
        except Exception as e:
            logger.warning(f"Notification sink failed: {e}")

    # ==================== Inbound handlers ====================

    def _on_conversation_list(self, payload: Any = None) -> None:
        if not isinstance(payload, list):
            logger.warning(
                f"Ignoring conversationList: expected a list, got {type(payload).__name__}"
            )
            return
        try:
            summaries = [ConversationSummary.from_dict(item) for item in payload]
        except PayloadError as e:
            logger.warning(f"Ignoring conversationList: {e}")
            return

        previous_total = self.total_unread
        self.store.apply(replace_all, summaries)
        logger.debug(
            f"conversationList applied: {len(self.store)} conversations, unread={self.total_unread}"
        )
        self._changed(previous_total)

    def _on_message_history(self, payload: Any = None) -> None:
        if not isinstance(payload, dict):
            logger.warning("Ignoring messageHistory: payload is not an object")
            return
        raw_messages = payload.get("messages") or []
        try:
            if not isinstance(raw_messages, list):
                raise PayloadError("history", "messages is not a list")
            messages = [Message.from_dict(item) for item in raw_messages]
        except PayloadError as e:
            logger.warning(f"Ignoring messageHistory: {e}")
            return

        peer_id = payload.get("withUser")
        peer_id = str(peer_id) if peer_id else None
        previous_total = self.total_unread

        if peer_id is None or peer_id == self._active_peer:
            self.history.replace(self._active_peer, messages)
            logger.debug(f"messageHistory applied: {len(messages)} messages")
        else:
            logger.debug(
                f"messageHistory for {peer_id} ignored; active peer is {self._active_peer}"
            )

        if peer_id is not None:
            self.store.apply(reset_unread, peer_id)
        self._changed(previous_total)

    def _on_private_message(self, payload: Any = None) -> None:
        try:
            message = Message.from_dict(payload)
        except PayloadError as e:
            logger.warning(f"Ignoring privateMessage: {e}")
            return

        previous_total = self.total_unread
        if self._active_peer is not None and message.involves(self._active_peer):
            self.history.append(message)

        if (
            message.recipient_id == self.identity.id
            and message.status is MessageStatus.DELIVERED
        ):
            self.store.apply(increment_unread, message.sender_id)

        logger.debug(
            f"privateMessage {message.id} from {message.sender_id}: unread={self.total_unread}"
        )
        self._changed(previous_total)

    async def _on_update_conversations(self, *args: Any) -> None:
        logger.debug("updateConversations hint received; refreshing")
        await self.connection.refresh_conversations()

    # ==================== Outbound operations ====================

    async def refresh(self) -> bool:
        """Request a full conversation list from the server."""
        self._ensure_live()
        return await self.connection.refresh_conversations()

    async def open_conversation(self, peer_id: str) -> AckResult:
        """
        Make ``peer_id`` the active conversation.

        The unread reset is optimistic and happens before the history request
        is sent; the history itself arrives through ``messageHistory``.
        """
        self._ensure_live()
        with logger.contextualize(peer_id=peer_id):
            previous_total = self.total_unread
            self._activate(peer_id)
            self.store.apply(reset_unread, peer_id)
            self._changed(previous_total)

            result = await self.connection.request(
                EVENT_GET_HISTORY, {"otherUserId": peer_id}
            )
            if result.error is not None:
                logger.warning(f"History request for {peer_id} failed: {result.error}")
            elif self.on_history_loaded is not None and self._active_peer == peer_id:
                try:
                    self.on_history_loaded(peer_id)
                except Exception as e:
                    logger.warning(f"History loaded callback failed: {e}")
            return result

    async def send_message(self, peer_id: str, content: str) -> Optional[AckResult]:
        """
        Send ``content`` to ``peer_id``.

        A successful ack only refreshes the peer's summary. The message itself
        is added to the history when the server echoes it back as a
        ``privateMessage`` event. Returns None for blank content.
        """
        self._ensure_live()
        if not peer_id or not content:
            logger.debug("send_message ignored: no peer or empty content")
            return None

        with logger.contextualize(peer_id=peer_id):
            result = await self.connection.request(
                EVENT_PRIVATE_MESSAGE,
                {"recipientId": peer_id, "content": content},
                require_success=True,
            )
            if not result.success:
                logger.warning(
                    f"Send to {peer_id} not confirmed: {result.error or 'rejected by server'}"
                )
                return result

            previous_total = self.total_unread
            self.store.apply(record_sent, peer_id, content, self._fallback_summary(peer_id))
            self._changed(previous_total)
            return result

    def start_new_conversation(self, peer: SearchUser) -> None:
        """Activate a conversation with a search result, creating its row if needed."""
        self._ensure_live()
        previous_total = self.total_unread
        self._activate(peer.id)
        self.store.apply(
            ensure_summary,
            ConversationSummary(
                peer_id=peer.id,
                display_name=peer.display_name,
                avatar_ref=peer.avatar_ref,
                last_activity=JUST_NOW,
                last_message="",
                unread=0,
            ),
        )
        # Clearing publishes to listeners, so the row must already exist
        if self._search is not None:
            self._search.clear()
        self._changed(previous_total)

    def search(self, query: str) -> None:
        """Feed a keystroke into the debounced user search."""
        self._ensure_live()
        if self._search is None:
            logger.debug("search ignored: no search client configured")
            return
        self._search.submit(query)

    def _on_search_results(self, results: List[SearchUser]) -> None:
        logger.debug(f"Search returned {len(results)} users")
        self._changed(self.total_unread)

    def _activate(self, peer_id: str) -> None:
        if peer_id != self._active_peer or self.history.peer_id != peer_id:
            self.history.reset(peer_id)
        self._active_peer = peer_id

    def _fallback_summary(self, peer_id: str) -> ConversationSummary:
        result = self._find_search_result(peer_id)
        if result is not None:
            return ConversationSummary(
                peer_id=peer_id,
                display_name=result.display_name,
                avatar_ref=result.avatar_ref,
            )
        return ConversationSummary(peer_id=peer_id, display_name=UNKNOWN_NAME)
