"""Conversation Store.

State lives in an immutable ``ConversationSnapshot``. Every mutation is a
pure function from one snapshot to the next, and every snapshot computes
its unread total from its own summaries when it is built, so the total can
never drift from the rows it describes.
"""

from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from loguru import logger

from .models import ConversationSummary

JUST_NOW = "Just now"


@dataclass(frozen=True)
class ConversationSnapshot:
    """Ordered conversation summaries plus their derived unread total."""

    summaries: tuple[ConversationSummary, ...] = ()
    total_unread: int = field(default=0, init=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "total_unread", sum(s.unread for s in self.summaries)
        )

    @classmethod
    def build(cls, summaries: Iterable[ConversationSummary]) -> "ConversationSnapshot":
        """Build a snapshot, keeping the first summary seen for each peer."""
        seen: set[str] = set()
        unique: list[ConversationSummary] = []
        for summary in summaries:
            if summary.peer_id in seen:
                logger.debug(f"Dropping duplicate summary for peer {summary.peer_id}")
                continue
            seen.add(summary.peer_id)
            unique.append(summary)
        return cls(tuple(unique))

    def get(self, peer_id: str) -> Optional[ConversationSummary]:
        for summary in self.summaries:
            if summary.peer_id == peer_id:
                return summary
        return None

    def __contains__(self, peer_id: object) -> bool:
        return any(s.peer_id == peer_id for s in self.summaries)

    def __len__(self) -> int:
        return len(self.summaries)


# ==================== Reducers ====================


def _map_peer(
    snapshot: ConversationSnapshot,
    peer_id: str,
    update: Callable[[ConversationSummary], ConversationSummary],
) -> ConversationSnapshot:
    if peer_id not in snapshot:
        return snapshot
    return ConversationSnapshot.build(
        update(s) if s.peer_id == peer_id else s for s in snapshot.summaries
    )


def replace_all(
    snapshot: ConversationSnapshot, summaries: Iterable[ConversationSummary]
) -> ConversationSnapshot:
    """Authoritative full replace; nothing from the old snapshot survives."""
    return ConversationSnapshot.build(summaries)


def reset_unread(snapshot: ConversationSnapshot, peer_id: str) -> ConversationSnapshot:
    return _map_peer(snapshot, peer_id, lambda s: s.with_unread(0))


def increment_unread(
    snapshot: ConversationSnapshot, peer_id: str, by: int = 1
) -> ConversationSnapshot:
    """Raise a peer's badge. Unknown peers are left alone."""
    return _map_peer(snapshot, peer_id, lambda s: s.with_unread(s.unread + by))


def ensure_summary(
    snapshot: ConversationSnapshot, summary: ConversationSummary
) -> ConversationSnapshot:
    """Append ``summary`` unless the peer already has one."""
    if summary.peer_id in snapshot:
        return snapshot
    return ConversationSnapshot.build((*snapshot.summaries, summary))


def record_sent(
    snapshot: ConversationSnapshot,
    peer_id: str,
    preview: str,
    fallback: ConversationSummary,
    time_label: str = JUST_NOW,
) -> ConversationSnapshot:
    """
    Update a peer's row after a confirmed send: preview, time, unread 0.

    ``fallback`` supplies name and avatar when the peer has no row yet.
    """
    if peer_id in snapshot:
        return _map_peer(
            snapshot,
            peer_id,
            lambda s: ConversationSummary(
                peer_id=s.peer_id,
                display_name=s.display_name,
                avatar_ref=s.avatar_ref,
                last_activity=time_label,
                last_message=preview,
                unread=0,
            ),
        )
    created = ConversationSummary(
        peer_id=peer_id,
        display_name=fallback.display_name,
        avatar_ref=fallback.avatar_ref,
        last_activity=time_label,
        last_message=preview,
        unread=0,
    )
    return ConversationSnapshot.build((*snapshot.summaries, created))


class ConversationStore:
    """Holds the current snapshot and applies reducers to it."""

    def __init__(self, summaries: Iterable[ConversationSummary] = ()):
        self._snapshot = ConversationSnapshot.build(summaries)

    @property
    def snapshot(self) -> ConversationSnapshot:
        return self._snapshot

    @property
    def summaries(self) -> tuple[ConversationSummary, ...]:
        return self._snapshot.summaries

    @property
    def total_unread(self) -> int:
        return self._snapshot.total_unread

    def get(self, peer_id: str) -> Optional[ConversationSummary]:
        return self._snapshot.get(peer_id)

    def apply(
        self,
        reducer: Callable[..., ConversationSnapshot],
        *args,
        **kwargs,
    ) -> bool:
        """Replace the snapshot with ``reducer(snapshot, ...)``.

        Returns True if anything changed.
        """
        new_snapshot = reducer(self._snapshot, *args, **kwargs)
        changed = new_snapshot != self._snapshot
        self._snapshot = new_snapshot
        return changed

    def __contains__(self, peer_id: object) -> bool:
        return peer_id in self._snapshot

    def __len__(self) -> int:
        return len(self._snapshot)
