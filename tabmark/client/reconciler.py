"""
Client-side mirror of one user's bookmark list.

The mirror changes in two ways. Pushed events are applied one at a time, and
applying the same event twice has the same effect as applying it once. A full
refetch runs whenever the session returns to the foreground and replaces the
list outright. Either way the list stays newest-first, like a fresh read from
the store.
"""

from __future__ import annotations

import enum
import logging
from typing import Callable, Iterable, Protocol

from tabmark.services.events import (
    BookmarkAdded,
    BookmarkDeleted,
    BookmarkSnapshot,
    SyncEvent,
)


logger = logging.getLogger(__name__)


class SessionState(enum.Enum):
    DISCONNECTED = "disconnected"
    SUBSCRIBING = "subscribing"
    SUBSCRIBED = "subscribed"


class EventSource(Protocol):
    def drain(self) -> list[SyncEvent]: ...

    def close(self) -> None: ...


Fetcher = Callable[[], Iterable[BookmarkSnapshot]]


class BookmarkReconciler:
    def __init__(self, fetch: Fetcher, initial: Iterable[BookmarkSnapshot] = ()):
        self._fetch = fetch
        self._bookmarks: list[BookmarkSnapshot] = _dedupe(initial)
        self._source: EventSource | None = None
        self.state = SessionState.DISCONNECTED
        self.visible = True
        self.on_change: Callable[[list[BookmarkSnapshot]], None] | None = None

    @property
    def bookmarks(self) -> list[BookmarkSnapshot]:
        return list(self._bookmarks)

    def ids(self) -> list[str]:
        return [bookmark.id for bookmark in self._bookmarks]

    def connect(self, subscribe: Callable[[], EventSource]) -> BookmarkReconciler:
        if self.state is not SessionState.DISCONNECTED:
            return self
        self.state = SessionState.SUBSCRIBING
        try:
            self._source = subscribe()
        except Exception:
            self.state = SessionState.DISCONNECTED
            raise
        self.state = SessionState.SUBSCRIBED
        return self

    def close(self) -> None:
        source, self._source = self._source, None
        self.state = SessionState.DISCONNECTED
        if source is not None:
            source.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def pump(self) -> int:
        """Apply everything the subscription has queued, in arrival order."""
        if self.state is not SessionState.SUBSCRIBED or self._source is None:
            return 0
        events = self._source.drain()
        for event in events:
            self.apply(event)
        return len(events)

    def apply(self, event: SyncEvent) -> bool:
        if isinstance(event, BookmarkAdded):
            changed = self._insert(event.bookmark)
        elif isinstance(event, BookmarkDeleted):
            changed = self._remove(event.id)
        else:
            raise TypeError(f"unsupported sync event: {event!r}")
        if changed:
            self._notify()
        return changed

    def apply_local(self, bookmark: BookmarkSnapshot) -> bool:
        """Optimistic update after our own add succeeded; the echo is absorbed later."""
        return self.apply(BookmarkAdded(bookmark))

    def on_visibility_change(self, visible: bool) -> bool:
        became_visible = visible and not self.visible
        self.visible = visible
        if not became_visible:
            return False
        return self.refresh()

    def refresh(self) -> bool:
        try:
            fresh = list(self._fetch())
        except Exception as exc:
            logger.error("Refetch of bookmarks failed: %s", exc)
            return False
        self._bookmarks = _dedupe(fresh)
        self._notify()
        return True

    def _insert(self, bookmark: BookmarkSnapshot) -> bool:
        if any(existing.id == bookmark.id for existing in self._bookmarks):
            logger.debug("Duplicate bookmark ignored: %s", bookmark.id)
            return False
        self._bookmarks.insert(0, bookmark)
        if len(self._bookmarks) > 1 and _sort_key(bookmark) < _sort_key(
            self._bookmarks[1]
        ):
            # late delivery of an older add; keep newest-first order
            self._bookmarks.sort(key=_sort_key, reverse=True)
        return True

    def _remove(self, bookmark_id: str) -> bool:
        remaining = [item for item in self._bookmarks if item.id != bookmark_id]
        if len(remaining) == len(self._bookmarks):
            return False
        self._bookmarks = remaining
        return True

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change(self.bookmarks)


def _sort_key(bookmark: BookmarkSnapshot):
    return (bookmark.created_at, bookmark.id)


def _dedupe(bookmarks: Iterable[BookmarkSnapshot]) -> list[BookmarkSnapshot]:
    seen: set[str] = set()
    unique = []
    for bookmark in bookmarks:
        if bookmark.id in seen:
            continue
        seen.add(bookmark.id)
        unique.append(bookmark)
    return unique
