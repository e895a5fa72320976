"""
Server-side entry points for changing a user's bookmarks.

Each mutation writes to the store first and only then broadcasts on the
user's channel. The store is the source of truth: a failed broadcast is
logged and dropped, never rolled back, because every client refetches the
full list when it comes back to the foreground.
"""

from __future__ import annotations

from flask import current_app

from tabmark.errors import ValidationError
from tabmark.services.channels import ChannelBroker
from tabmark.services.events import (
    BookmarkAdded,
    BookmarkDeleted,
    BookmarkSnapshot,
    SyncEvent,
)
from tabmark.services.security import CallerSession, require_user_id
from tabmark.services.store import BookmarkStore


def _clean(value) -> str:
    return (value or "").strip() if isinstance(value, str) else ""


class BookmarkService:
    def __init__(self, store: BookmarkStore, broker: ChannelBroker):
        self.store = store
        self.broker = broker

    def add_bookmark(self, url, title, caller: CallerSession) -> BookmarkSnapshot:
        url = _clean(url)
        title = _clean(title)
        if not url or not title:
            raise ValidationError("URL and title are required")

        user_id = require_user_id(caller)
        bookmark = self.store.insert(user_id, url, title)
        current_app.logger.info("Bookmark %s added for user %s", bookmark.id, user_id)

        self._publish(user_id, BookmarkAdded(bookmark))
        return bookmark

    def delete_bookmark(self, bookmark_id, caller: CallerSession) -> None:
        user_id = require_user_id(caller)
        deleted = self.store.delete(str(bookmark_id or ""), user_id)
        if deleted:
            current_app.logger.info(
                "Bookmark %s deleted for user %s", bookmark_id, user_id
            )
        else:
            current_app.logger.debug(
                "Delete of %s for user %s matched no rows", bookmark_id, user_id
            )

        self._publish(user_id, BookmarkDeleted(str(bookmark_id or "")))

    def list_bookmarks(self, caller: CallerSession) -> list[BookmarkSnapshot]:
        return self.store.list_for_user(require_user_id(caller))

    def _publish(self, user_id: str, event: SyncEvent) -> None:
        try:
            with self.broker.channel(user_id) as channel:
                delivered = channel.send(event)
        except Exception as exc:
            current_app.logger.warning(
                "Failed to broadcast %s for user %s: %s", event.type, user_id, exc
            )
            return
        current_app.logger.debug(
            "Broadcast %s on %s to %s subscriber(s)",
            event.type,
            self.broker.channel_name(user_id),
            delivered,
        )


def get_bookmark_service() -> BookmarkService:
    return BookmarkService(
        store=BookmarkStore(),
        broker=current_app.extensions["sync_broker"],
    )
