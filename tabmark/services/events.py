from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from dateutil import parser as dt_parser

from tabmark.models import Bookmark, as_utc


EVENT_BOOKMARK_ADDED = "bookmark_added"
EVENT_BOOKMARK_DELETED = "bookmark_deleted"


@dataclass(frozen=True)
class BookmarkSnapshot:
    id: str
    user_id: str
    url: str
    title: str
    created_at: datetime

    @classmethod
    def from_model(cls, bookmark: Bookmark) -> BookmarkSnapshot:
        return cls(
            id=bookmark.id,
            user_id=bookmark.user_id,
            url=bookmark.url,
            title=bookmark.title,
            created_at=as_utc(bookmark.created_at),
        )

    @classmethod
    def from_dict(cls, data: dict) -> BookmarkSnapshot:
        created_at = data.get("created_at")
        if isinstance(created_at, str):
            created_at = dt_parser.isoparse(created_at)
        if not isinstance(created_at, datetime):
            raise ValueError(f"bookmark {data.get('id')!r} has no created_at")
        return cls(
            id=str(data["id"]),
            user_id=str(data.get("user_id") or ""),
            url=data.get("url") or "",
            title=data.get("title") or "",
            created_at=as_utc(created_at),
        )

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "url": self.url,
            "title": self.title,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class BookmarkAdded:
    bookmark: BookmarkSnapshot

    type = EVENT_BOOKMARK_ADDED

    def to_wire(self) -> dict:
        return {"type": self.type, "payload": {"bookmark": self.bookmark.as_dict()}}


@dataclass(frozen=True)
class BookmarkDeleted:
    id: str

    type = EVENT_BOOKMARK_DELETED

    def to_wire(self) -> dict:
        return {"type": self.type, "payload": {"id": self.id}}


SyncEvent = BookmarkAdded | BookmarkDeleted


def event_from_wire(message: dict) -> SyncEvent:
    event_type = (message or {}).get("type")
    payload = (message or {}).get("payload") or {}
    if event_type == EVENT_BOOKMARK_ADDED:
        return BookmarkAdded(BookmarkSnapshot.from_dict(payload["bookmark"]))
    if event_type == EVENT_BOOKMARK_DELETED:
        return BookmarkDeleted(str(payload["id"]))
    raise ValueError(f"unknown sync event type: {event_type!r}")
