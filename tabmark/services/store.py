from __future__ import annotations

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from tabmark.errors import StoreError
from tabmark.extensions import db
from tabmark.models import Bookmark
from tabmark.services.events import BookmarkSnapshot


class BookmarkStore:
    """Row-level access to bookmarks, always scoped to the owning user."""

    def __init__(self, session=None):
        self._session = session

    @property
    def session(self):
        return self._session or db.session

    def insert(self, user_id: str, url: str, title: str) -> BookmarkSnapshot:
        bookmark = Bookmark(user_id=user_id, url=url, title=title)
        try:
            self.session.add(bookmark)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreError(f"Failed to add bookmark: {exc}") from exc
        return BookmarkSnapshot.from_model(bookmark)

    def delete(self, bookmark_id: str, user_id: str) -> int:
        # Zero rows for a foreign or unknown id is not an error.
        statement = delete(Bookmark).where(
            Bookmark.id == bookmark_id, Bookmark.user_id == user_id
        )
        try:
            result = self.session.execute(statement)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreError(f"Failed to delete bookmark: {exc}") from exc
        return result.rowcount or 0

    def list_for_user(self, user_id: str) -> list[BookmarkSnapshot]:
        statement = (
            select(Bookmark)
            .where(Bookmark.user_id == user_id)
            .order_by(Bookmark.created_at.desc(), Bookmark.id.desc())
        )
        try:
            rows = self.session.execute(statement).scalars().all()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreError(f"Failed to list bookmarks: {exc}") from exc
        return [BookmarkSnapshot.from_model(row) for row in rows]
