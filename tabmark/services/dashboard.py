from __future__ import annotations

import hashlib
from typing import Iterable

from tabmark.services.events import BookmarkSnapshot


def collection_etag(bookmarks: Iterable[BookmarkSnapshot]) -> str:
    """Validator for a user's list, computed from the rows themselves."""
    digest = hashlib.sha256()
    for bookmark in bookmarks:
        digest.update(
            f"{bookmark.id}\x1f{bookmark.created_at.isoformat()}\x1f"
            f"{bookmark.url}\x1f{bookmark.title}\x1e".encode("utf-8")
        )
    return digest.hexdigest()[:32]
