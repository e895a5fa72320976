import time
from datetime import datetime, timedelta, timezone

from tabmark.extensions import db
from tabmark.models import Bookmark, User
from tabmark.services.events import BookmarkSnapshot


def create_user(email: str, password: str = "secret", full_name=None) -> User:
    user = User(email=email, full_name=full_name, is_active=True)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    return user


def create_bookmark(user_id: str, title: str, minutes_ago: int = 0) -> Bookmark:
    bookmark = Bookmark(
        user_id=user_id,
        url=f"https://{title.lower()}.example.com",
        title=title,
        created_at=datetime.now(timezone.utc) - timedelta(minutes=minutes_ago),
    )
    db.session.add(bookmark)
    db.session.commit()
    return bookmark


def snapshot(bookmark_id: str, minutes_ago: int = 0, title=None) -> BookmarkSnapshot:
    return BookmarkSnapshot(
        id=bookmark_id,
        user_id="u1",
        url=f"https://{bookmark_id}.example.com",
        title=title or bookmark_id.upper(),
        created_at=datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
        - timedelta(minutes=minutes_ago),
    )


def wait_until(condition, timeout: float = 5.0, interval: float = 0.02) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(interval)
    return condition()
