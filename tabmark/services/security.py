from __future__ import annotations

import hashlib
from dataclasses import dataclass
from functools import wraps

from flask import g, request
from flask_login import current_user
from itsdangerous import BadData, URLSafeTimedSerializer

from tabmark.errors import AuthError
from tabmark.extensions import db
from tabmark.models import ApiToken, User, utcnow


@dataclass(frozen=True)
class CallerSession:
    """Identity of whoever is calling a mutation; user_id is None when signed out."""

    user_id: str | None = None
    email: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id)

    @classmethod
    def for_user(cls, user: User | None) -> CallerSession:
        if user is None:
            return cls()
        return cls(user_id=user.id, email=user.email)


def require_user_id(caller: CallerSession | None) -> str:
    if caller is None or not caller.is_authenticated:
        raise AuthError()
    return caller.user_id


def _user_from_bearer_token():
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    token = auth_header.removeprefix("Bearer ").strip()
    if not token:
        return None
    token_hash = hashlib.sha256(token.encode("utf-8")).hexdigest()
    token_row = ApiToken.query.filter_by(token_hash=token_hash).first()
    if not token_row or token_row.revoked_at is not None:
        return None
    if not token_row.user.is_active:
        return None
    token_row.last_used_at = utcnow()
    db.session.commit()
    return token_row.user


def caller_from_request() -> CallerSession:
    if current_user.is_authenticated:
        return CallerSession.for_user(current_user)
    return CallerSession.for_user(_user_from_bearer_token())


def api_auth_required(func):
    @wraps(func)
    def wrapped(*args, **kwargs):
        g.caller = caller_from_request()
        require_user_id(g.caller)
        return func(*args, **kwargs)

    return wrapped


def _stream_serializer(secret_key: str) -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(secret_key=secret_key, salt="sync-stream")


def create_stream_token(secret_key: str, user_id: str) -> str:
    return _stream_serializer(secret_key).dumps({"user_id": user_id})


def verify_stream_token(secret_key: str, token: str, max_age: int) -> str | None:
    try:
        payload = _stream_serializer(secret_key).loads(token, max_age=max_age)
    except BadData:
        return None
    user_id = payload.get("user_id") if isinstance(payload, dict) else None
    if not user_id:
        return None
    user = db.session.get(User, user_id)
    if not user or not user.is_active:
        return None
    return user_id
