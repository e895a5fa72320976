from __future__ import annotations

import json

from flask import Response, current_app, g, jsonify, request

from tabmark.api import api_bp
from tabmark.errors import AuthError, StoreError, TabmarkError
from tabmark.extensions import db
from tabmark.models import ApiToken, User
from tabmark.services.bookmarks import get_bookmark_service
from tabmark.services.dashboard import collection_etag
from tabmark.services.events import SyncEvent
from tabmark.services.security import (
    api_auth_required,
    create_stream_token,
    verify_stream_token,
)


@api_bp.errorhandler(TabmarkError)
def handle_tabmark_error(exc: TabmarkError):
    if isinstance(exc, StoreError):
        current_app.logger.error("Store failure on %s: %s", request.path, exc.detail)
    return jsonify({"error": exc.public_message}), exc.status_code


def _request_payload() -> dict:
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form.to_dict()


def _sse_frame(event: SyncEvent) -> str:
    return f"event: {event.type}\ndata: {json.dumps(event.to_wire())}\n\n"


@api_bp.route("/auth/token", methods=["POST"])
def auth_token():
    payload = request.get_json(silent=True) or {}
    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""
    token_name = (payload.get("token_name") or "").strip() or "api"

    user = User.query.filter_by(email=email).first()
    if not user or not user.is_active or not user.check_password(password):
        raise AuthError("Invalid credentials")

    token, token_hash = ApiToken.issue_token()
    db.session.add(ApiToken(user_id=user.id, name=token_name, token_hash=token_hash))
    db.session.commit()
    return jsonify({"token": token, "user_id": user.id})


@api_bp.route("/bookmarks", methods=["GET"])
@api_auth_required
def bookmarks_list_api():
    items = get_bookmark_service().list_bookmarks(g.caller)
    etag = collection_etag(items)
    if request.if_none_match.contains(etag):
        response = Response(status=304)
    else:
        response = jsonify({"items": [item.as_dict() for item in items]})
    response.set_etag(etag)
    response.headers["Cache-Control"] = "no-cache"
    return response


@api_bp.route("/bookmarks", methods=["POST"])
@api_auth_required
def bookmarks_create_api():
    payload = _request_payload()
    bookmark = get_bookmark_service().add_bookmark(
        payload.get("url"), payload.get("title"), g.caller
    )
    return jsonify(bookmark.as_dict()), 201


@api_bp.route("/bookmarks/<bookmark_id>", methods=["DELETE"])
@api_auth_required
def bookmarks_delete_api(bookmark_id: str):
    get_bookmark_service().delete_bookmark(bookmark_id, g.caller)
    return "", 204


@api_bp.route("/sync/token", methods=["POST"])
@api_auth_required
def sync_token():
    user_id = g.caller.user_id
    broker = current_app.extensions["sync_broker"]
    return jsonify(
        {
            "token": create_stream_token(current_app.config["SECRET_KEY"], user_id),
            "channel": broker.channel_name(user_id),
            "expires_in": current_app.config["SYNC_STREAM_TOKEN_TTL_SECONDS"],
        }
    )


@api_bp.route("/sync/stream", methods=["GET"])
def sync_stream():
    user_id = verify_stream_token(
        current_app.config["SECRET_KEY"],
        request.args.get("token", ""),
        max_age=current_app.config["SYNC_STREAM_TOKEN_TTL_SECONDS"],
    )
    if not user_id:
        raise AuthError("Stream token is invalid or expired")

    broker = current_app.extensions["sync_broker"]
    keepalive = current_app.config["SYNC_STREAM_KEEPALIVE_SECONDS"]
    logger = current_app.logger
    # subscribe now so nothing published after this request starts is missed
    subscription = broker.subscribe(user_id)
    logger.info("Sync stream opened on %s", subscription.channel_name)

    def generate():
        try:
            yield f": subscribed {subscription.channel_name}\n\n"
            while not subscription.closed:
                event = subscription.get(timeout=keepalive)
                if event is None:
                    if subscription.closed:
                        break
                    yield ": keepalive\n\n"
                    continue
                yield _sse_frame(event)
        finally:
            subscription.close()
            logger.info("Sync stream closed on %s", subscription.channel_name)

    return Response(
        generate(),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
