from __future__ import annotations

from urllib.parse import urlparse

from flask import current_app, flash, redirect, render_template, request, url_for
from flask_login import current_user

from tabmark.errors import StoreError, TabmarkError
from tabmark.services.bookmarks import get_bookmark_service
from tabmark.services.security import CallerSession
from tabmark.web import web_bp


def _hostname(url: str) -> str:
    host = urlparse(url).hostname or ""
    return host.removeprefix("www.") or "link"


def _flash_error(exc: TabmarkError) -> None:
    if isinstance(exc, StoreError):
        current_app.logger.error("Dashboard mutation failed: %s", exc.detail)
    flash(exc.public_message, "error")


@web_bp.route("/dashboard")
def dashboard():
    service = get_bookmark_service()
    caller = CallerSession.for_user(current_user)
    try:
        bookmarks = service.list_bookmarks(caller)
    except StoreError as exc:
        _flash_error(exc)
        bookmarks = []
    return render_template(
        "dashboard.html",
        user=current_user,
        bookmarks=bookmarks,
        initial_bookmarks=[bookmark.as_dict() for bookmark in bookmarks],
        hostname=_hostname,
    )


@web_bp.route("/dashboard/bookmarks", methods=["POST"])
def dashboard_add_bookmark():
    service = get_bookmark_service()
    try:
        service.add_bookmark(
            request.form.get("url"),
            request.form.get("title"),
            CallerSession.for_user(current_user),
        )
    except TabmarkError as exc:
        _flash_error(exc)
    else:
        flash("Bookmark saved.", "success")
    return redirect(url_for("web.dashboard"))


@web_bp.route("/dashboard/bookmarks/<bookmark_id>/delete", methods=["POST"])
def dashboard_delete_bookmark(bookmark_id: str):
    service = get_bookmark_service()
    try:
        service.delete_bookmark(bookmark_id, CallerSession.for_user(current_user))
    except TabmarkError as exc:
        _flash_error(exc)
    return redirect(url_for("web.dashboard"))
