import json

from tabmark.extensions import db
from tabmark.models import Bookmark
from tests.helpers import create_bookmark, create_user


def _token(client, email: str, password: str = "secret"):
    response = client.post(
        "/api/v1/auth/token",
        json={"email": email, "password": password, "token_name": "pytest"},
    )
    assert response.status_code == 200
    return response.get_json()["token"]


def _auth(client, email: str):
    return {"Authorization": f"Bearer {_token(client, email)}"}


def _web_login(client, email: str, password: str = "secret"):
    response = client.post(
        "/", data={"email": email, "password": password}, follow_redirects=False
    )
    assert response.status_code == 302
    assert response.headers["Location"].endswith("/dashboard")


def _read_frames(response, wanted: int, limit: int = 200):
    frames = []
    stream = iter(response.response)
    for _ in range(limit):
        chunk = next(stream)
        text = chunk.decode() if isinstance(chunk, bytes) else chunk
        if text.startswith("event:"):
            frames.append(text)
            if len(frames) == wanted:
                break
    return frames


def _frame_payload(frame: str) -> dict:
    data_line = [line for line in frame.splitlines() if line.startswith("data: ")][0]
    return json.loads(data_line.removeprefix("data: "))


def test_token_rejects_bad_credentials(client, app):
    with app.app_context():
        create_user("a@example.com")

    response = client.post(
        "/api/v1/auth/token", json={"email": "a@example.com", "password": "nope"}
    )
    assert response.status_code == 401
    assert response.get_json() == {"error": "Invalid credentials"}


def test_add_list_delete_flow(client, app):
    with app.app_context():
        create_user("a@example.com")
    auth = _auth(client, "a@example.com")

    response = client.post(
        "/api/v1/bookmarks",
        headers=auth,
        json={"url": "https://a.com", "title": "A"},
    )
    assert response.status_code == 201
    created = response.get_json()
    assert created["id"]
    assert created["created_at"]

    response = client.get("/api/v1/bookmarks", headers=auth)
    assert response.status_code == 200
    assert [item["id"] for item in response.get_json()["items"]] == [created["id"]]

    response = client.delete(f"/api/v1/bookmarks/{created['id']}", headers=auth)
    assert response.status_code == 204

    response = client.get("/api/v1/bookmarks", headers=auth)
    assert response.get_json()["items"] == []


def test_add_requires_fields_and_session(client, app):
    with app.app_context():
        create_user("a@example.com")
    auth = _auth(client, "a@example.com")

    response = client.post("/api/v1/bookmarks", headers=auth, json={"url": "https://a.com"})
    assert response.status_code == 400
    assert response.get_json() == {"error": "URL and title are required"}

    response = client.post(
        "/api/v1/bookmarks", json={"url": "https://a.com", "title": "A"}
    )
    assert response.status_code == 401
    assert response.get_json() == {"error": "You must be logged in"}

    response = client.delete("/api/v1/bookmarks/anything")
    assert response.status_code == 401


def test_delete_of_someone_elses_bookmark_is_silently_ignored(client, app):
    with app.app_context():
        owner = create_user("owner@example.com")
        create_user("intruder@example.com")
        target_id = create_bookmark(owner.id, "Mine").id

    response = client.delete(
        f"/api/v1/bookmarks/{target_id}", headers=_auth(client, "intruder@example.com")
    )
    assert response.status_code == 204

    with app.app_context():
        assert db.session.get(Bookmark, target_id) is not None


def test_list_supports_conditional_requests(client, app):
    with app.app_context():
        create_user("a@example.com")
    auth = _auth(client, "a@example.com")

    first = client.get("/api/v1/bookmarks", headers=auth)
    etag = first.headers["ETag"]
    response = client.get("/api/v1/bookmarks", headers={**auth, "If-None-Match": etag})
    assert response.status_code == 304

    client.post("/api/v1/bookmarks", headers=auth, json={"url": "https://a.com", "title": "A"})
    response = client.get("/api/v1/bookmarks", headers={**auth, "If-None-Match": etag})
    assert response.status_code == 200
    assert len(response.get_json()["items"]) == 1


def test_route_guard_redirects(client, app):
    with app.app_context():
        create_user("a@example.com", full_name="Ada")

    response = client.get("/dashboard", follow_redirects=False)
    assert response.status_code == 302
    assert response.headers["Location"].endswith("/")

    _web_login(client, "a@example.com")

    response = client.get("/", follow_redirects=False)
    assert response.status_code == 302
    assert response.headers["Location"].endswith("/dashboard")

    response = client.get("/dashboard")
    assert response.status_code == 200
    assert b"Ada" in response.data


def test_route_guard_covers_dashboard_mutations(client, app):
    with app.app_context():
        user = create_user("a@example.com")
        create_bookmark(user.id, "Kept")
        bookmark_id = Bookmark.query.one().id

    for path in ("/dashboard/bookmarks", f"/dashboard/bookmarks/{bookmark_id}/delete"):
        response = client.post(path, data={"url": "https://a.com", "title": "A"})
        assert response.status_code == 302
        assert response.headers["Location"].endswith("/")

    with app.app_context():
        assert [bookmark.title for bookmark in Bookmark.query.all()] == ["Kept"]


def test_dashboard_shows_profile_avatar(client, app):
    with app.app_context():
        user = create_user("a@example.com", full_name="Ada")
        user.avatar_url = "https://img.example.com/ada.png"
        db.session.commit()
    _web_login(client, "a@example.com")

    response = client.get("/dashboard")
    assert b'src="https://img.example.com/ada.png"' in response.data


def test_dashboard_forms_go_through_mutation_service(client, app, broker):
    with app.app_context():
        user = create_user("a@example.com")
        user_id = user.id
    _web_login(client, "a@example.com")

    with broker.subscribe(user_id) as other_tab:
        response = client.post(
            "/dashboard/bookmarks", data={"url": "https://a.com", "title": "A"}
        )
        assert response.status_code == 302
        [added] = other_tab.drain()

        response = client.get("/dashboard")
        assert b"https://a.com" in response.data

        client.post(f"/dashboard/bookmarks/{added.bookmark.id}/delete")
        assert [event.type for event in other_tab.drain()] == ["bookmark_deleted"]

    response = client.post("/dashboard/bookmarks", data={"url": "", "title": ""})
    assert response.status_code == 302
    response = client.get("/dashboard")
    assert b"URL and title are required" in response.data


def test_stream_rejects_bad_token(client):
    response = client.get("/api/v1/sync/stream?token=forged")
    assert response.status_code == 401


def test_second_tab_receives_added_and_deleted_events(client, app, broker):
    with app.app_context():
        user = create_user("a@example.com")
        user_id = user.id
    auth = _auth(client, "a@example.com")

    response = client.post("/api/v1/sync/token", headers=auth)
    assert response.get_json()["channel"] == f"sync-channel-{user_id}"
    stream_token = response.get_json()["token"]

    stream = client.get(f"/api/v1/sync/stream?token={stream_token}", buffered=False)
    assert stream.status_code == 200
    assert stream.mimetype == "text/event-stream"
    assert broker.subscriber_count(user_id) == 1

    created = client.post(
        "/api/v1/bookmarks", headers=auth, json={"url": "https://a.com", "title": "A"}
    ).get_json()
    client.delete(f"/api/v1/bookmarks/{created['id']}", headers=auth)

    added_frame, deleted_frame = _read_frames(stream, wanted=2)
    assert added_frame.startswith("event: bookmark_added\n")
    assert _frame_payload(added_frame) == {
        "type": "bookmark_added",
        "payload": {"bookmark": created},
    }
    assert _frame_payload(deleted_frame) == {
        "type": "bookmark_deleted",
        "payload": {"id": created["id"]},
    }

    stream.close()
    assert broker.subscriber_count(user_id) == 0


def test_list_etag_tracks_changes_made_by_another_worker(worker_pair):
    worker_a, worker_b = worker_pair
    with worker_a.app_context():
        create_user("a@example.com")
    client_a = worker_a.test_client()
    client_b = worker_b.test_client()
    auth = _auth(client_a, "a@example.com")

    etag = client_a.get("/api/v1/bookmarks", headers=auth).headers["ETag"]

    response = client_b.post(
        "/api/v1/bookmarks", headers=auth, json={"url": "https://b.com", "title": "B"}
    )
    assert response.status_code == 201

    response = client_a.get("/api/v1/bookmarks", headers={**auth, "If-None-Match": etag})
    assert response.status_code == 200
    assert [item["title"] for item in response.get_json()["items"]] == ["B"]

    fresh = response.headers["ETag"]
    response = client_a.get("/api/v1/bookmarks", headers={**auth, "If-None-Match": fresh})
    assert response.status_code == 304
