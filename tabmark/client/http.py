from __future__ import annotations

import json
import logging
import queue
import threading
from typing import Iterable, Iterator

import httpx

from tabmark.errors import AuthError, StoreError, TabmarkError, ValidationError
from tabmark.services.events import BookmarkSnapshot, SyncEvent, event_from_wire


logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": "TabmarkClient/1.0",
    "Accept": "application/json",
}

_ERRORS_BY_STATUS = {400: ValidationError, 401: AuthError}


def parse_sse(lines: Iterable[str]) -> Iterator[tuple[str, str]]:
    """Yield (event, data) pairs from a text/event-stream body; comments are skipped."""
    event_name = "message"
    data_lines: list[str] = []
    for raw in lines:
        line = raw.rstrip("\r\n")
        if not line:
            if data_lines:
                yield event_name, "\n".join(data_lines)
            event_name = "message"
            data_lines = []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            event_name = value
        elif field == "data":
            data_lines.append(value)
    if data_lines:
        yield event_name, "\n".join(data_lines)


class HttpBookmarkClient:
    """Talks to the bookmark API as one signed-in session of a user."""

    def __init__(
        self,
        base_url: str,
        api_token: str,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self._client = httpx.Client(
            base_url=base_url,
            headers={**DEFAULT_HEADERS, "Authorization": f"Bearer {api_token}"},
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def list_bookmarks(self) -> list[BookmarkSnapshot]:
        response = self._request("GET", "/api/v1/bookmarks")
        return [BookmarkSnapshot.from_dict(item) for item in response.json()["items"]]

    def add_bookmark(self, url: str, title: str) -> BookmarkSnapshot:
        response = self._request(
            "POST", "/api/v1/bookmarks", json={"url": url, "title": title}
        )
        return BookmarkSnapshot.from_dict(response.json())

    def delete_bookmark(self, bookmark_id: str) -> None:
        self._request("DELETE", f"/api/v1/bookmarks/{bookmark_id}")

    def stream_token(self) -> str:
        return self._request("POST", "/api/v1/sync/token").json()["token"]

    def open_stream(self) -> httpx.Response:
        """Open the event stream; the caller owns the response and must close it."""
        request = self._client.build_request(
            "GET",
            "/api/v1/sync/stream",
            params={"token": self.stream_token()},
            timeout=httpx.Timeout(self._client.timeout.connect, read=None),
        )
        try:
            response = self._client.send(request, stream=True)
        except httpx.HTTPError as exc:
            raise StoreError(f"GET /api/v1/sync/stream failed: {exc}") from exc
        if response.status_code != 200:
            response.read()
            response.close()
            self._raise_for_status(response)
        return response

    def iter_events(self) -> Iterator[SyncEvent]:
        response = self.open_stream()
        try:
            for _, data in parse_sse(response.iter_lines()):
                event = decode_event(data)
                if event is not None:
                    yield event
        finally:
            response.close()

    def subscribe(self) -> RemoteSubscription:
        return RemoteSubscription(self)

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise StoreError(f"{method} {path} failed: {exc}") from exc
        self._raise_for_status(response)
        return response

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.status_code < 400:
            return
        try:
            message = response.json().get("error")
        except ValueError:
            message = None
        error_cls = _ERRORS_BY_STATUS.get(response.status_code)
        if error_cls is not None:
            raise error_cls(message)
        if response.status_code >= 500:
            raise StoreError(message or f"server returned {response.status_code}")
        raise TabmarkError(message or f"server returned {response.status_code}")


def decode_event(data: str) -> SyncEvent | None:
    try:
        return event_from_wire(json.loads(data))
    except (ValueError, KeyError, TypeError) as exc:
        logger.warning("Ignoring malformed sync event: %s", exc)
        return None


class RemoteSubscription:
    """
    Reads the event stream on a worker thread so the owner can drain without blocking.

    The constructor returns only once the server has confirmed the subscription,
    so anything published afterwards is delivered. ``close`` shuts the HTTP
    stream, which ends the server-side subscription as well.
    """

    def __init__(self, client: HttpBookmarkClient, join_timeout: float = 2.0):
        self._queue: queue.Queue = queue.Queue()
        self._stopped = threading.Event()
        self._join_timeout = join_timeout
        self._response = client.open_stream()
        self._lines = self._response.iter_lines()
        try:
            self.channel_name = self._await_confirmation()
        except Exception:
            self._response.close()
            raise
        self._thread = threading.Thread(
            target=self._run, daemon=True, name=f"tabmark-{self.channel_name}"
        )
        self._thread.start()

    def _await_confirmation(self) -> str:
        for line in self._lines:
            if line.startswith(": subscribed"):
                return line.removeprefix(": subscribed").strip()
        raise StoreError("sync stream ended before the subscription was confirmed")

    def _live_lines(self) -> Iterator[str]:
        # keepalive comments also pass through here, so a stop is noticed promptly
        for line in self._lines:
            if self._stopped.is_set():
                return
            yield line

    def _run(self) -> None:
        try:
            for _, data in parse_sse(self._live_lines()):
                event = decode_event(data)
                if event is not None:
                    self._queue.put(event)
        except Exception as exc:
            if not self._stopped.is_set():
                logger.warning("Sync stream on %s ended: %s", self.channel_name, exc)
        finally:
            self._response.close()

    @property
    def closed(self) -> bool:
        return self._stopped.is_set()

    def drain(self) -> list[SyncEvent]:
        events = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events

    def close(self) -> None:
        if self._stopped.is_set():
            return
        self._stopped.set()
        try:
            self._response.close()
        except (httpx.HTTPError, OSError) as exc:
            logger.debug("Closing sync stream on %s: %s", self.channel_name, exc)
        self._thread.join(timeout=self._join_timeout)
        if self._thread.is_alive():
            logger.warning("Sync stream reader on %s did not stop", self.channel_name)
