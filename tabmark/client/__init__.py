from tabmark.client.http import HttpBookmarkClient, parse_sse
from tabmark.client.reconciler import BookmarkReconciler, SessionState

__all__ = ["BookmarkReconciler", "HttpBookmarkClient", "SessionState", "parse_sse"]
