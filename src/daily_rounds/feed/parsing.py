"""Parsing helpers for Instagram Graph media and comment payloads.

URL: https://graph.instagram.com/me/media?fields=id,permalink,timestamp,caption
Response format: {
    'data': [{
        'id': '17895695668004550',
        'permalink': 'https://www.instagram.com/p/xyz/',
        'timestamp': '2024-05-01T18:22:03+0000',
        'caption': 'comment IN to play'
    }, ...],
    'paging': {'cursors': {...}, 'next': 'https://graph.instagram.com/...'}
}

Comments (/{media-id}/comments?fields=id,username,text,timestamp) use the same
envelope with items {'id', 'username', 'text', 'timestamp'}.
"""

from __future__ import annotations

import datetime
from typing import Any

from daily_rounds.classes.round import Post, RawComment
from daily_rounds.errors import FeedAuthError, FeedPayloadError, IngestionError

TIMESTAMP_FORMATS = ("%Y-%m-%dT%H:%M:%S%z", "%Y-%m-%dT%H:%M:%S.%f%z")
_EPOCH = datetime.datetime(1970, 1, 1, tzinfo=datetime.timezone.utc)

# Graph API error code for an invalid or expired token
OAUTH_TOKEN_ERROR_CODE = 190


def parse_timestamp(value: Any) -> datetime.datetime | None:
    if not value or not isinstance(value, str):
        return None
    for fmt in TIMESTAMP_FORMATS:
        try:
            return datetime.datetime.strptime(value, fmt)
        except ValueError:
            continue
    return None


def raise_for_error_payload(payload: Any, context: str) -> None:
    """Translate a Graph API ``{'error': {...}}`` body into an IngestionError."""
    if not isinstance(payload, dict) or not payload.get("error"):
        return
    error = payload["error"]
    if not isinstance(error, dict):
        raise IngestionError(f"{context} failed: {error}")
    message = error.get("message") or str(error)
    if error.get("type") == "OAuthException" or error.get("code") == OAUTH_TOKEN_ERROR_CODE:
        raise FeedAuthError(f"{context} failed: {message}")
    raise IngestionError(f"{context} failed: {message}")


def get_items(payload: Any, context: str) -> list[dict[str, Any]]:
    if not isinstance(payload, dict):
        raise FeedPayloadError(f"{context} returned {type(payload).__name__}, expected an object")
    items = payload.get("data") or []
    if not isinstance(items, list):
        raise FeedPayloadError(f"{context} 'data' is not a list")
    return [item for item in items if isinstance(item, dict)]


def get_next_url(payload: dict[str, Any]) -> str | None:
    paging = payload.get("paging") or {}
    if not isinstance(paging, dict):
        return None
    return paging.get("next") or None


def _optional_str(item: dict[str, Any], key: str, context: str) -> str | None:
    """Field value as str or None; any other type means the payload is malformed."""
    value = item.get(key)
    if value is None or isinstance(value, str):
        return value
    raise FeedPayloadError(f"{context} field '{key}' is {type(value).__name__}, expected a string")


def parse_post(item: dict[str, Any]) -> Post:
    post_id = item.get("id")
    if not post_id:
        raise FeedPayloadError(f"media item without an id: {item}")
    return Post(
        id=str(post_id),
        permalink=_optional_str(item, "permalink", "media item"),
        timestamp=_optional_str(item, "timestamp", "media item"),
        caption=_optional_str(item, "caption", "media item"),
    )


def newest_post(items: list[dict[str, Any]]) -> Post | None:
    """Pick the most recent post by timestamp; None if the account has no posts."""
    if not items:
        return None
    posts = [parse_post(item) for item in items]
    return max(posts, key=lambda post: parse_timestamp(post.timestamp) or _EPOCH)


def parse_comment(item: dict[str, Any]) -> RawComment:
    comment_id = item.get("id")
    return RawComment(
        handle=_optional_str(item, "username", "comment") or "",
        text=_optional_str(item, "text", "comment") or "",
        comment_id=str(comment_id) if comment_id is not None else None,
        timestamp=_optional_str(item, "timestamp", "comment"),
    )
