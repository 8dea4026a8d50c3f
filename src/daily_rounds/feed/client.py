from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Any, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from daily_rounds.classes.round import Post, RawComment
from daily_rounds.errors import FeedAuthError, FeedPayloadError, FeedUnavailableError, IngestionError

from .parsing import get_items, get_next_url, newest_post, parse_comment, raise_for_error_payload

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://graph.instagram.com"
MEDIA_FIELDS = "id,permalink,timestamp,caption"
COMMENT_FIELDS = "id,username,text,timestamp"
AUTH_STATUS_CODES = (401, 403)
UNAVAILABLE_STATUS_CODES = (429, 500, 502, 503, 504)


def build_session(retries: int = 0) -> requests.Session:
    """requests.Session with an optional bounded retry on idempotent GETs."""
    session = requests.Session()
    if retries > 0:
        retry = Retry(
            total=retries,
            connect=retries,
            read=retries,
            backoff_factor=0.5,
            status_forcelist=UNAVAILABLE_STATUS_CODES,
            allowed_methods=frozenset({"GET"}),
            respect_retry_after_header=True,
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry)
        session.mount("https://", adapter)
        session.mount("http://", adapter)
    return session


class FeedClient:
    """
    Thin HTTP client for the comment feed (Instagram Graph endpoints).

    Every failure surfaces as an IngestionError subclass; nothing is retried
    here beyond what the session's adapter is configured to do.
    """

    def __init__(
        self,
        access_token: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout_sec: int = 15,
        media_limit: int = 10,
        page_size: int = 50,
        retries: int = 0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.access_token = access_token
        self.base_url = base_url.rstrip("/")
        self.timeout_sec = timeout_sec
        self.media_limit = media_limit
        self.page_size = page_size
        self.session = session or build_session(retries)
        self.logger = logging.getLogger(self.__class__.__name__)

    def _require_token(self) -> None:
        if not self.access_token:
            raise FeedAuthError("Missing IG_ACCESS_TOKEN")

    def _get_json(self, url: str, params: Optional[dict[str, Any]], context: str) -> dict[str, Any]:
        try:
            r = self.session.get(url, params=params, timeout=self.timeout_sec)
        except requests.Timeout as err:
            raise FeedUnavailableError(f"{context} timed out after {self.timeout_sec}s") from err
        except requests.RequestException as err:
            raise FeedUnavailableError(f"{context} failed: {err}") from err

        try:
            payload = r.json()
        except ValueError as err:
            if r.status_code in AUTH_STATUS_CODES:
                raise FeedAuthError(f"{context} rejected with HTTP {r.status_code}") from err
            if r.status_code in UNAVAILABLE_STATUS_CODES:
                raise FeedUnavailableError(f"{context} failed with HTTP {r.status_code}") from err
            raise FeedPayloadError(f"{context} returned a non-JSON body (HTTP {r.status_code})") from err

        if r.status_code in UNAVAILABLE_STATUS_CODES:
            raise FeedUnavailableError(f"{context} failed with HTTP {r.status_code}")
        if r.status_code in AUTH_STATUS_CODES:
            raise FeedAuthError(f"{context} rejected with HTTP {r.status_code}")
        raise_for_error_payload(payload, context)
        if not r.ok:
            raise IngestionError(f"{context} failed with HTTP {r.status_code}")
        if not isinstance(payload, dict):
            raise FeedPayloadError(f"{context} returned {type(payload).__name__}, expected an object")
        return payload

    def latest_post(self) -> Post | None:
        """
        Fetch the account's most recent post. Returns None when there are no posts.
        """
        self._require_token()
        url = f"{self.base_url}/me/media"
        params = {"fields": MEDIA_FIELDS, "limit": self.media_limit, "access_token": self.access_token}
        payload = self._get_json(url, params, "media fetch")
        post = newest_post(get_items(payload, "media fetch"))
        if post is None:
            self.logger.info("feed returned no posts")
        else:
            self.logger.debug("latest post %s (%s)", post.id, post.timestamp)
        return post

    def iter_comments(self, post_id: str) -> Iterator[RawComment]:
        """
        Yield every comment on a post, following ``paging.next`` until exhausted.
        """
        self._require_token()
        url: Optional[str] = f"{self.base_url}/{post_id}/comments"
        params: Optional[dict[str, Any]] = {
            "fields": COMMENT_FIELDS,
            "limit": self.page_size,
            "access_token": self.access_token,
        }
        visited: set[str] = set()
        pages = 0
        while url:
            if url in visited:
                raise FeedPayloadError(f"comments cursor for {post_id} repeated itself")
            visited.add(url)
            payload = self._get_json(url, params, "comments fetch")
            pages += 1
            for item in get_items(payload, "comments fetch"):
                yield parse_comment(item)
            # the next link already carries every query parameter
            url = get_next_url(payload)
            params = None
        self.logger.debug("read %d comment page(s) for post %s", pages, post_id)

    def comments(self, post_id: str) -> list[RawComment]:
        return list(self.iter_comments(post_id))
