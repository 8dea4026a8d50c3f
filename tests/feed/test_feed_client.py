import pytest
import requests

from daily_rounds.errors import FeedAuthError, FeedPayloadError, FeedUnavailableError, IngestionError
from daily_rounds.feed.client import FeedClient, build_session


class FakeResponse:
    def __init__(self, payload=None, status_code=200, body_is_json=True):
        self.payload = payload
        self.status_code = status_code
        self.body_is_json = body_is_json

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if not self.body_is_json:
            raise ValueError("Expecting value")
        return self.payload


class FakeSession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append({"url": url, "params": params, "timeout": timeout})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _client(responses, token="token"):
    session = FakeSession(responses)
    return FeedClient(token, base_url="https://graph.example.com/", timeout_sec=7, session=session), session


def test_latest_post_requests_media_with_token_and_timeout():
    client, session = _client(
        [
            FakeResponse(
                {
                    "data": [
                        {"id": "old", "permalink": "p/old", "timestamp": "2024-04-30T10:00:00+0000"},
                        {"id": "new", "permalink": "p/new", "timestamp": "2024-05-01T10:00:00+0000"},
                    ]
                }
            )
        ]
    )

    post = client.latest_post()

    assert post.id == "new"
    call = session.calls[0]
    assert call["url"] == "https://graph.example.com/me/media"
    assert call["params"]["access_token"] == "token"
    assert call["params"]["limit"] == 10
    assert call["timeout"] == 7


def test_latest_post_returns_none_without_posts():
    client, _session = _client([FakeResponse({"data": []})])

    assert client.latest_post() is None


def test_missing_token_fails_before_any_request():
    client, session = _client([], token="")

    with pytest.raises(FeedAuthError, match="IG_ACCESS_TOKEN"):
        client.latest_post()
    with pytest.raises(FeedAuthError):
        client.comments("p1")
    assert session.calls == []


def test_comments_follow_pagination_until_exhausted():
    client, session = _client(
        [
            FakeResponse(
                {
                    "data": [{"id": "c1", "username": "alice", "text": "in"}],
                    "paging": {"next": "https://graph.example.com/p1/comments?after=abc"},
                }
            ),
            FakeResponse({"data": [{"id": "c2", "username": "bob", "text": "IN"}], "paging": {}}),
        ]
    )

    comments = client.comments("p1")

    assert [c.handle for c in comments] == ["alice", "bob"]
    assert session.calls[0]["url"] == "https://graph.example.com/p1/comments"
    assert session.calls[0]["params"]["limit"] == 50
    assert session.calls[1]["url"] == "https://graph.example.com/p1/comments?after=abc"
    assert session.calls[1]["params"] is None


def test_comments_repeating_cursor_is_payload_error():
    page = {"data": [], "paging": {"next": "https://graph.example.com/p1/comments?after=same"}}
    client, _session = _client([FakeResponse(page), FakeResponse(page)])

    with pytest.raises(FeedPayloadError):
        client.comments("p1")


def test_timeout_is_unavailable():
    client, _session = _client([requests.Timeout("read timed out")])

    with pytest.raises(FeedUnavailableError, match="timed out"):
        client.latest_post()


def test_connection_error_is_unavailable():
    client, _session = _client([requests.ConnectionError("refused")])

    with pytest.raises(FeedUnavailableError):
        client.latest_post()


@pytest.mark.parametrize("status_code", [401, 403])
def test_auth_rejection(status_code):
    client, _session = _client([FakeResponse({"error": {"message": "nope"}}, status_code=status_code)])

    with pytest.raises(FeedAuthError):
        client.latest_post()


def test_oauth_error_body_is_auth_error():
    body = {"error": {"message": "Error validating access token", "type": "OAuthException", "code": 190}}
    client, _session = _client([FakeResponse(body, status_code=400)])

    with pytest.raises(FeedAuthError, match="validating access token"):
        client.latest_post()


def test_rate_limit_is_unavailable():
    client, _session = _client([FakeResponse({"error": {"message": "slow down"}}, status_code=429)])

    with pytest.raises(FeedUnavailableError):
        client.latest_post()


def test_non_json_body_is_payload_error():
    client, _session = _client([FakeResponse(status_code=200, body_is_json=False)])

    with pytest.raises(FeedPayloadError):
        client.latest_post()


def test_unexpected_client_error_is_ingestion_error():
    client, _session = _client([FakeResponse({"message": "gone"}, status_code=404)])

    with pytest.raises(IngestionError):
        client.comments("p1")


def test_build_session_mounts_retry_adapter_only_when_enabled():
    plain = build_session(0)
    retrying = build_session(2)

    assert plain.get_adapter("https://graph.instagram.com").max_retries.total == 0
    assert retrying.get_adapter("https://graph.instagram.com").max_retries.total == 2


def test_malformed_comment_is_payload_error():
    client, _ = _client([FakeResponse({"data": [{"id": "c1", "username": ["alice"], "text": "in"}]})])

    with pytest.raises(FeedPayloadError, match="username"):
        client.comments("p1")
