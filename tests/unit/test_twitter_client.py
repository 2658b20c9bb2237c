"""
Unit tests for the Twitter client
"""

import base64
import hashlib
import hmac
from unittest.mock import MagicMock

import pytest
import requests

from denobot.oauth import Consumer, RequestOptions, Token
from denobot.settings import DenoBotSettings, TwitterSettings
from denobot.twitter_client import TWITTER_API, TweetStatus, TwitterClient, WebhookInfo


def make_response(status_code=200, payload=None, text="", reason="OK"):
    """Build a fake requests response"""
    response = MagicMock()
    response.status_code = status_code
    response.reason = reason
    response.text = text
    if isinstance(payload, Exception):
        response.json.side_effect = payload
    else:
        response.json.return_value = payload
    return response


def status(id_, **fields):
    data = {"id": id_, "id_str": str(id_), "text": f"status {id_}"}
    data.update(fields)
    return data


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def client(session):
    return TwitterClient(
        Consumer("consumer-key", "consumer-secret"),
        Token("12345-token", "token-secret"),
        app_id="987",
        session=session,
    )


def sent(session):
    """Method, URL and keyword arguments of the last request sent"""
    args, kwargs = session.request.call_args
    return args[0], args[1], kwargs


def test_resolve_url(client):
    """Test that relative URLs are resolved against the API root"""
    assert client.resolve_url("/favorites/list.json") == f"{TWITTER_API}/favorites/list.json"
    assert client.resolve_url("favorites/list.json") == f"{TWITTER_API}/favorites/list.json"
    assert client.resolve_url(f"{TWITTER_API}/x.json") == f"{TWITTER_API}/x.json"


@pytest.mark.parametrize("url", [
    "https://example.com/steal.json",
    "https://api.twitter.com/1.1.evil.example/steal.json",
    "https://api.twitter.com/1.1@evil.example/steal.json",
    "https://api.twitter.com.evil.example/1.1/steal.json",
    "https://api.twitter.com@evil.example/1.1/steal.json",
    "http://api.twitter.com/1.1/steal.json",
    "https://api.twitter.com/2/steal.json",
    "//evil.example/1.1/steal.json",
])
def test_resolve_url_rejects_other_hosts(client, url):
    """Test that absolute URLs outside the API root are refused"""
    with pytest.raises(ValueError, match="twitter api url"):
        client.resolve_url(url)


def test_resolve_url_keeps_api_urls_with_query(client):
    url = f"{TWITTER_API}/search/tweets.json?q=%23deno"

    assert client.resolve_url(url) == url


def test_request_signs_and_sends(client, session):
    """Test that requests carry an OAuth header and resolved URL"""
    session.request.return_value = make_response()
    options = RequestOptions(url="/statuses/retweet/1.json?trim_user=true", method="post")

    client.request(options, headers={"x-extra": "1"})

    method, url, kwargs = sent(session)
    assert method == "POST"
    assert url == f"{TWITTER_API}/statuses/retweet/1.json?trim_user=true"
    assert kwargs["headers"]["x-extra"] == "1"
    authorization = kwargs["headers"]["Authorization"]
    assert authorization.startswith("OAuth ")
    assert 'oauth_consumer_key="consumer-key"' in authorization
    assert 'oauth_signature_method="HMAC-SHA1"' in authorization
    assert 'oauth_token="12345-token"' in authorization
    assert kwargs["data"] is None
    # The caller's options are left untouched
    assert options.url == "/statuses/retweet/1.json?trim_user=true"


def test_typed_request_expected_status(client, session):
    """Test boolean results when a status is expected"""
    session.request.return_value = make_response(201)
    assert client.typed_request(RequestOptions(url="/a.json", method="POST"), "2xx") is True

    session.request.return_value = make_response(204)
    assert client.typed_request(RequestOptions(url="/a.json", method="PUT"), 204) is True
    assert client.get_error_list() == ()


def test_typed_request_unexpected_status_is_recorded(client, session):
    """Test that an unexpected status is recorded, not raised"""
    session.request.return_value = make_response(403, text="forbidden", reason="Forbidden")

    assert client.typed_request(RequestOptions(url="/a.json", method="POST"), 200) is False

    errors = client.get_error_list()
    assert len(errors) == 1
    assert errors[0].code == 403
    assert errors[0].error == "TwitterAPIError"
    assert errors[0].message == "Forbidden"
    assert "forbidden" in errors[0].error_message


def test_typed_request_api_errors(client, session):
    """Test that an errors array in the payload is recorded"""
    session.request.return_value = make_response(
        429, {"errors": [{"code": 88, "message": "Rate limit exceeded"}]}, reason="Too Many Requests"
    )

    assert client.typed_request(RequestOptions(url="/a.json")) is None
    assert "- (88) Rate limit exceeded" in client.get_error_list()[0].error_message


def test_typed_request_unknown_error(client, session):
    """Test that non-2xx answers without errors are recorded"""
    session.request.return_value = make_response(500, {"oops": True}, reason="Server Error")

    assert client.typed_request(RequestOptions(url="/a.json")) is None
    assert client.get_error_list()[0].error_message == "Unknown Twitter error."


def test_typed_request_invalid_json(client, session):
    """Test that undecodable bodies are recorded"""
    session.request.return_value = make_response(200, ValueError("Expecting value"))

    assert client.typed_request(RequestOptions(url="/a.json")) is None
    assert client.get_error_list()[0].error == "ValueError"


def test_typed_request_transport_error(client, session):
    """Test that connection failures are recorded with code 0"""
    session.request.side_effect = requests.ConnectionError("unreachable")

    assert client.typed_request(RequestOptions(url="/a.json")) is None
    assert client.typed_request(RequestOptions(url="/a.json"), 200) is False

    errors = client.get_error_list()
    assert [e.code for e in errors] == [0, 0]
    assert errors[0].error == "ConnectionError"


def test_search_builds_encoded_query(client, session):
    """Test that search embeds the encoded builder output and parses statuses"""
    session.request.return_value = make_response(200, {"statuses": [status(1), status(2)]})

    statuses = client.search(lambda sb: sb.include.subject("#deno", "@deno_land").exclude.subject("RT"), count=10)

    method, url, _ = sent(session)
    assert method == "GET"
    assert url == (
        f"{TWITTER_API}/search/tweets.json"
        "?q=%28%23deno%20OR%20%40deno_land%29%20%28-RT%29&result_type=recent&count=10"
    )
    assert [s.id_str for s in statuses] == ["1", "2"]
    assert all(isinstance(s, TweetStatus) for s in statuses)


def test_search_accepts_encoded_string(client, session):
    """Test that term builders may return the encoded string themselves"""
    session.request.return_value = make_response(200, {"statuses": []})

    assert client.search(lambda sb: sb.include.subject("deno").to_string(), result_type="popular") == []

    _, url, _ = sent(session)
    assert url.endswith("?q=%28deno%29&result_type=popular&count=100")


def test_search_failure_returns_empty_list(client, session):
    session.request.return_value = make_response(401, {"errors": [{"code": 32, "message": "Bad auth"}]})

    assert client.search(lambda sb: sb.include.subject("deno")) == []


def test_get_timeline(client, session):
    """Test timeline URL and retweeted status parsing"""
    session.request.return_value = make_response(200, [
        status(1, favorited=True),
        status(2, retweeted=True, retweeted_status=status(42)),
    ])

    timeline = client.get_timeline(user_id=7, count=50)

    _, url, _ = sent(session)
    assert url == f"{TWITTER_API}/statuses/user_timeline.json?count=50&include_entities=false&user_id=7"
    assert timeline[0].favorited is True
    assert timeline[1].retweeted_status.id_str == "42"


def test_list_favorites(client, session):
    session.request.return_value = make_response(200, [status(3)])

    assert [s.id for s in client.list_favorites(20)] == [3]
    _, url, _ = sent(session)
    assert url == f"{TWITTER_API}/favorites/list.json?count=20&include_entities=false"


def test_favorite_and_retweet(client, session):
    """Test favorite and retweet endpoints and their success statuses"""
    session.request.return_value = make_response(200)
    assert client.favorite("111") is True
    method, url, _ = sent(session)
    assert (method, url) == ("POST", f"{TWITTER_API}/favorites/create.json?id=111&include_entities=false")

    session.request.return_value = make_response(201)
    assert client.retweet("222") is True
    method, url, _ = sent(session)
    assert (method, url) == ("POST", f"{TWITTER_API}/statuses/retweet/222.json?trim_user=true")

    session.request.return_value = make_response(201)
    assert client.favorite("333") is False


def test_verify_credentials(client, session):
    """Test that the access token must belong to the returned account"""
    session.request.return_value = make_response(200, {"id_str": "12345"})
    assert client.verify_credentials() is True

    session.request.return_value = make_response(200, {"id_str": "999"})
    assert client.verify_credentials() is False

    session.request.return_value = make_response(401, {"errors": [{"code": 89, "message": "Invalid token"}]})
    assert client.verify_credentials() is False


def test_challenge_crc_response(client):
    """Test the CRC response token: base64 HMAC-SHA256 keyed with the consumer secret"""
    digest = hmac.new(b"consumer-secret", b"crc-token", hashlib.sha256).digest()

    assert client.challenge_crc_response("crc-token") == "sha256=" + base64.b64encode(digest).decode()


def test_webhooks(client, session):
    """Test webhook lookup, rearm and delete"""
    session.request.return_value = make_response(200, [
        {"id": "77", "url": "https://bot.example/api/webhook/twitter", "valid": False,
         "created_timestamp": "2020-01-01 00:00:00 +0000"},
    ])
    webhook = client.get_webhook()
    assert isinstance(webhook, WebhookInfo)
    assert webhook.valid is False
    _, url, _ = sent(session)
    assert url == f"{TWITTER_API}/account_activity/all/dev/webhooks.json"

    session.request.return_value = make_response(200, [])
    assert client.get_webhook("prod") is None

    session.request.return_value = make_response(204)
    assert client.rearm_webhook(77) is True
    method, url, _ = sent(session)
    assert (method, url) == ("PUT", f"{TWITTER_API}/account_activity/all/dev/webhooks/77.json")

    assert client.delete_webhook(77, env="prod") is True
    method, url, _ = sent(session)
    assert (method, url) == ("DELETE", f"{TWITTER_API}/account_activity/all/prod/webhooks/77.json")


def test_register_webhook(client, session):
    """Test that the webhook URL is sent as a signed form field"""
    session.request.return_value = make_response(200, {"id": "1", "valid": True})

    assert client.register_webhook("https://bot.example/api/webhook/twitter") == {"id": "1", "valid": True}
    method, url, kwargs = sent(session)
    assert method == "POST"
    assert kwargs["data"] == {"url": "https://bot.example/api/webhook/twitter"}

    session.request.return_value = make_response(503, ValueError("no json"), reason="Service Unavailable")
    assert client.register_webhook("https://bot.example/x") == {"code": 503, "message": "Service Unavailable"}


def test_from_settings():
    """Test building a client from settings"""
    settings = DenoBotSettings(twitter=TwitterSettings(
        consumer_key="ck", consumer_secret="cs", access_token="at", access_token_secret="ats",
        app_id="1", webhook_env="prod",
    ))

    client = TwitterClient.from_settings(settings)

    assert client.consumer == Consumer("ck", "cs")
    assert client.token == Token("at", "ats")
    assert client.webhook_env == "prod"
    assert client.signer.signature_method == "HMAC-SHA1"


def test_from_settings_missing_credentials(monkeypatch):
    """Test that missing credentials are reported by name"""
    for name in ["CONSUMER_KEY", "CONSUMER_SECRET", "ACCESS_TOKEN", "ACCESS_TOKEN_SECRET"]:
        monkeypatch.delenv(f"TWITTER_{name}", raising=False)
    settings = DenoBotSettings(twitter=TwitterSettings(_env_file=None, consumer_key="ck"))

    with pytest.raises(ValueError, match="consumer_secret, access_token, access_token_secret"):
        TwitterClient.from_settings(settings)
