"""
Twitter API client

Thin v1.1 REST client. Every request is signed with OAuth 1.0a (HMAC-SHA1)
and sent through a requests session. Failed calls are collected in an error
list instead of being raised, so one failed favorite does not abort a run.

Integrates with: oauth.py, search_builder.py, tasks/fav_rt.py, handlers.py
"""

import dataclasses
from typing import Callable, Dict, List, Optional, Tuple, Union
from urllib.parse import urlsplit

import requests
import structlog
from prometheus_client import Counter
from pydantic import BaseModel

from .exceptions import TwitterAPIError
from .oauth import Consumer, OAuth1Signer, RequestOptions, Token, hmac_sha1, hmac_sha256
from .search_builder import SearchBuilder
from .settings import DenoBotSettings, get_settings

logger = structlog.get_logger(__name__)

TWITTER_API = "https://api.twitter.com/1.1"
DEFAULT_TIMEOUT = 30.0

# Prometheus metrics
API_CALLS = Counter(
    "twitter_api_calls_total",
    "Total Twitter API calls made",
    ["method", "status"]
)

ExpectedStatus = Union[int, str]


class TweetStatus(BaseModel):
    """Twitter status model, only the fields the bot uses"""
    id: int
    id_str: str
    text: str = ""
    created_at: Optional[str] = None
    truncated: bool = False
    retweet_count: int = 0
    favorite_count: int = 0
    favorited: bool = False
    retweeted: bool = False
    retweeted_status: Optional["TweetStatus"] = None


TweetStatus.model_rebuild()


class WebhookInfo(BaseModel):
    """Account activity webhook"""
    id: Union[int, str]
    url: str
    valid: bool
    created_timestamp: Optional[str] = None


class ErrorEntry(BaseModel):
    """A failed API call"""
    code: int
    error: str
    error_message: str
    message: str


class TwitterClient:
    """
    Twitter API v1.1 client.

    Credentials are handed over explicitly; build one client per account
    and pass it to whoever needs to talk to the API.
    """

    def __init__(self, consumer: Consumer, token: Token, app_id: str = "",
                 base_url: str = TWITTER_API, session: Optional[requests.Session] = None,
                 signer: Optional[OAuth1Signer] = None, count: int = 100,
                 webhook_env: str = "dev", timeout: float = DEFAULT_TIMEOUT):
        """
        Initialize the client.

        Args:
            consumer: Application credentials
            token: Account credentials
            app_id: Twitter application id
            base_url: API root that relative URLs are resolved against
            session: HTTP session, a new one by default
            signer: OAuth signer, HMAC-SHA1 over ``consumer`` by default
            count: Default number of statuses requested
            webhook_env: Account activity environment
            timeout: Request timeout in seconds
        """
        self.consumer = consumer
        self.token = token
        self.app_id = app_id
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.signer = signer or OAuth1Signer(
            consumer,
            hash_fn=hmac_sha1,
            signature_method="HMAC-SHA1",
        )
        self.count = count
        self.webhook_env = webhook_env
        self.timeout = timeout
        self._errors: List[ErrorEntry] = []

    @classmethod
    def from_settings(cls, settings: Optional[DenoBotSettings] = None) -> "TwitterClient":
        """
        Build a client from settings.

        Raises:
            ValueError: Some credentials are not configured
        """
        settings = settings or get_settings()
        twitter = settings.twitter

        missing = twitter.missing()
        if missing:
            raise ValueError(f"Twitter credentials not configured: {', '.join(missing)}")

        return cls(
            Consumer(twitter.consumer_key, twitter.consumer_secret),
            Token(twitter.access_token, twitter.access_token_secret),
            app_id=twitter.app_id,
            count=settings.search.count,
            webhook_env=twitter.webhook_env,
        )

    def resolve_url(self, url: str) -> str:
        """
        Make a URL absolute against the API root.

        Raises:
            ValueError: Absolute URL outside the API root
        """
        parts = urlsplit(url)
        if parts.scheme or parts.netloc:
            base = urlsplit(self.base_url)
            same_origin = (parts.scheme, parts.netloc) == (base.scheme, base.netloc)
            if not same_origin or not (parts.path + "/").startswith(base.path.rstrip("/") + "/"):
                raise ValueError(f'Twitter requests should start with a twitter api url. Found "{url}".')
            return url
        if url.startswith("/"):
            return self.base_url + url
        return f"{self.base_url}/{url}"

    def request(self, options: RequestOptions, headers: Optional[Dict[str, str]] = None) -> requests.Response:
        """Sign and send a request."""
        options = dataclasses.replace(options, url=self.resolve_url(options.url))

        auth_headers = self.signer.to_header(self.signer.authorize(options, self.token))

        response = self.session.request(
            options.method.upper(),
            options.url,
            headers={**auth_headers, **(headers or {})},
            data=options.data or None,
            timeout=self.timeout,
        )
        API_CALLS.labels(method=options.method.upper(), status=str(response.status_code)).inc()
        logger.debug("Twitter request", method=options.method.upper(), url=options.url,
                     status=response.status_code)
        return response

    def typed_request(self, options: RequestOptions, expected_status: Optional[ExpectedStatus] = None):
        """
        Send a request and interpret its response.

        Args:
            options: Request to send
            expected_status: Status code, or ``"2xx"``, that counts as a success

        Returns:
            With ``expected_status``, whether the call succeeded. Otherwise the
            decoded JSON payload, or None when the call failed.
        """
        try:
            response = self.request(options)
        except requests.RequestException as e:
            self._log_error(None, e)
            return False if expected_status is not None else None

        if expected_status is not None:
            if expected_status == "2xx" and 200 <= response.status_code < 300:
                return True
            if response.status_code == expected_status:
                return True

            self._log_error(response, TwitterAPIError(f'Twitter request failed: "{response.text}"'))
            return False

        try:
            payload = response.json()
        except ValueError as e:
            self._log_error(response, e)
            return None

        errors = payload.get("errors") if isinstance(payload, dict) else None
        if errors:
            details = "\n".join(f"- ({e.get('code')}) {e.get('message')}" for e in errors)
            self._log_error(response, TwitterAPIError(f"Twitter errors: \n{details}"))
            return None
        if not 200 <= response.status_code < 300:
            self._log_error(response, TwitterAPIError("Unknown Twitter error."))
            return None

        return payload

    def get_error_list(self) -> Tuple[ErrorEntry, ...]:
        """Errors recorded since the client was created"""
        return tuple(self._errors)

    # Endpoints

    def search(self, term_builder: Callable[[SearchBuilder], Union[str, SearchBuilder]],
               result_type: str = "recent", count: Optional[int] = None) -> List[TweetStatus]:
        """
        Standard search.

        Args:
            term_builder: Receives a fresh SearchBuilder and returns it, or
                its encoded string
            result_type: "recent", "mixed" or "popular"
            count: Number of statuses, the client default if omitted
        """
        search = term_builder(SearchBuilder())
        if isinstance(search, SearchBuilder):
            search = search.to_string()

        result = self.typed_request(RequestOptions(
            url=f"/search/tweets.json?q={search}&result_type={result_type}&count={count or self.count}",
            method="GET",
        ))
        return _statuses(result)

    def get_timeline(self, user_id: Optional[int] = None, count: Optional[int] = None) -> List[TweetStatus]:
        """Statuses of a user, the authenticated one by default"""
        url = f"/statuses/user_timeline.json?count={count or self.count}&include_entities=false"
        if user_id:
            url += f"&user_id={user_id}"

        return _statuses(self.typed_request(RequestOptions(url=url, method="GET")))

    def list_favorites(self, count: int = 200) -> List[TweetStatus]:
        """Statuses recently favorited by the authenticated user"""
        result = self.typed_request(RequestOptions(
            url=f"/favorites/list.json?count={count}&include_entities=false",
            method="GET",
        ))
        return _statuses(result)

    def retweet(self, status_id: str) -> bool:
        return self.typed_request(RequestOptions(
            url=f"/statuses/retweet/{status_id}.json?trim_user=true",
            method="POST",
        ), "2xx")

    def favorite(self, status_id: str) -> bool:
        return self.typed_request(RequestOptions(
            url=f"/favorites/create.json?id={status_id}&include_entities=false",
            method="POST",
        ), 200)

    def verify_credentials(self) -> bool:
        """Whether the access token belongs to the account the API sees"""
        cred = self.typed_request(RequestOptions(url="/account/verify_credentials.json", method="GET"))
        if not cred or not cred.get("id_str"):
            return False
        return self.token.key.startswith(cred["id_str"])

    def challenge_crc_response(self, crc_token: str, consumer_secret: Optional[str] = None) -> str:
        """Response token of an account activity CRC check"""
        return "sha256=" + hmac_sha256(crc_token, consumer_secret or self.consumer.secret)

    def register_webhook(self, webhook_url: str, env: Optional[str] = None) -> Dict:
        """Register an account activity webhook, returns the API answer"""
        response = self.request(RequestOptions(
            url=f"/account_activity/all/{env or self.webhook_env}/webhooks.json",
            method="POST",
            data={"url": webhook_url},
        ))
        try:
            return response.json()
        except ValueError:
            return {"code": response.status_code, "message": response.reason}

    def get_webhook(self, env: Optional[str] = None) -> Optional[WebhookInfo]:
        result = self.typed_request(RequestOptions(
            url=f"/account_activity/all/{env or self.webhook_env}/webhooks.json",
            method="GET",
        ))
        if not result or not isinstance(result, list):
            return None
        return WebhookInfo.model_validate(result[0])

    def rearm_webhook(self, webhook_id: Union[int, str], env: Optional[str] = None) -> bool:
        return self.typed_request(RequestOptions(
            url=f"/account_activity/all/{env or self.webhook_env}/webhooks/{webhook_id}.json",
            method="PUT",
        ), 204)

    def delete_webhook(self, webhook_id: Union[int, str], env: Optional[str] = None) -> bool:
        return self.typed_request(RequestOptions(
            url=f"/account_activity/all/{env or self.webhook_env}/webhooks/{webhook_id}.json",
            method="DELETE",
        ), 204)

    def _log_error(self, response: Optional[requests.Response], error: Exception):
        entry = ErrorEntry(
            code=response.status_code if response is not None else 0,
            error=type(error).__name__,
            error_message=str(error),
            message=(response.reason or "") if response is not None else "",
        )
        self._errors.append(entry)
        logger.warning("Twitter request failed", code=entry.code, error=entry.error,
                       error_message=entry.error_message)


def _statuses(result) -> List[TweetStatus]:
    # Some endpoints wrap statuses in a search-like object
    if isinstance(result, dict):
        result = result.get("statuses") or []
    return [TweetStatus.model_validate(status) for status in result or []]
