"""
OAuth 1.0a request signing

Builds the OAuth parameter set of a request, signs the canonical base string
and renders the Authorization header. The hash function is injected, so the
signer works for PLAINTEXT, HMAC-SHA1 or any other signature method.

Integrates with: twitter_client.py, search_builder.py (shares percent_encode)
"""

import base64
import hashlib
import hmac
import json
import random
import string
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Union
from urllib.parse import parse_qsl, quote

import structlog

from .exceptions import OAuthConfigError

logger = structlog.get_logger(__name__)

HashFunction = Callable[[str, str], str]
ParamValue = Union[str, List[str]]

OAUTH_PREFIX = "oauth_"
NONCE_CHARACTERS = string.ascii_letters + string.digits
PLAINTEXT = "PLAINTEXT"

# Marks "use the signature hash function for body hashes too"
_SAME_AS_HASH: Any = object()


@dataclass(frozen=True)
class Consumer:
    """OAuth consumer (application) key/secret pair."""
    key: str
    secret: str


@dataclass(frozen=True)
class Token:
    """OAuth token (acting user) key/secret pair."""
    key: str
    secret: str


@dataclass
class RequestOptions:
    """A request to sign.

    ``data`` is either a raw string body or a mapping of form fields.
    Set ``include_body_hash`` for bodies that cannot be signed as form
    parameters (JSON payloads for instance).
    """
    url: str
    method: str = "GET"
    data: Optional[Union[str, Mapping[str, Any]]] = None
    include_body_hash: bool = False


def percent_encode(value: str) -> str:
    """Percent-encode a string as OAuth 1.0a requires (RFC 3986).

    Only unreserved characters (``A-Z a-z 0-9 - _ . ~``) are left as is,
    which means ``!*'()`` are escaped as well.
    """
    return quote(str(value), safe="")


def percent_encode_data(data: Mapping[str, Optional[ParamValue]]) -> Dict[str, ParamValue]:
    """Percent-encode every key and value of a mapping.

    List values are encoded item by item. ``None`` becomes an empty string.
    """
    result: Dict[str, ParamValue] = {}
    for key, value in data.items():
        if isinstance(value, (list, tuple)):
            encoded: ParamValue = [percent_encode(item) for item in value]
        else:
            encoded = percent_encode("" if value is None else value)
        result[percent_encode(key)] = encoded
    return result


def hmac_sha1(base_string: str, key: str) -> str:
    """Base64 HMAC-SHA1 of ``base_string``, the HMAC-SHA1 signature method."""
    digest = hmac.new(key.encode(), base_string.encode(), hashlib.sha1).digest()
    return base64.b64encode(digest).decode()


def hmac_sha256(base_string: str, key: str) -> str:
    """Base64 HMAC-SHA256 of ``base_string``, the HMAC-SHA256 signature method."""
    digest = hmac.new(key.encode(), base_string.encode(), hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def _plaintext(base_string: str, key: str) -> str:
    return key


class OAuth1Signer:
    """
    OAuth 1.0a signer.

    Built once per consumer and reused for every request: it keeps no
    per-request state, so concurrent ``authorize`` calls are independent.

    Nonces come from ``random.Random`` and are NOT cryptographically secure.
    That is enough for providers that only reject reused nonces, pass a
    ``random.SystemRandom()`` as ``rng`` when it is not.
    """

    def __init__(
        self,
        consumer: Consumer,
        hash_fn: Optional[HashFunction] = None,
        body_hash_fn: Optional[HashFunction] = _SAME_AS_HASH,
        nonce_length: int = 32,
        version: str = "1.0",
        parameter_separator: str = ",",
        realm: str = "",
        last_ampersand: bool = False,
        signature_method: str = PLAINTEXT,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize the signer.

        Args:
            consumer: Application credentials
            hash_fn: ``(base_string, key) -> signature``. Optional for PLAINTEXT only
            body_hash_fn: Hash used for ``oauth_body_hash``. Defaults to ``hash_fn``,
                ``None`` disables body hashes
            nonce_length: Number of characters of generated nonces
            version: Value of ``oauth_version``
            parameter_separator: Separator between header parameters
            realm: Optional realm rendered first in the header
            last_ampersand: Always end the signing key with ``&<token secret>``,
                even when there is no token secret
            signature_method: Value of ``oauth_signature_method``
            clock: Source of the current Unix time
            rng: Source of nonce characters

        Raises:
            OAuthConfigError: No hash function for a non-PLAINTEXT method
        """
        self.consumer = consumer
        self.nonce_length = nonce_length
        self.version = version
        self.parameter_separator = parameter_separator
        self.realm = realm
        self.last_ampersand = last_ampersand
        self.signature_method = signature_method

        if signature_method == PLAINTEXT and hash_fn is None:
            hash_fn = _plaintext

        if hash_fn is None:
            raise OAuthConfigError(
                f"A hash function is required for the {signature_method} signature method"
            )

        self.hash_fn = hash_fn
        self.body_hash_fn = hash_fn if body_hash_fn is _SAME_AS_HASH else body_hash_fn

        self._clock = clock
        self._rng = rng or random.Random()

    def authorize(self, request: RequestOptions, token: Optional[Token] = None) -> Dict[str, str]:
        """
        Build the signed OAuth parameters of a request.

        Args:
            request: Request to sign
            token: Acting user credentials, omitted for two-legged requests

        Returns:
            OAuth parameters including ``oauth_signature``
        """
        token_secret = token.secret if token else None

        oauth_data = {
            "oauth_consumer_key": self.consumer.key,
            "oauth_nonce": self.get_nonce(),
            "oauth_signature_method": self.signature_method,
            "oauth_timestamp": self.get_timestamp(),
            "oauth_version": self.version,
        }
        if token is not None:
            oauth_data["oauth_token"] = token.key

        if request.include_body_hash:
            oauth_data["oauth_body_hash"] = self.get_body_hash(request, token_secret)

        authorization = dict(oauth_data)
        authorization["oauth_signature"] = self.get_signature(request, token_secret, oauth_data)

        logger.debug(
            "Signed request",
            method=request.method.upper(),
            url=self.get_base_url(request.url),
            body_hash="oauth_body_hash" in oauth_data,
        )
        return authorization

    def to_header(self, authorization: Mapping[str, Any]) -> Dict[str, str]:
        """
        Render OAuth parameters as an Authorization header.

        Keys that do not start with ``oauth_`` are ignored.
        """
        parts = [
            f'{percent_encode(key)}="{percent_encode(str(value))}"'
            for key, value in sorted(authorization.items())
            if key.startswith(OAUTH_PREFIX)
        ]
        if self.realm:
            parts.insert(0, f'realm="{self.realm}"')

        return {"Authorization": "OAuth " + self.parameter_separator.join(parts)}

    def get_signing_key(self, token_secret: Optional[str] = None) -> str:
        """Consumer secret, followed by ``&`` and the token secret when there is one."""
        if not self.last_ampersand and not token_secret:
            return percent_encode(self.consumer.secret)

        return f"{percent_encode(self.consumer.secret)}&{percent_encode(token_secret or '')}"

    def get_signature(
        self,
        request: RequestOptions,
        token_secret: Optional[str],
        oauth_data: Mapping[str, str],
    ) -> str:
        """Hash the base string of a request with the signing key."""
        return self.hash_fn(
            self.get_base_string(request, oauth_data),
            self.get_signing_key(token_secret),
        )

    def get_body_hash(self, request: RequestOptions, token_secret: Optional[str] = None) -> str:
        """
        Hash the request body for ``oauth_body_hash``.

        Non-string bodies are serialized to compact JSON first.

        Raises:
            OAuthConfigError: Body hashing is disabled on this signer
        """
        if self.body_hash_fn is None:
            raise OAuthConfigError("A body hash function is required to include a body hash")

        data = request.data
        if isinstance(data, str):
            body = data
        else:
            body = json.dumps(data if data is not None else {}, separators=(",", ":"), ensure_ascii=False)

        return self.body_hash_fn(body, self.get_signing_key(token_secret))

    def get_base_string(self, request: RequestOptions, oauth_data: Mapping[str, str]) -> str:
        """``METHOD&encoded base url&encoded parameter string``"""
        return "&".join([
            request.method.upper(),
            percent_encode(self.get_base_url(request.url)),
            percent_encode(self.get_parameter_string(request, oauth_data)),
        ])

    def get_parameter_string(self, request: RequestOptions, oauth_data: Mapping[str, str]) -> str:
        """
        Normalized request parameters.

        OAuth data, form body fields (unless the body is hashed) and URL query
        parameters are merged, encoded and sorted by encoded key. Keys with
        several values emit one pair per value, values sorted.
        """
        url_params = self.deparam_url(request.url)
        if oauth_data.get("oauth_body_hash"):
            params = url_params
        else:
            params = {**self._form_params(request.data), **url_params}

        encoded = percent_encode_data({**oauth_data, **params})

        pairs = []
        for key in sorted(encoded):
            value = encoded[key]
            if isinstance(value, list):
                pairs.extend(f"{key}={item}" for item in sorted(value))
            else:
                pairs.append(f"{key}={value}")

        return "&".join(pairs)

    @staticmethod
    def get_base_url(url: str) -> str:
        """URL without its query component"""
        return url.split("?", 1)[0]

    @staticmethod
    def deparam(query: str) -> Dict[str, ParamValue]:
        """Parse a query string, keeping repeated keys as lists."""
        values: Dict[str, List[str]] = {}
        for key, value in parse_qsl(query, keep_blank_values=True):
            values.setdefault(key, []).append(value)

        return {key: items if len(items) > 1 else items[0] for key, items in values.items()}

    def deparam_url(self, url: str) -> Dict[str, ParamValue]:
        """Query parameters of a URL"""
        if "?" not in url:
            return {}
        return self.deparam(url.split("?", 1)[1])

    def get_nonce(self) -> str:
        """Random word characters, ``nonce_length`` long"""
        return "".join(self._rng.choice(NONCE_CHARACTERS) for _ in range(self.nonce_length))

    def get_timestamp(self) -> str:
        """Current Unix time in seconds"""
        return str(int(self._clock()))

    @staticmethod
    def _form_params(data: Any) -> Dict[str, ParamValue]:
        # Raw string bodies are not form parameters
        if not isinstance(data, Mapping):
            return {}
        return {
            str(key): [str(item) for item in value] if isinstance(value, (list, tuple)) else value
            for key, value in data.items()
        }
