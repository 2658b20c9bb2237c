"""
Incoming request helpers

Parses the request envelope forwarded by the serverless platform and checks
the shared bot secret.

Integrates with: handlers.py
"""

import base64
import binascii
import hmac
import json
from typing import Any, Dict, Optional
from urllib.parse import parse_qsl

from pydantic import BaseModel, Field

from ..exceptions import AccessDeniedError, RequestBodyError

SECRET_HEADER = "x-deno-bot-secret"


class RequestBody(BaseModel):
    """Request forwarded by the platform in the event body"""
    method: str = "GET"
    headers: Dict[str, str] = Field(default_factory=dict)
    path: str = "/"
    host: str = ""
    body: Optional[Any] = None
    encoding: Optional[str] = None

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup"""
        name = name.lower()
        for key, value in self.headers.items():
            if key.lower() == name:
                return value
        return None


def get_query_params(path: str) -> Dict[str, str]:
    """Query parameters of a request path, last value wins"""
    if "?" not in path:
        return {}
    return dict(parse_qsl(path.split("?", 1)[1], keep_blank_values=True))


def get_body(req: RequestBody) -> Any:
    """
    Decode the body of a forwarded request.

    JSON bodies are parsed, anything else is read as url-encoded form data.

    Raises:
        RequestBodyError: Multipart bodies, bad base64 or non-string bodies
    """
    raw_body = req.body
    if raw_body and req.encoding == "base64":
        try:
            raw_body = base64.b64decode(raw_body).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            raise RequestBodyError(f"Invalid base64 body: {e}") from e

    if not isinstance(raw_body, str) or not raw_body:
        raise RequestBodyError("Unsupported body type")

    if "Content-Disposition: form-data" in raw_body:
        raise RequestBodyError("Form data is unsupported, please use raw JSON or url-encoded data")

    if raw_body.startswith("{") or raw_body.startswith("["):
        try:
            return json.loads(raw_body)
        except json.JSONDecodeError as e:
            raise RequestBodyError(f"Invalid JSON body: {e}") from e

    return dict(parse_qsl(raw_body, keep_blank_values=True))


def assert_access(req: RequestBody, secret: str) -> None:
    """
    Check the shared secret header of a request.

    Raises:
        AccessDeniedError: No secret configured or sent, or a wrong one
    """
    header_secret = req.header(SECRET_HEADER)
    if not secret or not header_secret:
        raise AccessDeniedError("No secret, no webhook.")
    if not hmac.compare_digest(secret.encode(), header_secret.encode()):
        raise AccessDeniedError("Bad secret.")
