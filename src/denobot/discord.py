"""
Discord execution reports

Posts run summaries and error lists to a Discord webhook.

Integrates with: tasks/fav_rt.py, handlers.py
"""

import json
from typing import Any, Optional

import requests
import structlog

from .settings import DenoBotSettings, get_settings

logger = structlog.get_logger(__name__)

# Discord truncates message content, longer payloads go in an attachment
MAX_INLINE_LENGTH = 1000
DEFAULT_TIMEOUT = 10.0


class DiscordNotifier:
    """Sends deno-bot reports to a Discord webhook"""

    def __init__(self, webhook_url: str = "", session: Optional[requests.Session] = None,
                 timeout: float = DEFAULT_TIMEOUT):
        self.webhook_url = webhook_url
        self.session = session or requests.Session()
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Optional[DenoBotSettings] = None) -> "DiscordNotifier":
        settings = settings or get_settings()
        return cls(settings.discord_webhook)

    def log(self, message: str) -> Optional[requests.Response]:
        """Post an execution result"""
        if not self.webhook_url:
            logger.warning("No Discord webhook configured, report not sent")
            return None

        return self.session.post(
            self.webhook_url,
            data={"content": f"deno-bot execution result: `{message}`"},
            timeout=self.timeout,
        )

    def error(self, data: Any) -> Optional[requests.Response]:
        """
        Post a failure report.

        ``data`` is serialized to JSON; long payloads are attached as
        ``errors.json`` instead of being inlined.
        """
        if not self.webhook_url:
            logger.warning("No Discord webhook configured, error report not sent")
            return None

        payload = json.dumps(data, default=_to_jsonable)
        if len(payload) > MAX_INLINE_LENGTH:
            return self.session.post(
                self.webhook_url,
                data={"content": ":warning: deno-bot execution **failed**!"},
                files={"file": ("errors.json", payload, "application/json")},
                timeout=self.timeout,
            )

        return self.session.post(
            self.webhook_url,
            data={"content": f":warning: deno-bot execution **failed**!\n\n```json\n{payload}\n```"},
            timeout=self.timeout,
        )


def _to_jsonable(value: Any) -> Any:
    # pydantic models, e.g. ErrorEntry
    if hasattr(value, "model_dump"):
        return value.model_dump()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")
