"""
Serverless entry points

Lambda-style handlers: each receives the platform event, whose body is the
forwarded request envelope, and returns a ``statusCode/headers/body`` dict.

- fav_rt_handler: scheduled favorite + retweet run
- twitter_webhook_handler: account activity webhook (CRC challenge, activity events)
- register_webhook_handler: (re)registers the account activity webhook

Integrates with: tasks/fav_rt.py, twitter_client.py, discord.py, utils/request.py
"""

import json
from typing import Any, Dict, Optional

import structlog
from pydantic import ValidationError

from .discord import DiscordNotifier
from .exceptions import AccessDeniedError, DenoBotError, RequestBodyError
from .settings import DenoBotSettings, get_settings
from .tasks.fav_rt import fav_rt
from .twitter_client import TwitterClient
from .utils.logging import bind_invocation, configure_logging
from .utils.request import RequestBody, assert_access, get_body, get_query_params

logger = structlog.get_logger(__name__)

DRY_RUN_FLAGS = ("dry_run", "dr", "dry", "dryRun")
HTML = {"content-type": "text/html; charset=utf-8"}
JSON = {"content-type": "application/json"}


class BadEventError(DenoBotError):
    """The platform event does not carry a readable request envelope"""


def _response(status_code: int, body: str, headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    return {"statusCode": status_code, "headers": headers or dict(HTML), "body": body}


def _error_page(req: RequestBody) -> Dict[str, Any]:
    deployment = req.header("x-vercel-deployment-url") or req.header("x-now-deployment-url") or req.host
    return _response(
        500,
        f'<p>Something went wrong. Please look at <a href="https://{deployment}/_logs">the logs</a>.</p>',
    )


def _request_body(event: Optional[Dict[str, Any]]) -> RequestBody:
    raw = (event or {}).get("body") or "{}"
    try:
        data = json.loads(raw) if isinstance(raw, str) else raw
        return RequestBody.model_validate(data)
    except (json.JSONDecodeError, ValidationError) as e:
        raise BadEventError(str(e)) from e


def fav_rt_handler(event, context=None, *, settings: Optional[DenoBotSettings] = None,
                   client: Optional[TwitterClient] = None,
                   notifier: Optional[DiscordNotifier] = None) -> Dict[str, Any]:
    """
    Scheduled favorite + retweet run.

    Query flags: ``famous`` only handles statuses with enough favorites or
    retweets, ``dry_run`` (or ``dr``, ``dry``, ``dryRun``) only logs.
    Requires the bot secret header.
    """
    settings = settings or get_settings()
    configure_logging(settings)
    log = bind_invocation(logger, context, "fav_rt")

    try:
        req = _request_body(event)
    except BadEventError as e:
        log.warning("Unreadable event", error=str(e))
        return _response(400, "Bad request.")

    try:
        assert_access(req, settings.bot_secret)
    except AccessDeniedError as e:
        log.warning("Access denied", reason=str(e))
        return _response(403, str(e))

    params = get_query_params(req.path)
    famous = "famous" in params
    dry_run = any(flag in params for flag in DRY_RUN_FLAGS)

    try:
        client = client or TwitterClient.from_settings(settings)
        notifier = notifier or DiscordNotifier.from_settings(settings)

        count_fav, count_rt = fav_rt(client, notifier, dry_run=dry_run, famous=famous, config=settings.search)
    except Exception:  # noqa: BLE001 - handler boundary, render a 500 page
        log.exception("Fav/RT run failed")
        return _error_page(req)

    return _response(200, "OK", {
        **HTML,
        "x-deno-bot-favorited": str(count_fav),
        "x-deno-bot-retweeted": str(count_rt),
    })


def twitter_webhook_handler(event, context=None, *, settings: Optional[DenoBotSettings] = None,
                            client: Optional[TwitterClient] = None) -> Dict[str, Any]:
    """
    Account activity webhook.

    Answers CRC checks, acknowledges POSTed activity events, otherwise shows
    the app id.
    """
    settings = settings or get_settings()
    configure_logging(settings)
    log = bind_invocation(logger, context, "twitter_webhook")

    try:
        req = _request_body(event)
    except BadEventError as e:
        log.warning("Unreadable event", error=str(e))
        return _response(400, "Bad request.")

    params = get_query_params(req.path)
    if "crc_token" in params:
        log.info("Answering CRC challenge")
        try:
            client = client or TwitterClient.from_settings(settings)
        except ValueError:
            log.exception("CRC challenge failed")
            return _error_page(req)
        response_token = client.challenge_crc_response(params["crc_token"])
        return _response(200, json.dumps({"response_token": response_token}), dict(JSON))

    if req.method.upper() == "POST":
        try:
            activity = get_body(req)
        except RequestBodyError as e:
            log.warning("Unreadable activity", error=str(e))
            return _response(400, "Bad request.")
        if isinstance(activity, dict):
            log.info("Account activity received", for_user_id=activity.get("for_user_id"),
                     events=sorted(key for key in activity if key.endswith("_events")))
        return _response(200, "OK")

    return _response(200, settings.twitter.app_id)


def register_webhook_handler(event, context=None, *, settings: Optional[DenoBotSettings] = None,
                             client: Optional[TwitterClient] = None) -> Dict[str, Any]:
    """
    Make sure the account activity webhook is registered.

    An invalid webhook is re-armed, or deleted when re-arming fails, then a
    new one is registered. ``force`` registers even when one is active.
    Requires the bot secret header.
    """
    settings = settings or get_settings()
    configure_logging(settings)
    log = bind_invocation(logger, context, "register_webhook")

    try:
        req = _request_body(event)
    except BadEventError:
        return _response(400, "Bad request.")

    try:
        assert_access(req, settings.bot_secret)
    except AccessDeniedError as e:
        log.warning("Access denied", reason=str(e))
        return _response(403, str(e))

    force = "force" in get_query_params(req.path)

    try:
        client = client or TwitterClient.from_settings(settings)

        webhook = client.get_webhook()
        if webhook:
            log.info("Webhook found", webhook_id=webhook.id, valid=webhook.valid)
            if not webhook.valid:
                log.info("Webhook not valid, rearm")
                if not client.rearm_webhook(webhook.id):
                    log.warning("Webhook rearm failed, delete")
                    if not client.delete_webhook(webhook.id):
                        log.error("Webhook delete failed")
                elif not force:
                    return _response(200, "Webhook rearmed.")
            elif not force:
                return _response(200, "Webhook is already active.")

        log.info("Webhook registering")
        register = client.register_webhook(f"https://{req.host}/api/webhook/twitter")
        return _response(200, json.dumps(register), dict(JSON))
    except Exception:  # noqa: BLE001 - handler boundary, render a 500 page
        log.exception("Webhook registration failed")
        return _error_page(req)
