"""
Structured logging for deno-bot.

structlog renders to the console in development and one JSON object per line
in production, where the Lambda log collector picks it up.
"""

import logging
import sys
from typing import Any, Optional

import structlog
from structlog.types import Processor

from ..settings import DenoBotSettings, get_settings

_configured = False


def configure_logging(settings: Optional[DenoBotSettings] = None, force: bool = False):
    """
    Configure structlog and the standard library root logger.

    Warm Lambda containers call the handlers again in the same process, so
    only the first call configures anything unless ``force`` is set.
    """
    global _configured
    if _configured and not force:
        return

    settings = settings or get_settings()
    if settings.debug:
        level = logging.DEBUG
    else:
        level = logging.getLevelName(settings.log_level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    # The Lambda runtime installs its own root handler, replace it
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.environment == "production":
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True


def bind_invocation(logger: Any, context: Any, handler: str) -> Any:
    """
    Bind the handler name and, when running on Lambda, the invocation ids.

    Args:
        logger: structlog logger
        context: Lambda context object, or None outside Lambda
        handler: Handler name

    Returns:
        Bound logger
    """
    values = {"handler": handler}
    request_id = getattr(context, "aws_request_id", None)
    if request_id:
        values["request_id"] = request_id
        values["function"] = getattr(context, "function_name", None)
    return logger.bind(**values)
