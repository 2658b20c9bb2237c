"""
Exception hierarchy shared by the deno-bot modules
"""


class DenoBotError(Exception):
    """Base class for every error raised by deno-bot"""


class OAuthConfigError(DenoBotError, ValueError):
    """The OAuth signer is misconfigured (missing hash or body hash function)"""


class SearchBuilderError(DenoBotError):
    """Base class for search builder misuse"""


class SearchBuilderUsageError(SearchBuilderError, RuntimeError):
    """A criterion was added without a pending include/exclude modifier"""


class SearchBuilderValidationError(SearchBuilderError, ValueError):
    """A criterion was given invalid values"""


class RequestBodyError(DenoBotError, ValueError):
    """An incoming request body could not be parsed"""


class AccessDeniedError(DenoBotError):
    """An incoming request did not carry the expected bot secret"""


class TwitterAPIError(DenoBotError):
    """The Twitter API answered with errors or an unexpected status"""
