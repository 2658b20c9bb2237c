"""
deno-bot

Favorites and retweets Deno statuses on a schedule. Requests are signed with
OAuth 1.0a and searches are composed with a chainable builder.
"""

from .oauth import Consumer, OAuth1Signer, RequestOptions, Token, percent_encode, percent_encode_data
from .search_builder import Criterion, CriterionType, SearchBuilder, SearchFilter

__all__ = [
    "Consumer",
    "Criterion",
    "CriterionType",
    "OAuth1Signer",
    "RequestOptions",
    "SearchBuilder",
    "SearchFilter",
    "Token",
    "percent_encode",
    "percent_encode_data",
]
