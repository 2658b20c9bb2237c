"""
Twitter Standard Search Builder

Chained builder for the ``q`` parameter of the standard search API.
Output is either raw (``to_raw_string``) or percent-encoded and ready to be
signed (``to_string`` / ``str()``).

Example::

    sb = SearchBuilder()
    sb.include.subject("#denoland", "@deno_land") \\
      .include.lang("fr", "en") \\
      .exclude.filter("replies") \\
      .exclude.subject("RT")
    sb.to_raw_string()
    # (-filter:replies) (lang:fr OR lang:en) (#denoland OR @deno_land) (-RT)

See https://developer.twitter.com/en/docs/tweets/search/guides/standard-operators

Integrates with: oauth.py (percent_encode), twitter_client.py, tasks/fav_rt.py
"""

import re
from dataclasses import dataclass
from enum import Enum
from itertools import groupby
from typing import Iterable, List, NamedTuple, Optional, Tuple, Union

from .exceptions import SearchBuilderUsageError, SearchBuilderValidationError
from .oauth import percent_encode

_LEADING_AT = re.compile(r"^@*")


class CriterionType(str, Enum):
    LANG = "lang"
    FROM = "from"
    TO = "to"
    FILTER = "filter"
    PLAIN = "plain"


class SearchFilter(str, Enum):
    """Filters supported by the ``filter:`` operator"""
    SAFE = "safe"
    MEDIA = "media"
    RETWEETS = "retweets"
    NATIVE_VIDEO = "native_video"
    PERISCOPE = "periscope"
    VINE = "vine"
    IMAGES = "images"
    TWIMG = "twimg"
    LINKS = "links"
    REPLIES = "replies"


class Criterion(NamedTuple):
    """One search condition. ``plain`` criteria are free text.

    Plain ``(exclude, type, text)`` tuples are accepted wherever a
    Criterion is.
    """
    exclude: bool
    type: CriterionType
    text: str


@dataclass(frozen=True)
class _GroupedCriterion:
    criterion: Criterion
    group_id: int


class SearchBuilder:
    """
    Mutable, chainable search expression builder.

    ``include`` / ``exclude`` set the polarity of the next criterion call, and
    every criterion call consumes it: calling ``subject`` and friends without
    a modifier right before raises ``SearchBuilderUsageError``.

    Values given to a single call share a group id and are OR-ed together
    inside one parenthesized group.
    """

    def __init__(self):
        self._criteria: List[_GroupedCriterion] = []
        self._pending: Optional[bool] = None  # True means exclude
        self._next_id = 0
        self._positive = False
        self._negative = False
        self._question = False

    def __str__(self) -> str:
        return self.to_string()

    def __repr__(self) -> str:
        return f"SearchBuilder({self.to_raw_string()!r})"

    @property
    def criteria(self) -> List[Criterion]:
        """Accumulated criteria, in insertion order"""
        return [entry.criterion for entry in self._criteria]

    # Modifiers

    @property
    def include(self) -> "SearchBuilder":
        """Include the next given criteria"""
        self._pending = False
        return self

    @property
    def exclude(self) -> "SearchBuilder":
        """Exclude the next given criteria"""
        self._pending = True
        return self

    inc = include
    exc = exclude

    # Toggles

    def positive(self, positive: bool = True) -> "SearchBuilder":
        """Search with a positive attitude ``:)``"""
        self._positive = positive
        if positive:
            self._negative = False
        return self

    def negative(self, negative: bool = True) -> "SearchBuilder":
        """Search with a negative attitude ``:(``"""
        self._negative = negative
        if negative:
            self._positive = False
        return self

    def question(self, question: bool = True) -> "SearchBuilder":
        """Search only for questions ``?``"""
        self._question = question
        return self

    # Criteria

    def criterion(self, *criteria: Union[Criterion, Tuple[bool, str, str]]) -> "SearchBuilder":
        """
        Manually add ``(exclude, type, text)`` criteria, each in its own group.

        Nothing is added when one of them is invalid.
        """
        self._take_pending("criterion")
        normalized = []
        for criterion in criteria:
            try:
                exclude, ctype, text = criterion
            except (TypeError, ValueError):
                raise SearchBuilderValidationError(
                    f"Criteria are (exclude, type, text) triples, got {criterion!r}"
                ) from None
            try:
                ctype = CriterionType(ctype)
            except ValueError:
                raise SearchBuilderValidationError(f"Unknown criterion type: {ctype!r}") from None
            normalized.append(Criterion(bool(exclude), ctype, text))

        for criterion in normalized:
            self._criteria.append(_GroupedCriterion(criterion, self._new_id()))
        return self

    def subject(self, *subjects: str) -> "SearchBuilder":
        """A word, hashtag, or user contained in a status."""
        exclude = self._take_pending("subject")
        return self._add_group(CriterionType.PLAIN, exclude, subjects)

    def lang(self, *langs: str) -> "SearchBuilder":
        """A pair of languages, e.g. ``lang("fr", "en")``."""
        exclude = self._take_pending("lang")
        if len(langs) != 2:
            raise SearchBuilderValidationError(
                f"Lang search criterion expects exactly 2 values, got {list(langs)}"
            )
        return self._add_group(CriterionType.LANG, exclude, langs)

    def from_(self, *users: str) -> "SearchBuilder":
        """Users that sent the status. A leading ``@`` is stripped."""
        exclude = self._take_pending("from")
        return self._add_group(CriterionType.FROM, exclude, (_strip_at(u) for u in users))

    def to(self, *users: str) -> "SearchBuilder":
        """Users the status is addressed to. A leading ``@`` is stripped."""
        exclude = self._take_pending("to")
        return self._add_group(CriterionType.TO, exclude, (_strip_at(u) for u in users))

    def filter(self, *filters: Union[str, SearchFilter]) -> "SearchBuilder":
        """One of the ``SearchFilter`` values."""
        exclude = self._take_pending("filter")
        values = []
        for f in filters:
            try:
                values.append(SearchFilter(f).value)
            except ValueError:
                raise SearchBuilderValidationError(f"Unknown search filter: {f!r}") from None
        return self._add_group(CriterionType.FILTER, exclude, values)

    # Rendering

    def to_string(self) -> str:
        """Percent-encoded search, ready to be put in a signed URL."""
        return percent_encode(self.to_raw_string())

    def to_raw_string(self) -> str:
        """
        Raw search expression.

        Criteria are sorted by type (stable), then every run of the same type
        and group id becomes one parenthesized OR group.
        """
        ordered = sorted(self._criteria, key=lambda entry: entry.criterion.type.value)

        groups = []
        for _, run in groupby(ordered, key=lambda entry: (entry.criterion.type, entry.group_id)):
            terms = [_render(entry.criterion) for entry in run]
            groups.append("(" + " OR ".join(terms) + ")")

        result = " ".join(groups).strip()

        if self._positive:
            result += " :)"
        elif self._negative:
            result += " :("

        if self._question:
            result += " ?"

        return result

    def _take_pending(self, name: str) -> bool:
        if self._pending is None:
            raise SearchBuilderUsageError(
                f"Can't invoke {name} alone, call include or exclude first"
            )
        exclude = self._pending
        self._pending = None
        return exclude

    def _new_id(self) -> int:
        group_id = self._next_id
        self._next_id += 1
        return group_id

    def _add_group(self, ctype: CriterionType, exclude: bool, texts: Iterable[str]) -> "SearchBuilder":
        group_id = self._new_id()
        for text in texts:
            self._criteria.append(_GroupedCriterion(Criterion(exclude, ctype, text), group_id))
        return self


def _strip_at(user: str) -> str:
    return _LEADING_AT.sub("", user, count=1)


def _render(criterion: Criterion) -> str:
    term = "-" if criterion.exclude else ""
    if criterion.type is not CriterionType.PLAIN:
        term += f"{criterion.type.value}:"
    return term + criterion.text
