"""
Favorite and retweet task

Searches recent statuses about the configured hashtags and users and
favorites / retweets the ones the account has not handled yet.
Meant to run on a schedule (every 15 minutes).

Integrates with: twitter_client.py, search_builder.py, discord.py, handlers.py
"""

from typing import Iterable, List, Optional, Sequence, Set, Tuple

import structlog
from prometheus_client import Counter

from ..discord import DiscordNotifier
from ..search_builder import SearchBuilder
from ..settings import SearchSettings, get_settings
from ..twitter_client import TweetStatus, TwitterClient

logger = structlog.get_logger(__name__)

# Prometheus metrics
STATUSES_FAVORITED = Counter(
    "statuses_favorited_total",
    "Number of statuses favorited",
    ["dry_run"]
)
STATUSES_RETWEETED = Counter(
    "statuses_retweeted_total",
    "Number of statuses retweeted",
    ["dry_run"]
)


def strict_search(sb: SearchBuilder, languages: Sequence[str]) -> SearchBuilder:
    """No retweets, no replies, only the given language pair"""
    return sb.exclude.subject("RT").exclude.filter("replies").include.lang(*languages)


def is_famous(status: TweetStatus, threshold: int) -> bool:
    return status.favorite_count > threshold or status.retweet_count > threshold


def _preview(status: TweetStatus) -> str:
    return status.text.replace("\r\n", "").replace("\n", "")[:50]


class _Run:
    """State of one task invocation"""

    def __init__(self, client: TwitterClient, dry_run: bool,
                 already_favorited: Set[str], already_retweeted: Set[str]):
        self.client = client
        self.dry_run = dry_run
        self.already_favorited = already_favorited
        self.already_retweeted = already_retweeted
        self.count_fav = 0
        self.count_rt = 0

    def fav_and_rt(self, statuses: Iterable[TweetStatus], fav: bool = True, rt: bool = True):
        for status in statuses:
            if fav and status.id_str not in self.already_favorited:
                self.already_favorited.add(status.id_str)
                if self.dry_run:
                    logger.info("FAV", status_id=status.id_str, text=_preview(status))
                if self.dry_run or self.client.favorite(status.id_str):
                    self.count_fav += 1
                    STATUSES_FAVORITED.labels(dry_run=str(self.dry_run).lower()).inc()
            elif fav:
                logger.debug("FAV skipped", status_id=status.id_str)

            if rt and status.id_str not in self.already_retweeted:
                self.already_retweeted.add(status.id_str)
                if self.dry_run:
                    logger.info("RT", status_id=status.id_str, text=_preview(status))
                if self.dry_run or self.client.retweet(status.id_str):
                    self.count_rt += 1
                    STATUSES_RETWEETED.labels(dry_run=str(self.dry_run).lower()).inc()
            elif rt:
                logger.debug("RT skipped", status_id=status.id_str)


def fav_rt(client: TwitterClient, notifier: Optional[DiscordNotifier] = None,
           dry_run: bool = False, famous: bool = False,
           config: Optional[SearchSettings] = None) -> Tuple[int, int]:
    """
    Favorite and retweet matching statuses.

    - hashtag searches are favorited and retweeted
    - user searches are only favorited
    - statuses already favorited / retweeted on the timeline are skipped

    Args:
        client: Authenticated Twitter client
        notifier: Receives the run summary and the API error list
        dry_run: Log what would be done without calling the API
        famous: Only handle statuses with more favorites or retweets than
            ``config.famous_threshold``
        config: Search settings, the global ones by default

    Returns:
        Number of favorites and retweets
    """
    config = config or get_settings().search
    log = logger.bind(dry_run=dry_run, famous=famous)

    timeline = client.get_timeline()
    already_favorited = {status.id_str for status in timeline if status.favorited}
    already_retweeted = {
        status.retweeted_status.id_str
        for status in timeline
        if status.retweeted and status.retweeted_status is not None
    }
    log.info("Loaded timeline", statuses=len(timeline),
             favorited=len(already_favorited), retweeted=len(already_retweeted))

    def search(subjects: List[str]) -> List[TweetStatus]:
        statuses = client.search(
            lambda sb: strict_search(sb.include.subject(*subjects), config.languages),
            result_type=config.result_type,
            count=config.count,
        )
        if famous:
            statuses = [s for s in statuses if is_famous(s, config.famous_threshold)]
        return statuses

    run = _Run(client, dry_run, already_favorited, already_retweeted)
    if config.hashtags:
        run.fav_and_rt(search(config.hashtags))
    if config.users:
        run.fav_and_rt(search(config.users), fav=True, rt=False)

    log.info("Fav/RT finished", favorited=run.count_fav, retweeted=run.count_rt)

    if notifier is not None:
        notifier.log(
            f"Webhook ended: 💙 = {run.count_fav} ; RT = {run.count_rt} "
            f"{'(dry run mode)' if dry_run else ''}".rstrip()
        )
        errors = client.get_error_list()
        if errors:
            notifier.error([entry.model_dump() for entry in errors])

    return run.count_fav, run.count_rt
