"""
deno-bot command line.
Run `denobot --help` for options.
"""

import argparse
import sys
from typing import List, Optional

import structlog
from prometheus_client import start_http_server
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .discord import DiscordNotifier
from .exceptions import DenoBotError
from .search_builder import SearchBuilder
from .settings import get_settings
from .tasks.fav_rt import fav_rt, strict_search
from .twitter_client import TwitterClient
from .utils.logging import configure_logging

logger = structlog.get_logger(__name__)

# Rich console for pretty output
console = Console()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="denobot", description="Favorite and retweet Deno statuses")
    parser.add_argument("--metrics-port", type=int, default=None,
                        help="Expose Prometheus metrics on this port")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("fav-rt", help="Favorite and retweet matching statuses")
    run.add_argument("--dry-run", action="store_true", help="Only log what would be done")
    run.add_argument("--famous", action="store_true",
                     help="Only handle statuses with enough favorites or retweets")

    subparsers.add_parser("verify", help="Check the configured credentials")

    favorites = subparsers.add_parser("favorites", help="List statuses recently favorited by the account")
    favorites.add_argument("--count", type=int, default=20, help="Number of statuses to list")

    query = subparsers.add_parser("query", help="Print the search built for the given terms")
    query.add_argument("terms", nargs="+", help="Hashtags, users or words")
    query.add_argument("--lang", nargs=2, metavar=("LANG", "LANG"), default=None)
    query.add_argument("--raw", action="store_true", help="Print the raw, unencoded search")

    return parser


def _cmd_fav_rt(args) -> int:
    settings = get_settings()
    client = TwitterClient.from_settings(settings)
    count_fav, count_rt = fav_rt(
        client,
        DiscordNotifier.from_settings(settings),
        dry_run=args.dry_run,
        famous=args.famous,
        config=settings.search,
    )

    table = Table(title="deno-bot run" + (" (dry run)" if args.dry_run else ""))
    table.add_column("Action")
    table.add_column("Count", justify="right")
    table.add_row("💙 favorited", str(count_fav))
    table.add_row("RT retweeted", str(count_rt))
    console.print(table)

    errors = client.get_error_list()
    for entry in errors:
        console.print(f"[red]({entry.code}) {entry.error}: {entry.error_message}[/red]")
    return 1 if errors else 0


def _cmd_verify(args) -> int:
    client = TwitterClient.from_settings(get_settings())
    if client.verify_credentials():
        console.print("[green]✅ Credentials are valid[/green]")
        return 0
    console.print("[red]❌ Credentials are not valid[/red]")
    return 1


def _cmd_favorites(args) -> int:
    client = TwitterClient.from_settings(get_settings())
    statuses = client.list_favorites(args.count)

    table = Table(title=f"Last {len(statuses)} favorites")
    table.add_column("Id")
    table.add_column("💙", justify="right")
    table.add_column("RT", justify="right")
    table.add_column("Text")
    for status in statuses:
        table.add_row(status.id_str, str(status.favorite_count), str(status.retweet_count),
                      escape(status.text.replace("\n", " ")[:80]))
    console.print(table)
    return 1 if client.get_error_list() else 0


def _cmd_query(args) -> int:
    languages = args.lang or get_settings().search.languages
    sb = strict_search(SearchBuilder().include.subject(*args.terms), languages)
    console.print(sb.to_raw_string() if args.raw else sb.to_string(), markup=False, soft_wrap=True)
    return 0


COMMANDS = {
    "fav-rt": _cmd_fav_rt,
    "verify": _cmd_verify,
    "favorites": _cmd_favorites,
    "query": _cmd_query,
}


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging()

    if args.metrics_port:
        start_http_server(args.metrics_port)
        logger.info("Metrics server started", port=args.metrics_port)

    try:
        return COMMANDS[args.command](args)
    except (DenoBotError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
