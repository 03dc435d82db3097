"""Command-line interface for tagstream."""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Optional

from rich.console import Console
from rich.table import Table

from . import __version__
from .core.lister import Lister
from .exceptions import ConfigError
from .logging_config import setup_logging
from .models.config import TagstreamConfig, load_config
from .models.resources import EnrichedResult


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI."""
    parser = argparse.ArgumentParser(
        prog="tagstream",
        description="Stream a paginated resource listing enriched with tags",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # List everything, one JSON object per line
  tagstream https://api.example.com

  # First 20 items as a table
  tagstream https://api.example.com --limit 20 --table

  # Enrich the full set at once and fetch per-item detail
  tagstream https://api.example.com --scope all --detail --concurrency 8

  # Filter identifiers
  tagstream https://api.example.com --include "prod-*" --exclude "*-tmp"

  # Read settings from a file
  tagstream --config tagstream.yaml
        """,
    )

    parser.add_argument(
        "url",
        nargs="?",
        help="Base URL of the resource API (overrides api.base_url)",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=None,
        metavar="FILE",
        help="YAML configuration file",
    )

    parser.add_argument(
        "--profile",
        "-p",
        choices=["conservative", "standard", "custom"],
        default=None,
        help="Preset profile (default: from config, else custom)",
    )

    # Listing settings
    listing_group = parser.add_argument_group("listing settings")
    listing_group.add_argument(
        "--limit",
        "-n",
        type=int,
        default=None,
        help="Maximum items to emit",
    )
    listing_group.add_argument(
        "--page-size",
        type=int,
        default=None,
        help="Items per listing page",
    )
    listing_group.add_argument(
        "--include",
        nargs="+",
        metavar="PATTERN",
        help="Only emit identifiers matching these patterns",
    )
    listing_group.add_argument(
        "--exclude",
        nargs="+",
        metavar="PATTERN",
        help="Skip identifiers matching these patterns",
    )

    # Enrichment settings
    enrich_group = parser.add_argument_group("enrichment settings")
    enrich_group.add_argument(
        "--scope",
        choices=["page", "all"],
        default=None,
        help="Enrich each page as it arrives, or the full set at once",
    )
    enrich_group.add_argument(
        "--no-tags",
        action="store_true",
        help="Skip tag lookups entirely",
    )
    enrich_group.add_argument(
        "--detail",
        action="store_true",
        help="Fetch per-item detail before emitting",
    )
    enrich_group.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Concurrent detail fetches",
    )
    enrich_group.add_argument(
        "--drain",
        action="store_true",
        help="Let in-flight detail fetches finish when stopping early",
    )

    # Network settings
    network_group = parser.add_argument_group("network settings")
    network_group.add_argument(
        "--token",
        type=str,
        help="Bearer token ($VAR expansion supported)",
    )
    network_group.add_argument(
        "--proxy",
        type=str,
        metavar="URL",
        help="Proxy URL",
    )
    network_group.add_argument(
        "--max-retries",
        type=int,
        default=None,
        help="Maximum retry attempts",
    )

    # Output control
    output_group = parser.add_argument_group("output control")
    output_group.add_argument(
        "--table",
        action="store_true",
        help="Render results as a table instead of JSON lines",
    )
    output_group.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Verbose output",
    )
    output_group.add_argument(
        "--quiet",
        "-q",
        action="store_true",
        help="Suppress statistics and warnings",
    )

    return parser


def build_overrides(args: argparse.Namespace) -> dict[str, Any]:
    """Translate parsed arguments into config section overrides."""
    overrides: dict[str, Any] = {}

    if args.profile:
        overrides["profile"] = args.profile

    api_kwargs: dict = {}
    if args.url:
        api_kwargs["base_url"] = args.url
    if args.token:
        api_kwargs["token"] = args.token
    if args.proxy:
        api_kwargs["proxy"] = args.proxy
    if args.max_retries is not None:
        api_kwargs["max_retries"] = args.max_retries
    if api_kwargs:
        overrides["api"] = api_kwargs

    listing_kwargs: dict = {}
    if args.limit is not None:
        listing_kwargs["limit"] = args.limit
    if args.page_size is not None:
        listing_kwargs["page_size"] = args.page_size
    if args.include:
        listing_kwargs["include_patterns"] = args.include
    if args.exclude:
        listing_kwargs["exclude_patterns"] = args.exclude
    if listing_kwargs:
        overrides["listing"] = listing_kwargs

    enrichment_kwargs: dict = {}
    if args.scope:
        enrichment_kwargs["scope"] = args.scope
    if args.no_tags:
        enrichment_kwargs["enabled"] = False
    if enrichment_kwargs:
        overrides["enrichment"] = enrichment_kwargs

    detail_kwargs: dict = {}
    if args.detail:
        detail_kwargs["enabled"] = True
    if args.concurrency is not None:
        detail_kwargs["concurrency"] = args.concurrency
    if args.drain:
        detail_kwargs["on_stop"] = "drain"
    if detail_kwargs:
        overrides["detail"] = detail_kwargs

    if args.verbose:
        overrides["log_level"] = "DEBUG"
    elif args.quiet:
        overrides["log_level"] = "ERROR"

    return overrides


def _format_tags(tags: dict[str, str]) -> str:
    return ", ".join(f"{key}={value}" for key, value in sorted(tags.items()))


def _render_table(results: list[EnrichedResult], console: Console) -> None:
    table = Table(show_header=True, header_style="bold")
    table.add_column("Identifier", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Tags")
    for result in results:
        if result.item is None:
            continue
        table.add_row(result.item.identifier, result.item.name, _format_tags(result.tags))
    console.print(table)


async def stream_results(config: TagstreamConfig, args: argparse.Namespace) -> int:
    """Run one listing, writing results to stdout and statistics to stderr."""
    out = Console()
    err = Console(stderr=True)
    rows: list[EnrichedResult] = []
    failed = False

    async with Lister(config) as lister:
        results = lister.stream()
        try:
            async for result in results:
                if result.is_error:
                    err.print(f"[red]Listing failed:[/red] {result.error}")
                    failed = True
                    break
                if args.table:
                    rows.append(result)
                else:
                    sys.stdout.write(json.dumps(result.to_dict(), default=str) + "\n")
        finally:
            await results.aclose()

        if args.table:
            _render_table(rows, out)

        stats = lister.stats
        if not args.quiet:
            err.print()
            err.print("[bold]Results:[/bold]")
            err.print(f"  Pages fetched: {stats.pages_fetched}")
            err.print(f"  Items listed: {stats.items_listed}")
            err.print(f"  Items emitted: {stats.items_emitted}")
            err.print(f"  Items tagged: {stats.items_tagged}")
            if stats.degraded_batches:
                err.print(f"  [yellow]Degraded tag batches: {stats.degraded_batches}[/yellow]")
            if stats.details_dropped:
                err.print(f"  Details dropped: {stats.details_dropped}")
            err.print(f"  Duration: {stats.duration_seconds:.1f}s")

    return 1 if failed else 0


def run_listing(args: argparse.Namespace) -> int:
    """Build the config from arguments and run the listing."""
    console = Console(stderr=True)

    try:
        config = load_config(args.config, **build_overrides(args))
    except ConfigError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        return 1

    if not config.api.base_url:
        console.print("[red]Error:[/red] Please provide a URL or set api.base_url in the config file")
        return 1

    setup_logging(
        level=config.log_level,
        log_file=str(config.log_file) if config.log_file else None,
    )

    try:
        return asyncio.run(stream_results(config, args))
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted[/yellow]")
        return 130
    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        if args.verbose:
            import traceback

            traceback.print_exc()
        return 1


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)
    return run_listing(args)


if __name__ == "__main__":
    sys.exit(main())
