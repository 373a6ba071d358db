#!/usr/bin/env python3
"""Command line interface for Memory Curator."""

import argparse
import asyncio
import logging
import sys

import structlog
from rich.console import Console
from rich.markup import escape
from rich.progress import Progress
from rich.table import Table

from memory_curator.clustering_service import ClusteringService
from memory_curator.context_builder import build_clustering_report
from memory_curator.database import close_db, get_session_factory, init_db
from memory_curator.errors import MemoryCuratorError
from memory_curator.memory_service import MemoryService
from memory_curator.memory_store import SqlMemoryStore
from memory_curator.settings import get_settings
from memory_curator.templates import render_output

console = Console()
error_console = Console(stderr=True)


def configure_logging(level: str) -> None:
    """Send structlog output to stderr so command output stays clean."""
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="memory-curator",
        description="Cluster and search a corpus of remembered facts.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    remember = commands.add_parser("remember", help="Store a new memory")
    remember.add_argument("fact", help="The fact to remember")
    remember.add_argument("--persona", dest="persona_id", help="Persona the memory belongs to")
    remember.add_argument("--conversation", dest="conversation_id", help="Source conversation")

    search = commands.add_parser("search", help="Find memories relevant to a query")
    search.add_argument("query", help="Natural-language query")
    search.add_argument("--limit", type=int, default=None, help="Maximum number of memories")
    search.add_argument(
        "--min-age-days", type=int, default=None, help="Only memories at least this many days old"
    )
    search.add_argument("--persona", dest="persona_id", help="Search this persona's memories")

    cluster = commands.add_parser("cluster", help="Group all memories into themes for review")
    cluster.add_argument("--min", dest="min_size", type=int, default=None, help="Minimum cluster size")
    cluster.add_argument("--max", dest="max_size", type=int, default=None, help="Maximum cluster size")
    cluster.add_argument(
        "--threshold", type=float, default=None, help="Similarity needed to join a cluster"
    )

    backfill = commands.add_parser("backfill", help="Compute missing embeddings")
    backfill.add_argument(
        "--all", dest="recalculate_all", action="store_true", help="Recalculate every embedding"
    )

    return parser


async def remember_command(args, memory_service: MemoryService) -> None:
    memory = await memory_service.remember(
        args.fact, persona_id=args.persona_id, conversation_id=args.conversation_id
    )
    console.print(render_output("remember", memory=memory))


async def search_command(args, memory_service: MemoryService) -> None:
    scope = "persona" if args.persona_id else "all"
    memories = await memory_service.find_similar_memories(
        args.query,
        limit=args.limit,
        min_age_days=args.min_age_days,
        persona_id=args.persona_id,
        scope=scope,
    )
    console.print(render_output("search", query=args.query, memories=memories), markup=False)


async def cluster_command(args, store: SqlMemoryStore) -> None:
    settings = get_settings()
    target_size = (
        args.min_size if args.min_size is not None else settings.cluster_min_size,
        args.max_size if args.max_size is not None else settings.cluster_max_size,
    )
    service = ClusteringService(store)

    with Progress(console=error_console, transient=True) as progress:
        task = progress.add_task("Clustering", total=100)

        async def follow():
            async for status in service.status.watch():
                step = getattr(status, "step", None)
                if step is not None:
                    progress.update(task, completed=status.progress, description=step)

        watcher = asyncio.create_task(follow())
        try:
            result = await service.cluster(target_size=target_size, threshold=args.threshold)
        finally:
            watcher.cancel()

    table = Table(title="Memory Clusters")
    table.add_column("Cluster", style="cyan", no_wrap=True)
    table.add_column("Size", justify="right")
    table.add_column("Priority", justify="right")
    table.add_column("Density", justify="right")
    table.add_column("Diversity", justify="right")
    table.add_column("Avg age (days)", justify="right")
    for cluster in result.top_priority_clusters(len(result.clusters)):
        table.add_row(
            str(cluster.id),
            str(cluster.size),
            f"{cluster.priority_score:.2f} ({cluster.priority_category})",
            f"{cluster.density:.2f}",
            f"{cluster.diversity:.2f}",
            str(cluster.avg_age_days),
        )
    console.print(table)
    console.print(build_clustering_report(result), markup=False)


async def backfill_command(args, memory_service: MemoryService) -> None:
    with Progress(console=error_console, transient=True) as progress:
        task = progress.add_task("Embedding memories", total=None)

        def on_progress(current: int, total: int) -> None:
            progress.update(task, completed=current, total=total)

        updated = await memory_service.backfill_embeddings(
            only_missing=not args.recalculate_all, on_progress=on_progress
        )
    console.print(f"Updated embeddings for {updated} memor{'y' if updated == 1 else 'ies'}")


async def run(args) -> None:
    await init_db()
    try:
        store = SqlMemoryStore(get_session_factory())
        if args.command == "cluster":
            await cluster_command(args, store)
            return

        memory_service = MemoryService(store)
        if args.command == "remember":
            await remember_command(args, memory_service)
        elif args.command == "search":
            await search_command(args, memory_service)
        elif args.command == "backfill":
            await backfill_command(args, memory_service)
    finally:
        await close_db()


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)
    configure_logging(get_settings().log_level)

    try:
        asyncio.run(run(args))
    except (MemoryCuratorError, ValueError, KeyError) as e:
        error_console.print(f"[red]Error:[/red] {escape(str(e))}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
