"""CLI entrypoint: python -m newshub {init-db|ingest|refresh-trending|trending|cache-stats|cache-clear|purge-expired|schedule}."""

from __future__ import annotations

import asyncio
import json
import logging
import logging.handlers
import os
import signal
import sys
from pathlib import Path

from newshub.config import get_db_path, load_config
from newshub.db import init_db


def setup_logging(config: dict) -> None:
    """Configure logging with console + rotating file output."""
    root = logging.getLogger()
    root.setLevel(logging.INFO)

    fmt = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler()
    console.setFormatter(fmt)
    root.addHandler(console)

    # Rotate at 5MB, keep 3 backups, next to the database
    log_dir = Path(get_db_path(config)).parent
    log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = logging.handlers.RotatingFileHandler(
        str(log_dir / "newshub.log"), maxBytes=5 * 1024 * 1024, backupCount=3,
    )
    file_handler.setFormatter(fmt)
    root.addHandler(file_handler)

    # Quiet noisy libraries
    for name in ("httpx", "httpcore", "trafilatura", "feedparser"):
        logging.getLogger(name).setLevel(logging.WARNING)


logger = logging.getLogger("newshub")


def _open_service(config: dict):
    from newshub.service import NewsService

    init_db(get_db_path(config))
    return NewsService.open(config)


def cmd_init_db(config: dict) -> None:
    """Initialize the SQLite database."""
    db_path = get_db_path(config)
    init_db(db_path)
    print(f"Database initialized at {db_path}")


async def cmd_ingest(config: dict) -> None:
    """Fetch every enabled source once and ingest the results."""
    async with _open_service(config) as service:
        report = await service.ingest_sources()

    print(f"Ingested {report.total} articles: {report.succeeded} ok, {report.failed} failed")
    for outcome in report.outcomes:
        if outcome.status == "failed":
            print(f"  FAILED {outcome.raw.title[:60]!r}: {outcome.error}")


async def cmd_refresh_trending(config: dict) -> None:
    """Rebuild the trending ranking now."""
    async with _open_service(config) as service:
        cycle_id = await service.refresh_trending()
    if cycle_id is None:
        print("Trending refresh skipped or failed (see log)")
        sys.exit(1)
    print(f"Trending ranking rebuilt (cycle {cycle_id})")


async def cmd_trending(config: dict, limit: str = "10") -> None:
    """Print the current top trending articles."""
    async with _open_service(config) as service:
        result = await service.trending(int(limit))

    if not result["trending_articles"]:
        print("No trending articles yet.")
        return
    print(f"{'#':>3} {'Score':>10}  {'Source':<18} Title")
    print("-" * 80)
    for i, article in enumerate(result["trending_articles"], 1):
        print(
            f"{i:>3} {article['trending_score']:>10.4f}  "
            f"{article['source'][:18]:<18} {article['title'][:45]}"
        )


async def cmd_cache_stats(config: dict) -> None:
    """Show per-namespace cache counts and hit rates."""
    async with _open_service(config) as service:
        stats = await service.cache_stats()
    print(json.dumps(stats, indent=2))


async def cmd_cache_clear(config: dict, scope: str = "all") -> None:
    """Clear one cache namespace, or all of them."""
    async with _open_service(config) as service:
        result = await service.clear_cache(scope)
    print(f"Cleared {result['cleared']} entries ({result['scope']})")


async def cmd_purge_expired(config: dict) -> None:
    """Delete expired preferences, viewed sets, engagement and cache rows."""
    async with _open_service(config) as service:
        counts = await service.purge_expired()
    for name, count in counts.items():
        print(f"  {name}: {count}")


async def cmd_schedule(config: dict) -> None:
    """Run ingestion and trending refresh on their intervals until interrupted."""
    from newshub.scheduler import run_schedules

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    async with _open_service(config) as service:
        await run_schedules(service, config, stop)


COMMANDS = {
    "init-db": cmd_init_db,
    "ingest": cmd_ingest,
    "refresh-trending": cmd_refresh_trending,
    "trending": cmd_trending,
    "cache-stats": cmd_cache_stats,
    "cache-clear": cmd_cache_clear,
    "purge-expired": cmd_purge_expired,
    "schedule": cmd_schedule,
}


def main() -> None:
    if len(sys.argv) < 2 or sys.argv[1] not in COMMANDS:
        available = ", ".join(COMMANDS)
        print(f"Usage: python -m newshub {{{available}}} [arg]")
        sys.exit(1)

    command, args = sys.argv[1], sys.argv[2:]
    config = load_config(os.environ.get("CONFIG_PATH", "config.yaml"))
    setup_logging(config)
    handler = COMMANDS[command]

    if asyncio.iscoroutinefunction(handler):
        asyncio.run(handler(config, *args))
    else:
        handler(config, *args)


if __name__ == "__main__":
    main()
