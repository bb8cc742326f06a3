"""
Main entrypoint: starts the sync scheduler, or runs a single sync.

FastAPI runs separately under uvicorn (status and manual triggers).

Usage:
    python -m stationsync                                  # starts scheduler
    python -m stationsync sync                             # one-shot sync, all families
    python -m stationsync sync --force-full items locations
    uvicorn stationsync.api.main:app --host 0.0.0.0 --port 8000  # starts API
"""
import argparse
import asyncio
import logging
import sys

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="stationsync")
    commands = parser.add_subparsers(dest="command")

    sync = commands.add_parser("sync", help="run a single sync and exit")
    sync.add_argument(
        "families",
        nargs="*",
        help="categories, companies, items, locations or all (default: all)",
    )
    sync.add_argument(
        "--force-full",
        action="store_true",
        help="skip the delta decision and sweep every endpoint",
    )
    return parser


async def _run_once(families, force_full: bool) -> int:
    from stationsync.db.engine import get_engine
    from stationsync.sync.runner import run_sync

    try:
        results = await run_sync(get_engine(), families or None, force_full=force_full)
    except ValueError as exc:
        logger.error("%s", exc)
        return 2

    for family, result in results.items():
        if result.status == "success":
            logger.info(
                "%s: %s sync, created %d, updated %d, deleted %d in %dms",
                family,
                result.mode.value if result.mode else "-",
                result.created,
                result.updated,
                result.deleted,
                result.duration_ms,
            )
        else:
            logger.error("%s: %s (%s)", family, result.status, result.error)

    return 0 if all(r.status == "success" for r in results.values()) else 1


async def _run_scheduler() -> None:
    from stationsync.config import get_settings
    from stationsync.db.engine import get_engine
    from stationsync.scheduler.jobs import build_scheduler

    settings = get_settings()
    engine = get_engine()

    if not settings.sync_enabled:
        logger.info("SYNC_ENABLED is false; scheduled runs will be skipped.")

    scheduler = build_scheduler(engine)
    scheduler.start()
    logger.info(
        "Scheduler started (daily sync at %02d:00 UTC). Press Ctrl+C to stop.",
        settings.sync_hour,
    )

    try:
        await asyncio.Event().wait()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Shutting down...")
    finally:
        scheduler.shutdown()
        logger.info("Goodbye.")


if __name__ == "__main__":
    args = _build_parser().parse_args()
    if args.command == "sync":
        sys.exit(asyncio.run(_run_once(args.families, args.force_full)))
    else:
        asyncio.run(_run_scheduler())
