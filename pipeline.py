"""Run orchestration for the news fetcher.

This module coordinates one scheduled run:

Pipeline Flow:
    1. SETTINGS: Load interval/retention/last-fetch settings (fatal on error)
    2. SOURCES: Load active sources (fatal on error); none -> return early
    3. USERS: Load users with their source exclusions
    4. FETCH: Fetch, parse and upsert every source (bounded concurrency)
    5. FAN-OUT: One notification per (user, productive source) pair
    6. CLEANUP: Delete notifications past the retention window
    7. METADATA: Record last_fetch_at

Error Handling:
    Per-source fetch/parse failures are collected as "{source}: {error}"
    strings and do not stop the run. Anything that escapes the stages above
    (settings/sources load failures, any StorageError) aborts the run and is
    returned as a failed FetchNewsResult with zeroed counters.
"""

import asyncio
import logging
import time
import uuid
from datetime import datetime, timezone

from config import Config
from database import Database, StorageError
from feeds import create_session, fetch_source
from models.feed import FeedSource
from models.results import FetchNewsResult, FetchSourceResult
from models.settings import FetcherSettings
from notifications import cleanup_notifications, fan_out
from observability.logging import clear_context, set_run_context

logger = logging.getLogger(__name__)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class Pipeline:
    """News ingestion pipeline bound to one store.

    Components:
        - Database: SQLite store for sources, items, users, notifications
        - feeds.fetch_source: fetch -> parse -> dedup/upsert per source
        - notifications: fan-out and retention cleanup

    Example:
        >>> with Database("news.db") as db:
        ...     result = await Pipeline(config, db).run_once()
    """

    def __init__(self, config: Config, db: Database):
        """Initialize the pipeline.

        Args:
            config: Application configuration
            db: Open store handle (owned by the caller)
        """
        self.config = config
        self.db = db

    async def _fetch_sources(self, sources: list[FeedSource]) -> list[FetchSourceResult]:
        """Process all sources with bounded concurrency.

        Results come back in source order. A hard error from any source
        cancels the remaining fetches and propagates.
        """
        semaphore = asyncio.Semaphore(self.config.max_workers)

        async with create_session(self.config.user_agent, self.config.max_workers) as session:
            async def bounded(source: FeedSource) -> FetchSourceResult:
                async with semaphore:
                    return await fetch_source(
                        session, source, self.db, timeout=self.config.fetch_timeout_seconds
                    )

            tasks = [asyncio.create_task(bounded(source)) for source in sources]
            try:
                return await asyncio.gather(*tasks)
            except BaseException:
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
                raise

    async def run_once(self) -> FetchNewsResult:
        """Execute one complete run.

        Returns:
            FetchNewsResult summarizing the run. Never raises for pipeline
            failures; only cancellation propagates.
        """
        run_id = uuid.uuid4().hex[:8]
        set_run_context(run_id)
        start = time.monotonic()

        try:
            settings = self.db.load_settings()

            sources = self.db.active_sources()
            if not sources:
                logger.info("No active sources, nothing to fetch")
                return FetchNewsResult(duration_ms=_elapsed_ms(start))

            logger.info("Fetch started | sources=%d workers=%d", len(sources), self.config.max_workers)

            users = self.db.users_with_exclusions()

            source_results = await self._fetch_sources(sources)

            errors = []
            total_new_items = 0
            for result in source_results:
                if result.error:
                    errors.append(f"{result.source_name}: {result.error}")
                else:
                    total_new_items += result.new_items_count

            logger.info(
                "Sources processed | sources=%d new_items=%d errors=%d",
                len(sources), total_new_items, len(errors),
            )

            notifications_created = fan_out(
                self.db,
                source_results,
                users,
                batch_size=self.config.notification_batch_size,
            )

            notifications_deleted = cleanup_notifications(
                self.db, settings.notification_retention_days
            )

            self.db.set_last_fetch_at(datetime.now(timezone.utc))

            result = FetchNewsResult(
                success=not errors,
                sources_processed=len(sources),
                total_new_items=total_new_items,
                notifications_created=notifications_created,
                notifications_deleted=notifications_deleted,
                errors=errors,
                duration_ms=_elapsed_ms(start),
            )

        except asyncio.CancelledError:
            logger.info("Fetch run cancelled")
            raise
        except Exception as e:
            logger.error("Fetch run failed | type=%s error=%s", type(e).__name__, e, exc_info=True)
            result = FetchNewsResult.failure(str(e) or type(e).__name__, _elapsed_ms(start))

        finally:
            clear_context()

        logger.info(
            "Fetch done | success=%s duration=%dms new_items=%d notified=%d pruned=%d errors=%d",
            result.success, result.duration_ms, result.total_new_items,
            result.notifications_created, result.notifications_deleted, len(result.errors),
        )
        return result

    def _current_settings(self) -> FetcherSettings:
        """Settings for scheduling; defaults when the store is unreadable."""
        try:
            return self.db.load_settings()
        except StorageError as e:
            logger.warning("Settings unavailable, using defaults | error=%s", e)
            return FetcherSettings()

    def _seconds_until_due(self, settings: FetcherSettings) -> float:
        """Seconds to sleep before the next run, at least min_poll_seconds."""
        next_at = settings.next_fetch_at()
        if next_at is None:
            return float(self.config.min_poll_seconds)
        wait = (next_at - datetime.now(timezone.utc)).total_seconds()
        return max(wait, float(self.config.min_poll_seconds))

    async def run_continuous(self) -> None:
        """Run forever, pacing runs by the stored fetch interval.

        Settings are reloaded on every iteration, so an administrator
        changing fetch_interval_minutes takes effect at the next wake-up.
        """
        run_count = 0
        total_new_items = 0
        failed_runs = 0

        logger.info("Starting continuous mode")

        try:
            while True:
                if self._current_settings().is_due():
                    run_count += 1
                    result = await self.run_once()
                    total_new_items += result.total_new_items
                    if not result.success:
                        failed_runs += 1
                    logger.info(
                        "Run complete | run=%d total_new_items=%d failed_runs=%d",
                        run_count, total_new_items, failed_runs,
                    )

                delay = self._seconds_until_due(self._current_settings())
                logger.debug("Sleeping | seconds=%.0f", delay)
                await asyncio.sleep(delay)

        except asyncio.CancelledError:
            logger.info(
                "Fetcher stopped | runs=%d total_new_items=%d failed_runs=%d",
                run_count, total_new_items, failed_runs,
            )
            raise


async def fetch_news(db: Database, config: Config | None = None) -> FetchNewsResult:
    """Programmatic entry point: run the pipeline once against a store.

    Args:
        db: Open store handle
        config: Configuration (defaults to Config.load())

    Returns:
        FetchNewsResult for the run
    """
    return await Pipeline(config or Config.load(), db).run_once()


async def run_once(config: Config) -> FetchNewsResult:
    """Open the configured database and run the pipeline once."""
    with Database(config.db_path) as db:
        return await Pipeline(config, db).run_once()


async def run_continuous(config: Config) -> None:
    """Open the configured database and run the pipeline continuously."""
    with Database(config.db_path) as db:
        await Pipeline(config, db).run_continuous()
