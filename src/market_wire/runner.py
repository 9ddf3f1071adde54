from __future__ import annotations

import argparse
import asyncio
import os
import signal
import sys
import threading
import time
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from dotenv import load_dotenv

# Load .env before config is imported; Settings reads the environment at
# import time.  DOTENV_FILE=.env.staging selects an alternate file.
if os.getenv("DOTENV_FILE"):
    load_dotenv(os.getenv("DOTENV_FILE"))
else:
    load_dotenv()

from .compose import Compositor
from .config import Settings, get_settings
from .dedup import DedupGate
from .entities import EntityClassifier
from .errors import MarketWireError, PersistenceError, PostError, StateStoreUnavailableError
from .fetcher import ResilientFetcher
from .keywords import load_keyword_table
from .logging_utils import get_logger, setup_logging
from .models import Article, CycleStats, Source
from .monitor import FeedMonitor
from .posting import TweetPoster
from .repository import ArticleRepository
from .scoring import ScoringEngine
from .sources import load_sources
from .state_store import open_state_store

log = get_logger("runner")


class CycleState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class CycleGate:
    """Single-slot IDLE/RUNNING state shared by the loop and the admin server."""

    def __init__(self):
        self._lock = threading.Lock()
        self._state = CycleState.IDLE

    def try_begin(self) -> bool:
        with self._lock:
            if self._state is CycleState.RUNNING:
                return False
            self._state = CycleState.RUNNING
            return True

    def finish(self) -> None:
        with self._lock:
            self._state = CycleState.IDLE

    @property
    def state(self) -> CycleState:
        with self._lock:
            return self._state

    @property
    def running(self) -> bool:
        return self.state is CycleState.RUNNING


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


class Runner:
    def __init__(
        self,
        monitor: FeedMonitor,
        compositor: Compositor,
        poster: Optional[TweetPoster],
        sources: Sequence[Source],
        interval: float = 300,
        post_delay: float = 5.0,
        posting_enabled: bool = True,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.monitor = monitor
        self.compositor = compositor
        self.poster = poster
        self.sources = list(sources)
        self.interval = interval
        self.post_delay = post_delay
        self.posting_enabled = posting_enabled
        self._sleep = sleep
        self.gate = CycleGate()

        self.started_at = datetime.now(timezone.utc)
        self.last_run: Optional[datetime] = None
        self.next_run: Optional[datetime] = None
        self.last_stats: Optional[CycleStats] = None
        self.totals: Dict[str, int] = {
            "cycles": 0,
            "articles": 0,
            "posts": 0,
            "recorded": 0,
            "post_failures": 0,
            "feeds_failed": 0,
        }

    async def _publish(self, article: Article, stats: CycleStats) -> None:
        text = self.compositor.compose(article)
        if text is None:
            stats.compositions_declined += 1
            log.info("post_skipped_no_entities url=%s", article.url)
            return

        if not self.posting_enabled or self.poster is None:
            stats.recorded += 1
            log.info("post_recorded id=%s len=%d text=%r", article.id, len(text), text)
            return

        try:
            post_id = await self.poster.post(text)
        except PostError as e:
            stats.post_failures += 1
            log.error(
                "post_failed url=%s source=%s err=%s", article.url, article.source, str(e)
            )
            return
        stats.posts += 1
        log.info("post_published id=%s url=%s", post_id, article.url)
        await self._sleep(self.post_delay)

    async def _process_source(self, source: Source, stats: CycleStats) -> None:
        if not source.has_feed or not source.feed_urls:
            stats.sources_skipped += 1
            log.info("source_skipped_no_feeds source=%s", source.id)
            return

        for url in source.feed_urls:
            try:
                articles = await self.monitor.process_feed(url, source_id=source.id)
            except MarketWireError as e:
                stats.feeds_failed += 1
                log.warning("feed_failed source=%s url=%s err=%s", source.id, url, str(e))
                continue
            except Exception as e:
                stats.feeds_failed += 1
                log.error(
                    "feed_error source=%s url=%s err=%s",
                    source.id,
                    url,
                    e.__class__.__name__,
                    exc_info=True,
                )
                continue

            stats.feeds_processed += 1
            stats.articles += len(articles)
            for article in articles:
                try:
                    await self._publish(article, stats)
                except Exception as e:
                    stats.post_failures += 1
                    log.error(
                        "publish_error source=%s url=%s err=%s",
                        source.id,
                        article.url,
                        e.__class__.__name__,
                        exc_info=True,
                    )

    async def run_cycle(self) -> Optional[CycleStats]:
        """One pass over every source; None if another cycle is in flight."""
        if not self.gate.try_begin():
            log.info("cycle_skipped_in_progress")
            return None

        stats = CycleStats()
        self.last_run = stats.started_at
        log.info("cycle_start sources=%d", len(self.sources))
        try:
            for source in self.sources:
                await self._process_source(source, stats)
        finally:
            stats.finished_at = datetime.now(timezone.utc)
            self.next_run = stats.finished_at + timedelta(seconds=self.interval)
            self.last_stats = stats
            self.totals["cycles"] += 1
            self.totals["articles"] += stats.articles
            self.totals["posts"] += stats.posts
            self.totals["recorded"] += stats.recorded
            self.totals["post_failures"] += stats.post_failures
            self.totals["feeds_failed"] += stats.feeds_failed
            self.gate.finish()

        log.info(
            "cycle_complete articles=%d posts=%d recorded=%d declined=%d "
            "post_failures=%d feeds_ok=%d feeds_failed=%d duration_ms=%.1f",
            stats.articles,
            stats.posts,
            stats.recorded,
            stats.compositions_declined,
            stats.post_failures,
            stats.feeds_processed,
            stats.feeds_failed,
            stats.duration_ms,
        )
        return stats

    async def run_forever(self, stop: asyncio.Event, interval: Optional[float] = None) -> None:
        """Run a cycle now and then every ``interval`` seconds until ``stop``."""
        interval = self.interval if interval is None else interval
        self.interval = interval
        while not stop.is_set():
            t0 = time.monotonic()
            await self.run_cycle()
            wait = max(0.0, interval - (time.monotonic() - t0))
            self.next_run = datetime.now(timezone.utc) + timedelta(seconds=wait)
            log.info("next_run_scheduled at=%s", self.next_run.isoformat())
            try:
                await asyncio.wait_for(stop.wait(), timeout=wait)
            except asyncio.TimeoutError:
                pass

    def status(self) -> Dict[str, Any]:
        now = datetime.now(timezone.utc)
        last = self.last_stats
        return {
            "in_progress": self.gate.running,
            "last_run": _iso(self.last_run),
            "next_run": _iso(self.next_run),
            "interval_seconds": self.interval,
            "uptime_seconds": round((now - self.started_at).total_seconds(), 1),
            "totals": dict(self.totals),
            "last_cycle": None
            if last is None
            else {
                "articles": last.articles,
                "posts": last.posts,
                "recorded": last.recorded,
                "post_failures": last.post_failures,
                "feeds_failed": last.feeds_failed,
                "duration_ms": last.duration_ms,
            },
        }


def _install_signal_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()

    def _on_signal(sig: signal.Signals) -> None:
        log.warning("shutdown_signal_received signal=%s", sig.name)
        stop.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _on_signal, sig)
        except (NotImplementedError, RuntimeError):
            # Windows event loops lack add_signal_handler
            signal.signal(
                sig, lambda signum, frame: loop.call_soon_threadsafe(stop.set)
            )


async def _run(settings: Settings, once: bool, sleep_s: Optional[float]) -> int:
    store = open_state_store(settings)
    try:
        await store.ping()
    except StateStoreUnavailableError as e:
        log.critical("state_store_unavailable backend=%s err=%s", settings.state_backend, str(e))
        await store.close()
        return 1

    try:
        repository = ArticleRepository(settings.articles_db_path)
    except PersistenceError as e:
        log.critical("article_store_unavailable err=%s", str(e))
        await store.close()
        return 1

    table = load_keyword_table(settings.keywords_path)
    sources = load_sources(settings.sources_path)
    fetcher = ResilientFetcher.from_settings(settings)
    monitor = FeedMonitor(
        fetcher,
        DedupGate(store),
        ScoringEngine.from_table(table),
        EntityClassifier.from_settings(settings),
        repository,
    )
    interval = float(sleep_s if sleep_s is not None else settings.loop_seconds)
    runner = Runner(
        monitor,
        Compositor(limit=settings.tweet_char_limit, retries=settings.compose_retries),
        TweetPoster.from_settings(settings, store),
        sources,
        interval=interval,
        post_delay=settings.post_delay_seconds,
        posting_enabled=settings.feature_posting,
    )
    log.info(
        "services_initialized sources=%d keywords=%d interval_s=%.0f posting=%s",
        len(sources),
        len(table.weights),
        interval,
        settings.feature_posting,
    )

    stop = asyncio.Event()
    _install_signal_handlers(stop)

    server = None
    if settings.feature_health_endpoint:
        from .health_endpoint import start_health_server

        try:
            server = start_health_server(runner, asyncio.get_running_loop(), settings.health_port)
        except OSError as e:
            log.error("health_server_start_failed port=%d err=%s", settings.health_port, str(e))

    try:
        if once:
            await runner.run_cycle()
        else:
            await runner.run_forever(stop, interval)
    finally:
        if server is not None:
            server.shutdown()
            server.server_close()
        await fetcher.close()
        repository.close()
        await store.close()
        log.info("shutdown_complete")
    return 0


def main(argv: List[str] | None = None) -> int:
    """Command-line entry point.  Loops by default; ``--once`` runs one cycle."""
    ap = argparse.ArgumentParser(prog="market-wire")
    ap.add_argument("--once", action="store_true", help="Run a single cycle and exit")
    ap.add_argument("--loop", action="store_true", help="Run continuously (default)")
    ap.add_argument(
        "--sleep",
        type=float,
        default=None,
        help="Seconds between cycles when looping (default: LOOP_SECONDS)",
    )
    args = ap.parse_args(argv)

    settings = get_settings()
    setup_logging(settings=settings)
    log.info("boot_start once=%s", args.once and not args.loop)
    return asyncio.run(_run(settings, once=args.once and not args.loop, sleep_s=args.sleep))


if __name__ == "__main__":
    sys.exit(main())
