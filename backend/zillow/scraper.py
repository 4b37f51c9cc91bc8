import asyncio
import logging
import random
from typing import Callable, Optional

from backend.py_models.task import CrawlTask
from backend.zillow.cache import ResponseCache
from backend.zillow.controller import Action, CrawlController, RunStats
from backend.zillow.errors import FetchError
from backend.zillow.frontier import MemoryFrontier
from backend.zillow.settings import CrawlInput

log = logging.getLogger("zillow")


def compute_backoff_seconds(
    attempt: int,
    *,
    base: float,
    jitter: float,
    max_backoff_seconds: float = 30.0,
) -> float:
    exp = base * (2**attempt)
    exp = min(exp, max_backoff_seconds)
    if jitter > 0:
        exp += random.uniform(0.0, jitter)
    return exp


class Crawler:
    """
    Pool of workers draining a frontier. Each worker owns one fetch session,
    pops a task, awaits the fetch, then hands the page to the controller. The
    run is over when the frontier is empty and no worker is mid-task.
    """

    def __init__(
        self,
        frontier,
        controller: CrawlController,
        session_factory: Callable[[], object],
        *,
        concurrency: int = 5,
        max_request_retries: int = 3,
        backoff_base_seconds: float = 1.0,
        backoff_jitter_seconds: float = 0.5,
        idle_poll_seconds: float = 0.2,
    ):
        self.frontier = frontier
        self.controller = controller
        self.session_factory = session_factory
        self.concurrency = concurrency
        self.max_request_retries = max_request_retries
        self.backoff_base_seconds = backoff_base_seconds
        self.backoff_jitter_seconds = backoff_jitter_seconds
        self.idle_poll_seconds = idle_poll_seconds
        self._in_flight = 0

    @property
    def stats(self) -> RunStats:
        return self.controller.stats

    async def run(self) -> RunStats:
        sessions = [self.session_factory() for _ in range(self.concurrency)]
        try:
            await asyncio.gather(*(self._worker(i, s) for i, s in enumerate(sessions)))
        finally:
            for s in sessions:
                await s.close()
        return self.stats

    async def _worker(self, idx: int, session) -> None:
        while True:
            task = self.frontier.dequeue()
            if task is None:
                if self._in_flight == 0:
                    log.debug("worker %d: frontier drained", idx)
                    return
                await asyncio.sleep(self.idle_poll_seconds)
                continue

            self._in_flight += 1
            try:
                await self._run_task(session, task)
            finally:
                self.frontier.complete(task)
                self._in_flight -= 1

    async def _run_task(self, session, task: CrawlTask) -> None:
        try:
            page = await self._fetch(session, task)
            if page is None:
                return
            self.stats.requests += 1
            outcome = self.controller.process(task, page)
        except Exception:
            log.exception("TASK FAILED | url=%s", task.url)
            self.stats.fail(task.url)
            return
        if outcome.action in (Action.RETRY, Action.FAIL):
            try:
                await session.retire()
            except Exception:
                # outcome already applied, keep the task result
                log.exception("SESSION RETIRE FAILED | url=%s", task.url)

    async def _fetch(self, session, task: CrawlTask):
        for attempt in range(self.max_request_retries + 1):
            try:
                return await session.fetch(task)
            except FetchError as e:
                if attempt >= self.max_request_retries:
                    log.error("Request %s failed %d times: %s", task.url, attempt + 1, e.reason)
                    self.stats.fail(task.url)
                    return None
                delay = compute_backoff_seconds(
                    attempt,
                    base=self.backoff_base_seconds,
                    jitter=self.backoff_jitter_seconds,
                )
                log.warning(
                    "FETCH RETRY | attempt=%d delay=%.1fs url=%s reason=%s",
                    attempt + 1, delay, task.url, e.reason,
                )
                await asyncio.sleep(delay)
        return None


def session_factory_for(settings: CrawlInput, cache: Optional[ResponseCache] = None) -> Callable[[], object]:
    proxy = settings.launch_proxy()
    if settings.fetcher == "http":
        from backend.zillow.client import HttpSession

        server = proxy["server"] if proxy else None
        return lambda: HttpSession(cache, proxy=server)

    from backend.zillow.browser import BrowserSession

    return lambda: BrowserSession(
        cache,
        proxy=proxy,
        headless=not settings.live_view,
        cache_responses=settings.cache_responses,
        settle_ms=settings.search_settle_ms,
    )


async def collect_zillow(
    settings: CrawlInput,
    sink,
    *,
    frontier=None,
    session_factory: Optional[Callable[[], object]] = None,
    detector: Optional[Callable[[str], bool]] = None,
    **crawler_kwargs,
) -> RunStats:
    """Seed the frontier from the input, crawl until it drains, and return the run counters."""
    frontier = frontier if frontier is not None else MemoryFrontier()
    seeded = sum(1 for t in settings.start_urls if frontier.enqueue(t))
    log.info("SEED | start_urls=%d enqueued=%d", len(settings.start_urls), seeded)

    if session_factory is None:
        cache = ResponseCache() if settings.cache_responses else None
        session_factory = session_factory_for(settings, cache)

    controller = CrawlController(
        frontier,
        sink,
        max_level=settings.max_level,
        max_pages=settings.max_pages,
        show_facts=settings.show_facts,
        page_threshold=settings.page_threshold,
        max_challenge_retries=settings.max_challenge_retries,
        detector=detector,
    )
    crawler = Crawler(
        frontier,
        controller,
        session_factory,
        concurrency=settings.concurrency,
        max_request_retries=settings.max_request_retries,
        **crawler_kwargs,
    )
    return await crawler.run()
