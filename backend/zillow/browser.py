import asyncio
import logging
import random
from typing import Optional

from playwright.async_api import Error as PWError
from playwright.async_api import TimeoutError as PWTimeoutError
from playwright.async_api import async_playwright

from backend.py_models.task import CrawlTask, FetchedPage, TaskLabel
from backend.zillow.cache import ResponseCache
from backend.zillow.client import debug_dump
from backend.zillow.errors import FetchError
from backend.zillow.parsing import RESULT_COUNT_SELECTOR

log = logging.getLogger("zillow")

NAVIGATION_TIMEOUT_MS = 200_000
RESULT_COUNT_WAIT_MS = 20_000

# Requests the pages render fine without.
BLOCKED_PATTERNS = (
    ".png",
    ".jpg",
    ".gif",
    ".css",
    "static/fonts",
    "facebook.com",
    "googleapis.com",
)

USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/130.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:133.0) Gecko/20100101 Firefox/133.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/18.1 Safari/605.1.15",
]

HIDE_WEBDRIVER_JS = """
Object.defineProperty(navigator, 'webdriver', {get: () => undefined});
"""


def is_blocked(url: str) -> bool:
    return any(p in url for p in BLOCKED_PATTERNS)


class BrowserSession:
    """
    One headless Chromium owned by one worker. The browser is launched lazily
    with a random user agent; `retire()` throws it away so the next fetch comes
    from a fresh identity.
    """

    def __init__(
        self,
        cache: Optional[ResponseCache] = None,
        *,
        proxy: Optional[dict] = None,
        headless: bool = True,
        cache_responses: bool = False,
        settle_ms: int = 10_000,
    ):
        self.cache = cache
        self.proxy = proxy
        self.headless = headless
        self.cache_responses = cache_responses and cache is not None
        self.settle_ms = settle_ms
        self.user_agent: Optional[str] = None
        self._pw = None
        self._browser = None

    async def _ensure_browser(self):
        if self._browser is not None:
            return self._browser
        if self._pw is None:
            self._pw = await async_playwright().start()
        kwargs = {
            "headless": self.headless,
            "args": ["--disable-blink-features=AutomationControlled", "--disable-dev-shm-usage"],
        }
        if self.proxy:
            kwargs["proxy"] = self.proxy
        self._browser = await self._pw.chromium.launch(**kwargs)
        self.user_agent = random.choice(USER_AGENTS)
        log.debug("BROWSER LAUNCH | ua=%s headless=%s", self.user_agent, self.headless)
        return self._browser

    async def _route(self, route, request, use_cache: bool = True):
        url = request.url
        if is_blocked(url):
            await route.abort()
            return
        if use_cache and self.cache is not None:
            hit = self.cache.get(url)
            if hit is not None:
                await route.fulfill(status=hit.status, headers=hit.headers, body=hit.body)
                return
        await route.continue_()

    async def _remember(self, response):
        try:
            body = await response.body()
        except PWError:
            # redirects and closed pages have no body
            return
        self.cache.put(response.url, response.status, response.headers, body)

    async def _settle_search(self, page):
        try:
            await page.wait_for_selector(RESULT_COUNT_SELECTOR, timeout=RESULT_COUNT_WAIT_MS)
        except PWTimeoutError:
            log.debug("result count did not appear within %dms :: %s", RESULT_COUNT_WAIT_MS, page.url)
        if self.settle_ms:
            await page.wait_for_timeout(self.settle_ms)

    async def fetch(self, task: CrawlTask) -> FetchedPage:
        try:
            browser = await self._ensure_browser()
            context = await browser.new_context(user_agent=self.user_agent)
        except PWError as e:
            raise FetchError(task.url, f"browser launch failed: {e}") from e

        try:
            await context.add_init_script(HIDE_WEBDRIVER_JS)
            use_cache = task.retry_count == 0
            await context.route("**/*", lambda route, request: self._route(route, request, use_cache=use_cache))
            page = await context.new_page()
            if self.cache_responses:
                page.on("response", lambda r: asyncio.create_task(self._remember(r)))

            await page.goto(task.url, timeout=NAVIGATION_TIMEOUT_MS)
            if task.label == TaskLabel.SEARCH_RESULTS:
                await self._settle_search(page)
            html = await page.content()
            rendered_url = page.url
        except PWTimeoutError as e:
            raise FetchError(task.url, f"timeout: {e}") from e
        except PWError as e:
            raise FetchError(task.url, str(e)) from e
        finally:
            try:
                await context.close()
            except PWError:
                pass

        debug_dump("dom", task.url, html)
        return FetchedPage(rendered_url=rendered_url, html=html)

    async def retire(self) -> None:
        if self._browser is not None:
            browser, self._browser = self._browser, None
            try:
                await browser.close()
            except PWError as e:
                log.debug("browser close failed: %s", e)

    async def close(self) -> None:
        await self.retire()
        if self._pw is not None:
            await self._pw.stop()
            self._pw = None
