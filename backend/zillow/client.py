import hashlib
import logging
import os
from typing import Optional

import httpx

from backend.py_models.task import CrawlTask, FetchedPage
from backend.zillow.cache import ResponseCache
from backend.zillow.errors import FetchError

log = logging.getLogger("zillow")

HTTP_DEBUG = os.getenv("HTTP_DEBUG", "").lower() in {"1", "true", "yes"}
ZILLOW_DEBUG = os.getenv("ZILLOW_DEBUG", "").lower() in {"1", "true", "yes"}
NAVIGATION_TIMEOUT_S = 200.0

DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept-Language": "en-US,en;q=0.9",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
}


def debug_dump(kind: str, url: str, html: str) -> None:
    """When ZILLOW_DEBUG is set, keep fetched markup under /tmp for offline selector work."""
    if not ZILLOW_DEBUG:
        return
    h = hashlib.sha1(f"{url}|{len(html)}".encode()).hexdigest()[:16]
    fname = f"/tmp/zillow_{kind}_{h}.html"
    try:
        with open(fname, "w", encoding="utf-8", errors="ignore") as f:
            f.write(html)
        log.debug("saved %s → %s :: %s", kind.upper(), fname, url)
    except OSError as e:
        log.debug("debug save failed: %s", e)


def new_client(timeout: float = NAVIGATION_TIMEOUT_S, proxy: Optional[str] = None) -> httpx.AsyncClient:
    """
    Create a configured AsyncClient with optional proxy and debug logging.
    Uses a bounded connection pool and transport-level retries for connect errors.
    """
    if HTTP_DEBUG:
        logging.getLogger("httpx").setLevel(logging.DEBUG)

    limits = httpx.Limits(max_keepalive_connections=5, max_connections=10)
    transport = httpx.AsyncHTTPTransport(retries=2, limits=limits, proxy=proxy)
    return httpx.AsyncClient(
        timeout=timeout,
        headers=DEFAULT_HEADERS,
        follow_redirects=True,
        transport=transport,
    )


class HttpSession:
    """
    Fetch session without a browser. Redirects are followed so the final URL
    still reveals a challenge redirect to the caller.
    """

    def __init__(self, cache: Optional[ResponseCache] = None, proxy: Optional[str] = None,
                 timeout: float = NAVIGATION_TIMEOUT_S):
        self.cache = cache
        self.proxy = proxy
        self.timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = new_client(timeout=self.timeout, proxy=self.proxy)
        return self._client

    async def fetch(self, task: CrawlTask) -> FetchedPage:
        # retries come after a challenge and skip the cache
        if self.cache is not None and task.retry_count == 0:
            hit = self.cache.get(task.url)
            if hit is not None:
                return FetchedPage(rendered_url=task.url, html=hit.body.decode("utf-8", errors="replace"))

        try:
            r = await self._get_client().get(task.url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise FetchError(task.url, f"{type(e).__name__}: {e}") from e

        # a redirect that ends on an error page is still worth classifying
        if r.status_code >= 400 and not r.history:
            raise FetchError(task.url, f"HTTP {r.status_code}")

        # direct answers only
        if self.cache is not None and not r.history and r.status_code == 200:
            self.cache.put(task.url, r.status_code, dict(r.headers), r.content)
        debug_dump("http", task.url, r.text)
        return FetchedPage(rendered_url=str(r.url), html=r.text)

    async def retire(self) -> None:
        # new connections and cookies next time
        await self.close()

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
