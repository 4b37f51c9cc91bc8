class CrawlError(Exception):
    """Base class for crawler errors."""


class InputError(CrawlError, ValueError):
    """Malformed crawl input. Raised before any page is fetched."""


class FetchError(CrawlError):
    """A page could not be fetched (timeout, network, HTTP status)."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason
