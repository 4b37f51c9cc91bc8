from enum import Enum
from typing import Callable, Iterable, Optional
from urllib.parse import urlsplit

from backend.py_models.task import CrawlTask, TaskLabel


class PageKind(str, Enum):
    CHALLENGE = "challenge"
    DETAIL = "detail"
    SEARCH_RESULTS = "page"


class ChallengeDetector:
    """
    Decides whether navigation ended on the bot-check interstitial instead of
    the requested page. The site redirects challenged sessions to a URL
    containing `captcha`; optionally any host outside `allowed_hosts` counts too.
    """

    def __init__(self, markers: Iterable[str] = ("captcha",), allowed_hosts: Optional[Iterable[str]] = None):
        self.markers = tuple(m.lower() for m in markers)
        self.allowed_hosts = {h.lower() for h in allowed_hosts} if allowed_hosts else None

    def __call__(self, rendered_url: str) -> bool:
        u = (rendered_url or "").lower()
        if any(m in u for m in self.markers):
            return True
        if self.allowed_hosts is not None:
            host = urlsplit(u).hostname or ""
            return host not in self.allowed_hosts
        return False


def classify_page(task: CrawlTask, rendered_url: str, detector: Callable[[str], bool]) -> PageKind:
    # list vs detail is fixed when the task is enqueued; only the challenge check is live
    if detector(rendered_url):
        return PageKind.CHALLENGE
    if task.label == TaskLabel.DETAIL:
        return PageKind.DETAIL
    return PageKind.SEARCH_RESULTS
