import json
from collections import Counter

import pytest

from backend.py_models.task import CrawlTask, FetchedPage, TaskLabel
from backend.zillow.errors import FetchError

SEARCH_URL = "https://www.zillow.com/homes/for_sale/-122.6,37.9,-122.2,37.6_rect/"
CAPTCHA_URL = "https://www.zillow.com/captchaPerimeterX/?url=%2fhomes%2f"


def detail_url(zpid: int) -> str:
    return f"https://www.zillow.com/homedetails/{zpid}-Main-St-San-Francisco-CA/{zpid}_zpid/"


def search_html(result_count=None, pages=None, current=1, links=(), next_href=None) -> str:
    parts = ["<html><body>"]
    if result_count is not None:
        parts.append(f'<div id="map-result-count-message">{result_count} homes</div>')
    parts.append("<ul class='photo-cards'>")
    for href in links:
        parts.append(f'<li><article><a class="hdp-link" href="{href}">home</a></article></li>')
    parts.append("</ul>")
    if pages:
        parts.append('<div id="search-pagination-wrapper">')
        for n in range(1, pages + 1):
            if n == current:
                parts.append(f"<a>{n}</a>")
            else:
                parts.append(f'<a href="/homes/for_sale/{n}_p/">{n}</a>')
        if next_href:
            parts.append(f'<a class="on" href="{next_href}">Next</a>')
        parts.append("</div>")
    parts.append("</body></html>")
    return "".join(parts)


def home_payload(zpid: int, /, **extra) -> dict:
    home = {
        "zpid": zpid,
        "price": 1250000,
        "bedrooms": 3,
        "streetAddress": "1 Main St",
        "city": "San Francisco",
        "state": "CA",
        "zipcode": "94110",
        "nearbyHomes": [{"zpid": 2}],
        "hdpUrl": "/homedetails/1-Main-St/1_zpid/",
        "brokerSmallUrl": "https://tracking.example/b",
        "homeFacts": {"atAGlanceFacts": []},
        "small": [
            {"url": "https://photos.zillowstatic.com/p_c/abc.jpg"},
            {"url": "https://photos.zillowstatic.com/p_c/def.jpg"},
        ],
    }
    home.update(extra)
    return home


def detail_html(zpid: int, home=None) -> str:
    home = home if home is not None else home_payload(zpid)
    data = {f'ForSaleSEORenderQuery{{"zpid":{zpid}}}': {"property": home}}
    return (
        "<html><body>"
        f'<script id="hdpApolloPreloadedData" type="application/json">{json.dumps(data)}</script>'
        "</body></html>"
    )


class FakeSite:
    """
    Canned responses per URL. An entry is a FetchedPage, an exception, or a list
    of those served in order (the last one repeats).
    """

    def __init__(self, pages=None):
        self.pages = dict(pages or {})
        self.calls = Counter()
        self.retired = 0
        self.closed = 0
        self.retire_error = None

    def session(self):
        return FakeSession(self)


class FakeSession:
    def __init__(self, site: FakeSite):
        self.site = site

    async def fetch(self, task: CrawlTask) -> FetchedPage:
        self.site.calls[task.url] += 1
        entry = self.site.pages.get(task.url)
        if entry is None:
            raise FetchError(task.url, "HTTP 404")
        if isinstance(entry, list):
            entry = entry.pop(0) if len(entry) > 1 else entry[0]
        if isinstance(entry, Exception):
            raise entry
        return entry

    async def retire(self) -> None:
        self.site.retired += 1
        if self.site.retire_error is not None:
            raise self.site.retire_error

    async def close(self) -> None:
        self.site.closed += 1


@pytest.fixture
def search_task():
    return CrawlTask(url=SEARCH_URL, label=TaskLabel.SEARCH_RESULTS)
