# backend/zillow/parsing.py
from bs4 import BeautifulSoup, Tag
from dataclasses import dataclass
import re
from urllib.parse import urljoin
import json

from backend.zillow.filters import page_from_url

__all__ = [
    "SearchSignal",
    "read_search_signal",
    "detail_links",
    "next_page_link",
    "current_page",
    "get_home_object",
    "zpid_from_url",
    "RESULT_COUNT_SELECTOR",
]

RESULT_COUNT_SELECTOR = "#map-result-count-message"
PAGINATION_SELECTOR = "#search-pagination-wrapper"
DETAIL_LINK_SELECTORS = [
    "a.hdp-link[href]",
    "article a[href*='_zpid']",
]
NEXT_PAGE_SELECTORS = [
    f"{PAGINATION_SELECTOR} a[rel='next'][href]",
    f"{PAGINATION_SELECTOR} a.on[href]",
]
PAYLOAD_SELECTOR = "#hdpApolloPreloadedData"

_count_re = re.compile(r"\d{1,3}(?:,\d{3})+|\d+")
_zpid_re = re.compile(r"(\d+)_zpid")


@dataclass(frozen=True)
class SearchSignal:
    """What a search page says about its own size. None means the page did not say."""
    result_count: int | None
    page_count: int | None


# --- tiny utils -------------------------------------------------------------

def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "lxml")


def _text(el):
    if not el:
        return None
    return el.get_text(" ", strip=True)


def _int_or_none(s: str | None):
    if not s:
        return None
    s = s.strip()
    return int(s) if s.isdigit() else None


# --- result oracle ----------------------------------------------------------

def _result_count(soup) -> int | None:
    txt = _text(soup.select_one(RESULT_COUNT_SELECTOR))
    if not txt:
        return None
    m = _count_re.search(txt)
    return int(m.group(0).replace(",", "")) if m else None


def _page_labels(soup) -> list[int]:
    wrapper = soup.select_one(PAGINATION_SELECTOR)
    if wrapper is None:
        return []
    nums = (_int_or_none(_text(a)) for a in wrapper.select("a"))
    return [n for n in nums if n is not None]


def read_search_signal(html: str) -> SearchSignal:
    """
    Result count and page count of a rendered search page.

    The page count is the highest numbered pagination link. A page with a known
    result count and no pagination control holds everything on one page. When
    neither is on the page both values are None and the caller decides.
    """
    soup = _soup(html)
    result_count = _result_count(soup)
    labels = _page_labels(soup)
    if labels:
        page_count = max(labels)
    elif result_count is not None:
        page_count = 1 if result_count > 0 else 0
    else:
        page_count = None
    return SearchSignal(result_count=result_count, page_count=page_count)


# --- links ------------------------------------------------------------------

def detail_links(html: str, base_url: str) -> list[str]:
    """Absolute home detail URLs on a search page, first occurrence order, no repeats."""
    soup = _soup(html)
    seen = set()
    out = []
    for sel in DETAIL_LINK_SELECTORS:
        for a in soup.select(sel):
            href = (a.get("href") or "").strip()
            if not href:
                continue
            url = urljoin(base_url, href)
            if url in seen:
                continue
            seen.add(url)
            out.append(url)
    return out


def current_page(html: str, url: str) -> int:
    """Number of the page being shown. The active pagination entry has no href."""
    soup = _soup(html)
    wrapper = soup.select_one(PAGINATION_SELECTOR)
    if wrapper is not None:
        for a in wrapper.select("a"):
            if isinstance(a, Tag) and not a.has_attr("href"):
                n = _int_or_none(_text(a))
                if n is not None:
                    return n
    return page_from_url(url)


def next_page_link(html: str, base_url: str) -> str | None:
    soup = _soup(html)
    for sel in NEXT_PAGE_SELECTORS:
        a = soup.select_one(sel)
        if a and a.get("href"):
            return urljoin(base_url, a["href"].strip())
    return None


# --- detail payload -----------------------------------------------------------

def zpid_from_url(url: str) -> str | None:
    m = _zpid_re.search(url or "")
    return m.group(1) if m else None


def _maybe_json(value):
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return None
    return value


def get_home_object(html: str, url: str) -> dict | None:
    """
    Home payload embedded in a detail page, or None when the page has none.

    The preloaded Apollo cache is keyed by the render query, e.g.
    `ForSaleSEORenderQuery{"zpid":12345}`; values are sometimes serialized twice.
    """
    zpid = zpid_from_url(url)
    if not zpid:
        return None
    script = _soup(html).select_one(PAYLOAD_SELECTOR)
    if script is None:
        return None
    raw = script.string or script.get_text() or ""
    data = _maybe_json(raw.strip())
    if not isinstance(data, dict):
        return None
    entry = _maybe_json(data.get(f'ForSaleSEORenderQuery{{"zpid":{zpid}}}'))
    if not isinstance(entry, dict):
        return None
    home = entry.get("property")
    return home if isinstance(home, dict) else None
