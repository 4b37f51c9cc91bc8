import re
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

from backend.zillow.geo import BoundingBox

SEARCH_BASE_URL = "https://www.zillow.com/homes/for_sale/"

# e.g. /homes/for_sale/-122.52,37.81,-122.35,37.70_rect/2_p/
_NUM = r"[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?"
_RECT_RE = re.compile(rf"({_NUM}),({_NUM}),({_NUM}),({_NUM})_rect")
_PAGE_RE = re.compile(r"(?:^|/)(\d+)_p(?=/|$)")


def _rect(box: BoundingBox) -> str:
    # repr() is the shortest string that parses back to the same float
    return ",".join(repr(v) for v in box.as_tuple()) + "_rect"


def decode_box(url: str) -> Optional[BoundingBox]:
    """Return the bounding box carried by a search URL, or None when it has none."""
    m = _RECT_RE.search(urlsplit(url).path)
    if not m:
        return None
    return BoundingBox(*(float(g) for g in m.groups()))


def encode_box(url: str, box: BoundingBox) -> str:
    """
    Rewrite the rect segment of `url` to `box`. Any pagination segment is dropped so
    the new search starts on its first page. URLs without a rect get one appended.
    """
    parts = urlsplit(url)
    path = _PAGE_RE.sub("", parts.path)
    if _RECT_RE.search(path):
        path = _RECT_RE.sub(lambda _m: _rect(box), path, count=1)
    else:
        if not path.endswith("/"):
            path += "/"
        path += _rect(box)
    if not path.endswith("/"):
        path += "/"
    return urlunsplit((parts.scheme, parts.netloc, path, parts.query, parts.fragment))


def build_search_url(box: BoundingBox, base: str = SEARCH_BASE_URL) -> str:
    """Search URL for a seed box."""
    return encode_box(base, box)


def page_from_url(url: str) -> int:
    """Pagination index encoded in the URL (`3_p/`), 1 when absent."""
    m = _PAGE_RE.search(urlsplit(url).path)
    return int(m.group(1)) if m else 1
