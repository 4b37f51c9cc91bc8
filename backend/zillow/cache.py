import re
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

_max_age_re = re.compile(r"max-age=(\d+)")


def parse_max_age(cache_control: str | None) -> int:
    """Seconds from a Cache-Control header, 0 when absent."""
    m = _max_age_re.search(cache_control or "")
    return int(m.group(1)) if m else 0


@dataclass
class CachedResponse:
    status: int
    headers: dict[str, str]
    body: bytes
    expires: float


@dataclass
class ResponseCache:
    """
    URL-keyed store of fetched responses. Each entry lives for the max-age it was
    served with; expiry is checked on read. One instance is shared by the
    sessions of a run and handed to them explicitly.
    """
    clock: Callable[[], float] = time.monotonic
    _entries: dict[str, CachedResponse] = field(default_factory=dict)

    def get(self, url: str) -> Optional[CachedResponse]:
        entry = self._entries.get(url)
        if entry is None:
            return None
        if entry.expires <= self.clock():
            del self._entries[url]
            return None
        return entry

    def put(self, url: str, status: int, headers: dict[str, str], body: bytes) -> bool:
        headers = {k.lower(): v for k, v in headers.items()}
        max_age = parse_max_age(headers.get("cache-control"))
        if not max_age or self.get(url) is not None:
            return False
        self._entries[url] = CachedResponse(
            status=status,
            headers=headers,
            body=body,
            expires=self.clock() + max_age,
        )
        return True

    def __len__(self) -> int:
        return len(self._entries)
