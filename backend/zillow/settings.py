import json
import os
from pathlib import Path
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from backend.py_models.task import CrawlTask, TaskLabel
from backend.zillow.errors import InputError
from backend.zillow.filters import build_search_url
from backend.zillow.geo import BoundingBox

MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017/zillow")
ZILLOW_PROXY = os.getenv("ZILLOW_PROXY", "").strip()

_LABELS = {
    "detail": TaskLabel.DETAIL,
    "page": TaskLabel.SEARCH_RESULTS,
    "search": TaskLabel.SEARCH_RESULTS,
    "searchresults": TaskLabel.SEARCH_RESULTS,
}


def _label(raw: Optional[str], url: str) -> TaskLabel:
    if not raw:
        return TaskLabel.DETAIL if "_zpid" in url else TaskLabel.SEARCH_RESULTS
    label = _LABELS.get(str(getattr(raw, "value", raw)).strip().lower())
    if label is None:
        raise ValueError(f"unknown label {raw!r} for {url}")
    return label


def seed_task(item: Union[str, dict, CrawlTask]) -> CrawlTask:
    """
    Turn one `startUrls` entry into a level-0 task. Accepted shapes:
    a URL string, {"url": ..., "label"?: ..., "userData"?: {"label": ...}},
    or {"box": {"left", "top", "right", "bottom"}}.
    """
    if isinstance(item, CrawlTask):
        return item
    if isinstance(item, str):
        item = {"url": item}
    if not isinstance(item, dict):
        raise ValueError(f"start url must be a string or an object, got {item!r}")

    if "box" in item:
        box = item["box"]
        if not isinstance(box, dict):
            raise ValueError(f"box must be an object, got {box!r}")
        try:
            bbox = BoundingBox(**{k: box[k] for k in ("left", "top", "right", "bottom")})
        except KeyError as e:
            raise ValueError(f"box is missing {e.args[0]!r}") from e
        except TypeError as e:
            raise ValueError(str(e)) from e
        return CrawlTask(url=build_search_url(bbox), label=TaskLabel.SEARCH_RESULTS)

    url = (item.get("url") or "").strip()
    if not url:
        raise ValueError(f"start url has no 'url': {item!r}")
    user_data = item.get("userData") or {}
    raw_label = item.get("label") or (user_data.get("label") if isinstance(user_data, dict) else None)
    return CrawlTask(url=url, label=_label(raw_label, url))


class CrawlInput(BaseModel):
    """Run input. Field aliases follow the JSON input document (camelCase)."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    start_urls: list[CrawlTask] = Field(..., alias="startUrls")
    max_level: Optional[int] = Field(None, alias="maxLevel", ge=0)
    max_pages: Optional[int] = Field(None, alias="maxPages", ge=0)
    show_facts: bool = Field(False, alias="showFacts")
    proxy_config: dict[str, Any] = Field(default_factory=dict, alias="proxyConfig")
    live_view: bool = Field(False, alias="liveView")
    cache_responses: bool = Field(False, alias="cacheResponses")
    concurrency: int = Field(5, ge=1)
    max_request_retries: int = Field(3, alias="maxRequestRetries", ge=0)
    page_threshold: int = Field(20, alias="pageThreshold", ge=1)
    max_challenge_retries: int = Field(4, alias="maxChallengeRetries", ge=0)
    search_settle_ms: int = Field(10000, alias="searchSettleMs", ge=0)
    output: str = "data/dataset.jsonl"
    frontier: Literal["memory", "mongo"] = "memory"
    fetcher: Literal["browser", "http"] = "browser"

    @field_validator("start_urls", mode="before")
    @classmethod
    def _seeds(cls, v):
        if not isinstance(v, list):
            raise ValueError("INPUT.startUrls must be an array!")
        return [seed_task(item) for item in v]

    @field_validator("max_level", "max_pages", mode="after")
    @classmethod
    def _zero_is_unset(cls, v):
        # 0 in the input document means "no limit"
        return v or None

    def launch_proxy(self) -> Optional[dict[str, str]]:
        """Playwright proxy settings: `proxyConfig` when it names a server, else ZILLOW_PROXY."""
        if self.proxy_config.get("server"):
            return {k: str(v) for k, v in self.proxy_config.items() if k in ("server", "username", "password", "bypass")}
        if ZILLOW_PROXY:
            return {"server": ZILLOW_PROXY}
        return None


def parse_input(data: Any) -> CrawlInput:
    if not isinstance(data, dict):
        raise InputError("INPUT must be a JSON object")
    if not isinstance(data.get("startUrls", data.get("start_urls")), list):
        raise InputError("INPUT.startUrls must be an array!")
    try:
        return CrawlInput.model_validate(data)
    except ValidationError as e:
        raise InputError(str(e)) from e


def load_input(path: Union[str, Path]) -> CrawlInput:
    path = Path(path)
    if not path.exists():
        raise InputError(f"Input file not found: {path}")
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise InputError(f"{path}: {e}") from e
    return parse_input(data)
