from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class TaskLabel(str, Enum):
    SEARCH_RESULTS = "page"
    DETAIL = "detail"


class CrawlTask(BaseModel):
    """
    One unit of frontier work. Immutable: a retry or a child search is a new task.
    `unique_key` is the dedup identity and defaults to the URL.
    """
    model_config = ConfigDict(frozen=True)

    url: str
    label: TaskLabel = TaskLabel.SEARCH_RESULTS
    level: int = Field(0, ge=0)
    retry_count: int = Field(0, ge=0)
    unique_key: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _default_unique_key(cls, data):
        if isinstance(data, dict) and not data.get("unique_key"):
            data = {**data, "unique_key": data.get("url")}
        return data

    def child(self, url: str, label: TaskLabel = TaskLabel.SEARCH_RESULTS, level: Optional[int] = None) -> "CrawlTask":
        return CrawlTask(url=url, label=label, level=self.level if level is None else level)

    def retry(self) -> "CrawlTask":
        return CrawlTask(
            url=self.url,
            label=self.label,
            level=self.level,
            retry_count=self.retry_count + 1,
        )


class FetchedPage(BaseModel):
    """What a fetch session hands back: where navigation ended and the DOM at that point."""
    model_config = ConfigDict(frozen=True)

    rendered_url: str
    html: str = ""
