import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Callable, Optional

from pydantic import ValidationError

from backend.py_models.task import CrawlTask, FetchedPage, TaskLabel
from backend.zillow.classify import ChallengeDetector, PageKind, classify_page
from backend.zillow.filters import decode_box, encode_box
from backend.zillow.geo import split_box
from backend.zillow.parsing import (
    SearchSignal,
    current_page,
    detail_links,
    get_home_object,
    next_page_link,
    read_search_signal,
    zpid_from_url,
)
from backend.zillow.records import INVALID_PAYLOAD, MISSING_PAYLOAD, build_record, invalid_payload, missing_payload

log = logging.getLogger("zillow")

# The site stops listing results after a fixed number of pages (500 homes at
# roughly 25 per page). A search that reaches this many pages is truncated.
PAGE_THRESHOLD = 20
MAX_CHALLENGE_RETRIES = 4


class Action(str, Enum):
    RETRY = "retry"
    FAIL = "fail"
    ENUMERATE = "enumerate"
    SPLIT = "split"
    EXTRACT = "extract"
    MISSING = "missing"


@dataclass
class Outcome:
    action: Action
    tasks: list[CrawlTask] = field(default_factory=list)
    records: list = field(default_factory=list)
    force_reprocess: bool = False
    signal: Optional[SearchSignal] = None
    reason: Optional[str] = None
    enqueued: int = 0


@dataclass
class RunStats:
    requests: int = 0
    records: int = 0
    error_records: int = 0
    splits: int = 0
    challenges: int = 0
    duplicates: int = 0
    failed: int = 0
    failed_urls: list[str] = field(default_factory=list)

    def fail(self, url: str) -> None:
        self.failed += 1
        self.failed_urls.append(url)

    def to_dict(self) -> dict:
        return asdict(self)


class CrawlController:
    """
    Decides what a fetched page turns into.

    Search pages either get enumerated (detail links plus the next page) or, when
    the site signals a truncated result list, split into four child searches one
    level deeper. Detail pages become records. Challenge pages are re-queued with
    a fresh identity until the retry ceiling is reached.
    """

    def __init__(
        self,
        frontier,
        sink,
        *,
        max_level: Optional[int] = None,
        max_pages: Optional[int] = None,
        show_facts: bool = False,
        page_threshold: int = PAGE_THRESHOLD,
        max_challenge_retries: int = MAX_CHALLENGE_RETRIES,
        detector: Optional[Callable[[str], bool]] = None,
        stats: Optional[RunStats] = None,
    ):
        self.frontier = frontier
        self.sink = sink
        self.max_level = max_level
        self.max_pages = max_pages
        self.show_facts = show_facts
        self.page_threshold = page_threshold
        self.max_challenge_retries = max_challenge_retries
        self.detector = detector or ChallengeDetector()
        self.stats = stats or RunStats()

    # --- decisions ---------------------------------------------------------

    def handle(self, task: CrawlTask, page: FetchedPage) -> Outcome:
        kind = classify_page(task, page.rendered_url, self.detector)
        if kind is PageKind.CHALLENGE:
            return self._challenge(task)
        if kind is PageKind.DETAIL:
            return self._detail(task, page)
        return self._search(task, page)

    def _challenge(self, task: CrawlTask) -> Outcome:
        if task.retry_count < self.max_challenge_retries:
            return Outcome(Action.RETRY, tasks=[task.retry()], force_reprocess=True)
        return Outcome(
            Action.FAIL,
            reason=f"challenge persisted after {task.retry_count} retries",
        )

    def _detail(self, task: CrawlTask, page: FetchedPage) -> Outcome:
        url = page.rendered_url if zpid_from_url(page.rendered_url) else task.url
        home = get_home_object(page.html, url)
        if home is None:
            return Outcome(Action.MISSING, records=[missing_payload(url)], reason=MISSING_PAYLOAD)
        try:
            record = build_record(home, url, show_facts=self.show_facts)
        except ValidationError as e:
            return Outcome(
                Action.MISSING,
                records=[invalid_payload(url)],
                reason=f"{INVALID_PAYLOAD}: {e.error_count()} error(s)",
            )
        return Outcome(Action.EXTRACT, records=[record])

    def should_enumerate(self, task: CrawlTask, signal: SearchSignal) -> bool:
        if self.max_level is not None and task.level >= self.max_level:
            return True
        # unknown size is treated as truncated
        return signal.page_count is not None and signal.page_count < self.page_threshold

    def _search(self, task: CrawlTask, page: FetchedPage) -> Outcome:
        signal = read_search_signal(page.html)
        if self.should_enumerate(task, signal):
            return self._enumerate(task, page, signal)
        box = decode_box(task.url)
        if box is None:
            log.warning("SPLIT SKIPPED | no bounding box in url=%s; enumerating instead", task.url)
            return self._enumerate(task, page, signal)
        if signal.page_count is None:
            log.warning(
                "SPLIT BLIND | no result count or pagination on page, splitting anyway level=%d url=%s "
                "(set maxLevel if this repeats)",
                task.level, task.url,
            )
        children = [
            task.child(encode_box(task.url, child), level=task.level + 1)
            for child in split_box(box)
        ]
        return Outcome(Action.SPLIT, tasks=children, signal=signal)

    def _enumerate(self, task: CrawlTask, page: FetchedPage, signal: SearchSignal) -> Outcome:
        base = page.rendered_url or task.url
        tasks = [task.child(u, label=TaskLabel.DETAIL) for u in detail_links(page.html, base)]
        nxt = next_page_link(page.html, base)
        if nxt and self._may_paginate(current_page(page.html, task.url)):
            tasks.append(task.child(nxt))
        return Outcome(Action.ENUMERATE, tasks=tasks, signal=signal)

    def _may_paginate(self, page_no: int) -> bool:
        return self.max_pages is None or page_no < self.max_pages

    # --- effects -----------------------------------------------------------

    def process(self, task: CrawlTask, page: FetchedPage) -> Outcome:
        """Decide, then push the resulting tasks into the frontier and records into the sink."""
        log.info("open page: %s", page.rendered_url)
        outcome = self.handle(task, page)

        for t in outcome.tasks:
            if self.frontier.enqueue(t, force_reprocess=outcome.force_reprocess):
                outcome.enqueued += 1
            else:
                self.stats.duplicates += 1
        for rec in outcome.records:
            self.sink.emit(rec)

        self._account(task, outcome)
        return outcome

    def _account(self, task: CrawlTask, outcome: Outcome) -> None:
        a = outcome.action
        if a is Action.RETRY:
            self.stats.challenges += 1
            log.warning("CHALLENGE | re-enqueuing retry=%d url=%s", task.retry_count + 1, task.url)
        elif a is Action.FAIL:
            self.stats.challenges += 1
            self.stats.fail(task.url)
            log.error("CHALLENGE | giving up url=%s (%s)", task.url, outcome.reason)
        elif a is Action.SPLIT:
            self.stats.splits += 1
            log.info(
                "SPLIT | level=%d pages=%s results=%s url=%s",
                task.level, outcome.signal.page_count, outcome.signal.result_count, task.url,
            )
        elif a is Action.ENUMERATE:
            log.info(
                "ENUMERATE | level=%d links=%d enqueued=%d url=%s",
                task.level, len(outcome.tasks), outcome.enqueued, task.url,
            )
        elif a is Action.EXTRACT:
            self.stats.records += len(outcome.records)
            log.info("EXTRACT | url=%s", task.url)
        elif a is Action.MISSING:
            self.stats.error_records += len(outcome.records)
            log.warning("MISSING PAYLOAD | url=%s reason=%s", task.url, outcome.reason)
