import pytest
from pymongo.errors import DuplicateKeyError

from backend.py_models.task import CrawlTask, TaskLabel
from backend.zillow.frontier import DONE, IN_PROGRESS, PENDING, MemoryFrontier, MongoFrontier

from conftest import SEARCH_URL, detail_url


class _Result:
    def __init__(self, modified_count=0):
        self.modified_count = modified_count


class FakeCollection:
    """The slice of pymongo's Collection API the frontier touches."""

    def __init__(self):
        self.docs = {}
        self.indexes = []

    def create_index(self, keys, **kwargs):
        self.indexes.append(keys)

    def insert_one(self, doc):
        if doc["_id"] in self.docs:
            raise DuplicateKeyError("E11000 duplicate key error", 11000)
        self.docs[doc["_id"]] = dict(doc)

    def _matches(self, doc, flt):
        return all(doc.get(k) == v for k, v in flt.items())

    def find_one_and_update(self, flt, update, sort=None, return_document=None):
        hits = [d for d in self.docs.values() if self._matches(d, flt)]
        if sort:
            key, _direction = sort[0]
            hits.sort(key=lambda d: d[key])
        if not hits:
            return None
        doc = hits[0]
        doc.update(update["$set"])
        return dict(doc)

    def update_one(self, flt, update):
        for d in self.docs.values():
            if self._matches(d, flt):
                d.update(update["$set"])
                return _Result(1)
        return _Result(0)

    def update_many(self, flt, update):
        n = 0
        for d in self.docs.values():
            if self._matches(d, flt):
                d.update(update["$set"])
                n += 1
        return _Result(n)

    def count_documents(self, flt):
        return sum(1 for d in self.docs.values() if self._matches(d, flt))


@pytest.fixture(params=["memory", "mongo"])
def frontier(request):
    if request.param == "memory":
        return MemoryFrontier()
    return MongoFrontier(FakeCollection())


def _drain(frontier):
    out = []
    while True:
        t = frontier.dequeue()
        if t is None:
            return out
        out.append(t)
        frontier.complete(t)


def test_duplicate_key_enqueued_once(frontier):
    task = CrawlTask(url=detail_url(1), label=TaskLabel.DETAIL)
    assert frontier.enqueue(task) is True
    assert frontier.enqueue(CrawlTask(url=detail_url(1), label=TaskLabel.DETAIL)) is False

    assert _drain(frontier) == [task]
    # still deduplicated after the task has been processed
    assert frontier.enqueue(task) is False
    assert frontier.dequeue() is None


def test_force_reprocess_bypasses_dedup(frontier):
    task = CrawlTask(url=SEARCH_URL)
    frontier.enqueue(task)
    retry = task.retry()
    assert retry.unique_key == task.unique_key
    assert frontier.enqueue(retry, force_reprocess=True) is True
    assert frontier.enqueue(retry.retry(), force_reprocess=True) is True

    assert [t.retry_count for t in _drain(frontier)] == [0, 1, 2]


def test_fifo_order_and_len(frontier):
    urls = [detail_url(i) for i in range(5)]
    for u in urls:
        frontier.enqueue(CrawlTask(url=u, label=TaskLabel.DETAIL))
    assert len(frontier) == 5
    assert [t.url for t in _drain(frontier)] == urls
    assert len(frontier) == 0


def test_mongo_task_round_trip():
    col = FakeCollection()
    frontier = MongoFrontier(col)
    task = CrawlTask(url=SEARCH_URL, level=3, retry_count=1)
    frontier.enqueue(task)

    got = frontier.dequeue()
    assert got == task
    assert col.docs[SEARCH_URL]["status"] == IN_PROGRESS
    frontier.complete(got)
    assert col.docs[SEARCH_URL]["status"] == DONE


def test_mongo_recover_requeues_claimed_tasks():
    col = FakeCollection()
    first = MongoFrontier(col)
    first.enqueue(CrawlTask(url=SEARCH_URL))
    assert first.dequeue() is not None
    # process dies here without completing

    resumed = MongoFrontier(col)
    assert col.docs[SEARCH_URL]["status"] == PENDING
    assert resumed.dequeue().url == SEARCH_URL
