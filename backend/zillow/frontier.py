import logging
from collections import deque
from datetime import datetime, timezone
from typing import Optional, Protocol

from bson import ObjectId
from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from backend.py_models.task import CrawlTask

log = logging.getLogger("zillow")

PENDING = "pending"
IN_PROGRESS = "in_progress"
DONE = "done"


class Frontier(Protocol):
    def enqueue(self, task: CrawlTask, force_reprocess: bool = False) -> bool: ...

    def dequeue(self) -> Optional[CrawlTask]: ...

    def complete(self, task: CrawlTask) -> None: ...

    def __len__(self) -> int: ...


class MemoryFrontier:
    """
    In-process frontier. A unique key is accepted once for the lifetime of the
    object; `force_reprocess` queues the task again regardless.
    """

    def __init__(self):
        self._seen: set[str] = set()
        self._pending: deque[CrawlTask] = deque()
        self.in_progress = 0

    def enqueue(self, task: CrawlTask, force_reprocess: bool = False) -> bool:
        if task.unique_key in self._seen and not force_reprocess:
            return False
        self._seen.add(task.unique_key)
        self._pending.append(task)
        return True

    def dequeue(self) -> Optional[CrawlTask]:
        if not self._pending:
            return None
        self.in_progress += 1
        return self._pending.popleft()

    def complete(self, task: CrawlTask) -> None:
        self.in_progress = max(0, self.in_progress - 1)

    def __len__(self) -> int:
        return len(self._pending)


class MongoFrontier:
    """
    Frontier persisted in a MongoDB collection so an interrupted run can resume.

    Documents use the unique key as `_id`, which makes the dedup check the
    insert itself. Forced re-queues get a fresh ObjectId instead. A dequeue
    claims one pending document atomically; documents still claimed when a run
    died are put back by `recover()`.
    """

    def __init__(self, collection, recover: bool = True):
        self.col = collection
        self.col.create_index([("status", ASCENDING), ("created_at", ASCENDING)])
        self._claimed: dict[CrawlTask, object] = {}
        if recover:
            self.recover()

    def recover(self) -> int:
        res = self.col.update_many({"status": IN_PROGRESS}, {"$set": {"status": PENDING}})
        n = getattr(res, "modified_count", 0)
        if n:
            log.info("FRONTIER RECOVER | requeued=%d", n)
        return n

    def enqueue(self, task: CrawlTask, force_reprocess: bool = False) -> bool:
        doc = {
            "_id": ObjectId() if force_reprocess else task.unique_key,
            "unique_key": task.unique_key,
            "forced": force_reprocess,
            "task": task.model_dump(mode="json"),
            "status": PENDING,
            "created_at": datetime.now(timezone.utc),
        }
        try:
            self.col.insert_one(doc)
        except DuplicateKeyError:
            return False
        return True

    def dequeue(self) -> Optional[CrawlTask]:
        doc = self.col.find_one_and_update(
            {"status": PENDING},
            {"$set": {"status": IN_PROGRESS, "claimed_at": datetime.now(timezone.utc)}},
            sort=[("created_at", ASCENDING)],
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            return None
        task = CrawlTask.model_validate(doc["task"])
        self._claimed[task] = doc["_id"]
        return task

    def complete(self, task: CrawlTask) -> None:
        _id = self._claimed.pop(task, None)
        if _id is None:
            return
        self.col.update_one({"_id": _id}, {"$set": {"status": DONE}})

    def __len__(self) -> int:
        return self.col.count_documents({"status": PENDING})


def open_mongo_frontier(client, db: str = "zillow", collection: str = "frontier") -> MongoFrontier:
    return MongoFrontier(client.get_default_database(db)[collection])
