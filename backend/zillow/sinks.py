import json
import logging
from pathlib import Path
from typing import Protocol, Union

from pymongo import UpdateOne

from backend.py_models.property import ErrorRecord, PropertyRecord

log = logging.getLogger("zillow")

Record = Union[PropertyRecord, ErrorRecord]


class Sink(Protocol):
    def emit(self, record: Record) -> None: ...

    def close(self) -> None: ...


class MemorySink:
    def __init__(self):
        self.items: list[Record] = []

    @property
    def records(self) -> list[PropertyRecord]:
        return [r for r in self.items if isinstance(r, PropertyRecord)]

    @property
    def errors(self) -> list[ErrorRecord]:
        return [r for r in self.items if isinstance(r, ErrorRecord)]

    def emit(self, record: Record) -> None:
        self.items.append(record)

    def close(self) -> None:
        pass


class JsonlSink:
    """Appends one JSON object per record, flushed as it arrives."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._fh = self.path.open("a", encoding="utf-8")
        self.count = 0

    def emit(self, record: Record) -> None:
        self._fh.write(json.dumps(record.model_dump(mode="json"), ensure_ascii=False, default=str))
        self._fh.write("\n")
        self._fh.flush()
        self.count += 1

    def close(self) -> None:
        if not self._fh.closed:
            self._fh.close()


class MongoSink:
    """Upserts homes by zpid; error records are appended to a separate collection."""

    def __init__(self, properties_col, errors_col=None, batch_size: int = 50):
        self.properties_col = properties_col
        self.errors_col = errors_col
        self.batch_size = batch_size
        self._ops: list = []

    def emit(self, record: Record) -> None:
        doc = record.model_dump(mode="json")
        if isinstance(record, ErrorRecord):
            if self.errors_col is not None:
                self.errors_col.insert_one(doc)
            return
        self._ops.append(UpdateOne({"zpid": doc["zpid"]}, {"$set": doc}, upsert=True))
        if len(self._ops) >= self.batch_size:
            self.flush()

    def flush(self) -> None:
        if not self._ops:
            return
        ops, self._ops = self._ops, []
        res = self.properties_col.bulk_write(ops, ordered=False)
        log.info(
            "DB UPSERT BULK | ops=%d upserted=%d modified=%d matched=%d",
            len(ops),
            getattr(res, "upserted_count", 0),
            getattr(res, "modified_count", 0),
            getattr(res, "matched_count", 0),
        )

    def close(self) -> None:
        self.flush()


class FanoutSink:
    def __init__(self, *sinks: Sink):
        self.sinks = sinks

    def emit(self, record: Record) -> None:
        for s in self.sinks:
            s.emit(record)

    def close(self) -> None:
        for s in self.sinks:
            s.close()
