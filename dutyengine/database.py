import copy
import re
from collections.abc import Callable, Iterator, MutableMapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

ACCOUNTS = "Accounts"
SCHEDULES = "Schedules"
ENDED_SCHEDULES = "EndedSchedules"
WEEKLY_SCHEDULES = "WeeklySchedules"
MONTHLY_SCHEDULES = "MonthlySchedules"
CHECKPOINTS = "Checkpoints"

MAX_BATCH_OPERATIONS = 500

_DOC_ID_PATTERN = re.compile(r"^[^/]{1,1500}$")


class StoreError(Exception):
    """Base class for read/write failures against the document store."""


class BatchTooLargeError(StoreError):
    pass


class DocumentNotFoundError(StoreError):
    pass


class InvalidDocumentIdError(StoreError):
    pass


class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


# Replaced with the store's own clock when the batch commits.
SERVER_TIMESTAMP = _ServerTimestamp()


def is_valid_document_id(doc_id: Any) -> bool:
    return (
        isinstance(doc_id, str)
        and doc_id not in {".", ".."}
        and bool(_DOC_ID_PATTERN.match(doc_id))
    )


def _same_value(stored: Any, wanted: Any) -> bool:
    # ints and floats compare by value; bools and strings only match themselves
    numbers = (int, float)
    if (
        isinstance(stored, numbers)
        and isinstance(wanted, numbers)
        and not isinstance(stored, bool)
        and not isinstance(wanted, bool)
    ):
        return stored == wanted
    return type(stored) is type(wanted) and stored == wanted


@dataclass(frozen=True)
class DocumentSnapshot:
    collection: str
    id: str
    data: dict[str, Any]


@dataclass
class _WriteOp:
    kind: str
    collection: str
    doc_id: str
    data: dict[str, Any] | None = None


@dataclass
class WriteBatch:
    """
    Collects set/update/delete operations and applies them all-or-nothing.
    """

    store: "InMemoryDocumentStore"
    _ops: list[_WriteOp] = field(default_factory=list)
    _committed: bool = False

    def __len__(self) -> int:
        return len(self._ops)

    def set(
        self, collection: str, doc_id: str, data: dict[str, Any]
    ) -> "WriteBatch":
        self._add(_WriteOp("set", collection, doc_id, dict(data)))
        return self

    def update(
        self, collection: str, doc_id: str, data: dict[str, Any]
    ) -> "WriteBatch":
        self._add(_WriteOp("update", collection, doc_id, dict(data)))
        return self

    def delete(self, collection: str, doc_id: str) -> "WriteBatch":
        self._add(_WriteOp("delete", collection, doc_id))
        return self

    def _add(self, op: _WriteOp) -> None:
        if self._committed:
            raise StoreError("batch has already been committed")
        if not is_valid_document_id(op.doc_id):
            raise InvalidDocumentIdError(
                f"invalid document id {op.doc_id!r} in {op.collection}"
            )
        self._ops.append(op)

    async def commit(self) -> None:
        if self._committed:
            raise StoreError("batch has already been committed")
        self._committed = True
        self.store.apply(self._ops)


class InMemoryDocumentStore:
    """
    In-memory document database with named collections and atomic write
    batches.

    Reads hand out deep copies so callers never mutate stored state directly.
    Queries iterate in insertion order, which callers must not rely on.
    """

    def __init__(
        self,
        *,
        now_fn: Callable[[], datetime] | None = None,
        max_batch_operations: int = MAX_BATCH_OPERATIONS,
    ) -> None:
        self._collections: MutableMapping[str, dict[str, dict[str, Any]]] = {}
        self._now_fn = now_fn or (lambda: datetime.now(UTC))
        self.max_batch_operations = max_batch_operations
        self.commit_count = 0

    # -- reads -------------------------------------------------------------

    async def get(
        self, collection: str, doc_id: str
    ) -> DocumentSnapshot | None:
        data = self._collections.get(collection, {}).get(doc_id)
        if data is None:
            return None
        return DocumentSnapshot(collection, doc_id, copy.deepcopy(data))

    async def get_all(self, collection: str) -> list[DocumentSnapshot]:
        return list(self._iter(collection))

    async def where(
        self, collection: str, *, limit: int | None = None, **equals: Any
    ) -> list[DocumentSnapshot]:
        matches = []
        for snap in self._iter(collection):
            if all(
                field_name in snap.data
                and _same_value(snap.data[field_name], value)
                for field_name, value in equals.items()
            ):
                matches.append(snap)
                if limit is not None and len(matches) >= limit:
                    break
        return matches

    def _iter(self, collection: str) -> Iterator[DocumentSnapshot]:
        for doc_id, data in self._collections.get(collection, {}).items():
            yield DocumentSnapshot(collection, doc_id, copy.deepcopy(data))

    # -- writes ------------------------------------------------------------

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    def put(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        """Seed a document directly, outside of any batch."""
        docs = self._collections.setdefault(collection, {})
        docs[doc_id] = copy.deepcopy(data)

    def apply(self, ops: list[_WriteOp]) -> None:
        if len(ops) > self.max_batch_operations:
            raise BatchTooLargeError(
                f"batch has {len(ops)} operations, "
                f"limit is {self.max_batch_operations}"
            )

        # stage against a copy so a failing op leaves nothing half-applied
        staged = {name: dict(docs) for name, docs in self._collections.items()}
        now = self._now_fn()
        for op in ops:
            docs = staged.setdefault(op.collection, {})
            if op.kind == "delete":
                docs.pop(op.doc_id, None)
                continue

            values = {
                key: now if value is SERVER_TIMESTAMP else copy.deepcopy(value)
                for key, value in (op.data or {}).items()
            }
            if op.kind == "set":
                docs[op.doc_id] = values
            elif op.kind == "update":
                if op.doc_id not in docs:
                    raise DocumentNotFoundError(
                        f"no document to update: {op.collection}/{op.doc_id}"
                    )
                docs[op.doc_id] = {**docs[op.doc_id], **values}
            else:
                raise StoreError(f"unknown write operation {op.kind!r}")

        self._collections = staged
        self.commit_count += 1

    # -- inspection helpers --------------------------------------------------

    def documents(self, collection: str) -> dict[str, dict[str, Any]]:
        return copy.deepcopy(self._collections.get(collection, {}))
