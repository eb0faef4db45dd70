"""
Record Repository — typed collections kept as one encrypted document.

A repository stores its whole collection as a JSON array under a single
logical key of a ``SecureStore``. Every mutation is a full
read-modify-write cycle followed by one atomic ``put``; the cycle runs
under the store's per-key lock so writers sharing a store instance in
this process never lose each other's updates. Writers in other processes
(or on separate store instances) are not coordinated: the last ``put``
wins for the whole document.
"""
import uuid
import logging
from enum import Enum
from typing import Any, Callable, Generic, Optional, TypeVar
from datetime import datetime, timedelta, timezone
from collections.abc import Iterable

import orjson
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from .exceptions import InvalidRecord, NotFound, RecordNotFound, StorageError
from .vault.store import SecureStore

logger = logging.getLogger("securestore.records")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Record(BaseModel):
    """Base for anything stored in a RecordRepository."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class TaskStatus(str, Enum):
    Todo = "Todo"
    InProgress = "InProgress"
    Done = "Done"


class Task(Record):
    """A to-do item."""

    title: str
    description: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    status: TaskStatus = TaskStatus.Todo


R = TypeVar("R", bound=Record)

# Managed by the repository; callers never set them.
RESERVED_FIELDS = frozenset({"id", "created_at", "updated_at"})


def _invalid_fields(err: ValidationError) -> str:
    # pydantic messages echo input values; keep field names only
    fields = sorted({str(e["loc"][0]) for e in err.errors() if e["loc"]})
    return ", ".join(fields) or "<root>"


class RecordRepository(Generic[R]):
    """List/add/update/remove over a collection of ``model`` records.

    Args:
        store: Backing SecureStore.
        model: Record subclass held in the collection.
        key: Logical key of the collection document.
    """

    def __init__(self, store: SecureStore, model: type[R], key: str):
        self._store = store
        self._model = model
        self._key = key
        self._adapter = TypeAdapter(list[model])

    @property
    def key(self) -> str:
        return self._key

    # ------------------------------------------------------------------
    # Document (de)serialization
    # ------------------------------------------------------------------

    async def _load(self) -> list[R]:
        try:
            raw = await self._store.get(self._key)
        except NotFound:
            return []
        try:
            return self._adapter.validate_python(orjson.loads(raw))
        except (orjson.JSONDecodeError, ValidationError) as err:
            raise StorageError(
                f"invalid {self._model.__name__} collection under "
                f"{self._key!r}: {err.__class__.__name__}"
            ) from err

    async def _save(self, records: list[R]) -> None:
        payload = orjson.dumps(self._adapter.dump_python(records, mode="json"))
        await self._store.put(self._key, payload)

    async def _mutate(self, fn: Callable[[list[R]], R]) -> R:
        """Run ``fn`` on the loaded collection and save it, under the key lock."""
        async with self._store.lock(self._key):
            records = await self._load()
            result = fn(records)
            await self._save(records)
            return result

    def _check_fields(self, fields: dict[str, Any]) -> None:
        reserved = sorted(RESERVED_FIELDS.intersection(fields))
        if reserved:
            raise InvalidRecord(
                f"{self._model.__name__} field(s) {', '.join(reserved)} "
                "are managed by the repository"
            )
        unknown = sorted(set(fields) - set(self._model.model_fields))
        if unknown:
            raise InvalidRecord(
                f"{self._model.__name__} has no field(s) {', '.join(unknown)}"
            )

    def _build(self, data: dict[str, Any]) -> R:
        try:
            return self._model.model_validate(data)
        except ValidationError as err:
            raise InvalidRecord(
                f"{self._model.__name__} has invalid field(s) "
                f"{_invalid_fields(err)}"
            ) from None

    @staticmethod
    def _index_of(records: list[R], record_id: uuid.UUID) -> int:
        for idx, record in enumerate(records):
            if record.id == record_id:
                return idx
        raise RecordNotFound(record_id)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def list(self) -> list[R]:
        """Return the whole collection (empty if never written)."""
        return await self._load()

    async def get(self, record_id: uuid.UUID) -> R:
        records = await self._load()
        return records[self._index_of(records, record_id)]

    async def add(self, **fields: Any) -> R:
        """Create a record with a fresh id and timestamps and append it.

        Raises:
            InvalidRecord: If ``fields`` names a reserved or unknown
                field, or fails model validation. Nothing is written.
        """
        self._check_fields(fields)
        now = utcnow()
        record = self._build(
            {**fields, "id": uuid.uuid4(), "created_at": now, "updated_at": now}
        )

        def _append(records: list[R]) -> R:
            records.append(record)
            return record

        created = await self._mutate(_append)
        logger.debug("Created %s id=%s", self._model.__name__, created.id)
        return created

    async def update(self, record_id: uuid.UUID, **changes: Any) -> R:
        """Apply ``changes`` to a record and bump its ``updated_at``.

        ``id``, ``created_at`` and ``updated_at`` cannot be changed.

        Raises:
            RecordNotFound: If no record has ``record_id``.
            InvalidRecord: If ``changes`` names a reserved or unknown
                field, or the result fails model validation. Nothing is
                written.
        """
        self._check_fields(changes)

        def _apply(records: list[R]) -> R:
            idx = self._index_of(records, record_id)
            current = records[idx]
            updated_at = utcnow()
            if updated_at <= current.updated_at:
                updated_at = current.updated_at + timedelta(microseconds=1)
            data = current.model_dump()
            data.update(changes)
            data["updated_at"] = updated_at
            records[idx] = self._build(data)
            return records[idx]

        updated = await self._mutate(_apply)
        logger.debug("Updated %s id=%s", self._model.__name__, record_id)
        return updated

    async def remove(self, record_id: uuid.UUID) -> R:
        """Drop a record from the collection and return it.

        Raises:
            RecordNotFound: If no record has ``record_id``.
        """

        def _drop(records: list[R]) -> R:
            return records.pop(self._index_of(records, record_id))

        removed = await self._mutate(_drop)
        logger.debug("Removed %s id=%s", self._model.__name__, record_id)
        return removed


TASKS_KEY = "tasks"


class TaskRepository(RecordRepository[Task]):
    """Tasks kept encrypted under the ``tasks`` key."""

    def __init__(self, store: SecureStore, key: str = TASKS_KEY):
        super().__init__(store, Task, key)

    async def create(
        self,
        title: str,
        description: Optional[str] = None,
        tags: Iterable[str] = (),
    ) -> Task:
        if isinstance(tags, (str, bytes)):
            raise InvalidRecord(
                "tags must be an iterable of strings, not a single string"
            )
        return await self.add(
            title=title, description=description, tags=list(tags),
        )

    async def set_status(self, task_id: uuid.UUID, status: TaskStatus) -> Task:
        try:
            status = TaskStatus(status)
        except ValueError:
            raise InvalidRecord(f"unknown task status: {status!r}") from None
        return await self.update(task_id, status=status)
