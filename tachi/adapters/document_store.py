"""\
An abstract document store with Mongo-flavoured query and update semantics.

Collections keep documents under a primary key. When a collection declares a
unique key, the primary key is derived from it, so uniqueness is enforced by
the store itself rather than by callers.
"""

from __future__ import annotations

import contextlib
import copy
import json
import uuid
from collections.abc import AsyncIterator
from collections.abc import Iterable
from collections.abc import Mapping
from collections.abc import Sequence
from dataclasses import dataclass
from dataclasses import field
from typing import Any

Document = dict[str, Any]
Query = Mapping[str, Any]
Update = Mapping[str, Any]

_MISSING = object()

# collection name -> paths forming its unique key
UNIQUE_KEYS: dict[str, tuple[str, ...]] = {
    "scores": ("scoreID",),
    "personal-bests": ("userID", "chartID"),
    "charts": ("chartID",),
    "songs": ("game", "id"),
    "game-stats": ("userID", "game", "playtype"),
    "game-settings": ("userID", "game", "playtype"),
    "orphan-charts": ("orphanID",),
    "orphan-scores": ("orphanID",),
    "imports": ("importID",),
    "import-trackers": ("importID",),
    "iidx-bpi-data": ("chartID",),
    "api-tokens": ("tokenHash",),
}

COLLECTIONS: tuple[str, ...] = (*UNIQUE_KEYS, "class-achievements")


class DuplicateKeyError(Exception):
    def __init__(self, collection: str, key: Any) -> None:
        super().__init__(f"Duplicate key {key!r} in collection {collection!r}.")
        self.collection = collection
        self.key = key


# query engine


def get_path(doc: Mapping[str, Any], path: str) -> Any:
    current: Any = doc
    for part in path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return _MISSING
        current = current[part]
    return current


def set_path(doc: dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    current = doc
    for part in parts[:-1]:
        nxt = current.get(part)
        if not isinstance(nxt, dict):
            nxt = {}
            current[part] = nxt
        current = nxt
    current[parts[-1]] = value


def unset_path(doc: dict[str, Any], path: str) -> None:
    parts = path.split(".")
    current: Any = doc
    for part in parts[:-1]:
        current = current.get(part) if isinstance(current, dict) else None
        if current is None:
            return
    if isinstance(current, dict):
        current.pop(parts[-1], None)


def _equals(value: Any, expected: Any) -> bool:
    if value is _MISSING:
        return expected is None
    if isinstance(value, list) and not isinstance(expected, list):
        return expected in value
    return bool(value == expected)


def _compare(value: Any, op: str, operand: Any) -> bool:
    if value is _MISSING or value is None or operand is None:
        return False
    try:
        if op == "$gt":
            return bool(value > operand)
        if op == "$gte":
            return bool(value >= operand)
        if op == "$lt":
            return bool(value < operand)
        return bool(value <= operand)
    except TypeError:
        return False


def _is_operator_dict(value: Any) -> bool:
    return isinstance(value, Mapping) and bool(value) and all(
        isinstance(k, str) and k.startswith("$") for k in value
    )


def _matches_condition(value: Any, condition: Any) -> bool:
    if not _is_operator_dict(condition):
        return _equals(value, condition)

    for op, operand in condition.items():
        if op == "$ne":
            if _equals(value, operand):
                return False
        elif op == "$in":
            if not any(_equals(value, o) for o in operand):
                return False
        elif op == "$nin":
            if any(_equals(value, o) for o in operand):
                return False
        elif op == "$exists":
            if (value is not _MISSING) != bool(operand):
                return False
        elif op in ("$gt", "$gte", "$lt", "$lte"):
            if not _compare(value, op, operand):
                return False
        else:
            raise ValueError(f"Unsupported query operator {op}.")

    return True


def matches(doc: Mapping[str, Any], query: Query) -> bool:
    for key, condition in query.items():
        if key == "$or":
            if not any(matches(doc, q) for q in condition):
                return False
        elif key == "$and":
            if not all(matches(doc, q) for q in condition):
                return False
        elif not _matches_condition(get_path(doc, key), condition):
            return False

    return True


def seed_from_query(query: Query) -> Document:
    """Build the base of an upserted document from the query's equality terms."""
    doc: Document = {}
    for key, condition in query.items():
        if key.startswith("$") or _is_operator_dict(condition):
            continue
        set_path(doc, key, copy.deepcopy(condition))
    return doc


def apply_update(doc: Document, update: Update, is_insert: bool = False) -> Document:
    new = copy.deepcopy(doc)

    if not any(k.startswith("$") for k in update):
        return copy.deepcopy(dict(update))

    for op, fields in update.items():
        if op == "$set":
            for path, value in fields.items():
                set_path(new, path, copy.deepcopy(value))
        elif op == "$setOnInsert":
            if is_insert:
                for path, value in fields.items():
                    set_path(new, path, copy.deepcopy(value))
        elif op == "$unset":
            for path in fields:
                unset_path(new, path)
        elif op == "$inc":
            for path, amount in fields.items():
                current = get_path(new, path)
                set_path(new, path, (0 if current is _MISSING else current) + amount)
        elif op == "$addToSet":
            for path, value in fields.items():
                current = get_path(new, path)
                items = [] if current is _MISSING else list(current)
                values = value["$each"] if _is_operator_dict(value) else [value]
                for v in values:
                    if v not in items:
                        items.append(copy.deepcopy(v))
                set_path(new, path, items)
        else:
            raise ValueError(f"Unsupported update operator {op}.")

    return new


def sort_documents(docs: list[Document], sort: Sequence[tuple[str, int]]) -> list[Document]:
    ordered = list(docs)
    for path, direction in reversed(sort):

        def key(doc: Document, path: str = path) -> tuple[bool, Any]:
            value = get_path(doc, path)
            present = value is not _MISSING and value is not None
            return (present, value if present else 0)

        ordered.sort(key=key, reverse=direction < 0)
    return ordered


# bulk operations


@dataclass
class InsertOne:
    document: Document


@dataclass
class UpdateOne:
    filter: Query
    update: Update
    upsert: bool = False


@dataclass
class DeleteMany:
    filter: Query


@dataclass
class BulkWriteResult:
    inserted_count: int = 0
    matched_count: int = 0
    modified_count: int = 0
    upserted_count: int = 0
    deleted_count: int = 0
    errors: list[tuple[int, Exception]] = field(default_factory=list)


@dataclass
class UpdateResult:
    matched_count: int
    modified_count: int
    upserted: bool = False


# collections

# attempts at a compare-and-swap before giving up on a hot document
WRITE_RETRIES = 100


class WriteConflictError(Exception):
    def __init__(self, collection: str) -> None:
        super().__init__(f"Gave up writing to {collection!r} after {WRITE_RETRIES} conflicting attempts.")
        self.collection = collection


class Collection:
    """\
    Base collection. Subclasses provide primary-key level storage primitives;
    every query and update is evaluated here, so all stores share one set of
    semantics.

    Every stored document carries a version. Writes to an existing document
    are compare-and-swaps against the version that was read, retried on
    conflict, so a read-modify-write never needs a lock or a transaction.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self.unique_key = UNIQUE_KEYS.get(name)

    # storage primitives

    async def _scan(self, query: Query) -> list[tuple[str, int, Document]]:
        """Candidates for `query`. May return more than matches, never fewer."""
        raise NotImplementedError

    async def _get(self, pk: str) -> tuple[int, Document] | None:
        raise NotImplementedError

    async def _create(self, pk: str, doc: Document) -> bool:
        """Store `doc` under `pk` unless `pk` is taken."""
        raise NotImplementedError

    async def _replace(self, pk: str, version: int, doc: Document) -> bool:
        """Overwrite `pk` if it is still at `version`."""
        raise NotImplementedError

    async def _remove(self, pk: str, version: int | None = None) -> bool:
        """Remove `pk`, only if still at `version` when one is given."""
        raise NotImplementedError

    @contextlib.asynccontextmanager
    async def _atomic(self) -> AsyncIterator[None]:
        yield

    # helpers

    def primary_key(self, doc: Mapping[str, Any]) -> str:
        if self.unique_key is None:
            return uuid.uuid4().hex

        values = []
        for path in self.unique_key:
            value = get_path(doc, path)
            values.append(None if value is _MISSING else value)
        return json.dumps(values, sort_keys=True, default=str)

    async def _matching(self, query: Query) -> list[tuple[str, int, Document]]:
        return [(pk, version, doc) for pk, version, doc in await self._scan(query) if matches(doc, query)]

    async def _insert(self, doc: Document) -> None:
        pk = self.primary_key(doc)
        if not await self._create(pk, doc):
            raise DuplicateKeyError(self.name, pk)

    async def _swap(self, pk: str, version: int, new: Document) -> bool:
        """Replace the document at `pk`/`version` with `new`, which may have a new key."""
        new_pk = pk if self.unique_key is None else self.primary_key(new)

        if new_pk == pk:
            return await self._replace(pk, version, new)

        if not await self._create(new_pk, new):
            raise DuplicateKeyError(self.name, new_pk)

        if not await self._remove(pk, version):
            # the old document moved under us, undo and let the caller retry
            await self._remove(new_pk)
            return False

        return True

    async def _update_first(
        self,
        query: Query,
        update: Update,
        upsert: bool,
    ) -> tuple[Document | None, Document | None]:
        """Update the first match, returning (old, new). Both None if nothing was written."""
        for _ in range(WRITE_RETRIES):
            found = await self._matching(query)

            if found:
                pk, version, doc = found[0]
                new = apply_update(doc, update)
                if await self._swap(pk, version, new):
                    return doc, new
                continue

            if not upsert:
                return None, None

            new = apply_update(seed_from_query(query), update, is_insert=True)
            pk = self.primary_key(new)
            if await self._create(pk, new):
                return None, new

            # lost an upsert race; retry as an update if the winner matches
            existing = await self._get(pk)
            if existing is not None and not matches(existing[1], query):
                raise DuplicateKeyError(self.name, pk)

        raise WriteConflictError(self.name)

    # public api

    async def find_one(self, query: Query | None = None) -> Document | None:
        for _, _, doc in await self._matching(query or {}):
            return doc
        return None

    async def find(
        self,
        query: Query | None = None,
        sort: Sequence[tuple[str, int]] | None = None,
        limit: int | None = None,
    ) -> list[Document]:
        docs = [doc for _, _, doc in await self._matching(query or {})]
        if sort:
            docs = sort_documents(docs, sort)
        if limit is not None:
            docs = docs[:limit]
        return docs

    async def count(self, query: Query | None = None) -> int:
        return len(await self._matching(query or {}))

    async def insert_one(self, doc: Document) -> None:
        await self._insert(copy.deepcopy(doc))

    async def insert_many(self, docs: Iterable[Document]) -> None:
        async with self._atomic():
            for doc in docs:
                await self._insert(copy.deepcopy(doc))

    async def update_one(
        self,
        query: Query,
        update: Update,
        upsert: bool = False,
    ) -> UpdateResult:
        old, new = await self._update_first(query, update, upsert)

        if new is None:
            return UpdateResult(0, 0)
        if old is None:
            return UpdateResult(0, 0, upserted=True)
        return UpdateResult(1, int(new != old))

    async def update_many(self, query: Query, update: Update) -> UpdateResult:
        matched = modified = 0

        for pk, version, doc in await self._matching(query):
            for _ in range(WRITE_RETRIES):
                new = apply_update(doc, update)
                if await self._swap(pk, version, new):
                    matched += 1
                    modified += int(new != doc)
                    break

                current = await self._get(pk)
                if current is None or not matches(current[1], query):
                    break
                version, doc = current
            else:
                raise WriteConflictError(self.name)

        return UpdateResult(matched, modified)

    async def find_one_and_update(
        self,
        query: Query,
        update: Update,
        upsert: bool = False,
        return_new: bool = True,
    ) -> Document | None:
        """Atomically update the first matching document and return it."""
        old, new = await self._update_first(query, update, upsert)
        return new if return_new else old

    async def delete_one(self, query: Query) -> int:
        for pk, version, _ in await self._matching(query):
            if await self._remove(pk, version):
                return 1
        return 0

    async def delete_many(self, query: Query) -> int:
        deleted = 0
        for pk, version, _ in await self._matching(query):
            deleted += int(await self._remove(pk, version))
        return deleted

    async def bulk_write(
        self,
        operations: Sequence[InsertOne | UpdateOne | DeleteMany],
        ordered: bool = True,
    ) -> BulkWriteResult:
        """\
        Apply a batch of writes. With `ordered=False` a failing operation is
        recorded in `errors` and the remaining operations still run.
        """
        result = BulkWriteResult()

        for idx, op in enumerate(operations):
            try:
                if isinstance(op, InsertOne):
                    await self.insert_one(op.document)
                    result.inserted_count += 1
                elif isinstance(op, UpdateOne):
                    res = await self.update_one(op.filter, op.update, upsert=op.upsert)
                    result.matched_count += res.matched_count
                    result.modified_count += res.modified_count
                    result.upserted_count += int(res.upserted)
                else:
                    result.deleted_count += await self.delete_many(op.filter)
            except Exception as exc:
                result.errors.append((idx, exc))
                if ordered:
                    break

        return result


class MemoryCollection(Collection):
    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.documents: dict[str, tuple[int, Document]] = {}

    async def _scan(self, query: Query) -> list[tuple[str, int, Document]]:
        return [(pk, version, copy.deepcopy(doc)) for pk, (version, doc) in self.documents.items()]

    async def _get(self, pk: str) -> tuple[int, Document] | None:
        if pk not in self.documents:
            return None
        version, doc = self.documents[pk]
        return version, copy.deepcopy(doc)

    async def _create(self, pk: str, doc: Document) -> bool:
        if pk in self.documents:
            return False
        self.documents[pk] = (0, copy.deepcopy(doc))
        return True

    async def _replace(self, pk: str, version: int, doc: Document) -> bool:
        if pk not in self.documents or self.documents[pk][0] != version:
            return False
        self.documents[pk] = (version + 1, copy.deepcopy(doc))
        return True

    async def _remove(self, pk: str, version: int | None = None) -> bool:
        if pk not in self.documents:
            return False
        if version is not None and self.documents[pk][0] != version:
            return False
        del self.documents[pk]
        return True


class DocumentStore:
    """A set of named collections, accessed with `store["name"]`."""

    def __init__(self) -> None:
        self.collections: dict[str, Collection] = {}

    def create_collection(self, name: str) -> Collection:
        raise NotImplementedError

    def __getitem__(self, name: str) -> Collection:
        if name not in self.collections:
            self.collections[name] = self.create_collection(name)
        return self.collections[name]

    async def connect(self) -> None:
        pass

    async def disconnect(self) -> None:
        pass


class MemoryDocumentStore(DocumentStore):
    """Process-local store. Operations never yield mid-write, so each one is atomic."""

    def create_collection(self, name: str) -> Collection:
        return MemoryCollection(name)
