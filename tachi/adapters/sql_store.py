from __future__ import annotations

import contextlib
import json
from collections.abc import AsyncIterator
from collections.abc import Mapping
from typing import Any

import databases

from tachi.adapters.document_store import COLLECTIONS
from tachi.adapters.document_store import Collection
from tachi.adapters.document_store import Document
from tachi.adapters.document_store import DocumentStore
from tachi.adapters.document_store import Query
from tachi.adapters.document_store import get_path

# collection name -> scalar paths copied into their own indexed columns so
# the common lookups filter in SQL. The unique key is always served by `pk`.
INDEXED_PATHS: dict[str, tuple[str, ...]] = {
    "scores": ("userID", "chartID", "game"),
    "personal-bests": ("userID", "chartID"),
    "charts": ("game", "songID", "data.hashSHA1", "data.inGameID"),
    "songs": ("game",),
    "game-stats": ("userID",),
    "game-settings": ("userID",),
    "class-achievements": ("userID",),
    "orphan-charts": ("game",),
    "orphan-scores": ("userID", "context.chartHash"),
    "imports": ("userID",),
    "import-trackers": ("userID",),
}


def table_name(collection: str) -> str:
    return collection.replace("-", "_")


def column_name(path: str) -> str:
    return "ix_" + path.replace(".", "_")


def _is_scalar(value: Any) -> bool:
    return isinstance(value, (str, int)) and not isinstance(value, bool)


def _column_value(value: Any) -> str | None:
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return json.dumps(value) if _is_scalar(value) else None


def _equality_values(condition: Any) -> list[Any] | None:
    """The scalar values a condition restricts a path to, if it does."""
    if _is_scalar(condition):
        return [condition]

    if isinstance(condition, Mapping) and isinstance(condition.get("$in"), list):
        values = condition["$in"]
        if values and all(_is_scalar(v) for v in values):
            return list(values)

    return None


class SQLCollection(Collection):
    """\
    A collection stored as an SQL table: the primary key, a version, the
    document serialized as JSON and one column per indexed path. Equality
    terms on the unique key or indexed paths become a WHERE clause, and
    the rest of the query is evaluated in python.
    """

    def __init__(self, name: str, database: databases.Database) -> None:
        super().__init__(name)
        self.database = database
        self.table = table_name(name)
        self.indexed_paths = INDEXED_PATHS.get(name, ())

    def _where(self, query: Query) -> tuple[str, dict[str, Any]]:
        clauses: list[str] = []
        values: dict[str, Any] = {}

        def restrict(column: str, options: list[Any]) -> None:
            names = []
            for value in options:
                names.append(f"v{len(values)}")
                values[names[-1]] = value
            clauses.append(f"{column} IN ({', '.join(':' + n for n in names)})")

        if self.unique_key is not None:
            if len(self.unique_key) == 1:
                options = _equality_values(query.get(self.unique_key[0]))
                if options is not None:
                    restrict("pk", [self.primary_key({self.unique_key[0]: v}) for v in options])
            elif all(_is_scalar(query.get(path)) for path in self.unique_key):
                restrict("pk", [self.primary_key({path: query[path] for path in self.unique_key})])

        for path in self.indexed_paths:
            options = _equality_values(query.get(path))
            if options is not None:
                restrict(column_name(path), [json.dumps(v) for v in options])

        if not clauses:
            return "", values

        return " WHERE " + " AND ".join(clauses), values

    def _row(self, pk: str, version: int, doc: Document) -> dict[str, Any]:
        row = {"pk": pk, "version": version, "body": json.dumps(doc)}
        for path in self.indexed_paths:
            row[column_name(path)] = _column_value(get_path(doc, path))
        return row

    async def _scan(self, query: Query) -> list[tuple[str, int, Document]]:
        where, values = self._where(query)
        rows = await self.database.fetch_all(
            f"SELECT pk, version, body FROM {self.table}{where}",
            values,
        )
        return [(row["pk"], row["version"], json.loads(row["body"])) for row in rows]

    async def _get(self, pk: str) -> tuple[int, Document] | None:
        row = await self.database.fetch_one(
            f"SELECT version, body FROM {self.table} WHERE pk = :pk",
            {"pk": pk},
        )
        if row is None:
            return None

        return row["version"], json.loads(row["body"])

    async def _create(self, pk: str, doc: Document) -> bool:
        row = self._row(pk, 0, doc)
        columns = ", ".join(row)
        params = ", ".join(f":{column}" for column in row)

        inserted = await self.database.fetch_one(
            f"INSERT INTO {self.table} ({columns}) VALUES ({params}) "
            "ON CONFLICT (pk) DO NOTHING RETURNING pk",
            row,
        )
        return inserted is not None

    async def _replace(self, pk: str, version: int, doc: Document) -> bool:
        row = self._row(pk, version + 1, doc)
        assignments = ", ".join(f"{column} = :{column}" for column in row if column != "pk")

        updated = await self.database.fetch_one(
            f"UPDATE {self.table} SET {assignments} "
            "WHERE pk = :pk AND version = :expected RETURNING pk",
            {**row, "expected": version},
        )
        return updated is not None

    async def _remove(self, pk: str, version: int | None = None) -> bool:
        if version is None:
            removed = await self.database.fetch_one(
                f"DELETE FROM {self.table} WHERE pk = :pk RETURNING pk",
                {"pk": pk},
            )
        else:
            removed = await self.database.fetch_one(
                f"DELETE FROM {self.table} WHERE pk = :pk AND version = :expected RETURNING pk",
                {"pk": pk, "expected": version},
            )
        return removed is not None

    @contextlib.asynccontextmanager
    async def _atomic(self) -> AsyncIterator[None]:
        async with self.database.transaction():
            yield


class SQLDocumentStore(DocumentStore):
    """\
    Document store over any `databases` backend whose SQL dialect supports
    `ON CONFLICT` and `RETURNING` (postgres, sqlite >= 3.35).
    """

    def __init__(self, database: databases.Database) -> None:
        super().__init__()
        self.database = database

    def create_collection(self, name: str) -> Collection:
        return SQLCollection(name, self.database)

    async def connect(self) -> None:
        if not self.database.is_connected:
            await self.database.connect()

        await self.create_tables()

    async def disconnect(self) -> None:
        if self.database.is_connected:
            await self.database.disconnect()

    async def create_tables(self, names: Any = COLLECTIONS) -> None:
        for name in names:
            table = table_name(name)
            indexed = [column_name(path) for path in INDEXED_PATHS.get(name, ())]

            await self.database.execute(
                f"CREATE TABLE IF NOT EXISTS {table} ("
                "pk VARCHAR(255) NOT NULL PRIMARY KEY, "
                "version INTEGER NOT NULL, "
                "body TEXT NOT NULL"
                + "".join(f", {column} VARCHAR(255)" for column in indexed)
                + ")",
            )

            for column in indexed:
                await self.database.execute(
                    f"CREATE INDEX IF NOT EXISTS {table}_{column} ON {table} ({column})",
                )
