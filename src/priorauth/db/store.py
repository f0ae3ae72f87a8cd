"""
Patient Record Store

Key/value search over stored Patient rows. Each row holds the Patient
resource plus derived columns (identifiers, names, birth date, address parts,
contact points) computed from the normalized record at write time. Every
column holds a set of values so a row can carry several other identifiers.

Backends:
- InMemoryPatientStore: default, process local
- PostgresPatientStore: asyncpg pool, `patient` table
"""
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Iterable, Mapping
from dataclasses import dataclass
from typing import Literal
import asyncio
import copy
import itertools
import json

import structlog

logger = structlog.get_logger(__name__)

COLUMNS = (
    "id",
    "ppn",
    "dl",
    "other_identifier",
    "first_name",
    "last_name",
    "dob",
    "gender",
    "marital_status",
    "address",
    "city",
    "state",
    "email",
    "phone",
)

Columns = Mapping[str, Iterable[str]]
Conjunction = Literal["and", "or"]


class StoreError(RuntimeError):
    """Raised when the backing store cannot complete an operation."""


def _check_columns(columns: Iterable[str]) -> None:
    unknown = set(columns) - set(COLUMNS)
    if unknown:
        raise ValueError(f"Unknown patient columns: {sorted(unknown)}")


class PatientStore(ABC):
    """Abstract Patient store; search results stream newest first."""

    name: str = "abstract"

    @abstractmethod
    async def write(self, patient_id: str, resource: dict, columns: Columns) -> None:
        """Insert or replace the row for patient_id."""

    @abstractmethod
    async def read(self, patient_id: str) -> dict | None:
        """Get a Patient resource by id."""

    @abstractmethod
    async def delete(self, patient_id: str) -> bool:
        """Delete a row; returns whether it existed."""

    @abstractmethod
    def search(self, constraints: Columns, conjunction: Conjunction = "or") -> AsyncIterator[dict]:
        """Stream Patient resources whose columns intersect the constraints."""

    @abstractmethod
    def list_all(self) -> AsyncIterator[dict]:
        """Stream every stored Patient resource."""

    async def close(self) -> None:
        return None


@dataclass
class _Row:
    resource: dict
    columns: dict[str, frozenset[str]]
    sequence: int

    def matches(self, constraints: dict[str, frozenset[str]], conjunction: Conjunction) -> bool:
        hits = (bool(self.columns.get(col, frozenset()) & values) for col, values in constraints.items())
        return all(hits) if conjunction == "and" else any(hits)


class InMemoryPatientStore(PatientStore):
    """
    Process-local store.

    Rows are unique by id; writing an existing id replaces the row and makes it
    the most recent. Searches iterate over a snapshot taken when the search
    starts, so concurrent writes never leak into a running search.
    """

    name = "memory"

    def __init__(self):
        self._rows: dict[str, _Row] = {}
        self._sequence = itertools.count()
        self._lock = asyncio.Lock()

    async def write(self, patient_id: str, resource: dict, columns: Columns) -> None:
        _check_columns(columns)
        stored = copy.deepcopy(dict(resource))
        stored["id"] = patient_id
        row = _Row(
            resource=stored,
            columns={col: frozenset(values) for col, values in columns.items()},
            sequence=next(self._sequence),
        )
        async with self._lock:
            self._rows.pop(patient_id, None)
            self._rows[patient_id] = row
        logger.debug("Patient written", patient_id=patient_id, store=self.name)

    async def read(self, patient_id: str) -> dict | None:
        async with self._lock:
            row = self._rows.get(patient_id)
        return copy.deepcopy(row.resource) if row else None

    async def delete(self, patient_id: str) -> bool:
        async with self._lock:
            return self._rows.pop(patient_id, None) is not None

    async def search(self, constraints: Columns, conjunction: Conjunction = "or") -> AsyncIterator[dict]:
        _check_columns(constraints)
        wanted = {col: frozenset(values) for col, values in constraints.items() if values}
        if not wanted:
            return
        for row in await self._snapshot():
            if row.matches(wanted, conjunction):
                yield copy.deepcopy(row.resource)

    async def list_all(self) -> AsyncIterator[dict]:
        for row in await self._snapshot():
            yield copy.deepcopy(row.resource)

    async def _snapshot(self) -> list[_Row]:
        async with self._lock:
            rows = list(self._rows.values())
        return sorted(rows, key=lambda r: r.sequence, reverse=True)


CREATE_PATIENT_TABLE = """
CREATE TABLE IF NOT EXISTS patient (
    id TEXT PRIMARY KEY,
    resource JSONB NOT NULL,
    ppn TEXT[] NOT NULL DEFAULT '{}',
    dl TEXT[] NOT NULL DEFAULT '{}',
    other_identifier TEXT[] NOT NULL DEFAULT '{}',
    first_name TEXT[] NOT NULL DEFAULT '{}',
    last_name TEXT[] NOT NULL DEFAULT '{}',
    dob TEXT[] NOT NULL DEFAULT '{}',
    gender TEXT[] NOT NULL DEFAULT '{}',
    marital_status TEXT[] NOT NULL DEFAULT '{}',
    address TEXT[] NOT NULL DEFAULT '{}',
    city TEXT[] NOT NULL DEFAULT '{}',
    state TEXT[] NOT NULL DEFAULT '{}',
    email TEXT[] NOT NULL DEFAULT '{}',
    phone TEXT[] NOT NULL DEFAULT '{}',
    timestamp TIMESTAMPTZ NOT NULL DEFAULT now()
)
"""

# Columns stored as arrays; id is the primary key and queried as id = ANY($n)
_ARRAY_COLUMNS = tuple(c for c in COLUMNS if c != "id")


class PostgresPatientStore(PatientStore):
    """
    Patient store backed by PostgreSQL.

    Usage:
        pool = await asyncpg.create_pool(...)
        store = PostgresPatientStore(pool)
        await store.initialize()
        async for resource in store.search({"ppn": ["X1"]}):
            ...
    """

    name = "postgres"

    def __init__(self, pool):
        """
        Initialize with an asyncpg connection pool.

        Args:
            pool: asyncpg.Pool instance
        """
        self.pool = pool

    async def initialize(self) -> None:
        try:
            async with self.pool.acquire() as conn:
                await conn.execute(CREATE_PATIENT_TABLE)
        except Exception as e:
            raise StoreError(f"Failed to create patient table: {e}") from e

    async def write(self, patient_id: str, resource: dict, columns: Columns) -> None:
        _check_columns(columns)
        stored = dict(resource)
        stored["id"] = patient_id
        values = [sorted(columns.get(col, ())) for col in _ARRAY_COLUMNS]
        assignments = ", ".join(f"{col} = EXCLUDED.{col}" for col in _ARRAY_COLUMNS)
        placeholders = ", ".join(f"${i}" for i in range(3, len(_ARRAY_COLUMNS) + 3))
        query = f"""
            INSERT INTO patient (id, resource, {", ".join(_ARRAY_COLUMNS)})
            VALUES ($1, $2::jsonb, {placeholders})
            ON CONFLICT (id) DO UPDATE SET
                resource = EXCLUDED.resource, {assignments}, timestamp = now()
        """
        try:
            async with self.pool.acquire() as conn:
                await conn.execute(query, patient_id, json.dumps(stored), *values)
        except Exception as e:
            raise StoreError(f"Failed to write patient {patient_id}: {e}") from e

    async def read(self, patient_id: str) -> dict | None:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow("SELECT resource FROM patient WHERE id = $1", patient_id)
        except Exception as e:
            raise StoreError(f"Failed to read patient {patient_id}: {e}") from e
        return json.loads(row["resource"]) if row else None

    async def delete(self, patient_id: str) -> bool:
        try:
            async with self.pool.acquire() as conn:
                status = await conn.execute("DELETE FROM patient WHERE id = $1", patient_id)
        except Exception as e:
            raise StoreError(f"Failed to delete patient {patient_id}: {e}") from e
        return status.endswith(" 1")

    async def search(self, constraints: Columns, conjunction: Conjunction = "or") -> AsyncIterator[dict]:
        _check_columns(constraints)
        clauses = []
        args = []
        for col, values in constraints.items():
            values = sorted(values)
            if not values:
                continue
            args.append(values)
            if col == "id":
                clauses.append(f"id = ANY(${len(args)}::text[])")
            else:
                clauses.append(f"{col} && ${len(args)}::text[]")
        if not clauses:
            return
        joiner = " AND " if conjunction == "and" else " OR "
        query = f"SELECT resource FROM patient WHERE {joiner.join(clauses)} ORDER BY timestamp DESC"
        async for resource in self._stream(query, *args):
            yield resource

    async def list_all(self) -> AsyncIterator[dict]:
        async for resource in self._stream("SELECT resource FROM patient ORDER BY timestamp DESC"):
            yield resource

    async def _stream(self, query: str, *args) -> AsyncIterator[dict]:
        try:
            async with self.pool.acquire() as conn:
                # Cursors need a transaction; REPEATABLE READ pins one snapshot
                async with conn.transaction(isolation="repeatable_read", readonly=True):
                    async for row in conn.cursor(query, *args):
                        yield json.loads(row["resource"])
        except StoreError:
            raise
        except Exception as e:
            raise StoreError(f"Patient query failed: {e}") from e

    async def close(self) -> None:
        await self.pool.close()


async def create_store(settings) -> PatientStore:
    """Create the configured store backend."""
    if settings.store.backend == "postgres":
        import asyncpg

        try:
            pool = await asyncpg.create_pool(
                dsn=settings.store.connection_url,
                min_size=settings.store.min_pool_size,
                max_size=settings.store.max_pool_size,
            )
        except Exception as e:
            raise StoreError(f"PostgreSQL connection failed: {e}") from e
        store = PostgresPatientStore(pool)
        await store.initialize()
        logger.info("PostgreSQL patient store ready", host=settings.store.host)
        return store

    logger.info("In-memory patient store ready")
    return InMemoryPatientStore()
