"""Per-project vector tables over an embedded LanceDB database.

Each project owns two tables, ``studies_<project>`` and ``chunks_<project>``,
whose names are derived purely from the project id so any component (or
external tooling) can resolve them without a lookup table. Tables are created
lazily on first write. LanceDB has no native update, so upsert is a
delete-by-id followed by an insert.
"""

import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import lancedb
import pyarrow as pa
from loguru import logger

from slr_index.exceptions import VectorStoreError
from slr_index.models import ChunkVectorRecord, StudyVectorRecord, VectorKind

DEFAULT_DIMENSIONS = 1024
STUDIES_PREFIX = "studies_"
CHUNKS_PREFIX = "chunks_"

_UNSAFE_TABLE_CHARS = re.compile(r"[^A-Za-z0-9_]")

VectorRecord = StudyVectorRecord | ChunkVectorRecord


def table_name(prefix: str, project_id: str) -> str:
    """Derive a table name from a prefix and project id.

    Example:
        >>> table_name("studies_", "3f2a-9c")
        'studies_3f2a_9c'
    """
    return f"{prefix}{_UNSAFE_TABLE_CHARS.sub('_', project_id)}"


def _studies_schema(dimensions: int) -> pa.Schema:
    return pa.schema(
        [
            pa.field("id", pa.string()),
            pa.field("project_id", pa.string()),
            pa.field("vector", pa.list_(pa.float32(), dimensions)),
            pa.field("title", pa.string()),
            pa.field("paper_key", pa.string()),
            pa.field("status", pa.string()),
            pa.field("year", pa.int32()),
            pa.field("authors", pa.string(), nullable=True),
            pa.field("abstract", pa.string(), nullable=True),
            pa.field("embedded_text", pa.string()),
        ]
    )


def _chunks_schema(dimensions: int) -> pa.Schema:
    return pa.schema(
        [
            pa.field("id", pa.string()),
            pa.field("document_id", pa.string()),
            pa.field("study_id", pa.string()),
            pa.field("project_id", pa.string()),
            pa.field("chunk_index", pa.int32()),
            pa.field("vector", pa.list_(pa.float32(), dimensions)),
            pa.field("content_preview", pa.string()),
        ]
    )


def quote_literal(value: str | int) -> str:
    """Render a filter value as a SQL literal, escaping single quotes."""
    if isinstance(value, bool):
        raise ValueError("Boolean filter values are not supported")
    if isinstance(value, int):
        return str(value)
    return "'" + str(value).replace("'", "''") + "'"


class VectorStore(ABC):
    """Abstract interface the indexing, pipeline and search services write through."""

    @abstractmethod
    async def upsert(self, project_id: str, kind: VectorKind, record: VectorRecord) -> None:
        """Replace the row with ``record.id`` (delete-then-insert).

        Raises:
            VectorStoreError: If the insert fails
        """
        ...

    @abstractmethod
    async def delete_by_id(self, project_id: str, kind: VectorKind, record_id: str) -> None:
        """Delete a row by id; missing tables or rows are ignored."""
        ...

    @abstractmethod
    async def delete_by_field(
        self, project_id: str, kind: VectorKind, field: str, value: str | int
    ) -> None:
        """Delete every row whose ``field`` equals ``value``; missing tables are ignored."""
        ...

    @abstractmethod
    async def vector_search(
        self, project_id: str, kind: VectorKind, query_vector: list[float], limit: int = 10
    ) -> list[dict[str, Any]]:
        """Return rows ranked by ascending distance (empty if no table or rows)."""
        ...

    @abstractmethod
    async def count_rows(self, project_id: str, kind: VectorKind) -> int:
        """Count rows in a project's table (0 if it does not exist)."""
        ...


class VectorStoreHandle(VectorStore):
    """Owned connection to the local LanceDB database.

    Created once at process start and passed to the services that need it.

    Example:
        >>> with VectorStoreHandle("data/lancedb") as store:
        ...     await store.count_rows("project-1", VectorKind.STUDIES)
    """

    def __init__(
        self,
        db_path: Path | str,
        dimensions: int = DEFAULT_DIMENSIONS,
        studies_prefix: str = STUDIES_PREFIX,
        chunks_prefix: str = CHUNKS_PREFIX,
    ):
        """Initialize the handle (no connection is made until ``open``).

        Args:
            db_path: Directory holding the LanceDB database
            dimensions: Vector dimensionality of both tables
            studies_prefix: Table name prefix for study vectors
            chunks_prefix: Table name prefix for chunk vectors
        """
        self.db_path = Path(db_path)
        self.dimensions = dimensions
        self.prefixes = {VectorKind.STUDIES: studies_prefix, VectorKind.CHUNKS: chunks_prefix}
        self._db: Any = None
        self._tables: dict[str, Any] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> "VectorStoreHandle":
        """Connect to LanceDB, creating the database directory if needed."""
        if self._db is None:
            self.db_path.mkdir(parents=True, exist_ok=True)
            logger.info(f"Connecting to LanceDB at: {self.db_path}")
            self._db = lancedb.connect(str(self.db_path))
        return self

    def close(self) -> None:
        """Drop the connection and cached table handles."""
        self._tables.clear()
        self._db = None
        logger.debug("Vector store closed")

    def __enter__(self) -> "VectorStoreHandle":
        return self.open()

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    @property
    def connection(self) -> Any:
        """The underlying LanceDB connection.

        Raises:
            VectorStoreError: If the handle has not been opened
        """
        if self._db is None:
            raise VectorStoreError("Vector store is not open; call open() first")
        return self._db

    # ------------------------------------------------------------------
    # Table resolution
    # ------------------------------------------------------------------

    def table_name(self, project_id: str, kind: VectorKind) -> str:
        return table_name(self.prefixes[VectorKind(kind)], project_id)

    def schema(self, kind: VectorKind) -> pa.Schema:
        if VectorKind(kind) is VectorKind.STUDIES:
            return _studies_schema(self.dimensions)
        return _chunks_schema(self.dimensions)

    def table_names(self) -> list[str]:
        """List every table in the database."""
        names: list[str] = []
        page_token = None
        while True:
            response = self.connection.list_tables(page_token=page_token)
            names.extend(response.tables)
            page_token = response.page_token
            if not page_token:
                return sorted(names)

    def open_table_by_name(self, name: str) -> Any | None:
        """Open an existing table by name, or return None if it does not exist."""
        if name in self._tables:
            return self._tables[name]
        try:
            table = self.connection.open_table(name)
        except (ValueError, FileNotFoundError) as e:
            logger.debug(f"Vector table {name!r} not available: {e}")
            return None
        self._tables[name] = table
        return table

    def _existing_table(self, project_id: str, kind: VectorKind) -> Any | None:
        return self.open_table_by_name(self.table_name(project_id, kind))

    def _table_for_write(self, project_id: str, kind: VectorKind) -> Any:
        """Open the project's table, creating it with the fixed schema if missing."""
        name = self.table_name(project_id, kind)
        table = self.open_table_by_name(name)
        if table is not None:
            return table
        try:
            table = self.connection.create_table(name, schema=self.schema(kind), exist_ok=True)
        except Exception as e:
            raise VectorStoreError(f"Failed to create vector table {name!r}: {e}") from e
        logger.info(f"Created vector table {name!r}")
        self._tables[name] = table
        return table

    def _predicate(self, kind: VectorKind, field: str, value: str | int) -> str:
        """Build an equality filter, allowing only columns of the table schema."""
        if field not in self.schema(kind).names or field == "vector":
            raise ValueError(f"Unknown filter column {field!r} for {VectorKind(kind).value} table")
        return f"{field} = {quote_literal(value)}"

    # ------------------------------------------------------------------
    # Data operations
    # ------------------------------------------------------------------

    async def upsert(self, project_id: str, kind: VectorKind, record: VectorRecord) -> None:
        """Replace the row with ``record.id``: best-effort delete, then insert.

        Args:
            project_id: Owning project
            kind: Target table kind (must match the record type)
            record: Study or chunk vector row

        Raises:
            ValueError: If the record does not match ``kind``
            VectorStoreError: If the insert fails
        """
        expected = StudyVectorRecord if VectorKind(kind) is VectorKind.STUDIES else ChunkVectorRecord
        if not isinstance(record, expected):
            raise ValueError(f"{type(record).__name__} cannot be stored in a {kind} table")
        if len(record.vector) != self.dimensions:
            raise ValueError(
                f"Expected {self.dimensions} dimensions, got {len(record.vector)} for {record.id}"
            )

        table = self._table_for_write(project_id, kind)
        try:
            table.delete(self._predicate(kind, "id", record.id))
        except Exception as e:
            # Row may not have existed
            logger.debug(f"Pre-insert delete of {record.id} failed (non-fatal): {e}")

        try:
            table.add([record.model_dump()])
        except Exception as e:
            raise VectorStoreError(
                f"Failed to insert {record.id} into {self.table_name(project_id, kind)}: {e}",
                {"project_id": project_id, "id": record.id},
            ) from e

    async def delete_by_id(self, project_id: str, kind: VectorKind, record_id: str) -> None:
        await self.delete_by_field(project_id, kind, "id", record_id)

    async def delete_by_field(
        self, project_id: str, kind: VectorKind, field: str, value: str | int
    ) -> None:
        predicate = self._predicate(kind, field, value)
        table = self._existing_table(project_id, kind)
        if table is None:
            return
        try:
            table.delete(predicate)
        except Exception as e:
            logger.debug(f"Delete where {predicate} failed (non-fatal): {e}")

    async def vector_search(
        self, project_id: str, kind: VectorKind, query_vector: list[float], limit: int = 10
    ) -> list[dict[str, Any]]:
        """Nearest-neighbour search ranked by ascending ``_distance``.

        Returns an empty list if the table does not exist or is empty.
        """
        table = self._existing_table(project_id, kind)
        if table is None or table.count_rows() == 0:
            return []

        rows = table.search(query_vector).limit(limit).to_list()
        logger.debug(
            f"Vector search on {self.table_name(project_id, kind)} returned {len(rows)} rows "
            f"(limit: {limit})"
        )
        return sorted(rows, key=lambda row: row.get("_distance", 0.0))

    async def count_rows(self, project_id: str, kind: VectorKind) -> int:
        table = self._existing_table(project_id, kind)
        if table is None:
            return 0
        return int(table.count_rows())

    async def get_row(
        self, project_id: str, kind: VectorKind, record_id: str
    ) -> dict[str, Any] | None:
        """Fetch a single row by id."""
        table = self._existing_table(project_id, kind)
        if table is None:
            return None
        rows = table.search().where(self._predicate(kind, "id", record_id)).limit(1).to_list()
        return rows[0] if rows else None
