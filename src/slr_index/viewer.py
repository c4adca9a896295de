"""Read-only browsing of the raw vector tables for diagnostics."""

from typing import Any

from loguru import logger

from slr_index.catalog import CatalogStore
from slr_index.index import VectorStoreHandle, quote_literal
from slr_index.models import VectorDbStats, VectorKind, VectorTableInfo, VectorTablePage

DEFAULT_PAGE_SIZE = 20
VECTOR_PREVIEW_VALUES = 4


def vector_preview(vector: list[float]) -> str:
    """Shorten a vector for display.

    Example:
        >>> vector_preview([0.1, 0.2, 0.3, 0.4, 0.5, 0.6])
        '[0.1000, 0.2000, 0.3000, 0.4000, ... +2 more]'
    """
    head = ", ".join(f"{float(v):.4f}" for v in vector[:VECTOR_PREVIEW_VALUES])
    remaining = len(vector) - VECTOR_PREVIEW_VALUES
    if remaining <= 0:
        return f"[{head}]"
    return f"[{head}, ... +{remaining} more]"


def _display_row(row: dict[str, Any]) -> dict[str, Any]:
    processed: dict[str, Any] = {}
    for key, value in row.items():
        if key == "vector" and value is not None:
            values = list(value)
            processed[key] = vector_preview(values)
            processed["_vector_length"] = len(values)
        else:
            processed[key] = value
    return processed


class VectorViewer:
    """Lists tables and rows of a ``VectorStoreHandle``; never writes."""

    def __init__(self, store: VectorStoreHandle, catalog: CatalogStore | None = None):
        self.store = store
        self.catalog = catalog

    def _kind_of(self, name: str) -> str:
        for kind, prefix in self.store.prefixes.items():
            if name.startswith(prefix):
                return kind.value
        return "unknown"

    def list_tables(self) -> list[VectorTableInfo]:
        """Every table with its row count, sorted by name."""
        tables = []
        for name in self.store.table_names():
            table = self.store.open_table_by_name(name)
            if table is None:
                tables.append(VectorTableInfo(name=name, row_count=0, kind="unknown"))
                continue
            tables.append(
                VectorTableInfo(name=name, row_count=table.count_rows(), kind=self._kind_of(name))
            )
        return tables

    def table_rows(
        self, name: str, page: int = 1, limit: int = DEFAULT_PAGE_SIZE
    ) -> VectorTablePage:
        """One page of rows with vectors replaced by a short preview.

        Raises:
            ValueError: If page or limit is not positive
        """
        if page < 1 or limit < 1:
            raise ValueError(f"page and limit must be positive, got page={page}, limit={limit}")
        table = self.store.open_table_by_name(name)
        if table is None:
            return VectorTablePage(rows=[], total=0, columns=[])

        offset = (page - 1) * limit
        rows = table.head(offset + limit).slice(offset).to_pylist()
        display = [_display_row(row) for row in rows]
        logger.debug(f"Read {len(display)} rows from {name!r} (page {page})")
        return VectorTablePage(
            rows=display,
            total=table.count_rows(),
            columns=list(rows[0].keys()) if rows else [],
        )

    def row_by_id(self, name: str, record_id: str) -> dict[str, Any] | None:
        """Fetch a full row, vector included."""
        table = self.store.open_table_by_name(name)
        if table is None:
            return None
        rows = table.search().where(f"id = {quote_literal(record_id)}").limit(1).to_list()
        return rows[0] if rows else None

    def stats(self) -> VectorDbStats:
        names = self.store.table_names()
        total = 0
        for name in names:
            table = self.store.open_table_by_name(name)
            if table is not None:
                total += table.count_rows()
        return VectorDbStats(
            total_tables=len(names), total_vectors=total, db_path=str(self.store.db_path.resolve())
        )

    def table_for(self, kind: VectorKind, project_id: str) -> str:
        return self.store.table_name(project_id, kind)

    def resolve(self, kind: VectorKind, vector_id: str) -> str | None:
        """Name of the table holding a raw vector id, via the catalog mirror fields.

        Raises:
            ValueError: If the viewer was built without a catalog
        """
        if self.catalog is None:
            raise ValueError("Resolving vector ids requires a catalog")
        project_id = self.catalog.project_for_vector(vector_id, VectorKind(kind).value)
        if project_id is None:
            logger.info(f"No project found for {VectorKind(kind).value} vector {vector_id}")
            return None
        return self.table_for(kind, project_id)
