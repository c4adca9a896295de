"""Semantic indexing for systematic literature review projects.

Studies and their PDF documents are embedded with Voyage AI and stored in
per-project LanceDB tables, while SQLite holds the catalog of record.

Architecture:
    - chunking: Boundary-aware splitting of extracted document text
    - embedding: Voyage AI client (document and query modes)
    - index: Per-project LanceDB vector tables with delete-then-insert upsert
    - catalog: SQLAlchemy models for projects, studies, documents and chunks
    - study_indexer / studies: Study indexing and status-driven index upkeep
    - document_pipeline: Extract, chunk, embed and reset documents
    - search: Semantic search over studies and chunks

Usage:
    >>> from slr_index import build_services, load_config
    >>> services = build_services(load_config("default"))
    >>> results = await services.search.search("project-1", "graph retrieval")
"""

__version__ = "0.1.0"

from slr_index.config import SlrIndexConfig, load_config
from slr_index.models import (
    ChunkSearchResult,
    DocumentStatus,
    ProcessResult,
    ReindexResult,
    StudySearchResult,
)
from slr_index.services import Services, build_services

__all__ = [
    "SlrIndexConfig",
    "load_config",
    "Services",
    "build_services",
    "StudySearchResult",
    "ChunkSearchResult",
    "ReindexResult",
    "ProcessResult",
    "DocumentStatus",
]
