"""Pydantic models for vector rows and service results.

Vector rows are validated before they reach LanceDB and result records are what
the indexing, pipeline and search services hand back to their callers.
"""

import math
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

CONTENT_PREVIEW_CHARS = 200


class VectorKind(str, Enum):
    """The two per-project vector tables."""

    STUDIES = "studies"
    CHUNKS = "chunks"


class StudyStatus(str, Enum):
    """Screening workflow status of a study."""

    TO_READ = "TO_READ"
    READING = "READING"
    EXTRACTED = "EXTRACTED"
    INCLUDED = "INCLUDED"
    EXCLUDED = "EXCLUDED"


def _check_finite(vector: list[float]) -> list[float]:
    for i, val in enumerate(vector):
        if not math.isfinite(val):
            raise ValueError(f"Vector contains non-finite value at index {i}: {val}")
    return vector


class StudyVectorRecord(BaseModel):
    """A study row in the project's ``studies_*`` table.

    Attributes:
        id: Study id (also the study's ``embedding_id``)
        project_id: Owning project
        vector: Document-mode embedding of ``embedded_text``
        title: Study title
        paper_key: Project-scoped display key (``P001``)
        status: Study status at indexing time
        year: Publication year
        authors: Author list, if any
        abstract: Abstract, if any
        embedded_text: The exact text that was embedded
    """

    id: str = Field(min_length=1)
    project_id: str = Field(min_length=1)
    vector: list[float] = Field(min_length=1)
    title: str
    paper_key: str
    status: str
    year: int
    authors: str | None = None
    abstract: str | None = None
    embedded_text: str

    @field_validator("vector")
    @classmethod
    def validate_vector_values(cls, v: list[float]) -> list[float]:
        """Ensure vector contains valid finite floats."""
        return _check_finite(v)


class ChunkVectorRecord(BaseModel):
    """A document chunk row in the project's ``chunks_*`` table."""

    id: str = Field(min_length=1)
    document_id: str = Field(min_length=1)
    study_id: str = Field(min_length=1)
    project_id: str = Field(min_length=1)
    chunk_index: int = Field(ge=0)
    vector: list[float] = Field(min_length=1)
    content_preview: str = Field(max_length=CONTENT_PREVIEW_CHARS)

    @field_validator("vector")
    @classmethod
    def validate_vector_values(cls, v: list[float]) -> list[float]:
        """Ensure vector contains valid finite floats."""
        return _check_finite(v)


class StudySearchResult(BaseModel):
    """A study returned by semantic search (vector and embedded text stripped)."""

    id: str
    title: str
    paper_key: str
    authors: str | None = None
    abstract: str | None = None
    year: int
    status: str
    distance: float | None = None


class ChunkSearchResult(BaseModel):
    """A document chunk returned by semantic search."""

    id: str
    document_id: str
    study_id: str
    chunk_index: int
    content_preview: str
    distance: float | None = None


class ReindexResult(BaseModel):
    """Outcome of re-indexing every INCLUDED study of a project.

    Attributes:
        indexed: Successful vector + mirror writes
        errors: Failures at batch and record granularity
        total: INCLUDED studies found
    """

    indexed: int = Field(default=0, ge=0)
    errors: int = Field(default=0, ge=0)
    total: int = Field(default=0, ge=0)


class IndexOutcome(BaseModel):
    """Result of applying the status-change indexing rule to a study.

    ``error`` is set when indexing failed; the status change itself still
    succeeded.
    """

    study_id: str
    action: Literal["indexed", "removed", "skipped", "none"]
    error: str | None = None


ProcessErrorCode = Literal[
    "not_found", "extraction_failed", "no_chunks_generated", "configuration", "failed"
]


class ProcessResult(BaseModel):
    """Typed result of processing, resetting or reprocessing a document."""

    success: bool
    document_id: str
    error_code: ProcessErrorCode | None = None
    error: str | None = None
    chunks_created: int = Field(default=0, ge=0)
    chunks_embedded: int = Field(default=0, ge=0)

    @classmethod
    def failure(cls, document_id: str, code: ProcessErrorCode, error: str) -> "ProcessResult":
        return cls(success=False, document_id=document_id, error_code=code, error=error)


class StoredDocument(BaseModel):
    """Display view of a stored StudyDocument row."""

    id: str
    study_id: str
    file_name: str
    file_path: str
    file_size: int
    page_count: int | None = None
    uploaded_at: datetime | None = None
    processed_at: datetime | None = None


TaskState = Literal["idle", "running", "succeeded", "failed"]


class DocumentStatus(BaseModel):
    """Indexing status of the latest document attached to a study.

    ``processed`` means text extraction and chunking ran; ``fully_embedded``
    means every chunk also has a vector and the document is search-ready.
    """

    has_document: bool
    document: StoredDocument | None = None
    total_chunks: int = 0
    embedded_chunks: int = 0
    processed: bool = False
    fully_embedded: bool = False
    task_state: TaskState = "idle"


class VectorTableInfo(BaseModel):
    """A LanceDB table as listed by the vector viewer."""

    name: str
    row_count: int = Field(ge=0)
    kind: Literal["studies", "chunks", "unknown"]


class VectorTablePage(BaseModel):
    """One page of display rows from a vector table."""

    rows: list[dict[str, Any]]
    total: int = Field(ge=0)
    columns: list[str]


class VectorDbStats(BaseModel):
    """Totals over every table of the vector database."""

    total_tables: int = Field(ge=0)
    total_vectors: int = Field(ge=0)
    db_path: str
