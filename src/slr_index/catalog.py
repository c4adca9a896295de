"""Relational catalog of projects, studies, documents and chunks.

The catalog is the source of truth. Studies and chunks carry the mirror
fields ``embedding_id``/``embedded_at`` that record whether a row exists in
the project's vector tables; only the indexing service and the document
pipeline write them.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from loguru import logger
from sqlalchemy import (
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    delete,
    event,
    func,
    select,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    Session,
    mapped_column,
    relationship,
    sessionmaker,
)

from slr_index.exceptions import NotFoundError


def _new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    pass


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    studies = relationship("Study", back_populates="project", cascade="all, delete-orphan")


class Study(Base):
    __tablename__ = "studies"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    project_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("projects.id", ondelete="CASCADE"), index=True
    )
    paper_key: Mapped[str] = mapped_column(String(16))

    # Bibliographic
    title: Mapped[str] = mapped_column(Text)
    authors: Mapped[str | None] = mapped_column(Text, nullable=True)
    year: Mapped[int] = mapped_column(Integer)
    venue: Mapped[str | None] = mapped_column(Text, nullable=True)
    doi: Mapped[str | None] = mapped_column(String(255), nullable=True)
    url: Mapped[str | None] = mapped_column(Text, nullable=True)
    pdf_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    keywords: Mapped[str | None] = mapped_column(Text, nullable=True)
    abstract: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Classification
    research_type: Mapped[str | None] = mapped_column(Text, nullable=True)
    domain: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Extraction
    problem_statement: Mapped[str | None] = mapped_column(Text, nullable=True)
    proposed_solution: Mapped[str | None] = mapped_column(Text, nullable=True)
    key_techniques: Mapped[str | None] = mapped_column(Text, nullable=True)
    data_input_used: Mapped[str | None] = mapped_column(Text, nullable=True)
    output_artifact: Mapped[str | None] = mapped_column(Text, nullable=True)
    evaluation_method: Mapped[str | None] = mapped_column(Text, nullable=True)
    metrics_results: Mapped[str | None] = mapped_column(Text, nullable=True)
    strengths: Mapped[str | None] = mapped_column(Text, nullable=True)
    limitations: Mapped[str | None] = mapped_column(Text, nullable=True)
    gap_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    adoption_for_thesis: Mapped[str | None] = mapped_column(Text, nullable=True)
    qa_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    comparison_baseline: Mapped[str | None] = mapped_column(Text, nullable=True)
    study_context: Mapped[str | None] = mapped_column(Text, nullable=True)
    ambiguity_type: Mapped[str | None] = mapped_column(Text, nullable=True)
    quality_framework: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Quality assessment, each question scored 0..2
    qa_q1: Mapped[int | None] = mapped_column(Integer, nullable=True)
    qa_q2: Mapped[int | None] = mapped_column(Integer, nullable=True)
    qa_q3: Mapped[int | None] = mapped_column(Integer, nullable=True)
    qa_q4: Mapped[int | None] = mapped_column(Integer, nullable=True)
    qa_q5: Mapped[int | None] = mapped_column(Integer, nullable=True)
    qa_q6: Mapped[int | None] = mapped_column(Integer, nullable=True)
    qa_q7: Mapped[int | None] = mapped_column(Integer, nullable=True)
    qa_q8: Mapped[int | None] = mapped_column(Integer, nullable=True)
    qa_total: Mapped[int] = mapped_column(Integer, default=0)
    relevance_score: Mapped[int | None] = mapped_column(Integer, nullable=True)

    status: Mapped[str] = mapped_column(String(16), default="TO_READ", index=True)
    exclusion_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Vector index mirror
    embedding_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    embedded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    project = relationship("Project", back_populates="studies")
    documents = relationship(
        "StudyDocument", back_populates="study", cascade="all, delete-orphan", passive_deletes=True
    )


class StudyDocument(Base):
    __tablename__ = "study_documents"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    study_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("studies.id", ondelete="CASCADE"), index=True
    )
    file_name: Mapped[str] = mapped_column(String(255))
    file_path: Mapped[str] = mapped_column(Text)
    file_size: Mapped[int] = mapped_column(Integer)
    mime_type: Mapped[str] = mapped_column(String(64), default="application/pdf")
    page_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    uploaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    study = relationship("Study", back_populates="documents")
    chunks = relationship(
        "DocumentChunk",
        back_populates="document",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class DocumentChunk(Base):
    __tablename__ = "document_chunks"
    __table_args__ = (UniqueConstraint("document_id", "chunk_index"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    document_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("study_documents.id", ondelete="CASCADE"), index=True
    )
    chunk_index: Mapped[int] = mapped_column(Integer)
    content: Mapped[str] = mapped_column(Text)
    token_count: Mapped[int] = mapped_column(Integer)
    embedding_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    embedded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    document = relationship("StudyDocument", back_populates="chunks")


def _enable_sqlite_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class CatalogStore:
    """Session-scoped access to the catalog tables.

    Rows are returned detached (``expire_on_commit=False``) so callers can read
    their columns after the session closes; relationships are not loaded.
    """

    def __init__(self, url: str = "sqlite:///data/slr.db"):
        """Initialize the engine and session factory.

        Args:
            url: SQLAlchemy database URL
        """
        if url.startswith("sqlite:///") and url != "sqlite:///:memory:":
            Path(url.removeprefix("sqlite:///")).parent.mkdir(parents=True, exist_ok=True)
        self.engine = create_engine(url)
        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
        self._sessions = sessionmaker(bind=self.engine, expire_on_commit=False)

    def create_all(self) -> None:
        """Create any missing tables."""
        Base.metadata.create_all(self.engine)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Yield a session that commits on success and rolls back on error."""
        session = self._sessions()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _require(self, session: Session, model: type[Base], row_id: str) -> Any:
        row = session.get(model, row_id)
        if row is None:
            raise NotFoundError(f"{model.__name__} {row_id} not found", {"id": row_id})
        return row

    # ------------------------------------------------------------------
    # Projects and studies
    # ------------------------------------------------------------------

    def create_project(self, name: str, description: str | None = None) -> Project:
        with self.session() as session:
            project = Project(name=name, description=description)
            session.add(project)
        return project

    def count_studies(self, project_id: str) -> int:
        with self.session() as session:
            stmt = select(func.count()).select_from(Study).where(Study.project_id == project_id)
            return int(session.scalar(stmt) or 0)

    def create_study(self, project_id: str, **fields: Any) -> Study:
        with self.session() as session:
            study = Study(project_id=project_id, **fields)
            session.add(study)
        return study

    def get_study(self, study_id: str) -> Study | None:
        with self.session() as session:
            return session.get(Study, study_id)

    def update_study(self, study_id: str, **fields: Any) -> Study:
        """Apply ``fields`` to a study and return the updated row.

        Raises:
            NotFoundError: If the study does not exist
        """
        with self.session() as session:
            study = self._require(session, Study, study_id)
            for key, value in fields.items():
                setattr(study, key, value)
        return study

    def delete_study(self, study_id: str) -> None:
        with self.session() as session:
            session.delete(self._require(session, Study, study_id))

    def list_studies(self, project_id: str, status: str | None = None) -> list[Study]:
        with self.session() as session:
            stmt = select(Study).where(Study.project_id == project_id)
            if status is not None:
                stmt = stmt.where(Study.status == status)
            return list(session.scalars(stmt.order_by(Study.paper_key)))

    def set_study_embedding(
        self, study_id: str, embedding_id: str | None, embedded_at: datetime | None
    ) -> None:
        self.update_study(study_id, embedding_id=embedding_id, embedded_at=embedded_at)

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def create_document(self, study_id: str, **fields: Any) -> StudyDocument:
        with self.session() as session:
            self._require(session, Study, study_id)
            document = StudyDocument(study_id=study_id, **fields)
            session.add(document)
        return document

    def get_document(self, document_id: str) -> StudyDocument | None:
        with self.session() as session:
            return session.get(StudyDocument, document_id)

    def list_documents(self, study_id: str) -> list[StudyDocument]:
        with self.session() as session:
            stmt = (
                select(StudyDocument)
                .where(StudyDocument.study_id == study_id)
                .order_by(StudyDocument.uploaded_at.desc())
            )
            return list(session.scalars(stmt))

    def latest_document(self, study_id: str) -> StudyDocument | None:
        documents = self.list_documents(study_id)
        return documents[0] if documents else None

    def update_document(self, document_id: str, **fields: Any) -> StudyDocument:
        with self.session() as session:
            document = self._require(session, StudyDocument, document_id)
            for key, value in fields.items():
                setattr(document, key, value)
        return document

    def delete_document(self, document_id: str) -> None:
        with self.session() as session:
            session.delete(self._require(session, StudyDocument, document_id))

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def create_chunks(
        self, document_id: str, chunks: Sequence[tuple[int, str, int]]
    ) -> list[DocumentChunk]:
        """Insert chunk rows from ``(chunk_index, content, token_count)`` tuples."""
        with self.session() as session:
            rows = [
                DocumentChunk(
                    document_id=document_id,
                    chunk_index=index,
                    content=content,
                    token_count=token_count,
                )
                for index, content, token_count in chunks
            ]
            session.add_all(rows)
        logger.debug(f"Created {len(rows)} chunk rows for document {document_id}")
        return rows

    def list_chunks(self, document_id: str) -> list[DocumentChunk]:
        with self.session() as session:
            stmt = (
                select(DocumentChunk)
                .where(DocumentChunk.document_id == document_id)
                .order_by(DocumentChunk.chunk_index)
            )
            return list(session.scalars(stmt))

    def set_chunk_embedding(
        self, chunk_id: str, embedding_id: str | None, embedded_at: datetime | None
    ) -> None:
        with self.session() as session:
            chunk = self._require(session, DocumentChunk, chunk_id)
            chunk.embedding_id = embedding_id
            chunk.embedded_at = embedded_at

    def delete_chunks(self, document_id: str) -> int:
        with self.session() as session:
            result = session.execute(
                delete(DocumentChunk).where(DocumentChunk.document_id == document_id)
            )
            return int(result.rowcount or 0)

    def chunk_counts(self, document_id: str) -> tuple[int, int]:
        """Return ``(total, embedded)`` chunk counts for a document."""
        with self.session() as session:
            total = session.scalar(
                select(func.count())
                .select_from(DocumentChunk)
                .where(DocumentChunk.document_id == document_id)
            )
            embedded = session.scalar(
                select(func.count())
                .select_from(DocumentChunk)
                .where(
                    DocumentChunk.document_id == document_id,
                    DocumentChunk.embedding_id.is_not(None),
                )
            )
            return int(total or 0), int(embedded or 0)

    def project_for_vector(self, embedding_id: str, kind: str) -> str | None:
        """Find the project owning a study or chunk vector id."""
        with self.session() as session:
            if kind == "studies":
                stmt = select(Study.project_id).where(Study.embedding_id == embedding_id)
            else:
                stmt = (
                    select(Study.project_id)
                    .join(StudyDocument, StudyDocument.study_id == Study.id)
                    .join(DocumentChunk, DocumentChunk.document_id == StudyDocument.id)
                    .where(DocumentChunk.embedding_id == embedding_id)
                )
            return session.scalar(stmt.limit(1))
