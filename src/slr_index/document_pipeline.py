"""End-to-end document processing workflow.

Per document: read the stored PDF, extract text, chunk it, persist chunk rows,
embed the chunks in batches and upsert their vectors. A failed embedding batch
is logged and skipped, so a document can finish "processed" with only part of
its chunks embedded; ``reprocess`` is the recovery path.

Processing of the same document id is serialized through
``DocumentTaskTracker``, which also runs uploads' background processing.
"""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import Any

from loguru import logger
from pydantic import BaseModel

from slr_index.catalog import CatalogStore, DocumentChunk, StudyDocument, utcnow
from slr_index.chunking import BoundaryChunker, ChunkingConfig, sanitize_text
from slr_index.embedding import EmbeddingClient, InputType
from slr_index.exceptions import (
    ConfigurationError,
    ExtractionFailedError,
    NoChunksGeneratedError,
    NotFoundError,
)
from slr_index.extraction import TextExtractor
from slr_index.index import VectorStore
from slr_index.models import (
    CONTENT_PREVIEW_CHARS,
    ChunkVectorRecord,
    DocumentStatus,
    ProcessResult,
    StoredDocument,
    TaskState,
    VectorKind,
)
from slr_index.storage import FileStore

DEFAULT_CHUNK_BATCH_SIZE = 50


class DocumentTaskTracker:
    """In-process registry of document processing tasks keyed by document id.

    Also hands out one ``asyncio.Lock`` per document id so that process,
    reset and reprocess never overlap for the same document.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task[ProcessResult]] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def lock(self, document_id: str) -> asyncio.Lock:
        if document_id not in self._locks:
            self._locks[document_id] = asyncio.Lock()
        return self._locks[document_id]

    def submit(
        self, document_id: str, coro: Coroutine[Any, Any, ProcessResult]
    ) -> asyncio.Task[ProcessResult]:
        """Schedule ``coro`` without awaiting it.

        If a task for the document is still running it is returned instead and
        ``coro`` is closed unscheduled.
        """
        running = self._tasks.get(document_id)
        if running is not None and not running.done():
            coro.close()
            logger.debug(f"Document {document_id} already processing; reusing task")
            return running

        task = asyncio.create_task(coro, name=f"process-document-{document_id}")
        task.add_done_callback(self._log_failure)
        self._tasks[document_id] = task
        return task

    @staticmethod
    def _log_failure(task: asyncio.Task[ProcessResult]) -> None:
        if task.cancelled():
            logger.warning(f"Background task {task.get_name()} was cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Background document processing failed ({task.get_name()}): {exc}")

    def state(self, document_id: str) -> TaskState:
        task = self._tasks.get(document_id)
        if task is None:
            return "idle"
        if not task.done():
            return "running"
        if task.cancelled() or task.exception() is not None:
            return "failed"
        return "succeeded" if task.result().success else "failed"

    def forget(self, document_id: str) -> None:
        """Drop the finished task and idle lock kept for a document."""
        task = self._tasks.get(document_id)
        if task is not None and task.done():
            del self._tasks[document_id]
        lock = self._locks.get(document_id)
        if lock is not None and not lock.locked():
            del self._locks[document_id]

    async def wait(self, document_id: str) -> ProcessResult | None:
        """Await the document's latest task, if any."""
        task = self._tasks.get(document_id)
        if task is None:
            return None
        return await task


class UploadResult(BaseModel):
    """A newly stored document, optionally with its background task state."""

    document: StoredDocument
    task_state: TaskState = "idle"


def _stored(document: StudyDocument) -> StoredDocument:
    return StoredDocument(
        id=document.id,
        study_id=document.study_id,
        file_name=document.file_name,
        file_path=document.file_path,
        file_size=document.file_size,
        page_count=document.page_count,
        uploaded_at=document.uploaded_at,
        processed_at=document.processed_at,
    )


class DocumentPipeline:
    """Extract, chunk, embed and index uploaded study documents."""

    def __init__(
        self,
        catalog: CatalogStore,
        vector_store: VectorStore,
        embedding_client: EmbeddingClient,
        file_store: FileStore,
        extractor: TextExtractor,
        chunking_config: ChunkingConfig | None = None,
        batch_size: int = DEFAULT_CHUNK_BATCH_SIZE,
        tracker: DocumentTaskTracker | None = None,
    ):
        """Initialize the pipeline.

        Args:
            catalog: Catalog holding documents and chunks
            vector_store: Per-project vector tables
            embedding_client: Client for generating embeddings
            file_store: Storage of the uploaded PDFs
            extractor: PDF text extractor
            chunking_config: Chunk sizes (900/150 tokens if None)
            batch_size: Chunks embedded per provider call
            tracker: Task registry (a private one is created if None)
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.catalog = catalog
        self.vector_store = vector_store
        self.embedding_client = embedding_client
        self.file_store = file_store
        self.extractor = extractor
        self.chunker = BoundaryChunker(chunking_config or ChunkingConfig())
        self.batch_size = batch_size
        self.tracker = tracker or DocumentTaskTracker()

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def process(self, document_id: str, project_id: str) -> ProcessResult:
        """Extract, chunk and embed a document.

        Returns:
            ProcessResult; failures are typed (``not_found``,
            ``extraction_failed``, ``no_chunks_generated``, ``configuration``,
            ``failed``) rather than raised
        """
        async with self.tracker.lock(document_id):
            return await self._process_guarded(document_id, project_id)

    async def reset(self, document_id: str, project_id: str) -> ProcessResult:
        """Delete a document's chunk rows and chunk vectors, keeping the file."""
        async with self.tracker.lock(document_id):
            return await self._reset_guarded(document_id, project_id)

    async def reprocess(self, document_id: str, project_id: str) -> ProcessResult:
        """Reset then process a document, returning the process result."""
        async with self.tracker.lock(document_id):
            reset = await self._reset_guarded(document_id, project_id)
            if not reset.success:
                return reset
            return await self._process_guarded(document_id, project_id)

    async def _process_guarded(self, document_id: str, project_id: str) -> ProcessResult:
        try:
            return await self._process(document_id, project_id)
        except NotFoundError as e:
            logger.warning(f"Document processing failed: {e}")
            return ProcessResult.failure(document_id, "not_found", str(e))
        except ExtractionFailedError as e:
            logger.warning(f"Document processing failed: {e}")
            return ProcessResult.failure(document_id, "extraction_failed", str(e))
        except NoChunksGeneratedError as e:
            logger.warning(f"Document processing failed: {e}")
            return ProcessResult.failure(document_id, "no_chunks_generated", str(e))
        except ConfigurationError as e:
            logger.error(f"Document processing failed: {e}")
            return ProcessResult.failure(document_id, "configuration", str(e))
        except Exception as e:
            logger.error(f"Failed to process document {document_id}: {e}")
            return ProcessResult.failure(document_id, "failed", str(e))

    async def _process(self, document_id: str, project_id: str) -> ProcessResult:
        document = self.catalog.get_document(document_id)
        if document is None:
            raise NotFoundError(f"Document {document_id} not found", {"id": document_id})
        logger.info(f"Processing document {document.file_name!r} ({document_id})")

        data = self.file_store.read(document.file_path)
        extracted = await asyncio.to_thread(self.extractor.extract, data)
        logger.debug(
            f"Extracted {len(extracted.text)} chars, {extracted.page_count} pages "
            f"from {len(data)} bytes"
        )
        if not extracted.text.strip():
            raise ExtractionFailedError(
                "Could not extract text from PDF", {"document_id": document_id}
            )

        self.catalog.update_document(document_id, page_count=extracted.page_count)

        chunks = self.chunker.chunk(extracted.text)
        if not chunks:
            raise NoChunksGeneratedError(
                "No chunks generated from document", {"document_id": document_id}
            )

        # Rows left by an earlier, interrupted run would collide on chunk_index
        stale = self.catalog.delete_chunks(document_id)
        if stale:
            logger.info(f"Replacing {stale} existing chunk rows of document {document_id}")
            await self.vector_store.delete_by_field(
                project_id, VectorKind.CHUNKS, "document_id", document_id
            )

        rows = self.catalog.create_chunks(
            document_id,
            [(chunk.index, sanitize_text(chunk.content), chunk.token_count) for chunk in chunks],
        )

        embedded = 0
        for start in range(0, len(rows), self.batch_size):
            batch = rows[start : start + self.batch_size]
            embedded += await self._embed_batch(document, project_id, batch, start)

        # Processed means extraction and chunking ran, not that every chunk is embedded
        self.catalog.update_document(document_id, processed_at=utcnow())
        logger.info(
            f"Processed document {document_id}: {embedded}/{len(rows)} chunks embedded"
        )
        return ProcessResult(
            success=True,
            document_id=document_id,
            chunks_created=len(rows),
            chunks_embedded=embedded,
        )

    async def _embed_batch(
        self,
        document: StudyDocument,
        project_id: str,
        batch: list[DocumentChunk],
        offset: int,
    ) -> int:
        """Embed and index one batch of chunks; return how many were embedded."""
        batch_number = offset // self.batch_size + 1
        logger.debug(f"Embedding batch {batch_number}, {len(batch)} chunks")
        try:
            vectors = await self.embedding_client.embed_batch(
                [chunk.content for chunk in batch], InputType.DOCUMENT
            )
        except ConfigurationError:
            raise
        except Exception as e:
            logger.warning(f"Error embedding batch {batch_number} of document {document.id}: {e}")
            return 0

        embedded = 0
        for chunk, vector in zip(batch, vectors, strict=True):
            record = ChunkVectorRecord(
                id=chunk.id,
                document_id=document.id,
                study_id=document.study_id,
                project_id=project_id,
                chunk_index=chunk.chunk_index,
                vector=vector,
                content_preview=chunk.content[:CONTENT_PREVIEW_CHARS],
            )
            try:
                await self.vector_store.upsert(project_id, VectorKind.CHUNKS, record)
                self.catalog.set_chunk_embedding(chunk.id, chunk.id, utcnow())
                embedded += 1
            except Exception as e:
                logger.warning(f"Error indexing chunk {chunk.id}: {e}")
        return embedded

    async def _reset_guarded(self, document_id: str, project_id: str) -> ProcessResult:
        document = self.catalog.get_document(document_id)
        if document is None:
            return ProcessResult.failure(
                document_id, "not_found", f"Document {document_id} not found"
            )
        try:
            deleted = self.catalog.delete_chunks(document_id)
            await self.vector_store.delete_by_field(
                project_id, VectorKind.CHUNKS, "document_id", document_id
            )
            self.catalog.update_document(document_id, processed_at=None)
        except Exception as e:
            logger.error(f"Failed to reset document embeddings for {document_id}: {e}")
            return ProcessResult.failure(document_id, "failed", str(e))
        logger.info(f"Reset document {document_id}: {deleted} chunk rows removed")
        return ProcessResult(success=True, document_id=document_id)

    # ------------------------------------------------------------------
    # Upload, delete and status
    # ------------------------------------------------------------------

    def upload(
        self,
        study_id: str,
        project_id: str,
        data: bytes,
        file_name: str,
        mime_type: str = "application/pdf",
    ) -> UploadResult:
        """Store a PDF and create its document row (no processing).

        Raises:
            NotFoundError: If the study does not exist
        """
        stored = self.file_store.save(project_id, data, file_name)
        try:
            document = self.catalog.create_document(
                study_id,
                file_name=stored.file_name,
                file_path=stored.path,
                file_size=stored.size_bytes,
                mime_type=mime_type,
            )
        except Exception:
            self.file_store.delete(stored.path)
            raise
        logger.info(f"Uploaded {file_name!r} as document {document.id}")
        return UploadResult(document=_stored(document))

    def upload_and_process(
        self,
        study_id: str,
        project_id: str,
        data: bytes,
        file_name: str,
        mime_type: str = "application/pdf",
    ) -> tuple[UploadResult, asyncio.Task[ProcessResult]]:
        """Store a PDF and start processing it in the background.

        Must be called from a running event loop. The caller gets the upload
        result immediately and polls ``get_document_status`` (or awaits the
        returned task) for completion.
        """
        result = self.upload(study_id, project_id, data, file_name, mime_type)
        document_id = result.document.id
        task = self.tracker.submit(document_id, self.process(document_id, project_id))
        result.task_state = self.tracker.state(document_id)
        return result, task

    async def delete_document(self, document_id: str, project_id: str) -> None:
        """Delete a document's chunk vectors, file and catalog rows.

        Raises:
            NotFoundError: If the document does not exist
        """
        async with self.tracker.lock(document_id):
            document = self.catalog.get_document(document_id)
            if document is None:
                raise NotFoundError(f"Document {document_id} not found", {"id": document_id})
            await self.vector_store.delete_by_field(
                project_id, VectorKind.CHUNKS, "document_id", document_id
            )
            self.file_store.delete(document.file_path)
            self.catalog.delete_document(document_id)
        self.tracker.forget(document_id)
        logger.info(f"Deleted document {document_id}")

    def get_document_status(self, study_id: str) -> DocumentStatus:
        """Report chunk/embedding progress of the study's latest document."""
        document = self.catalog.latest_document(study_id)
        if document is None:
            return DocumentStatus(has_document=False)

        total, embedded = self.catalog.chunk_counts(document.id)
        return DocumentStatus(
            has_document=True,
            document=_stored(document),
            total_chunks=total,
            embedded_chunks=embedded,
            processed=document.processed_at is not None,
            fully_embedded=total > 0 and embedded == total,
            task_state=self.tracker.state(document.id),
        )
