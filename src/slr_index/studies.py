"""Study create/update/delete with automatic index maintenance.

Any update that leaves a study INCLUDED indexes it; an update that leaves it
EXCLUDED while it still has an ``embedding_id`` removes it from the index.
Indexing failures are reported in the returned ``IndexOutcome`` and never
fail the update itself.
"""

from __future__ import annotations

from typing import Any

from loguru import logger

from slr_index.catalog import CatalogStore, Study
from slr_index.exceptions import NotFoundError
from slr_index.index import VectorStore
from slr_index.models import IndexOutcome, StudyStatus, VectorKind
from slr_index.storage import FileStore
from slr_index.study_indexer import StudyIndexer

QA_FIELDS = tuple(f"qa_q{i}" for i in range(1, 9))
QA_MAX_SCORE = 2


def next_paper_key(existing_count: int) -> str:
    """Return the display key for the next study in a project.

    Example:
        >>> next_paper_key(6)
        'P007'
    """
    return f"P{existing_count + 1:03d}"


def _validate_status(status: str, exclusion_reason: str | None) -> str:
    status = StudyStatus(status).value
    if status == StudyStatus.EXCLUDED.value and not (exclusion_reason or "").strip():
        raise ValueError("Exclusion reason is required when status is EXCLUDED")
    return status


class StudyService:
    """Study operations that keep the vector index in step with status changes."""

    def __init__(
        self,
        catalog: CatalogStore,
        indexer: StudyIndexer,
        vector_store: VectorStore,
        file_store: FileStore | None = None,
    ):
        self.catalog = catalog
        self.indexer = indexer
        self.vector_store = vector_store
        self.file_store = file_store

    def create_study(self, project_id: str, title: str, year: int, **fields: Any) -> Study:
        """Create a study with the next sequential paper key.

        Raises:
            ValueError: If title or year is missing
        """
        if not title or not title.strip():
            raise ValueError("Title and Year are required")
        if year is None:
            raise ValueError("Title and Year are required")

        status = _validate_status(
            fields.pop("status", StudyStatus.TO_READ.value), fields.get("exclusion_reason")
        )
        paper_key = next_paper_key(self.catalog.count_studies(project_id))
        study = self.catalog.create_study(
            project_id, title=title, year=int(year), paper_key=paper_key, status=status, **fields
        )
        logger.info(f"Created study {paper_key} in project {project_id}")
        return study

    async def update_study(self, study_id: str, **fields: Any) -> tuple[Study, IndexOutcome]:
        """Update study fields, then apply the indexing rule.

        Quality-assessment scores ``qa_q1``..``qa_q8`` must be in [0, 2];
        when any score is supplied ``qa_total`` is recomputed over all eight.

        Raises:
            ValueError: For invalid scores or an EXCLUDED status without reason
            NotFoundError: If the study does not exist
        """
        scores = {field: fields[field] for field in QA_FIELDS if fields.get(field) is not None}
        if scores:
            for field, score in scores.items():
                score = int(score)
                if not 0 <= score <= QA_MAX_SCORE:
                    raise ValueError(f"{field} must be between 0 and {QA_MAX_SCORE}, got {score}")
                fields[field] = score
            current = self.catalog.get_study(study_id)
            if current is None:
                raise NotFoundError(f"Study {study_id} not found", {"id": study_id})
            fields["qa_total"] = sum(
                fields[field] if field in scores else (getattr(current, field) or 0)
                for field in QA_FIELDS
            )

        if "status" in fields:
            fields["status"] = _validate_status(fields["status"], fields.get("exclusion_reason"))

        study = self.catalog.update_study(study_id, **fields)
        return study, await self.apply_index_rule(study)

    async def update_status(
        self, study_id: str, status: str, exclusion_reason: str | None = None
    ) -> tuple[Study, IndexOutcome]:
        """Change a study's workflow status, then apply the indexing rule.

        Raises:
            ValueError: If EXCLUDED is requested without a reason
            NotFoundError: If the study does not exist
        """
        status = _validate_status(status, exclusion_reason)
        study = self.catalog.update_study(
            study_id, status=status, exclusion_reason=exclusion_reason
        )
        return study, await self.apply_index_rule(study)

    async def apply_index_rule(self, study: Study) -> IndexOutcome:
        """Index INCLUDED studies and de-index EXCLUDED ones (non-blocking)."""
        try:
            if study.status == StudyStatus.INCLUDED.value:
                indexed = await self.indexer.index_study(study)
                return IndexOutcome(study_id=study.id, action="indexed" if indexed else "skipped")
            if study.status == StudyStatus.EXCLUDED.value and study.embedding_id:
                await self.indexer.remove_from_index(study.project_id, study.id)
                return IndexOutcome(study_id=study.id, action="removed")
        except Exception as e:
            logger.warning(f"Failed to update index for study {study.id} (non-blocking): {e}")
            return IndexOutcome(study_id=study.id, action="none", error=str(e))
        return IndexOutcome(study_id=study.id, action="none")

    async def delete_study(self, study_id: str) -> None:
        """Delete a study with its vectors, document files and catalog rows.

        Raises:
            NotFoundError: If the study does not exist
        """
        study = self.catalog.get_study(study_id)
        if study is None:
            raise NotFoundError(f"Study {study_id} not found", {"id": study_id})

        await self.vector_store.delete_by_id(study.project_id, VectorKind.STUDIES, study.id)
        await self.vector_store.delete_by_field(
            study.project_id, VectorKind.CHUNKS, "study_id", study.id
        )
        if self.file_store is not None:
            for document in self.catalog.list_documents(study.id):
                self.file_store.delete(document.file_path)

        self.catalog.delete_study(study.id)
        logger.info(f"Deleted study {study.paper_key} ({study.id})")
