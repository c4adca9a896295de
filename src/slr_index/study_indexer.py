"""Study indexing workflow.

Combines canonical study text composition, embedding, vector upsert and the
catalog mirror update. The vector write and the mirror write are not
transactional across stores; a failure between them is logged and repaired by
the next reindex.
"""

from typing import Any

from loguru import logger

from slr_index.catalog import CatalogStore, utcnow
from slr_index.embedding import EmbeddingClient, InputType
from slr_index.exceptions import ConfigurationError
from slr_index.index import VectorStore
from slr_index.models import ReindexResult, StudyStatus, StudyVectorRecord, VectorKind

DEFAULT_STUDY_BATCH_SIZE = 10

# (attribute, label) in the order they appear in the embedded text
STUDY_TEXT_FIELDS: tuple[tuple[str, str], ...] = (
    # Basic metadata
    ("title", "Title"),
    ("abstract", "Abstract"),
    ("keywords", "Keywords"),
    ("authors", "Authors"),
    ("venue", "Venue"),
    # Classification
    ("research_type", "Research Type"),
    ("domain", "Domain"),
    # Research content
    ("problem_statement", "Problem Statement"),
    ("proposed_solution", "Proposed Solution"),
    ("key_techniques", "Key Techniques"),
    # Methodology and results
    ("data_input_used", "Data Input"),
    ("output_artifact", "Output Artifact"),
    ("evaluation_method", "Evaluation Method"),
    ("metrics_results", "Metrics & Results"),
    # Qualitative analysis
    ("strengths", "Strengths"),
    ("limitations", "Limitations"),
    ("gap_notes", "Research Gaps"),
    ("adoption_for_thesis", "Adoption for Thesis"),
    ("qa_notes", "Quality Notes"),
    # Research context
    ("comparison_baseline", "Baseline Comparison"),
    ("study_context", "Study Context"),
    ("ambiguity_type", "Ambiguity Type"),
    ("quality_framework", "Quality Framework"),
)


def compose_study_text(study: Any) -> str:
    """Build the canonical embedding text of a study.

    Every non-empty field of ``STUDY_TEXT_FIELDS`` becomes a ``"Label: value"``
    paragraph; paragraphs are separated by blank lines.

    Example:
        >>> compose_study_text(SimpleNamespace(title="Graph RAG", abstract=None))
        'Title: Graph RAG'
    """
    parts = []
    for attr, label in STUDY_TEXT_FIELDS:
        value = getattr(study, attr, None)
        if value is None or not str(value).strip():
            continue
        parts.append(f"{label}: {value}")
    return "\n\n".join(parts)


def build_study_record(study: Any, vector: list[float], text: str) -> StudyVectorRecord:
    return StudyVectorRecord(
        id=study.id,
        project_id=study.project_id,
        vector=vector,
        title=study.title,
        paper_key=study.paper_key,
        status=str(study.status),
        year=study.year,
        authors=study.authors,
        abstract=study.abstract,
        embedded_text=text,
    )


class StudyIndexer:
    """Keeps a project's study vector table consistent with the catalog.

    This is the only writer of the study mirror fields ``embedding_id`` and
    ``embedded_at``.
    """

    def __init__(
        self,
        embedding_client: EmbeddingClient,
        vector_store: VectorStore,
        catalog: CatalogStore,
        batch_size: int = DEFAULT_STUDY_BATCH_SIZE,
    ):
        """Initialize study indexer.

        Args:
            embedding_client: Client for generating embeddings
            vector_store: Per-project vector tables
            catalog: Catalog holding the studies
            batch_size: Studies embedded per provider call during reindex
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.embedding_client = embedding_client
        self.vector_store = vector_store
        self.catalog = catalog
        self.batch_size = batch_size

    async def _persist(self, study: Any, vector: list[float], text: str) -> None:
        record = build_study_record(study, vector, text)
        await self.vector_store.upsert(study.project_id, VectorKind.STUDIES, record)
        self.catalog.set_study_embedding(study.id, study.id, utcnow())

    async def index_study(self, study: Any) -> bool:
        """Embed a study and write its vector row and mirror fields.

        Args:
            study: Study row (any object with the catalog Study attributes)

        Returns:
            True if the study was indexed, False if it had no text to embed

        Raises:
            ConfigurationError: If no embedding credential is configured
            ProviderError: If the embedding call fails
            VectorStoreError: If the vector row cannot be written
        """
        text = compose_study_text(study)
        if not text.strip():
            logger.info(f"Skipping study {study.id}: no text content to embed")
            return False

        vector = await self.embedding_client.embed_single(text, InputType.DOCUMENT)
        await self._persist(study, vector, text)
        logger.info(f"Indexed study {study.paper_key} ({study.id})")
        return True

    async def remove_from_index(self, project_id: str, study_id: str) -> None:
        """Delete a study's vector row and clear its mirror fields."""
        await self.vector_store.delete_by_id(project_id, VectorKind.STUDIES, study_id)
        self.catalog.set_study_embedding(study_id, None, None)
        logger.info(f"Removed study {study_id} from index")

    async def reindex_all(self, project_id: str) -> ReindexResult:
        """Re-embed every INCLUDED study of a project in batches.

        A failed batch embedding counts every study of the batch as an error
        and moves on to the next batch; a failed vector/mirror write counts
        one error and moves on to the next study.

        Raises:
            ConfigurationError: If no embedding credential is configured
        """
        studies = self.catalog.list_studies(project_id, status=StudyStatus.INCLUDED.value)
        result = ReindexResult(total=len(studies))
        logger.info(f"Reindexing {result.total} INCLUDED studies in project {project_id}")

        for start in range(0, len(studies), self.batch_size):
            batch = studies[start : start + self.batch_size]
            items = [(study, compose_study_text(study)) for study in batch]
            items = [(study, text) for study, text in items if text.strip()]
            if not items:
                continue

            try:
                vectors = await self.embedding_client.embed_batch(
                    [text for _, text in items], InputType.DOCUMENT
                )
            except ConfigurationError:
                raise
            except Exception as e:
                logger.warning(
                    f"Batch {start // self.batch_size + 1} embedding failed "
                    f"({len(items)} studies): {e}"
                )
                result.errors += len(items)
                continue

            for (study, text), vector in zip(items, vectors, strict=True):
                try:
                    await self._persist(study, vector, text)
                    result.indexed += 1
                except Exception as e:
                    logger.warning(f"Error indexing study {study.id}: {e}")
                    result.errors += 1

        logger.info(
            f"Reindex of project {project_id} complete: "
            f"{result.indexed}/{result.total} indexed, {result.errors} errors"
        )
        return result
