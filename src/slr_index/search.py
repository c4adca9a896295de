"""Semantic search over a project's study and chunk vector tables."""

from typing import Any

from loguru import logger

from slr_index.embedding import EmbeddingClient, InputType
from slr_index.index import VectorStore
from slr_index.models import ChunkSearchResult, StudySearchResult, VectorKind

DEFAULT_SEARCH_LIMIT = 10


def _to_study_result(row: dict[str, Any]) -> StudySearchResult:
    return StudySearchResult(
        id=row["id"],
        title=row["title"],
        paper_key=row["paper_key"],
        authors=row.get("authors"),
        abstract=row.get("abstract"),
        year=row["year"],
        status=row["status"],
        distance=row.get("_distance"),
    )


def _to_chunk_result(row: dict[str, Any]) -> ChunkSearchResult:
    return ChunkSearchResult(
        id=row["id"],
        document_id=row["document_id"],
        study_id=row["study_id"],
        chunk_index=row["chunk_index"],
        content_preview=row["content_preview"],
        distance=row.get("_distance"),
    )


class SearchService:
    """Embeds queries in query mode and ranks stored vectors by distance.

    Example:
        >>> service = SearchService(embedding_client, vector_store)
        >>> results = await service.search("project-1", "graph retrieval", limit=5)
    """

    def __init__(self, embedding_client: EmbeddingClient, vector_store: VectorStore):
        self.embedding_client = embedding_client
        self.vector_store = vector_store

    async def _query_vector(self, query: str) -> list[float] | None:
        if not query or not query.strip():
            return None
        return await self.embedding_client.embed_single(query, InputType.QUERY)

    async def search(
        self, project_id: str, query: str, limit: int = DEFAULT_SEARCH_LIMIT
    ) -> list[StudySearchResult]:
        """Rank the project's indexed studies against a free-text query.

        A blank query returns ``[]`` without calling the embedding provider.

        Args:
            project_id: Project whose study table is searched
            query: Free-text query
            limit: Maximum number of results

        Returns:
            Results ordered by ascending distance, without vectors or embedded text

        Raises:
            ConfigurationError: If no embedding credential is configured
            ProviderError: If the query embedding fails
        """
        vector = await self._query_vector(query)
        if vector is None:
            return []

        rows = await self.vector_store.vector_search(project_id, VectorKind.STUDIES, vector, limit)
        logger.info(f"Study search in project {project_id} returned {len(rows)} results")
        return [_to_study_result(row) for row in rows]

    async def search_chunks(
        self, project_id: str, query: str, limit: int = DEFAULT_SEARCH_LIMIT
    ) -> list[ChunkSearchResult]:
        """Rank the project's document chunks against a free-text query."""
        vector = await self._query_vector(query)
        if vector is None:
            return []

        rows = await self.vector_store.vector_search(project_id, VectorKind.CHUNKS, vector, limit)
        logger.info(f"Chunk search in project {project_id} returned {len(rows)} results")
        return [_to_chunk_result(row) for row in rows]
