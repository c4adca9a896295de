"""Unit tests for the search service with collaborator doubles."""

from unittest.mock import AsyncMock

import pytest

from slr_index.embedding import InputType
from slr_index.models import VectorKind
from slr_index.search import SearchService


@pytest.fixture
def embedding_client() -> AsyncMock:
    client = AsyncMock()
    client.embed_single.return_value = [0.1] * 1024
    return client


@pytest.fixture
def vector_store() -> AsyncMock:
    store = AsyncMock()
    store.vector_search.return_value = [
        {
            "id": "study-1",
            "project_id": "project-1",
            "vector": [0.1] * 1024,
            "title": "Graph RAG",
            "paper_key": "P001",
            "status": "INCLUDED",
            "year": 2024,
            "authors": "Lee",
            "abstract": None,
            "embedded_text": "Title: Graph RAG",
            "_distance": 0.12,
        }
    ]
    return store


class TestSearchService:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", ["", "   ", "\n\t"])
    async def test_blank_query_skips_provider(self, embedding_client, vector_store, query) -> None:
        service = SearchService(embedding_client, vector_store)

        assert await service.search("project-1", query) == []
        assert embedding_client.embed_single.await_count == 0
        vector_store.vector_search.assert_not_called()

    @pytest.mark.asyncio
    async def test_query_mode_and_projection(self, embedding_client, vector_store) -> None:
        service = SearchService(embedding_client, vector_store)

        results = await service.search("project-1", "graph retrieval", limit=5)

        embedding_client.embed_single.assert_awaited_once_with("graph retrieval", InputType.QUERY)
        vector_store.vector_search.assert_awaited_once_with(
            "project-1", VectorKind.STUDIES, [0.1] * 1024, 5
        )
        dumped = results[0].model_dump()
        assert "vector" not in dumped
        assert "embedded_text" not in dumped
        assert dumped["paper_key"] == "P001"
        assert dumped["distance"] == pytest.approx(0.12)

    @pytest.mark.asyncio
    async def test_search_chunks_uses_chunk_table(self, embedding_client, vector_store) -> None:
        vector_store.vector_search.return_value = [
            {
                "id": "chunk-1",
                "document_id": "doc-1",
                "study_id": "study-1",
                "project_id": "project-1",
                "chunk_index": 3,
                "vector": [0.0] * 1024,
                "content_preview": "retrieval over graphs",
                "_distance": 0.4,
            }
        ]
        service = SearchService(embedding_client, vector_store)

        results = await service.search_chunks("project-1", "graphs")

        assert vector_store.vector_search.await_args.args[1] == VectorKind.CHUNKS
        assert results[0].chunk_index == 3

    @pytest.mark.asyncio
    async def test_blank_chunk_query(self, embedding_client, vector_store) -> None:
        service = SearchService(embedding_client, vector_store)
        assert await service.search_chunks("project-1", " ") == []
        embedding_client.embed_single.assert_not_awaited()
