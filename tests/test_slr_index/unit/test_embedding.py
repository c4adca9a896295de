"""Unit tests for the Voyage embedding client."""

import json
import random

import httpx
import pytest
import respx
from httpx import Response

from slr_index.embedding import (
    EmbeddingConfig,
    InputType,
    VoyageEmbedding,
    create_embedding_client,
)
from slr_index.exceptions import BatchSizeError, ConfigurationError, ProviderError

API_URL = "https://api.voyageai.com/v1/embeddings"
DIMS = 1024


@pytest.fixture
def embedding_config() -> EmbeddingConfig:
    """Standard embedding configuration for tests."""
    return EmbeddingConfig(api_key="pa-test-key", timeout_seconds=10.0)


def tagged_vector(i: int) -> list[float]:
    """A vector whose first component identifies the input it belongs to."""
    return [float(i)] + [0.0] * (DIMS - 1)


def shuffled_response(request: httpx.Request) -> Response:
    """Provider stub that returns embeddings out of order, tagged by index."""
    texts = json.loads(request.content)["input"]
    data = [{"embedding": tagged_vector(int(t.split("-")[1])), "index": i} for i, t in enumerate(texts)]
    random.Random(7).shuffle(data)
    return Response(200, json={"data": data, "usage": {"total_tokens": len(texts)}})


class TestEmbeddingConfig:
    def test_defaults(self) -> None:
        config = EmbeddingConfig()
        assert config.model == "voyage-3.5"
        assert config.dimensions == 1024
        assert config.max_batch_size == 128
        assert config.api_key is None

    def test_invalid_dimensions(self) -> None:
        with pytest.raises(ValueError):
            EmbeddingConfig(dimensions=50)

        with pytest.raises(ValueError):
            EmbeddingConfig(dimensions=5000)

    def test_invalid_batch_size(self) -> None:
        with pytest.raises(ValueError):
            EmbeddingConfig(max_batch_size=0)


class TestVoyageEmbedding:
    """Tests for the Voyage embedding client."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_embed_single_request_payload(self, embedding_config) -> None:
        route = respx.post(API_URL).mock(
            return_value=Response(
                200,
                json={"data": [{"embedding": [0.1] * DIMS, "index": 0}], "usage": {"total_tokens": 3}},
            )
        )

        client = VoyageEmbedding(embedding_config)
        vector = await client.embed_single("graph retrieval", InputType.QUERY)

        assert len(vector) == DIMS
        request = route.calls.last.request
        assert request.headers["Authorization"] == "Bearer pa-test-key"
        assert json.loads(request.content) == {
            "model": "voyage-3.5",
            "input": ["graph retrieval"],
            "input_type": "query",
            "output_dimension": 1024,
        }

    @pytest.mark.asyncio
    @respx.mock
    async def test_embed_batch_preserves_input_order(self, embedding_config) -> None:
        """result[i] belongs to texts[i] even if the provider reorders data."""
        route = respx.post(API_URL).mock(side_effect=shuffled_response)
        texts = [f"text-{i}" for i in range(128)]

        client = VoyageEmbedding(embedding_config)
        vectors = await client.embed_batch(texts, InputType.DOCUMENT)

        assert [v[0] for v in vectors] == [float(i) for i in range(128)]
        assert json.loads(route.calls.last.request.content)["input_type"] == "document"

    @pytest.mark.asyncio
    async def test_batch_over_limit_rejected_before_request(self, embedding_config) -> None:
        client = VoyageEmbedding(embedding_config)

        with respx.mock(assert_all_called=False) as mock:
            route = mock.post(API_URL)
            with pytest.raises(BatchSizeError, match="exceeds limit 128"):
                await client.embed_batch([f"text-{i}" for i in range(129)])
            assert not route.called

    @pytest.mark.asyncio
    async def test_batch_size_error_is_value_error(self, embedding_config) -> None:
        client = VoyageEmbedding(embedding_config)
        with pytest.raises(ValueError):
            await client.embed_batch(["t"] * 200)

    @pytest.mark.asyncio
    async def test_empty_batch_makes_no_request(self, embedding_config) -> None:
        client = VoyageEmbedding(embedding_config)
        assert await client.embed_batch([]) == []

    @pytest.mark.asyncio
    async def test_missing_api_key(self, monkeypatch) -> None:
        monkeypatch.delenv("VOYAGE_API_KEY", raising=False)
        client = VoyageEmbedding(EmbeddingConfig(api_key=None))

        with pytest.raises(ConfigurationError, match="VOYAGE_API_KEY"):
            await client.embed_single("anything")

    @pytest.mark.asyncio
    @respx.mock
    async def test_api_key_from_environment(self, monkeypatch) -> None:
        monkeypatch.setenv("VOYAGE_API_KEY", "pa-env-key")
        route = respx.post(API_URL).mock(
            return_value=Response(200, json={"data": [{"embedding": [0.0] * DIMS, "index": 0}]})
        )

        await VoyageEmbedding(EmbeddingConfig()).embed_single("text")

        assert route.calls.last.request.headers["Authorization"] == "Bearer pa-env-key"

    @pytest.mark.asyncio
    @respx.mock
    async def test_provider_error_carries_status_and_body(self, embedding_config) -> None:
        respx.post(API_URL).mock(return_value=Response(429, text="rate limited"))

        client = VoyageEmbedding(embedding_config)
        with pytest.raises(ProviderError) as exc_info:
            await client.embed_batch(["a", "b"])

        assert exc_info.value.status_code == 429
        assert exc_info.value.body == "rate limited"
        assert respx.calls.call_count == 1

    @pytest.mark.asyncio
    @respx.mock
    async def test_empty_data_is_provider_error(self, embedding_config) -> None:
        respx.post(API_URL).mock(return_value=Response(200, json={"data": []}))

        with pytest.raises(ProviderError, match="No embedding returned"):
            await VoyageEmbedding(embedding_config).embed_single("text")

    @pytest.mark.asyncio
    @respx.mock
    async def test_wrong_dimensions_rejected(self, embedding_config) -> None:
        respx.post(API_URL).mock(
            return_value=Response(200, json={"data": [{"embedding": [0.1] * 512, "index": 0}]})
        )

        with pytest.raises(ProviderError, match="Expected 1024 dimensions"):
            await VoyageEmbedding(embedding_config).embed_single("text")

    @pytest.mark.asyncio
    @respx.mock
    async def test_shared_http_client(self, embedding_config) -> None:
        respx.post(API_URL).mock(
            return_value=Response(200, json={"data": [{"embedding": [0.2] * DIMS, "index": 0}]})
        )

        async with httpx.AsyncClient() as http_client:
            client = create_embedding_client(embedding_config, client=http_client)
            vector = await client.embed_single("text")

        assert vector[0] == pytest.approx(0.2)
