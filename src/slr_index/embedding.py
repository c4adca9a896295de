"""Embedding client for the Voyage AI REST API.

Documents being stored are embedded with ``input_type="document"`` and search
queries with ``input_type="query"``; callers must not mix the two. Failed
calls are not retried: the caller decides whether a failure aborts its work.
"""

import os
from enum import Enum
from typing import Any, Protocol

import httpx
from loguru import logger
from pydantic import BaseModel, Field

from slr_index.exceptions import BatchSizeError, ConfigurationError, ProviderError

API_KEY_ENV = "VOYAGE_API_KEY"


class InputType(str, Enum):
    """Embedding request variants."""

    DOCUMENT = "document"
    QUERY = "query"


class EmbeddingConfig(BaseModel):
    """Configuration for embedding generation.

    Attributes:
        model: Provider model identifier
        api_url: Embeddings endpoint
        dimensions: Requested output dimensionality
        max_batch_size: Provider cap on texts per request
        timeout_seconds: HTTP request timeout
        api_key: Bearer credential (falls back to $VOYAGE_API_KEY at call time)
    """

    model: str = "voyage-3.5"
    api_url: str = "https://api.voyageai.com/v1/embeddings"
    dimensions: int = Field(default=1024, ge=128, le=4096)
    max_batch_size: int = Field(default=128, ge=1, le=1000)
    timeout_seconds: float = Field(default=30.0, ge=1.0, le=300.0)
    api_key: str | None = None


class EmbeddingClient(Protocol):
    """Protocol for embedding client implementations."""

    async def embed_batch(
        self, texts: list[str], input_type: InputType = InputType.DOCUMENT
    ) -> list[list[float]]:
        """Generate embeddings for a batch of texts.

        Args:
            texts: List of input texts (max ``max_batch_size``)
            input_type: Document or query mode

        Returns:
            List of embedding vectors, ``result[i]`` belonging to ``texts[i]``

        Raises:
            BatchSizeError: If the batch exceeds the provider cap
            ConfigurationError: If no API key is configured
            ProviderError: For non-success responses
        """
        ...

    async def embed_single(
        self, text: str, input_type: InputType = InputType.DOCUMENT
    ) -> list[float]:
        """Generate embedding for a single text."""
        ...


class VoyageEmbedding:
    """Voyage AI embedding client over httpx."""

    def __init__(self, config: EmbeddingConfig, client: httpx.AsyncClient | None = None):
        """Initialize the client.

        Args:
            config: Embedding configuration
            client: Optional shared HTTP client (one is created per call otherwise)
        """
        self.config = config
        self._client = client

    def _api_key(self) -> str:
        api_key = self.config.api_key or os.environ.get(API_KEY_ENV)
        if not api_key:
            raise ConfigurationError(f"{API_KEY_ENV} environment variable is not set")
        return api_key

    async def _post(self, payload: dict[str, Any], api_key: str) -> httpx.Response:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
        }
        if self._client is not None:
            return await self._client.post(self.config.api_url, json=payload, headers=headers)
        async with httpx.AsyncClient(timeout=self.config.timeout_seconds) as client:
            return await client.post(self.config.api_url, json=payload, headers=headers)

    async def _request(self, texts: list[str], input_type: InputType) -> list[dict[str, Any]]:
        api_key = self._api_key()
        payload = {
            "model": self.config.model,
            "input": texts,
            "input_type": InputType(input_type).value,
            "output_dimension": self.config.dimensions,
        }

        response = await self._post(payload, api_key)
        if response.status_code >= 400:
            logger.error(f"Voyage API error {response.status_code} embedding {len(texts)} texts")
            raise ProviderError(
                f"Voyage API error: {response.status_code} - {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        body = response.json()
        data = body.get("data") or []
        usage = body.get("usage") or {}
        logger.debug(
            f"Embedded {len(texts)} texts with {self.config.model} "
            f"({payload['input_type']}, {usage.get('total_tokens', '?')} tokens)"
        )
        return data

    def _validate(self, vectors: list[list[float]]) -> list[list[float]]:
        for i, vector in enumerate(vectors):
            if len(vector) != self.config.dimensions:
                raise ProviderError(
                    f"Expected {self.config.dimensions} dimensions, got {len(vector)} for text {i}"
                )
        return vectors

    async def embed_batch(
        self, texts: list[str], input_type: InputType = InputType.DOCUMENT
    ) -> list[list[float]]:
        """Generate embeddings for a batch of texts.

        Results are re-sorted by the provider-returned ``index`` so that
        ``result[i]`` always corresponds to ``texts[i]``.

        Raises:
            BatchSizeError: If batch size exceeds ``max_batch_size``
            ConfigurationError: If no API key is configured
            ProviderError: For non-success responses
        """
        if len(texts) > self.config.max_batch_size:
            raise BatchSizeError(
                f"Batch size {len(texts)} exceeds limit {self.config.max_batch_size}"
            )

        if not texts:
            return []

        data = await self._request(texts, input_type)
        if len(data) != len(texts):
            raise ProviderError(f"Expected {len(texts)} embeddings, got {len(data)}")

        ordered = sorted(data, key=lambda item: item["index"])
        return self._validate([item["embedding"] for item in ordered])

    async def embed_single(
        self, text: str, input_type: InputType = InputType.DOCUMENT
    ) -> list[float]:
        """Generate embedding for a single text.

        Raises:
            ConfigurationError: If no API key is configured
            ProviderError: For non-success or empty responses
        """
        data = await self._request([text], input_type)
        if not data:
            raise ProviderError("No embedding returned from Voyage API")
        return self._validate([data[0]["embedding"]])[0]


def create_embedding_client(
    config: EmbeddingConfig, client: httpx.AsyncClient | None = None
) -> EmbeddingClient:
    """Factory function to create the embedding client.

    Example:
        >>> client = create_embedding_client(EmbeddingConfig(api_key="pa-..."))
    """
    return VoyageEmbedding(config, client=client)
