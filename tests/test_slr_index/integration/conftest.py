"""Fixtures wiring real LanceDB/SQLite stores under tmp_path with a fake embedder."""

import math
import re
import zlib
from pathlib import Path

import pytest

from slr_index.catalog import CatalogStore, Project
from slr_index.chunking import ChunkingConfig
from slr_index.document_pipeline import DocumentPipeline
from slr_index.embedding import InputType
from slr_index.exceptions import ConfigurationError, ProviderError
from slr_index.extraction import ExtractedText
from slr_index.index import VectorStoreHandle
from slr_index.search import SearchService
from slr_index.storage import FileStore
from slr_index.studies import StudyService
from slr_index.study_indexer import StudyIndexer

DIMS = 1024
_WORD = re.compile(r"[a-z0-9]+")


def bag_of_words_vector(text: str) -> list[float]:
    """Deterministic unit vector with one hashed axis per distinct word."""
    vector = [0.0] * DIMS
    for word in set(_WORD.findall(text.lower())):
        vector[zlib.crc32(word.encode()) % DIMS] += 1.0
    norm = math.sqrt(sum(v * v for v in vector)) or 1.0
    return [v / norm for v in vector]


class FakeEmbedding:
    """In-process stand-in for the Voyage client.

    Attributes:
        calls: (method, texts, input_type) per call, in order
        fail_on_batch_calls: 1-based ``embed_batch`` call numbers that raise ProviderError
        missing_key: Raise ConfigurationError on every call
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, list[str], InputType]] = []
        self.fail_on_batch_calls: set[int] = set()
        self.missing_key = False
        self._batch_calls = 0

    async def embed_batch(
        self, texts: list[str], input_type: InputType = InputType.DOCUMENT
    ) -> list[list[float]]:
        if self.missing_key:
            raise ConfigurationError("VOYAGE_API_KEY environment variable is not set")
        self._batch_calls += 1
        self.calls.append(("batch", list(texts), input_type))
        if self._batch_calls in self.fail_on_batch_calls:
            raise ProviderError("Voyage API error: 500 - upstream", status_code=500, body="upstream")
        return [bag_of_words_vector(text) for text in texts]

    async def embed_single(
        self, text: str, input_type: InputType = InputType.DOCUMENT
    ) -> list[float]:
        if self.missing_key:
            raise ConfigurationError("VOYAGE_API_KEY environment variable is not set")
        self.calls.append(("single", [text], input_type))
        return bag_of_words_vector(text)


class FakeExtractor:
    """Returns preset text for any PDF bytes."""

    def __init__(self, text: str = "", page_count: int = 1) -> None:
        self.text = text
        self.page_count = page_count

    def extract(self, data: bytes) -> ExtractedText:
        return ExtractedText(text=self.text, page_count=self.page_count)


@pytest.fixture
def catalog(tmp_path: Path) -> CatalogStore:
    store = CatalogStore(f"sqlite:///{tmp_path / 'slr.db'}")
    store.create_all()
    return store


@pytest.fixture
def vector_store(tmp_path: Path):
    with VectorStoreHandle(tmp_path / "lancedb", dimensions=DIMS) as store:
        yield store


@pytest.fixture
def file_store(tmp_path: Path) -> FileStore:
    return FileStore(tmp_path / "uploads")


@pytest.fixture
def embedder() -> FakeEmbedding:
    return FakeEmbedding()


@pytest.fixture
def extractor() -> FakeExtractor:
    return FakeExtractor()


@pytest.fixture
def project(catalog: CatalogStore) -> Project:
    return catalog.create_project("Ambiguity in requirements", "SLR test project")


@pytest.fixture
def indexer(embedder, vector_store, catalog) -> StudyIndexer:
    return StudyIndexer(embedder, vector_store, catalog, batch_size=10)


@pytest.fixture
def study_service(catalog, indexer, vector_store, file_store) -> StudyService:
    return StudyService(catalog, indexer, vector_store, file_store)


@pytest.fixture
def pipeline(catalog, vector_store, embedder, file_store, extractor) -> DocumentPipeline:
    return DocumentPipeline(
        catalog,
        vector_store,
        embedder,
        file_store,
        extractor,
        chunking_config=ChunkingConfig(target_tokens=20, overlap_tokens=5),
        batch_size=5,
    )


@pytest.fixture
def search_service(embedder, vector_store) -> SearchService:
    return SearchService(embedder, vector_store)
