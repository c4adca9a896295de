"""Construction of the service graph from a loaded configuration.

One ``VectorStoreHandle`` and one ``CatalogStore`` are opened per process and
shared by every service; ``close`` releases them.
"""

from dataclasses import dataclass

import httpx
from loguru import logger

from slr_index.catalog import CatalogStore
from slr_index.config import SlrIndexConfig
from slr_index.document_pipeline import DocumentPipeline, DocumentTaskTracker
from slr_index.embedding import EmbeddingClient, create_embedding_client
from slr_index.extraction import PdfTextExtractor
from slr_index.index import VectorStoreHandle
from slr_index.search import SearchService
from slr_index.storage import FileStore
from slr_index.studies import StudyService
from slr_index.study_indexer import StudyIndexer
from slr_index.viewer import VectorViewer


@dataclass
class Services:
    catalog: CatalogStore
    vector_store: VectorStoreHandle
    embedding_client: EmbeddingClient
    indexer: StudyIndexer
    studies: StudyService
    documents: DocumentPipeline
    search: SearchService
    viewer: VectorViewer
    http_client: httpx.AsyncClient | None = None

    async def close(self) -> None:
        if self.http_client is not None:
            await self.http_client.aclose()
        self.vector_store.close()
        self.catalog.engine.dispose()


def build_services(
    config: SlrIndexConfig,
    embedding_client: EmbeddingClient | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> Services:
    """Open the stores and wire every service.

    Args:
        config: Validated configuration
        embedding_client: Override for the Voyage client (tests use a fake)
        http_client: Shared HTTP client for the Voyage client

    Returns:
        Wired services; call ``await services.close()`` when done
    """
    catalog = CatalogStore(config.catalog.url)
    catalog.create_all()
    vector_store = VectorStoreHandle(
        config.vector_store.db_path,
        dimensions=config.embedding.dimensions,
        studies_prefix=config.vector_store.studies_prefix,
        chunks_prefix=config.vector_store.chunks_prefix,
    ).open()
    file_store = FileStore(config.storage.upload_dir)

    if embedding_client is None:
        embedding_client = create_embedding_client(config.embedding, client=http_client)

    indexer = StudyIndexer(
        embedding_client, vector_store, catalog, batch_size=config.batching.study_batch_size
    )
    logger.debug(f"Services built (catalog: {config.catalog.url}, vectors: {vector_store.db_path})")
    return Services(
        catalog=catalog,
        vector_store=vector_store,
        embedding_client=embedding_client,
        indexer=indexer,
        studies=StudyService(catalog, indexer, vector_store, file_store),
        documents=DocumentPipeline(
            catalog,
            vector_store,
            embedding_client,
            file_store,
            PdfTextExtractor(),
            chunking_config=config.chunking,
            batch_size=config.batching.chunk_batch_size,
            tracker=DocumentTaskTracker(),
        ),
        search=SearchService(embedding_client, vector_store),
        viewer=VectorViewer(vector_store, catalog),
        http_client=http_client,
    )
