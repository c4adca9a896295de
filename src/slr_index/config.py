"""Configuration management for the SLR index using Hydra.

All configuration is loaded from YAML files in conf/slr_index/.
This module provides typed config objects and validation.
"""

from pathlib import Path

from hydra import compose, initialize_config_dir
from omegaconf import DictConfig, OmegaConf
from pydantic import BaseModel, Field, model_validator

from slr_index.chunking import ChunkingConfig
from slr_index.embedding import EmbeddingConfig


class VectorStoreConfig(BaseModel):
    """Local LanceDB location and table naming.

    Attributes:
        db_path: Directory of the LanceDB database
        studies_prefix: Table name prefix for study vectors
        chunks_prefix: Table name prefix for chunk vectors
    """

    db_path: str = "data/lancedb"
    studies_prefix: str = Field(default="studies_", min_length=1)
    chunks_prefix: str = Field(default="chunks_", min_length=1)


class CatalogConfig(BaseModel):
    url: str = "sqlite:///data/slr.db"


class StorageConfig(BaseModel):
    upload_dir: str = "data/uploads/pdfs"


class BatchingConfig(BaseModel):
    """Work unit sizes for embedding calls.

    Attributes:
        study_batch_size: Studies per provider call during reindex
        chunk_batch_size: Chunks per provider call during document processing
    """

    study_batch_size: int = Field(default=10, ge=1)
    chunk_batch_size: int = Field(default=50, ge=1)


class SlrIndexConfig(BaseModel):
    """Top-level configuration of the indexing system."""

    chunking: ChunkingConfig = ChunkingConfig()
    embedding: EmbeddingConfig = EmbeddingConfig()
    vector_store: VectorStoreConfig = VectorStoreConfig()
    catalog: CatalogConfig = CatalogConfig()
    storage: StorageConfig = StorageConfig()
    batching: BatchingConfig = BatchingConfig()

    @model_validator(mode="after")
    def check_batches_fit_provider(self) -> "SlrIndexConfig":
        cap = self.embedding.max_batch_size
        for name in ("study_batch_size", "chunk_batch_size"):
            size = getattr(self.batching, name)
            if size > cap:
                raise ValueError(
                    f"batching.{name} ({size}) exceeds embedding.max_batch_size ({cap})"
                )
        return self


def default_config_dir() -> Path:
    return Path(__file__).parent.parent.parent / "conf" / "slr_index"


def load_config(
    config_name: str = "default",
    config_path: str | Path | None = None,
    overrides: list[str] | None = None,
) -> SlrIndexConfig:
    """Load configuration from Hydra YAML files.

    Args:
        config_name: Name of config file (without .yaml extension)
        config_path: Path to config directory (defaults to conf/slr_index/)
        overrides: List of config overrides (e.g., ["batching.chunk_batch_size=25"])

    Returns:
        Validated configuration object

    Example:
        >>> config = load_config("default")
        >>> config.embedding.model
        'voyage-3.5'

        >>> config = load_config("default", overrides=["chunking.target_tokens=500"])
        >>> config.chunking.target_tokens
        500
    """
    config_path = Path(config_path or default_config_dir()).resolve()

    if not config_path.exists():
        raise FileNotFoundError(
            f"Config directory not found: {config_path}\nCreate it with: mkdir -p {config_path}"
        )

    with initialize_config_dir(
        config_dir=str(config_path), version_base=None, job_name="slr_index"
    ):
        cfg: DictConfig = compose(config_name=config_name, overrides=overrides or [])

    # Convert OmegaConf to dict and validate with Pydantic
    config_dict = OmegaConf.to_container(cfg, resolve=True)
    return SlrIndexConfig(**config_dict)  # type: ignore


def create_default_config() -> dict[str, dict[str, object]]:
    """Create a default configuration dictionary for bootstrapping.

    Returns:
        Dictionary suitable for writing to YAML

    Example:
        >>> import yaml
        >>> config = create_default_config()
        >>> with open("conf/slr_index/default.yaml", "w") as f:
        ...     yaml.dump(config, f)
    """
    return {
        "chunking": {
            "target_tokens": 900,
            "overlap_tokens": 150,
        },
        "embedding": {
            "model": "voyage-3.5",
            "api_url": "https://api.voyageai.com/v1/embeddings",
            "dimensions": 1024,
            "max_batch_size": 128,
            "timeout_seconds": 30.0,
            "api_key": "${oc.env:VOYAGE_API_KEY,null}",
        },
        "vector_store": {
            "db_path": "data/lancedb",
            "studies_prefix": "studies_",
            "chunks_prefix": "chunks_",
        },
        "catalog": {"url": "sqlite:///data/slr.db"},
        "storage": {"upload_dir": "data/uploads/pdfs"},
        "batching": {
            "study_batch_size": 10,
            "chunk_batch_size": 50,
        },
    }
