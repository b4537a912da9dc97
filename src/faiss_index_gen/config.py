"""Configuration management with Pydantic Settings."""

from dataclasses import dataclass
from typing import Annotated, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


@dataclass(frozen=True)
class EmbeddingModel:
    """Known Ollama embedding model."""

    name: str
    dimension: int
    context: int
    description: str


EMBEDDING_MODELS: dict[str, EmbeddingModel] = {
    "nomic-embed-text": EmbeddingModel(
        "nomic-embed-text", 768, 8192, "Fast, general-purpose text embeddings"
    ),
    "mxbai-embed-large": EmbeddingModel(
        "mxbai-embed-large", 1024, 512, "High-quality embeddings, larger dimension"
    ),
    "all-minilm": EmbeddingModel(
        "all-minilm", 384, 256, "Lightweight, fast, smaller dimension"
    ),
    "snowflake-arctic-embed": EmbeddingModel(
        "snowflake-arctic-embed", 1024, 512, "Strong retrieval performance"
    ),
    "bge-m3": EmbeddingModel(
        "bge-m3", 1024, 8192, "Multilingual, long context"
    ),
}

# Model name -> vector dimension
EMBEDDING_DIMENSIONS: dict[str, int] = {
    name: model.dimension for name, model in EMBEDDING_MODELS.items()
}

DEFAULT_MODEL = "nomic-embed-text"
DEFAULT_ENDPOINT = "http://localhost:11434"
DEFAULT_DIMENSION = 768

# Output artifact names
DOC_CACHE_FILENAME = "doc_index_cache.json"
METADATA_FILENAME = "metadata.json"
INDEX_FILENAME = "index.bin"
INDEX_METADATA_FILENAME = "index_metadata.json"
BUILD_STATE_FILENAME = "build_state.json"  # Written only after a successful build


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="FAISS_GEN_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Embedding oracle
    endpoint: str = Field(default=DEFAULT_ENDPOINT, description="Ollama server URL")
    model: str = Field(default=DEFAULT_MODEL, description="Ollama embedding model")
    embeddings_path: str = Field(
        default="/api/embeddings", description="Embedding request path"
    )
    models_path: str = Field(
        default="/api/tags", description="Model listing path (health checks)"
    )
    request_timeout: float = Field(
        default=30.0, gt=0, description="Embedding request timeout in seconds"
    )
    health_timeout: float = Field(
        default=5.0, gt=0, description="Health check timeout in seconds"
    )

    # Chunking
    chunk_size: int = Field(default=1500, gt=0, description="Chunk size in characters")
    chunk_overlap: int = Field(default=200, ge=0, description="Overlap between chunks")
    splitter: Literal["recursive", "character", "markdown", "code", "fixed"] = Field(
        default="recursive", description="Text splitter type"
    )

    # Source scanning
    extensions: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: [".txt", ".md"],
        description="File extensions to index",
    )
    recursive: bool = Field(default=False, description="Scan directories recursively")

    # Index
    metric: Literal["IP", "L2"] = Field(
        default="IP", description="FAISS index type (IP for cosine, L2 for euclidean)"
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Log level"
    )

    @field_validator("extensions", mode="before")
    @classmethod
    def _split_extensions(cls, value):
        if isinstance(value, str):
            value = [part for part in value.split(",") if part.strip()]
        return [
            ext.strip().lower() if ext.strip().startswith(".") else f".{ext.strip().lower()}"
            for ext in value
        ]

    @field_validator("endpoint")
    @classmethod
    def _strip_endpoint(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def dimension(self) -> int:
        """Vector dimension of the configured model."""
        return EMBEDDING_DIMENSIONS.get(self.model, DEFAULT_DIMENSION)
