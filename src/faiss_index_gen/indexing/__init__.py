"""
Document Indexing Module for faiss-index-gen

Turns a directory of documents into a searchable FAISS index:
- Change detection with MD5 content hashes
- Structure-aware text chunking
- Ollama embeddings (normalized)
- FAISS vector index with aligned chunk metadata

Usage:
    from faiss_index_gen.indexing import IndexBuilder

    builder = IndexBuilder()
    builder.build("./documents", "./faiss_output")
    results = builder.query("./faiss_output", "find orders by status")
"""

from faiss_index_gen.indexing.doc_cache import (
    ChangeSet,
    DocumentCache,
    compute_digest,
    detect_changes,
    generate_doc_cache,
)
from faiss_index_gen.indexing.embedder import EmbeddingClient, HealthStatus
from faiss_index_gen.indexing.indexer import BuildReport, IndexBuilder, build, query
from faiss_index_gen.indexing.splitter import (
    Chunk,
    SplitterType,
    TextChunker,
    chunk_text_fixed,
    make_chunk_id,
    split_text,
    split_text_by_file_type,
)
from faiss_index_gen.indexing.vector_store import (
    BuildResult,
    FaissIndex,
    IndexEntry,
    IndexStats,
    MetricType,
    SearchResult,
    VectorIndexStore,
    build_index,
    metadata_path_for,
)

__all__ = [
    "BuildReport",
    "BuildResult",
    "ChangeSet",
    "Chunk",
    "DocumentCache",
    "EmbeddingClient",
    "FaissIndex",
    "HealthStatus",
    "IndexBuilder",
    "IndexEntry",
    "IndexStats",
    "MetricType",
    "SearchResult",
    "SplitterType",
    "TextChunker",
    "VectorIndexStore",
    "build",
    "build_index",
    "chunk_text_fixed",
    "compute_digest",
    "detect_changes",
    "generate_doc_cache",
    "make_chunk_id",
    "metadata_path_for",
    "query",
    "split_text",
    "split_text_by_file_type",
]
