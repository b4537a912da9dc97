"""faiss-index-gen: build FAISS indexes from documents with Ollama embeddings."""

__version__ = "1.0.0"

__all__ = ["IndexBuilder", "VectorIndexStore", "build", "query", "__version__"]


def __getattr__(name: str):
    if name in ("IndexBuilder", "VectorIndexStore", "build", "query"):
        from faiss_index_gen import indexing
        return getattr(indexing, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
