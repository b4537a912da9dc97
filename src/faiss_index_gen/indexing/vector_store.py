"""
Vector Index for Document Chunks

Uses FAISS for similarity search and keeps a JSON list of chunk metadata
aligned with the vectors: entry i describes the vector stored at FAISS
position i.

Structure:
    faiss_output/
    ├── index.bin             # FAISS index (IndexFlatIP or IndexFlatL2)
    └── index_metadata.json   # [{id, doc, chunk_id, chunk, ...}]
"""

import json
import os
import tempfile
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import asdict, dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

import faiss
import numpy as np
from loguru import logger
from pydantic import BaseModel, ConfigDict

from faiss_index_gen.config import DEFAULT_DIMENSION, EMBEDDING_DIMENSIONS
from faiss_index_gen.errors import (
    ConfigurationError,
    DimensionMismatchError,
    DocumentNotFoundError,
    EmptyIndexError,
    IndexNotFoundError,
    MetadataMismatchError,
)
from faiss_index_gen.indexing.embedder import EmbeddingClient, ProgressCallback


class MetricType(str, Enum):
    """Similarity metric of the index."""
    IP = "IP"  # Inner product (cosine similarity with normalized vectors)
    L2 = "L2"  # Euclidean distance


_FAISS_METRICS = {
    MetricType.IP: faiss.METRIC_INNER_PRODUCT,
    MetricType.L2: faiss.METRIC_L2,
}

# Core metadata keys; everything else in an input item is carried through
_CORE_FIELDS = ("doc", "chunk_id", "chunk")


class IndexEntry(BaseModel):
    """Metadata for one stored vector."""

    model_config = ConfigDict(extra="allow")

    id: int
    doc: str | None = None
    chunk_id: str | None = None
    chunk: str = ""


@dataclass
class SearchResult:
    """One nearest neighbour."""
    id: int
    score: float
    doc: str | None = None
    chunk_id: str | None = None
    chunk: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class BuildResult:
    """Outcome of VectorIndexStore.build()."""
    vectors: int
    elapsed: float  # seconds


@dataclass
class IndexStats:
    """Read-only snapshot of a store."""
    vectors: int
    dimension: int
    metric: str
    model: str
    endpoint: str

    def to_dict(self) -> dict:
        return asdict(self)


def metadata_path_for(index_path: Path | str) -> Path:
    """Sibling metadata file: index.bin -> index_metadata.json."""
    index_path = Path(index_path)
    return index_path.with_name(f"{index_path.stem}_metadata.json")


def _atomic_target(path: Path) -> Path:
    """Temporary file in the destination directory, replaced into place later."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    os.close(fd)
    return Path(tmp)


class SimilarityIndex(Protocol):
    """Nearest-neighbour engine used by VectorIndexStore."""

    metric: MetricType
    dimension: int

    @property
    def ntotal(self) -> int: ...

    def append(self, vector: np.ndarray) -> int: ...

    def search(self, vector: np.ndarray, k: int) -> list[tuple[int, float]]: ...

    def serialize(self, path: Path) -> None: ...

    @classmethod
    def deserialize(
        cls, path: Path, metric: MetricType, dimension: int | None = None
    ) -> "SimilarityIndex": ...


class FaissIndex:
    """
    Flat FAISS index with ordinal ids.

    Vectors get consecutive ids starting at 0 in insertion order.
    """

    def __init__(self, metric: MetricType, dimension: int, index: Any = None):
        self.metric = MetricType(metric)
        self.dimension = dimension

        if index is None:
            if self.metric is MetricType.L2:
                index = faiss.IndexFlatL2(dimension)
            else:
                index = faiss.IndexFlatIP(dimension)
        self._index = index

    @property
    def ntotal(self) -> int:
        return self._index.ntotal

    def append(self, vector: np.ndarray) -> int:
        """Add one vector and return its ordinal id."""
        vector = np.asarray(vector, dtype=np.float32).reshape(1, -1)
        if vector.shape[1] != self.dimension:
            raise DimensionMismatchError(self.dimension, vector.shape[1])

        self._index.add(vector)
        return self._index.ntotal - 1

    def search(self, vector: np.ndarray, k: int) -> list[tuple[int, float]]:
        """Return (ordinal id, score) pairs, best first, without -1 labels."""
        vector = np.asarray(vector, dtype=np.float32).reshape(1, -1)
        if vector.shape[1] != self.dimension:
            raise DimensionMismatchError(self.dimension, vector.shape[1])

        k = min(k, self._index.ntotal)
        if k <= 0:
            return []

        scores, labels = self._index.search(vector, k)
        return [
            (int(label), float(score))
            for score, label in zip(scores[0], labels[0])
            if label >= 0
        ]

    def serialize(self, path: Path) -> None:
        faiss.write_index(self._index, str(path))

    @classmethod
    def deserialize(cls, path: Path, metric: MetricType, dimension: int | None = None) -> "FaissIndex":
        """Read an index and check that it was created with the expected metric."""
        index = faiss.read_index(str(path))

        expected = _FAISS_METRICS[MetricType(metric)]
        if index.metric_type != expected:
            found = "IP" if index.metric_type == faiss.METRIC_INNER_PRODUCT else "L2"
            raise ConfigurationError(
                f"Index {path} was built with metric {found}, not {MetricType(metric).value}",
                hint=f"Load it with index type {found}",
            )
        if dimension is not None and index.d != dimension:
            raise DimensionMismatchError(dimension, index.d)

        return cls(metric, index.d, index=index)


class VectorIndexStore:
    """
    FAISS-backed store for document chunks.

    Features:
    - Build from chunk metadata (embedding each chunk through Ollama)
    - Persistence to disk (index + aligned JSON metadata)
    - Similarity search by query text

    Usage:
        store = VectorIndexStore(EmbeddingClient())
        store.build(metadata, Path("out/index.bin"))
        results = store.search("find orders by status", k=5)
    """

    # Backend used for new and loaded indexes
    index_class: type[SimilarityIndex] = FaissIndex

    def __init__(
        self,
        embedder: EmbeddingClient,
        metric: MetricType | str = MetricType.IP,
        dimension: int | None = None,
        model_dimensions: Mapping[str, int] | None = None,
    ):
        """
        Initialize vector store.

        Args:
            embedder: Embedding client used for chunks and queries
            metric: "IP" (cosine) or "L2" (euclidean)
            dimension: Vector dimension (default: looked up from the model)
            model_dimensions: Model name -> dimension map
        """
        try:
            self.metric = MetricType(metric)
        except ValueError:
            raise ConfigurationError(
                f"Unknown index type: {metric}", hint="Use IP or L2"
            ) from None

        self.embedder = embedder

        if dimension is None:
            dimensions = EMBEDDING_DIMENSIONS if model_dimensions is None else model_dimensions
            dimension = dimensions.get(embedder.model)
            if dimension is None:
                logger.warning(
                    f"Unknown dimension for model {embedder.model!r}, "
                    f"assuming {DEFAULT_DIMENSION}"
                )
                dimension = DEFAULT_DIMENSION
        self.dimension = dimension

        self._index: SimilarityIndex | None = None
        self._entries: list[IndexEntry] = []

    @property
    def size(self) -> int:
        """Number of vectors in index."""
        return self._index.ntotal if self._index is not None else 0

    @property
    def entries(self) -> list[IndexEntry]:
        return list(self._entries)

    def _new_index(self) -> SimilarityIndex:
        return self.index_class(self.metric, self.dimension)

    def _read_index(self, index_path: Path) -> SimilarityIndex:
        return self.index_class.deserialize(index_path, self.metric, self.dimension)

    def _embed(self, text: str) -> np.ndarray:
        """Embed and normalize; used for both chunks and queries."""
        return self.embedder.normalize(self.embedder.embed(text))

    def build(
        self,
        items: Sequence[Mapping[str, Any]],
        output_path: Path | str,
        on_progress: ProgressCallback | None = None,
    ) -> BuildResult:
        """
        Build the index from chunk metadata and save it.

        Blank chunks are skipped. Nothing is written (and the store keeps
        its previous state) if any embedding fails.

        Args:
            items: Sequence of {"doc", "chunk", "chunk_id", ...} dicts
            output_path: Path of the index file; metadata goes next to it
            on_progress: Called with (processed, total) after every item

        Returns:
            BuildResult with vector count and elapsed seconds
        """
        self.embedder.health_check().raise_for_status()

        if not items:
            raise EmptyIndexError("No chunks to index")

        index = self._new_index()
        entries: list[IndexEntry] = []
        total = len(items)
        skipped = 0
        start = time.perf_counter()

        logger.info(f"Embedding {total} chunks with {self.embedder.model} ({self.metric.value})")

        for i, item in enumerate(items, start=1):
            text = item.get("chunk") or ""

            if text.strip():
                ordinal = index.append(self._embed(text))
                extra = {k: v for k, v in item.items() if k not in _CORE_FIELDS and k != "id"}
                entries.append(IndexEntry.model_validate({
                    "id": ordinal,
                    "doc": item.get("doc"),
                    "chunk_id": item.get("chunk_id"),
                    "chunk": text,
                    **extra,
                }))
                if ordinal != len(entries) - 1:
                    raise MetadataMismatchError(
                        f"Index returned ordinal {ordinal} for entry {len(entries) - 1}"
                    )
            else:
                skipped += 1
                logger.debug(f"Skipping blank chunk {item.get('chunk_id')!r}")

            if on_progress:
                on_progress(i, total)

        if skipped:
            logger.info(f"Skipped {skipped} blank chunks")
        if not entries:
            logger.warning("All chunks were blank; saving an empty index")

        self._save(index, entries, Path(output_path))
        self._index = index
        self._entries = entries

        elapsed = time.perf_counter() - start
        logger.success(f"Built index with {index.ntotal} vectors in {elapsed:.2f}s")

        return BuildResult(vectors=index.ntotal, elapsed=elapsed)

    def build_from_file(
        self,
        metadata_path: Path | str,
        output_path: Path | str,
        on_progress: ProgressCallback | None = None,
    ) -> BuildResult:
        """Build from a pre-build metadata.json file."""
        metadata_path = Path(metadata_path)
        if not metadata_path.exists():
            raise DocumentNotFoundError(metadata_path)

        items = json.loads(metadata_path.read_text(encoding="utf-8"))
        if not isinstance(items, list) or not items:
            raise ConfigurationError(f"Metadata must be a non-empty array: {metadata_path}")

        return self.build(items, output_path, on_progress)

    def _save(self, index: SimilarityIndex, entries: list[IndexEntry], index_path: Path) -> None:
        """
        Write index and metadata to temp files, then move them into place.

        Metadata is moved first. The two renames are not atomic as a pair: if
        the second one fails the directory holds new metadata next to the old
        index, which load() rejects when the lengths differ.
        """
        metadata_path = metadata_path_for(index_path)
        tmp_index = _atomic_target(index_path)
        tmp_metadata = _atomic_target(metadata_path)

        try:
            index.serialize(tmp_index)
            tmp_metadata.write_text(
                json.dumps([e.model_dump() for e in entries], indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
            os.replace(tmp_metadata, metadata_path)
            os.replace(tmp_index, index_path)
        finally:
            tmp_index.unlink(missing_ok=True)
            tmp_metadata.unlink(missing_ok=True)

        logger.info(f"Saved index to {index_path} and metadata to {metadata_path}")

    def load(
        self,
        index_path: Path | str,
        metadata_path: Path | str | None = None,
    ) -> "VectorIndexStore":
        """
        Load a saved index.

        Args:
            index_path: Path to index.bin
            metadata_path: Path to the metadata JSON (optional; without it
                search results carry only ids and scores)

        Returns:
            self
        """
        index_path = Path(index_path)
        if not index_path.exists():
            raise IndexNotFoundError(index_path, hint="Run the build command first")

        index = self._read_index(index_path)

        entries: list[IndexEntry] = []
        if metadata_path is not None:
            metadata_path = Path(metadata_path)
            if metadata_path.exists():
                raw = json.loads(metadata_path.read_text(encoding="utf-8"))
                entries = [IndexEntry.model_validate(item) for item in raw]
                if len(entries) != index.ntotal:
                    raise MetadataMismatchError(
                        f"Metadata has {len(entries)} entries but index has "
                        f"{index.ntotal} vectors",
                        hint="Rebuild the index",
                    )
            else:
                logger.warning(f"Metadata not found: {metadata_path}")

        self._index = index
        self._entries = entries

        logger.info(f"Loaded index with {index.ntotal} vectors from {index_path}")
        return self

    def search(self, query: str, k: int = 5) -> list[SearchResult]:
        """
        Search for chunks similar to a query.

        Args:
            query: Query text
            k: Number of results to return

        Returns:
            Results ordered best first (at most min(k, size))
        """
        if self._index is None or self._index.ntotal == 0:
            raise EmptyIndexError("Index is empty or not loaded", hint="Build or load an index first")
        if k < 1:
            raise ConfigurationError(f"k must be at least 1, got {k}")

        query_vector = self._embed(query)
        hits = self._index.search(query_vector, min(k, self._index.ntotal))

        results = []
        for ordinal, score in hits:
            entry = self._entries[ordinal] if ordinal < len(self._entries) else None
            if entry is None:
                results.append(SearchResult(id=ordinal, score=score))
                continue
            results.append(SearchResult(
                id=ordinal,
                score=score,
                doc=entry.doc,
                chunk_id=entry.chunk_id,
                chunk=entry.chunk,
            ))

        logger.debug(f"Search for {query[:50]!r} returned {len(results)} results")
        return results

    def get_stats(self) -> IndexStats:
        """Get index statistics."""
        return IndexStats(
            vectors=self.size,
            dimension=self.dimension,
            metric=self.metric.value,
            model=self.embedder.model,
            endpoint=self.embedder.endpoint,
        )


def build_index(
    metadata_path: Path | str,
    output_path: Path | str,
    embedder: EmbeddingClient | None = None,
    metric: MetricType | str = MetricType.IP,
    dimension: int | None = None,
    on_progress: Callable[[int, int], None] | None = None,
) -> BuildResult:
    """Build an index from a metadata.json file."""
    store = VectorIndexStore(embedder or EmbeddingClient(), metric=metric, dimension=dimension)
    return store.build_from_file(metadata_path, output_path, on_progress)
