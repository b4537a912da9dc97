"""
Main Indexer

Orchestrates the indexing pipeline:
1. Hash source files (doc_cache.py)
2. Split files into chunks (splitter.py)
3. Embed chunks and store them in a FAISS index (vector_store.py)

Output directory:
    doc_index_cache.json    MD5 hashes for change detection
    metadata.json           Chunks before embedding (doc, chunk, chunk_id)
    index.bin               FAISS index
    index_metadata.json     Metadata aligned with the index vectors
    build_state.json        Digests and settings of the index on disk
"""

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from faiss_index_gen.config import (
    BUILD_STATE_FILENAME,
    DOC_CACHE_FILENAME,
    EMBEDDING_DIMENSIONS,
    INDEX_FILENAME,
    INDEX_METADATA_FILENAME,
    METADATA_FILENAME,
    Settings,
)
from faiss_index_gen.errors import (
    DirectoryNotFoundError,
    DuplicateChunkIdError,
    EmptyIndexError,
    FaissGenError,
    IndexNotFoundError,
)
from faiss_index_gen.indexing.doc_cache import ChangeSet, DocumentCache, iter_files
from faiss_index_gen.indexing.embedder import EmbeddingClient, ProgressCallback
from faiss_index_gen.indexing.splitter import TextChunker
from faiss_index_gen.indexing.vector_store import (
    BuildResult,
    SearchResult,
    VectorIndexStore,
)


@dataclass
class BuildReport:
    """Everything a build produced."""
    files: int
    chunks: int
    vectors: int
    elapsed: float
    changes: ChangeSet
    output_dir: Path
    skipped: bool = False
    chunks_per_file: dict[str, int] = field(default_factory=dict)


class IndexBuilder:
    """
    Build and query document indexes.

    Usage:
        builder = IndexBuilder(Settings(chunk_size=1000))
        report = builder.build("./documents", "./faiss_output")
        results = builder.query("./faiss_output", "find orders by status")
    """

    def __init__(
        self,
        settings: Settings | None = None,
        embedder: EmbeddingClient | None = None,
        model_dimensions: Mapping[str, int] | None = None,
    ):
        """
        Initialize indexer.

        Args:
            settings: Build/query options (default: Settings())
            embedder: Optional embedding client (default: built from settings)
            model_dimensions: Model name -> vector dimension
        """
        self.settings = settings or Settings()
        self.model_dimensions = (
            EMBEDDING_DIMENSIONS if model_dimensions is None else model_dimensions
        )

        # Fail early on bad chunk sizes / splitter names
        TextChunker(
            self.settings.chunk_size,
            self.settings.chunk_overlap,
            self.settings.splitter,
        )

        self.embedder = embedder or EmbeddingClient(
            endpoint=self.settings.endpoint,
            model=self.settings.model,
            timeout=self.settings.request_timeout,
            health_timeout=self.settings.health_timeout,
            embeddings_path=self.settings.embeddings_path,
            models_path=self.settings.models_path,
        )
        self.doc_cache = DocumentCache(
            extensions=self.settings.extensions,
            recursive=self.settings.recursive,
        )

    def _new_store(self) -> VectorIndexStore:
        return VectorIndexStore(
            self.embedder,
            metric=self.settings.metric,
            model_dimensions=self.model_dimensions,
        )

    def collect_files(self, input_dir: Path | str) -> list[Path]:
        """List source files matching the extension allow-list."""
        input_dir = Path(input_dir)
        if not input_dir.is_dir():
            raise DirectoryNotFoundError(input_dir)
        return list(iter_files(input_dir, self.settings.extensions, self.settings.recursive))

    def _read(self, file_path: Path) -> str:
        try:
            return file_path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            logger.warning(f"{file_path} is not valid UTF-8, reading as latin-1")
            return file_path.read_text(encoding="latin-1")

    def generate_metadata(self, input_dir: Path | str) -> list[dict]:
        """
        Chunk every source file into pre-build metadata.

        Args:
            input_dir: Directory with documents

        Returns:
            [{"doc", "chunk", "chunk_id"}] in file order, then chunk order
        """
        input_dir = Path(input_dir)
        metadata: list[dict] = []
        seen: set[str] = set()

        for file_path in self.collect_files(input_dir):
            relative_path = file_path.relative_to(input_dir).as_posix()
            chunker = TextChunker.for_file(
                file_path,
                self.settings.chunk_size,
                self.settings.chunk_overlap,
                self.settings.splitter,
            )
            chunks = chunker.chunk_document(self._read(file_path), relative_path)
            logger.debug(f"{relative_path}: {len(chunks)} chunk(s) via {chunker.splitter_type.value}")

            for chunk in chunks:
                if chunk.chunk_id in seen:
                    raise DuplicateChunkIdError(chunk.chunk_id, relative_path)
                seen.add(chunk.chunk_id)
                metadata.append(chunk.to_dict())

        return metadata

    def changes(self, input_dir: Path | str, output_dir: Path | str) -> ChangeSet:
        """Compare the sources with the cache saved by the last build."""
        previous = self.doc_cache.load(Path(output_dir) / DOC_CACHE_FILENAME)
        return self.doc_cache.diff(input_dir, previous)

    def build(
        self,
        input_dir: Path | str,
        output_dir: Path | str,
        on_progress: ProgressCallback | None = None,
        skip_unchanged: bool = False,
    ) -> BuildReport:
        """
        Build an index for a directory of documents.

        Args:
            input_dir: Directory with documents
            output_dir: Directory for the index files
            on_progress: Called with (processed, total) while embedding
            skip_unchanged: Keep the existing index if no file changed

        Returns:
            BuildReport
        """
        input_dir = Path(input_dir)
        output_dir = Path(output_dir)
        if not input_dir.is_dir():
            raise DirectoryNotFoundError(input_dir)

        output_dir.mkdir(parents=True, exist_ok=True)
        cache_path = output_dir / DOC_CACHE_FILENAME
        metadata_path = output_dir / METADATA_FILENAME
        index_path = output_dir / INDEX_FILENAME
        state_path = output_dir / BUILD_STATE_FILENAME

        logger.info(f"Indexing {input_dir} -> {output_dir}")

        # Step 1: change detection + document cache
        cache = self.doc_cache.scan(input_dir)
        changes = self.doc_cache.diff(input_dir, self.doc_cache.load(cache_path), current=cache)
        logger.info(f"Changes since last build: {changes.summary()}")

        if skip_unchanged:
            kept = self._reusable_index(output_dir, cache)
            if kept is not None:
                logger.info("No changes since the last successful build, keeping existing index")
                return BuildReport(
                    files=len(cache),
                    chunks=0,
                    vectors=kept.size,
                    elapsed=0.0,
                    changes=changes,
                    output_dir=output_dir,
                    skipped=True,
                )

        self.doc_cache.save(cache, cache_path)

        # Step 2: metadata
        metadata = self.generate_metadata(input_dir)
        metadata_path.write_text(
            json.dumps(metadata, indent=2, ensure_ascii=False), encoding="utf-8"
        )
        logger.info(f"Saved {len(metadata)} chunks to {metadata_path}")

        if not metadata:
            raise EmptyIndexError(
                f"No documents found to index in {input_dir}",
                hint=f"Looked for extensions: {', '.join(self.settings.extensions)}",
            )

        chunks_per_file: dict[str, int] = {}
        for item in metadata:
            chunks_per_file[item["doc"]] = chunks_per_file.get(item["doc"], 0) + 1

        # Step 3: embeddings + FAISS
        # The state file must only ever describe the index on disk
        state_path.unlink(missing_ok=True)
        result: BuildResult = self._new_store().build(metadata, index_path, on_progress)
        self._save_state(state_path, cache)

        return BuildReport(
            files=len(cache),
            chunks=len(metadata),
            vectors=result.vectors,
            elapsed=result.elapsed,
            changes=changes,
            output_dir=output_dir,
            chunks_per_file=chunks_per_file,
        )

    def build_settings(self) -> dict:
        """Options that change the vectors or chunks an index holds."""
        return {
            "model": self.settings.model,
            "dimension": self._new_store().dimension,
            "metric": self.settings.metric,
            "chunk_size": self.settings.chunk_size,
            "chunk_overlap": self.settings.chunk_overlap,
            "splitter": self.settings.splitter,
            "extensions": sorted(self.settings.extensions),
            "recursive": self.settings.recursive,
        }

    def _save_state(self, state_path: Path, cache: dict[str, str]) -> None:
        state = {"settings": self.build_settings(), "files": cache}
        state_path.write_text(json.dumps(state, indent=2), encoding="utf-8")
        logger.debug(f"Saved build state to {state_path}")

    @staticmethod
    def _load_state(state_path: Path) -> dict | None:
        if not state_path.exists():
            return None
        try:
            state = json.loads(state_path.read_text(encoding="utf-8"))
        except ValueError:
            logger.warning(f"Ignoring unreadable build state {state_path}")
            return None
        return state if isinstance(state, dict) else None

    def _reusable_index(self, output_dir: Path, cache: dict[str, str]) -> VectorIndexStore | None:
        """
        Return the existing index if it was built from these files with these settings.

        Compares against the state saved by the last successful build, not the
        document cache, which is also written by builds that later failed.
        """
        state = self._load_state(output_dir / BUILD_STATE_FILENAME)
        if state is None:
            logger.info("No successful build recorded, rebuilding")
            return None
        if state.get("settings") != self.build_settings():
            logger.info("Build settings changed since the last build, rebuilding")
            return None
        if state.get("files") != cache:
            logger.info("Documents changed since the last successful build, rebuilding")
            return None

        try:
            return self.load(output_dir)
        except (FaissGenError, RuntimeError, ValueError) as e:
            # faiss reports unreadable files as RuntimeError
            logger.warning(f"Existing index could not be loaded ({e}), rebuilding")
            return None

    def load(self, index_dir: Path | str) -> VectorIndexStore:
        """Load the index and metadata saved in a build output directory."""
        index_dir = Path(index_dir)
        index_path = index_dir / INDEX_FILENAME
        metadata_path = index_dir / INDEX_METADATA_FILENAME

        if not index_path.exists():
            raise IndexNotFoundError(index_path, hint=f"Run: faiss-gen build <input-dir> {index_dir}")
        if not metadata_path.exists():
            raise IndexNotFoundError(metadata_path, hint="Rebuild the index")

        return self._new_store().load(index_path, metadata_path)

    def query(self, index_dir: Path | str, text: str, k: int = 5) -> list[SearchResult]:
        """
        Search a built index.

        Args:
            index_dir: Directory containing index.bin and index_metadata.json
            text: Query text
            k: Number of results

        Returns:
            Results ordered best first
        """
        return self.load(index_dir).search(text, k)

    def close(self) -> None:
        self.embedder.close()


def build(
    input_dir: Path | str,
    output_dir: Path | str,
    on_progress: ProgressCallback | None = None,
    **overrides,
) -> BuildReport:
    """
    Build an index from documents.

    Keyword overrides are Settings fields, e.g. chunk_size=1000, recursive=True.
    """
    builder = IndexBuilder(Settings(**overrides))
    try:
        return builder.build(input_dir, output_dir, on_progress)
    finally:
        builder.close()


def query(
    index_dir: Path | str,
    text: str,
    k: int = 5,
    **overrides,
) -> list[SearchResult]:
    """Query an existing index (Settings fields accepted as overrides)."""
    builder = IndexBuilder(Settings(**overrides))
    try:
        return builder.query(index_dir, text, k)
    finally:
        builder.close()
