"""
Document Change Cache

Content-hash based change detection for a directory of documents.
Hashes are stored as JSON so a later build can tell which files were
added, modified, removed or left untouched.

Format (doc_index_cache.json):
    {
      "guide.md": "b10a8db164e0754105b7a99be72e3fe5",
      "notes/todo.txt": "..."
    }

Keys are paths relative to the scanned directory (POSIX separators).
For a non-recursive scan this is just the file name.
"""

import hashlib
import json
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from faiss_index_gen.errors import DirectoryNotFoundError, DocumentNotFoundError

# Read files in 8KB blocks when hashing
READ_BLOCK_SIZE = 8192


def normalize_extensions(extensions: Iterable[str] | None) -> set[str] | None:
    """Lower-case extensions and make sure they start with a dot."""
    if not extensions:
        return None
    normalized = set()
    for ext in extensions:
        ext = ext.strip().lower()
        if not ext:
            continue
        normalized.add(ext if ext.startswith(".") else f".{ext}")
    return normalized or None


def iter_files(
    directory: Path,
    extensions: Iterable[str] | None = None,
    recursive: bool = False,
) -> Iterator[Path]:
    """
    Yield files under a directory in a stable (sorted) order.

    Hidden entries (name starting with ".") are skipped.

    Args:
        directory: Directory to scan
        extensions: Allowed extensions (None = all files)
        recursive: Descend into subdirectories

    Yields:
        File paths
    """
    allowed = normalize_extensions(extensions)

    for entry in sorted(directory.iterdir(), key=lambda p: p.name):
        if entry.name.startswith("."):
            continue
        if entry.is_dir():
            if recursive:
                yield from iter_files(entry, allowed, recursive)
        elif entry.is_file():
            if allowed and entry.suffix.lower() not in allowed:
                continue
            yield entry


def compute_digest(path: Path | str) -> str:
    """
    Compute the MD5 digest of a file without loading it into memory.

    Args:
        path: File to hash

    Returns:
        32-character hex digest
    """
    path = Path(path)
    if not path.is_file():
        raise DocumentNotFoundError(path)

    digest = hashlib.md5()
    with path.open("rb") as f:
        for block in iter(lambda: f.read(READ_BLOCK_SIZE), b""):
            digest.update(block)
    return digest.hexdigest()


@dataclass
class ChangeSet:
    """Result of comparing a directory against a previous cache."""

    added: list[str] = field(default_factory=list)
    modified: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.modified or self.removed)

    def summary(self) -> str:
        return (
            f"{len(self.added)} added, {len(self.modified)} modified, "
            f"{len(self.removed)} removed, {len(self.unchanged)} unchanged"
        )


class DocumentCache:
    """
    Builds, loads and diffs document hash caches.

    Usage:
        cache = DocumentCache(extensions=[".md", ".txt"])
        cache.build(Path("./docs"), Path("./out/doc_index_cache.json"))
        changes = cache.diff(Path("./docs"), cache.load(path))
    """

    def __init__(
        self,
        extensions: Iterable[str] | None = None,
        recursive: bool = False,
    ):
        """
        Initialize cache generator.

        Args:
            extensions: File extensions to include (None = all)
            recursive: Scan subdirectories
        """
        self.extensions = normalize_extensions(extensions)
        self.recursive = recursive

    def scan(self, directory: Path | str) -> dict[str, str]:
        """Hash every matching file under a directory (nothing is written)."""
        directory = Path(directory)
        if not directory.is_dir():
            raise DirectoryNotFoundError(directory)

        hashes: dict[str, str] = {}
        for file_path in iter_files(directory, self.extensions, self.recursive):
            key = file_path.relative_to(directory).as_posix()
            hashes[key] = compute_digest(file_path)

        logger.debug(f"Hashed {len(hashes)} files in {directory}")
        return hashes

    def build(self, directory: Path | str, output_path: Path | str) -> dict[str, str]:
        """
        Generate and save the cache for a directory.

        Args:
            directory: Directory to scan
            output_path: JSON file to write

        Returns:
            Mapping of file key to digest
        """
        return self.save(self.scan(directory), output_path)

    @staticmethod
    def save(hashes: dict[str, str], output_path: Path | str) -> dict[str, str]:
        """Write a previously scanned cache."""
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(json.dumps(hashes, indent=2), encoding="utf-8")

        logger.info(f"Saved document cache with {len(hashes)} files to {output_path}")
        return hashes

    @staticmethod
    def load(cache_path: Path | str) -> dict[str, str] | None:
        """Load a cache file. Returns None if it does not exist."""
        cache_path = Path(cache_path)
        if not cache_path.exists():
            return None
        return json.loads(cache_path.read_text(encoding="utf-8"))

    def diff(
        self,
        directory: Path | str,
        previous: dict[str, str] | None,
        current: dict[str, str] | None = None,
    ) -> ChangeSet:
        """
        Detect changes between a directory and a previous cache.

        Args:
            directory: Directory to scan
            previous: Previously saved cache (None = no prior state)
            current: Result of scan(directory), if already computed

        Returns:
            ChangeSet partitioning current and previous keys
        """
        previous = previous or {}
        if current is None:
            current = self.scan(directory)
        changes = ChangeSet()

        for key, digest in current.items():
            if key not in previous:
                changes.added.append(key)
            elif previous[key] != digest:
                changes.modified.append(key)
            else:
                changes.unchanged.append(key)

        changes.removed = sorted(key for key in previous if key not in current)

        logger.debug(f"Change detection for {directory}: {changes.summary()}")
        return changes


def generate_doc_cache(
    directory: Path | str,
    output_path: Path | str,
    extensions: Iterable[str] | None = None,
    recursive: bool = False,
) -> dict[str, str]:
    """Convenience wrapper around DocumentCache.build()."""
    return DocumentCache(extensions, recursive).build(directory, output_path)


def detect_changes(
    directory: Path | str,
    previous: dict[str, str] | None,
    extensions: Iterable[str] | None = None,
    recursive: bool = False,
) -> ChangeSet:
    """Convenience wrapper around DocumentCache.diff()."""
    return DocumentCache(extensions, recursive).diff(directory, previous)
