"""
Text Splitter

Splits document text into overlapping windows sized for the embedding
model, preferring natural boundaries (paragraphs, lines, sentences, code
constructs) over arbitrary character offsets.

Strategies:
- recursive: paragraphs -> lines -> sentences -> words -> characters
- character: flat split on blank lines
- markdown:  headings, code fences and rules first
- code:      language-specific separators (functions, classes, ...)
- fixed:     fixed-width windows, no structure awareness

Structure-aware strategies use langchain-text-splitters.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PurePath

from langchain_text_splitters import (
    CharacterTextSplitter,
    Language,
    MarkdownTextSplitter,
    RecursiveCharacterTextSplitter,
    TextSplitter,
)
from loguru import logger

from faiss_index_gen.errors import ConfigurationError


DEFAULT_CHUNK_SIZE = 1500
DEFAULT_CHUNK_OVERLAP = 200

RECURSIVE_SEPARATORS = ["\n\n", "\n", ". ", " ", ""]


class SplitterType(str, Enum):
    """Available splitting strategies."""
    RECURSIVE = "recursive"
    CHARACTER = "character"
    MARKDOWN = "markdown"
    CODE = "code"
    FIXED = "fixed"


# Language hint / file extension -> separator set
CODE_LANGUAGES: dict[str, Language] = {
    "js": Language.JS,
    "jsx": Language.JS,
    "mjs": Language.JS,
    "javascript": Language.JS,
    "ts": Language.TS,
    "tsx": Language.TS,
    "typescript": Language.TS,
    "py": Language.PYTHON,
    "python": Language.PYTHON,
    "java": Language.JAVA,
    "go": Language.GO,
    "rs": Language.RUST,
    "rust": Language.RUST,
    "cpp": Language.CPP,
    "cc": Language.CPP,
    "hpp": Language.CPP,
    "c": Language.CPP,
    "h": Language.CPP,
}

MARKDOWN_EXTENSIONS = {"md", "markdown"}


@dataclass
class Chunk:
    """A window of text taken from one document."""

    doc: str  # Relative path of the source document
    text: str
    index: int  # Position within the document
    chunk_id: str

    def to_dict(self) -> dict:
        """Pre-build metadata record."""
        return {
            "doc": self.doc,
            "chunk": self.text,
            "chunk_id": self.chunk_id,
        }


def make_chunk_id(relative_path: str, index: int) -> str:
    """
    Derive a chunk identifier from a document path and sequence number.

    Path separators become underscores and the extension is dropped:
    "guides/setup.md", 2 -> "guides_setup_2".
    """
    base = relative_path.replace("/", "_").replace("\\", "_")
    suffix = PurePath(base).suffix
    if suffix and base != suffix:
        base = base[: -len(suffix)]
    return f"{base}_{index}"


def chunk_text_fixed(
    text: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
) -> list[str]:
    """
    Split text into fixed-width windows.

    Each window starts chunk_size - chunk_overlap characters after the
    previous one. Splitting stops once the rest of the text is already
    contained in the last window's overlap.
    """
    _validate_sizes(chunk_size, chunk_overlap)

    chunks = []
    start = 0
    while start < len(text):
        end = min(start + chunk_size, len(text))
        chunks.append(text[start:end])
        start = end - chunk_overlap
        if start + chunk_overlap >= len(text):
            break
    return chunks


def _validate_sizes(chunk_size: int, chunk_overlap: int) -> None:
    if chunk_size <= 0:
        raise ConfigurationError(f"chunk_size must be positive, got {chunk_size}")
    if chunk_overlap < 0:
        raise ConfigurationError(f"chunk_overlap must not be negative, got {chunk_overlap}")
    if chunk_overlap >= chunk_size:
        raise ConfigurationError(
            f"chunk_overlap ({chunk_overlap}) must be smaller than chunk_size ({chunk_size})",
            hint="A window that never advances would never finish",
        )


def _extension(path: str | Path) -> str:
    return PurePath(path).suffix.lower().lstrip(".")


class TextChunker:
    """
    Split text into overlapping chunks.

    Usage:
        chunker = TextChunker(chunk_size=1000, chunk_overlap=100)
        chunks = chunker.split(text)

        # Pick a strategy from the file extension
        chunker = TextChunker.for_file("src/app.py")
    """

    def __init__(
        self,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
        splitter: SplitterType | str = SplitterType.RECURSIVE,
        language: str | None = None,
    ):
        """
        Initialize chunker.

        Args:
            chunk_size: Target chunk length in characters
            chunk_overlap: Characters shared by consecutive chunks
            splitter: Strategy name (see SplitterType)
            language: Language hint for the code strategy
        """
        _validate_sizes(chunk_size, chunk_overlap)

        try:
            self.splitter_type = SplitterType(splitter)
        except ValueError:
            valid = ", ".join(t.value for t in SplitterType)
            raise ConfigurationError(
                f"Unknown splitter type: {splitter}", hint=f"Valid types: {valid}"
            ) from None

        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.language = language.lower() if language else None
        self._splitter = self._create_splitter()

    def _create_splitter(self) -> TextSplitter | None:
        """Build the langchain splitter for the configured strategy."""
        sizes = {"chunk_size": self.chunk_size, "chunk_overlap": self.chunk_overlap}

        if self.splitter_type is SplitterType.FIXED:
            return None

        if self.splitter_type is SplitterType.CHARACTER:
            return CharacterTextSplitter(separator="\n\n", **sizes)

        if self.splitter_type is SplitterType.MARKDOWN:
            return MarkdownTextSplitter(**sizes)

        if self.splitter_type is SplitterType.CODE:
            language = CODE_LANGUAGES.get(self.language or "")
            if language is not None:
                return RecursiveCharacterTextSplitter.from_language(language, **sizes)
            logger.debug(f"No separators for language {self.language!r}, using recursive")

        return RecursiveCharacterTextSplitter(separators=RECURSIVE_SEPARATORS, **sizes)

    @classmethod
    def for_file(
        cls,
        file_path: str | Path,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
        splitter: SplitterType | str = SplitterType.RECURSIVE,
    ) -> "TextChunker":
        """
        Create a chunker suited to a file type.

        Markdown files get the markdown strategy, recognized source files
        get the code strategy for their language, everything else uses
        the requested default.
        """
        ext = _extension(file_path)

        if ext in MARKDOWN_EXTENSIONS:
            return cls(chunk_size, chunk_overlap, SplitterType.MARKDOWN)
        if ext in CODE_LANGUAGES:
            return cls(chunk_size, chunk_overlap, SplitterType.CODE, language=ext)
        return cls(chunk_size, chunk_overlap, splitter)

    def split(self, text: str) -> list[str]:
        """
        Split text into chunks.

        Args:
            text: Text to split

        Returns:
            Ordered list of chunks (a single chunk if text fits)
        """
        if not text:
            return []

        if len(text) <= self.chunk_size:
            return [text]

        if self._splitter is None:
            return chunk_text_fixed(text, self.chunk_size, self.chunk_overlap)

        return self._splitter.split_text(text)

    def chunk_document(self, text: str, relative_path: str) -> list[Chunk]:
        """Split a document and assign chunk ids."""
        return [
            Chunk(
                doc=relative_path,
                text=piece,
                index=i,
                chunk_id=make_chunk_id(relative_path, i),
            )
            for i, piece in enumerate(self.split(text))
        ]

    def __repr__(self) -> str:
        lang = f", language={self.language!r}" if self.language else ""
        return (
            f"TextChunker(chunk_size={self.chunk_size}, "
            f"chunk_overlap={self.chunk_overlap}, "
            f"splitter={self.splitter_type.value!r}{lang})"
        )


def split_text(
    text: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
    splitter: SplitterType | str = SplitterType.RECURSIVE,
    language: str | None = None,
) -> list[str]:
    """Split text with the given strategy."""
    return TextChunker(chunk_size, chunk_overlap, splitter, language).split(text)


def split_text_by_file_type(
    text: str,
    file_path: str | Path,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
    splitter: SplitterType | str = SplitterType.RECURSIVE,
) -> list[str]:
    """Split text with the strategy matching a file's extension."""
    return TextChunker.for_file(file_path, chunk_size, chunk_overlap, splitter).split(text)
