"""
Exception hierarchy for faiss-index-gen.

Every error carries a human-readable message and, where the operator can do
something about it, a remediation hint (e.g. the command that starts Ollama).
"""


class FaissGenError(Exception):
    """Base exception for all faiss-index-gen errors."""

    def __init__(self, message: str, hint: str | None = None) -> None:
        self.message = message
        self.hint = hint
        super().__init__(message)

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message}. {self.hint}"
        return self.message


class ConfigurationError(FaissGenError):
    """Raised when options are invalid (e.g. overlap >= chunk size)."""


class DirectoryNotFoundError(FaissGenError):
    """Raised when a source directory does not exist."""

    def __init__(self, path) -> None:
        self.path = path
        super().__init__(f"Directory not found: {path}")


class DocumentNotFoundError(FaissGenError):
    """Raised when a file that must be read does not exist."""

    def __init__(self, path) -> None:
        self.path = path
        super().__init__(f"File not found: {path}")


class DuplicateChunkIdError(FaissGenError):
    """Raised when two chunks of one build derive the same identifier."""

    def __init__(self, chunk_id: str, doc: str | None = None) -> None:
        self.chunk_id = chunk_id
        self.doc = doc
        message = f"Duplicate chunk_id: {chunk_id}"
        if doc:
            message += f" (from {doc})"
        super().__init__(
            message,
            hint="Two source paths map to the same id; rename one of the files",
        )


# Embedding oracle

class EmbeddingServiceError(FaissGenError):
    """Base class for failures talking to the embedding server."""


class ServiceUnavailableError(EmbeddingServiceError):
    """Raised when the embedding server cannot be reached."""


class ModelNotFoundError(EmbeddingServiceError):
    """Raised when the configured model is not installed on the server."""

    def __init__(self, model: str, message: str | None = None) -> None:
        self.model = model
        super().__init__(
            message or f"Model '{model}' not found",
            hint=f"Run: ollama pull {model}",
        )


class MalformedResponseError(EmbeddingServiceError):
    """Raised when the server reply lacks the embedding payload."""


class EmbeddingTimeoutError(EmbeddingServiceError):
    """Raised when an embedding request exceeds its timeout."""


# Index state

class IndexStateError(FaissGenError):
    """Base class for index lifecycle errors."""


class EmptyIndexError(IndexStateError):
    """Raised when searching an index with no vectors."""


class IndexNotFoundError(IndexStateError):
    """Raised when a persisted index artifact is missing."""

    def __init__(self, path, hint: str | None = None) -> None:
        self.path = path
        super().__init__(f"Index not found: {path}", hint=hint)


class DimensionMismatchError(IndexStateError):
    """Raised when a vector does not match the index dimension."""

    def __init__(self, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Vector dimension {actual} does not match index dimension {expected}",
            hint="Check that the same embedding model is used for build and query",
        )


class MetadataMismatchError(IndexStateError):
    """Raised when loaded metadata is not aligned with the stored vectors."""
