"""Shared fixtures: an in-process embedder so no Ollama server is needed."""

import hashlib

import numpy as np
import pytest

from faiss_index_gen.indexing.embedder import EmbeddingClient, HealthStatus
from faiss_index_gen.errors import ServiceUnavailableError

DIM = 8
FAKE_DIMENSIONS = {"fake-embed": DIM}


class FakeEmbedder(EmbeddingClient):
    """Deterministic embeddings derived from a hash of the text."""

    def __init__(self, dimension: int = DIM, healthy: bool = True, fail_on: str | None = None):
        super().__init__(model="fake-embed")
        self.dimension = dimension
        self.healthy = healthy
        self.fail_on = fail_on
        self.calls: list[str] = []

    def embed(self, text: str) -> np.ndarray:
        self.calls.append(text)
        if self.fail_on is not None and self.fail_on in text:
            raise ServiceUnavailableError("Ollama not running", hint="Start with: ollama serve")
        seed = int(hashlib.md5(text.encode()).hexdigest()[:8], 16)
        return np.random.default_rng(seed).normal(size=self.dimension).astype(np.float32)

    def health_check(self) -> HealthStatus:
        if self.healthy:
            return HealthStatus(ok=True, message="Ollama ready with fake-embed")
        error = ServiceUnavailableError("Ollama not running at fake", hint="Start with: ollama serve")
        return HealthStatus(ok=False, message=str(error), error=error)


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def docs_dir(tmp_path):
    """Two small text files, one chunk each."""
    docs = tmp_path / "docs"
    docs.mkdir()
    (docs / "orders.txt").write_text("Orders can be filtered by status and date.")
    (docs / "users.txt").write_text("Users log in with email and password.")
    return docs
