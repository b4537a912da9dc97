"""
Ollama Embeddings Client

Turns text into fixed-length vectors through a running Ollama server
and provides the normalization used before indexing and querying.

Protocol:
    POST {endpoint}/api/embeddings  {"model": ..., "prompt": ...} -> {"embedding": [...]}
    GET  {endpoint}/api/tags        -> {"models": [{"name": ...}, ...]}

Requests are issued one at a time; the server is a separate process the
user starts with `ollama serve`.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass

import httpx
import numpy as np
from loguru import logger

from faiss_index_gen.config import DEFAULT_ENDPOINT, DEFAULT_MODEL
from faiss_index_gen.errors import (
    EmbeddingServiceError,
    EmbeddingTimeoutError,
    MalformedResponseError,
    ModelNotFoundError,
    ServiceUnavailableError,
)

ProgressCallback = Callable[[int, int], None]


@dataclass
class HealthStatus:
    """Result of an embedding server health check."""
    ok: bool
    message: str
    error: EmbeddingServiceError | None = None

    def raise_for_status(self) -> None:
        """Raise the underlying error if the check failed."""
        if self.error is not None:
            raise self.error
        if not self.ok:
            raise EmbeddingServiceError(self.message)


class EmbeddingClient:
    """
    Client for the Ollama embeddings API.

    Usage:
        with EmbeddingClient(model="nomic-embed-text") as client:
            client.health_check().raise_for_status()
            vector = client.normalize(client.embed("hello world"))
    """

    def __init__(
        self,
        endpoint: str = DEFAULT_ENDPOINT,
        model: str = DEFAULT_MODEL,
        timeout: float = 30.0,
        health_timeout: float = 5.0,
        embeddings_path: str = "/api/embeddings",
        models_path: str = "/api/tags",
        client: httpx.Client | None = None,
    ):
        """
        Initialize client.

        Args:
            endpoint: Ollama server URL
            model: Embedding model name
            timeout: Per-request timeout for embeddings (seconds)
            health_timeout: Timeout for the model listing (seconds)
            embeddings_path: Path of the embeddings endpoint
            models_path: Path of the model listing endpoint
            client: Optional pre-configured httpx client
        """
        self.endpoint = endpoint.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.health_timeout = health_timeout
        self.embeddings_path = embeddings_path
        self.models_path = models_path

        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout)
        return self._client

    @property
    def embeddings_url(self) -> str:
        return f"{self.endpoint}{self.embeddings_path}"

    @property
    def models_url(self) -> str:
        return f"{self.endpoint}{self.models_path}"

    def _unavailable(self, error: Exception) -> ServiceUnavailableError:
        return ServiceUnavailableError(
            f"Ollama not running at {self.endpoint} ({error})",
            hint="Start with: ollama serve",
        )

    def embed(self, text: str) -> np.ndarray:
        """
        Generate an embedding for one text.

        Args:
            text: Text to embed

        Returns:
            Embedding vector (float32)
        """
        try:
            response = self.client.post(
                self.embeddings_url,
                json={"model": self.model, "prompt": text},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise EmbeddingTimeoutError(
                f"Embedding request timed out after {self.timeout}s",
                hint="Increase the timeout or check the Ollama server load",
            ) from e
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                raise ModelNotFoundError(self.model) from e
            raise EmbeddingServiceError(
                f"Embedding failed: HTTP {e.response.status_code} from {self.embeddings_url}"
            ) from e
        except httpx.TransportError as e:
            raise self._unavailable(e) from e
        except httpx.HTTPError as e:
            raise EmbeddingServiceError(f"Embedding failed: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedResponseError("Invalid response: body is not JSON") from e

        embedding = data.get("embedding") if isinstance(data, dict) else None
        if not embedding:
            raise MalformedResponseError("Invalid response: missing embedding")

        return np.asarray(embedding, dtype=np.float32)

    def embed_batch(
        self,
        texts: Sequence[str],
        on_progress: ProgressCallback | None = None,
    ) -> list[np.ndarray]:
        """
        Embed texts one after another, in order.

        Args:
            texts: Texts to embed
            on_progress: Called with (completed, total) after each text

        Returns:
            Embeddings in input order
        """
        embeddings = []
        total = len(texts)

        for i, text in enumerate(texts, start=1):
            embeddings.append(self.embed(text))
            if on_progress:
                on_progress(i, total)

        logger.debug(f"Embedded {total} texts with {self.model}")
        return embeddings

    @staticmethod
    def normalize(vector: np.ndarray) -> np.ndarray:
        """
        Scale a vector to unit length.

        A zero vector is returned unchanged.
        """
        vector = np.asarray(vector, dtype=np.float32)
        norm = float(np.linalg.norm(vector))
        if norm == 0:
            return vector
        return vector / norm

    def health_check(self) -> HealthStatus:
        """
        Check that the server is reachable and has the model installed.

        Returns:
            HealthStatus (never raises for server problems)
        """
        try:
            response = self.client.get(self.models_url, timeout=self.health_timeout)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            error = EmbeddingServiceError(
                f"Model listing failed: HTTP {e.response.status_code} from {self.models_url}",
                hint="Check the Ollama endpoint and models path",
            )
            return HealthStatus(ok=False, message=str(error), error=error)
        except httpx.HTTPError as e:
            error = self._unavailable(e)
            return HealthStatus(ok=False, message=str(error), error=error)
        except ValueError as e:
            error = MalformedResponseError(f"Invalid model listing from {self.models_url}")
            return HealthStatus(ok=False, message=f"{error} ({e})", error=error)

        models = (data.get("models") if isinstance(data, dict) else None) or []
        names = [m.get("name", "") for m in models if isinstance(m, dict)]
        if not any(self._matches_model(name) for name in names):
            error = ModelNotFoundError(self.model)
            return HealthStatus(ok=False, message=str(error), error=error)

        return HealthStatus(ok=True, message=f"Ollama ready with {self.model}")

    def _matches_model(self, name: str) -> bool:
        """Match "nomic-embed-text" against "nomic-embed-text:latest"."""
        if name == self.model:
            return True
        base, _, _tag = name.partition(":")
        return base == self.model

    def close(self) -> None:
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None

    def __enter__(self) -> "EmbeddingClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
