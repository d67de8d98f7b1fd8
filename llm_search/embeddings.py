# Copyright (c) 2025 Dave Tofflemire, SigilDERG Project
# Licensed under the GNU Affero General Public License v3.0 (AGPLv3).
# Commercial licenses are available. Contact: davetmire85@gmail.com

"""
Embedding providers and the adapter the indexer and query path call.

Two provider kinds are supported:

- ``python``: a local interpreter running sentence-transformers, one child
  process per call, text on stdin and a JSON float array on stdout.
- ``ollama``: an Ollama HTTP service (``/api/embeddings``, probed via
  ``/api/tags``).

The provider is chosen once, when the engine is built; the indexing and query
code only ever see ``EmbeddingAdapter.embed``.
"""

from __future__ import annotations

import json
import logging
import subprocess
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

import httpx
import numpy as np

from .config import SearchConfig
from .errors import (EmbeddingParseError, EmbeddingShapeError,
                     ProviderUnavailableError, SearchConfigError)

logger = logging.getLogger(__name__)

# Rough estimate: 1 token ~ 4 characters
CHARS_PER_TOKEN = 4

PROVIDER_KINDS = ("python", "ollama")

EMBEDDING_SCRIPT = """
import sys
import json
try:
    from sentence_transformers import SentenceTransformer

    model = SentenceTransformer(sys.argv[1])
    text = sys.stdin.read().strip()
    embedding = model.encode(text, normalize_embeddings=True)
    print(json.dumps(embedding.tolist()))
except ImportError:
    print("ERROR: sentence-transformers not installed", file=sys.stderr)
    sys.exit(1)
except Exception as e:
    print(f"ERROR: {e}", file=sys.stderr)
    sys.exit(1)
"""

PROBE_SCRIPT = "import sentence_transformers; print('OK')"


def truncate_text(text: str, max_tokens: int) -> str:
    """Cut ``text`` to roughly ``max_tokens`` tokens (plain prefix cut)."""
    max_chars = max_tokens * CHARS_PER_TOKEN
    if max_tokens <= 0 or len(text) <= max_chars:
        return text
    return text[:max_chars]


def _parse_vector(payload: Any, source: str) -> list[float]:
    if not isinstance(payload, list):
        raise EmbeddingParseError(f"{source} returned {type(payload).__name__}, expected a list")
    try:
        return [float(v) for v in payload]
    except (TypeError, ValueError) as exc:
        raise EmbeddingParseError(f"{source} returned non-numeric values: {exc}") from exc


class EmbeddingProvider(ABC):
    """One way of turning text into a float vector."""

    name: str = "provider"

    @abstractmethod
    def embed_text(self, text: str) -> list[float]:
        """Return the raw embedding for ``text``."""

    @abstractmethod
    def check_available(self) -> None:
        """Raise ProviderUnavailableError when the provider cannot serve requests."""

    def is_available(self) -> bool:
        try:
            self.check_available()
        except ProviderUnavailableError as exc:
            logger.debug("Provider %s unavailable: %s", self.name, exc)
            return False
        return True

    def close(self) -> None:
        return None


class PythonEmbeddingProvider(EmbeddingProvider):
    """Runs sentence-transformers in a child interpreter for each call."""

    name = "python"

    def __init__(self, python_path: str = "python3", model: str = "all-MiniLM-L6-v2"):
        self.python_path = python_path
        self.model = model

    def _run(self, args: Sequence[str], stdin: str | None = None) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(
                [self.python_path, *args],
                input=stdin,
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as exc:
            raise ProviderUnavailableError(
                f"cannot run Python at {self.python_path}: {exc}"
            ) from exc

    def check_available(self) -> None:
        proc = self._run(["-c", PROBE_SCRIPT])
        if proc.returncode != 0 or "OK" not in proc.stdout:
            raise ProviderUnavailableError(
                "Python or sentence-transformers not available: "
                f"{(proc.stderr or proc.stdout).strip()}"
            )

    def embed_text(self, text: str) -> list[float]:
        proc = self._run(["-c", EMBEDDING_SCRIPT, self.model], stdin=text)
        if proc.returncode != 0:
            raise ProviderUnavailableError(
                f"Python script failed (exit {proc.returncode}): {proc.stderr.strip()}"
            )
        try:
            payload = json.loads(proc.stdout)
        except ValueError as exc:
            raise EmbeddingParseError(
                f"failed to parse embedding JSON: {exc}; output: {proc.stdout[:200]!r}"
            ) from exc
        return _parse_vector(payload, "Python embedding script")


class OllamaEmbeddingProvider(EmbeddingProvider):
    """Calls an Ollama service over HTTP."""

    name = "ollama"

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "all-minilm",
        timeout: float = 30.0,
        client: httpx.Client | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self._owns_client = client is None
        self.client = client or httpx.Client(timeout=timeout)

    def check_available(self) -> None:
        try:
            response = self.client.get(f"{self.base_url}/api/tags")
        except httpx.HTTPError as exc:
            raise ProviderUnavailableError(
                f"cannot connect to Ollama at {self.base_url}: {exc}"
            ) from exc
        if response.status_code != 200:
            raise ProviderUnavailableError(
                f"Ollama responded with status {response.status_code}"
            )

    def embed_text(self, text: str) -> list[float]:
        try:
            response = self.client.post(
                f"{self.base_url}/api/embeddings",
                json={"model": self.model, "prompt": text},
            )
        except httpx.HTTPError as exc:
            raise ProviderUnavailableError(f"Ollama API request failed: {exc}") from exc

        if response.status_code != 200:
            raise ProviderUnavailableError(
                f"Ollama API error (status {response.status_code}): {response.text[:200]}"
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise EmbeddingParseError(f"failed to parse Ollama response: {exc}") from exc
        if not isinstance(data, dict) or "embedding" not in data:
            raise EmbeddingParseError("Ollama response has no 'embedding' field")
        return _parse_vector(data["embedding"], "Ollama")

    def close(self) -> None:
        if self._owns_client:
            try:
                self.client.close()
            except Exception:
                logger.debug("Error closing Ollama HTTP client", exc_info=True)


def create_embedding_provider(kind: str, config: SearchConfig) -> EmbeddingProvider:
    """Build the provider implementation named by ``kind``."""
    if kind == "python":
        return PythonEmbeddingProvider(config.python_path, config.embedding_model)
    if kind == "ollama":
        return OllamaEmbeddingProvider(
            config.ollama_url, config.ollama_model, timeout=config.request_timeout
        )
    raise SearchConfigError(
        f"unknown embedding provider {kind!r} (expected one of {', '.join(PROVIDER_KINDS)})"
    )


def select_embedding_provider(config: SearchConfig) -> EmbeddingProvider:
    """Pick the provider for one engine instance.

    An explicit kind is built without probing. ``auto`` probes each candidate
    in ``provider_order`` and binds the first that responds; when none does the
    first candidate is used and later availability checks report the failure.
    """
    if config.embedding_provider != "auto":
        return create_embedding_provider(config.embedding_provider, config)

    candidates = [kind for kind in config.provider_order if kind in PROVIDER_KINDS]
    if not candidates:
        raise SearchConfigError("no usable embedding providers listed in provider_order")

    for kind in candidates:
        provider = create_embedding_provider(kind, config)
        if provider.is_available():
            logger.info("Using %s embedding provider", kind)
            return provider
        provider.close()

    logger.warning(
        "No embedding provider responded (tried %s); defaulting to %s",
        ", ".join(candidates),
        candidates[0],
    )
    return create_embedding_provider(candidates[0], config)


class EmbeddingAdapter:
    """Fixed-dimension embedding front end over a provider."""

    def __init__(self, provider: EmbeddingProvider, dimension: int, max_tokens: int = 200):
        self.provider = provider
        self.dimension = dimension
        self.max_tokens = max_tokens

    def check_available(self) -> None:
        self.provider.check_available()

    def embed(self, text: str) -> np.ndarray:
        """Embed ``text`` as a float32 vector of ``dimension`` entries.

        Blank input yields the zero vector without contacting the provider.
        """
        if not text.strip():
            return np.zeros(self.dimension, dtype=np.float32)

        vector = self.provider.embed_text(truncate_text(text, self.max_tokens))
        if len(vector) != self.dimension:
            raise EmbeddingShapeError(self.dimension, len(vector))
        return np.asarray(vector, dtype=np.float32)

    def close(self) -> None:
        self.provider.close()
