from __future__ import annotations

import asyncio
import hashlib
import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from app.config import settings
from app.errors import UpstreamFailure

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"[a-z0-9]+")


class Embedder(Protocol):
  dimensions: int

  async def embed(self, texts: list[str]) -> list[list[float]]: ...


def _l2_normalize(vec: list[float]) -> list[float]:
  norm = math.sqrt(sum(x * x for x in vec))
  if norm == 0:
    return vec
  return [x / norm for x in vec]


@dataclass
class HashingEmbedder:
  """
  Offline embedder: signed feature hashing over word unigrams and bigrams.

  Texts sharing vocabulary land close together under cosine similarity, which
  is enough for local development and tests.
  """

  dimensions: int = 1024

  def _vector(self, text: str) -> list[float]:
    vec = [0.0] * self.dimensions
    tokens = _TOKEN_RE.findall((text or "").lower())
    features = tokens + [f"{a} {b}" for a, b in zip(tokens, tokens[1:])]
    for feat in features:
      digest = hashlib.blake2b(feat.encode("utf-8"), digest_size=8).digest()
      idx = int.from_bytes(digest[:4], "big") % self.dimensions
      vec[idx] += 1.0 if digest[4] & 1 else -1.0
    return _l2_normalize(vec)

  async def embed(self, texts: list[str]) -> list[list[float]]:
    return [self._vector(t) for t in texts]


@dataclass
class OpenAICompatibleEmbedder:
  api_key: str
  base_url: str
  model: str
  dimensions: int
  timeout: float = 60

  async def embed(self, texts: list[str]) -> list[list[float]]:
    headers = {"Authorization": f"Bearer {self.api_key}"}
    body: dict[str, Any] = {
      "model": self.model,
      "input": texts,
      "encoding_format": "float",
      "dimensions": self.dimensions,
    }
    try:
      async with httpx.AsyncClient(base_url=self.base_url, headers=headers, timeout=self.timeout) as client:
        r = await client.post("/embeddings", json=body)
        r.raise_for_status()
        data = r.json()
    except (httpx.HTTPError, ValueError) as exc:
      raise UpstreamFailure(f"Embedding request failed: {exc}") from exc
    rows = sorted(data.get("data") or [], key=lambda row: int(row.get("index", 0)))
    vectors = [list(row.get("embedding") or []) for row in rows]
    if len(vectors) != len(texts) or any(len(v) != self.dimensions for v in vectors):
      raise UpstreamFailure(f"Expected {len(texts)} embeddings of {self.dimensions} dimensions")
    return vectors


_embedder: Embedder | None = None
_embedder_lock = asyncio.Lock()


def _build_embedder() -> Embedder:
  dims = int(settings.embedding_dimensions)
  if settings.embedding_provider.lower() == "openai":
    if not settings.openai_api_key:
      raise RuntimeError("EMBEDDING_PROVIDER=openai requires OPENAI_API_KEY")
    return OpenAICompatibleEmbedder(
      api_key=settings.openai_api_key,
      base_url=settings.openai_base_url,
      model=settings.embedding_model,
      dimensions=dims,
      timeout=settings.openai_timeout_seconds,
    )
  return HashingEmbedder(dimensions=dims)


async def get_embedder() -> Embedder:
  """Process-wide embedder, built once on first use."""
  global _embedder
  if _embedder is not None:
    return _embedder
  async with _embedder_lock:
    if _embedder is None:
      logger.info("initializing %s embedder (%s dimensions)", settings.embedding_provider, settings.embedding_dimensions)
      _embedder = _build_embedder()
  return _embedder


def reset_embedder() -> None:
  global _embedder
  _embedder = None


def task_embedding_text(fields: dict[str, Any]) -> str:
  parts = [
    fields.get("title"),
    fields.get("description"),
    fields.get("category"),
    fields.get("priority"),
    fields.get("status"),
    fields.get("taskStatus"),
    fields.get("assignee"),
  ]
  return " ".join(str(p).strip() for p in parts if p and str(p).strip())


async def embed_one(text: str) -> list[float]:
  if not text.strip():
    raise ValueError("No text content available for embedding")
  embedder = await get_embedder()
  vectors = await embedder.embed([text])
  return vectors[0]
