from __future__ import annotations

import math
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Protocol

import httpx

from app.config import settings


class VectorIndexError(RuntimeError):
  def __init__(self, *, status_code: int, message: str) -> None:
    super().__init__(message)
    self.status_code = status_code
    self.message = message


@dataclass
class VectorRecord:
  id: str
  values: list[float]
  metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class VectorMatch:
  id: str
  score: float
  metadata: dict[str, Any]


class VectorIndex(Protocol):
  async def upsert(self, records: list[VectorRecord]) -> None: ...

  async def query(self, *, vector: list[float], top_k: int, filter: dict[str, Any] | None = None) -> list[VectorMatch]: ...

  async def delete(self, ids: list[str]) -> None: ...


def _cosine(a: list[float], b: list[float]) -> float:
  dot = sum(x * y for x, y in zip(a, b))
  na = math.sqrt(sum(x * x for x in a))
  nb = math.sqrt(sum(y * y for y in b))
  if na == 0 or nb == 0:
    return 0.0
  return dot / (na * nb)


class LocalVectorIndex:
  """In-process cosine index with equality metadata filters."""

  def __init__(self) -> None:
    self._lock = Lock()
    self._records: dict[str, VectorRecord] = {}

  async def upsert(self, records: list[VectorRecord]) -> None:
    with self._lock:
      for rec in records:
        self._records[rec.id] = VectorRecord(id=rec.id, values=list(rec.values), metadata=dict(rec.metadata))

  async def query(self, *, vector: list[float], top_k: int, filter: dict[str, Any] | None = None) -> list[VectorMatch]:
    with self._lock:
      records = list(self._records.values())
    wanted = filter or {}
    scored = [
      VectorMatch(id=r.id, score=_cosine(vector, r.values), metadata=dict(r.metadata))
      for r in records
      if all(r.metadata.get(k) == v for k, v in wanted.items())
    ]
    scored.sort(key=lambda m: m.score, reverse=True)
    return scored[: max(0, int(top_k))]

  async def delete(self, ids: list[str]) -> None:
    with self._lock:
      for i in ids:
        self._records.pop(i, None)

  def get(self, record_id: str) -> VectorRecord | None:
    with self._lock:
      return self._records.get(record_id)

  def clear(self) -> None:
    with self._lock:
      self._records.clear()


@dataclass
class PineconeIndex:
  api_key: str
  host: str
  namespace: str = ""
  timeout: float = 30

  def httpx_client(self) -> httpx.AsyncClient:
    base = self.host if self.host.startswith(("http://", "https://")) else f"https://{self.host}"
    headers = {"Api-Key": self.api_key, "Accept": "application/json", "X-Pinecone-API-Version": "2024-07"}
    return httpx.AsyncClient(base_url=base.rstrip("/"), headers=headers, timeout=self.timeout)

  async def _post(self, path: str, body: dict[str, Any]) -> Any:
    try:
      async with self.httpx_client() as client:
        r = await client.post(path, json=body)
    except httpx.HTTPError as exc:
      raise VectorIndexError(status_code=0, message=f"Pinecone request failed: {exc}") from exc
    if r.status_code >= 400:
      raise VectorIndexError(status_code=r.status_code, message=(r.text or "Pinecone request failed")[:500])
    return r.json() if r.content else None

  async def upsert(self, records: list[VectorRecord]) -> None:
    vectors = [
      # Pinecone rejects null metadata values.
      {"id": r.id, "values": r.values, "metadata": {k: v for k, v in r.metadata.items() if v is not None}}
      for r in records
    ]
    await self._post("/vectors/upsert", {"vectors": vectors, "namespace": self.namespace})

  async def query(self, *, vector: list[float], top_k: int, filter: dict[str, Any] | None = None) -> list[VectorMatch]:
    body: dict[str, Any] = {
      "vector": vector,
      "topK": int(top_k),
      "includeMetadata": True,
      "includeValues": False,
      "namespace": self.namespace,
    }
    if filter:
      body["filter"] = {k: {"$eq": v} for k, v in filter.items()}
    data = await self._post("/query", body) or {}
    return [
      VectorMatch(id=str(m.get("id")), score=float(m.get("score") or 0.0), metadata=dict(m.get("metadata") or {}))
      for m in data.get("matches") or []
    ]

  async def delete(self, ids: list[str]) -> None:
    if not ids:
      return
    await self._post("/vectors/delete", {"ids": ids, "namespace": self.namespace})


local_index = LocalVectorIndex()


def get_vector_index() -> VectorIndex:
  if settings.vector_provider.lower() == "pinecone":
    if not settings.pinecone_api_key or not settings.pinecone_index_host:
      raise RuntimeError("VECTOR_PROVIDER=pinecone requires PINECONE_API_KEY and PINECONE_INDEX_HOST")
    return PineconeIndex(
      api_key=settings.pinecone_api_key,
      host=settings.pinecone_index_host,
      namespace=settings.pinecone_namespace,
    )
  return local_index
