"""
VectorStore — embedding + semantic search facade over the document collection.

Owns all embedding logic (calling an OpenAI-compatible /v1/embeddings
endpoint). Delegates raw vector storage to a pluggable VectorBackend.

The backend is configured via  storage.vector_backend  in config.yaml
(default: "chromadb").
"""

import logging

import httpx

from toolchat.storage.backends import VectorBackend, make_backend

logger = logging.getLogger(__name__)


def chunk_text(text: str, size: int = 1000, overlap: int = 100) -> list[str]:
    """
    Split text into overlapping chunks, preferring paragraph boundaries.
    Paragraphs longer than `size` are cut hard.
    """
    if size <= 0:
        raise ValueError("chunk size must be positive")
    if overlap < 0 or overlap >= size:
        raise ValueError("overlap must be in [0, size)")

    chunks: list[str] = []
    current = ""
    for para in (p.strip() for p in text.split("\n\n")):
        if not para:
            continue
        while len(para) > size:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(para[:size])
            para = para[size - overlap:]
        candidate = f"{current}\n\n{para}" if current else para
        if len(candidate) > size:
            chunks.append(current)
            tail = current[-overlap:] if overlap else ""
            if tail and len(tail) + 2 + len(para) <= size:
                current = f"{tail}\n\n{para}"
            else:
                current = para
        else:
            current = candidate
    if current:
        chunks.append(current)
    return chunks


class VectorStore:
    """
    Embedding + semantic search facade over a pluggable VectorBackend.

    Embedding stays here; the backend only sees raw vectors.
    """

    def __init__(
        self,
        embedding_model: str,
        embedding_url: str,
        api_key: str = "",
        dimensions: int | None = None,
        backend: VectorBackend | None = None,
        chroma_path: str | None = None,
    ):
        self.embedding_model = embedding_model
        self.embedding_url = embedding_url.rstrip("/")
        self.api_key = api_key
        self.dimensions = dimensions

        if backend is not None:
            self._backend = backend
        elif chroma_path is not None:
            self._backend = make_backend("chromadb", path=chroma_path)
        else:
            raise ValueError(
                "VectorStore requires either a 'backend' instance or a 'chroma_path'."
            )

        logger.info(
            "VectorStore initialised (backend=%s, model=%s)",
            type(self._backend).__name__,
            self.embedding_model,
        )

    @classmethod
    def from_config(cls, cfg: dict) -> "VectorStore":
        """Build from the `embedding:` and `storage:` sections of config.yaml."""
        storage_cfg = cfg.get("storage", {})
        embed_cfg = cfg.get("embedding", {})
        return cls(
            embedding_model=embed_cfg.get("model", "text-embedding-3-small"),
            embedding_url=embed_cfg.get("url") or cfg.get("backend", {}).get("url", ""),
            api_key=embed_cfg.get("api_key", ""),
            dimensions=embed_cfg.get("dimensions"),
            backend=make_backend(
                storage_cfg.get("vector_backend", "chromadb"),
                path=storage_cfg.get("chroma_path", "./data/chroma"),
                collection=storage_cfg.get("collection", "handbook"),
            ),
        )

    # ------------------------------------------------------------------
    # Embedding helpers
    # ------------------------------------------------------------------

    def _request(self, text: str) -> tuple[str, dict, dict]:
        body: dict = {"model": self.embedding_model, "input": text}
        if self.dimensions:
            body["dimensions"] = self.dimensions
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        return f"{self.embedding_url}/v1/embeddings", body, headers

    def _parse(self, resp: httpx.Response) -> list[float]:
        try:
            data = resp.json()
        except Exception as e:
            raise RuntimeError(
                f"Embedding endpoint returned non-JSON response: {resp.text[:200]}"
            ) from e
        items = data.get("data") or []
        if not items or not items[0].get("embedding"):
            raise RuntimeError(
                f"Embedding model '{self.embedding_model}' returned no embedding "
                f"— input may be blank or the model may have failed silently."
            )
        return items[0]["embedding"]

    def embed(self, text: str) -> list[float]:
        """Get embedding vector (sync). Raises on any failure."""
        url, body, headers = self._request(text)
        resp = httpx.post(url, json=body, headers=headers, timeout=30.0)
        resp.raise_for_status()
        return self._parse(resp)

    async def embed_async(self, text: str) -> list[float]:
        """Get embedding vector (async). Raises on any failure."""
        url, body, headers = self._request(text)
        async with httpx.AsyncClient() as client:
            resp = await client.post(url, json=body, headers=headers, timeout=30.0)
            resp.raise_for_status()
        return self._parse(resp)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def add_document(self, doc_id: str, chunk: str, metadata: dict | None = None) -> bool:
        """Embed and store one document chunk. Returns False if it was skipped."""
        if not chunk.strip():
            return False
        embedding = self.embed(chunk)
        self._backend.upsert(
            ids=[doc_id],
            embeddings=[embedding],
            documents=[chunk],
            metadatas=[metadata or {"source": ""}],
        )
        logger.debug("Embedded chunk %s", doc_id)
        return True

    def search_by_embedding(self, embedding: list[float], n_results: int = 5) -> list[dict]:
        """Nearest chunks to an embedding, best first, with score = 1 - distance."""
        results = self._backend.query(embedding, n_results=n_results)
        ids = (results.get("ids") or [[]])[0]
        return [
            {
                "id":       ids[i],
                "content":  results["documents"][0][i],
                "metadata": results["metadatas"][0][i],
                "score":    round(1.0 - results["distances"][0][i], 4),
            }
            for i in range(len(ids))
        ]

    def get_stats(self) -> dict:
        """Return collection stats."""
        return {"total_chunks": self._backend.count()}
