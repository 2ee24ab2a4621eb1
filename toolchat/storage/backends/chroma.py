"""
ChromaBackend — ChromaDB implementation of VectorBackend.

Wraps chromadb.PersistentClient. All collection operations are serialised
through a threading.Lock: the document search tool queries from worker
threads (asyncio.to_thread) and PersistentClient is not thread-safe.
"""

import logging
import threading
from pathlib import Path

import chromadb

from .base import VectorBackend

logger = logging.getLogger(__name__)


class ChromaBackend(VectorBackend):
    """ChromaDB-backed vector storage (thread-safe)."""

    def __init__(self, path: str, collection: str = "handbook"):
        chroma_path = Path(path)
        chroma_path.mkdir(parents=True, exist_ok=True)

        self._lock = threading.Lock()
        self._client = chromadb.PersistentClient(path=str(chroma_path))
        self._collection = self._client.get_or_create_collection(
            name=collection,
            metadata={"hnsw:space": "cosine"},
        )
        logger.info("ChromaBackend initialised (path=%s, collection=%s)", chroma_path, collection)

    def upsert(
        self,
        ids: list[str],
        embeddings: list[list[float]],
        documents: list[str],
        metadatas: list[dict],
    ) -> None:
        with self._lock:
            self._collection.upsert(
                ids=ids,
                embeddings=embeddings,
                documents=documents,
                metadatas=metadatas,
            )

    def query(self, embedding: list[float], n_results: int) -> dict:
        with self._lock:
            total = self._collection.count()
            if total == 0:
                return {"ids": [[]], "documents": [[]], "metadatas": [[]], "distances": [[]]}
            return self._collection.query(
                query_embeddings=[embedding],
                n_results=min(n_results, total),
                include=["documents", "metadatas", "distances"],
            )

    def count(self) -> int:
        with self._lock:
            return self._collection.count()
