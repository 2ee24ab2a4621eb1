"""
Storage contract for the document collection searched by document_search.

A backend only stores and ranks vectors; VectorStore does the embedding.
"""

from abc import ABC, abstractmethod


class VectorBackend(ABC):
    """One collection of embedded document chunks."""

    @abstractmethod
    def upsert(
        self,
        ids: list[str],
        embeddings: list[list[float]],
        documents: list[str],
        metadatas: list[dict],
    ) -> None:
        """Store chunks by id; an existing id is overwritten."""

    @abstractmethod
    def query(self, embedding: list[float], n_results: int) -> dict:
        """
        Closest chunks to one query vector, nearest first.

        Shape follows chromadb's collection.query(): ids, documents,
        metadatas and distances, each wrapped in a single-element outer list.
        """

    @abstractmethod
    def count(self) -> int:
        """Number of chunks in the collection."""
