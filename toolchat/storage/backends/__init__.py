"""
Where document chunks live. `storage.vector_backend` in config.yaml picks
the implementation; ChromaDB is the only one shipped.
"""

from .base import VectorBackend


def make_backend(backend_type: str, **kwargs) -> VectorBackend:
    """
    Open the chunk collection for `backend_type`.

    chromadb kwargs: path (persist directory), collection (collection name).
    Raises ValueError for an unknown type.
    """
    if backend_type == "chromadb":
        from .chroma import ChromaBackend  # chromadb is heavy; import on first use
        return ChromaBackend(**kwargs)
    raise ValueError(f"Unknown vector backend: '{backend_type}'. Available: chromadb")


__all__ = ["VectorBackend", "make_backend"]
