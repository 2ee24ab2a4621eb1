"""
Document search tool — semantic search over the indexed document collection.

This is the RAG retrieval tool. The model calls it when a question is about
the employer's documents (handbook, policies, benefits).

Returns the single best-matching chunk. Embedding and search failures come
back as text so the model can say it could not look the answer up.
"""

import asyncio
import logging

from toolchat.models import ToolDescriptor, ToolParameter
from toolchat.tools.base import Tool

logger = logging.getLogger(__name__)

EMPTY_QUERY_ERROR = "Error: Search query cannot be empty"
EMBEDDING_ERROR = "Error: Failed to generate embeddings"
NO_RESULTS = "No matching results found"


class DocumentSearchTool(Tool):
    """Nearest-neighbour search over document chunks."""

    def __init__(self, vector_store, max_results: int = 3, name: str = "document_search"):
        """
        Args:
            vector_store: VectorStore holding the embedded document chunks.
            max_results: Candidates fetched before picking the best one.
            name: Tool name advertised to the model.
        """
        self.vector_store = vector_store
        self.max_results = max_results
        self._descriptor = ToolDescriptor(
            name,
            "Search the employer's documents (handbook, policies, benefits)",
            (ToolParameter("query", "string", "The user's optimized semantic search query"),),
        )
        logger.info("DocumentSearchTool initialized (max_results=%d)", max_results)

    def describe(self) -> ToolDescriptor:
        return self._descriptor

    async def invoke(self, arguments: dict) -> str:
        return await self.search(arguments.get("query", ""))

    async def search(self, query: str) -> str:
        if not query or not query.strip():
            return EMPTY_QUERY_ERROR

        logger.debug("Searching documents for '%s'", query)
        try:
            embedding = await self.vector_store.embed_async(query)
        except Exception as e:
            logger.error("Embedding failed for '%s': %s", query, e)
            return EMBEDDING_ERROR
        if not embedding:
            return EMBEDDING_ERROR

        try:
            hits = await asyncio.to_thread(
                self.vector_store.search_by_embedding, embedding, self.max_results
            )
        except Exception as e:
            logger.error("Document search failed for '%s': %s", query, e)
            return f"Error: {e}"

        if not hits:
            return NO_RESULTS

        best = max(hits, key=lambda h: h["score"])
        return best["content"]
