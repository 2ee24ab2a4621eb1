"""
Tests for document storage: chunking, VectorStore, ChromaDB backend.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from stubs import MemoryBackend
from toolchat.storage.backends import make_backend
from toolchat.storage.vector_store import VectorStore, chunk_text


def _embedding_resp(vector):
    resp = MagicMock()
    resp.json.return_value = {"data": [{"embedding": vector, "index": 0}]}
    return resp


# ---------------------------------------------------------------------------
# chunk_text
# ---------------------------------------------------------------------------

class TestChunkText:
    def test_short_text_is_one_chunk(self):
        assert chunk_text("Hello world.") == ["Hello world."]

    def test_paragraphs_are_packed_up_to_size(self):
        text = "\n\n".join(["a" * 40, "b" * 40, "c" * 40])
        chunks = chunk_text(text, size=90, overlap=0)
        assert chunks == ["a" * 40 + "\n\n" + "b" * 40, "c" * 40]

    def test_long_paragraph_is_cut_hard_with_overlap(self):
        chunks = chunk_text("x" * 250, size=100, overlap=10)
        assert all(len(c) <= 100 for c in chunks)
        assert "".join(chunks).count("x") >= 250

    def test_no_chunk_exceeds_size(self):
        text = "\n\n".join(f"Paragraph {i} " + "word " * (i * 7) for i in range(30))
        assert all(len(c) <= 200 for c in chunk_text(text, size=200, overlap=50))

    def test_blank_text(self):
        assert chunk_text("\n\n  \n\n") == []

    @pytest.mark.parametrize("size,overlap", [(0, 0), (100, 100), (100, -1)])
    def test_bad_arguments(self, size, overlap):
        with pytest.raises(ValueError):
            chunk_text("text", size=size, overlap=overlap)


# ---------------------------------------------------------------------------
# VectorStore
# ---------------------------------------------------------------------------

class TestVectorStore:
    def test_requires_backend_or_path(self):
        with pytest.raises(ValueError):
            VectorStore(embedding_model="m", embedding_url="http://e")

    def test_add_document_embeds_and_upserts(self):
        backend = MemoryBackend()
        store = VectorStore("m", "http://embed/", api_key="k", dimensions=3, backend=backend)

        with patch("toolchat.storage.vector_store.httpx.post", return_value=_embedding_resp([0.1, 0.2, 0.3])) as mock_post:
            assert store.add_document("doc-0", "Vacation is 20 days.", {"source": "handbook.md"})

        args, kwargs = mock_post.call_args
        assert args[0] == "http://embed/v1/embeddings"
        assert kwargs["json"] == {"model": "m", "input": "Vacation is 20 days.", "dimensions": 3}
        assert kwargs["headers"] == {"Authorization": "Bearer k"}
        assert backend.rows["doc-0"][0] == [0.1, 0.2, 0.3]
        assert store.get_stats() == {"total_chunks": 1}

    def test_blank_chunk_skipped(self):
        store = VectorStore("m", "http://e", backend=MemoryBackend())
        assert store.add_document("x", "   ") is False

    def test_embed_raises_on_missing_embedding(self):
        store = VectorStore("m", "http://e", backend=MemoryBackend())
        resp = MagicMock()
        resp.json.return_value = {"data": []}
        with patch("toolchat.storage.vector_store.httpx.post", return_value=resp):
            with pytest.raises(RuntimeError):
                store.embed("hello")

    @pytest.mark.asyncio
    async def test_embed_async(self):
        store = VectorStore("m", "http://e", backend=MemoryBackend())
        with patch("toolchat.storage.vector_store.httpx.AsyncClient") as mock_cls:
            client = AsyncMock()
            client.post.return_value = _embedding_resp([1.0, 0.0])
            client.__aenter__ = AsyncMock(return_value=client)
            client.__aexit__ = AsyncMock(return_value=False)
            mock_cls.return_value = client

            assert await store.embed_async("hello") == [1.0, 0.0]

    def test_search_by_embedding_scores(self):
        backend = MemoryBackend(distances={"near": 0.1, "far": 0.75})
        backend.upsert(["far", "near"], [[0], [0]], ["far text", "near text"], [{}, {}])
        store = VectorStore("m", "http://e", backend=backend)

        hits = store.search_by_embedding([0.0], n_results=2)

        assert [(h["id"], h["score"]) for h in hits] == [("near", 0.9), ("far", 0.25)]
        assert hits[0]["content"] == "near text"

    def test_from_config(self):
        cfg = {
            "embedding": {"url": "http://embed", "model": "emb", "dimensions": 8},
            "storage": {"vector_backend": "memory", "chroma_path": "/tmp/x", "collection": "c"},
        }
        with patch("toolchat.storage.vector_store.make_backend", return_value=MemoryBackend()) as mock_make:
            store = VectorStore.from_config(cfg)
        mock_make.assert_called_once_with("memory", path="/tmp/x", collection="c")
        assert store.embedding_model == "emb"
        assert store.dimensions == 8


# ---------------------------------------------------------------------------
# ChromaBackend
# ---------------------------------------------------------------------------

class TestChromaBackend:
    @pytest.fixture
    def chroma(self, tmp_path):
        pytest.importorskip("chromadb", reason="chromadb not installed")
        return make_backend("chromadb", path=str(tmp_path / "chroma"), collection="test_docs")

    def test_unknown_backend_type(self):
        with pytest.raises(ValueError):
            make_backend("faiss", path="/tmp")

    def test_empty_collection_query(self, chroma):
        res = chroma.query([1.0, 0.0, 0.0], n_results=3)
        assert res["ids"] == [[]]
        assert chroma.count() == 0

    def test_upsert_and_query(self, chroma):
        chroma.upsert(
            ids=["d1", "d2"],
            embeddings=[[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]],
            documents=["about vacation", "about parking"],
            metadatas=[{"source": "a"}, {"source": "b"}],
        )
        res = chroma.query([0.9, 0.1, 0.0], n_results=5)

        assert chroma.count() == 2
        assert res["ids"][0] == ["d1", "d2"]
        assert res["documents"][0][0] == "about vacation"
        assert res["distances"][0][0] < res["distances"][0][1]
