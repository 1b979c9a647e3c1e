"""Tests for EmbeddingGateway."""

import asyncio

import pytest

from conftest import TestConstants, deterministic_vector
from newsrag.src.core.embeddings import EmbeddingGateway
from newsrag.src.core.exceptions import EmbeddingError


class SlowEmbedder:
    async def aembed_query(self, text):
        await asyncio.sleep(1)
        return [0.0] * TestConstants.DIMENSION

    async def aembed_documents(self, texts):
        await asyncio.sleep(1)
        return []


class ScriptedEmbedder:
    def __init__(self, vector):
        self.vector = vector

    async def aembed_query(self, text):
        return self.vector

    async def aembed_documents(self, texts):
        return [self.vector for _ in texts]


def _gateway(embedder):
    return EmbeddingGateway(embedder=embedder, dimension=TestConstants.DIMENSION, timeout=0.05)


def test_embed_returns_vector_of_configured_dimension(embedding):
    vector = asyncio.run(embedding.embed("Election results"))
    assert len(vector) == TestConstants.DIMENSION
    assert vector == deterministic_vector("Election results")


def test_embed_wraps_upstream_errors(embedding, embedder):
    embedder.error = RuntimeError("quota exceeded")
    with pytest.raises(EmbeddingError):
        asyncio.run(embedding.embed("anything"))


def test_embed_timeout_raises_embedding_error():
    with pytest.raises(EmbeddingError, match="timed out"):
        asyncio.run(_gateway(SlowEmbedder()).embed("anything"))


@pytest.mark.parametrize(
    "vector",
    [
        None,
        [],
        "not a vector",
        [0.1] * (TestConstants.DIMENSION - 1),
        [float("nan")] * TestConstants.DIMENSION,
        ["x"] * TestConstants.DIMENSION,
    ],
)
def test_embed_rejects_malformed_vectors(vector):
    with pytest.raises(EmbeddingError):
        asyncio.run(_gateway(ScriptedEmbedder(vector)).embed("anything"))


def test_embed_batch_preserves_order_across_sub_batches(embedding, embedder):
    texts = ["first", "second", "third"]
    vectors = asyncio.run(embedding.embed_batch(texts))

    assert vectors == [deterministic_vector(text) for text in texts]
    assert embedder.document_calls == [["first", "second"], ["third"]]


def test_embed_batch_empty_input_makes_no_call(embedding, embedder):
    assert asyncio.run(embedding.embed_batch([])) == []
    assert embedder.document_calls == []


def test_embed_batch_cardinality_mismatch_fails_whole_call(embedding, embedder):
    embedder.drop_last = True
    with pytest.raises(EmbeddingError, match="count mismatch"):
        asyncio.run(embedding.embed_batch(["a", "b", "c"]))


def test_embed_batch_wraps_upstream_errors(embedding, embedder):
    embedder.error = ConnectionError("reset by peer")
    with pytest.raises(EmbeddingError):
        asyncio.run(embedding.embed_batch(["a"]))
