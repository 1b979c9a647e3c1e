"""The concrete gateways and stores satisfy the orchestrator's protocols."""

from conftest import FakeEmbedder, FakeLLM, FakeVectorStore
from newsrag.src.core.embeddings import Embedder
from newsrag.src.core.generation import ChatModel
from newsrag.src.core.interfaces import AnswerCache, EmbeddingProvider, SessionHistory, TextGenerator, VectorSearcher
from newsrag.src.database.vector_store import NewsVectorStore


def test_production_components_satisfy_protocols(embedding, cache, sessions, generation, tmp_path):
    assert isinstance(embedding, EmbeddingProvider)
    assert isinstance(NewsVectorStore(db_path=str(tmp_path), dimension=4), VectorSearcher)
    assert isinstance(cache, AnswerCache)
    assert isinstance(sessions, SessionHistory)
    assert isinstance(generation, TextGenerator)


def test_fakes_satisfy_upstream_protocols():
    assert isinstance(FakeEmbedder(), Embedder)
    assert isinstance(FakeLLM(), ChatModel)
    assert isinstance(FakeVectorStore(), VectorSearcher)
