"""Tests for query normalisation and article text helpers."""

from newsrag.src.utils.text_utils import article_embedding_text, clean_text, normalize_query, query_digest, truncate


def test_normalize_query_ignores_case_and_whitespace():
    assert normalize_query("Ukraine War?") == normalize_query("  ukraine   war? ")
    assert normalize_query("\tBreaking\nNews ") == "breaking news"


def test_query_digest_is_stable_and_key_safe():
    digest = query_digest("ukraine war?")
    assert digest == query_digest("ukraine war?")
    assert len(digest) == 64
    assert all(ch in "0123456789abcdef" for ch in digest)
    assert digest != query_digest("ukraine war")


def test_clean_text_strips_invisible_characters():
    assert clean_text("\ufeffHello\u200b   world") == "Hello world"


def test_truncate():
    assert truncate("short", 10) == "short"
    shortened = truncate("a" * 20, 10)
    assert len(shortened) <= 10
    assert shortened.endswith("…")


def test_article_embedding_text_combines_fields():
    text = article_embedding_text({"title": "Budget vote", "summary": "Parliament passed it.", "content": "Details " * 10})
    assert "Budget vote" in text
    assert "Parliament passed it." in text
    assert "Details" in text


def test_article_embedding_text_empty_article():
    assert article_embedding_text({"title": "", "summary": "", "content": ""}) == ""
