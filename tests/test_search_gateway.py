"""Tests for the search gateway."""

import pytest

from errors import RecordNotFound, TransportError
from models import ScoredMatch


class TestSearchGateway:

    @pytest.mark.asyncio
    async def test_no_matches_is_an_empty_result(self, search_gateway):
        results = await search_gateway.search("how to reset a password")
        assert results.records == []
        assert results.articles == []
        assert results.is_empty

    @pytest.mark.asyncio
    async def test_plain_query_is_embedded_verbatim(self, search_gateway, semantic_search):
        await search_gateway.search("  refund policy  ")
        assert semantic_search.embedded == ["refund policy"]

    @pytest.mark.asyncio
    async def test_anchored_query_includes_ticket_text(self, search_gateway, semantic_search, store):
        store.add(101, subject="Login issue", description="Cannot sign in after reset")
        results = await search_gateway.search("find similar", 101)
        assert semantic_search.embedded == ["find similar Login issue Cannot sign in after reset"]
        assert results.anchor.number == 101

    @pytest.mark.asyncio
    async def test_results_are_ranked_and_anchor_excluded(self, search_gateway, semantic_search, store):
        store.add(101, subject="Login issue")
        semantic_search.records = [
            ScoredMatch(id="t-101", number=101, title="Login issue", similarity=0.99),
            ScoredMatch(id="t-7", number=7, title="SSO loop", similarity=0.5),
            ScoredMatch(id="t-8", number=8, title="Password reset", similarity=0.8),
        ]
        results = await search_gateway.search("similar", 101)
        assert [r.number for r in results.records] == [8, 7]
        assert all(r.kind == "record" for r in results.records)

    @pytest.mark.asyncio
    async def test_article_excerpt_is_truncated(self, config, search_gateway, semantic_search):
        semantic_search.articles = [ScoredMatch(id="kb-1", title="Refunds", content="word " * 200, similarity=0.7)]
        results = await search_gateway.search("refund policy")
        excerpt = results.articles[0].excerpt
        assert len(excerpt) <= config.excerpt_length
        assert excerpt.endswith("...")

    @pytest.mark.asyncio
    async def test_backend_failure_raises(self, search_gateway, semantic_search):
        semantic_search.fail_articles = True
        with pytest.raises(TransportError):
            await search_gateway.search("refund policy")

    @pytest.mark.asyncio
    async def test_unknown_anchor_raises_not_found(self, search_gateway):
        with pytest.raises(RecordNotFound):
            await search_gateway.search("similar", 999)
