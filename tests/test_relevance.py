"""Tests for tiered relevance resolution."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from app.context.models import Insight
from app.context.relevance import (
    KeywordTier,
    RecencyTier,
    RelevanceResolver,
    VectorTier,
    relevance_decay,
    relevance_order,
)

NOW = datetime(2025, 6, 15, tzinfo=timezone.utc)


def _insight(item_id: str, body: str, days_ago: int = 1, embedding=None, **extra) -> Insight:
    return Insight(
        id=item_id,
        title=f"Insight {item_id}",
        body=body,
        created_at=NOW - timedelta(days=days_ago),
        embedding=embedding,
        **extra,
    )


# === Relevance decay ===


def test_decay_fresh_item_is_full_strength():
    assert relevance_decay(NOW, now=NOW) == pytest.approx(1.0)


def test_decay_halves_every_thirty_days():
    assert relevance_decay(NOW - timedelta(days=30), now=NOW) == pytest.approx(0.5)
    assert relevance_decay(NOW - timedelta(days=60), now=NOW) == pytest.approx(0.25)


def test_decay_recent_access_boosts():
    created = NOW - timedelta(days=30)
    assert relevance_decay(created, NOW - timedelta(days=3), now=NOW) == pytest.approx(0.8)
    assert relevance_decay(created, NOW - timedelta(days=20), now=NOW) == pytest.approx(0.65)


def test_decay_access_count_boost_is_capped():
    created = NOW - timedelta(days=60)
    assert relevance_decay(created, access_count=5, now=NOW) == pytest.approx(0.35)
    assert relevance_decay(created, access_count=100, now=NOW) == pytest.approx(0.45)


def test_decay_never_exceeds_one():
    assert relevance_decay(NOW, NOW, access_count=50, now=NOW) == 1.0


# === Vector tier ===


def test_vector_tier_keeps_candidates_above_threshold():
    candidates = [
        _insight("match", "a", embedding=[1.0, 0.0]),
        _insight("near", "b", embedding=[0.8, 0.6]),
        _insight("far", "c", embedding=[0.0, 1.0]),
    ]
    tier = VectorTier(lambda q: [1.0, 0.0], threshold=0.5)
    ranked = tier.rank("query", candidates)

    assert [c.item.id for c in ranked] == ["match", "near"]
    assert ranked[0].score == pytest.approx(1.0)
    assert ranked[1].score == pytest.approx(0.8)


def test_vector_tier_respects_top_k():
    candidates = [_insight(str(i), "x", embedding=[1.0, 0.1 * i]) for i in range(5)]
    assert len(VectorTier(lambda q: [1.0, 0.0], threshold=0.0, top_k=2).rank("q", candidates)) == 2


def test_vector_tier_unavailable_without_candidate_vectors():
    embed = MagicMock(return_value=[1.0, 0.0])
    tier = VectorTier(embed)
    assert tier.rank("query", [_insight("1", "a"), _insight("2", "b")]) == []
    embed.assert_not_called()


def test_vector_tier_unavailable_when_embedding_fails():
    def broken(_):
        raise RuntimeError("quota exceeded")

    candidates = [_insight("1", "a", embedding=[1.0, 0.0])]
    assert VectorTier(broken).rank("query", candidates) == []
    assert VectorTier(lambda q: None).rank("query", candidates) == []


def test_vector_tier_decay_reorders_but_threshold_uses_raw_similarity():
    candidates = [
        _insight("old", "a", days_ago=90, embedding=[1.0, 0.0]),
        _insight("new", "b", days_ago=0, embedding=[0.9, 0.436]),
    ]
    tier = VectorTier(lambda q: [1.0, 0.0], threshold=0.85, apply_decay=True, now=NOW)
    ranked = tier.rank("query", candidates)

    assert [c.item.id for c in ranked] == ["new", "old"]


# === Keyword tier ===


def test_keyword_tier_scores_by_overlap():
    candidates = [
        _insight("none", "Cooking pasta on a quiet Sunday"),
        _insight("one", "My fitness videos get more saves than photos"),
        _insight("both", "Fitness content with a clear brand voice performs best"),
    ]
    tier = KeywordTier(lambda q: ["fitness", "brand"])
    ranked = tier.rank("I am building a fitness brand", candidates)

    assert [c.item.id for c in ranked] == ["both", "one"]
    assert ranked[0].score == pytest.approx(1.0)
    assert ranked[1].score == pytest.approx(0.5)


def test_keyword_tier_falls_back_to_local_keywords():
    tier = KeywordTier(lambda q: [])
    assert "fitness" in tier.keywords_for("I am building a fitness brand")

    def broken(_):
        raise RuntimeError("model down")

    assert "fitness" in KeywordTier(broken).keywords_for("I am building a fitness brand")


def test_keyword_overlap_matches_substrings():
    assert KeywordTier.overlap(["run"], "Running before work") == 1
    assert KeywordTier.overlap(["run", "run"], "run") == 1


# === Resolver ===


def test_resolver_all_embeddings_missing_still_returns_results():
    candidates = [_insight(str(i), f"Unrelated note number {i}") for i in range(5)]
    resolver = RelevanceResolver.default(embed=lambda q: [1.0, 0.0], extract_keywords=lambda q: ["zebra"])
    result = resolver.resolve("I study zebras", candidates)

    assert result.tier == "recency"
    assert len(result.items) == 5


def test_resolver_falls_through_vector_to_keyword():
    candidates = [_insight("a", "fitness plan"), _insight("b", "gardening")]
    resolver = RelevanceResolver.default(embed=lambda q: None, extract_keywords=lambda q: ["fitness"])
    result = resolver.resolve("fitness", candidates)

    assert result.tier == "keyword"
    assert result.items[0].id == "a"


def test_resolver_uses_vector_tier_when_available():
    candidates = [_insight("a", "x", embedding=[0.0, 1.0]), _insight("b", "y", embedding=[1.0, 0.0])]
    resolver = RelevanceResolver.default(embed=lambda q: [1.0, 0.0], extract_keywords=None)
    result = resolver.resolve("anything", candidates)

    assert result.tier == "vector"
    assert [i.id for i in result.items] == ["b"]


def test_resolver_skips_failing_tier():
    class Exploding:
        name = "exploding"

        def rank(self, query, candidates):
            raise RuntimeError("boom")

    resolver = RelevanceResolver([Exploding(), RecencyTier(top_k=1)])
    result = resolver.resolve("query", [_insight("1", "a", days_ago=3), _insight("2", "b", days_ago=1)])

    assert result.tier == "recency"
    assert [i.id for i in result.items] == ["2"]


def test_resolver_empty_query_uses_recency():
    keyword = MagicMock(return_value=["x"])
    resolver = RelevanceResolver.default(embed=None, extract_keywords=keyword)
    result = resolver.resolve("   \n ", [_insight("1", "a")])

    assert result.tier == "recency"
    keyword.assert_not_called()


def test_resolver_empty_pool():
    resolver = RelevanceResolver.default(embed=None, extract_keywords=None)
    result = resolver.resolve("query", [])
    assert result.tier == "none"
    assert result.items == []


def test_resolver_caps_query_length():
    seen = []

    def record(query):
        seen.append(query)
        return ["x"]

    resolver = RelevanceResolver.default(embed=None, extract_keywords=record, max_query_chars=50)
    resolver.resolve("word " * 1000, [_insight("1", "x marks the spot")])

    assert len(seen[0]) <= 50


def test_resolver_requires_a_tier():
    with pytest.raises(ValueError):
        RelevanceResolver([])


def test_relevance_order_puts_resolved_items_first():
    candidates = [_insight("new", "a", days_ago=1), _insight("mid", "b", days_ago=2), _insight("old", "c", days_ago=3)]
    resolver = RelevanceResolver([KeywordTier(lambda q: ["c"])])
    result = resolver.resolve("c", candidates)

    assert [i.id for i in relevance_order(result, candidates)] == ["old", "new", "mid"]


def test_resolver_reuses_query_vector_and_keywords_across_pools():
    embed = MagicMock(return_value=[1.0, 0.0])
    keywords = MagicMock(return_value=["fitness"])
    resolver = RelevanceResolver.default(embed=embed, extract_keywords=keywords, threshold=0.9)

    first = resolver.resolve("fitness", [_insight("a", "fitness plan", embedding=[0.0, 1.0])])
    second = resolver.resolve("fitness", [_insight("b", "fitness log", embedding=[0.0, 1.0])])

    assert first.tier == second.tier == "keyword"
    embed.assert_called_once_with("fitness")
    keywords.assert_called_once_with("fitness")


def test_failed_query_embedding_is_not_retried():
    embed = MagicMock(side_effect=RuntimeError("quota exceeded"))
    tier = VectorTier(embed)
    candidates = [_insight("1", "a", embedding=[1.0, 0.0])]

    assert tier.rank("query", candidates) == []
    assert tier.rank("query", candidates) == []
    embed.assert_called_once()
