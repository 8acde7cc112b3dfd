"""Relevance Resolver: rank a historical pool against the identity statement.

Three tiers, tried in order until one produces a usable ranking:

  VectorTier   embed the query, cosine against precomputed candidate vectors
  KeywordTier  salient keywords (model, then local) matched against title+body
  RecencyTier  newest N candidates, unranked

Each tier returns [] when it cannot rank; the resolver then moves on. The
resolver itself never raises for ranking problems, and RecencyTier always
produces a result for a non-empty pool.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Generic, Sequence, TypeVar

from app.context.compactor import sort_by_recency
from app.context.models import Record, ScoredRecord
from app.core.keywords import extract_local_keywords, tokenize
from app.core.logging import get_logger
from app.core.similarity import cosine_similarity

logger = get_logger(__name__)

R = TypeVar("R", bound=Record)

EmbedFn = Callable[[str], "list[float] | None"]
KeywordFn = Callable[[str], "list[str]"]

DEFAULT_SIMILARITY_THRESHOLD = 0.4
DEFAULT_TOP_K = 10
MAX_KEYWORDS = 8

# Relevance decay constants
DECAY_HALF_LIFE_DAYS = 30.0
RECENT_ACCESS_BOOST = 0.3  # accessed within 7 days
MONTH_ACCESS_BOOST = 0.15  # accessed within 30 days
ACCESS_COUNT_STEP = 0.02
ACCESS_COUNT_CAP = 0.2


@dataclass
class ScoredCandidate(Generic[R]):
    item: R
    score: float


@dataclass
class RelevanceResult(Generic[R]):
    """Ranked candidates plus the tier that ranked them."""

    tier: str
    ranked: list[ScoredCandidate[R]] = field(default_factory=list)

    @property
    def items(self) -> list[R]:
        return [c.item for c in self.ranked]


def relevance_decay(
    created_at: datetime | None,
    last_accessed: datetime | None = None,
    access_count: int = 0,
    base_relevance: float | None = 1.0,
    now: datetime | None = None,
) -> float:
    """
    Age/access weighting in [0, 1].

    Exponential decay with a 30-day half-life, plus a boost for recent
    access (0.3 within 7 days, 0.15 within 30) and for access frequency
    (0.02 per access, capped at 0.2).
    """
    now = now or datetime.now(timezone.utc)
    base = 1.0 if base_relevance is None else base_relevance

    age_days = 0.0
    if created_at is not None:
        age_days = max(0.0, (now - created_at).total_seconds() / 86400.0)
    decay_factor = math.pow(0.5, age_days / DECAY_HALF_LIFE_DAYS)

    recency_boost = 0.0
    if last_accessed is not None:
        since_access = (now - last_accessed).total_seconds() / 86400.0
        if since_access <= 7:
            recency_boost = RECENT_ACCESS_BOOST
        elif since_access <= 30:
            recency_boost = MONTH_ACCESS_BOOST

    access_boost = min(max(access_count, 0) * ACCESS_COUNT_STEP, ACCESS_COUNT_CAP)
    return min(base * decay_factor + recency_boost + access_boost, 1.0)


class VectorTier:
    """Cosine similarity between the query embedding and stored candidate vectors."""

    name = "vector"

    def __init__(
        self,
        embed: EmbedFn,
        threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
        top_k: int = DEFAULT_TOP_K,
        apply_decay: bool = False,
        now: datetime | None = None,
    ):
        self.embed = embed
        self.threshold = threshold
        self.top_k = top_k
        self.apply_decay = apply_decay
        self.now = now
        self._query_vectors: dict[str, list[float] | None] = {}

    def query_vector(self, query: str) -> list[float] | None:
        """Embed the query once; later pools ranked against it reuse the vector."""
        if query not in self._query_vectors:
            try:
                self._query_vectors[query] = self.embed(query) or None
            except Exception as e:
                logger.warning(f"Embedding collaborator failed: {e}")
                self._query_vectors[query] = None
        return self._query_vectors[query]

    def rank(self, query: str, candidates: Sequence[R]) -> list[ScoredCandidate[R]]:
        with_vectors = [
            c for c in candidates if isinstance(c, ScoredRecord) and c.embedding
        ]
        if not with_vectors:
            logger.info("No candidates carry embeddings - vector tier unavailable")
            return []

        query_vector = self.query_vector(query)
        if not query_vector:
            logger.info("Query embedding unavailable - vector tier skipped")
            return []

        scored: list[ScoredCandidate[R]] = []
        for candidate in with_vectors:
            similarity = cosine_similarity(query_vector, candidate.embedding)
            if similarity < self.threshold:
                continue
            score = similarity
            if self.apply_decay:
                score *= relevance_decay(
                    candidate.created_at,
                    candidate.last_accessed,
                    candidate.access_count,
                    candidate.relevance_score,
                    now=self.now,
                )
            scored.append(ScoredCandidate(candidate, score))

        # Candidates arrive newest first, so equal scores stay in recency order
        scored.sort(key=lambda c: c.score, reverse=True)
        return scored[: self.top_k]


class KeywordTier:
    """Keyword overlap against title+body.

    Keywords come from the keyword collaborator, or from local stopword
    filtering when it returns nothing.
    """

    name = "keyword"

    def __init__(
        self,
        extract_keywords: KeywordFn | None = None,
        top_k: int = DEFAULT_TOP_K,
        max_keywords: int = MAX_KEYWORDS,
    ):
        self.extract_keywords = extract_keywords
        self.top_k = top_k
        self.max_keywords = max_keywords
        self._keywords: dict[str, list[str]] = {}

    def keywords_for(self, query: str) -> list[str]:
        if query not in self._keywords:
            self._keywords[query] = self._extract(query)
        return self._keywords[query]

    def _extract(self, query: str) -> list[str]:
        keywords: list[str] = []
        if self.extract_keywords is not None:
            try:
                keywords = [k.strip().lower() for k in self.extract_keywords(query) if k and k.strip()]
            except Exception as e:
                logger.warning(f"Keyword collaborator failed: {e}")
                keywords = []
        if not keywords:
            keywords = extract_local_keywords(query, max_keywords=self.max_keywords)
        return keywords[: self.max_keywords]

    @staticmethod
    def overlap(keywords: Sequence[str], text: str) -> int:
        """Number of distinct keywords present as a token or substring of text."""
        lowered = text.lower()
        tokens = set(tokenize(lowered))
        return sum(1 for k in dict.fromkeys(keywords) if k in tokens or k in lowered)

    def rank(self, query: str, candidates: Sequence[R]) -> list[ScoredCandidate[R]]:
        keywords = self.keywords_for(query)
        if not keywords:
            logger.info("No keywords could be extracted - keyword tier unavailable")
            return []

        scored = []
        for candidate in candidates:
            hits = self.overlap(keywords, f"{candidate.title} {candidate.body}")
            if hits:
                scored.append(ScoredCandidate(candidate, hits / len(keywords)))

        scored.sort(key=lambda c: c.score, reverse=True)
        return scored[: self.top_k]


class RecencyTier:
    """Last resort: the newest candidates, unranked."""

    name = "recency"

    def __init__(self, top_k: int = DEFAULT_TOP_K):
        self.top_k = top_k

    def rank(self, query: str, candidates: Sequence[R]) -> list[ScoredCandidate[R]]:
        return [ScoredCandidate(c, 0.0) for c in sort_by_recency(candidates)[: self.top_k]]


class RelevanceResolver:
    """Runs the tiers in order; the first non-empty ranking wins."""

    def __init__(self, tiers: Sequence[VectorTier | KeywordTier | RecencyTier], max_query_chars: int = 2000):
        if not tiers:
            raise ValueError("RelevanceResolver needs at least one tier")
        self.tiers = list(tiers)
        self.max_query_chars = max_query_chars

    @classmethod
    def default(
        cls,
        embed: EmbedFn | None,
        extract_keywords: KeywordFn | None,
        threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
        top_k: int = DEFAULT_TOP_K,
        apply_decay: bool = False,
        max_query_chars: int = 2000,
    ) -> "RelevanceResolver":
        tiers: list[VectorTier | KeywordTier | RecencyTier] = []
        if embed is not None:
            tiers.append(VectorTier(embed, threshold=threshold, top_k=top_k, apply_decay=apply_decay))
        tiers.append(KeywordTier(extract_keywords, top_k=top_k))
        tiers.append(RecencyTier(top_k=top_k))
        return cls(tiers, max_query_chars=max_query_chars)

    def prepare_query(self, query: str | None) -> str:
        """Collapse whitespace and cap the length of user-supplied query text."""
        return " ".join((query or "").split())[: self.max_query_chars]

    def resolve(self, query: str | None, candidates: Sequence[R]) -> RelevanceResult[R]:
        if not candidates:
            return RelevanceResult(tier="none")

        text = self.prepare_query(query)
        for tier in self.tiers:
            if not text and not isinstance(tier, RecencyTier):
                continue
            try:
                ranked = tier.rank(text, candidates)
            except Exception as e:
                logger.warning(f"Relevance tier {tier.name} failed, falling through: {e}")
                continue
            if ranked:
                logger.info(f"Relevance resolved by {tier.name} tier: {len(ranked)} of {len(candidates)} candidates")
                return RelevanceResult(tier=tier.name, ranked=ranked)

        # Every configured tier came back empty; recency is the floor
        return RelevanceResult(tier=RecencyTier.name, ranked=RecencyTier(len(candidates)).rank(text, candidates))


def relevance_order(result: RelevanceResult[R], candidates: Sequence[R]) -> list[R]:
    """Resolved items first, then the remaining candidates in their existing order."""
    ranked = result.items
    seen = {id(item) for item in ranked}
    return ranked + [c for c in candidates if id(c) not in seen]
