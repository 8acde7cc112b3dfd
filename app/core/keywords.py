"""Salient keyword extraction for relevance matching.

Two sources:
  - extract_keywords(): asks the keyword model for 5-10 key concepts.
    Returns [] on any failure (no API key, quota, transport error).
  - extract_local_keywords(): stopword-filtered token extraction with no
    external dependency. Used whenever the model returns nothing.
"""

import re

from openai import OpenAI

from app.core.config import get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)

# Input sent to the keyword model is capped
MAX_KEYWORD_INPUT_CHARS = 2000

KEYWORD_SYSTEM_PROMPT = (
    "Extract 5-10 key semantic concepts from this text. "
    "Return only comma-separated keywords/phrases, nothing else."
)

STOP_WORDS = {
    "a", "an", "the", "is", "are", "was", "were", "be", "been", "being",
    "have", "has", "had", "do", "does", "did", "will", "would", "could",
    "should", "may", "might", "must", "shall", "can", "need",
    "and", "or", "but", "if", "then", "else", "when", "where", "why",
    "how", "what", "which", "who", "whom", "this", "that", "these",
    "those", "am", "to", "of", "in", "for", "on", "with", "at", "by",
    "from", "as", "into", "through", "during", "before", "after", "above",
    "below", "between", "under", "again", "further", "once", "here",
    "there", "all", "each", "few", "more", "most", "other", "some", "such",
    "no", "not", "only", "own", "same", "so", "than", "too", "very",
    "just", "also", "now", "i", "me", "my", "myself", "we", "our", "you",
    "your", "he", "she", "it", "its", "they", "them", "their", "want",
    "wants", "really", "about", "get", "got", "like", "more", "being",
    "someone", "something", "thing", "things", "way", "make", "who",
}

_WORD_RE = re.compile(r"\b[a-z][a-z0-9'-]*[a-z0-9]\b")


def tokenize(text: str) -> list[str]:
    """Lowercase word tokens (hyphenated terms kept whole)."""
    if not text:
        return []
    return _WORD_RE.findall(text.lower())


def extract_local_keywords(text: str, max_keywords: int = 8) -> list[str]:
    """
    Extract salient keywords from text without any external call.

    Words are scored by frequency; hyphenated terms get a small boost.
    Ties keep first-appearance order so the result is deterministic.

    Args:
        text: Text to extract keywords from
        max_keywords: Maximum number of keywords to return

    Returns:
        List of keywords, highest score first
    """
    scores: dict[str, int] = {}
    for word in tokenize(text):
        if word in STOP_WORDS or len(word) < 3:
            continue
        score = 2 if "-" in word else 1
        scores[word] = scores.get(word, 0) + score

    # dicts keep insertion order, and sorted() is stable
    ranked = sorted(scores.items(), key=lambda item: item[1], reverse=True)
    return [word for word, _ in ranked[:max_keywords]]


def _get_client() -> OpenAI:
    """Get OpenAI client instance."""
    return OpenAI(api_key=get_settings().OPENAI_API_KEY)


def parse_keyword_response(raw: str, max_keywords: int = 10) -> list[str]:
    """Split a comma-separated model answer into clean, unique keywords."""
    keywords: list[str] = []
    for part in (raw or "").split(","):
        keyword = part.strip().strip(".\"'").lower()
        if keyword and keyword not in keywords:
            keywords.append(keyword)
    return keywords[:max_keywords]


def extract_keywords(text: str) -> list[str]:
    """
    Ask the keyword model for salient concepts in ``text``.

    Returns an empty list when the model is unavailable; callers treat that
    as "tier unavailable" and fall back to extract_local_keywords().
    """
    if not text or not text.strip():
        return []

    settings = get_settings()
    if not settings.OPENAI_API_KEY:
        return []

    try:
        response = _get_client().chat.completions.create(
            model=settings.KEYWORD_MODEL,
            messages=[
                {"role": "system", "content": KEYWORD_SYSTEM_PROMPT},
                {"role": "user", "content": text[:MAX_KEYWORD_INPUT_CHARS]},
            ],
            temperature=0.0,
            max_tokens=100,
        )
        raw = response.choices[0].message.content or ""
    except Exception as e:
        logger.warning(f"Keyword extraction unavailable: {e}")
        return []

    keywords = parse_keyword_response(raw)
    logger.debug(f"Semantic keywords extracted: {', '.join(keywords)[:100]}")
    return keywords
