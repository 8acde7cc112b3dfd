"""Context aggregation engine: one call every consumer makes.

Pipeline: fetch -> compact -> (relevance) -> ledger -> allocate -> format.

Usage:
    from app.context.engine import build_context

    pack = await build_context(user_id, "daily_suggestions")
    prompt_context = pack.to_text()

Every stage degrades instead of failing: a missing source empties its
section, an unavailable relevance tier falls through to the next one, and a
missing identity statement skips relevance ranking altogether. Only a storage
connectivity failure reaches the caller (StorageConnectionError).

The caller's deadline is one budget for the whole aggregation. A stage that
overruns it is dropped: relevance keeps recency order and the ledger is omitted.
"""

import asyncio
import logging
from datetime import datetime, timezone

from app.context.compactor import compact
from app.context.dedup_ledger import collect_exclusions
from app.context.errors import StorageConnectionError
from app.context.fetcher import FetchPlan, fetch_snapshot
from app.context.formatter import build_sections
from app.context.models import BuildOptions, CompactContext, ContextPack
from app.context.relevance import (
    EmbedFn,
    KeywordFn,
    RelevanceResolver,
    relevance_order,
)
from app.context.token_budget import allocate, format_budget_report
from app.context.weight_profiles import resolve
from app.core.config import get_settings
from app.core.logging import get_logger, log_with_context
from app.db.user_records import RecordStore, SupabaseRecordStore

logger = get_logger(__name__)


def _default_embed() -> EmbedFn:
    from app.core.embeddings import embed_text

    return embed_text


def _default_keyword_extractor() -> KeywordFn:
    from app.core.keywords import extract_keywords

    return extract_keywords


def apply_relevance(
    context: CompactContext,
    resolver: RelevanceResolver,
) -> CompactContext:
    """
    Reorder insights and documents by relevance to the identity statement.

    Skipped (pure recency) when there is no identity statement.
    """
    query = context.identity.statement.strip()
    if not query:
        logger.info("No identity statement - using recency-ordered context")
        return context

    insights_result = resolver.resolve(query, context.insights)
    documents_result = resolver.resolve(query, context.documents)

    tier = insights_result.tier if context.insights else documents_result.tier
    return context.model_copy(
        update={
            "insights": relevance_order(insights_result, context.insights),
            "documents": relevance_order(documents_result, context.documents),
            "relevance_tier": tier,
        }
    )


async def build_context(
    user_id: str,
    consumer_name: str = "default",
    options: BuildOptions | None = None,
    *,
    store: RecordStore | None = None,
    embed: EmbedFn | None = None,
    keyword_extractor: KeywordFn | None = None,
    now: datetime | None = None,
) -> ContextPack:
    """
    Build the size-bounded context pack for one consumer request.

    Args:
        user_id: User whose records are aggregated
        consumer_name: Consumer requesting the pack (unknown names use "default")
        options: Token budget, item cap, relevance search and deadline overrides
        store: Storage collaborator (defaults to Supabase)
        embed: Embedding collaborator (defaults to OpenAI embeddings)
        keyword_extractor: Keyword collaborator (defaults to the keyword model)
        now: Reference time for windowed reads

    Returns:
        ContextPack ready for to_text()

    Raises:
        StorageConnectionError: If storage cannot be reached at all
    """
    settings = get_settings()
    options = options or BuildOptions()
    now = now or datetime.now(timezone.utc)

    profile = resolve(consumer_name)
    max_tokens = options.max_tokens or settings.CONTEXT_MAX_TOKENS
    max_items = options.max_items_per_category or settings.CONTEXT_MAX_ITEMS_PER_CATEGORY
    deadline = options.deadline_seconds or settings.CONTEXT_FETCH_TIMEOUT_SECONDS
    window_days = options.dedup_window_days or settings.DEDUP_WINDOW_DAYS

    store = store or SupabaseRecordStore.connect()

    loop = asyncio.get_running_loop()
    expires_at = loop.time() + deadline

    def remaining() -> float:
        return max(expires_at - loop.time(), 0.0)

    plan = (
        FetchPlan.historical(settings.HISTORICAL_POOL_SIZE)
        if options.use_relevance_search
        else FetchPlan()
    )
    snapshot = await fetch_snapshot(store, user_id, plan=plan, deadline_seconds=deadline, now=now)

    context = compact(snapshot, profile, min_body_chars={"insights": settings.MIN_INSIGHT_CHARS})

    if options.use_relevance_search:
        resolver = RelevanceResolver.default(
            embed=embed or _default_embed(),
            extract_keywords=keyword_extractor or _default_keyword_extractor(),
            threshold=profile.similarity_threshold,
            top_k=profile.relevance_top_k,
            apply_decay=settings.RELEVANCE_APPLY_DECAY,
            max_query_chars=settings.MAX_QUERY_CHARS,
        )
        try:
            context = await asyncio.wait_for(
                asyncio.to_thread(apply_relevance, context, resolver),
                timeout=remaining(),
            )
        except TimeoutError:
            logger.warning(f"Relevance ranking exceeded {deadline}s deadline, keeping recency order")

    try:
        excluded = await asyncio.wait_for(
            asyncio.to_thread(collect_exclusions, store, user_id, window_days, now),
            timeout=remaining(),
        )
    except StorageConnectionError as e:
        # Snapshot was read; only the ledger section is lost
        logger.warning(f"Deduplication ledger unavailable: {e}")
        excluded = []
    except TimeoutError:
        logger.warning(f"Deduplication ledger exceeded {deadline}s deadline, omitting it")
        excluded = []

    budgets = allocate(profile, max_tokens)
    sections = build_sections(context, budgets, max_items, excluded)

    pack = ContextPack(
        consumer=consumer_name,
        profile=profile.name,
        max_tokens=max_tokens,
        budgets=budgets,
        sections=sections,
        excluded=excluded,
        relevance_tier=context.relevance_tier,
    )

    log_with_context(
        logger,
        logging.INFO,
        "Built context pack",
        user_id=user_id,
        consumer=consumer_name,
        profile=profile.name,
        sections=",".join(pack.section_keys) or "none",
        tier=pack.relevance_tier or "none",
        estimated_tokens=pack.estimated_tokens(),
    )
    if logger.isEnabledFor(logging.DEBUG):
        used = {s.key: s.char_count for s in sections}
        used["identity"] = used.get("identity", 0) + used.pop("current_focus", 0)
        for bucket in ("experiments_in_progress", "experiments_planning"):
            used["experiments"] = used.get("experiments", 0) + used.pop(bucket, 0)
        logger.debug(format_budget_report(budgets, used, max_tokens))

    return pack
