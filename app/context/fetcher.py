"""Multi-Source Fetcher.

Issues one read per category concurrently and assembles a RawSnapshot once
all of them have settled (or the deadline passes). A failed, empty or
abandoned query degrades its own category to [] without touching the others.
Only a storage connectivity failure on every query is raised.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from pydantic import BaseModel, ValidationError

from app.context.errors import StorageConnectionError
from app.context.models import (
    Action,
    Connection,
    Document,
    Experiment,
    IdentityStatement,
    Insight,
    RawSnapshot,
    Topic,
)
from app.core.logging import get_logger
from app.db.user_records import RecordStore

logger = get_logger(__name__)

# Row limits per category (recent slice)
INSIGHT_LIMIT = 15
DOCUMENT_LIMIT = 8
EXPERIMENT_LIMIT = 20
ACTION_LIMIT = 30
ACTION_WINDOW_DAYS = 30
TOPIC_LIMIT = 10
CONNECTION_LIMIT = 20

# Historical pool sizes when ranking by relevance
DOCUMENT_POOL_LIMIT = 200


@dataclass(frozen=True)
class FetchPlan:
    """Row limits for one fetch. Relevance search widens the insight/document pools."""

    insight_limit: int = INSIGHT_LIMIT
    document_limit: int = DOCUMENT_LIMIT
    include_embeddings: bool = False

    @classmethod
    def historical(cls, pool_size: int) -> "FetchPlan":
        return cls(
            insight_limit=pool_size,
            document_limit=min(pool_size, DOCUMENT_POOL_LIMIT),
            include_embeddings=True,
        )


def _parse_rows(category: str, model: type[BaseModel], rows: list[dict[str, Any]]) -> list[Any]:
    """Validate rows into records, skipping (and logging) malformed ones."""
    parsed = []
    for row in rows or []:
        try:
            parsed.append(model.model_validate(row))
        except ValidationError as e:
            logger.warning(
                f"Skipping malformed {category} row {row.get('id', '?')}: "
                f"{e.error_count()} validation errors"
            )
    return parsed


def _category_queries(
    store: RecordStore, user_id: str, plan: FetchPlan, now: datetime
) -> dict[str, Callable[[], Any]]:
    action_since = (now - timedelta(days=ACTION_WINDOW_DAYS)).date()
    return {
        "identity": lambda: store.get_identity(user_id),
        "insights": lambda: store.list_insights(
            user_id, limit=plan.insight_limit, include_embedding=plan.include_embeddings
        ),
        "documents": lambda: store.list_documents(
            user_id, limit=plan.document_limit, include_embedding=plan.include_embeddings
        ),
        "experiments": lambda: store.list_experiments(user_id, limit=EXPERIMENT_LIMIT),
        "actions": lambda: store.list_actions(user_id, limit=ACTION_LIMIT, since=action_since),
        "topics": lambda: store.list_topics(user_id, limit=TOPIC_LIMIT),
        "connections": lambda: store.list_connections(user_id, limit=CONNECTION_LIMIT),
    }


async def fetch_snapshot(
    store: RecordStore,
    user_id: str,
    plan: FetchPlan | None = None,
    deadline_seconds: float | None = None,
    now: datetime | None = None,
) -> RawSnapshot:
    """
    Fetch every category for a user concurrently.

    Args:
        store: Storage collaborator
        user_id: User whose records to read
        plan: Row limits (defaults to the recent slice)
        deadline_seconds: Queries still running after this are abandoned
        now: Reference time for windowed queries (defaults to current UTC)

    Returns:
        RawSnapshot with every list present (possibly empty)

    Raises:
        StorageConnectionError: If every query failed to reach storage
    """
    plan = plan or FetchPlan()
    now = now or datetime.now(timezone.utc)
    queries = _category_queries(store, user_id, plan, now)

    tasks = {
        asyncio.create_task(asyncio.to_thread(query), name=category): category
        for category, query in queries.items()
    }
    done, pending = await asyncio.wait(tasks, timeout=deadline_seconds)

    for task in pending:
        task.cancel()
    if pending:
        logger.warning(
            f"Fetch deadline of {deadline_seconds}s reached; abandoned "
            f"{', '.join(sorted(tasks[t] for t in pending))}"
        )

    results: dict[str, Any] = {}
    connection_failures: list[str] = []
    for task in done:
        category = tasks[task]
        error = task.exception()
        if error is None:
            results[category] = task.result()
            continue
        if isinstance(error, StorageConnectionError):
            connection_failures.append(category)
        logger.warning(f"Source {category} unavailable, using empty section: {error}")

    if len(connection_failures) == len(tasks):
        raise StorageConnectionError(
            f"Could not reach storage for any category (user {user_id})"
        )

    identity_row = results.get("identity")
    try:
        identity = IdentityStatement.model_validate(identity_row) if identity_row else IdentityStatement()
    except ValidationError:
        logger.warning("Malformed identity row, treating identity as empty")
        identity = IdentityStatement()

    snapshot = RawSnapshot(
        identity=identity,
        insights=_parse_rows("insights", Insight, results.get("insights") or []),
        documents=_parse_rows("documents", Document, results.get("documents") or []),
        experiments=_parse_rows("experiments", Experiment, results.get("experiments") or []),
        actions=_parse_rows("actions", Action, results.get("actions") or []),
        topics=_parse_rows("topics", Topic, results.get("topics") or []),
        connections=_parse_rows("connections", Connection, results.get("connections") or []),
    )

    logger.info(
        f"Fetched snapshot for user {user_id}: "
        f"{len(snapshot.insights)} insights, {len(snapshot.documents)} documents, "
        f"{len(snapshot.experiments)} experiments, {len(snapshot.actions)} actions, "
        f"{len(snapshot.topics)} topics, {len(snapshot.connections)} connections"
    )
    return snapshot
