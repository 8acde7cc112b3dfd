"""Read-only per-category access to a user's personal records.

One accessor per category, each keyed by user_id and accepting a row limit,
an ordering column and category-specific filters. Accessors return [] when
there are no rows (or the query itself is rejected) and raise
StorageConnectionError only when storage cannot be reached.
"""

from datetime import date, datetime
from typing import Any, Callable, Protocol

import httpx
from supabase import Client

from app.context.errors import StorageConnectionError
from app.core.logging import get_logger
from app.db.supabase_client import get_supabase

logger = get_logger(__name__)

INSIGHT_COLUMNS = "id, title, content, source, topic_id, created_at, relevance_score, last_accessed, access_count"
DOCUMENT_COLUMNS = "id, title, summary, topic_id, created_at, relevance_score, last_accessed, access_count"
EXPERIMENT_COLUMNS = "id, title, description, status, hypothesis, identity_shift_target, created_at"
ACTION_COLUMNS = "id, action_text, reflection, pillar, action_date"
TOPIC_COLUMNS = "id, name, description, created_at"
CONNECTION_COLUMNS = "id, source_type, source_id, target_type, target_id, note, created_at"
IDENTITY_COLUMNS = "content, core_values, weekly_focus, current_phase, last_pillar_used"

# Generated artifacts the ledger reads: kind -> (table, title column, date column)
ARTIFACT_SOURCES: dict[str, tuple[str, str, str]] = {
    "daily_suggestion": ("daily_tasks", "one_thing", "task_date"),
    "learning_path": ("learning_paths", "title", "created_at"),
}


class RecordStore(Protocol):
    """Interface the fetcher and ledger read through."""

    def get_identity(self, user_id: str) -> dict[str, Any] | None: ...

    def list_insights(
        self, user_id: str, limit: int = ..., order_by: str = ..., include_embedding: bool = ...
    ) -> list[dict[str, Any]]: ...

    def list_documents(
        self, user_id: str, limit: int = ..., order_by: str = ..., include_embedding: bool = ...
    ) -> list[dict[str, Any]]: ...

    def list_experiments(
        self, user_id: str, limit: int = ..., order_by: str = ..., statuses: list[str] | None = ...
    ) -> list[dict[str, Any]]: ...

    def list_actions(
        self, user_id: str, limit: int = ..., order_by: str = ..., since: date | datetime | None = ...
    ) -> list[dict[str, Any]]: ...

    def list_topics(self, user_id: str, limit: int = ..., order_by: str = ...) -> list[dict[str, Any]]: ...

    def list_connections(
        self, user_id: str, limit: int = ..., order_by: str = ...
    ) -> list[dict[str, Any]]: ...

    def list_generated_artifacts(
        self, user_id: str, kind: str, since: date | datetime | None = ..., limit: int = ...
    ) -> list[dict[str, Any]]: ...


class SupabaseRecordStore:
    """Storage collaborator backed by the Supabase (PostgREST) client."""

    def __init__(self, client: Client):
        self.client = client

    @classmethod
    def connect(cls) -> "SupabaseRecordStore":
        """
        Build a store from the cached Supabase client.

        Raises:
            StorageConnectionError: If the client cannot be created
        """
        return cls(get_supabase())

    def _rows(self, table: str, build: Callable[[Any], Any]) -> list[dict[str, Any]]:
        """Execute a query against ``table`` and return its rows."""
        try:
            response = build(self.client.table(table)).execute()
        except httpx.TransportError as e:
            raise StorageConnectionError(f"Storage unreachable while reading {table}: {e}") from e
        except Exception as e:
            logger.warning(f"Query on {table} failed, treating as empty: {e}")
            return []

        if response is None or not response.data:
            return []
        return list(response.data)

    def get_identity(self, user_id: str) -> dict[str, Any] | None:
        try:
            response = (
                self.client.table("identity_seeds")
                .select(IDENTITY_COLUMNS)
                .eq("user_id", user_id)
                .maybe_single()
                .execute()
            )
        except httpx.TransportError as e:
            raise StorageConnectionError(f"Storage unreachable while reading identity_seeds: {e}") from e
        except Exception as e:
            logger.warning(f"Identity query failed, treating as empty: {e}")
            return None

        # maybe_single() returns None (not an empty response) when no row matches
        if response is None or not response.data:
            return None
        return response.data

    def list_insights(
        self,
        user_id: str,
        limit: int = 15,
        order_by: str = "created_at",
        include_embedding: bool = False,
    ) -> list[dict[str, Any]]:
        columns = INSIGHT_COLUMNS + (", embedding" if include_embedding else "")
        return self._rows(
            "insights",
            lambda q: q.select(columns)
            .eq("user_id", user_id)
            .order(order_by, desc=True)
            .limit(limit),
        )

    def list_documents(
        self,
        user_id: str,
        limit: int = 8,
        order_by: str = "created_at",
        include_embedding: bool = False,
    ) -> list[dict[str, Any]]:
        columns = DOCUMENT_COLUMNS + (", embedding" if include_embedding else "")
        return self._rows(
            "documents",
            lambda q: q.select(columns)
            .eq("user_id", user_id)
            .order(order_by, desc=True)
            .limit(limit),
        )

    def list_experiments(
        self,
        user_id: str,
        limit: int = 20,
        order_by: str = "created_at",
        statuses: list[str] | None = None,
    ) -> list[dict[str, Any]]:
        def build(q: Any) -> Any:
            q = q.select(EXPERIMENT_COLUMNS).eq("user_id", user_id)
            if statuses:
                q = q.in_("status", statuses)
            return q.order(order_by, desc=True).limit(limit)

        return self._rows("experiments", build)

    def list_actions(
        self,
        user_id: str,
        limit: int = 30,
        order_by: str = "action_date",
        since: date | datetime | None = None,
    ) -> list[dict[str, Any]]:
        """Completed action history, newest first."""

        def build(q: Any) -> Any:
            q = q.select(ACTION_COLUMNS).eq("user_id", user_id)
            if since is not None:
                q = q.gte("action_date", since.isoformat())
            return q.order(order_by, desc=True).limit(limit)

        return self._rows("action_history", build)

    def list_topics(
        self, user_id: str, limit: int = 10, order_by: str = "created_at"
    ) -> list[dict[str, Any]]:
        return self._rows(
            "topics",
            lambda q: q.select(TOPIC_COLUMNS)
            .eq("user_id", user_id)
            .order(order_by, desc=True)
            .limit(limit),
        )

    def list_connections(
        self, user_id: str, limit: int = 20, order_by: str = "created_at"
    ) -> list[dict[str, Any]]:
        return self._rows(
            "connections",
            lambda q: q.select(CONNECTION_COLUMNS)
            .eq("user_id", user_id)
            .order(order_by, desc=True)
            .limit(limit),
        )

    def list_generated_artifacts(
        self,
        user_id: str,
        kind: str,
        since: date | datetime | None = None,
        limit: int = 30,
    ) -> list[dict[str, Any]]:
        """
        Previously generated artifacts of one kind as {"title", "created_at"} rows.

        Raises:
            ValueError: If kind is not a known artifact source
        """
        if kind not in ARTIFACT_SOURCES:
            raise ValueError(f"Unknown artifact kind: {kind}")
        table, title_column, date_column = ARTIFACT_SOURCES[kind]

        def build(q: Any) -> Any:
            q = q.select(f"{title_column}, {date_column}").eq("user_id", user_id)
            if since is not None:
                q = q.gte(date_column, since.isoformat())
            return q.order(date_column, desc=True).limit(limit)

        return [
            {"title": row.get(title_column), "created_at": row.get(date_column)}
            for row in self._rows(table, build)
        ]
