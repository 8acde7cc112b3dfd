"""Tests for the Supabase record store with a mocked client."""

from datetime import date
from unittest.mock import MagicMock

import httpx
import pytest

from app.context.errors import StorageConnectionError
from app.db.user_records import ARTIFACT_SOURCES, INSIGHT_COLUMNS, SupabaseRecordStore


def _mock_client(data):
    """Client whose query builder chains and finally returns ``data``."""
    query = MagicMock()
    for method in ("select", "eq", "gte", "in_", "order", "limit", "maybe_single"):
        getattr(query, method).return_value = query
    query.execute.return_value = MagicMock(data=data)

    client = MagicMock()
    client.table.return_value = query
    return client, query


def test_list_insights_reads_recent_rows():
    rows = [{"id": "1", "title": "A", "content": "body"}]
    client, query = _mock_client(rows)

    result = SupabaseRecordStore(client).list_insights("user-1", limit=5)

    assert result == rows
    client.table.assert_called_once_with("insights")
    query.select.assert_called_once_with(INSIGHT_COLUMNS)
    query.eq.assert_called_once_with("user_id", "user-1")
    query.order.assert_called_once_with("created_at", desc=True)
    query.limit.assert_called_once_with(5)


def test_list_insights_with_embeddings():
    client, query = _mock_client([])
    SupabaseRecordStore(client).list_insights("user-1", include_embedding=True)
    assert query.select.call_args.args[0].endswith(", embedding")


def test_no_rows_returns_empty_list():
    client, _ = _mock_client(None)
    assert SupabaseRecordStore(client).list_documents("user-1") == []


def test_list_experiments_status_filter():
    client, query = _mock_client([])
    SupabaseRecordStore(client).list_experiments("user-1", statuses=["in_progress", "planning"])
    query.in_.assert_called_once_with("status", ["in_progress", "planning"])


def test_list_actions_since_filter():
    client, query = _mock_client([])
    SupabaseRecordStore(client).list_actions("user-1", since=date(2025, 6, 1))

    client.table.assert_called_once_with("action_history")
    query.gte.assert_called_once_with("action_date", "2025-06-01")
    query.order.assert_called_once_with("action_date", desc=True)


def test_transport_error_raises_storage_connection_error():
    client, query = _mock_client([])
    query.execute.side_effect = httpx.ConnectError("connection refused")

    with pytest.raises(StorageConnectionError):
        SupabaseRecordStore(client).list_topics("user-1")


def test_rejected_query_degrades_to_empty():
    client, query = _mock_client([])
    query.execute.side_effect = Exception("column does not exist")

    assert SupabaseRecordStore(client).list_connections("user-1") == []


def test_get_identity_single_row():
    client, query = _mock_client({"content": "I am a runner"})
    assert SupabaseRecordStore(client).get_identity("user-1") == {"content": "I am a runner"}
    client.table.assert_called_once_with("identity_seeds")
    query.maybe_single.assert_called_once()


def test_get_identity_missing_row():
    client, query = _mock_client(None)
    query.execute.return_value = None
    assert SupabaseRecordStore(client).get_identity("user-1") is None


def test_get_identity_transport_error():
    client, query = _mock_client(None)
    query.execute.side_effect = httpx.ReadTimeout("timed out")

    with pytest.raises(StorageConnectionError):
        SupabaseRecordStore(client).get_identity("user-1")


def test_generated_artifacts_are_normalized():
    client, query = _mock_client([{"one_thing": "Call mom", "task_date": "2025-06-10"}])
    rows = SupabaseRecordStore(client).list_generated_artifacts(
        "user-1", "daily_suggestion", since=date(2025, 6, 1)
    )

    assert rows == [{"title": "Call mom", "created_at": "2025-06-10"}]
    table, title_column, date_column = ARTIFACT_SOURCES["daily_suggestion"]
    client.table.assert_called_once_with(table)
    query.select.assert_called_once_with(f"{title_column}, {date_column}")
    query.gte.assert_called_once_with(date_column, "2025-06-01")


def test_unknown_artifact_kind():
    client, _ = _mock_client([])
    with pytest.raises(ValueError, match="Unknown artifact kind"):
        SupabaseRecordStore(client).list_generated_artifacts("user-1", "poems")
