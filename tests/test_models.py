"""Tests for context record models."""

from datetime import date, datetime, timezone

import pytest
from pydantic import ValidationError

from app.context.models import (
    Action,
    ContextPack,
    Document,
    Experiment,
    IdentityStatement,
    Insight,
    PackSection,
    RawSnapshot,
    Topic,
    parse_timestamp,
)


def test_parse_timestamp_variants():
    expected = datetime(2025, 6, 1, tzinfo=timezone.utc)
    assert parse_timestamp("2025-06-01T00:00:00Z") == expected
    assert parse_timestamp("2025-06-01T00:00:00+00:00") == expected
    assert parse_timestamp("2025-06-01") == expected
    assert parse_timestamp(date(2025, 6, 1)) == expected
    assert parse_timestamp(datetime(2025, 6, 1)) == expected


def test_parse_timestamp_rejects_garbage():
    assert parse_timestamp(None) is None
    assert parse_timestamp("") is None
    assert parse_timestamp("not a date") is None
    assert parse_timestamp(12345) is None


def test_insight_maps_storage_columns():
    insight = Insight.model_validate(
        {
            "id": 7,
            "title": "Mornings",
            "content": "I write more in the morning.",
            "source": "journal",
            "access_count": None,
            "embedding": "[0.1,0.2,0.3]",
            "created_at": "2025-06-01T08:00:00Z",
        }
    )
    assert insight.id == "7"
    assert insight.body == "I write more in the morning."
    assert insight.access_count == 0
    assert insight.embedding == [0.1, 0.2, 0.3]
    assert insight.created_at.tzinfo is not None


def test_unparseable_embedding_becomes_none():
    assert Document.model_validate({"id": "d", "embedding": "not-json"}).embedding is None
    assert Document.model_validate({"id": "d", "embedding": []}).embedding is None


def test_category_specific_aliases():
    assert Document.model_validate({"summary": "abc"}).body == "abc"
    assert Topic.model_validate({"name": "Writing", "description": "craft"}).title == "Writing"

    action = Action.model_validate(
        {"action_text": "Ran 5k", "reflection": "tired", "action_date": "2025-06-02", "completed": None}
    )
    assert action.title == "Ran 5k"
    assert action.body == "tired"
    assert action.created_at == datetime(2025, 6, 2, tzinfo=timezone.utc)
    assert action.completed is True


def test_experiment_status_defaults_to_planning():
    assert Experiment.model_validate({"title": "x", "status": None}).status == "planning"
    assert Experiment.model_validate({"title": "x", "description": "why"}).body == "why"


def test_identity_statement_defaults():
    identity = IdentityStatement.model_validate({"content": None, "current_phase": None})
    assert identity.statement == ""
    assert identity.current_phase == "baseline"
    assert identity.is_empty

    assert not IdentityStatement(statement="I am a runner").is_empty


def test_raw_snapshot_lists_are_never_none():
    snapshot = RawSnapshot(insights=None, documents=None, identity=None)
    assert snapshot.insights == []
    assert snapshot.documents == []
    assert snapshot.connections == []
    assert snapshot.identity.is_empty


def test_context_pack_text_layout():
    pack = ContextPack(
        consumer="default",
        profile="default",
        max_tokens=100,
        sections=[
            PackSection(key="identity", header="IDENTITY (PRIMARY DRIVER)", lines=["I am a writer"]),
            PackSection(key="insights", header="INSIGHTS", lines=["- a", "- b"], item_ids=["1", "2"]),
        ],
    )
    assert pack.to_text() == "IDENTITY (PRIMARY DRIVER):\nI am a writer\n\nINSIGHTS:\n- a\n- b"
    assert pack.section_keys == ["identity", "insights"]
    assert pack.section("insights").item_ids == ["1", "2"]
    assert pack.section("documents") is None
    assert pack.estimated_tokens() == len(pack.to_text()) // 4
    assert not pack.is_empty


def test_wrongly_typed_scored_fields_fail_validation():
    with pytest.raises(ValidationError):
        Insight.model_validate({"id": "i", "embedding": "5"})
    with pytest.raises(ValidationError):
        Insight.model_validate({"id": "i", "access_count": [1]})
