"""Pytest configuration and fixtures."""

import os
from datetime import datetime, timezone

import pytest

TEST_ENV = {
    "SUPABASE_URL": "https://test.supabase.co",
    "SUPABASE_SERVICE_ROLE_KEY": "test-key",
    "OPENAI_API_KEY": "test-openai-key",
    "CONTEXT_ENGINE_ENV": "test",
}

# Modules read settings at import time (logger levels), before fixtures run
for _key, _value in TEST_ENV.items():
    os.environ.setdefault(_key, _value)

from tests.fakes.fake_store import FakeRecordStore  # noqa: E402

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ.update(TEST_ENV)


@pytest.fixture
def now() -> datetime:
    """Fixed reference time for windowed reads."""
    return NOW


@pytest.fixture
def empty_store() -> FakeRecordStore:
    """Store with no records in any category."""
    return FakeRecordStore()


@pytest.fixture
def populated_store() -> FakeRecordStore:
    """Store with a small, realistic record set in every category."""
    return FakeRecordStore(
        rows={
            "identity": {
                "content": "I am becoming a writer who ships a short essay every week.",
                "core_values": "honesty, craft, consistency",
                "weekly_focus": "Finish the draft about walking",
                "current_phase": "building",
                "last_pillar_used": "creative",
            },
            "insights": [
                {
                    "id": "ins-1",
                    "title": "Mornings work best",
                    "content": "I write twice as much before 9am as I do in the evening.",
                    "source": "journal",
                    "created_at": "2025-06-14T08:00:00Z",
                },
                {
                    "id": "ins-2",
                    "title": "Too short",
                    "content": "meh",
                    "created_at": "2025-06-13T08:00:00Z",
                },
                {
                    "id": "ins-3",
                    "title": "Editing drains me",
                    "content": "Editing the same paragraph more than twice kills momentum.",
                    "created_at": "2025-06-10T08:00:00Z",
                },
            ],
            "documents": [
                {
                    "id": "doc-1",
                    "title": "On Writing Well notes",
                    "summary": "Clarity, simplicity, brevity and humanity in nonfiction.",
                    "created_at": "2025-06-01T00:00:00Z",
                },
            ],
            "experiments": [
                {
                    "id": "exp-1",
                    "title": "500 words before breakfast",
                    "status": "in_progress",
                    "hypothesis": "Writing first thing builds the habit",
                    "created_at": "2025-06-05T00:00:00Z",
                },
                {
                    "id": "exp-2",
                    "title": "Public accountability post",
                    "status": "planning",
                    "description": "Announce the weekly essay publicly",
                    "created_at": "2025-06-06T00:00:00Z",
                },
                {
                    "id": "exp-3",
                    "title": "Old experiment",
                    "status": "completed",
                    "created_at": "2025-04-01T00:00:00Z",
                },
            ],
            "actions": [
                {
                    "id": "act-1",
                    "action_text": "Published essay on solitude",
                    "reflection": "Felt scary but good",
                    "pillar": "creative",
                    "action_date": "2025-06-12",
                },
                {
                    "id": "act-2",
                    "action_text": "Went for a long walk",
                    "pillar": "health",
                    "action_date": "2025-06-11",
                },
            ],
            "topics": [
                {
                    "id": "top-1",
                    "name": "Writing",
                    "description": "Craft and habit of writing",
                    "created_at": "2025-05-01T00:00:00Z",
                },
            ],
            "connections": [
                {
                    "id": "con-1",
                    "source_type": "insight",
                    "source_id": "ins-1",
                    "target_type": "experiment",
                    "target_id": "exp-1",
                    "note": "Morning energy supports the breakfast experiment",
                    "created_at": "2025-06-07T00:00:00Z",
                },
            ],
            "daily_suggestion": [
                {"title": "Outline next week's essay", "created_at": "2025-06-13"},
            ],
            "learning_path": [
                {"title": "Narrative nonfiction basics", "created_at": "2025-04-01T00:00:00Z"},
            ],
        }
    )
