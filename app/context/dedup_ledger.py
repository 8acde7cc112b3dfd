"""Deduplication Ledger.

Collects what the user already did, and what was already generated for
them, within a look-back window. The titles are not used to filter content
sections; they are surfaced as their own section so the generation step can
steer away from repeating them.
"""

from datetime import datetime, timedelta, timezone
from typing import Any

from app.context.errors import StorageConnectionError
from app.context.models import parse_timestamp
from app.core.logging import get_logger
from app.db.user_records import ARTIFACT_SOURCES, RecordStore

logger = get_logger(__name__)

ACTION_LIMIT = 60
ARTIFACT_LIMIT = 30


def normalize_title(title: Any) -> str:
    return " ".join(str(title or "").split())


def _ledger_rows(store: RecordStore, user_id: str, since: datetime) -> list[tuple[datetime | None, str]]:
    entries: list[tuple[datetime | None, str]] = []

    try:
        for row in store.list_actions(user_id, limit=ACTION_LIMIT, since=since.date()):
            entries.append((parse_timestamp(row.get("action_date")), row.get("action_text")))
    except StorageConnectionError:
        raise
    except Exception as e:
        logger.warning(f"Action history unavailable for ledger: {e}")

    for kind in ARTIFACT_SOURCES:
        try:
            rows = store.list_generated_artifacts(user_id, kind, since=since.date(), limit=ARTIFACT_LIMIT)
        except StorageConnectionError:
            raise
        except Exception as e:
            logger.warning(f"Generated {kind} history unavailable for ledger: {e}")
            continue
        for row in rows:
            entries.append((parse_timestamp(row.get("created_at")), row.get("title")))

    return entries


def collect_exclusions(
    store: RecordStore,
    user_id: str,
    window_days: int = 30,
    now: datetime | None = None,
) -> list[str]:
    """
    Titles performed or generated within the window, most recent first.

    Titles are whitespace-normalized and deduplicated case-insensitively.
    Rows dated before the window are ignored even if storage returned them.

    Raises:
        StorageConnectionError: If storage cannot be reached at all
    """
    now = now or datetime.now(timezone.utc)
    since = now - timedelta(days=window_days)
    # Date-granular sources (action_date, task_date) compare at day level
    cutoff = since.replace(hour=0, minute=0, second=0, microsecond=0)

    entries = [
        (when, normalize_title(title))
        for when, title in _ledger_rows(store, user_id, since)
        if normalize_title(title) and (when is None or when >= cutoff)
    ]
    # Newest first; undated rows last; ties alphabetical for stable output
    entries.sort(key=lambda e: e[1].lower())
    entries.sort(key=lambda e: (e[0] is not None, e[0] or cutoff), reverse=True)

    seen: set[str] = set()
    titles: list[str] = []
    for _, title in entries:
        key = title.lower()
        if key not in seen:
            seen.add(key)
            titles.append(title)

    logger.debug(f"Deduplication ledger for user {user_id}: {len(titles)} titles in {window_days} days")
    return titles


def excluded_titles(
    store: RecordStore,
    user_id: str,
    window_days: int = 30,
    now: datetime | None = None,
) -> set[str]:
    """Set form of collect_exclusions()."""
    return set(collect_exclusions(store, user_id, window_days, now=now))
