"""Compactor / Quality Filter.

Turns a RawSnapshot into a CompactContext:
  1. drop items whose body is below the category's minimum length
  2. order each list newest first, ties broken by title then id
  3. bucket experiments into in-progress / planning / historical
"""

from datetime import datetime, timezone
from typing import Sequence, TypeVar

from app.context.models import (
    Action,
    CompactContext,
    Experiment,
    ExperimentBuckets,
    RawSnapshot,
    Record,
)
from app.context.weight_profiles import WeightProfile
from app.core.logging import get_logger

logger = get_logger(__name__)

R = TypeVar("R", bound=Record)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)

DEFAULT_MIN_BODY_CHARS: dict[str, int] = {
    "insights": 30,
    "documents": 0,
    "experiments": 0,
    "actions": 0,
    "topics": 0,
    "connections": 0,
}

IN_PROGRESS_STATUSES = {"in_progress", "active"}
PLANNING_STATUSES = {"planning"}

MAX_PILLAR_HISTORY = 5


def sort_by_recency(items: Sequence[R]) -> list[R]:
    """Newest first; undated items last; ties by title then id (never random)."""
    by_tiebreak = sorted(items, key=lambda item: (item.title.lower(), item.id))
    # Stable sort keeps the tiebreak order within equal timestamps
    return sorted(
        by_tiebreak,
        key=lambda item: (item.created_at is not None, item.created_at or _EPOCH),
        reverse=True,
    )


def filter_min_body(items: Sequence[R], min_chars: int) -> list[R]:
    if min_chars <= 0:
        return list(items)
    return [item for item in items if len(item.body.strip()) >= min_chars]


def bucket_experiments(experiments: Sequence[Experiment]) -> ExperimentBuckets:
    """Split ordered experiments by status; order is preserved within buckets."""
    buckets = ExperimentBuckets()
    for experiment in experiments:
        status = experiment.status.strip().lower()
        if status in IN_PROGRESS_STATUSES:
            buckets.in_progress.append(experiment)
        elif status in PLANNING_STATUSES:
            buckets.planning.append(experiment)
        else:
            buckets.historical.append(experiment)
    return buckets


def pillar_history(actions: Sequence[Action]) -> list[str]:
    """Most recent pillars worked on, newest first, consecutive repeats collapsed."""
    pillars: list[str] = []
    for action in actions:
        pillar = (action.pillar or "").strip()
        if pillar and (not pillars or pillars[-1] != pillar):
            pillars.append(pillar)
    return pillars[:MAX_PILLAR_HISTORY]


def compact(
    snapshot: RawSnapshot,
    profile: WeightProfile,
    min_body_chars: dict[str, int] | None = None,
) -> CompactContext:
    """
    Filter and order a snapshot.

    Categories the profile gives no weight are emptied here, so later stages
    never spend work on sections that cannot appear.

    Args:
        snapshot: Raw per-category results
        profile: Weight profile of the requesting consumer
        min_body_chars: Per-category minimum body length overrides

    Returns:
        CompactContext with every list ordered newest first
    """
    thresholds = {**DEFAULT_MIN_BODY_CHARS, **(min_body_chars or {})}

    def keep(category: str, items: Sequence[R]) -> list[R]:
        if profile.weight(category) <= 0:
            return []
        kept = filter_min_body(items, thresholds.get(category, 0))
        dropped = len(items) - len(kept)
        if dropped:
            logger.debug(f"Dropped {dropped} low-signal {category} below {thresholds[category]} chars")
        return sort_by_recency(kept)

    actions = [a for a in keep("actions", snapshot.actions) if a.completed]

    return CompactContext(
        identity=snapshot.identity,
        insights=keep("insights", snapshot.insights),
        documents=keep("documents", snapshot.documents),
        experiments=bucket_experiments(keep("experiments", snapshot.experiments)),
        actions=actions,
        topics=keep("topics", snapshot.topics),
        connections=keep("connections", snapshot.connections),
        pillar_history=pillar_history(actions),
    )
