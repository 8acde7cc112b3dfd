"""Context aggregation for personal-growth generation features.

This module provides:
- Concurrent multi-source fetching of a user's records
- Named per-consumer weight profiles
- Tiered relevance resolution (vector -> keyword -> recency)
- A deduplication ledger of recently performed / generated items
- Token budget allocation and deterministic pack formatting

The engine entry point lives in app.context.engine (build_context).
"""

from app.context.errors import ContextEngineError, StorageConnectionError
from app.context.models import (
    Action,
    BuildOptions,
    CompactContext,
    Connection,
    ContextPack,
    Document,
    Experiment,
    IdentityStatement,
    Insight,
    PackSection,
    RawSnapshot,
    Topic,
)
from app.context.weight_profiles import PROFILES, WeightProfile, list_profiles, resolve

__all__ = [
    # Errors
    "ContextEngineError",
    "StorageConnectionError",
    # Models
    "Action",
    "BuildOptions",
    "CompactContext",
    "Connection",
    "ContextPack",
    "Document",
    "Experiment",
    "IdentityStatement",
    "Insight",
    "PackSection",
    "RawSnapshot",
    "Topic",
    # Profiles
    "PROFILES",
    "WeightProfile",
    "list_profiles",
    "resolve",
]
