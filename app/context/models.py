"""Pydantic models for context aggregation.

Record types mirror the per-category storage tables. Each row shape is
mapped onto the shared id/title/body/created_at fields through validation
aliases, so downstream stages never probe raw dicts for optional keys.
"""

import json
from datetime import date, datetime, time, timezone
from typing import Any, ClassVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a storage timestamp or date into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return _to_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time(), tzinfo=timezone.utc)
    if isinstance(value, str):
        try:
            return _to_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            return None
    return None


class Record(BaseModel):
    """Fields shared by every list-typed category."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    kind: ClassVar[str] = "record"

    id: str = ""
    title: str = ""
    body: str = ""
    created_at: datetime | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("title", "body", mode="before")
    @classmethod
    def _coerce_text(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("created_at", mode="before")
    @classmethod
    def _coerce_created_at(cls, v: Any) -> datetime | None:
        return parse_timestamp(v)


class ScoredRecord(Record):
    """Records that live in the searchable historical pool."""

    relevance_score: float | None = None
    last_accessed: datetime | None = None
    access_count: int = 0
    topic_id: str | None = None
    embedding: list[float] | None = None

    @field_validator("last_accessed", mode="before")
    @classmethod
    def _coerce_last_accessed(cls, v: Any) -> datetime | None:
        return parse_timestamp(v)

    @field_validator("access_count", mode="before")
    @classmethod
    def _coerce_access_count(cls, v: Any) -> int:
        try:
            return int(v or 0)
        except (TypeError, OverflowError) as e:
            raise ValueError(f"access_count must be a number, got {type(v).__name__}") from e

    @field_validator("topic_id", mode="before")
    @classmethod
    def _coerce_topic_id(cls, v: Any) -> str | None:
        return None if v is None else str(v)

    @field_validator("embedding", mode="before")
    @classmethod
    def _parse_embedding(cls, v: Any) -> list[float] | None:
        # pgvector columns come back from PostgREST as "[0.1,0.2,...]"
        if v is None or v == "":
            return None
        if isinstance(v, str):
            try:
                v = json.loads(v)
            except ValueError:
                return None
        if not isinstance(v, (list, tuple)):
            raise ValueError(f"embedding must be a list of numbers, got {type(v).__name__}")
        return list(v) if v else None


class Insight(ScoredRecord):
    kind: ClassVar[str] = "insight"

    body: str = Field(default="", validation_alias=AliasChoices("body", "content"))
    source: str | None = None


class Document(ScoredRecord):
    kind: ClassVar[str] = "document"

    body: str = Field(default="", validation_alias=AliasChoices("body", "summary"))


class Experiment(Record):
    kind: ClassVar[str] = "experiment"

    body: str = Field(default="", validation_alias=AliasChoices("body", "description"))
    status: str = "planning"
    hypothesis: str | None = None
    identity_shift_target: str | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _default_status(cls, v: Any) -> str:
        return v or "planning"


class Action(Record):
    """A performed action, optionally with the user's reflection on it."""

    kind: ClassVar[str] = "action"

    title: str = Field(default="", validation_alias=AliasChoices("title", "action_text"))
    body: str = Field(default="", validation_alias=AliasChoices("body", "reflection"))
    created_at: datetime | None = Field(
        default=None, validation_alias=AliasChoices("created_at", "action_date")
    )
    pillar: str | None = None
    completed: bool = True

    @field_validator("completed", mode="before")
    @classmethod
    def _default_completed(cls, v: Any) -> bool:
        return True if v is None else bool(v)


class Topic(Record):
    kind: ClassVar[str] = "topic"

    title: str = Field(default="", validation_alias=AliasChoices("title", "name"))
    body: str = Field(default="", validation_alias=AliasChoices("body", "description"))


class Connection(Record):
    """A user-drawn link between two records."""

    kind: ClassVar[str] = "connection"

    body: str = Field(default="", validation_alias=AliasChoices("body", "note"))
    source_type: str = ""
    source_id: str = ""
    target_type: str = ""
    target_id: str = ""

    @field_validator("source_id", "target_id", mode="before")
    @classmethod
    def _coerce_ref(cls, v: Any) -> str:
        return "" if v is None else str(v)


class IdentityStatement(BaseModel):
    """The user's identity seed: who they are becoming and what matters now."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    statement: str = Field(default="", validation_alias=AliasChoices("statement", "content"))
    core_values: str = ""
    weekly_focus: str = ""
    current_phase: str = "baseline"
    last_pillar_used: str | None = None

    @field_validator("statement", "core_values", "weekly_focus", mode="before")
    @classmethod
    def _coerce_text(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("current_phase", mode="before")
    @classmethod
    def _default_phase(cls, v: Any) -> str:
        return v or "baseline"

    @property
    def is_empty(self) -> bool:
        return not (self.statement.strip() or self.core_values.strip() or self.weekly_focus.strip())


class RawSnapshot(BaseModel):
    """Unprocessed per-category query results. Lists are never None."""

    identity: IdentityStatement = Field(default_factory=IdentityStatement)
    insights: list[Insight] = Field(default_factory=list)
    documents: list[Document] = Field(default_factory=list)
    experiments: list[Experiment] = Field(default_factory=list)
    actions: list[Action] = Field(default_factory=list)
    topics: list[Topic] = Field(default_factory=list)
    connections: list[Connection] = Field(default_factory=list)

    @field_validator(
        "insights", "documents", "experiments", "actions", "topics", "connections",
        mode="before",
    )
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("identity", mode="before")
    @classmethod
    def _none_to_blank_identity(cls, v: Any) -> Any:
        return IdentityStatement() if v is None else v


class ExperimentBuckets(BaseModel):
    in_progress: list[Experiment] = Field(default_factory=list)
    planning: list[Experiment] = Field(default_factory=list)
    historical: list[Experiment] = Field(default_factory=list)


class CompactContext(BaseModel):
    """Filtered and ordered context, not yet bounded by a token budget."""

    identity: IdentityStatement = Field(default_factory=IdentityStatement)
    insights: list[Insight] = Field(default_factory=list)
    documents: list[Document] = Field(default_factory=list)
    experiments: ExperimentBuckets = Field(default_factory=ExperimentBuckets)
    actions: list[Action] = Field(default_factory=list)
    topics: list[Topic] = Field(default_factory=list)
    connections: list[Connection] = Field(default_factory=list)
    pillar_history: list[str] = Field(default_factory=list)

    # Tier that ordered insights/documents ("vector", "keyword", "recency"), if any
    relevance_tier: str | None = None


class PackSection(BaseModel):
    """One rendered section of a context pack."""

    key: str
    header: str
    lines: list[str] = Field(default_factory=list)
    item_ids: list[str] = Field(default_factory=list)

    def render(self) -> str:
        return f"{self.header}:\n" + "\n".join(self.lines)

    @property
    def char_count(self) -> int:
        return sum(len(line) for line in self.lines)


class ContextPack(BaseModel):
    """Size-bounded context bundle handed to a generation consumer."""

    consumer: str
    profile: str
    max_tokens: int
    budgets: dict[str, int] = Field(default_factory=dict)
    sections: list[PackSection] = Field(default_factory=list)
    excluded: list[str] = Field(default_factory=list)
    relevance_tier: str | None = None

    def section(self, key: str) -> PackSection | None:
        for section in self.sections:
            if section.key == key:
                return section
        return None

    @property
    def section_keys(self) -> list[str]:
        return [section.key for section in self.sections]

    @property
    def is_empty(self) -> bool:
        return not self.sections

    def to_text(self) -> str:
        """Canonical serialized block. Identical packs give identical text."""
        return "\n\n".join(section.render() for section in self.sections)

    def estimated_tokens(self) -> int:
        return len(self.to_text()) // 4


class BuildOptions(BaseModel):
    """Caller-supplied knobs. None means "use the configured default"."""

    max_tokens: int | None = Field(default=None, ge=1)
    max_items_per_category: int | None = Field(default=None, ge=1)
    use_relevance_search: bool = False
    deadline_seconds: float | None = Field(default=None, gt=0)
    dedup_window_days: int | None = Field(default=None, ge=1)
