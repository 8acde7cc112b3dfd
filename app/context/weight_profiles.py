"""Weight Profile Registry.

Each consumer (a feature asking for a context bundle) references one named
profile. A profile says how much of the token budget each category gets;
it never changes where a section appears, only how much of it survives.

The registry is a static table so output is deterministic for a given set
of records, independent of any particular user's data.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from app.core.logging import get_logger

logger = get_logger(__name__)

CATEGORIES: tuple[str, ...] = (
    "identity",
    "insights",
    "documents",
    "experiments",
    "actions",
    "topics",
    "connections",
)

DEFAULT_PROFILE = "default"


@dataclass(frozen=True)
class WeightProfile:
    """Immutable category weighting for one consumer.

    Weights are normalized on construction so they always sum to 1.0.
    Categories left out get weight 0 (their section is omitted).
    """

    name: str
    weights: Mapping[str, float]
    similarity_threshold: float = 0.4
    relevance_top_k: int = 10
    description: str = ""
    _normalized: Mapping[str, float] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        unknown = set(self.weights) - set(CATEGORIES)
        if unknown:
            raise ValueError(f"Profile {self.name!r} has unknown categories: {sorted(unknown)}")

        negative = {c: w for c, w in self.weights.items() if w < 0}
        if negative:
            raise ValueError(f"Profile {self.name!r} has negative weights: {negative}")

        total = sum(self.weights.values())
        if total <= 0:
            raise ValueError(f"Profile {self.name!r} has no positive weight")

        normalized = {c: self.weights.get(c, 0.0) / total for c in CATEGORIES}
        if abs(total - 1.0) > 1e-9:
            logger.debug(f"Normalized weight profile {self.name!r} (sum was {total:.4f})")

        object.__setattr__(self, "weights", MappingProxyType(dict(self.weights)))
        object.__setattr__(self, "_normalized", MappingProxyType(normalized))

    def weight(self, category: str) -> float:
        """Normalized weight for a category (0.0 if absent)."""
        return self._normalized.get(category, 0.0)

    @property
    def normalized(self) -> Mapping[str, float]:
        return self._normalized

    @property
    def active_categories(self) -> list[str]:
        return [c for c in CATEGORIES if self._normalized[c] > 0]


# Identity-first default: identity 40 / insights 25 / experiments 20 / documents 5,
# with the remaining 10 split across actions, topics and connections.
_PROFILES: dict[str, WeightProfile] = {
    p.name: p
    for p in (
        WeightProfile(
            name="default",
            weights={
                "identity": 0.40,
                "insights": 0.25,
                "experiments": 0.20,
                "documents": 0.05,
                "actions": 0.05,
                "topics": 0.03,
                "connections": 0.02,
            },
            description="Identity-first general context",
        ),
        WeightProfile(
            name="daily_suggestions",
            weights={
                "identity": 0.35,
                "insights": 0.25,
                "experiments": 0.20,
                "documents": 0.05,
                "actions": 0.12,
                "topics": 0.03,
            },
            similarity_threshold=0.4,
            description="Daily high-leverage action suggestions",
        ),
        WeightProfile(
            name="identity_grounding",
            weights={
                "identity": 0.55,
                "insights": 0.20,
                "experiments": 0.12,
                "documents": 0.03,
                "actions": 0.10,
            },
            similarity_threshold=0.5,
            description="Alignment and realignment against the identity statement",
        ),
        WeightProfile(
            name="return_to_self",
            weights={
                "identity": 0.60,
                "insights": 0.25,
                "experiments": 0.05,
                "documents": 0.02,
                "actions": 0.08,
            },
            similarity_threshold=0.5,
            description="Reflect back what the user already knows",
        ),
        WeightProfile(
            name="decision_mirror",
            weights={
                "identity": 0.50,
                "insights": 0.25,
                "experiments": 0.10,
                "documents": 0.05,
                "actions": 0.10,
            },
            similarity_threshold=0.45,
            description="Weigh a decision against identity and past signals",
        ),
        WeightProfile(
            name="document_synthesis",
            weights={
                "identity": 0.15,
                "insights": 0.30,
                "documents": 0.40,
                "experiments": 0.08,
                "actions": 0.02,
                "topics": 0.05,
            },
            similarity_threshold=0.3,
            relevance_top_k=15,
            description="Weave documents and insights into a synthesis",
        ),
        WeightProfile(
            name="document_intelligence",
            weights={
                "identity": 0.30,
                "insights": 0.25,
                "experiments": 0.15,
                "topics": 0.30,
            },
            similarity_threshold=0.35,
            description="Lighter context for processing a newly imported document",
        ),
        WeightProfile(
            name="path_generator",
            weights={
                "identity": 0.30,
                "insights": 0.25,
                "documents": 0.25,
                "experiments": 0.12,
                "actions": 0.03,
                "topics": 0.05,
            },
            similarity_threshold=0.35,
            relevance_top_k=12,
            description="Learning and growth path generation",
        ),
        WeightProfile(
            name="experiment_generator",
            weights={
                "identity": 0.35,
                "insights": 0.25,
                "experiments": 0.25,
                "documents": 0.05,
                "actions": 0.10,
            },
            description="Design the next behavioral experiment",
        ),
    )
}

PROFILES: Mapping[str, WeightProfile] = MappingProxyType(_PROFILES)


def resolve(consumer_name: str | None) -> WeightProfile:
    """Profile for a consumer; unknown or empty names get the default profile."""
    key = (consumer_name or "").strip().lower()
    profile = PROFILES.get(key)
    if profile is None:
        if key:
            logger.info(f"Unknown consumer {consumer_name!r}, using {DEFAULT_PROFILE!r} profile")
        return PROFILES[DEFAULT_PROFILE]
    return profile


def list_profiles() -> list[WeightProfile]:
    return [PROFILES[name] for name in sorted(PROFILES)]
