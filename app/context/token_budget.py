"""Token Budget Allocator.

Converts a weight profile into per-category token budgets and owns the
truncation policy for everything that ends up in a context pack:

  - budget[c] = floor(weight[c] / sum(weights) * max_tokens)
  - tokens are estimated as len(text) / 4
  - an item is truncated to its per-item character cap, then either fits
    whole in what is left of its category budget or is dropped
"""

import math
from dataclasses import dataclass, field
from typing import Mapping, Sequence

from app.context.weight_profiles import CATEGORIES, WeightProfile

CHARS_PER_TOKEN = 4
ELLIPSIS = "..."

# Guards floor() against float error such as 0.29 * 100 == 28.999999999999996
_FLOOR_EPSILON = 1e-9


def estimate_tokens(text: str) -> int:
    """Approximate token count (~4 characters per token)."""
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def allocate(profile: WeightProfile, max_tokens: int) -> dict[str, int]:
    """
    Split max_tokens across every category by profile weight.

    The per-category budgets never sum to more than max_tokens.

    Args:
        profile: Weight profile of the requesting consumer
        max_tokens: Total token budget for the pack

    Returns:
        Token budget per category (0 for unweighted categories)
    """
    if max_tokens <= 0:
        return {category: 0 for category in CATEGORIES}

    total = sum(profile.weight(c) for c in CATEGORIES)
    budgets = {
        category: math.floor(profile.weight(category) / total * max_tokens + _FLOOR_EPSILON)
        for category in CATEGORIES
    }

    # Epsilon can only push a budget up to the next integer; trim if that overshot
    overshoot = sum(budgets.values()) - max_tokens
    for category in sorted(CATEGORIES, key=lambda c: budgets[c], reverse=True):
        if overshoot <= 0:
            break
        if budgets[category] > 0:
            budgets[category] -= 1
            overshoot -= 1
    return budgets


def char_budgets(budgets: Mapping[str, int]) -> dict[str, int]:
    """Character budget per category from token budgets."""
    return {category: tokens * CHARS_PER_TOKEN for category, tokens in budgets.items()}


def clean_text(text: str | None) -> str:
    """Collapse all whitespace (including newlines) to single spaces."""
    return " ".join((text or "").split())


def truncate_text(text: str | None, max_chars: int) -> str:
    """
    Truncate text to max_chars, ending with "..." when cut.

    Args:
        text: Text to truncate (whitespace is normalized first)
        max_chars: Maximum characters allowed, ellipsis included

    Returns:
        Text of at most max_chars characters
    """
    cleaned = clean_text(text)
    if max_chars <= 0:
        return ""
    if len(cleaned) <= max_chars:
        return cleaned
    if max_chars <= len(ELLIPSIS):
        return cleaned[:max_chars]
    return cleaned[: max_chars - len(ELLIPSIS)].rstrip() + ELLIPSIS


@dataclass
class CategoryAllowance:
    """Remaining room in one category while its items are being selected."""

    char_budget: int
    max_items: int
    used_chars: int = 0
    selected: int = 0
    dropped: int = 0
    exhausted: bool = False

    @property
    def remaining_chars(self) -> int:
        return max(self.char_budget - self.used_chars, 0)

    def take(self, line: str) -> bool:
        """Admit a whole line if it fits; after the first miss nothing else is admitted."""
        if self.exhausted or self.selected >= self.max_items or not line:
            self.dropped += 1
            return False
        if len(line) > self.remaining_chars:
            self.exhausted = True
            self.dropped += 1
            return False
        self.used_chars += len(line)
        self.selected += 1
        return True


@dataclass
class Selection:
    lines: list[str] = field(default_factory=list)
    item_ids: list[str] = field(default_factory=list)


def select_lines(
    rendered: Sequence[tuple[str, str]],
    allowance: CategoryAllowance,
) -> Selection:
    """
    Greedily admit (item_id, line) pairs in priority order.

    Stops at the first line that does not fit whole or when the item cap
    is reached; a line is never emitted partially.
    """
    selection = Selection()
    for item_id, line in rendered:
        if allowance.take(line):
            selection.lines.append(line)
            selection.item_ids.append(item_id)
        elif allowance.exhausted or allowance.selected >= allowance.max_items:
            break
    return selection


def format_budget_report(budgets: Mapping[str, int], used_chars: Mapping[str, int], max_tokens: int) -> str:
    """
    Format a human-readable budget report.

    Args:
        budgets: Token budget per category
        used_chars: Characters actually emitted per category
        max_tokens: Total token budget

    Returns:
        Formatted report string
    """
    lines = ["Context Budget Report", "=" * 40]
    total_used = 0
    for category in CATEGORIES:
        budget = budgets.get(category, 0)
        if budget <= 0:
            continue
        used = math.ceil(used_chars.get(category, 0) / CHARS_PER_TOKEN)
        total_used += used
        lines.append(f"  {category}: {used:,} / {budget:,}")

    lines.append("-" * 40)
    lines.append(f"  Total Used: {total_used:,}")
    lines.append(f"  Budget: {max_tokens:,}")
    lines.append(f"  Remaining: {max_tokens - total_used:,}")
    return "\n".join(lines)
