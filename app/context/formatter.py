"""Context pack formatter.

Renders a CompactContext into budgeted PackSections. Sections always appear
in the same canonical order; weights only decide how much of each survives.
Empty sections are omitted entirely (no bare headers).
"""

from typing import Sequence

from app.context.models import (
    Action,
    CompactContext,
    Connection,
    Document,
    Experiment,
    IdentityStatement,
    Insight,
    PackSection,
    Topic,
)
from app.context.token_budget import (
    CategoryAllowance,
    char_budgets,
    clean_text,
    select_lines,
    truncate_text,
)

# Canonical section order (key, header)
SECTION_HEADERS: tuple[tuple[str, str], ...] = (
    ("identity", "IDENTITY (PRIMARY DRIVER)"),
    ("current_focus", "CURRENT FOCUS"),
    ("insights", "INSIGHTS"),
    ("experiments_in_progress", "EXPERIMENTS IN PROGRESS"),
    ("experiments_planning", "EXPERIMENTS PLANNING"),
    ("documents", "DOCUMENTS"),
    ("topics", "TOPICS"),
    ("actions", "RECENT ACTIONS"),
    ("connections", "CONNECTIONS"),
    ("excluded", "ALREADY DONE (DO NOT REPEAT THESE)"),
)
HEADERS = dict(SECTION_HEADERS)

# Per-item character caps
STATEMENT_CHARS = 1200
VALUES_CHARS = 300
FOCUS_CHARS = 400
TITLE_CHARS = 120
INSIGHT_BODY_CHARS = 150
DOCUMENT_BODY_CHARS = 120
EXPERIMENT_BODY_CHARS = 80
TOPIC_BODY_CHARS = 100
ACTION_BODY_CHARS = 120
CONNECTION_NOTE_CHARS = 100

# Smallest identity statement worth emitting once truncated
MIN_STATEMENT_CHARS = 40

# Exclusion ledger sits outside the weighted budget but is bounded on its own
MAX_EXCLUDED = 15
EXCLUDED_TITLE_CHARS = 120


def _line(title: str, detail: str = "", tag: str = "") -> str:
    head = truncate_text(title, TITLE_CHARS) or "Untitled"
    if tag:
        head = f"{head} {tag}"
    return f"- {head}: {detail}" if detail else f"- {head}"


def render_insight(insight: Insight) -> str:
    tag = f"[{clean_text(insight.source)}]" if insight.source else ""
    return _line(insight.title, truncate_text(insight.body, INSIGHT_BODY_CHARS), tag)


def render_document(document: Document) -> str:
    return _line(document.title, truncate_text(document.body, DOCUMENT_BODY_CHARS))


def render_experiment(experiment: Experiment) -> str:
    focus = experiment.identity_shift_target or experiment.hypothesis or experiment.body
    return _line(experiment.title, truncate_text(focus, EXPERIMENT_BODY_CHARS), f"({experiment.status})")


def render_topic(topic: Topic) -> str:
    return _line(topic.title, truncate_text(topic.body, TOPIC_BODY_CHARS))


def render_action(action: Action) -> str:
    tag = f"({clean_text(action.pillar)})" if action.pillar else ""
    return _line(action.title, truncate_text(action.body, ACTION_BODY_CHARS), tag)


def render_connection(connection: Connection, titles: dict[str, str]) -> str:
    source = titles.get(connection.source_id) or connection.source_type or "item"
    target = titles.get(connection.target_id) or connection.target_type or "item"
    link = f"{truncate_text(source, 60)} <-> {truncate_text(target, 60)}"
    note = truncate_text(connection.body, CONNECTION_NOTE_CHARS)
    return f"- {link}: {note}" if note else f"- {link}"


def _identity_sections(identity: IdentityStatement, char_budget: int) -> list[PackSection]:
    """Statement first, then focus, values, phase, while the identity budget lasts."""
    remaining = char_budget
    statement_line = focus_line = values_line = phase_line = ""

    statement = clean_text(identity.statement)
    if statement:
        cap = min(STATEMENT_CHARS, remaining)
        if cap >= min(MIN_STATEMENT_CHARS, len(statement)):
            statement_line = truncate_text(statement, cap)
            remaining -= len(statement_line)

    for text, cap, prefix, slot in (
        (identity.weekly_focus, FOCUS_CHARS, "", "focus"),
        (identity.core_values, VALUES_CHARS, "VALUES: ", "values"),
    ):
        cleaned = clean_text(text)
        if not cleaned:
            continue
        line = prefix + truncate_text(cleaned, cap)
        if len(line) <= remaining:
            remaining -= len(line)
            if slot == "focus":
                focus_line = line
            else:
                values_line = line

    has_identity = bool(statement_line or focus_line or values_line)
    if has_identity and identity.current_phase:
        line = f"PHASE: {clean_text(identity.current_phase)} (context only, not command)"
        if len(line) <= remaining:
            phase_line = line

    sections = []
    identity_lines = [line for line in (statement_line, values_line, phase_line) if line]
    if statement_line or values_line:
        sections.append(PackSection(key="identity", header=HEADERS["identity"], lines=identity_lines))
    if focus_line:
        sections.append(PackSection(key="current_focus", header=HEADERS["current_focus"], lines=[focus_line]))
    return sections


def _list_section(key: str, rendered: Sequence[tuple[str, str]], allowance: CategoryAllowance) -> PackSection | None:
    selection = select_lines(rendered, allowance)
    if not selection.lines:
        return None
    return PackSection(key=key, header=HEADERS[key], lines=selection.lines, item_ids=selection.item_ids)


def _title_lookup(context: CompactContext) -> dict[str, str]:
    titles: dict[str, str] = {}
    experiments = context.experiments
    for group in (
        context.insights,
        context.documents,
        context.topics,
        experiments.in_progress,
        experiments.planning,
        experiments.historical,
    ):
        for record in group:
            if record.id and record.title:
                titles.setdefault(record.id, record.title)
    return titles


def build_sections(
    context: CompactContext,
    budgets: dict[str, int],
    max_items: int,
    excluded: Sequence[str] = (),
) -> list[PackSection]:
    """
    Render every non-empty section within its category budget.

    Args:
        context: Filtered, ordered context
        budgets: Token budget per category (from allocate())
        max_items: Item cap per category
        excluded: Ledger titles, most recent first

    Returns:
        Sections in canonical order
    """
    chars = char_budgets(budgets)
    built: dict[str, PackSection] = {}

    for section in _identity_sections(context.identity, chars.get("identity", 0)):
        built[section.key] = section

    def allowance(category: str) -> CategoryAllowance:
        return CategoryAllowance(char_budget=chars.get(category, 0), max_items=max_items)

    insights = _list_section(
        "insights", [(i.id, render_insight(i)) for i in context.insights], allowance("insights")
    )

    # Both experiment buckets draw on one experiments budget, in-progress first
    experiment_room = allowance("experiments")
    in_progress = _list_section(
        "experiments_in_progress",
        [(e.id, render_experiment(e)) for e in context.experiments.in_progress],
        experiment_room,
    )
    planning = None
    if not experiment_room.exhausted:
        planning = _list_section(
            "experiments_planning",
            [(e.id, render_experiment(e)) for e in context.experiments.planning],
            experiment_room,
        )

    documents = _list_section(
        "documents", [(d.id, render_document(d)) for d in context.documents], allowance("documents")
    )
    topics = _list_section("topics", [(t.id, render_topic(t)) for t in context.topics], allowance("topics"))

    action_room = allowance("actions")
    actions = _list_section("actions", [(a.id, render_action(a)) for a in context.actions], action_room)
    if actions is not None and context.pillar_history:
        rotation = "RECENT PILLARS: " + " > ".join(clean_text(p) for p in context.pillar_history)
        if len(rotation) <= action_room.remaining_chars:
            actions.lines.append(rotation)

    titles = _title_lookup(context)
    connections = _list_section(
        "connections",
        [(c.id, render_connection(c, titles)) for c in context.connections],
        allowance("connections"),
    )

    excluded_lines = [f"- {truncate_text(t, EXCLUDED_TITLE_CHARS)}" for t in excluded if clean_text(t)]
    excluded_section = None
    if excluded_lines:
        excluded_section = PackSection(
            key="excluded", header=HEADERS["excluded"], lines=excluded_lines[:MAX_EXCLUDED]
        )

    for key, section in (
        ("insights", insights),
        ("experiments_in_progress", in_progress),
        ("experiments_planning", planning),
        ("documents", documents),
        ("topics", topics),
        ("actions", actions),
        ("connections", connections),
        ("excluded", excluded_section),
    ):
        if section is not None:
            built[key] = section

    return [built[key] for key, _ in SECTION_HEADERS if key in built]
