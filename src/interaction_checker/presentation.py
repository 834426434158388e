"""Shape a check result for display.

Nothing here touches the network. Functions take an InteractionCheckResult
(or one of its records) and return plain values a panel can render:
severity counts, a unified tagged listing, per-interaction titles, and the
mode-specific copy around them.
"""

from __future__ import annotations

import json
from typing import Any, NamedTuple

from interaction_checker.models import (
    CheckerMode,
    EntityId,
    InteractionCheckResult,
    InteractionKind,
    InteractionRecord,
    Severity,
)

UNKNOWN_SEVERITY = "Unknown"
NO_INTERACTIONS_MESSAGE = (
    "No significant interactions were found between these items. "
    "Always consult with a healthcare professional."
)

SEVERITY_LEGEND: dict[Severity, str] = {
    Severity.MAJOR: "Highly clinically significant. Avoid combinations; the risk outweighs the benefit.",
    Severity.MODERATE: "Moderately significant. Usually avoid combinations; use only under special circumstances.",
    Severity.MINOR: "Minimally significant. Minimize risk; assess risk and consider alternatives.",
}

# Display order of the unified listing.
KIND_ORDER = (InteractionKind.DRUG_DRUG, InteractionKind.DRUG_FOOD, InteractionKind.DRUG_COMPLEMENTARY)

KIND_LABELS: dict[InteractionKind, str] = {
    InteractionKind.DRUG_DRUG: "Drug-Drug",
    InteractionKind.DRUG_FOOD: "Food",
    InteractionKind.DRUG_COMPLEMENTARY: "Complementary",
}


class SeverityCounts(NamedTuple):
    major: int = 0
    moderate: int = 0
    minor: int = 0


class TaggedInteraction(NamedTuple):
    """An interaction together with the list it came from."""

    kind: InteractionKind
    interaction: InteractionRecord


def severity_badge(value: str | None) -> str:
    """Canonical severity label, or "Unknown" for missing/unrecognised values."""
    level = Severity.parse(value)
    return level.value if level is not None else UNKNOWN_SEVERITY


def severity_counts(result: InteractionCheckResult) -> SeverityCounts:
    """Count major/moderate/minor across all three categories.

    Interactions with an unknown severity are left out of the counts.
    """
    tally = {level: 0 for level in Severity}
    for tagged in unified_list(result):
        level = Severity.parse(tagged.interaction.severity)
        if level is not None:
            tally[level] += 1
    return SeverityCounts(
        major=tally[Severity.MAJOR],
        moderate=tally[Severity.MODERATE],
        minor=tally[Severity.MINOR],
    )


def total_interactions(result: InteractionCheckResult) -> int:
    return len(result.drug_drug) + len(result.drug_food) + len(result.drug_complementary)


def unified_list(result: InteractionCheckResult) -> list[TaggedInteraction]:
    """drug_drug, then drug_food, then drug_complementary, each tagged."""
    return [
        TaggedInteraction(kind, interaction)
        for kind in KIND_ORDER
        for interaction in result.by_kind(kind)
    ]


def interactions_for(result: InteractionCheckResult, kind: InteractionKind) -> list[TaggedInteraction]:
    return [TaggedInteraction(kind, interaction) for interaction in result.by_kind(kind)]


def _party_label(entity_id: EntityId, name: str | None) -> str:
    if name and name.strip():
        return name.strip()
    return f"ID: {entity_id}"


def display_title(interaction: InteractionRecord) -> str:
    """Human label such as "Aspirin ↔ Warfarin".

    A missing name falls back to an id placeholder ("ID: 7").
    """
    (first_id, first_name), (second_id, second_name) = interaction.parties()
    return f"{_party_label(first_id, first_name)} ↔ {_party_label(second_id, second_name)}"


def parse_breakdown(text: str | None) -> Any:
    """Decode a JSON-encoded breakdown field, or hand back the raw text.

    Backend rows sometimes carry nested severity/effect breakdowns as JSON
    strings. Anything that does not decode is shown as it is.
    """
    if text is None:
        return None
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return text


def panel_title(mode: CheckerMode) -> str:
    titles = {
        CheckerMode.DRUG_DRUG: "Drug-Drug Interaction Results",
        CheckerMode.DRUG_FOOD: "Drug-Food Interaction Results",
        CheckerMode.DRUG_COMP: "Drug-Complementary Medicine Interaction Results",
    }
    return titles.get(mode, "Interaction Results")


def empty_state_message(mode: CheckerMode) -> str:
    messages = {
        CheckerMode.DRUG_DRUG: "Select two or more drugs to check for potential interactions",
        CheckerMode.DRUG_FOOD: "Select a drug and a food item to check for potential interactions",
        CheckerMode.DRUG_COMP: "Select a drug and a complementary medicine to check for potential interactions",
    }
    return messages.get(mode, "Select two or more items to check for potential interactions")


def interaction_view(tagged: TaggedInteraction) -> dict[str, Any]:
    """Flatten one tagged interaction into what a result card shows."""
    interaction = tagged.interaction
    return {
        "kind": tagged.kind.value,
        "kind_label": KIND_LABELS[tagged.kind],
        "title": display_title(interaction),
        "severity": severity_badge(interaction.severity),
        "description": interaction.description or "",
        "recommendation": interaction.recommendation or "",
    }


def summarize(result: InteractionCheckResult) -> dict[str, Any]:
    """Everything the results panel needs, as plain JSON-ready values.

    Zero interactions is a normal outcome and is flagged by
    no_interactions rather than treated as an error.
    """
    counts = severity_counts(result)
    total = total_interactions(result)
    return {
        "total": total,
        "no_interactions": total == 0,
        "severity_counts": counts._asdict(),
        "kind_counts": {kind.value: len(result.by_kind(kind)) for kind in KIND_ORDER},
        "interactions": [interaction_view(tagged) for tagged in unified_list(result)],
    }
