"""Rules deciding whether a selection may be checked in a given mode.

Two layers gate a check:
- can_request_check(): the coarse "at least two items" test that enables
  the Check action at all.
- is_eligible() / deficiency_message(): the per-mode composition rules,
  evaluated again when the check cycle actually starts.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable

from interaction_checker.models import Category, CheckerMode, SelectedItem

MIN_ITEMS_TO_CHECK = 2

# Minimum number of items per category for each check mode.
MODE_REQUIREMENTS: dict[CheckerMode, dict[Category, int]] = {
    CheckerMode.DRUG_DRUG: {Category.DRUG: 2},
    CheckerMode.DRUG_FOOD: {Category.DRUG: 1, Category.FOOD: 1},
    CheckerMode.DRUG_COMP: {Category.DRUG: 1, Category.COMPLEMENTARY: 1},
}

_NOUNS: dict[Category, tuple[str, str]] = {
    Category.DRUG: ("drug", "drugs"),
    Category.FOOD: ("food item", "food items"),
    Category.COMPLEMENTARY: ("complementary medicine", "complementary medicines"),
}

_NUMBER_WORDS = {1: "one", 2: "two"}

_MODE_LABELS: dict[CheckerMode, str] = {
    CheckerMode.DRUG_DRUG: "drug-drug",
    CheckerMode.DRUG_FOOD: "drug-food",
    CheckerMode.DRUG_COMP: "drug-complementary medicine",
}


def _counts(selection: Iterable[SelectedItem]) -> Counter[Category]:
    return Counter(item.category for item in selection)


def _shortfalls(selection: Iterable[SelectedItem], mode: CheckerMode) -> list[tuple[Category, int]]:
    counts = _counts(selection)
    return [
        (category, minimum)
        for category, minimum in MODE_REQUIREMENTS[mode].items()
        if counts[category] < minimum
    ]


def can_request_check(selection: Iterable[SelectedItem]) -> bool:
    """Coarse gate for the Check action: at least two items of any kind."""
    return sum(1 for _ in selection) >= MIN_ITEMS_TO_CHECK


def is_eligible(selection: Iterable[SelectedItem], mode: CheckerMode) -> bool:
    """True if the selection meets the composition rule of mode.

    Modes that never run a check are never eligible.
    """
    if mode not in MODE_REQUIREMENTS:
        return False
    return not _shortfalls(selection, mode)


def deficiency_message(selection: Iterable[SelectedItem], mode: CheckerMode) -> str:
    """Explain what the selection is missing for mode, or "" if nothing."""
    if mode not in MODE_REQUIREMENTS:
        return f"Interaction checks are not available in {mode.value} mode."

    missing = _shortfalls(selection, mode)
    if not missing:
        return ""

    parts = []
    for category, minimum in missing:
        singular, plural = _NOUNS[category]
        noun = singular if minimum == 1 else plural
        parts.append(f"at least {_NUMBER_WORDS.get(minimum, str(minimum))} {noun}")
    return f"Select {' and '.join(parts)} to check for {_MODE_LABELS[mode]} interactions."
