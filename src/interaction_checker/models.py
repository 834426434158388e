"""Domain types shared by the checker components.

Category and mode tags are closed enums so the mode requirement table in
eligibility.py can be checked for exhaustiveness. Wire-facing records are
Pydantic models: they validate the backend's JSON on the way in and
serialize the check request on the way out.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

# Backend ids arrive as integers from the database but as strings from the
# search index; both are accepted and kept as sent.
EntityId = int | str


class Category(str, Enum):
    """Type tag on a selectable entity."""

    DRUG = "drug"
    FOOD = "food"
    COMPLEMENTARY = "complementary"


class CheckerMode(str, Enum):
    """Which pair of categories the user intends to cross-check.

    DRUG_INFO and PATIENT_TRACKER are panels of the same screen that never
    run an interaction check.
    """

    DRUG_DRUG = "drug-drug"
    DRUG_FOOD = "drug-food"
    DRUG_COMP = "drug-comp"
    DRUG_INFO = "drug-info"
    PATIENT_TRACKER = "patient-tracker"

    @property
    def is_check_mode(self) -> bool:
        return self in (CheckerMode.DRUG_DRUG, CheckerMode.DRUG_FOOD, CheckerMode.DRUG_COMP)


class Severity(str, Enum):
    MAJOR = "Major"
    MODERATE = "Moderate"
    MINOR = "Minor"

    @classmethod
    def parse(cls, value: str | None) -> Severity | None:
        """Match a free-form severity string case-insensitively.

        Returns None for missing or unrecognised values.
        """
        if not value:
            return None
        wanted = value.strip().lower()
        for level in cls:
            if level.value.lower() == wanted:
                return level
        return None


class InteractionKind(str, Enum):
    """Which result list an interaction came from."""

    DRUG_DRUG = "drug_drug"
    DRUG_FOOD = "drug_food"
    DRUG_COMPLEMENTARY = "drug_complementary"


# --- Selection ---


class SelectedItem(BaseModel):
    """An item the user has added to the pending check set.

    The name is captured at selection time and never re-fetched. Ids are
    only unique within a category, so identity is the (id, category) pair.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    category: Category

    @property
    def key(self) -> tuple[str, Category]:
        return (self.id, self.category)


class Candidate(BaseModel):
    """A ranked search suggestion."""

    model_config = ConfigDict(frozen=True)

    id: str
    label: str


# --- Check request / response ---


class InteractionCheckRequest(BaseModel):
    """Body of POST /interactions/check, derived fresh from a selection."""

    model_config = ConfigDict(frozen=True)

    drug_ids: list[str] = Field(default_factory=list)
    food_ids: list[str] = Field(default_factory=list)
    comp_ids: list[str] = Field(default_factory=list)

    @classmethod
    def from_selection(cls, items: Iterable[SelectedItem]) -> InteractionCheckRequest:
        """Partition items by category, keeping selection order in each list."""
        buckets: dict[Category, list[str]] = {category: [] for category in Category}
        for item in items:
            buckets[item.category].append(item.id)
        return cls(
            drug_ids=buckets[Category.DRUG],
            food_ids=buckets[Category.FOOD],
            comp_ids=buckets[Category.COMPLEMENTARY],
        )


class InteractionRecord(BaseModel, ABC):
    """Fields every interaction row carries, whatever its category."""

    model_config = ConfigDict(extra="allow")

    severity: str | None = None
    description: str | None = None
    recommendation: str | None = None

    @abstractmethod
    def parties(self) -> tuple[tuple[EntityId, str | None], tuple[EntityId, str | None]]:
        """The two related entities as (id, resolved name) pairs."""


class DrugDrugInteraction(InteractionRecord):
    dd_interaction_id: EntityId | None = None
    medication1_id: EntityId
    medication2_id: EntityId
    medication1_name: str | None = None
    medication2_name: str | None = None

    def parties(self) -> tuple[tuple[EntityId, str | None], tuple[EntityId, str | None]]:
        return (
            (self.medication1_id, self.medication1_name),
            (self.medication2_id, self.medication2_name),
        )


class DrugFoodInteraction(InteractionRecord):
    df_interaction_id: EntityId | None = None
    medication_id: EntityId
    food_id: EntityId
    medication_name: str | None = None
    food_name: str | None = None

    def parties(self) -> tuple[tuple[EntityId, str | None], tuple[EntityId, str | None]]:
        return (
            (self.medication_id, self.medication_name),
            (self.food_id, self.food_name),
        )


class DrugComplementaryInteraction(InteractionRecord):
    dc_interaction_id: EntityId | None = None
    medication_id: EntityId
    compl_med_id: EntityId
    medication_name: str | None = None
    complementary_name: str | None = None

    def parties(self) -> tuple[tuple[EntityId, str | None], tuple[EntityId, str | None]]:
        return (
            (self.medication_id, self.medication_name),
            (self.compl_med_id, self.complementary_name),
        )


class InteractionCheckResult(BaseModel):
    """Response envelope of one check cycle.

    Replaced wholesale on every check, never merged with an earlier one.
    """

    drug_drug: list[DrugDrugInteraction] = Field(default_factory=list)
    drug_food: list[DrugFoodInteraction] = Field(default_factory=list)
    drug_complementary: list[DrugComplementaryInteraction] = Field(default_factory=list)

    def by_kind(self, kind: InteractionKind) -> list[InteractionRecord]:
        return list(getattr(self, kind.value))
