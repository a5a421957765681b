"""
Composition Policy Layer

Normalizes and grades the model's structured composition output.

This is the DECISION LAYER:
- The model (sensor) proposes fiber lists per section and a grade
- Policy (this module) normalizes names, removes cross-section duplicates
  and recomputes the grade with fixed rules
- Storage and clients only see the policy's record

Usage:
    from fabrix.ai.composition_policy import apply_composition_policy

    result = apply_composition_policy(record)

    # result contains:
    # - record: normalized CompositionRecord with the rule-based grade
    # - model_grade: what the model claimed
    # - grade_overridden: True when the two disagree
    # - removed_duplicates: main-section entries dropped as duplicates
    # - notes: human-readable adjustments
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional

from ..transformers.product_transformer import (
    CompositionGrade,
    CompositionRecord,
    FiberEntry,
    OtherSection,
)

# =============================================================================
# POLICY VERSION
# =============================================================================

POLICY_VERSION = "composition_policy_v1.2"


# =============================================================================
# FIBER TAXONOMY
# =============================================================================


class FiberCategory(str, Enum):
    NATURAL = "natural"
    SYNTHETIC = "synthetic"  # petroleum based
    SEMI_SYNTHETIC = "semi_synthetic"  # plant-based regenerated cellulose
    ELASTIC = "elastic"  # synthetic, but never a grading category on its own
    OTHER = "other"  # leather, metallic, unknown names


NATURAL_FIBERS = frozenset(
    [
        "cotton",
        "wool",
        "silk",
        "linen",
        "cashmere",
        "alpaca",
        "mohair",
        "hemp",
        "ramie",
        "jute",
        "merino",
    ]
)

SYNTHETIC_FIBERS = frozenset(["polyester", "nylon", "polyamide", "acrylic"])

SEMI_SYNTHETIC_FIBERS = frozenset(
    ["viscose", "rayon", "modal", "lyocell", "tencel", "cupro", "bamboo"]
)

ELASTIC_FIBERS = frozenset(["spandex", "elastane", "lycra"])

_TAXONOMY = (
    (NATURAL_FIBERS, FiberCategory.NATURAL),
    (SYNTHETIC_FIBERS, FiberCategory.SYNTHETIC),
    (SEMI_SYNTHETIC_FIBERS, FiberCategory.SEMI_SYNTHETIC),
    (ELASTIC_FIBERS, FiberCategory.ELASTIC),
)


# =============================================================================
# NAME MARKERS
# =============================================================================

RECYCLED_SUFFIX = "(Recycled)"
ORGANIC_SUFFIX = "(Organic)"

RECYCLED_MARKERS = frozenset(
    ["recycled", "reclaimed", "repreve", "rpet", "ecovero", "lenzing", "econyl"]
)

# Trademarks that name the fiber on their own ("100% Repreve")
BRANDED_BASE_FIBERS = {
    "repreve": "polyester",
    "rpet": "polyester",
    "econyl": "nylon",
    "ecovero": "viscose",
}

SUFFIX_PATTERN = re.compile(r"\(\s*(recycled|organic)\s*\)", re.IGNORECASE)


# =============================================================================
# GRADING THRESHOLDS
# =============================================================================

MAJORITY_THRESHOLD = 50.0  # >= this in one category claims the grade
ELASTIC_TOLERANCE = 10.0  # stretch fibers allowed in a Natural garment

# Main-section overflow that triggers cross-section deduplication
OVERFLOW_TOTAL = 105.0
COMPLETE_TOTAL_MIN = 95.0
COMPLETE_TOTAL_MAX = 105.0


# =============================================================================
# RESULT TYPES
# =============================================================================


@dataclass
class CompositionPolicyResult:
    """Complete result from policy application."""

    record: CompositionRecord
    model_grade: CompositionGrade
    grade_overridden: bool = False
    removed_duplicates: list[FiberEntry] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)
    policy_version: str = POLICY_VERSION

    @property
    def grade(self) -> CompositionGrade:
        return self.record.composition_grade

    def to_dict(self) -> dict:
        """Convert to dictionary for logging and debugging output."""
        return {
            "record": self.record.to_dict(),
            "model_grade": self.model_grade.value,
            "grade_overridden": self.grade_overridden,
            "removed_duplicates": [f.model_dump(mode="json") for f in self.removed_duplicates],
            "notes": self.notes,
            "policy_version": self.policy_version,
        }


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================


def normalize_fiber_name(name: str) -> str:
    """
    Canonical fiber name with sustainability markers as suffixes.

    "Recycled Polyester"        -> "polyester (Recycled)"
    "LENZING ECOVERO Viscose"   -> "viscose (Recycled)"
    "Tencel Lyocell"            -> "lyocell (Recycled)"
    "Organic Cotton"            -> "cotton (Organic)"
    "Tencel"                    -> "tencel"
    """
    lower = re.sub(r"\s+", " ", name).strip().lower()

    recycled = False
    organic = False
    for marker in SUFFIX_PATTERN.findall(lower):
        if marker.lower() == "recycled":
            recycled = True
        else:
            organic = True
    lower = SUFFIX_PATTERN.sub(" ", lower)

    tokens = lower.split()
    kept = []
    branded = None
    for token in tokens:
        if token in RECYCLED_MARKERS:
            recycled = True
            branded = branded or BRANDED_BASE_FIBERS.get(token)
        elif token == "organic":
            organic = True
        else:
            kept.append(token)

    # Tencel on its own is a lyocell fiber; in front of another fiber it is
    # the sustainable-sourcing brand
    if "tencel" in kept and len(kept) > 1:
        kept = [t for t in kept if t != "tencel"]
        recycled = True

    base = " ".join(kept) or branded or lower.strip()

    suffixes = []
    if recycled:
        suffixes.append(RECYCLED_SUFFIX)
    if organic:
        suffixes.append(ORGANIC_SUFFIX)
    return " ".join([base] + suffixes)


def base_fiber_name(name: str) -> str:
    """Fiber name without (Recycled)/(Organic) suffixes, lowercased."""
    return re.sub(r"\s+", " ", SUFFIX_PATTERN.sub(" ", name)).strip().lower()


def classify_fiber(name: str) -> FiberCategory:
    """Map a fiber name to its grading category."""
    base = base_fiber_name(name)

    for fibers, category in _TAXONOMY:
        if base in fibers:
            return category

    # Compound names ("merino wool", "stretch nylon"): first known word wins
    for token in re.findall(r"[a-z]+", base):
        for fibers, category in _TAXONOMY:
            if token in fibers:
                return category

    return FiberCategory.OTHER


def category_totals(fibers: Iterable[FiberEntry]) -> dict[FiberCategory, float]:
    """Sum of percentages per fiber category."""
    totals = {category: 0.0 for category in FiberCategory}
    for fiber in fibers:
        totals[classify_fiber(fiber.name)] += fiber.percentage
    return totals


def compute_grade(fibers: list[FiberEntry]) -> CompositionGrade:
    """
    Grade the main-section fibers.

    Rules, in order:
        1. No entries -> Unknown.
        2. Only stretch fibers -> Synthetic; no classifiable mass -> Unknown.
        3. Natural, synthetic and semi-synthetic totals >= 50% contend. A
           unique synthetic or semi-synthetic winner claims the grade; a tie
           at the top is Mixed.
        4. Natural if nothing but natural fibers plus at most 10% stretch.
        5. Mixed otherwise.

    The result depends only on the multiset of (base fiber, percentage),
    never on entry order or (Recycled)/(Organic) suffixes.
    """
    if not fibers:
        return CompositionGrade.UNKNOWN

    totals = category_totals(fibers)
    natural = totals[FiberCategory.NATURAL]
    synthetic = totals[FiberCategory.SYNTHETIC]
    semi = totals[FiberCategory.SEMI_SYNTHETIC]
    elastic = totals[FiberCategory.ELASTIC]
    other = totals[FiberCategory.OTHER]

    if natural + synthetic + semi <= 0:
        if elastic > 0 and other <= 0:
            return CompositionGrade.SYNTHETIC
        return CompositionGrade.UNKNOWN

    contenders = {
        category: total
        for category, total in (
            (FiberCategory.NATURAL, natural),
            (FiberCategory.SYNTHETIC, synthetic),
            (FiberCategory.SEMI_SYNTHETIC, semi),
        )
        if total >= MAJORITY_THRESHOLD
    }
    if contenders:
        top = max(contenders.values())
        leaders = [c for c, total in contenders.items() if total == top]
        if len(leaders) > 1:
            return CompositionGrade.MIXED
        if leaders[0] == FiberCategory.SYNTHETIC:
            return CompositionGrade.SYNTHETIC
        if leaders[0] == FiberCategory.SEMI_SYNTHETIC:
            return CompositionGrade.SEMI_SYNTHETIC

    if natural > 0 and synthetic == 0 and semi == 0 and other == 0:
        if elastic <= ELASTIC_TOLERANCE:
            return CompositionGrade.NATURAL

    return CompositionGrade.MIXED


def _normalize_entries(fibers: Optional[list[FiberEntry]]) -> Optional[list[FiberEntry]]:
    if fibers is None:
        return None
    return [
        FiberEntry(name=normalize_fiber_name(f.name), percentage=f.percentage)
        for f in fibers
    ]


def _entry_key(fiber: FiberEntry) -> tuple[str, float]:
    return (fiber.name, fiber.percentage)


def _total(fibers: Iterable[FiberEntry]) -> float:
    return sum(f.percentage for f in fibers)


def remove_cross_section_duplicates(
    fibers: list[FiberEntry],
    other_sections: list[list[FiberEntry]],
) -> tuple[list[FiberEntry], list[FiberEntry]]:
    """
    Drop main-section entries the model copied from lining/trim/other.

    Only applies when the main section overflows 105% and what remains adds
    up to a complete 95-105% composition; otherwise the list is returned
    unchanged.

    Returns:
        (kept, removed)
    """
    if _total(fibers) <= OVERFLOW_TOTAL:
        return fibers, []

    elsewhere = {_entry_key(f) for section in other_sections for f in section}
    kept = [f for f in fibers if _entry_key(f) not in elsewhere]
    removed = [f for f in fibers if _entry_key(f) in elsewhere]

    if not removed:
        return fibers, []
    if not COMPLETE_TOTAL_MIN <= _total(kept) <= COMPLETE_TOTAL_MAX:
        return fibers, []
    return kept, removed


# =============================================================================
# MAIN POLICY FUNCTION
# =============================================================================


def apply_composition_policy(record: CompositionRecord) -> CompositionPolicyResult:
    """
    Apply normalization, deduplication and grading to a model record.

    Args:
        record: Parsed model output

    Returns:
        CompositionPolicyResult whose record carries the rule-based grade.
        lining, trim and other are normalized but never affect the grade.
    """
    notes: list[str] = []

    fibers = _normalize_entries(record.fibers) or []
    lining = _normalize_entries(record.lining)
    trim = _normalize_entries(record.trim)
    other = None
    if record.other is not None:
        other = [
            OtherSection(label=section.label, fibers=_normalize_entries(section.fibers))
            for section in record.other
        ]

    renamed = [
        f"{before.name!r} -> {after.name!r}"
        for before, after in zip(record.fibers, fibers)
        if before.name != after.name
    ]
    if renamed:
        notes.append("Normalized fiber names: " + ", ".join(renamed))

    sections = [lining or [], trim or []] + [s.fibers for s in other or []]
    fibers, removed = remove_cross_section_duplicates(fibers, sections)
    if removed:
        notes.append(
            "Removed main-section entries duplicated from other sections: "
            + ", ".join(f"{f.name} {f.percentage:g}%" for f in removed)
        )

    grade = compute_grade(fibers)
    overridden = grade != record.composition_grade
    if overridden:
        notes.append(
            f"Grade {record.composition_grade.value} replaced by {grade.value}"
        )

    final = CompositionRecord(
        fibers=fibers,
        lining=lining,
        trim=trim,
        other=other,
        composition_grade=grade,
    )

    return CompositionPolicyResult(
        record=final,
        model_grade=record.composition_grade,
        grade_overridden=overridden,
        removed_duplicates=removed,
        notes=notes,
    )
