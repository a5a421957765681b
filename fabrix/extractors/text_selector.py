"""
Candidate-text selection for product pages.

A product page yields hundreds of overlapping text blocks (every DOM element's
textContent). This module scores them and keeps the few most likely to hold
the official composition statement, so the model sees "Content: 60% cotton,
40% polyester" rather than marketing copy that only mentions some fibers.

Usage:
    from fabrix.extractors.text_selector import build_candidate_text

    text = build_candidate_text(blocks)
"""

import re
from dataclasses import dataclass
from typing import Iterable, Optional

from config.settings import SelectorConfig

# =============================================================================
# SCORE WEIGHTS
# =============================================================================

CONTENT_LABEL_BONUS = 500  # "content:" with a percentage is THE official field
COMPOSITION_LABEL_BONUS = 100  # composition:/fabric:/material: labels
PERCENT_SIGN_BONUS = 20  # per "%" occurrence
COMPLETE_TOTAL_BONUS = 300  # percentages add up to ~100
PARTIAL_TOTAL_PENALTY = -100  # percentages add up to well under 100
MARKETING_PENALTY = -150
MULTI_PRODUCT_PENALTY = -1000
SHORT_TEXT_BONUS = 30
LONG_TEXT_PENALTY = -20

COMPLETE_TOTAL_MIN = 95
COMPLETE_TOTAL_MAX = 105
PARTIAL_TOTAL_LIMIT = 90
MAX_HUNDRED_PERCENT = 2  # more "100%" than this = several products concatenated
SHORT_TEXT_LENGTH = 300
LONG_TEXT_LENGTH = 1000

# =============================================================================
# PATTERNS
# =============================================================================

FABRIC_KEYWORDS = (
    "composition",
    "material",
    "fabric",
    "care",
    "content",
    "shell",
    "lining",
    "polyester",
    "cotton",
    "wool",
    "nylon",
    "polyamide",
    "viscose",
    "elastane",
)

MARKETING_PHRASES = ("made with", "sourced from", "premier")

CANDIDATE_LABEL_PATTERN = re.compile(
    r"\b(content|composition|fabric|material)s?:[\s\S]*%", re.IGNORECASE
)
COMPOSITION_LABEL_PATTERN = re.compile(
    r"\b(composition|fabric|material)s?:", re.IGNORECASE
)
PERCENTAGE_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*%")
FIBER_PAIR_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*%\s*([a-z][a-z ]*)", re.IGNORECASE)
# "Cotton 100%" style, used when a block has no "100% cotton" pairs
FIBER_FIRST_PAIR_PATTERN = re.compile(r"([a-z][a-z ]*)\s*(\d+(?:\.\d+)?)\s*%", re.IGNORECASE)
HUNDRED_PERCENT_PATTERN = re.compile(r"(?<![\d.])100\s*%")


@dataclass
class ScoredTextBlock:
    """A page text block with its composition-likelihood score."""

    text: str
    score: int


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================


def is_candidate(text: str) -> bool:
    """Fabric keyword plus a percent sign, or a composition label followed by one."""
    lower = text.lower()
    has_keyword = any(keyword in lower for keyword in FABRIC_KEYWORDS)
    if has_keyword and "%" in text:
        return True
    return bool(CANDIDATE_LABEL_PATTERN.search(text))


def composition_signature(text: str) -> frozenset:
    """
    Normalize a block to its set of (percentage, fiber-name) pairs.

    Two DOM containers repeating the same composition produce the same
    signature regardless of surrounding text or ordering. Percent-first
    pairs ("60% cotton") win; fiber-first pairs ("Cotton 60%") are read only
    when a block has none.
    """
    pairs = set()
    for match in FIBER_PAIR_PATTERN.finditer(text):
        fiber = re.sub(r"\s+", " ", match.group(2)).strip().lower()
        if fiber:
            pairs.add((float(match.group(1)), fiber))
    if pairs:
        return frozenset(pairs)

    for match in FIBER_FIRST_PAIR_PATTERN.finditer(text):
        fiber = re.sub(r"\s+", " ", match.group(1)).strip().lower()
        if fiber:
            pairs.add((float(match.group(2)), fiber))
    return frozenset(pairs)


def percentage_total(text: str) -> Optional[float]:
    """Sum of every percentage number in the block, or None if there are none."""
    values = [float(v) for v in PERCENTAGE_PATTERN.findall(text)]
    if not values:
        return None
    return sum(values)


def has_multiple_products(text: str) -> bool:
    """More than two "100%" statements usually means several products."""
    return len(HUNDRED_PERCENT_PATTERN.findall(text)) > MAX_HUNDRED_PERCENT


def score_composition_text(text: str) -> int:
    """Score how likely a block is the official composition statement."""
    score = 0
    lower = text.lower()

    if "content:" in lower and "%" in text:
        score += CONTENT_LABEL_BONUS

    if COMPOSITION_LABEL_PATTERN.search(text):
        score += COMPOSITION_LABEL_BONUS

    score += text.count("%") * PERCENT_SIGN_BONUS

    total = percentage_total(text)
    if total is not None:
        if COMPLETE_TOTAL_MIN <= total <= COMPLETE_TOTAL_MAX:
            score += COMPLETE_TOTAL_BONUS
        if total < PARTIAL_TOTAL_LIMIT:
            score += PARTIAL_TOTAL_PENALTY

    if any(phrase in lower for phrase in MARKETING_PHRASES):
        score += MARKETING_PENALTY

    if has_multiple_products(text):
        score += MULTI_PRODUCT_PENALTY

    if len(text) < SHORT_TEXT_LENGTH:
        score += SHORT_TEXT_BONUS
    if len(text) > LONG_TEXT_LENGTH:
        score += LONG_TEXT_PENALTY

    return score


# =============================================================================
# SELECTION
# =============================================================================


def select_candidate_blocks(
    blocks: Iterable[str],
    selector_config: Optional[SelectorConfig] = None,
) -> list[ScoredTextBlock]:
    """
    Rank page text blocks and keep the best composition candidates.

    Args:
        blocks: Raw text blocks in page discovery order
        selector_config: Limits (defaults to SelectorConfig)

    Returns:
        At most max_blocks blocks with positive scores, best first. Equal
        scores keep discovery order.
    """
    cfg = selector_config or SelectorConfig()
    seen_texts: set[str] = set()
    seen_signatures: set[frozenset] = set()
    sections: list[ScoredTextBlock] = []

    for text in blocks:
        if not text or text in seen_texts:
            continue
        if len(text) >= cfg.max_block_length:
            continue
        if not is_candidate(text):
            continue

        signature = composition_signature(text)
        if signature and signature in seen_signatures:
            continue

        score = score_composition_text(text)
        if score > 0:
            sections.append(ScoredTextBlock(text=text, score=score))
            seen_texts.add(text)
            if signature:
                seen_signatures.add(signature)

    # sorted() is stable, so ties stay in discovery order
    sections = sorted(sections, key=lambda s: s.score, reverse=True)
    return sections[: cfg.max_blocks]


def join_candidate_blocks(
    sections: list[ScoredTextBlock],
    selector_config: Optional[SelectorConfig] = None,
) -> str:
    """Concatenate scored blocks, best first, within the character budget."""
    cfg = selector_config or SelectorConfig()
    text = "".join(section.text + cfg.separator for section in sections)
    return text[: cfg.max_text_length]


def build_candidate_text(
    blocks: Iterable[str],
    selector_config: Optional[SelectorConfig] = None,
) -> str:
    """Select candidate blocks and join them into the extraction input text."""
    cfg = selector_config or SelectorConfig()
    return join_candidate_blocks(select_candidate_blocks(blocks, cfg), cfg)
