"""
Tests for candidate-text selection on product pages.

Run with: pytest tests/test_text_selector.py -v
"""

import pytest

from config.settings import SelectorConfig
from fabrix.extractors.text_selector import (
    COMPLETE_TOTAL_BONUS,
    CONTENT_LABEL_BONUS,
    MULTI_PRODUCT_PENALTY,
    PARTIAL_TOTAL_PENALTY,
    PERCENT_SIGN_BONUS,
    SHORT_TEXT_BONUS,
    build_candidate_text,
    composition_signature,
    is_candidate,
    percentage_total,
    score_composition_text,
    select_candidate_blocks,
)

OFFICIAL = "Content: 60% cotton, 40% polyester"
MARKETING = "Made with 30% recycled polyester for a softer feel"


class TestCandidateDetection:
    def test_keyword_with_percent(self):
        assert is_candidate("82% polyamide 18% elastane")

    def test_label_with_percent(self):
        assert is_candidate("Materials: 100% something")

    def test_keyword_without_percent(self):
        assert not is_candidate("Soft cotton jersey")

    def test_unrelated_percent(self):
        assert not is_candidate("Save 20% today")


class TestScoring:
    def test_official_content_field(self):
        expected = CONTENT_LABEL_BONUS + 2 * PERCENT_SIGN_BONUS + COMPLETE_TOTAL_BONUS + SHORT_TEXT_BONUS
        assert score_composition_text(OFFICIAL) == expected

    def test_composition_label_bonus(self):
        with_label = score_composition_text("Composition: 100% wool")
        without_label = score_composition_text("100% wool")
        assert with_label - without_label == 100

    def test_marketing_text_scores_negative(self):
        assert score_composition_text(MARKETING) < 0

    def test_multiple_products_penalized(self):
        text = "Tee 100% cotton. Sweater 100% wool. Scarf 100% cashmere."
        assert score_composition_text(text) == 3 * PERCENT_SIGN_BONUS + SHORT_TEXT_BONUS + MULTI_PRODUCT_PENALTY

    def test_two_hundred_percent_statements_allowed(self):
        text = "Shell 100% wool, trim 100% cotton"
        assert score_composition_text(text) == 2 * PERCENT_SIGN_BONUS + SHORT_TEXT_BONUS

    @pytest.mark.parametrize(
        "first,second,adjustment",
        [
            (60, 29, PARTIAL_TOTAL_PENALTY),  # 89
            (60, 30, 0),  # 90
            (60, 34, 0),  # 94
            (60, 35, COMPLETE_TOTAL_BONUS),  # 95
            (60, 45, COMPLETE_TOTAL_BONUS),  # 105
            (60, 46, 0),  # 106
        ],
    )
    def test_percentage_sum_thresholds(self, first, second, adjustment):
        text = f"{first}% wool, {second}% cotton"
        assert score_composition_text(text) == 2 * PERCENT_SIGN_BONUS + SHORT_TEXT_BONUS + adjustment

    def test_long_text_penalty(self):
        padding = " plain words" * 100
        short = score_composition_text("Composition: 100% linen")
        long = score_composition_text("Composition: 100% linen" + padding)
        assert short - long == SHORT_TEXT_BONUS + 20

    def test_percentage_total(self):
        assert percentage_total("49% polyamide, 29% polyester, 14% acrylic, 8% wool") == 100
        assert percentage_total("no numbers") is None


class TestSignature:
    def test_order_and_surroundings_ignored(self):
        a = composition_signature("Content: 60% cotton, 40% polyester")
        b = composition_signature("Fabric details 40% Polyester 60% Cotton")
        assert a == b

    def test_different_compositions_differ(self):
        assert composition_signature("100% cotton") != composition_signature("100% wool")

    def test_no_pairs(self):
        assert composition_signature("Fabric: 100%") == frozenset()

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("Composition: Cotton 100%", {(100.0, "cotton")}),
            ("Material: Polyester 60%, Cotton 40%", {(60.0, "polyester"), (40.0, "cotton")}),
        ],
    )
    def test_fiber_first_pairs(self, text, expected):
        assert composition_signature(text) == frozenset(expected)

    def test_percent_first_pairs_take_precedence(self):
        signature = composition_signature("Content: 60% cotton, 40% polyester")
        assert signature == frozenset({(60.0, "cotton"), (40.0, "polyester")})


class TestSelectCandidateBlocks:
    def test_official_field_ranks_first(self):
        blocks = [MARKETING, "Composition: 100% wool", OFFICIAL]
        selected = select_candidate_blocks(blocks)
        assert selected[0].text == OFFICIAL
        assert MARKETING not in [s.text for s in selected]

    def test_identical_text_considered_once(self):
        selected = select_candidate_blocks([OFFICIAL, OFFICIAL, OFFICIAL])
        assert len(selected) == 1

    def test_same_composition_in_wrapper_skipped(self):
        wrapper = "Product details\n" + OFFICIAL + "\nMachine wash cold"
        selected = select_candidate_blocks([OFFICIAL, wrapper])
        assert [s.text for s in selected] == [OFFICIAL]

    def test_oversized_blocks_ignored(self):
        huge = OFFICIAL + " x" * 1000
        assert select_candidate_blocks([huge]) == []

    def test_empty_blocks_ignored(self):
        assert select_candidate_blocks(["", ""]) == []

    def test_keeps_top_three(self):
        blocks = [
            "Content: 100% cotton",
            "Content: 100% wool",
            "Content: 100% linen",
            "Content: 100% silk",
        ]
        assert len(select_candidate_blocks(blocks)) == 3

    def test_ties_keep_discovery_order(self):
        first = "Content: 60% cotton, 40% nylon"
        second = "Content: 60% linen, 40% nylon"
        assert score_composition_text(first) == score_composition_text(second)
        selected = select_candidate_blocks([first, second])
        assert [s.text for s in selected] == [first, second]

    def test_no_candidates(self):
        assert select_candidate_blocks(["Free shipping", "Size guide"]) == []

    def test_scores_strictly_positive(self):
        blocks = [MARKETING, OFFICIAL, "Shell 10% wool"]
        assert all(s.score > 0 for s in select_candidate_blocks(blocks))

    @pytest.mark.parametrize(
        "block", ["Composition: Cotton 100%", "Material: Polyester 60%, Cotton 40%"]
    )
    def test_fiber_first_block_kept(self, block):
        selected = select_candidate_blocks([block])
        assert [s.text for s in selected] == [block]
        assert selected[0].score > 0

    def test_fiber_first_repeat_skipped(self):
        blocks = ["Material: Polyester 60%, Cotton 40%", "Fabric: Cotton 40%, Polyester 60%"]
        assert [s.text for s in select_candidate_blocks(blocks)] == [blocks[0]]

    def test_blocks_without_pairs_kept(self):
        selected = select_candidate_blocks(["Fabric: 100%", "Material: 100%"])
        assert [s.text for s in selected] == ["Fabric: 100%", "Material: 100%"]


class TestBuildCandidateText:
    def test_blocks_joined_best_first(self):
        text = build_candidate_text(["Composition: 100% wool", OFFICIAL])
        assert text == OFFICIAL + "\n\n---\n\n" + "Composition: 100% wool" + "\n\n---\n\n"

    def test_truncated_to_budget(self):
        cfg = SelectorConfig(max_text_length=20)
        assert len(build_candidate_text([OFFICIAL], cfg)) == 20

    def test_nothing_selected(self):
        assert build_candidate_text(["Free shipping over $50"]) == ""
