from .page_extractor import PageSnapshot, PageTextCollector, brand_from_url
from .text_selector import (
    ScoredTextBlock,
    build_candidate_text,
    score_composition_text,
    select_candidate_blocks,
)

__all__ = [
    "PageSnapshot",
    "PageTextCollector",
    "brand_from_url",
    "ScoredTextBlock",
    "build_candidate_text",
    "score_composition_text",
    "select_candidate_blocks",
]
